"""Exception hierarchy for Distributor."""

from pathlib import Path


class DistributorError(Exception):
    """Base class for every error raised by Distributor."""


# ------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------


class ConfigError(DistributorError):
    """A configuration entry could not be created, changed or removed."""


class DistributionExistsError(ConfigError):
    """The distribution, ignore pattern or target is already configured."""


class DistributionNotFoundError(ConfigError):
    """The distribution, ignore pattern or target is not configured."""


# ------------------------------------------------------------------
# Resolution
# ------------------------------------------------------------------


class ResolutionError(DistributorError):
    """The source set of a distribution could not be resolved."""


class RootNotFoundError(ResolutionError):
    """The root of a distribution does not exist."""

    def __init__(self, root: Path):
        super().__init__(f"Source root does not exist: {root}")
        self.root = root


class InvalidIgnorePatternError(ResolutionError):
    """An ignore glob could not be compiled."""

    def __init__(self, pattern: str, reason: str = ""):
        msg = f"Invalid ignore pattern: {pattern!r}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)
        self.pattern = pattern


# ------------------------------------------------------------------
# Copy / cache
# ------------------------------------------------------------------


class CopyError(DistributorError):
    """A single (source, target) copy failed."""

    def __init__(self, source: Path, target: Path, reason: str):
        super().__init__(f"Copy failed for {source} -> {target}: {reason}")
        self.source = source
        self.target = target
        self.reason = reason


class CacheError(DistributorError):
    """The staleness cache could not be saved or cleared."""
