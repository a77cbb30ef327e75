"""Configuration management for Distributor.

Stores the distribution entries and tool settings in a JSON config file,
by default ``distributor-config.json`` in the working directory.
"""

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from distributor.errors import (
    DistributionExistsError,
    DistributionNotFoundError,
)
from distributor.resolver import compile_ignore

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "distributor-config.json"
STATE_DIR = ".distributor"

DEFAULT_SETTINGS: dict[str, Any] = {
    "log_level": "INFO",
    "log_file": f"{STATE_DIR}/distributor.log",  # blank = no log file
    "max_log_size_mb": 10,  # rotate log when it exceeds this size
    "log_backup_count": 3,  # number of rotated log files to keep
    "cache_path": f"{STATE_DIR}/distributor_cache.db",
}


def get_config_path(path: str | Path | None = None) -> Path:
    """Return the config file for *path*.

    A directory, or a path without a suffix, gets the default file name
    appended.
    """
    if path is None:
        return Path(CONFIG_FILE_NAME)
    path = Path(path)
    if path.is_dir() or (not path.suffix and not path.is_file()):
        return path / CONFIG_FILE_NAME
    return path


@dataclass
class DistributionSpec:
    """One configured distribution: a source root and where it goes."""
    name: str
    root: Path
    ignore: list[str] = field(default_factory=list)
    targets: list[Path] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.root = Path(self.root)
        self.targets = [Path(t) for t in self.targets]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "root": str(self.root),
            "ignore": list(self.ignore),
            "targets": [str(t) for t in self.targets],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DistributionSpec":
        ignore = data.get("ignore", [])
        targets = data.get("targets", [])
        if not isinstance(ignore, list) or not isinstance(targets, list):
            raise ValueError("'ignore' and 'targets' must be lists")
        return cls(
            name=str(data["name"]),
            root=Path(data["root"]),
            ignore=[str(p) for p in ignore],
            targets=[Path(t) for t in targets],
        )


class Config:
    """Distribution entries and settings backed by a JSON file."""

    def __init__(self, path: str | Path | None = None):
        """Load config from *path*, falling back to the working directory."""
        self._path = get_config_path(path)
        self._settings: dict[str, Any] = dict(DEFAULT_SETTINGS)
        self._items: list[DistributionSpec] = []
        self.load()

    @property
    def path(self) -> Path:
        """Return the config file path."""
        return self._path

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Load configuration from disk, applying defaults for missing keys."""
        self._settings = dict(DEFAULT_SETTINGS)
        self._items = []
        if not self._path.exists():
            logger.info("No configuration at %s; starting empty.", self._path)
            return
        try:
            with open(self._path, encoding="utf-8") as fh:
                stored = json.load(fh)
            if not isinstance(stored, dict):
                raise ValueError("top-level JSON value is not an object")
        except (json.JSONDecodeError, OSError, ValueError) as exc:
            logger.warning("Could not read config (%s); using defaults.", exc)
            return

        # Merge stored values over defaults so new keys get defaults
        settings = stored.get("settings", {})
        if isinstance(settings, dict):
            self._settings = {**DEFAULT_SETTINGS, **settings}

        for raw in stored.get("items", []):
            try:
                spec = DistributionSpec.from_dict(raw)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed distribution %r: %s", raw, exc)
                continue
            if self.has_distribution(spec.name):
                logger.warning("Skipping duplicate distribution %r.", spec.name)
                continue
            self._items.append(spec)
        logger.info("Configuration loaded from %s", self._path)

    def save(self) -> None:
        """Persist the current configuration to disk."""
        data = {
            "settings": self._settings,
            "items": [spec.to_dict() for spec in self._items],
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)
        logger.info("Configuration saved to %s", self._path)

    # ------------------------------------------------------------------
    # Distributions
    # ------------------------------------------------------------------

    def __iter__(self) -> Iterator[DistributionSpec]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    @property
    def distributions(self) -> list[DistributionSpec]:
        """Return the configured distributions in declaration order."""
        return list(self._items)

    def has_distribution(self, name: str) -> bool:
        return any(spec.name == name for spec in self._items)

    def get(self, name: str) -> DistributionSpec:
        """Return the distribution called *name*."""
        for spec in self._items:
            if spec.name == name:
                return spec
        raise DistributionNotFoundError(f"No distribution named {name!r}")

    def add_distribution(self, name: str, root: str | Path) -> DistributionSpec:
        """Declare a new distribution with no ignores and no targets."""
        if self.has_distribution(name):
            raise DistributionExistsError(f"Distribution {name!r} already exists")
        spec = DistributionSpec(name=name, root=Path(root))
        self._items.append(spec)
        return spec

    def remove_distribution(self, name: str) -> None:
        self._items.remove(self.get(name))

    def add_ignore(self, name: str, pattern: str) -> None:
        """Add an ignore glob to *name*; the glob is validated first."""
        spec = self.get(name)
        if pattern in spec.ignore:
            raise DistributionExistsError(
                f"Ignore pattern {pattern!r} already set for {name!r}"
            )
        compile_ignore([pattern])
        spec.ignore.append(pattern)

    def remove_ignore(self, name: str, pattern: str) -> None:
        spec = self.get(name)
        if pattern not in spec.ignore:
            raise DistributionNotFoundError(
                f"Ignore pattern {pattern!r} not set for {name!r}"
            )
        spec.ignore.remove(pattern)

    def add_target(self, name: str, target: str | Path) -> None:
        spec = self.get(name)
        target = Path(target)
        if target in spec.targets:
            raise DistributionExistsError(
                f"Target {target} already set for {name!r}"
            )
        spec.targets.append(target)

    def remove_target(self, name: str, target: str | Path) -> None:
        spec = self.get(name)
        target = Path(target)
        if target not in spec.targets:
            raise DistributionNotFoundError(f"Target {target} not set for {name!r}")
        spec.targets.remove(target)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @property
    def log_level(self) -> str:
        """Return the current logging level name."""
        return str(self._settings.get("log_level", "INFO"))

    @log_level.setter
    def log_level(self, value: str) -> None:
        self._settings["log_level"] = value.strip().upper()

    @property
    def log_file(self) -> str:
        """Return the log file path (blank = console only)."""
        return str(self._settings.get("log_file", ""))

    @log_file.setter
    def log_file(self, value: str) -> None:
        self._settings["log_file"] = value.strip()

    @property
    def max_log_size_mb(self) -> int:
        """Return the maximum log file size in MB before rotation."""
        return int(self._settings.get("max_log_size_mb", 10))

    @max_log_size_mb.setter
    def max_log_size_mb(self, value: int) -> None:
        """Set the maximum log file size in MB (minimum 1)."""
        self._settings["max_log_size_mb"] = max(1, int(value))

    @property
    def log_backup_count(self) -> int:
        """Return the number of rotated log backups to keep."""
        return int(self._settings.get("log_backup_count", 3))

    @log_backup_count.setter
    def log_backup_count(self, value: int) -> None:
        """Set the number of rotated log backups to keep."""
        self._settings["log_backup_count"] = max(0, int(value))

    @property
    def cache_path(self) -> Path:
        """Return where the staleness cache is persisted."""
        return Path(self._settings.get("cache_path") or DEFAULT_SETTINGS["cache_path"])

    @cache_path.setter
    def cache_path(self, value: str | Path) -> None:
        self._settings["cache_path"] = str(value)
