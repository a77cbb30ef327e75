"""
File copy engine for Distributor.

Copies one source file to one destination, comparing against an existing
destination first so that identical content is never rewritten.  Missing
destination directories are created on the way.
"""

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar

from distributor.errors import CopyError

logger = logging.getLogger(__name__)

_COMPARE_CHUNK = 64 * 1024  # 64 KiB read chunks for comparison


# ------------------------------------------------------------------
# Outcomes
# ------------------------------------------------------------------


def display_path(path: str | Path) -> str:
    """Render *path* for output; undecodable bytes become backslash escapes."""
    return os.fsdecode(path).encode("utf-8", "backslashreplace").decode("utf-8")


@dataclass(frozen=True)
class CopyOutcome:
    """Result of one (source, target) attempt, or of a cache flush."""
    label: ClassVar[str] = "Outcome"

    def describe(self) -> str:
        return f"[{self.label}]"


@dataclass(frozen=True)
class Copied(CopyOutcome):
    """Bytes were written because the target was absent or different."""
    source: Path
    target: Path
    size_bytes: int = 0
    label: ClassVar[str] = "Copied"

    def describe(self) -> str:
        return f"[{self.label}] {display_path(self.source)} -> {display_path(self.target)}"


@dataclass(frozen=True)
class SameContent(CopyOutcome):
    """The target already held identical bytes; nothing was written."""
    source: Path
    target: Path
    label: ClassVar[str] = "Same"

    def describe(self) -> str:
        return f"[{self.label}] {display_path(self.source)} == {display_path(self.target)}"


@dataclass(frozen=True)
class AlreadyUpToDate(CopyOutcome):
    """The source was skipped for every target: unchanged since last sync."""
    source: Path
    label: ClassVar[str] = "UpToDate"

    def describe(self) -> str:
        return f"[{self.label}] {display_path(self.source)}"


@dataclass(frozen=True)
class Failed(CopyOutcome):
    """The copy could not be performed for this pair."""
    source: Path
    target: Path
    error: str
    label: ClassVar[str] = "Error"

    def describe(self) -> str:
        return (
            f"[{self.label}] {display_path(self.source)} -> "
            f"{display_path(self.target)}: {display_path(self.error)}"
        )


@dataclass(frozen=True)
class CacheSaved(CopyOutcome):
    """The staleness cache was written to disk."""
    path: Path
    label: ClassVar[str] = "Saved"

    def describe(self) -> str:
        return f"[{self.label}] cache -> {display_path(self.path)}"


@dataclass
class RunStats:
    """Aggregated outcome counts across a run."""
    total_copied: int = 0
    total_same: int = 0
    total_up_to_date: int = 0
    total_failed: int = 0
    total_bytes: int = 0

    def record(self, outcome: CopyOutcome) -> None:
        if isinstance(outcome, Copied):
            self.total_copied += 1
            self.total_bytes += outcome.size_bytes
        elif isinstance(outcome, SameContent):
            self.total_same += 1
        elif isinstance(outcome, AlreadyUpToDate):
            self.total_up_to_date += 1
        elif isinstance(outcome, Failed):
            self.total_failed += 1

    def summary(self) -> str:
        return (
            f"{self.total_copied} copied ({self.total_bytes} bytes), "
            f"{self.total_same} identical, "
            f"{self.total_up_to_date} up to date, {self.total_failed} failed"
        )


# ------------------------------------------------------------------
# Comparison
# ------------------------------------------------------------------


def files_identical(first: Path, second: Path, chunk_size: int = _COMPARE_CHUNK) -> bool:
    """Compare two files block by block.

    Raises OSError if either file cannot be read.
    """
    with open(first, "rb") as fa, open(second, "rb") as fb:
        while True:
            block_a = fa.read(chunk_size)
            block_b = fb.read(chunk_size)
            if block_a != block_b:
                return False
            if not block_a:
                return True


# ------------------------------------------------------------------
# Engine
# ------------------------------------------------------------------


class CopyEngine:
    """
    Copies single files, skipping the write when content already matches.

    Parameters
    ----------
    chunk_size : int
        Block size used when comparing source and destination.
    """

    def __init__(self, chunk_size: int = _COMPARE_CHUNK):
        self._chunk_size = max(1, int(chunk_size))

    def destination_for(
        self,
        source: Path,
        destination: Path,
        relative_to: Path | None = None,
    ) -> Path:
        """Compute the final target file path.

        An existing directory receives the file under its name (or its path
        relative to *relative_to*); anything else is the literal target.
        """
        if not destination.is_dir():
            return destination
        if relative_to is not None:
            try:
                return destination / source.relative_to(relative_to)
            except ValueError:
                pass
        return destination / source.name

    def copy_one(
        self,
        source: str | Path,
        destination: str | Path,
        relative_to: str | Path | None = None,
    ) -> CopyOutcome:
        """Copy *source* to *destination*; raise CopyError if that fails."""
        source = Path(source)
        target = self.destination_for(
            source,
            Path(destination),
            Path(relative_to) if relative_to is not None else None,
        )
        return self.copy_to(source, target)

    def copy_to(self, source: str | Path, target: str | Path) -> CopyOutcome:
        """Copy *source* to the literal file path *target*.

        Raises CopyError if that fails, including when *target* is an
        existing directory.
        """
        source, target = Path(source), Path(target)
        if target.is_dir():
            raise CopyError(source, target, "destination is a directory")

        if target.is_file():
            try:
                if files_identical(source, target, self._chunk_size):
                    logger.debug("Identical content, not copying: %s", target)
                    return SameContent(source, target)
            except OSError as exc:
                logger.debug("Comparison failed for %s (%s); copying.", target, exc)

        try:
            size = source.stat().st_size
            target.parent.mkdir(parents=True, exist_ok=True)
            logger.debug("Copying %s -> %s (%d bytes)", source, target, size)
            shutil.copyfile(os.fspath(source), os.fspath(target))
        except OSError as exc:
            raise CopyError(source, target, exc.strerror or str(exc)) from exc
        return Copied(source, target, size)
