"""Staleness cache for Distributor.

Remembers, per source file, the modification time it had when it was last
copied successfully.  A file is stale when it has no record or when its
current mtime is newer than the recorded one.  Timestamps are whole
milliseconds since the Unix epoch, kept as decimal strings on disk.
"""

import json
import logging
import os
from pathlib import Path

from distributor.errors import CacheError

logger = logging.getLogger(__name__)

DEFAULT_CACHE_PATH = Path(".distributor") / "distributor_cache.db"


def mtime_millis(path: str | Path) -> int:
    """Return the modification time of *path* in ms since the epoch.

    Raises OSError when the file cannot be stat'ed.
    """
    return os.stat(path).st_mtime_ns // 1_000_000


def _key(path: str | Path) -> str:
    return os.fspath(path)


class StalenessCache:
    """Persisted ``path -> last synced mtime`` mapping."""

    def __init__(
        self,
        records: dict[str, int] | None = None,
        path: str | Path | None = None,
    ):
        self._path = Path(path) if path is not None else DEFAULT_CACHE_PATH
        self._files: dict[str, int] = dict(records or {})

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, path: str | Path | None = None) -> "StalenessCache":
        """Read the cache from *path*; any problem yields an empty cache."""
        cache = cls(path=path)
        try:
            with open(cache._path, encoding="utf-8") as fh:
                stored = json.load(fh)
        except FileNotFoundError:
            logger.debug("No cache file at %s; everything is stale.", cache._path)
            return cache
        except (OSError, ValueError) as exc:
            logger.warning("Could not read cache %s (%s); starting empty.", cache._path, exc)
            return cache

        files = stored.get("files") if isinstance(stored, dict) else None
        if not isinstance(files, dict):
            logger.warning("Cache %s is malformed; starting empty.", cache._path)
            return cache

        for key, value in files.items():
            try:
                cache._files[key] = int(str(value))
            except ValueError:
                logger.debug("Dropping unreadable cache entry for %s", key)
        logger.info("Loaded %d cache record(s) from %s", len(cache._files), cache._path)
        return cache

    def save(self, path: str | Path | None = None) -> Path:
        """Write every record to disk and return the file written."""
        target = Path(path) if path is not None else self._path
        data = {"files": {key: str(value) for key, value in self._files.items()}}
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
        except OSError as exc:
            raise CacheError(f"Could not save cache to {target}: {exc}") from exc
        logger.info("Saved %d cache record(s) to %s", len(self._files), target)
        return target

    def clear(self, path: str | Path | None = None) -> None:
        """Forget every record and delete the persisted file."""
        target = Path(path) if path is not None else self._path
        self._files = {}
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise CacheError(f"Could not delete cache {target}: {exc}") from exc
        logger.info("Cache cleared (%s).", target)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        """Return the default location this cache persists to."""
        return self._path

    def __len__(self) -> int:
        return len(self._files)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, os.PathLike)):
            return False
        return _key(path) in self._files

    def is_empty(self) -> bool:
        return not self._files

    def get_record(self, path: str | Path) -> int | None:
        """Return the recorded mtime (ms) for *path*, or None."""
        return self._files.get(_key(path))

    def is_outdated(self, path: str | Path) -> bool:
        """Return True unless *path* is unchanged since it was last recorded."""
        recorded = self._files.get(_key(path))
        if recorded is None:
            return True
        try:
            current = mtime_millis(path)
        except OSError:
            return True
        return current > recorded

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def record(self, path: str | Path) -> None:
        """Remember the current mtime of *path*; a no-op if it is unreadable."""
        try:
            self._files[_key(path)] = mtime_millis(path)
        except OSError as exc:
            logger.debug("Not recording %s: %s", path, exc)
