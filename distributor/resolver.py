"""Source resolution for Distributor.

Expands the root of a distribution into the concrete files it stands for:
the root itself when it is a file, otherwise every file below it that is
not matched by one of the distribution's ignore globs.
"""

from __future__ import annotations

import logging
import os
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from pathspec import PathSpec

from distributor.errors import (
    InvalidIgnorePatternError,
    ResolutionError,
    RootNotFoundError,
)

if TYPE_CHECKING:
    from distributor.config import DistributionSpec

logger = logging.getLogger(__name__)

# pathspec compiles "*" and "**" to this shortcut regex
_MATCH_ALL = "."


def _anchor(pattern: str) -> str:
    """Make *pattern* match at any depth below the root.

    ``/name`` keeps git's meaning of "directly under the root".
    """
    negate = pattern.startswith("!")
    body = pattern[1:] if negate else pattern
    if not body.startswith("/") and not body.startswith("**"):
        body = f"**/{body}"
    return f"!{body}" if negate else body


def _unclosed_bracket(body: str) -> bool:
    """Return True if a ``[`` character class in *body* is never closed."""
    i = 0
    while i < len(body):
        char = body[i]
        if char == "\\":
            i += 2
            continue
        if char == "[":
            j = i + 1
            if j < len(body) and body[j] in "!^":
                j += 1
            if j < len(body) and body[j] == "]":
                j += 1
            close = body.find("]", j)
            if close < 0:
                return True
            i = close
        i += 1
    return False


def _check_pattern(pattern: str) -> None:
    """Reject globs that are empty or would silently match everything."""
    if not pattern.strip():
        raise InvalidIgnorePatternError(pattern, "empty pattern")
    body = pattern[1:] if pattern.startswith("!") else pattern
    if not body.strip().strip("/"):
        raise InvalidIgnorePatternError(pattern, "pattern names no path")
    if "***" in body:
        raise InvalidIgnorePatternError(pattern, "more than two consecutive '*'")
    if _unclosed_bracket(body):
        raise InvalidIgnorePatternError(pattern, "unclosed '['")


def compile_ignore(patterns: list[str]) -> PathSpec:
    """Compile ignore globs, raising InvalidIgnorePatternError on bad input."""
    lines = []
    for pattern in patterns:
        _check_pattern(pattern)
        line = _anchor(pattern)
        try:
            PathSpec.from_lines("gitignore", [line])
        except ValueError as exc:
            raise InvalidIgnorePatternError(pattern, str(exc)) from exc
        lines.append(line)
    return PathSpec.from_lines("gitignore", lines)


def is_ignored(spec: PathSpec, relpath: str) -> bool:
    """Return True if a glob in *spec* matches the whole of *relpath*.

    Matching a parent directory is not enough: directories never hide
    their contents.  The last matching glob wins, so ``!`` re-includes.
    """
    ignored = False
    for pattern in spec.patterns:
        if pattern.include is None:
            continue
        regex = pattern.regex
        if regex.pattern == _MATCH_ALL or regex.fullmatch(relpath):
            ignored = pattern.include
    return ignored


@dataclass
class Resolution:
    """Files a distribution stands for, plus sub-trees that could not be read."""
    root: Path
    files: set[Path] = field(default_factory=set)
    skipped: list[tuple[Path, OSError]] = field(default_factory=list)
    ignored: set[Path] = field(default_factory=set)
    single_file: bool = False


class SourceResolver:
    """Resolves DistributionSpec roots into sets of files."""

    def resolve(self, spec: DistributionSpec) -> Resolution:
        """Return the files *spec* covers.

        Raises RootNotFoundError when the root is missing and
        InvalidIgnorePatternError when an ignore glob does not compile.
        """
        root = spec.root
        if root.is_file():
            return Resolution(root=root, files={root}, single_file=True)
        if not root.is_dir():
            raise RootNotFoundError(root)

        ignore = compile_ignore(spec.ignore) if spec.ignore else None
        resolution = Resolution(root=root)
        found = self._walk(root, resolution)

        if ignore is not None:
            resolution.ignored = {
                p for p in found if is_ignored(ignore, p.relative_to(root).as_posix())
            }
            found -= resolution.ignored
            logger.debug(
                "%s: %d file(s) ignored by %s",
                spec.name, len(resolution.ignored), spec.ignore,
            )

        resolution.files = found
        logger.debug("%s: resolved %d file(s) under %s", spec.name, len(found), root)
        return resolution

    def _walk(self, root: Path, resolution: Resolution) -> set[Path]:
        """Breadth-first listing of every file under *root*."""
        found: set[Path] = set()
        pending: deque[Path] = deque([root])
        visited: set[str] = set()

        while pending:
            directory = pending.popleft()
            real = os.path.realpath(directory)
            if real in visited:
                logger.debug("Skipping already visited directory %s", directory)
                continue
            visited.add(real)

            try:
                with os.scandir(directory) as entries:
                    listing = list(entries)
            except OSError as exc:
                if directory == root:
                    raise ResolutionError(f"Cannot read source root {root}: {exc}") from exc
                logger.warning("Skipping unreadable directory %s: %s", directory, exc)
                resolution.skipped.append((directory, exc))
                continue

            for entry in listing:
                path = directory / entry.name
                try:
                    if entry.is_dir():
                        pending.append(path)
                    elif entry.is_file():
                        found.add(path)
                    else:
                        logger.debug("Skipping non-regular entry %s", path)
                except OSError as exc:
                    logger.warning("Skipping unreadable entry %s: %s", path, exc)
                    resolution.skipped.append((path, exc))
        return found
