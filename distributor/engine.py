"""
Distribution orchestrator.

Ties together source resolution, staleness filtering, copying and cache
updates for a list of DistributionSpec entries.  Everything runs
sequentially: one spec at a time, one target at a time, one file at a
time.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from distributor.cache import StalenessCache
from distributor.config import DistributionSpec
from distributor.copier import (
    AlreadyUpToDate,
    CacheSaved,
    CopyEngine,
    CopyOutcome,
    Failed,
    RunStats,
)
from distributor.errors import CacheError, CopyError, ResolutionError
from distributor.resolver import SourceResolver

logger = logging.getLogger(__name__)


@dataclass
class SpecResult:
    """Everything that happened while distributing one spec."""
    name: str
    outcomes: list[CopyOutcome] = field(default_factory=list)
    error: ResolutionError | None = None
    skipped_dirs: list[tuple[Path, OSError]] = field(default_factory=list)

    @property
    def failures(self) -> list[Failed]:
        return [o for o in self.outcomes if isinstance(o, Failed)]

    @property
    def ok(self) -> bool:
        """True when the spec resolved and every copy succeeded."""
        return self.error is None and not self.failures


class Distributor:
    """
    Runs distributions against an owned staleness cache.

    Use as a context manager so the cache is flushed on every exit path::

        with Distributor(StalenessCache.load()) as dist:
            dist.distribute_all(config)

    Parameters
    ----------
    cache : StalenessCache, optional
        The cache this distributor owns; loaded from the default location
        when omitted.
    on_outcome : callable, optional
        Invoked with every outcome of a reported run, and with the
        CacheSaved outcome on close.
    resolver, engine : optional
        Collaborators, replaceable for testing.
    """

    def __init__(
        self,
        cache: StalenessCache | None = None,
        on_outcome: Callable[[CopyOutcome], None] | None = None,
        resolver: SourceResolver | None = None,
        engine: CopyEngine | None = None,
    ):
        self.cache = cache if cache is not None else StalenessCache.load()
        self._on_outcome = on_outcome
        self._resolver = resolver or SourceResolver()
        self._engine = engine or CopyEngine()
        self.stats = RunStats()
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def __enter__(self) -> "Distributor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> CacheSaved | None:
        """Persist the cache if it holds anything.  Never raises."""
        if self._closed:
            return None
        self._closed = True
        if self.cache.is_empty():
            logger.debug("Cache is empty; not saving.")
            return None
        try:
            path = self.cache.save()
        except CacheError as exc:
            logger.error("%s", exc)
            return None
        saved = CacheSaved(path)
        self._emit(saved)
        return saved

    def clear_cache(self) -> None:
        """Drop every record so the next run treats all sources as stale.

        Raises CacheError if the persisted file cannot be deleted; the
        in-memory records are gone either way.
        """
        self.cache.clear()

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def distribute_all(
        self,
        specs: Iterable[DistributionSpec],
        force: bool = False,
        report: bool = True,
    ) -> list[SpecResult]:
        """Distribute every spec in order; a failing spec never stops the rest."""
        results = [self.distribute(spec, force=force, report=report) for spec in specs]
        logger.info("Run finished: %s", self.stats.summary())
        return results

    def distribute(
        self,
        spec: DistributionSpec,
        force: bool = False,
        report: bool = True,
    ) -> SpecResult:
        """Copy the stale sources of *spec* to each of its targets."""
        result = SpecResult(name=spec.name)
        try:
            resolution = self._resolver.resolve(spec)
        except ResolutionError as exc:
            logger.error("Cannot resolve %r: %s", spec.name, exc)
            result.error = exc
            return result
        result.skipped_dirs = list(resolution.skipped)

        if resolution.single_file:
            self._distribute_file(spec, force, result)
        else:
            self._distribute_tree(spec, resolution.files, force, result)

        for outcome in result.outcomes:
            self.stats.record(outcome)
            if report:
                self._emit(outcome)
        if not spec.targets:
            logger.info("%s: no targets configured.", spec.name)
        return result

    def _distribute_file(
        self, spec: DistributionSpec, force: bool, result: SpecResult
    ) -> None:
        source = spec.root
        if not force and not self.cache.is_outdated(source):
            result.outcomes.append(AlreadyUpToDate(source))
            return

        all_ok = True
        for target in spec.targets:
            # An existing file is overwritten in place; otherwise the target
            # is a directory that receives the file under its own name.
            destination = target if target.is_file() else target / source.name
            all_ok &= self._copy(source, destination, result)
        if spec.targets and all_ok:
            self.cache.record(source)

    def _distribute_tree(
        self,
        spec: DistributionSpec,
        sources: set[Path],
        force: bool,
        result: SpecResult,
    ) -> None:
        stale: list[Path] = []
        for source in sorted(sources):
            if force or self.cache.is_outdated(source):
                stale.append(source)
            else:
                result.outcomes.append(AlreadyUpToDate(source))

        failed: set[Path] = set()
        for target in spec.targets:
            for source in stale:
                destination = target / source.relative_to(spec.root)
                if not self._copy(source, destination, result):
                    failed.add(source)

        if not spec.targets:
            return
        for source in sources:
            if source not in failed:
                self.cache.record(source)

    def _copy(self, source: Path, destination: Path, result: SpecResult) -> bool:
        try:
            outcome = self._engine.copy_to(source, destination)
        except CopyError as exc:
            logger.warning("%s", exc)
            result.outcomes.append(Failed(source, exc.target, exc.reason))
            return False
        result.outcomes.append(outcome)
        return True

    def _emit(self, outcome: CopyOutcome) -> None:
        logger.debug("%s", outcome.describe())
        if self._on_outcome:
            try:
                self._on_outcome(outcome)
            except Exception:
                logger.exception("Error in on_outcome callback")
