"""Breadth-first dependency resolver producing one version per package name."""

from __future__ import annotations

import logging
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Deque, Dict, List, Optional, Sequence, Tuple

from ..common.logging_utils import extra_context, is_debug_enabled, Timer
from ..common.names import is_valid_package_name
from ..constants import Constants
from ..errors import RegistryError, RegistryErrorKind, ResolutionError, ResolutionErrorKind
from ..registry.models import PackageMetadata, VersionRecord
from . import semver
from .models import Conflict, DependencyGraph, PackageSpec, ResolvedNode

logger = logging.getLogger(__name__)

ROOT = Constants.ROOT_REQUIRER

# Bound on how often one name may switch versions; guards against oscillation.
MAX_RESELECTIONS = 16


class Resolver:
    """Resolve root specs against a registry client into a DependencyGraph.

    The client only needs a `fetch_metadata(name)` method. Metadata fetches
    may run ahead on a thread pool; every resolution decision is made by the
    single loop in `resolve`.
    """

    def __init__(self, client, *, strict: Optional[bool] = None, prefetch_workers: Optional[int] = None):
        self.client = client
        self.strict = Constants.STRICT_MODE if strict is None else strict
        workers = Constants.RESOLVE_PREFETCH_WORKERS if prefetch_workers is None else prefetch_workers
        self.prefetch_workers = max(0, int(workers))

    def resolve(self, roots: Sequence[PackageSpec]) -> DependencyGraph:
        """Resolve `roots` to a fixed point.

        Raises:
            ResolutionError: UNSATISFIABLE, INVALID_RANGE or REGISTRY.
        """
        executor = ThreadPoolExecutor(max_workers=self.prefetch_workers) if self.prefetch_workers > 1 else None
        try:
            with Timer() as t:
                run = _ResolutionRun(self.client, executor, self.strict)
                graph = run.execute(roots)
            logger.info("Resolved %d packages in %.0f ms", len(graph), t.duration_ms())
            return graph
        finally:
            if executor is not None:
                executor.shutdown(wait=True, cancel_futures=True)


class _ResolutionRun:
    """State of one `Resolver.resolve` call."""

    def __init__(self, client, executor: Optional[ThreadPoolExecutor], strict: bool):
        self.client = client
        self.executor = executor
        self.strict = strict
        self.queue: Deque[Tuple[str, str, str]] = deque()
        self.metadata: Dict[str, PackageMetadata] = {}
        self.pending: Dict[str, Future] = {}
        # name -> {requirer: range}
        self.requirements: Dict[str, Dict[str, str]] = {}
        self.records: Dict[str, VersionRecord] = {}
        self.nodes: Dict[str, ResolvedNode] = {}
        self.root_ranges: Dict[str, str] = {}
        self.reselections: Dict[str, int] = {}

    def execute(self, roots: Sequence[PackageSpec]) -> DependencyGraph:
        for spec in roots:
            if spec.name in self.root_ranges and self.root_ranges[spec.name] != spec.range:
                logger.warning(
                    "Duplicate root %s: using %s over %s", spec.name, spec.range, self.root_ranges[spec.name]
                )
            self.root_ranges[spec.name] = spec.range
        for name in sorted(self.root_ranges):
            self._enqueue(name, self.root_ranges[name], ROOT)

        while self.queue:
            self._step(*self.queue.popleft())

        self._prune()
        conflicts = self._final_conflicts()
        for conflict in conflicts:
            logger.warning("Version conflict: %s", conflict.describe())
        if conflicts and self.strict:
            first = conflicts[0]
            raise ResolutionError(
                ResolutionErrorKind.UNSATISFIABLE,
                f"unsatisfiable version ranges for {first.describe()}",
                name=first.name,
                ranges=first.ranges,
            )

        graph_roots = [PackageSpec(name, self.root_ranges[name]) for name in sorted(self.root_ranges)]
        nodes = {name: self.nodes[name] for name in sorted(self.nodes)}
        return DependencyGraph(roots=graph_roots, nodes=nodes, conflicts=conflicts)

    # queue handling

    def _enqueue(self, name: str, rng: str, requirer: str) -> None:
        self.queue.append((name, rng, requirer))
        if self.executor is not None and name not in self.metadata and name not in self.pending:
            self.pending[name] = self.executor.submit(self.client.fetch_metadata, name)

    def _is_stale(self, name: str, rng: str, requirer: str) -> bool:
        """A queued requirement whose requirer has since moved to another version."""
        if requirer == ROOT:
            return False
        record = self.records.get(requirer)
        return record is None or record.dependencies.get(name) != rng

    def _step(self, name: str, rng: str, requirer: str) -> None:
        if self._is_stale(name, rng, requirer):
            return
        reqs = self.requirements.setdefault(name, {})
        reqs[requirer] = rng
        metadata = self._metadata_for(name)

        current = self.nodes.get(name)
        if current is not None and self._admits(metadata, current.version, rng):
            # dedup: existing selection already satisfies this requirer
            if is_debug_enabled(logger):
                logger.debug(
                    "Requirement satisfied by existing node",
                    extra=extra_context(
                        event="dedup", component="resolver", package=name,
                        version=current.version, requirer=requirer,
                    ),
                )
            return

        if current is not None and self.reselections.get(name, 0) >= MAX_RESELECTIONS:
            logger.debug("Keeping %s@%s: re-selection limit reached", name, current.version)
            return
        version = self._select(name, metadata, reqs)
        if current is not None and current.version == version:
            return
        if current is not None:
            self.reselections[name] = self.reselections.get(name, 0) + 1
            logger.debug("Re-selecting %s: %s -> %s", name, current.version, version)
        self._set_node(name, metadata.versions[version])

    def _set_node(self, name: str, record: VersionRecord) -> None:
        bad = sorted(dep for dep in record.dependencies if not is_valid_package_name(dep))
        if bad:
            cause = RegistryError(
                RegistryErrorKind.INVALID_RESPONSE,
                f"{name}@{record.version} depends on invalid package name(s): {', '.join(bad)}",
                name=name,
            )
            raise ResolutionError(ResolutionErrorKind.REGISTRY, str(cause), name=name, cause=cause)
        previous = self.records.get(name)
        if previous is not None:
            for dep in previous.dependencies:
                self.requirements.get(dep, {}).pop(name, None)
        self.records[name] = record
        self.nodes[name] = ResolvedNode(
            name=name,
            version=record.version,
            tarball_url=record.tarball_url,
            registry_digest=record.registry_digest,
            dependencies=tuple(record.dependencies),
        )
        for dep in sorted(record.dependencies):
            self._enqueue(dep, record.dependencies[dep], name)

    # metadata and version selection

    def _metadata_for(self, name: str) -> PackageMetadata:
        if name in self.metadata:
            return self.metadata[name]
        try:
            future = self.pending.pop(name, None)
            metadata = future.result() if future is not None else self.client.fetch_metadata(name)
        except RegistryError as exc:
            raise ResolutionError(
                ResolutionErrorKind.REGISTRY,
                f"could not fetch metadata for {name}: {exc}",
                name=name,
                cause=exc,
            ) from exc
        self.metadata[name] = metadata
        return metadata

    def _effective(self, name: str, metadata: PackageMetadata, rng: str) -> str:
        """Map dist-tags onto the version they point at; validate the range."""
        if semver.looks_like_tag(rng) and rng in metadata.dist_tags:
            return metadata.dist_tags[rng]
        try:
            semver.parse_range(rng)
        except semver.InvalidRange as exc:
            raise ResolutionError(
                ResolutionErrorKind.INVALID_RANGE,
                f"{name}: {exc}",
                name=name,
                ranges=[(req, r) for req, r in sorted(self.requirements.get(name, {}).items())],
            ) from exc
        return rng

    def _admits(self, metadata: PackageMetadata, version: str, rng: str) -> bool:
        return semver.satisfies(version, self._effective(metadata.name, metadata, rng))

    def _select(self, name: str, metadata: PackageMetadata, reqs: Dict[str, str]) -> str:
        ranges = [self._effective(name, metadata, r) for _, r in sorted(reqs.items())]
        candidates = list(metadata.versions)
        version = semver.max_satisfying(candidates, ranges)
        if version is not None:
            return version

        # fallback: the highest version honoring the most requirers
        best, best_count = None, 0
        for candidate in semver.valid_versions(candidates):
            count = sum(1 for r in ranges if semver.satisfies(candidate, r))
            if count > best_count:
                best, best_count = candidate, count
        pairs = tuple(sorted(reqs.items()))
        if best is None:
            raise ResolutionError(
                ResolutionErrorKind.UNSATISFIABLE,
                f"no published version of {name} satisfies any of: "
                + ", ".join(f"{req} wants {r}" for req, r in pairs),
                name=name,
                ranges=pairs,
            )
        logger.debug("No version of %s satisfies all of %s; falling back to %s", name, pairs, best)
        return best

    # finishing

    def _prune(self) -> None:
        """Drop nodes that became unreachable after re-selection."""
        graph = DependencyGraph(nodes=self.nodes)
        keep = set(graph.reachable(self.root_ranges))
        for name in [n for n in self.nodes if n not in keep]:
            logger.debug("Pruning unreachable %s@%s", name, self.nodes[name].version)
            del self.nodes[name]
            del self.records[name]

    def _final_conflicts(self) -> List[Conflict]:
        """Recheck every requirement against the final selections."""
        wanted: Dict[str, Dict[str, str]] = {}
        for name, rng in self.root_ranges.items():
            wanted.setdefault(name, {})[ROOT] = rng
        for requirer, record in self.records.items():
            for dep, rng in record.dependencies.items():
                wanted.setdefault(dep, {})[requirer] = rng

        conflicts = []
        for name in sorted(self.nodes):
            node = self.nodes[name]
            metadata = self.metadata[name]
            pairs = tuple(sorted(wanted.get(name, {}).items()))
            unsatisfied = tuple(req for req, rng in pairs if not self._admits(metadata, node.version, rng))
            if unsatisfied:
                conflicts.append(Conflict(name=name, ranges=pairs, chosen=node.version, unsatisfied=unsatisfied))
        return conflicts
