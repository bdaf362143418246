"""Command surface used by the CLI: install, add, remove, update, outdated."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from . import lockfile as lockfile_mod
from .constants import Constants
from .errors import InstallError, PackageNotDeclared, RegistryError
from .installer import InstallReport, Installer, prune, status
from .lockfile import Lockfile
from .manifest import Manifest, add_to_gitignore
from .registry import RegistryClient
from .versioning import DependencyGraph, PackageSpec, Resolver
from .versioning import semver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutdatedPackage:
    """A locked package with a newer published version."""

    name: str
    current: str
    latest: str


class PackageManager:
    """Resolve/install/lock workflow for one project directory."""

    def __init__(
        self,
        project_dir: Union[str, Path] = ".",
        client: Optional[RegistryClient] = None,
        *,
        strict: Optional[bool] = None,
        max_workers: Optional[int] = None,
        prefetch_workers: Optional[int] = None,
    ):
        self.project_dir = Path(project_dir)
        self.client = client or RegistryClient()
        self.strict = strict
        self.max_workers = max_workers
        self.prefetch_workers = prefetch_workers
        self.manifest = Manifest(self.project_dir / Constants.MANIFEST_FILE)

    @property
    def lock_path(self) -> Path:
        return self.project_dir / Constants.LOCKFILE_FILE

    @property
    def target_dir(self) -> Path:
        return self.project_dir / Constants.INSTALL_DIR

    def _resolver(self) -> Resolver:
        return Resolver(self.client, strict=self.strict, prefetch_workers=self.prefetch_workers)

    def _installer(self) -> Installer:
        return Installer(self.client, max_workers=self.max_workers)

    def read_lock(self) -> Optional[Lockfile]:
        return lockfile_mod.read(self.lock_path)

    # fresh resolution

    def resolve(self, specs: Sequence[PackageSpec]) -> DependencyGraph:
        return self._resolver().resolve(specs)

    def resolve_and_install(self, specs: Sequence[PackageSpec]) -> Lockfile:
        """Resolve specs, install the graph and write the lockfile.

        Raises:
            ResolutionError: the specs cannot be resolved.
            InstallError: any package failed; no lockfile is written.
        """
        _, lock = self._install_graph(self.resolve(specs))
        return lock

    # locked installs

    def install_from_lock(self, lock: Lockfile, target_dir: Optional[Union[str, Path]] = None) -> InstallReport:
        """Install exactly what the lockfile pins; the registry is only asked for tarballs."""
        graph = lockfile_mod.to_graph(lock, self.client.tarball_url)
        return self._installer().install_all(graph, target_dir or self.target_dir)

    def install(self) -> InstallReport:
        """Plain install: the lockfile when present, otherwise the manifest."""
        lock = self.read_lock()
        specs = self.manifest.specs() if lock is None else []
        add_to_gitignore(self.project_dir, f"{Constants.INSTALL_DIR}/")
        if lock is not None:
            logger.info("Installing %d packages from %s", len(lock), self.lock_path.name)
            report = self.install_from_lock(lock)
            if not report.ok:
                raise InstallError(report)
            return report

        if not specs:
            logger.info("No dependencies declared in %s", self.manifest.path.name)
            return InstallReport()
        report, _ = self._install_graph(self.resolve(specs))
        return report

    # manifest changes

    def add_package(self, name: str, rng: Optional[str] = None) -> Tuple[List[PackageSpec], Lockfile]:
        """Declare name (range defaults to ^<latest resolved>) and relock."""
        specs = {s.name: s for s in self.manifest.specs()}
        requested = PackageSpec(name, rng or "*")
        specs[requested.name] = requested
        graph = self.resolve(sorted(specs.values(), key=lambda s: s.name))
        if rng is None or semver.is_any(rng):
            chosen = graph.nodes[requested.name].version
            specs[requested.name] = PackageSpec(requested.name, f"^{chosen}")

        _, lock = self._install_graph(graph)
        self.manifest.set_dependency(requested.name, specs[requested.name].range)
        add_to_gitignore(self.project_dir, f"{Constants.INSTALL_DIR}/")
        logger.info("Added %s", specs[requested.name])
        return sorted(specs.values(), key=lambda s: s.name), lock

    def remove_package(self, name: str) -> Tuple[List[PackageSpec], Lockfile]:
        """Drop a direct dependency, relock and delete packages no longer needed."""
        specs = {s.name: s for s in self.manifest.specs()}
        if name not in specs:
            raise PackageNotDeclared(f"Package '{name}' is not a declared dependency")
        del specs[name]

        remaining = sorted(specs.values(), key=lambda s: s.name)
        graph = self.resolve(remaining) if remaining else DependencyGraph()
        _, lock = self._install_graph(graph)
        self.manifest.remove_dependency(name)
        logger.info("Removed %s", name)
        return remaining, lock

    def update(self, names: Optional[Iterable[str]] = None) -> Lockfile:
        """Re-resolve from the manifest, ignoring pinned versions.

        `names` limits which packages may move; others stay at their locked
        version when it still satisfies the manifest.
        """
        specs = self.manifest.specs()
        previous = self.read_lock()
        wanted = set(names or ())
        unknown = wanted - {s.name for s in specs} - set(previous.entries if previous else ())
        if unknown:
            raise PackageNotDeclared(f"Unknown package(s): {', '.join(sorted(unknown))}")

        roots = list(specs)
        if wanted and previous is not None:
            roots = [self._pinned_if_held(s, previous, wanted) for s in specs]
        _, lock = self._install_graph(self.resolve(roots))
        return lock

    def _pinned_if_held(self, spec: PackageSpec, previous: Lockfile, wanted: set) -> PackageSpec:
        entry = previous.entries.get(spec.name)
        if spec.name in wanted or entry is None or not semver.satisfies(entry.version, spec.range):
            return spec
        return PackageSpec(spec.name, entry.version)

    def _install_graph(self, graph: DependencyGraph) -> Tuple[InstallReport, Lockfile]:
        """Install graph, then lock it and drop directories that left the graph."""
        report = self._installer().install_all(graph, self.target_dir)
        if not report.ok:
            raise InstallError(report)
        for name, integrity in report.integrities.items():
            graph.nodes[name].integrity = integrity
        lock = lockfile_mod.write(graph, self.lock_path)
        logger.info("Wrote %s with %d packages", self.lock_path.name, len(lock))
        prune(self.target_dir, lock.names())
        return report, lock

    # reporting

    def check_outdated(self, lock: Optional[Lockfile] = None) -> List[OutdatedPackage]:
        """Locked packages whose registry `latest` is newer than the pinned version."""
        lock = lock if lock is not None else self.read_lock()
        if lock is None:
            return []
        outdated = []
        for name in lock.names():
            current = lock.entries[name].version
            try:
                metadata = self.client.fetch_metadata(name)
            except RegistryError as exc:
                logger.warning("Could not check %s: %s", name, exc)
                continue
            latest = metadata.dist_tags.get("latest") or semver.latest_stable(metadata.versions)
            if not latest or semver.parse_version(latest) is None or semver.parse_version(current) is None:
                continue
            if semver.sort_key(latest) > semver.sort_key(current):
                outdated.append(OutdatedPackage(name=name, current=current, latest=latest))
        return outdated

    def verify(self, lock: Optional[Lockfile] = None) -> Dict[str, str]:
        """Install status of every locked package, without network access."""
        lock = lock if lock is not None else self.read_lock()
        if lock is None:
            return {}
        return status(lock, self.target_dir)
