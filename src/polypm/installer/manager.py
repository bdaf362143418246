"""Download & extraction manager: bounded parallel installs of a resolved graph."""

from __future__ import annotations

import json
import logging
import shutil
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from ..common.logging_utils import extra_context, is_debug_enabled, Timer
from ..common.names import is_valid_package_name
from ..constants import Constants, ExitCodes
from ..errors import ExtractionError, IntegrityError, PackageManagerError
from ..integrity import compute_integrity, verify
from ..versioning.models import DependencyGraph, ResolvedNode
from .extract import install_atomically, package_dir

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class PackageFailure:
    """A package that could not be installed and why."""

    name: str
    error: PackageManagerError

    @property
    def kind(self) -> str:
        return self.error.kind


@dataclass
class InstallReport:
    """Outcome of one `install_all` call."""

    installed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failures: List[PackageFailure] = field(default_factory=list)
    integrities: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def failed_names(self) -> List[str]:
        return [f.name for f in self.failures]

    @property
    def has_integrity_failures(self) -> bool:
        return any(isinstance(f.error, IntegrityError) for f in self.failures)

    def exit_code(self) -> ExitCodes:
        """Integrity failures dominate; otherwise the first failure's code."""
        if not self.failures:
            return ExitCodes.SUCCESS
        if self.has_integrity_failures:
            return ExitCodes.INTEGRITY_ERROR
        return self.failures[0].error.exit_code

    def sort(self) -> None:
        self.installed.sort()
        self.skipped.sort()
        self.failures.sort(key=lambda f: f.name)


def read_stamp(pkg_dir: Path) -> Optional[Dict[str, str]]:
    """Return the install stamp of an extracted package, if readable."""
    path = pkg_dir / Constants.INTEGRITY_STAMP_FILE
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _stamp_text(node: ResolvedNode, integrity: str) -> str:
    return json.dumps(
        {"name": node.name, "version": node.version, "integrity": integrity},
        indent=2,
        sort_keys=True,
    ) + "\n"


class Installer:
    """Fetch, verify and extract every node of a graph with a fixed worker pool."""

    def __init__(self, client, max_workers: Optional[int] = None):
        self.client = client
        workers = Constants.INSTALL_MAX_WORKERS if max_workers is None else max_workers
        self.max_workers = max(1, int(workers))

    def install_all(self, graph: DependencyGraph, target_dir: PathLike) -> InstallReport:
        """Install every node of graph under target_dir.

        Failures are collected per package; packages already extracted stay
        in place. Never raises for per-package errors.
        """
        target = Path(target_dir)
        target.mkdir(parents=True, exist_ok=True)
        _clear_staging_leftovers(target)

        report = InstallReport()
        nodes = graph.sorted_nodes()
        if not nodes:
            return report

        with Timer() as t:
            pool = ThreadPoolExecutor(max_workers=min(self.max_workers, len(nodes)))
            try:
                futures = {pool.submit(self._install_one, node, target): node for node in nodes}
                for future in as_completed(futures):
                    node = futures[future]
                    try:
                        outcome, integrity = future.result()
                    except PackageManagerError as exc:
                        logger.error("%s@%s failed (%s): %s", node.name, node.version, exc.kind, exc)
                        report.failures.append(PackageFailure(node.name, exc))
                        continue
                    report.integrities[node.name] = integrity
                    (report.installed if outcome == "installed" else report.skipped).append(node.name)
            except BaseException:
                # interrupted: let in-flight workers finish their atomic swap, drop the rest
                pool.shutdown(wait=True, cancel_futures=True)
                raise
            pool.shutdown(wait=True)

        report.sort()
        logger.info(
            "Installed %d, up to date %d, failed %d in %.2fs",
            len(report.installed),
            len(report.skipped),
            len(report.failures),
            t.duration_ms() / 1000,
        )
        return report

    def _install_one(self, node: ResolvedNode, target: Path) -> Tuple[str, str]:
        pkg_dir = package_dir(target, node.name)
        stamp = read_stamp(pkg_dir)
        if _stamp_matches(stamp, node):
            if is_debug_enabled(logger):
                logger.debug(
                    "Package already installed",
                    extra=extra_context(
                        event="skip", component="installer", package=node.name, version=node.version
                    ),
                )
            return "skipped", stamp["integrity"]

        expected = node.expected_digest
        if not expected:
            raise IntegrityError(f"{node.name}: no expected digest to verify against", name=node.name)

        data = self.client.fetch_tarball(node.tarball_url, name=node.name)
        verify(data, expected, name=node.name)
        integrity = compute_integrity(data)

        try:
            files = install_atomically(
                data, target, node.name, Constants.INTEGRITY_STAMP_FILE, _stamp_text(node, integrity)
            )
        except OSError as exc:
            raise ExtractionError(f"{node.name}: {exc}", name=node.name) from exc
        logger.debug("Extracted %s@%s (%d files)", node.name, node.version, files)
        return "installed", integrity


def _stamp_matches(stamp: Optional[Dict[str, str]], node: ResolvedNode) -> bool:
    if not stamp or stamp.get("version") != node.version:
        return False
    recorded = stamp.get("integrity")
    if not isinstance(recorded, str) or not recorded.startswith("sha256-"):
        return False
    return node.integrity is None or recorded == node.integrity


def _clear_staging_leftovers(target: Path) -> None:
    """Remove temp directories left behind by an interrupted run."""
    for entry in target.iterdir():
        if entry.is_dir() and entry.name.startswith((".tmp-", ".old-")):
            shutil.rmtree(entry, ignore_errors=True)


def installed_names(target_dir: PathLike) -> List[str]:
    """Names of package directories present under target_dir."""
    target = Path(target_dir)
    if not target.is_dir():
        return []
    names = []
    for entry in sorted(target.iterdir()):
        if not entry.is_dir() or entry.name.startswith("."):
            continue
        if entry.name.startswith("@"):
            names.extend(f"{entry.name}/{sub.name}" for sub in sorted(entry.iterdir()) if sub.is_dir())
        else:
            names.append(entry.name)
    return [name for name in names if is_valid_package_name(name)]


def prune(target_dir: PathLike, keep: Iterable[str]) -> List[str]:
    """Delete package directories whose names are not in keep."""
    keep_set = set(keep)
    removed = []
    for name in installed_names(target_dir):
        if name in keep_set:
            continue
        shutil.rmtree(package_dir(target_dir, name))
        removed.append(name)
        logger.info("Removed %s", name)
        scope = package_dir(target_dir, name).parent
        if scope != Path(target_dir) and not any(scope.iterdir()):
            scope.rmdir()
    return removed


def status(lockfile, target_dir: PathLike) -> Dict[str, str]:
    """Per lock entry: "installed", "missing" or "mismatch"."""
    result = {}
    for name, entry in sorted(lockfile.entries.items()):
        stamp = read_stamp(package_dir(target_dir, name))
        if stamp is None:
            result[name] = "missing"
        elif stamp.get("version") == entry.version and stamp.get("integrity") == entry.integrity:
            result[name] = "installed"
        else:
            result[name] = "mismatch"
    return result
