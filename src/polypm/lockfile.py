"""Lockfile manager: persist a resolved graph and rebuild it without the registry.

Document shape (keys sorted, two-space indent, trailing newline):

    {
      "<name>": {
        "dependencies": ["<name>", ...],
        "integrity": "sha256-<hex>",
        "version": "<semver>"
      }
    }
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from .common.names import is_valid_package_name
from .errors import LockfileError
from .versioning.models import DependencyGraph, PackageSpec, ResolvedNode

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_SHA256_RE = re.compile(r"sha256-[0-9a-f]{64}")


@dataclass(frozen=True)
class LockEntry:
    """Persisted form of a ResolvedNode."""

    version: str
    integrity: str
    dependencies: Tuple[str, ...] = ()

    def to_json(self) -> Dict[str, object]:
        return {
            "version": self.version,
            "integrity": self.integrity,
            "dependencies": sorted(set(self.dependencies)),
        }


@dataclass
class Lockfile:
    """Mapping from package name to LockEntry."""

    entries: Dict[str, LockEntry] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, name: object) -> bool:
        return name in self.entries

    def __getitem__(self, name: str) -> LockEntry:
        return self.entries[name]

    def names(self) -> List[str]:
        return sorted(self.entries)


def from_graph(graph: DependencyGraph) -> Lockfile:
    """Convert a graph whose nodes all carry a sha256 integrity.

    Raises:
        LockfileError: if a node has no integrity yet (not installed).
    """
    entries = {}
    for node in graph.sorted_nodes():
        if not node.integrity:
            raise LockfileError(f"{node.name}@{node.version} has no integrity digest; install it first")
        entries[node.name] = LockEntry(
            version=node.version,
            integrity=node.integrity,
            dependencies=tuple(sorted(node.dependencies)),
        )
    return Lockfile(entries)


def dumps(lockfile: Lockfile) -> str:
    """Byte-reproducible serialization."""
    doc = {name: lockfile.entries[name].to_json() for name in sorted(lockfile.entries)}
    return json.dumps(doc, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


def loads(text: str, *, path: Optional[str] = None) -> Lockfile:
    """Parse and validate a lock document.

    Raises:
        LockfileError: malformed JSON or entries.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise LockfileError(f"malformed lockfile: {exc}", path=path) from exc
    if not isinstance(data, dict):
        raise LockfileError("lockfile must be a JSON object keyed by package name", path=path)

    entries = {}
    for name, raw in data.items():
        if not is_valid_package_name(name):
            raise LockfileError(f"invalid package name {name!r}", path=path)
        if not isinstance(raw, dict):
            raise LockfileError(f"invalid entry for {name!r}", path=path)
        version = raw.get("version")
        integrity = raw.get("integrity")
        deps = raw.get("dependencies", [])
        if not isinstance(version, str) or not version:
            raise LockfileError(f"{name}: missing version", path=path)
        if not isinstance(integrity, str) or not _SHA256_RE.fullmatch(integrity):
            raise LockfileError(f"{name}: integrity must be a sha256-<hex> digest", path=path)
        if not isinstance(deps, list) or not all(isinstance(d, str) for d in deps):
            raise LockfileError(f"{name}: dependencies must be a list of names", path=path)
        bad = sorted(d for d in deps if not is_valid_package_name(d))
        if bad:
            raise LockfileError(f"{name}: invalid dependency name(s): {bad}", path=path)
        entries[name] = LockEntry(version=version, integrity=integrity, dependencies=tuple(sorted(set(deps))))
    return Lockfile(entries)


def read(path: PathLike) -> Optional[Lockfile]:
    """Load the lockfile at path; None when it does not exist."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise LockfileError(f"cannot read lockfile: {exc}", path=str(p)) from exc
    return loads(text, path=str(p))


def write_lockfile(lockfile: Lockfile, path: PathLike) -> Lockfile:
    """Atomically replace the document at path."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{p.name}.", dir=str(p.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fh:
            fh.write(dumps(lockfile))
        os.replace(tmp, p)
    except OSError as exc:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise LockfileError(f"cannot write lockfile: {exc}", path=str(p)) from exc
    logger.debug("Wrote %s (%d entries)", p, len(lockfile))
    return lockfile


def write(graph: DependencyGraph, path: PathLike) -> Lockfile:
    """Serialize graph and write it to path; returns the Lockfile written."""
    return write_lockfile(from_graph(graph), path)


def to_graph(lockfile: Lockfile, tarball_url: Callable[[str, str], str]) -> DependencyGraph:
    """Rebuild a DependencyGraph from lock entries with no registry query.

    tarball_url(name, version) supplies the download location, normally
    RegistryClient.tarball_url. Roots are entries no other entry depends on;
    a lock made only of cycles makes every entry a root.

    Raises:
        LockfileError: an entry or dependency is not a valid package name.
    """
    nodes = {}
    for name in sorted(lockfile.entries):
        entry = lockfile.entries[name]
        if not is_valid_package_name(name) or not all(is_valid_package_name(d) for d in entry.dependencies):
            raise LockfileError(f"invalid package name in lock entry {name!r}")
        nodes[name] = ResolvedNode(
            name=name,
            version=entry.version,
            tarball_url=tarball_url(name, entry.version),
            integrity=entry.integrity,
            dependencies=entry.dependencies,
        )
    depended = {dep for node in nodes.values() for dep in node.dependencies}
    root_names = [n for n in nodes if n not in depended] or list(nodes)
    roots = [PackageSpec(name, nodes[name].version) for name in root_names]
    return DependencyGraph(roots=roots, nodes=nodes)
