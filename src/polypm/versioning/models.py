"""Data models for versioning and package resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from ..common.names import is_valid_package_name


@dataclass(frozen=True)
class PackageSpec:
    """A requested dependency: registry name plus version range expression."""

    name: str
    range: str = "*"

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("package name must be non-empty")
        object.__setattr__(self, "name", self.name.strip())
        if not is_valid_package_name(self.name):
            raise ValueError(f"invalid package name: {self.name!r}")
        raw = (self.range or "").strip()
        object.__setattr__(self, "range", raw or "*")

    def __str__(self) -> str:
        return f"{self.name}@{self.range}"


@dataclass
class ResolvedNode:
    """One package in the resolved graph; exactly one per name."""

    name: str
    version: str
    tarball_url: str
    integrity: Optional[str] = None  # "sha256-<hex>", known for locked installs
    registry_digest: Optional[str] = None  # digest reported by registry metadata
    dependencies: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        self.dependencies = tuple(sorted(set(self.dependencies)))

    @property
    def expected_digest(self) -> Optional[str]:
        """Digest the downloaded tarball must match."""
        return self.integrity or self.registry_digest


@dataclass(frozen=True)
class Conflict:
    """A name whose requirers could not all be honored by one version."""

    name: str
    ranges: Tuple[Tuple[str, str], ...]  # (requirer, range)
    chosen: Optional[str]
    unsatisfied: Tuple[str, ...] = ()  # requirers whose range `chosen` misses

    def describe(self) -> str:
        wanted = ", ".join(f"{req} wants {rng}" for req, rng in self.ranges)
        if self.chosen is None:
            return f"{self.name}: no version satisfies ({wanted})"
        missed = ", ".join(self.unsatisfied) or "none"
        return f"{self.name}: picked {self.chosen}; not honored for {missed} ({wanted})"


@dataclass
class DependencyGraph:
    """Resolved nodes keyed by name plus the direct specs they came from."""

    roots: List[PackageSpec] = field(default_factory=list)
    nodes: Dict[str, ResolvedNode] = field(default_factory=dict)
    conflicts: List[Conflict] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self):
        return iter(self.sorted_nodes())

    def __contains__(self, name: object) -> bool:
        return name in self.nodes

    def get(self, name: str) -> Optional[ResolvedNode]:
        return self.nodes.get(name)

    def sorted_nodes(self) -> List[ResolvedNode]:
        return [self.nodes[name] for name in sorted(self.nodes)]

    def reachable(self, start: Optional[Iterable[str]] = None) -> List[str]:
        """Names reachable from `start` (default: root spec names), sorted."""
        pending = list(start if start is not None else (s.name for s in self.roots))
        seen = set()
        while pending:
            name = pending.pop()
            if name in seen or name not in self.nodes:
                continue
            seen.add(name)
            pending.extend(self.nodes[name].dependencies)
        return sorted(seen)

    def identity(self) -> List[Tuple[str, str, Optional[str], Tuple[str, ...]]]:
        """Sorted (name, version, integrity, dependencies) tuples."""
        return [(n.name, n.version, n.integrity, n.dependencies) for n in self.sorted_nodes()]
