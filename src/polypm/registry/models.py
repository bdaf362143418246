"""Data models for registry metadata."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from ..common.names import is_valid_package_name


@dataclass(frozen=True)
class VersionRecord:
    """One published version of a package as reported by the registry."""

    version: str
    dependencies: Mapping[str, str]
    tarball_url: str
    shasum: Optional[str] = None
    integrity: Optional[str] = None  # SRI string from dist.integrity, e.g. "sha512-..."

    @property
    def registry_digest(self) -> Optional[str]:
        """Strongest digest the registry published for the tarball."""
        if self.integrity:
            return self.integrity
        if self.shasum:
            return f"sha1-{self.shasum.lower()}"
        return None


@dataclass
class PackageMetadata:
    """Registry response for a name: every published version plus dist-tags."""

    name: str
    versions: Dict[str, VersionRecord] = field(default_factory=dict)
    dist_tags: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_packument(cls, name: str, data: Mapping) -> "PackageMetadata":
        """Build metadata from a registry packument document.

        Raises:
            ValueError: if the document is not shaped like a packument.
        """
        if not isinstance(data, Mapping):
            raise ValueError("packument is not a JSON object")
        raw_versions = data.get("versions")
        if not isinstance(raw_versions, Mapping):
            raise ValueError("packument has no 'versions' object")

        versions: Dict[str, VersionRecord] = {}
        for version, info in raw_versions.items():
            if not isinstance(info, Mapping):
                continue
            dist = info.get("dist") or {}
            tarball = dist.get("tarball") if isinstance(dist, Mapping) else None
            if not tarball:
                continue
            deps = info.get("dependencies") or {}
            if not isinstance(deps, Mapping):
                deps = {}
            bad = sorted(str(k) for k in deps if not is_valid_package_name(k))
            if bad:
                raise ValueError(f"version {version} depends on invalid package name(s): {bad}")
            versions[str(version)] = VersionRecord(
                version=str(version),
                dependencies={str(k): str(v) for k, v in deps.items()},
                tarball_url=str(tarball),
                shasum=dist.get("shasum"),
                integrity=dist.get("integrity"),
            )

        tags = data.get("dist-tags") or {}
        dist_tags = {str(k): str(v) for k, v in tags.items()} if isinstance(tags, Mapping) else {}
        return cls(name=str(data.get("name") or name), versions=versions, dist_tags=dist_tags)
