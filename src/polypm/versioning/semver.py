"""npm-style semantic version ranges on top of semantic_version."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import semantic_version

ANY_RANGES = frozenset({"", "*", "x", "X", "latest"})

_TAG_RE = re.compile(r"^[A-Za-z][A-Za-z0-9._-]*$")

Spec = Union[semantic_version.NpmSpec, semantic_version.SimpleSpec]


class InvalidRange(ValueError):
    """A range expression that neither npm nor simple grammar accepts."""


def is_any(raw: str) -> bool:
    """True for ranges that admit every stable version."""
    return (raw or "").strip() in ANY_RANGES


def looks_like_tag(raw: str) -> bool:
    """True for dist-tag style names such as "latest" or "next"."""
    return bool(_TAG_RE.match((raw or "").strip())) and raw.strip().lower() not in {"x"}


def _normalize_spec(spec_str: str) -> str:
    """Normalize npm range syntax (hyphen, x-ranges) into SimpleSpec-compatible form."""
    s = spec_str.strip()

    # Hyphen ranges: "1.2.3 - 1.4.5" => ">=1.2.3,<=1.4.5"
    m = re.match(r'^\s*([0-9A-Za-z\.\-\+]+)\s+-\s+([0-9A-Za-z\.\-\+]+)\s*$', s)
    if m:
        left, right = m.group(1), m.group(2)
        return f">={left},<={right}"

    # x-ranges: 1.2.x or 1.x or 1.* -> comparator pairs
    s2 = s.replace('*', 'x').lower()
    m = re.match(r'^\s*v?(\d+)\.(\d+)\.x\s*$', s2)
    if m:
        major, minor = int(m.group(1)), int(m.group(2))
        return f">={major}.{minor}.0,<{major}.{minor + 1}.0"

    m = re.match(r'^\s*v?(\d+)(?:\.x)?(?:\.x)?\s*$', s2)
    if m:
        major = int(m.group(1))
        return f">={major}.0.0,<{major + 1}.0.0"

    # Space separated comparators: ">=1.0.0 <2.0.0" => ">=1.0.0,<2.0.0"
    if re.match(r'^[<>=~^!0-9][^|]*\s+[<>=~^!0-9]', s):
        return ",".join(s.split())

    return spec_str


@lru_cache(maxsize=1024)
def parse_range(raw: str) -> Spec:
    """Parse a range expression, preferring npm grammar.

    Raises:
        InvalidRange: if the expression cannot be parsed.
    """
    text = (raw or "").strip()
    if is_any(text):
        text = "*"
    try:
        return semantic_version.NpmSpec(text)
    except ValueError:
        try:
            return semantic_version.SimpleSpec(_normalize_spec(text))
        except ValueError as exc:
            raise InvalidRange(f"invalid version range '{raw}': {exc}") from exc


@lru_cache(maxsize=4096)
def parse_version(raw: str) -> Optional[semantic_version.Version]:
    """Parse a concrete version, returning None when it is not valid semver."""
    try:
        return semantic_version.Version(raw.strip().lstrip("v=").strip())
    except (ValueError, AttributeError):
        return None


def satisfies(version: str, raw_range: str) -> bool:
    """True when version is admitted by raw_range."""
    parsed = parse_version(version)
    if parsed is None:
        return False
    return parse_range(raw_range).match(parsed)


def sort_key(version: str) -> Tuple[semantic_version.Version, str]:
    """Total order: semver precedence, then the raw string for build metadata ties."""
    parsed = parse_version(version)
    if parsed is None:
        raise ValueError(f"not a semantic version: {version}")
    return parsed, version


def valid_versions(candidates: Iterable[str]) -> List[str]:
    """Candidates that parse as semver, highest first."""
    return sorted((v for v in candidates if parse_version(v) is not None), key=sort_key, reverse=True)


def max_satisfying(candidates: Iterable[str], ranges: Sequence[str]) -> Optional[str]:
    """Highest candidate admitted by every range in `ranges`."""
    specs = [parse_range(r) for r in ranges]
    for version in valid_versions(candidates):
        parsed = parse_version(version)
        if all(spec.match(parsed) for spec in specs):
            return version
    return None


def latest_stable(candidates: Iterable[str]) -> Optional[str]:
    """Highest candidate without a pre-release tag."""
    for version in valid_versions(candidates):
        if not parse_version(version).prerelease:
            return version
    return None
