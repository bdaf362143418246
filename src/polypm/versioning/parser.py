"""Token parsing utilities for package specs."""

from typing import Mapping, Optional, List, Tuple

from .models import PackageSpec


def tokenize_rightmost_at(s: str) -> Tuple[str, Optional[str]]:
    """Return (name, range or None) using the rightmost-@ rule.

    A leading "@" belongs to a scoped name and is never a separator.
    """
    s = s.strip()
    idx = s.rfind('@')
    if idx <= 0:
        return s, None
    name = s[:idx].strip()
    spec_part = s[idx + 1:].strip()
    return name, (spec_part or None)


def parse_cli_token(token: str, explicit_range: Optional[str] = None) -> PackageSpec:
    """Parse an "add" argument such as "alpine", "alpine@^3" or "@scope/pkg@1.2.3".

    An explicit range argument wins over one embedded in the token.
    """
    name, spec = tokenize_rightmost_at(token)
    if explicit_range is not None and explicit_range.strip():
        spec = explicit_range.strip()
    return PackageSpec(name=name, range=spec or "*")


def parse_manifest_entries(entries: Mapping[str, object]) -> List[PackageSpec]:
    """Turn a `[dependencies]` table into specs, sorted by name.

    Non-string values are rejected so a malformed manifest fails loudly.
    """
    specs = []
    for name, raw in entries.items():
        if not isinstance(raw, str):
            raise ValueError(f"dependency '{name}' must map to a version range string")
        specs.append(PackageSpec(name=name, range=raw))
    return sorted(specs, key=lambda s: s.name)
