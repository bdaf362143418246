"""Registry package name rules."""

import re

# optional "@scope/" then one segment; no leading "." or "_", no path separators
_NAME_RE = re.compile(r"(?:@[A-Za-z0-9~-][A-Za-z0-9._~-]*/)?[A-Za-z0-9~-][A-Za-z0-9._~-]*")
MAX_NAME_LENGTH = 214


def is_valid_package_name(name: object) -> bool:
    """True for names that map onto one directory level, two when scoped."""
    return isinstance(name, str) and len(name) <= MAX_NAME_LENGTH and bool(_NAME_RE.fullmatch(name))
