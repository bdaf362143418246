"""Content digests for downloaded tarballs.

Digests are written as "<algorithm>-<value>". Lockfiles always use
"sha256-<hex>". Registry metadata supplies either an SRI string
("sha512-<base64>") or a bare sha1 hex shasum, both accepted here.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import re
from typing import Optional, Tuple

from .errors import IntegrityError

SUPPORTED_ALGORITHMS = ("sha512", "sha384", "sha256", "sha1")
_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


def compute_integrity(data: bytes, algorithm: str = "sha256") -> str:
    """Return "<algorithm>-<hex>" for data."""
    return f"{algorithm}-{hashlib.new(algorithm, data).hexdigest()}"


def parse_digest(expected: str) -> Tuple[str, bytes]:
    """Split a digest string into (algorithm, raw digest bytes).

    Raises:
        IntegrityError: when the string is not a usable digest.
    """
    if not expected or not isinstance(expected, str):
        raise IntegrityError("no expected digest available")
    text = expected.strip().split()[0]  # SRI may list several; the first is authoritative
    if "-" not in text:
        if len(text) == 40 and _HEX_RE.match(text):
            return "sha1", bytes.fromhex(text)
        raise IntegrityError(f"unrecognized digest format: {expected!r}")

    algorithm, _, value = text.partition("-")
    algorithm = algorithm.lower()
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise IntegrityError(f"unsupported digest algorithm: {algorithm}")
    size = hashlib.new(algorithm).digest_size
    if len(value) == size * 2 and _HEX_RE.match(value):
        return algorithm, bytes.fromhex(value)
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise IntegrityError(f"malformed {algorithm} digest: {expected!r}") from exc
    if len(raw) != size:
        raise IntegrityError(f"malformed {algorithm} digest: {expected!r}")
    return algorithm, raw


def verify(data: bytes, expected: str, *, name: Optional[str] = None) -> None:
    """Raise IntegrityError unless data hashes to `expected`."""
    try:
        algorithm, want = parse_digest(expected)
    except IntegrityError as exc:
        exc.name = name
        raise
    got = hashlib.new(algorithm, data).digest()
    if not hmac.compare_digest(got, want):
        raise IntegrityError(
            f"{name or 'tarball'}: {algorithm} digest mismatch",
            name=name,
            expected=expected,
            actual=f"{algorithm}-{got.hex()}",
        )
