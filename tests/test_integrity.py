"""Tests for digest computation and verification."""

import base64
import hashlib

import pytest

from polypm.errors import IntegrityError
from polypm.integrity import compute_integrity, parse_digest, verify

DATA = b"tarball bytes"


class TestIntegrity:
    """sha256 lock digests and registry digest formats."""

    def test_compute_is_sha256_hex(self):
        assert compute_integrity(DATA) == "sha256-" + hashlib.sha256(DATA).hexdigest()

    def test_verify_accepts_all_registry_forms(self):
        verify(DATA, compute_integrity(DATA))
        verify(DATA, "sha512-" + base64.b64encode(hashlib.sha512(DATA).digest()).decode())
        verify(DATA, "sha1-" + hashlib.sha1(DATA).hexdigest())
        verify(DATA, hashlib.sha1(DATA).hexdigest())

    def test_mismatch_reports_both_digests(self):
        expected = compute_integrity(b"other")
        with pytest.raises(IntegrityError) as excinfo:
            verify(DATA, expected, name="alpha")
        err = excinfo.value
        assert err.name == "alpha"
        assert err.expected == expected
        assert err.actual == compute_integrity(DATA)

    @pytest.mark.parametrize("bad", ["", "md5-abc", "sha256-zz", "sha512-!!!", "nodash"])
    def test_unusable_digest(self, bad):
        with pytest.raises(IntegrityError):
            parse_digest(bad)

    def test_unusable_digest_gets_package_name(self):
        with pytest.raises(IntegrityError) as excinfo:
            verify(DATA, "md5-abc", name="alpha")
        assert excinfo.value.name == "alpha"
