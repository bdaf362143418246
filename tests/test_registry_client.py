"""Tests for the registry client and HTTP retry helper."""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from polypm.common.http_client import backoff_delay, robust_get
from polypm.constants import Constants
from polypm.errors import RegistryError, RegistryErrorKind
from polypm.registry import RegistryClient
from polypm.registry.client import escape_name
from polypm.registry.models import PackageMetadata


PACKUMENT = {
    "name": "alpha",
    "dist-tags": {"latest": "1.1.0"},
    "versions": {
        "1.0.0": {
            "dependencies": {"beta": "^2.0.0"},
            "dist": {"tarball": "https://registry.test/alpha/-/alpha-1.0.0.tgz", "shasum": "ab" * 20},
        },
        "1.1.0": {
            "dist": {
                "tarball": "https://registry.test/alpha/-/alpha-1.1.0.tgz",
                "integrity": "sha512-" + "A" * 86 + "==",
            },
        },
        "0.0.1": {"dist": {}},
    },
}


def _response(status=200, text="", chunks=None):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.iter_content.return_value = iter(chunks or [])
    return resp


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("polypm.common.http_client.time.sleep") as sleep:
        yield sleep


class TestRobustGet:
    """Retry and status classification."""

    def test_success_first_try(self, session):
        session.get.return_value = _response(200)
        assert robust_get(session, "https://registry.test/x", context="x").status_code == 200
        assert session.get.call_count == 1

    def test_retries_then_network_error(self, session, no_sleep):
        session.get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(RegistryError) as excinfo:
            robust_get(session, "https://registry.test/x", context="x")
        assert excinfo.value.error_kind is RegistryErrorKind.NETWORK
        assert session.get.call_count == Constants.HTTP_RETRY_MAX
        assert no_sleep.call_count == Constants.HTTP_RETRY_MAX - 1

    def test_retryable_status_recovers(self, session):
        session.get.side_effect = [_response(503), _response(429), _response(200)]
        assert robust_get(session, "https://registry.test/x", context="x").status_code == 200

    def test_timeout_is_retried(self, session):
        session.get.side_effect = [requests.Timeout(), _response(200)]
        assert robust_get(session, "https://registry.test/x", context="x").status_code == 200

    def test_not_found_is_not_retried(self, session):
        session.get.return_value = _response(404)
        with pytest.raises(RegistryError) as excinfo:
            robust_get(session, "https://registry.test/x", context="x")
        assert excinfo.value.error_kind is RegistryErrorKind.NOT_FOUND
        assert excinfo.value.status_code == 404
        assert session.get.call_count == 1

    def test_client_error_is_invalid_response(self, session):
        session.get.return_value = _response(401)
        with pytest.raises(RegistryError) as excinfo:
            robust_get(session, "https://registry.test/x", context="x")
        assert excinfo.value.error_kind is RegistryErrorKind.INVALID_RESPONSE

    def test_backoff_grows(self):
        assert backoff_delay(0) < backoff_delay(1) < backoff_delay(2)


class TestFetchMetadata:
    """Packument parsing and caching."""

    def test_parses_versions_and_tags(self, session):
        session.get.return_value = _response(200, json.dumps(PACKUMENT))
        client = RegistryClient("https://registry.test", session=session)
        metadata = client.fetch_metadata("alpha")
        assert sorted(metadata.versions) == ["1.0.0", "1.1.0"]
        assert metadata.versions["1.0.0"].dependencies == {"beta": "^2.0.0"}
        assert metadata.versions["1.0.0"].registry_digest == "sha1-" + "ab" * 20
        assert metadata.versions["1.1.0"].registry_digest.startswith("sha512-")
        assert metadata.dist_tags == {"latest": "1.1.0"}
        assert session.get.call_args[0][0] == "https://registry.test/alpha"

    def test_cached_per_instance(self, session):
        session.get.return_value = _response(200, json.dumps(PACKUMENT))
        client = RegistryClient("https://registry.test/", session=session)
        assert client.fetch_metadata("alpha") is client.fetch_metadata("alpha")
        assert session.get.call_count == 1

    def test_invalid_json(self, session):
        session.get.return_value = _response(200, "<html>")
        client = RegistryClient("https://registry.test/", session=session)
        with pytest.raises(RegistryError) as excinfo:
            client.fetch_metadata("alpha")
        assert excinfo.value.error_kind is RegistryErrorKind.INVALID_RESPONSE

    def test_wrong_shape(self, session):
        session.get.return_value = _response(200, json.dumps({"name": "alpha"}))
        client = RegistryClient("https://registry.test/", session=session)
        with pytest.raises(RegistryError) as excinfo:
            client.fetch_metadata("alpha")
        assert excinfo.value.error_kind is RegistryErrorKind.INVALID_RESPONSE

    def test_not_found_carries_name(self, session):
        session.get.return_value = _response(404)
        client = RegistryClient("https://registry.test/", session=session)
        with pytest.raises(RegistryError) as excinfo:
            client.fetch_metadata("nope")
        assert excinfo.value.name == "nope"

    def test_empty_name_rejected(self, session):
        with pytest.raises(ValueError):
            RegistryClient("https://registry.test/", session=session).fetch_metadata(" ")

    def test_scoped_name_escaped(self, session):
        session.get.return_value = _response(200, json.dumps(PACKUMENT))
        RegistryClient("https://registry.test/", session=session).fetch_metadata("@scope/pkg")
        assert session.get.call_args[0][0] == "https://registry.test/@scope%2Fpkg"
        assert escape_name("plain") == "plain"

    def test_dependency_with_path_name_rejected(self, session):
        doc = {
            "name": "alpha",
            "versions": {
                "1.0.0": {
                    "dependencies": {"../src": "1.0.0"},
                    "dist": {"tarball": "https://registry.test/alpha/-/alpha-1.0.0.tgz"},
                },
            },
        }
        session.get.return_value = _response(200, json.dumps(doc))
        client = RegistryClient("https://registry.test/", session=session)
        with pytest.raises(RegistryError) as excinfo:
            client.fetch_metadata("alpha")
        assert excinfo.value.error_kind is RegistryErrorKind.INVALID_RESPONSE
        assert "../src" in str(excinfo.value)


class TestFetchTarball:
    """Streaming download and URL construction."""

    def test_joins_chunks(self, session):
        resp = _response(200, chunks=[b"abc", b"def"])
        session.get.return_value = resp
        client = RegistryClient("https://registry.test/", session=session)
        assert client.fetch_tarball("https://registry.test/a.tgz", name="a") == b"abcdef"
        resp.close.assert_called_once()

    def test_size_limit(self, session):
        Constants.MAX_TARBALL_BYTES = 4
        session.get.return_value = _response(200, chunks=[b"abc", b"def"])
        client = RegistryClient("https://registry.test/", session=session)
        with pytest.raises(RegistryError) as excinfo:
            client.fetch_tarball("https://registry.test/a.tgz", name="a")
        assert excinfo.value.error_kind is RegistryErrorKind.INVALID_RESPONSE

    def test_interrupted_stream_is_network_error(self, session):
        resp = _response(200)
        resp.iter_content.side_effect = requests.ConnectionError("reset")
        session.get.return_value = resp
        client = RegistryClient("https://registry.test/", session=session)
        with pytest.raises(RegistryError) as excinfo:
            client.fetch_tarball("https://registry.test/a.tgz", name="a")
        assert excinfo.value.error_kind is RegistryErrorKind.NETWORK
        assert session.get.call_count == Constants.HTTP_RETRY_MAX
        assert resp.close.call_count == Constants.HTTP_RETRY_MAX

    def test_interrupted_stream_is_retried(self, session, no_sleep):
        broken = _response(200)
        broken.iter_content.side_effect = requests.exceptions.ChunkedEncodingError("reset")
        session.get.side_effect = [broken, _response(200, chunks=[b"abc"])]
        client = RegistryClient("https://registry.test/", session=session)
        assert client.fetch_tarball("https://registry.test/a.tgz", name="a") == b"abc"
        assert session.get.call_count == 2
        broken.close.assert_called_once()
        no_sleep.assert_called_once_with(backoff_delay(0))

    def test_oversize_body_is_not_retried(self, session):
        Constants.MAX_TARBALL_BYTES = 4
        session.get.return_value = _response(200, chunks=[b"abc", b"def"])
        client = RegistryClient("https://registry.test/", session=session)
        with pytest.raises(RegistryError):
            client.fetch_tarball("https://registry.test/a.tgz", name="a")
        assert session.get.call_count == 1

    def test_tarball_url(self, session):
        client = RegistryClient("https://registry.test", session=session)
        assert client.tarball_url("alpha", "1.0.0") == "https://registry.test/alpha/-/alpha-1.0.0.tgz"
        assert client.tarball_url("@scope/pkg", "2.0.0") == "https://registry.test/@scope/pkg/-/pkg-2.0.0.tgz"


def test_packument_shape_errors():
    with pytest.raises(ValueError):
        PackageMetadata.from_packument("x", [])
