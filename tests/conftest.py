"""Shared fixtures: an in-memory registry and tarball builder."""

import hashlib
import io
import tarfile
import threading
from collections import Counter
from typing import Dict, Optional

import pytest

from polypm.constants import Constants
from polypm.errors import RegistryError, RegistryErrorKind
from polypm.registry.models import PackageMetadata, VersionRecord


def make_tarball(files: Dict[str, bytes], wrapper: str = "package") -> bytes:
    """Build a gzip tarball whose entries sit under one wrapper directory."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for path, data in sorted(files.items()):
            info = tarfile.TarInfo(name=f"{wrapper}/{path}" if wrapper else path)
            info.size = len(data)
            info.mode = 0o644
            info.mtime = 0
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class FakeRegistry:
    """Registry client double with the RegistryClient interface."""

    base_url = "https://registry.test/"

    def __init__(self):
        self._versions: Dict[str, Dict[str, VersionRecord]] = {}
        self._tags: Dict[str, Dict[str, str]] = {}
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()
        self.metadata_calls = Counter()
        self.tarball_calls = Counter()
        self.failing_tarballs: Dict[str, Exception] = {}
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def tarball_url(self, name: str, version: str) -> str:
        basename = name.rsplit("/", 1)[-1]
        return f"{self.base_url}{name}/-/{basename}-{version}.tgz"

    def publish(self, name: str, version: str, deps: Optional[Dict[str, str]] = None,
                files: Optional[Dict[str, bytes]] = None) -> bytes:
        files = files or {"index.js": f"// {name} {version}\n".encode()}
        blob = make_tarball(files)
        url = self.tarball_url(name, version)
        self._blobs[url] = blob
        self._versions.setdefault(name, {})[version] = VersionRecord(
            version=version,
            dependencies=dict(deps or {}),
            tarball_url=url,
            shasum=hashlib.sha1(blob).hexdigest(),
        )
        return blob

    def tag(self, name: str, tag: str, version: str) -> None:
        self._tags.setdefault(name, {})[tag] = version

    def replace_blob(self, name: str, version: str, blob: bytes) -> None:
        """Serve different bytes than the metadata digest describes."""
        self._blobs[self.tarball_url(name, version)] = blob

    def fetch_metadata(self, name: str) -> PackageMetadata:
        with self._lock:
            self.metadata_calls[name] += 1
        if name not in self._versions:
            raise RegistryError(RegistryErrorKind.NOT_FOUND, f"{name} not found", name=name)
        return PackageMetadata(name=name, versions=dict(self._versions[name]),
                               dist_tags=dict(self._tags.get(name, {})))

    def fetch_tarball(self, url: str, *, name: Optional[str] = None) -> bytes:
        with self._lock:
            self.tarball_calls[name or url] += 1
        if url in self.failing_tarballs:
            raise self.failing_tarballs[url]
        if url not in self._blobs:
            raise RegistryError(RegistryErrorKind.NOT_FOUND, f"{url} not found", name=name, url=url)
        return self._blobs[url]


@pytest.fixture
def registry():
    """Fresh fake registry per test."""
    return FakeRegistry()


@pytest.fixture
def project(tmp_path):
    """Project directory with an empty [dependencies] table."""
    (tmp_path / "poly.toml").write_text('[package]\nname = "demo"\n\n[dependencies]\n', encoding="utf-8")
    return tmp_path


@pytest.fixture(autouse=True)
def _restore_constants():
    """Config loaders mutate Constants; put everything back after each test."""
    saved = {k: v for k, v in vars(Constants).items() if k.isupper()}
    yield
    for key, value in saved.items():
        setattr(Constants, key, value)
