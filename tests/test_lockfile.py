"""Tests for lockfile serialization and graph reconstruction."""

import json

import pytest

from polypm import lockfile
from polypm.errors import LockfileError
from polypm.lockfile import LockEntry, Lockfile
from polypm.versioning.models import DependencyGraph, PackageSpec, ResolvedNode

SHA_A = "sha256-" + "a" * 64
SHA_B = "sha256-" + "b" * 64


def _graph():
    return DependencyGraph(
        roots=[PackageSpec("app-lib", "^1.0.0")],
        nodes={
            "app-lib": ResolvedNode("app-lib", "1.2.0", "u1", integrity=SHA_A, dependencies=("util",)),
            "util": ResolvedNode("util", "3.0.1", "u2", integrity=SHA_B),
        },
    )


class TestSerialization:
    """Deterministic documents and validation."""

    def test_document_shape(self):
        text = lockfile.dumps(lockfile.from_graph(_graph()))
        assert text.endswith("}\n")
        assert json.loads(text) == {
            "app-lib": {"dependencies": ["util"], "integrity": SHA_A, "version": "1.2.0"},
            "util": {"dependencies": [], "integrity": SHA_B, "version": "3.0.1"},
        }

    def test_same_graph_same_bytes(self):
        """Insertion order must not leak into the document."""
        reordered = _graph()
        reordered.nodes = dict(reversed(list(reordered.nodes.items())))
        assert lockfile.dumps(lockfile.from_graph(_graph())) == lockfile.dumps(lockfile.from_graph(reordered))

    def test_round_trip_through_disk(self, tmp_path):
        path = tmp_path / "poly.lock"
        written = lockfile.write(_graph(), path)
        assert lockfile.read(path) == written
        assert not [p for p in tmp_path.iterdir() if p.name != "poly.lock"]

    def test_uninstalled_node_cannot_be_locked(self):
        graph = _graph()
        graph.nodes["util"].integrity = None
        with pytest.raises(LockfileError):
            lockfile.from_graph(graph)

    def test_missing_file_is_none(self, tmp_path):
        assert lockfile.read(tmp_path / "poly.lock") is None

    @pytest.mark.parametrize("text", [
        "{not json",
        "[]",
        '{"a": "1.0.0"}',
        '{"a": {"integrity": "%s"}}' % SHA_A,
        '{"a": {"version": "1.0.0", "integrity": "sha1-abc"}}',
        '{"a": {"version": "1.0.0", "integrity": "sha256-zz"}}',
        '{"a": {"version": "1.0.0", "integrity": "sha256-%s"}}' % ("A" * 64),
        '{"a": {"version": "1.0.0", "integrity": "%s0"}}' % SHA_A,
        '{"a": {"version": "1.0.0", "integrity": "%s", "dependencies": "b"}}' % SHA_A,
        '{"../src": {"version": "1.0.0", "integrity": "%s"}}' % SHA_A,
        '{"a": {"version": "1.0.0", "integrity": "%s", "dependencies": ["../../etc"]}}' % SHA_A,
    ])
    def test_malformed_documents(self, tmp_path, text):
        path = tmp_path / "poly.lock"
        path.write_text(text)
        with pytest.raises(LockfileError) as excinfo:
            lockfile.read(path)
        assert excinfo.value.path == str(path)


class TestToGraph:
    """Rebuilding an installable graph without the registry."""

    def test_urls_and_roots(self):
        lock = Lockfile({
            "app-lib": LockEntry("1.2.0", SHA_A, ("util",)),
            "util": LockEntry("3.0.1", SHA_B),
        })
        graph = lockfile.to_graph(lock, lambda name, version: f"https://r.test/{name}-{version}.tgz")
        assert [r.name for r in graph.roots] == ["app-lib"]
        node = graph.get("util")
        assert node.tarball_url == "https://r.test/util-3.0.1.tgz"
        assert node.integrity == SHA_B
        assert node.expected_digest == SHA_B

    def test_cycle_only_lock_roots_everything(self):
        lock = Lockfile({
            "left": LockEntry("1.0.0", SHA_A, ("right",)),
            "right": LockEntry("1.0.0", SHA_B, ("left",)),
        })
        graph = lockfile.to_graph(lock, lambda name, version: name)
        assert sorted(r.name for r in graph.roots) == ["left", "right"]

    @pytest.mark.parametrize("entries", [
        {"../src": LockEntry("1.0.0", SHA_A)},
        {"util": LockEntry("1.0.0", SHA_A, ("../src",))},
    ])
    def test_path_like_names_rejected(self, entries):
        """Entries built in memory skip loads(); to_graph must still refuse them."""
        with pytest.raises(LockfileError):
            lockfile.to_graph(Lockfile(entries), lambda name, version: name)
