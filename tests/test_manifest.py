"""Tests for poly.toml reading and in-place editing."""

import pytest

from polypm.errors import ManifestError
from polypm.manifest import Manifest, add_to_gitignore
from polypm.versioning.models import PackageSpec

CONTENT = """# project file
[package]
name = "demo"

[dependencies]
alpha = "^1.0.0"  # pinned for the widget
"@scope/pkg" = "~2.1.0"

[tool.other]
alpha = "untouched"
"""


@pytest.fixture
def manifest(tmp_path):
    path = tmp_path / "poly.toml"
    path.write_text(CONTENT, encoding="utf-8")
    return Manifest(path)


class TestManifest:
    """The [dependencies] table and nothing else."""

    def test_specs_sorted(self, manifest):
        assert manifest.specs() == [PackageSpec("@scope/pkg", "~2.1.0"), PackageSpec("alpha", "^1.0.0")]

    def test_missing_manifest(self, tmp_path):
        with pytest.raises(ManifestError, match="Not a Poly project"):
            Manifest(tmp_path / "poly.toml").specs()

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "poly.toml"
        path.write_text("[dependencies\n")
        with pytest.raises(ManifestError):
            Manifest(path).dependencies()

    def test_non_string_range(self, tmp_path):
        path = tmp_path / "poly.toml"
        path.write_text("[dependencies]\nalpha = 1\n")
        with pytest.raises(ManifestError):
            Manifest(path).specs()

    def test_replace_keeps_other_tables(self, manifest):
        manifest.set_dependency("alpha", "^1.5.0")
        text = manifest.path.read_text()
        assert 'alpha = "^1.5.0"' in text
        assert 'alpha = "untouched"' in text
        assert "# project file" in text
        assert manifest.dependencies()["alpha"] == "^1.5.0"

    def test_add_appends_inside_section(self, manifest):
        manifest.set_dependency("beta", "^3.0.0")
        deps = manifest.dependencies()
        assert deps["beta"] == "^3.0.0"
        assert "beta" not in manifest.path.read_text().split("[tool.other]")[1]

    def test_add_creates_section(self, tmp_path):
        path = tmp_path / "poly.toml"
        path.write_text('[package]\nname = "demo"\n')
        Manifest(path).set_dependency("@scope/pkg", "1.0.0")
        assert Manifest(path).dependencies() == {"@scope/pkg": "1.0.0"}

    def test_remove(self, manifest):
        assert manifest.remove_dependency("@scope/pkg") is True
        assert manifest.remove_dependency("missing") is False
        assert list(manifest.dependencies()) == ["alpha"]
        assert 'alpha = "untouched"' in manifest.path.read_text()


def test_gitignore_entry_added_once(tmp_path):
    (tmp_path / ".gitignore").write_text("node_modules/")
    assert add_to_gitignore(tmp_path, "packages/") is True
    assert add_to_gitignore(tmp_path, "packages/") is False
    assert (tmp_path / ".gitignore").read_text() == "node_modules/\npackages/\n"
