"""Project manifest (poly.toml) access limited to the [dependencies] table.

Reading goes through tomllib. Writing edits lines in place so comments and
unrelated tables survive untouched.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Union

try:
    import tomllib as toml  # type: ignore
except ImportError:  # Python < 3.11
    import tomli as toml  # type: ignore

from .errors import ManifestError
from .versioning.models import PackageSpec
from .versioning.parser import parse_manifest_entries

logger = logging.getLogger(__name__)

SECTION = "dependencies"
_HEADER_RE = re.compile(r"^\s*\[\s*([^\[\]]+?)\s*\]\s*(#.*)?$")
_BARE_KEY_RE = re.compile(r"^[A-Za-z0-9_]+$")


def _toml_key(name: str) -> str:
    return name if _BARE_KEY_RE.match(name) else _toml_string(name)


def _toml_string(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _is_key_line(line: str, name: str) -> bool:
    stripped = line.strip()
    for key in {name, _toml_string(name), f"'{name}'"}:
        if stripped.startswith(key):
            rest = stripped[len(key):].lstrip()
            if rest.startswith("="):
                return True
    return False


class Manifest:
    """The dependency declarations of a project's poly.toml."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def _read_text(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ManifestError(f"Not a Poly project: {self.path} not found") from exc
        except OSError as exc:
            raise ManifestError(f"cannot read {self.path}: {exc}") from exc

    def dependencies(self) -> Dict[str, object]:
        """The raw [dependencies] table."""
        try:
            data = toml.loads(self._read_text())
        except toml.TOMLDecodeError as exc:
            raise ManifestError(f"invalid TOML in {self.path}: {exc}") from exc
        table = data.get(SECTION, {})
        if not isinstance(table, dict):
            raise ManifestError(f"[{SECTION}] in {self.path} must be a table")
        return table

    def specs(self) -> List[PackageSpec]:
        """Declared dependencies as PackageSpecs, sorted by name."""
        try:
            return parse_manifest_entries(self.dependencies())
        except ValueError as exc:
            raise ManifestError(f"{self.path}: {exc}") from exc

    def set_dependency(self, name: str, rng: str) -> None:
        """Add or replace `name = "rng"` in [dependencies]."""
        lines = self._read_text().splitlines()
        entry = f"{_toml_key(name)} = {_toml_string(rng)}"

        section = None
        header_idx = None
        last_in_section = None
        for idx, line in enumerate(lines):
            match = _HEADER_RE.match(line)
            if match:
                section = match.group(1)
                if section == SECTION:
                    header_idx = idx
                    last_in_section = idx
                continue
            if section != SECTION:
                continue
            if _is_key_line(line, name):
                lines[idx] = entry
                self._write(lines)
                return
            if line.strip():
                last_in_section = idx

        if header_idx is None:
            while lines and not lines[-1].strip():
                lines.pop()
            lines.extend(["", f"[{SECTION}]", entry] if lines else [f"[{SECTION}]", entry])
        else:
            lines.insert(last_in_section + 1, entry)
        self._write(lines)

    def remove_dependency(self, name: str) -> bool:
        """Drop `name` from [dependencies]; False if it was not declared."""
        lines = self._read_text().splitlines()
        section = None
        kept = []
        removed = False
        for line in lines:
            match = _HEADER_RE.match(line)
            if match:
                section = match.group(1)
            elif section == SECTION and _is_key_line(line, name):
                removed = True
                continue
            kept.append(line)
        if removed:
            self._write(kept)
        return removed

    def _write(self, lines: List[str]) -> None:
        try:
            self.path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        except OSError as exc:
            raise ManifestError(f"cannot write {self.path}: {exc}") from exc
        logger.debug("Updated %s", self.path)


def add_to_gitignore(project_dir: Union[str, Path], entry: str) -> bool:
    """Append entry to .gitignore unless already listed. Returns True if added."""
    path = Path(project_dir) / ".gitignore"
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        content = ""
    if entry in (line.strip() for line in content.splitlines()):
        return False
    if content and not content.endswith("\n"):
        content += "\n"
    path.write_text(f"{content}{entry}\n", encoding="utf-8")
    return True
