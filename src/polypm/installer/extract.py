"""Gzip tarball extraction with the registry's wrapper directory stripped."""

from __future__ import annotations

import io
import logging
import os
import shutil
import tarfile
import tempfile
from pathlib import Path, PurePosixPath
from typing import Union

from ..common.names import is_valid_package_name
from ..errors import ExtractionError

logger = logging.getLogger(__name__)


def package_dir(target_dir: Union[str, Path], name: str) -> Path:
    """Flat install location; scoped names nest one level under their scope.

    Raises:
        ExtractionError: name is not a registry package name or escapes target_dir.
    """
    if not is_valid_package_name(name):
        raise ExtractionError(f"refusing to install invalid package name {name!r}", name=name)
    base = Path(target_dir)
    path = base.joinpath(*name.split("/"))
    if base.resolve() not in path.resolve().parents:
        raise ExtractionError(f"{name}: install path {path} leaves {base}", name=name)
    return path


def _strip_wrapper(member_name: str) -> PurePosixPath:
    """Drop the first path component ("package/" by convention)."""
    parts = PurePosixPath(member_name.replace("\\", "/")).parts
    if parts and parts[0] == ".":
        parts = parts[1:]
    return PurePosixPath(*parts[1:]) if len(parts) > 1 else PurePosixPath()


def _check_safe(rel: PurePosixPath, member_name: str, name: str) -> None:
    if rel.is_absolute() or ".." in rel.parts or member_name.startswith(("/", "\\")):
        raise ExtractionError(f"{name}: unsafe path in archive: {member_name!r}", name=name)


def extract_tarball(data: bytes, dest: Path, *, name: str) -> int:
    """Unpack gzip tar bytes into the existing directory `dest`.

    Only regular files and directories are written. Links and special files
    are skipped. Returns the number of files written.

    Raises:
        ExtractionError: corrupt archive or a member escaping `dest`.
    """
    written = 0
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as archive:
            for member in archive:
                rel = _strip_wrapper(member.name)
                _check_safe(rel, member.name, name)
                if not rel.parts:
                    continue
                target = dest.joinpath(*rel.parts)
                if member.isdir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                if not member.isfile():
                    logger.debug("Skipping non-regular entry %s in %s", member.name, name)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                source = archive.extractfile(member)
                if source is None:
                    continue
                with source, open(target, "wb") as out:
                    shutil.copyfileobj(source, out)
                # keep the executable bit, nothing else
                os.chmod(target, 0o755 if member.mode & 0o111 else 0o644)
                written += 1
    except (tarfile.TarError, EOFError, OSError, ValueError) as exc:
        raise ExtractionError(f"{name}: cannot extract archive: {exc}", name=name) from exc
    return written


def install_atomically(data: bytes, target_dir: Path, name: str, stamp_name: str, stamp: str) -> int:
    """Extract into a temp directory, then swap it into target_dir/<name>.

    The package directory only appears once extraction has fully succeeded.
    An existing directory is moved aside first and removed after the swap.
    """
    final = package_dir(target_dir, name)
    final.parent.mkdir(parents=True, exist_ok=True)
    safe = name.replace("/", "__")
    staging = Path(tempfile.mkdtemp(prefix=f".tmp-{safe}-", dir=target_dir))
    try:
        count = extract_tarball(data, staging, name=name)
        (staging / stamp_name).write_text(stamp, encoding="utf-8")
        retired = None
        if final.exists():
            retired = Path(tempfile.mkdtemp(prefix=f".old-{safe}-", dir=target_dir))
            os.replace(final, retired / "pkg")
        os.replace(staging, final)
        if retired is not None:
            shutil.rmtree(retired, ignore_errors=True)
        return count
    except OSError as exc:
        raise ExtractionError(f"{name}: cannot install into {final}: {exc}", name=name) from exc
    finally:
        if staging.exists():
            shutil.rmtree(staging, ignore_errors=True)
