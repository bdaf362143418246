"""Exception taxonomy for registry, resolution, integrity, extraction and lockfile failures."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence, Tuple

from .constants import ExitCodes

if TYPE_CHECKING:  # pragma: no cover
    from .installer.manager import InstallReport


class PackageManagerError(Exception):
    """Base class for all errors raised by polypm."""

    kind: str = "error"
    exit_code: ExitCodes = ExitCodes.FILE_ERROR


class RegistryErrorKind(Enum):
    """Failure classes of a registry request."""

    NOT_FOUND = "not_found"
    NETWORK = "network"
    INVALID_RESPONSE = "invalid_response"


class RegistryError(PackageManagerError):
    """A registry request failed."""

    exit_code = ExitCodes.CONNECTION_ERROR

    def __init__(self, kind: RegistryErrorKind, message: str, *, name: Optional[str] = None,
                 url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.error_kind = kind
        self.kind = kind.value
        self.name = name
        self.url = url
        self.status_code = status_code


class ResolutionErrorKind(Enum):
    """Failure classes of dependency resolution."""

    UNSATISFIABLE = "unsatisfiable"
    INVALID_RANGE = "invalid_range"
    REGISTRY = "registry"


class ResolutionError(PackageManagerError):
    """Dependency resolution could not produce a graph."""

    exit_code = ExitCodes.RESOLUTION_ERROR

    def __init__(self, kind: ResolutionErrorKind, message: str, *, name: Optional[str] = None,
                 ranges: Sequence[Tuple[str, str]] = (), cause: Optional[Exception] = None):
        super().__init__(message)
        self.error_kind = kind
        self.kind = kind.value
        self.name = name
        # (requirer, range) pairs that were in play for `name`
        self.ranges = tuple(ranges)
        self.cause = cause
        if isinstance(cause, RegistryError):
            self.exit_code = cause.exit_code


class IntegrityError(PackageManagerError):
    """Downloaded content does not match its expected digest."""

    kind = "integrity"
    exit_code = ExitCodes.INTEGRITY_ERROR

    def __init__(self, message: str, *, name: Optional[str] = None,
                 expected: Optional[str] = None, actual: Optional[str] = None):
        super().__init__(message)
        self.name = name
        self.expected = expected
        self.actual = actual


class ExtractionError(PackageManagerError):
    """A tarball could not be unpacked into the install directory."""

    kind = "extraction"

    def __init__(self, message: str, *, name: Optional[str] = None):
        super().__init__(message)
        self.name = name


class LockfileError(PackageManagerError):
    """The lock document is unreadable or malformed."""

    kind = "lockfile"

    def __init__(self, message: str, *, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class ManifestError(PackageManagerError):
    """The project manifest is missing or cannot be updated."""

    kind = "manifest"


class PackageNotDeclared(ManifestError):
    """A package named on the command line is not a direct dependency."""

    kind = "not_declared"


class InstallError(PackageManagerError):
    """One or more packages failed to install; carries the full report."""

    kind = "install"

    def __init__(self, report: "InstallReport"):
        names = ", ".join(f.name for f in report.failures)
        super().__init__(f"{len(report.failures)} package(s) failed to install: {names}")
        self.report = report
        self.exit_code = report.exit_code()
