"""Registry access: metadata and tarball downloads."""

from .client import RegistryClient
from .models import PackageMetadata, VersionRecord

__all__ = ["RegistryClient", "PackageMetadata", "VersionRecord"]
