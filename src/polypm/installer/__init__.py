"""Parallel download, verification and extraction of resolved packages."""

from .manager import InstallReport, Installer, PackageFailure, prune, status

__all__ = ["InstallReport", "Installer", "PackageFailure", "prune", "status"]
