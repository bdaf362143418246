"""Version ranges, package specs and dependency resolution."""

from .models import Conflict, DependencyGraph, PackageSpec, ResolvedNode
from .resolver import Resolver

__all__ = ["Conflict", "DependencyGraph", "PackageSpec", "ResolvedNode", "Resolver"]
