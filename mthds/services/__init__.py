"""
Service layer for mthds.

Contains logic that orchestrates domain objects and infrastructure:
- DependencyResolver: walks the dependency graph, fetches and caches packages

Services are the primary API for commands to use.
"""

from .dependency_resolver import (
    DependencyResolver,
    ResolvedDependency,
    collect_mthds_files,
    determine_exported_pipes,
    resolve_all_dependencies,
)

__all__ = [
    'DependencyResolver',
    'ResolvedDependency',
    'collect_mthds_files',
    'determine_exported_pipes',
    'resolve_all_dependencies',
]
