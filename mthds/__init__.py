"""
mthds - package management for mthds pipeline packages.

A package is a directory with a METHODS.toml manifest and .mthds bundles.
This library parses manifests, resolves their dependencies against git
tags with Minimal Version Selection, caches the fetched trees and pins
them in a hash-verified methods.lock.

Quick Start:
    from mthds import load_manifest, resolve_all_dependencies, generate_lock_file

    manifest = load_manifest("METHODS.toml")
    resolved = resolve_all_dependencies(manifest, ".")
    lock = generate_lock_file(manifest, resolved)

Modules:
    semver - versions and npm-style constraints
    manifest - METHODS.toml parsing and serialization
    vcs_resolver - tag listing and version selection
    package_cache - the local content store
    services.dependency_resolver - transitive resolution
    lock_file - methods.lock generation and verification
    visibility - cross-domain pipe visibility rules
"""

__version__ = "0.3.0"

from .exceptions import MthdsPackageError
from .semver import SemVer, parse_constraint, parse_version, satisfies
from .manifest import load_manifest, parse_manifest, serialize_manifest
from .package_cache import PackageCache
from .services.dependency_resolver import DependencyResolver, resolve_all_dependencies
from .lock_file import generate_lock_file, parse_lock_file, serialize_lock_file, verify_lock_file
from .visibility import check_visibility

__all__ = [
    '__version__',
    'MthdsPackageError',
    'SemVer',
    'parse_constraint',
    'parse_version',
    'satisfies',
    'load_manifest',
    'parse_manifest',
    'serialize_manifest',
    'PackageCache',
    'DependencyResolver',
    'resolve_all_dependencies',
    'generate_lock_file',
    'parse_lock_file',
    'serialize_lock_file',
    'verify_lock_file',
    'check_visibility',
]
