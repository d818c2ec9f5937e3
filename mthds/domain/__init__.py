"""
Domain layer for mthds.

Contains pure value objects with no I/O:
- Manifest, PackageDependency, DomainExports: the parsed METHODS.toml
- QualifiedRef: domain-qualified pipe/concept references
- BundleMetadata: per-bundle input to the visibility checker

Naming rules shared across the package manager live next to the manifest
types.
"""

from .manifest import (
    MANIFEST_FILENAME,
    MTHDS_STANDARD_VERSION,
    RESERVED_DOMAINS,
    DomainExports,
    Manifest,
    ManifestSchema,
    PackageDependency,
    is_domain_code_valid,
    is_pascal_case,
    is_pipe_code_valid,
    is_reserved_domain_path,
    is_snake_case,
    is_valid_address,
    is_valid_method_name,
)
from .qualified_ref import QualifiedRef, has_cross_package_prefix, split_cross_package_ref
from .bundle import BundleMetadata

__all__ = [
    'MANIFEST_FILENAME',
    'MTHDS_STANDARD_VERSION',
    'RESERVED_DOMAINS',
    'DomainExports',
    'Manifest',
    'ManifestSchema',
    'PackageDependency',
    'is_domain_code_valid',
    'is_pascal_case',
    'is_pipe_code_valid',
    'is_reserved_domain_path',
    'is_snake_case',
    'is_valid_address',
    'is_valid_method_name',
    'QualifiedRef',
    'has_cross_package_prefix',
    'split_cross_package_ref',
    'BundleMetadata',
]
