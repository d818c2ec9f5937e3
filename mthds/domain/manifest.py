"""
Manifest domain objects for mthds.

A package is described by a METHODS.toml manifest. This module holds the
flat, typed form the rest of the package manager works with, plus the
naming rules every part of the system shares (snake_case pipe codes,
dotted domain paths, reserved domains, package addresses).

Manifests are immutable once parsed: parsing lives in ``mthds.manifest``
and either returns a complete Manifest or raises.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

MANIFEST_FILENAME = "METHODS.toml"

RESERVED_DOMAINS = frozenset({"native", "mthds", "pipelex"})

MTHDS_STANDARD_VERSION = "1.0.0"

SNAKE_CASE_RE = re.compile(r'^[a-z][a-z0-9]*(?:_[a-z0-9]+)*$')
PASCAL_CASE_RE = re.compile(r'^[A-Z][a-zA-Z0-9]*$')
ADDRESS_RE = re.compile(r'^[a-zA-Z0-9._-]+\.[a-zA-Z0-9._-]+/[a-zA-Z0-9._/-]+$')
METHOD_NAME_RE = re.compile(r'^[a-z][a-z0-9_-]{1,24}$')

DISPLAY_NAME_MAX_LENGTH = 128


class ManifestSchema(Enum):
    """Which top-level sections a METHODS.toml may contain."""
    DECLARATIVE = "declarative"              # [package] and [exports] only
    WITH_DEPENDENCIES = "with_dependencies"  # also [dependencies.<alias>]


@dataclass(frozen=True)
class DomainExports:
    """Pipes a domain makes visible to other domains."""
    pipes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PackageDependency:
    """
    A dependency declared under [dependencies.<alias>].

    Remote dependencies carry a version constraint and are fetched from
    their address; local dependencies point at a directory on disk and
    override the remote package with the same address.
    """
    alias: str
    address: str
    version: Optional[str] = None
    path: Optional[str] = None

    @property
    def is_local(self) -> bool:
        return self.path is not None

    def to_dict(self) -> Dict[str, str]:
        data = {'address': self.address}
        if self.version is not None:
            data['version'] = self.version
        if self.path is not None:
            data['path'] = self.path
        return data


@dataclass(frozen=True)
class Manifest:
    """
    Flat parsed manifest.

    Export domains are flattened to dotted paths, e.g. the table
    ``[exports.legal.contracts]`` becomes the key ``"legal.contracts"``.
    """
    address: str
    version: str
    description: str
    authors: Tuple[str, ...] = ()
    name: Optional[str] = None
    display_name: Optional[str] = None
    license: Optional[str] = None
    mthds_version: Optional[str] = None
    main_pipe: Optional[str] = None
    dependencies: Dict[str, PackageDependency] = field(default_factory=dict)
    exports: Dict[str, DomainExports] = field(default_factory=dict)

    @property
    def remote_dependencies(self) -> Dict[str, PackageDependency]:
        return {a: d for a, d in self.dependencies.items() if not d.is_local}

    @property
    def local_dependencies(self) -> Dict[str, PackageDependency]:
        return {a: d for a, d in self.dependencies.items() if d.is_local}

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            'address': self.address,
            'version': self.version,
            'description': self.description,
            'authors': list(self.authors),
            'name': self.name,
            'display_name': self.display_name,
            'license': self.license,
            'mthds_version': self.mthds_version,
            'main_pipe': self.main_pipe,
            'dependencies': {a: d.to_dict() for a, d in self.dependencies.items()},
            'exports': {p: list(e.pipes) for p, e in self.exports.items()},
        }


# =============================================================================
# NAMING RULES
# =============================================================================

def is_snake_case(word: str) -> bool:
    return bool(SNAKE_CASE_RE.match(word))


def is_pascal_case(word: str) -> bool:
    return bool(PASCAL_CASE_RE.match(word))


def is_pipe_code_valid(pipe_code: str) -> bool:
    return is_snake_case(pipe_code)


def is_domain_code_valid(code: str) -> bool:
    """
    Check a domain code.

    Accepts single segments ("legal"), dotted paths ("legal.contracts") and
    cross-package codes ("alias->scoring"). Every segment must be snake_case.
    """
    if not code:
        return False
    if '->' in code:
        return is_domain_code_valid(code.split('->', 1)[1])
    if code.startswith('.') or code.endswith('.') or '..' in code:
        return False
    return all(is_snake_case(segment) for segment in code.split('.'))


def is_reserved_domain_path(domain_path: str) -> bool:
    return domain_path.split('.')[0] in RESERVED_DOMAINS


def is_valid_address(address: str) -> bool:
    """Address must be hostname/path with a dot in the hostname."""
    return bool(ADDRESS_RE.match(address))


def is_valid_method_name(name: str) -> bool:
    return bool(METHOD_NAME_RE.match(name))
