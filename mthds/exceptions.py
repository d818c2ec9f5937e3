"""
Exception hierarchy for the mthds package manager.

All errors raised by the package-management core derive from
MthdsPackageError, so callers can catch the whole family at the CLI
boundary and map it to an exit code (see exit_codes.py).

    MthdsPackageError
    ├── SemVerError
    │   ├── InvalidVersionError
    │   └── InvalidConstraintError
    ├── ManifestError
    │   ├── ManifestParseError
    │   └── ManifestValidationError
    ├── VCSFetchError
    │   ├── GitNotFoundError
    │   └── VCSTimeoutError
    ├── VersionResolutionError
    ├── PackageCacheError
    ├── LockFileError
    ├── IntegrityError
    ├── DependencyResolveError
    ├── TransitiveDependencyError
    └── QualifiedRefError
"""

from typing import List, Optional


class MthdsPackageError(Exception):
    """Base class for every package-management error."""


class SemVerError(MthdsPackageError):
    """A version or constraint string could not be parsed."""


class InvalidVersionError(SemVerError):
    """Raised when a string is not a valid semantic version."""


class InvalidConstraintError(SemVerError):
    """Raised when a string is not a valid version constraint."""


class ManifestError(MthdsPackageError):
    """Base class for METHODS.toml problems."""


class ManifestParseError(ManifestError):
    """The manifest is not syntactically valid TOML."""


class ManifestValidationError(ManifestError):
    """
    The manifest parsed but violates the schema or semantic rules.

    Every problem found is kept in ``errors`` so a caller can report them
    all at once instead of fixing one at a time.
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors) if errors else [message]

    @classmethod
    def from_errors(cls, errors: List[str]) -> 'ManifestValidationError':
        return cls("; ".join(errors), errors)


class VCSFetchError(MthdsPackageError):
    """A version-control operation (tag listing, clone) failed."""


class GitNotFoundError(VCSFetchError):
    """The git executable is not installed or not on PATH."""


class VCSTimeoutError(VCSFetchError):
    """A version-control operation timed out."""


class VersionResolutionError(MthdsPackageError):
    """No available version satisfies a constraint."""

    def __init__(self, message: str, available: Optional[List[str]] = None):
        super().__init__(message)
        self.available = list(available) if available else []


class PackageCacheError(MthdsPackageError):
    """Cache path traversal or cache I/O failure."""


class LockFileError(MthdsPackageError):
    """Malformed lock file content or lock generation failure."""


class IntegrityError(MthdsPackageError):
    """A cached package does not match its locked hash, or is missing."""

    def __init__(self, message: str, failures: Optional[List[str]] = None):
        super().__init__(message)
        self.failures = list(failures) if failures else [message]


class DependencyResolveError(MthdsPackageError):
    """A dependency could not be resolved, fetched or cached."""


class TransitiveDependencyError(MthdsPackageError):
    """Dependency cycle, or a diamond whose constraints cannot all be met."""


class QualifiedRefError(MthdsPackageError):
    """A domain-qualified reference string is malformed."""
