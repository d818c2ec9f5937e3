"""
Standard exit codes for mthds commands.

Following Unix/POSIX conventions for command-line tools.
"""
from .exceptions import (
    DependencyResolveError,
    GitNotFoundError,
    IntegrityError,
    LockFileError,
    ManifestError,
    MthdsPackageError,
    PackageCacheError,
    QualifiedRefError,
    SemVerError,
    TransitiveDependencyError,
    VCSFetchError,
    VCSTimeoutError,
    VersionResolutionError,
)

# Standard POSIX exit codes
SUCCESS = 0              # Successful termination
GENERAL_ERROR = 1        # General errors
USAGE_ERROR = 2          # Misuse of shell command (wrong arguments, etc.)

# Application-specific exit codes (64-113 are typically available)
NOT_FOUND = 64           # Manifest, lock entry or cached package missing
NETWORK_ERROR = 65       # git / GitHub access failed
CONFIG_ERROR = 66        # Configuration file error
DEPENDENCY_ERROR = 67    # Dependency graph cannot be resolved
INTEGRITY_ERROR = 68     # Lock file hash mismatch
TOOL_MISSING = 69        # Required external tool (git) not installed
DATA_ERROR = 70          # Manifest, lock file or reference invalid
CACHE_ERROR = 73         # Cannot write to the package cache
INTERRUPTED = 130        # Terminated by Ctrl+C (SIGINT)

# Most specific class first
EXCEPTION_EXIT_CODES = [
    (GitNotFoundError, TOOL_MISSING),
    (VCSTimeoutError, NETWORK_ERROR),
    (VCSFetchError, NETWORK_ERROR),
    (IntegrityError, INTEGRITY_ERROR),
    (TransitiveDependencyError, DEPENDENCY_ERROR),
    (DependencyResolveError, DEPENDENCY_ERROR),
    (VersionResolutionError, DEPENDENCY_ERROR),
    (ManifestError, DATA_ERROR),
    (LockFileError, DATA_ERROR),
    (SemVerError, DATA_ERROR),
    (QualifiedRefError, DATA_ERROR),
    (PackageCacheError, CACHE_ERROR),
    (MthdsPackageError, GENERAL_ERROR),
    (FileNotFoundError, NOT_FOUND),
    (LookupError, NOT_FOUND),
    (ValueError, USAGE_ERROR),
    (PermissionError, CACHE_ERROR),
    (KeyboardInterrupt, INTERRUPTED),
]


def get_exit_code_for_exception(exc: BaseException) -> int:
    """
    Get the appropriate exit code for an exception.

    Args:
        exc: The exception that occurred

    Returns:
        Appropriate exit code
    """
    if isinstance(exc, CommandError):
        return exc.exit_code
    for exc_type, code in EXCEPTION_EXIT_CODES:
        if isinstance(exc, exc_type):
            return code
    return GENERAL_ERROR


class CommandError(Exception):
    """
    Exception that commands can raise to indicate specific exit codes.
    """
    def __init__(self, message: str, exit_code: int = GENERAL_ERROR):
        super().__init__(message)
        self.exit_code = exit_code


class ConfigError(CommandError):
    """Raised when there's a configuration error."""
    def __init__(self, message: str):
        super().__init__(message, CONFIG_ERROR)
