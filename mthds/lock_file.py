"""
methods.lock: a pinned, hash-verified snapshot of a resolution.

One TOML table per locked address:

    ["github.com/org/scoring"]
    version = "1.2.0"
    hash = "sha256:3b1f...64 hex chars"
    source = "https://github.com/org/scoring"

Only remote dependencies are locked. The hash is a SHA-256 over every file
of the cached tree (minus .git), fed in sorted forward-slash relative path
order so the digest is the same on every platform.
"""

import hashlib
import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union
import logging

import tomli_w

from .domain.manifest import Manifest
from .exceptions import IntegrityError, LockFileError, PackageCacheError
from .package_cache import PackageCache
from .semver import is_valid_semver
from .utils import write_text_atomic

logger = logging.getLogger(__name__)

LOCK_FILENAME = "methods.lock"
HASH_PREFIX = "sha256:"
HASH_RE = re.compile(r'^sha256:[0-9a-f]{64}$')
SOURCE_PREFIX = "https://"
LOCKED_PACKAGE_KEYS = ('version', 'hash', 'source')

_READ_CHUNK = 64 * 1024


@dataclass(frozen=True)
class LockedPackage:
    """A pinned remote package."""
    version: str
    hash: str
    source: str

    def to_dict(self) -> Dict[str, str]:
        return {'version': self.version, 'hash': self.hash, 'source': self.source}


@dataclass(frozen=True)
class LockFile:
    """Locked packages keyed by address."""
    packages: Dict[str, LockedPackage] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.packages)

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        return {address: self.packages[address].to_dict() for address in sorted(self.packages)}


# =============================================================================
# HASHING
# =============================================================================

def _collect_files(directory: Path) -> List[str]:
    """Forward-slash relative paths of every file, skipping any .git subtree."""
    rel_paths = []
    for dirpath, dirnames, filenames in os.walk(directory):
        dirnames[:] = [d for d in dirnames if d != '.git']
        for filename in filenames:
            if filename == '.git':
                continue
            full = Path(dirpath) / filename
            if full.is_file():
                rel_paths.append(full.relative_to(directory).as_posix())
    return rel_paths


def compute_directory_hash(directory: Union[str, Path]) -> str:
    """
    Deterministic SHA-256 of a directory tree.

    Each file contributes its relative path (UTF-8) followed by its bytes,
    in sorted relative-path order.

    Raises:
        LockFileError: if the directory does not exist
    """
    root = Path(directory)
    if not root.is_dir():
        raise LockFileError(f"Directory '{directory}' does not exist or is not a directory")

    hasher = hashlib.sha256()
    for rel_path in sorted(_collect_files(root)):
        hasher.update(rel_path.encode('utf-8'))
        with open(root / rel_path, 'rb') as f:
            for chunk in iter(lambda: f.read(_READ_CHUNK), b""):
                hasher.update(chunk)

    return f"{HASH_PREFIX}{hasher.hexdigest()}"


# =============================================================================
# PARSE / SERIALIZE
# =============================================================================

def _validate_locked_package(address: str, entry: Dict[str, Any]) -> LockedPackage:
    unknown = sorted(set(entry) - set(LOCKED_PACKAGE_KEYS))
    if unknown:
        raise LockFileError(f"Unknown keys for '{address}' in lock file: {', '.join(unknown)}")

    version = entry.get('version')
    if not isinstance(version, str) or not is_valid_semver(version):
        raise LockFileError(f"Invalid version '{version}' for '{address}' in lock file")

    hash_value = entry.get('hash')
    if not isinstance(hash_value, str) or not HASH_RE.match(hash_value):
        raise LockFileError(
            f"Invalid hash for '{address}' in lock file (expected 'sha256:' + 64 hex chars)"
        )

    source = entry.get('source')
    if not isinstance(source, str) or not source.startswith(SOURCE_PREFIX):
        raise LockFileError(
            f"Invalid source '{source}' for '{address}' in lock file (must start with https://)"
        )

    return LockedPackage(version=version, hash=hash_value, source=source)


def parse_lock_file(content: str) -> LockFile:
    """
    Parse lock file text. Empty text is an empty lock file.

    Raises:
        LockFileError: invalid TOML or invalid entries
    """
    if not content.strip():
        return LockFile()

    try:
        raw = tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        raise LockFileError(f"Invalid TOML syntax in lock file: {e}") from e

    packages: Dict[str, LockedPackage] = {}
    for address, entry in raw.items():
        if not isinstance(entry, dict):
            raise LockFileError(
                f"Lock file entry for '{address}' must be a table, got {type(entry).__name__}"
            )
        packages[address] = _validate_locked_package(address, entry)

    return LockFile(packages=packages)


def serialize_lock_file(lock_file: LockFile) -> str:
    """TOML text with entries sorted by address; an empty lock is ''."""
    return tomli_w.dumps(lock_file.to_dict())


def read_lock_file(path: Union[str, Path]) -> LockFile:
    """Read a lock file; a missing file is an empty lock file."""
    lock_path = Path(path)
    if not lock_path.exists():
        return LockFile()
    try:
        content = lock_path.read_text(encoding='utf-8')
    except OSError as e:
        raise LockFileError(f"Cannot read lock file {lock_path}: {e}") from e
    return parse_lock_file(content)


def write_lock_file(path: Union[str, Path], lock_file: LockFile) -> Path:
    try:
        return write_text_atomic(path, serialize_lock_file(lock_file))
    except OSError as e:
        raise LockFileError(f"Cannot write lock file {path}: {e}") from e


# =============================================================================
# GENERATION
# =============================================================================

def generate_lock_file(manifest: Manifest, resolved_deps: Iterable) -> LockFile:
    """
    Build a lock file from resolution results.

    Args:
        manifest: Root manifest; addresses it overrides with a local path are skipped
        resolved_deps: ResolvedDependency objects (alias, address, manifest,
            package_root, is_local)

    Raises:
        LockFileError: a remote dependency has no manifest
    """
    local_addresses = {dep.address for dep in manifest.local_dependencies.values()}

    packages: Dict[str, LockedPackage] = {}
    for resolved in resolved_deps:
        if getattr(resolved, 'is_local', False) or resolved.address in local_addresses:
            continue

        if resolved.manifest is None:
            raise LockFileError(
                f"Remote dependency '{resolved.alias}' ({resolved.address}) has no manifest, "
                f"cannot generate lock entry"
            )

        packages[resolved.address] = LockedPackage(
            version=resolved.version or resolved.manifest.version,
            hash=compute_directory_hash(resolved.package_root),
            source=f"{SOURCE_PREFIX}{resolved.address}",
        )

    logger.info(f"Generated lock file with {len(packages)} entries")
    return LockFile(packages=packages)


# =============================================================================
# VERIFICATION
# =============================================================================

def verify_locked_package(locked: LockedPackage, address: str, cache: PackageCache) -> None:
    """
    Recompute one package's hash from the cache.

    Raises:
        IntegrityError: cache entry missing or hash mismatch
    """
    cached_path = cache.path(address, locked.version)
    if not cached_path.is_dir():
        raise IntegrityError(
            f"Cached package '{address}@{locked.version}' not found at '{cached_path}'"
        )

    actual = compute_directory_hash(cached_path)
    if actual != locked.hash:
        raise IntegrityError(
            f"Integrity check failed for '{address}@{locked.version}': "
            f"expected {locked.hash}, got {actual}"
        )


def verify_lock_file(lock_file: LockFile, cache: PackageCache) -> None:
    """
    Verify every locked package against the cache.

    All failures are collected and raised together.

    Raises:
        IntegrityError: with ``failures`` listing each bad entry
    """
    failures = []
    for address in sorted(lock_file.packages):
        try:
            verify_locked_package(lock_file.packages[address], address, cache)
        except (IntegrityError, PackageCacheError) as e:
            logger.warning(str(e))
            failures.append(str(e))

    if failures:
        raise IntegrityError(
            f"{len(failures)} of {len(lock_file.packages)} locked packages failed verification: "
            + "; ".join(failures),
            failures=failures,
        )
