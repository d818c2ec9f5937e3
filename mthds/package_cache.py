"""
Local package cache.

Layout: <cache_root>/<address>/<version>/ holding the fetched tree minus
its .git directory. An entry is written once, through a staging directory
and an atomic rename, and is never modified in place; eviction removes the
whole version directory.

Example:
    cache = PackageCache()
    if not cache.is_cached("github.com/org/repo", "1.0.0"):
        cache.store("/tmp/checkout", "github.com/org/repo", "1.0.0")
"""

import os
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple, Union
import logging

from .config import load_config
from .exceptions import PackageCacheError
from .semver import is_valid_semver

logger = logging.getLogger(__name__)

STAGING_SUFFIX = ".staging-"
RETIRED_SUFFIX = ".retired-"


def get_default_cache_root() -> Path:
    """Cache root from configuration (cache.root), ~/.mthds/packages by default."""
    return Path(load_config()['cache']['root']).expanduser()


def _ignore_root_git(root: str):
    """copytree ignore callback skipping .git at the tree root only."""
    def ignore(directory: str, names: List[str]) -> List[str]:
        if os.path.abspath(directory) == root and '.git' in names:
            return ['.git']
        return []
    return ignore


class PackageCache:
    """Content store keyed by (address, version)."""

    def __init__(self, cache_root: Optional[Union[str, Path]] = None):
        root = Path(cache_root).expanduser() if cache_root else get_default_cache_root()
        self.cache_root = root.resolve()

    def path(self, address: str, version: str) -> Path:
        """
        Directory for a package version.

        Raises:
            PackageCacheError: if address/version would resolve outside the cache root
        """
        resolved = (self.cache_root / address / version).resolve()
        if self.cache_root not in resolved.parents:
            raise PackageCacheError(
                f"Path traversal detected: address '{address}' and version '{version}' "
                f"resolve outside cache root"
            )
        return resolved

    def is_cached(self, address: str, version: str) -> bool:
        """True only if the version directory exists and is non-empty."""
        pkg_path = self.path(address, version)
        if not pkg_path.is_dir():
            return False
        try:
            return any(pkg_path.iterdir())
        except OSError:
            return False

    def store(self, source_dir: Union[str, Path], address: str, version: str) -> Path:
        """
        Copy a fetched tree into the cache.

        The tree is copied into a disposable staging directory next to the
        final path (without .git), then renamed into place. An existing
        entry is moved aside first and put back if the rename fails, so on
        failure the final path is left as it was.

        Returns:
            The final cache path
        """
        final_path = self.path(address, version)
        source = os.path.abspath(source_dir)
        staging: Optional[str] = None
        retired: Optional[str] = None

        try:
            final_path.parent.mkdir(parents=True, exist_ok=True)
            staging = tempfile.mkdtemp(
                dir=final_path.parent,
                prefix=f".{final_path.name}{STAGING_SUFFIX}"
            )
            shutil.copytree(
                source,
                staging,
                ignore=_ignore_root_git(source),
                dirs_exist_ok=True,
                symlinks=True,
            )

            if final_path.exists():
                retired = tempfile.mkdtemp(
                    dir=final_path.parent,
                    prefix=f".{final_path.name}{RETIRED_SUFFIX}"
                )
                os.replace(final_path, os.path.join(retired, final_path.name))
            os.replace(staging, final_path)
            staging = None
        except OSError as e:
            if retired is not None and not final_path.exists():
                try:
                    os.replace(os.path.join(retired, final_path.name), final_path)
                except OSError as restore_error:
                    logger.error(
                        f"Could not restore {address}@{version}, previous entry left in {retired}: "
                        f"{restore_error}"
                    )
                    retired = None
            raise PackageCacheError(
                f"Failed to store package '{address}@{version}' in cache: {e}"
            ) from e
        finally:
            if staging is not None:
                shutil.rmtree(staging, ignore_errors=True)
            if retired is not None:
                shutil.rmtree(retired, ignore_errors=True)

        logger.info(f"Cached {address}@{version} at {final_path}")
        return final_path

    def evict(self, address: str, version: str) -> bool:
        """
        Remove a cached version.

        Returns:
            True if the directory existed and was removed
        """
        pkg_path = self.path(address, version)
        if not pkg_path.exists():
            return False
        try:
            shutil.rmtree(pkg_path)
        except OSError as e:
            raise PackageCacheError(
                f"Failed to remove cached package '{address}@{version}' at '{pkg_path}': {e}"
            ) from e
        logger.info(f"Evicted {address}@{version}")
        return True

    def list_cached(self) -> List[Tuple[str, str]]:
        """
        List cached (address, version) pairs.

        A version directory is any non-empty leaf under the root whose
        parent path is an address; staging leftovers are skipped.
        """
        entries = []
        if not self.cache_root.is_dir():
            return entries
        for dirpath, dirnames, filenames in os.walk(self.cache_root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith('.'))
            current = Path(dirpath)
            if current == self.cache_root:
                continue
            rel = current.relative_to(self.cache_root).as_posix()
            address, _, version = rel.rpartition('/')
            # An address needs host + path, so a version sits at depth >= 3
            if address.count('/') >= 1 and '.' in address.split('/')[0] and is_valid_semver(version):
                if any(current.iterdir()):
                    entries.append((address, version))
                dirnames[:] = []
        return sorted(entries)
