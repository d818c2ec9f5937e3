"""
Dependency resolution service for mthds.

Turns a root manifest into the full set of packages it needs:
- Local dependencies ([dependencies.x] with a path) are resolved once, by path
- Remote dependencies are walked depth-first, fetched at the minimum version
  satisfying every constraint declared against their address, and cached

A diamond (two packages constraining the same address differently) is
reconciled by re-selecting over all constraints. A cycle is always fatal.
"""

import shutil
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, FrozenSet, List, Mapping, Optional, Set, Tuple, Union
import logging

from ..domain import Manifest, PackageDependency
from ..exceptions import (
    DependencyResolveError,
    InvalidConstraintError,
    PackageCacheError,
    TransitiveDependencyError,
    VCSFetchError,
    VersionResolutionError,
)
from ..manifest import find_manifest_in_dir
from ..package_cache import PackageCache
from ..semver import parse_constraint, parse_version, satisfies, select_minimum_for_all
from ..vcs_resolver import (
    VCSResolver,
    VersionTag,
    address_to_fetch_url,
    find_tag_name,
    resolve_version,
)

logger = logging.getLogger(__name__)

BUNDLE_SUFFIX = ".mthds"
DEFAULT_MAX_WORKERS = 4


@dataclass(frozen=True)
class ResolvedDependency:
    """
    One package selected by resolution.

    ``exported_pipes`` is None when the package has no manifest or declares
    no exports, meaning every pipe is public.
    """
    alias: str
    address: str
    manifest: Optional[Manifest]
    package_root: Path
    files: Tuple[Path, ...] = ()
    exported_pipes: Optional[FrozenSet[str]] = None
    version: Optional[str] = None
    is_local: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            'alias': self.alias,
            'address': self.address,
            'version': self.version,
            'local': self.is_local,
            'package_root': str(self.package_root),
            'files': [str(f) for f in self.files],
            'exported_pipes': sorted(self.exported_pipes) if self.exported_pipes is not None else None,
        }


def collect_mthds_files(directory: Union[str, Path]) -> List[Path]:
    """All .mthds bundle files under a directory, recursively, sorted."""
    root = Path(directory)
    if not root.is_dir():
        return []
    return sorted(p for p in root.rglob(f"*{BUNDLE_SUFFIX}") if p.is_file())


def determine_exported_pipes(manifest: Optional[Manifest]) -> Optional[FrozenSet[str]]:
    """Union of exported pipe codes; None when everything is public."""
    if manifest is None or not manifest.exports:
        return None
    exported: Set[str] = set()
    for domain_exports in manifest.exports.values():
        exported.update(domain_exports.pipes)
    return frozenset(exported)


def _build_resolved(
    alias: str,
    address: str,
    directory: Path,
    version: Optional[str] = None,
    is_local: bool = False,
) -> ResolvedDependency:
    manifest = find_manifest_in_dir(directory)
    return ResolvedDependency(
        alias=alias,
        address=address,
        manifest=manifest,
        package_root=directory,
        files=tuple(collect_mthds_files(directory)),
        exported_pipes=determine_exported_pipes(manifest),
        version=version,
        is_local=is_local,
    )


def resolve_local_dependency(dep: PackageDependency, package_root: Union[str, Path]) -> ResolvedDependency:
    """
    Resolve a path dependency relative to the root package.

    Raises:
        DependencyResolveError: path missing or not a directory
    """
    dep_dir = (Path(package_root) / dep.path).resolve()
    if not dep_dir.exists():
        raise DependencyResolveError(
            f"Dependency '{dep.alias}' local path '{dep.path}' resolves to '{dep_dir}' which does not exist"
        )
    if not dep_dir.is_dir():
        raise DependencyResolveError(
            f"Dependency '{dep.alias}' local path '{dep.path}' resolves to '{dep_dir}' which is not a directory"
        )
    resolved = _build_resolved(dep.alias, dep.address, dep_dir, is_local=True)
    if resolved.manifest is not None:
        resolved = replace(resolved, version=resolved.manifest.version)
    logger.info(f"Resolved local dependency {dep.alias} -> {dep_dir}")
    return resolved


class DependencyResolver:
    """
    Resolves a manifest's dependency graph.

    One instance owns the state of one run at a time (resolution stack,
    resolved map, constraints per address, tag lists). Calling resolve_all
    while a run is in progress raises DependencyResolveError.

    Example:
        resolver = DependencyResolver(cache=PackageCache("/tmp/cache"))
        for dep in resolver.resolve_all(manifest, "/path/to/package"):
            print(dep.address, dep.version)
    """

    def __init__(
        self,
        vcs: Optional[VCSResolver] = None,
        cache: Optional[PackageCache] = None,
        fetch_url_overrides: Optional[Mapping[str, str]] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        """
        Initialize DependencyResolver.

        Args:
            vcs: Repository access (creates default if None)
            cache: Package cache (default cache root if None)
            fetch_url_overrides: Address -> fetch URL (mirrors, local test repos)
            max_workers: Threads used to prefetch tag lists of direct dependencies
        """
        self.vcs = vcs or VCSResolver()
        self.cache = cache or PackageCache()
        self.fetch_url_overrides = dict(fetch_url_overrides or {})
        self.max_workers = max(1, max_workers)
        self._run_lock = threading.Lock()
        self._reset()

    def _reset(self) -> None:
        self._stack: Set[str] = set()
        self._resolved: Dict[str, ResolvedDependency] = {}
        self._constraints: Dict[str, List[str]] = {}
        self._tags: Dict[str, List[VersionTag]] = {}
        self._tag_errors: Dict[str, VCSFetchError] = {}

    def fetch_url(self, address: str) -> str:
        return self.fetch_url_overrides.get(address) or address_to_fetch_url(address)

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    def resolve_all(self, manifest: Manifest, package_root: Union[str, Path]) -> List[ResolvedDependency]:
        """
        Resolve every dependency of a manifest.

        Args:
            manifest: Root manifest
            package_root: Directory holding the root manifest (base for local paths)

        Returns:
            Resolved dependencies sorted by address (local first on ties)

        Raises:
            DependencyResolveError: missing local path, fetch or cache failure
            TransitiveDependencyError: cycle or unsatisfiable diamond
        """
        if not self._run_lock.acquire(blocking=False):
            raise DependencyResolveError("Dependency resolution already in progress on this resolver")

        try:
            self._reset()

            local_resolved = [
                resolve_local_dependency(dep, package_root)
                for dep in manifest.local_dependencies.values()
            ]

            remote_deps = manifest.remote_dependencies
            if remote_deps:
                self._prefetch_tags(dep.address for dep in remote_deps.values())
                self._walk(remote_deps)

            results = local_resolved + list(self._resolved.values())
            return sorted(results, key=lambda d: (d.address, not d.is_local))
        finally:
            self._reset()
            self._run_lock.release()

    # =========================================================================
    # TAG LISTS
    # =========================================================================

    def _prefetch_tags(self, addresses) -> None:
        """List tags of the given addresses in parallel; failures wait until needed."""
        pending = sorted(set(addresses))
        if len(pending) < 2:
            return

        def fetch(address: str):
            try:
                return address, self.vcs.list_version_tags(self.fetch_url(address)), None
            except VCSFetchError as e:
                return address, None, e

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(pending))) as executor:
            for address, tags, error in executor.map(fetch, pending):
                if error is not None:
                    logger.debug(f"Prefetching tags for {address} failed: {error}")
                    self._tag_errors[address] = error
                else:
                    self._tags[address] = tags

    def _version_tags(self, address: str) -> List[VersionTag]:
        """Tag list of an address, fetched at most once per run."""
        if address in self._tags:
            return self._tags[address]

        error = self._tag_errors.pop(address, None)
        try:
            if error is not None:
                raise error
            tags = self.vcs.list_version_tags(self.fetch_url(address))
        except VCSFetchError as e:
            logger.warning(f"Listing tags for {address} failed: {e}")
            raise DependencyResolveError(f"Failed to list tags for '{address}': {e}") from e

        logger.debug(f"{address}: {len(tags)} version tags")
        self._tags[address] = tags
        return tags

    # =========================================================================
    # FETCH
    # =========================================================================

    def _fetch(self, alias: str, address: str, version: str, tag_name: str) -> ResolvedDependency:
        """Materialize a selected version, from the cache when present."""
        try:
            if self.cache.is_cached(address, version):
                logger.debug(f"Cache hit for {address}@{version}")
                return _build_resolved(alias, address, self.cache.path(address, version), version)

            tmp_dir = tempfile.mkdtemp(prefix="mthds_clone_")
            try:
                checkout = Path(tmp_dir) / "pkg"
                self.vcs.fetch_at_tag(self.fetch_url(address), tag_name, checkout)
                cached_path = self.cache.store(checkout, address, version)
            finally:
                shutil.rmtree(tmp_dir, ignore_errors=True)
        except (VCSFetchError, PackageCacheError, OSError) as e:
            logger.warning(f"Fetching {address}@{version} failed: {e}")
            raise DependencyResolveError(
                f"Failed to fetch/cache dependency '{alias}' ({address}@{version}): {e}"
            ) from e

        return _build_resolved(alias, address, cached_path, version)

    def _resolve_single(self, dep: PackageDependency) -> ResolvedDependency:
        tags = self._version_tags(dep.address)
        try:
            selected, tag_name = resolve_version(tags, dep.version)
        except VersionResolutionError as e:
            raise DependencyResolveError(
                f"Failed to resolve remote dependency '{dep.alias}' ({dep.address}): {e}"
            ) from e

        logger.info(f"Selected {dep.address}@{selected} for '{dep.version}'")
        return self._fetch(dep.alias, dep.address, str(selected), tag_name)

    def _resolve_multiple(self, alias: str, address: str, constraints: List[str]) -> ResolvedDependency:
        tags = self._version_tags(address)
        try:
            parsed = [parse_constraint(c) for c in constraints]
        except InvalidConstraintError as e:
            raise DependencyResolveError(f"Invalid constraint for '{address}': {e}") from e

        selected = select_minimum_for_all([t.version for t in tags], parsed)
        if selected is None:
            logger.warning(f"No version of {address} satisfies {', '.join(constraints)}")
            raise TransitiveDependencyError(
                f"No version of '{address}' satisfies all constraints: {', '.join(constraints)}"
            )

        logger.info(f"Selected {address}@{selected} for {', '.join(constraints)}")
        return self._fetch(alias, address, str(selected), find_tag_name(tags, selected))

    # =========================================================================
    # WALK
    # =========================================================================

    def _remove_stale_constraints(self, old_manifest: Optional[Manifest]) -> None:
        """Drop constraints a replaced version contributed, and orphaned entries."""
        if old_manifest is None:
            return

        for old_sub in old_manifest.remote_dependencies.values():
            constraints = self._constraints.get(old_sub.address)
            if not constraints or old_sub.version not in constraints:
                continue
            constraints.remove(old_sub.version)

            if not constraints:
                del self._constraints[old_sub.address]
                orphan = self._resolved.pop(old_sub.address, None)
                if orphan is not None:
                    logger.debug(f"Dropped {orphan.address}@{orphan.version}, no longer required")
                    self._remove_stale_constraints(orphan.manifest)

    def _recurse(self, resolved: ResolvedDependency) -> None:
        if resolved.manifest is None:
            return
        subs = resolved.manifest.remote_dependencies
        if subs:
            self._walk(subs)

    def _walk(self, deps: Mapping[str, PackageDependency]) -> None:
        for dep in deps.values():
            if dep.is_local:
                continue

            address = dep.address
            if address in self._stack:
                raise TransitiveDependencyError(
                    f"Dependency cycle detected: '{address}' is already on the resolution stack"
                )

            self._constraints.setdefault(address, []).append(dep.version)

            existing = self._resolved.get(address)
            if existing is not None:
                if existing.version is not None and satisfies(
                    parse_version(existing.version), parse_constraint(dep.version)
                ):
                    continue

                logger.info(
                    f"{address}@{existing.version} does not satisfy '{dep.version}', re-resolving"
                )
                self._remove_stale_constraints(existing.manifest)
                resolved = self._resolve_multiple(dep.alias, address, self._constraints[address])
            else:
                self._stack.add(address)
                try:
                    if len(self._constraints[address]) > 1:
                        resolved = self._resolve_multiple(dep.alias, address, self._constraints[address])
                    else:
                        resolved = self._resolve_single(dep)
                finally:
                    self._stack.discard(address)

            self._resolved[address] = resolved
            self._stack.add(address)
            try:
                self._recurse(resolved)
            finally:
                self._stack.discard(address)


def resolve_all_dependencies(
    manifest: Manifest,
    package_root: Union[str, Path],
    cache: Optional[PackageCache] = None,
    vcs: Optional[VCSResolver] = None,
    fetch_url_overrides: Optional[Mapping[str, str]] = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> List[ResolvedDependency]:
    """Resolve a manifest's dependencies with a fresh resolver."""
    resolver = DependencyResolver(
        vcs=vcs,
        cache=cache,
        fetch_url_overrides=fetch_url_overrides,
        max_workers=max_workers,
    )
    return resolver.resolve_all(manifest, package_root)
