"""
Package discovery, locally and on GitHub.

Locally, a bundle belongs to the package whose METHODS.toml is the nearest
one above it (without crossing a git repository boundary).

Remotely, a repository publishes installable packages as directories under
``methods/`` (or ``<subpath>/methods/``), each with its own METHODS.toml
and .mthds bundles:

    org/repo/
        methods/
            contract_review/
                METHODS.toml
                review.mthds
"""

import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union
import logging

from .domain import MANIFEST_FILENAME, Manifest, ManifestSchema
from .exceptions import ManifestError, ManifestValidationError
from .infra.github_client import GitHubClient
from .manifest import load_manifest, parse_manifest

logger = logging.getLogger(__name__)

METHODS_DIR = "methods"
BUNDLE_SUFFIX = ".mthds"
GITHUB_HOST_PREFIX = "github.com/"
DEFAULT_MAX_WORKERS = 5

_SEGMENT_RE = re.compile(r'^[a-zA-Z0-9._-]+$')


def find_package_manifest(bundle_path: Union[str, Path]) -> Optional[Manifest]:
    """
    Walk up from a bundle file's directory to the nearest METHODS.toml.

    Stops at a directory containing .git, or at the filesystem root.

    Raises:
        ManifestError: the manifest found does not parse or validate
    """
    current = Path(bundle_path).resolve().parent

    while True:
        manifest_path = current / MANIFEST_FILENAME
        if manifest_path.is_file():
            return load_manifest(manifest_path)

        if (current / '.git').exists():
            return None

        if current.parent == current:
            return None
        current = current.parent


# =============================================================================
# REMOTE DISCOVERY
# =============================================================================

@dataclass(frozen=True)
class RepoAddress:
    """org/repo with an optional path to the directory holding methods/."""
    org: str
    repo: str
    subpath: Optional[str] = None

    @property
    def methods_path(self) -> str:
        return f"{self.subpath}/{METHODS_DIR}" if self.subpath else METHODS_DIR

    def __str__(self) -> str:
        base = f"{self.org}/{self.repo}"
        return f"{base}/{self.subpath}" if self.subpath else base


def parse_repo_address(text: str) -> RepoAddress:
    """
    Parse "org/repo[/subpath]". A leading "github.com/" is accepted.

    Raises:
        ValueError: fewer than two segments or invalid characters
    """
    raw = text.strip()
    if raw.startswith(GITHUB_HOST_PREFIX):
        raw = raw[len(GITHUB_HOST_PREFIX):]
        logger.warning(f"Stripped 'github.com/' prefix, use '{raw}' directly")
    raw = raw.rstrip('/')

    segments = raw.split('/')
    if len(segments) < 2:
        raise ValueError(
            f"Invalid address '{text}': expected at least org/repo (e.g. pipelex/cookbook)"
        )
    for segment in segments:
        if not _SEGMENT_RE.match(segment):
            raise ValueError(
                f"Invalid address segment '{segment}': only alphanumeric, dot, dash and "
                f"underscore are allowed"
            )

    subpath = '/'.join(segments[2:]) or None
    return RepoAddress(org=segments[0], repo=segments[1], subpath=subpath)


@dataclass
class DiscoveredPackage:
    """An installable package found in a repository."""
    name: str
    manifest: Manifest
    raw_manifest: str
    files: List[Tuple[str, str]] = field(default_factory=list)  # (relative path, content)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'address': self.manifest.address,
            'version': self.manifest.version,
            'description': self.manifest.description,
            'files': [path for path, _ in self.files],
        }


@dataclass
class SkippedPackage:
    """A methods/ directory that could not be used, with the reasons."""
    dir_name: str
    errors: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {'dir_name': self.dir_name, 'errors': list(self.errors)}


@dataclass
class DiscoveryResult:
    packages: List[DiscoveredPackage]
    skipped: List[SkippedPackage]
    repo_name: str
    is_public: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'repo_name': self.repo_name,
            'is_public': self.is_public,
            'packages': [p.to_dict() for p in self.packages],
            'skipped': [s.to_dict() for s in self.skipped],
        }


def _list_bundle_paths(client: GitHubClient, address: RepoAddress, base_path: str) -> List[str]:
    """Every .mthds file under base_path, depth-first."""
    paths = []
    stack = [base_path]
    while stack:
        directory = stack.pop()
        for entry in client.list_contents(address.org, address.repo, directory):
            if entry.type == 'dir':
                stack.append(entry.path)
            elif entry.type == 'file' and entry.name.endswith(BUNDLE_SUFFIX):
                paths.append(entry.path)
    return sorted(paths)


def _scan_package_dir(
    client: GitHubClient,
    address: RepoAddress,
    dir_name: str,
) -> Tuple[Optional[DiscoveredPackage], Optional[SkippedPackage]]:
    dir_path = f"{address.methods_path}/{dir_name}"
    manifest_path = f"{dir_path}/{MANIFEST_FILENAME}"

    raw = client.fetch_file_text(address.org, address.repo, manifest_path)
    if raw is None:
        return None, SkippedPackage(dir_name, [f"No {MANIFEST_FILENAME} found at {manifest_path}"])

    try:
        manifest = parse_manifest(raw, ManifestSchema.DECLARATIVE)
    except ManifestValidationError as e:
        return None, SkippedPackage(dir_name, list(e.errors) or [str(e)])
    except ManifestError as e:
        return None, SkippedPackage(dir_name, [str(e)])

    files = []
    for path in _list_bundle_paths(client, address, dir_path):
        content = client.fetch_file_text(address.org, address.repo, path)
        if content is None:
            return None, SkippedPackage(dir_name, [f"Cannot download {path}"])
        files.append((path[len(dir_path) + 1:], content))

    return DiscoveredPackage(
        name=manifest.name or dir_name,
        manifest=manifest,
        raw_manifest=raw,
        files=files,
    ), None


def _discover_one(
    client: GitHubClient,
    address: RepoAddress,
    dir_name: str,
) -> Tuple[Optional[DiscoveredPackage], Optional[SkippedPackage]]:
    try:
        return _scan_package_dir(client, address, dir_name)
    except Exception as e:
        logger.error(f"Failed to scan {dir_name}: {e}")
        return None, SkippedPackage(dir_name, [f"{type(e).__name__}: {e}"])


def discover_remote_packages(
    address: Union[str, RepoAddress],
    client: Optional[GitHubClient] = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> DiscoveryResult:
    """
    Find installable packages under methods/ of a GitHub repository.

    Each package directory is handled independently; one that has no
    manifest, an invalid manifest or unreadable bundles becomes a skipped
    entry instead of failing the whole scan.

    Args:
        address: "org/repo[/subpath]" or a parsed RepoAddress
        client: GitHub client (creates default if None)
        max_workers: Package directories scanned concurrently

    Raises:
        ValueError: invalid address
        LookupError: repository not found, or no methods/ directory
    """
    if isinstance(address, str):
        address = parse_repo_address(address)
    client = client or GitHubClient()
    repo_name = f"{address.org}/{address.repo}"

    repo = client.get_repo(address.org, address.repo)
    if repo is None:
        raise LookupError(
            f"Repository '{repo_name}' not found on GitHub. If it is private, set "
            f"GITHUB_TOKEN or log in with the gh CLI."
        )

    entries = client.list_contents(address.org, address.repo, address.methods_path)
    dir_names = sorted(e.name for e in entries if e.type == 'dir')
    if not dir_names:
        raise LookupError(f"No packages found in {METHODS_DIR}/ of {address}")

    packages: List[DiscoveredPackage] = []
    skipped: List[SkippedPackage] = []
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        results = executor.map(lambda name: _discover_one(client, address, name), dir_names)
        for package, skip in results:
            if package is not None:
                packages.append(package)
            if skip is not None:
                logger.info(f"Skipped {skip.dir_name}: {'; '.join(skip.errors)}")
                skipped.append(skip)

    logger.info(f"Discovered {len(packages)} packages in {address} ({len(skipped)} skipped)")
    return DiscoveryResult(
        packages=packages,
        skipped=skipped,
        repo_name=repo_name,
        is_public=not repo.is_private,
    )
