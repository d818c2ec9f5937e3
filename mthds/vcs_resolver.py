"""
Version-control resolution: address -> fetch URL -> version tags -> checkout.

A package address is "hostname/path" (e.g. github.com/org/repo). The
resolver turns it into an HTTPS clone URL, lists the remote's semver tags,
picks one with Minimal Version Selection and shallow-clones it.
"""

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union
import logging

from .exceptions import InvalidConstraintError, VCSFetchError, VersionResolutionError
from .infra.git_client import GitClient
from .semver import SemVer, parse_constraint, parse_version_tag, select_minimum

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VersionTag:
    """A remote tag that parses as semver, with its original name."""
    version: SemVer
    tag_name: str


def address_to_fetch_url(address: str) -> str:
    """Map a package address to its HTTPS clone URL."""
    url = f"https://{address}"
    if not url.endswith('.git'):
        url = f"{url}.git"
    return url


def parse_version_tags(tag_names: Sequence[str]) -> List[VersionTag]:
    """Keep tags that parse as semver (optional leading 'v'); ignore the rest."""
    tags = []
    for name in tag_names:
        version = parse_version_tag(name)
        if version is not None:
            tags.append(VersionTag(version=version, tag_name=name))
    return tags


def resolve_version(tags: Sequence[VersionTag], constraint: str) -> Tuple[SemVer, str]:
    """
    Select the minimum tagged version satisfying a constraint.

    Returns:
        (version, tag_name)

    Raises:
        VersionResolutionError: no tags, invalid constraint, or no match
    """
    if not tags:
        raise VersionResolutionError(
            f"No version tags available to satisfy constraint '{constraint}'"
        )

    try:
        parsed = parse_constraint(constraint)
    except InvalidConstraintError as e:
        raise VersionResolutionError(f"Invalid version constraint '{constraint}': {e}") from e

    selected = select_minimum([t.version for t in tags], parsed)
    if selected is None:
        available = [str(v) for v in sorted(t.version for t in tags)]
        raise VersionResolutionError(
            f"No version satisfying '{constraint}' found among: {', '.join(available)}",
            available=available,
        )

    return selected, find_tag_name(tags, selected)


def find_tag_name(tags: Sequence[VersionTag], version: SemVer) -> str:
    """Return the original tag name for a version (first match wins)."""
    for tag in tags:
        if tag.version == version:
            return tag.tag_name
    raise VersionResolutionError(f"Version {version} not found in tag list")


class VCSResolver:
    """
    Remote repository access used by dependency resolution.

    Example:
        vcs = VCSResolver()
        url = address_to_fetch_url("github.com/org/repo")
        tags = vcs.list_version_tags(url)
        version, tag = resolve_version(tags, "^1.0.0")
        vcs.fetch_at_tag(url, tag, "/tmp/checkout")
    """

    def __init__(self, git: Optional[GitClient] = None):
        self.git = git or GitClient()

    def list_version_tags(self, url: str) -> List[VersionTag]:
        """List remote tags that are valid semver versions."""
        tag_names = self.git.ls_remote_tags(url)
        tags = parse_version_tags(tag_names)
        logger.debug(f"{url}: {len(tags)} version tags out of {len(tag_names)} tags")
        return tags

    def fetch_at_tag(self, url: str, tag_name: str, destination: Union[str, Path]) -> None:
        """
        Shallow-clone one tagged revision into destination.

        On failure nothing is left at destination if this call created it.
        """
        dest = Path(destination)
        existed = dest.exists()
        try:
            self.git.clone_at_ref(url, tag_name, str(dest))
        except VCSFetchError:
            if not existed and dest.exists():
                shutil.rmtree(dest, ignore_errors=True)
            raise
