"""Shared fixtures: manifest builders and in-memory stand-ins for git and GitHub."""

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from mthds.exceptions import VCSFetchError
from mthds.infra.github_client import ContentEntry, GitHubRepo
from mthds.package_cache import PackageCache
from mthds.vcs_resolver import parse_version_tags


def manifest_toml(
    address: str,
    version: str = "1.0.0",
    description: str = "Test package",
    dependencies: Optional[Dict[str, Dict[str, str]]] = None,
    exports: Optional[Dict[str, List[str]]] = None,
    extra_package: str = "",
) -> str:
    """METHODS.toml text for tests."""
    lines = [
        "[package]",
        f'address = "{address}"',
        f'version = "{version}"',
        f'description = "{description}"',
    ]
    if extra_package:
        lines.append(extra_package)
    for alias, entry in (dependencies or {}).items():
        lines.append("")
        lines.append(f"[dependencies.{alias}]")
        for key, value in entry.items():
            lines.append(f'{key} = "{value}"')
    for domain, pipes in (exports or {}).items():
        lines.append("")
        lines.append(f"[exports.{domain}]")
        lines.append("pipes = [" + ", ".join(f'"{p}"' for p in pipes) + "]")
    return "\n".join(lines) + "\n"


def write_tree(root: Path, files: Dict[str, str]) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for rel_path, content in files.items():
        target = root / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
    return root


class FakeVCS:
    """
    Repository access backed by a dict instead of git.

    ``repos`` maps address -> {tag name -> {relative path -> content}}.
    Fetched checkouts get a .git directory like a real clone.
    """

    def __init__(self, repos: Dict[str, Dict[str, Dict[str, str]]], failing: Tuple[str, ...] = ()):
        self.repos = repos
        self.failing = set(failing)
        self.list_calls: List[str] = []
        self.fetch_calls: List[Tuple[str, str]] = []

    @staticmethod
    def address_of(url: str) -> str:
        address = url[len("https://"):] if url.startswith("https://") else url
        return address[:-len(".git")] if address.endswith(".git") else address

    def list_version_tags(self, url: str):
        address = self.address_of(url)
        self.list_calls.append(address)
        if address in self.failing or address not in self.repos:
            raise VCSFetchError(f"git ls-remote failed: repository '{url}' not found")
        return parse_version_tags(list(self.repos[address]))

    def fetch_at_tag(self, url: str, tag_name: str, destination) -> None:
        address = self.address_of(url)
        self.fetch_calls.append((address, tag_name))
        if address in self.failing or tag_name not in self.repos.get(address, {}):
            raise VCSFetchError(f"git clone failed: no tag {tag_name}")
        dest = Path(destination)
        write_tree(dest, self.repos[address][tag_name])
        write_tree(dest / ".git", {"HEAD": "ref: refs/heads/main\n"})


def package_files(address: str, version: str, dependencies=None, exports=None, bundles=None) -> Dict[str, str]:
    """Files of one tagged package version."""
    files = {"METHODS.toml": manifest_toml(address, version, dependencies=dependencies, exports=exports)}
    files.update(bundles or {})
    return files


@pytest.fixture
def cache(tmp_path):
    return PackageCache(tmp_path / "cache")


class FakeGitHub:
    """GitHubClient stand-in serving a flat {path: content} repository; bytes are decoded as UTF-8."""

    def __init__(self, files, private=False, exists=True):
        self.files = files
        self.private = private
        self.exists = exists

    def get_repo(self, owner, name):
        if not self.exists:
            return None
        return GitHubRepo(owner, name, f"{owner}/{name}", None, self.private, "main")

    def list_contents(self, owner, name, path=""):
        prefix = f"{path.strip('/')}/" if path else ""
        children = {}
        for file_path in self.files:
            if not file_path.startswith(prefix):
                continue
            head, _, rest = file_path[len(prefix):].partition("/")
            children[head] = "dir" if rest else "file"
        return [ContentEntry(name=n, path=f"{prefix}{n}", type=t) for n, t in sorted(children.items())]

    def fetch_file_text(self, owner, name, path):
        content = self.files.get(path)
        if isinstance(content, bytes):
            return content.decode("utf-8")
        return content
