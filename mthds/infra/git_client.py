"""
Git client infrastructure for mthds.

Provides a clean abstraction over git command execution.
All git operations go through this client, making them:
- Easy to mock for testing
- Consistent in error handling
- Time-bounded (every call carries a timeout)

Unlike a status-reporting client, a package manager cannot continue on a
failed fetch, so failures raise:
- GitNotFoundError when the git executable is missing
- VCSTimeoutError when a call exceeds its timeout
- VCSFetchError for any other non-zero exit
"""

import subprocess
from dataclasses import dataclass
from typing import List, Optional
import logging

from ..exceptions import GitNotFoundError, VCSFetchError, VCSTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_LS_REMOTE_TIMEOUT = 60
DEFAULT_CLONE_TIMEOUT = 120

TAG_REF_PREFIX = "refs/tags/"
PEELED_SUFFIX = "^{}"


@dataclass
class RemoteRef:
    """One line of `git ls-remote` output."""
    commit: str
    ref: str


class GitClient:
    """
    Abstraction over git commands.

    Example:
        client = GitClient()
        tags = client.ls_remote_tags("https://github.com/org/repo.git")
        client.clone_at_ref("https://github.com/org/repo.git", "v1.0.0", "/tmp/repo")
    """

    def __init__(
        self,
        ls_remote_timeout: float = DEFAULT_LS_REMOTE_TIMEOUT,
        clone_timeout: float = DEFAULT_CLONE_TIMEOUT,
    ):
        """
        Initialize GitClient.

        Args:
            ls_remote_timeout: Timeout in seconds for remote ref listing
            clone_timeout: Timeout in seconds for clones
        """
        self.ls_remote_timeout = ls_remote_timeout
        self.clone_timeout = clone_timeout

    def _run(self, args: List[str], timeout: float, cwd: Optional[str] = None) -> str:
        """
        Run a git command.

        Args:
            args: Arguments after "git" (e.g. ["ls-remote", "--tags", url])
            timeout: Seconds before the command is killed
            cwd: Working directory

        Returns:
            stdout of the command

        Raises:
            GitNotFoundError, VCSTimeoutError, VCSFetchError
        """
        cmd = ['git'] + args
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=timeout
            )
        except FileNotFoundError as e:
            raise GitNotFoundError("git is not installed or not found on PATH") from e
        except subprocess.TimeoutExpired as e:
            logger.warning(f"Git command timed out after {timeout}s: {' '.join(cmd)}")
            raise VCSTimeoutError(f"Timed out running: {' '.join(cmd)}") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise VCSFetchError(f"git {args[0]} failed: {stderr or f'exit code {result.returncode}'}")

        return result.stdout or ""

    def ls_remote(self, url: str, tags_only: bool = True) -> List[RemoteRef]:
        """
        List refs of a remote repository without cloning it.

        Args:
            url: Remote URL
            tags_only: Restrict to refs/tags

        Returns:
            List of RemoteRef objects
        """
        args = ['ls-remote']
        if tags_only:
            args.append('--tags')
        args.append(url)

        output = self._run(args, timeout=self.ls_remote_timeout)

        refs = []
        for line in output.strip().split('\n'):
            if not line.strip():
                continue
            parts = line.split('\t')
            if len(parts) < 2:
                continue
            refs.append(RemoteRef(commit=parts[0].strip(), ref=parts[1].strip()))
        return refs

    def ls_remote_tags(self, url: str) -> List[str]:
        """
        List tag names of a remote repository.

        Peeled entries ("v1.0.0^{}") are dropped; the tag itself is kept.
        """
        names = []
        for remote_ref in self.ls_remote(url, tags_only=True):
            ref = remote_ref.ref
            if ref.endswith(PEELED_SUFFIX):
                continue
            if ref.startswith(TAG_REF_PREFIX):
                ref = ref[len(TAG_REF_PREFIX):]
            names.append(ref)
        return names

    def clone_at_ref(self, url: str, ref: str, destination: str, depth: int = 1) -> None:
        """
        Shallow-clone a single branch or tag.

        Args:
            url: Remote URL
            ref: Tag or branch name
            destination: Target directory (must not exist or be empty)
            depth: History depth
        """
        logger.debug(f"Cloning {url} at {ref} into {destination}")
        self._run(
            ['clone', '--depth', str(depth), '--branch', ref, url, destination],
            timeout=self.clone_timeout,
        )
