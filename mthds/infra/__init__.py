"""
Infrastructure layer for mthds.

Contains abstractions for external systems:
- GitClient: Git command execution (ls-remote, shallow clone)
- GitHubClient: GitHub API access for remote package discovery

These provide clean interfaces that can be mocked for testing.
"""

from .git_client import GitClient, RemoteRef
from .github_client import ContentEntry, GitHubClient, GitHubRepo

__all__ = [
    'GitClient',
    'RemoteRef',
    'ContentEntry',
    'GitHubClient',
    'GitHubRepo',
]
