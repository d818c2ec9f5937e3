"""
GitHub API client infrastructure for mthds.

Used by remote package discovery to browse a repository without cloning it:
- Uses `gh` CLI when available for authentication
- Falls back to requests with token
- Handles rate limiting with exponential backoff
"""

import base64
import binascii
import subprocess
import json
import os
import time
import logging
from dataclasses import dataclass
from typing import Optional, List, Dict, Any

import requests

logger = logging.getLogger(__name__)

API_ROOT = "https://api.github.com"
USER_AGENT = "mthds"


@dataclass
class GitHubRepo:
    """The repository fields discovery needs."""
    owner: str
    name: str
    full_name: str
    description: Optional[str]
    is_private: bool
    default_branch: str

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> 'GitHubRepo':
        """Create from GitHub API response."""
        owner = data.get('owner', {})
        return cls(
            owner=owner.get('login', '') if isinstance(owner, dict) else str(owner),
            name=data.get('name', ''),
            full_name=data.get('full_name', ''),
            description=data.get('description'),
            is_private=data.get('private', False),
            default_branch=data.get('default_branch', 'main'),
        )


@dataclass
class ContentEntry:
    """One item of a repository directory listing."""
    name: str
    path: str
    type: str  # "file" or "dir"
    download_url: Optional[str] = None

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> 'ContentEntry':
        return cls(
            name=data.get('name', ''),
            path=data.get('path', ''),
            type=data.get('type', 'file'),
            download_url=data.get('download_url'),
        )


class GitHubClient:
    """
    GitHub API client with rate limiting.

    Uses `gh` CLI for authentication when available,
    with fallback to direct API calls with token.

    Example:
        client = GitHubClient()
        repo = client.get_repo("owner", "repo")
        for entry in client.list_contents("owner", "repo", "methods"):
            print(entry.path)
    """

    def __init__(
        self,
        token: Optional[str] = None,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        use_gh_cli: Optional[bool] = None,
    ):
        """
        Initialize GitHubClient.

        Args:
            token: GitHub token (defaults to MTHDS_GITHUB_TOKEN or GITHUB_TOKEN env var)
            max_retries: Maximum retry attempts for rate-limited requests
            base_delay: Base delay for exponential backoff
            max_delay: Maximum delay between retries
            use_gh_cli: Force gh CLI on/off (auto-detected when None)
        """
        self.token = token or os.environ.get('MTHDS_GITHUB_TOKEN') or os.environ.get('GITHUB_TOKEN')
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._use_gh_cli = self._check_gh_cli() if use_gh_cli is None else use_gh_cli

    def _check_gh_cli(self) -> bool:
        """Check if gh CLI is available and authenticated."""
        try:
            result = subprocess.run(
                ['gh', 'auth', 'status'],
                capture_output=True,
                text=True,
                timeout=10
            )
            return result.returncode == 0
        except (subprocess.TimeoutExpired, FileNotFoundError):
            return False

    def _gh_api(self, endpoint: str) -> Optional[Any]:
        """Call GitHub API using gh CLI."""
        try:
            result = subprocess.run(
                ['gh', 'api', endpoint],
                capture_output=True,
                text=True,
                timeout=30
            )
            if result.returncode == 0 and result.stdout:
                return json.loads(result.stdout)
            return None
        except (subprocess.TimeoutExpired, json.JSONDecodeError, FileNotFoundError) as e:
            logger.debug(f"gh api call failed for {endpoint}: {e}")
            return None

    def _headers(self) -> Dict[str, str]:
        headers = {
            'Accept': 'application/vnd.github.v3+json',
            'User-Agent': USER_AGENT
        }
        if self.token:
            headers['Authorization'] = f'token {self.token}'
        return headers

    def _backoff(self, attempt: int) -> None:
        delay = min(self.base_delay * (2 ** attempt), self.max_delay)
        logger.info(f"Rate limited, waiting {delay}s (attempt {attempt + 1})")
        time.sleep(delay)

    def _requests_api(self, endpoint: str) -> Optional[Any]:
        """Call GitHub API using requests library."""
        url = f"{API_ROOT}/{endpoint}"

        for attempt in range(self.max_retries):
            try:
                response = requests.get(url, headers=self._headers(), timeout=30)

                if response.status_code == 200:
                    return response.json()

                if response.status_code in (403, 429):
                    reset_time = response.headers.get('X-RateLimit-Reset')
                    if reset_time:
                        wait_time = int(reset_time) - int(time.time())
                        if 0 < wait_time < self.max_delay:
                            logger.info(f"Rate limited, waiting {wait_time}s")
                            time.sleep(wait_time)
                            continue
                    self._backoff(attempt)
                    continue

                if response.status_code == 404:
                    return None

                logger.warning(f"GitHub API error {response.status_code} for {endpoint}")
                return None

            except requests.RequestException as e:
                logger.warning(f"GitHub API request failed: {e}")
                if attempt < self.max_retries - 1:
                    self._backoff(attempt)
                continue

        return None

    def _api(self, endpoint: str) -> Optional[Any]:
        """Call GitHub API using best available method."""
        if self._use_gh_cli:
            result = self._gh_api(endpoint)
            if result is not None:
                return result

        return self._requests_api(endpoint)

    def get_repo(self, owner: str, name: str) -> Optional[GitHubRepo]:
        """
        Get repository metadata.

        Args:
            owner: Repository owner
            name: Repository name

        Returns:
            GitHubRepo or None if not found
        """
        data = self._api(f"repos/{owner}/{name}")
        if isinstance(data, dict):
            return GitHubRepo.from_api_response(data)
        return None

    def list_contents(self, owner: str, name: str, path: str = "") -> List[ContentEntry]:
        """
        List a directory of the default branch.

        Returns:
            Entries of the directory; empty if it does not exist or is a file
        """
        endpoint = f"repos/{owner}/{name}/contents"
        if path:
            endpoint = f"{endpoint}/{path.strip('/')}"
        data = self._api(endpoint)
        if isinstance(data, list):
            return [ContentEntry.from_api_response(item) for item in data]
        return []

    def fetch_file_text(self, owner: str, name: str, path: str) -> Optional[str]:
        """
        Fetch a file's text from the default branch.

        Returns:
            The decoded UTF-8 text, or None if the file is missing or not text
        """
        data = self._api(f"repos/{owner}/{name}/contents/{path.strip('/')}")
        if not isinstance(data, dict) or data.get('type', 'file') != 'file':
            return None

        content = data.get('content')
        if content is not None and data.get('encoding') == 'base64':
            try:
                return base64.b64decode(content).decode('utf-8')
            except (binascii.Error, UnicodeDecodeError) as e:
                logger.warning(f"Cannot decode {path}: {e}")
                return None

        # Large files come without inline content
        download_url = data.get('download_url')
        if not download_url:
            return None
        try:
            response = requests.get(download_url, headers=self._headers(), timeout=30)
        except requests.RequestException as e:
            logger.warning(f"Download failed for {path}: {e}")
            return None
        if response.status_code != 200:
            logger.warning(f"Download failed for {path}: HTTP {response.status_code}")
            return None
        return response.text
