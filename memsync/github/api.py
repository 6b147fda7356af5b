"""Minimal GitHub REST client used to bootstrap the backup repository."""

import logging
from typing import Any, Dict, Optional

import httpx

from memsync.protocols import (
    NotAuthenticatedError,
    RemoteUnavailableError,
    RepositoryMissingError,
    TokenProvider,
)

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"
REPO_DESCRIPTION = "memsync memory storage - persistent context across sessions"


class GitHubClient:
    """Identity lookup, repository existence check and repository creation.

    Args:
        credentials: Supplies the bearer token for every request.
        api_url: REST API base URL.
        http: Module or client exposing ``request`` (defaults to ``httpx``).
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        credentials: TokenProvider,
        api_url: str = "https://api.github.com",
        http=None,
        timeout: float = 30.0,
    ):
        self.credentials = credentials
        self.api_url = api_url.rstrip("/")
        self._http = http or httpx
        self.timeout = timeout

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None):
        headers = {
            "Authorization": f"Bearer {self.credentials.get_token()}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
        }
        try:
            response = self._http.request(
                method, f"{self.api_url}{path}", headers=headers, json=json, timeout=self.timeout
            )
        except httpx.HTTPError as e:
            raise RemoteUnavailableError(f"Cannot reach {self.api_url}: {e}") from e

        if response.status_code == 401:
            raise NotAuthenticatedError("GitHub rejected the token (HTTP 401)")
        return response

    @staticmethod
    def _error(response, action: str) -> RemoteUnavailableError:
        return RemoteUnavailableError(
            f"{action} failed: HTTP {response.status_code} {response.text[:200]}",
            status_code=response.status_code,
        )

    def get_login(self) -> str:
        """Login name of the authenticated user."""
        response = self._request("GET", "/user")
        if response.status_code != 200:
            raise self._error(response, "User lookup")
        login = response.json().get("login")
        if not login:
            raise RemoteUnavailableError("User lookup returned no login")
        return login

    def get_repo(self, owner: str, name: str) -> Dict[str, Any]:
        """Repository metadata.

        Raises:
            RepositoryMissingError: if the repository does not exist.
        """
        response = self._request("GET", f"/repos/{owner}/{name}")
        if response.status_code == 404:
            raise RepositoryMissingError(f"{owner}/{name}")
        if response.status_code != 200:
            raise self._error(response, "Repository lookup")
        return response.json()

    def repo_exists(self, owner: str, name: str) -> bool:
        try:
            self.get_repo(owner, name)
        except RepositoryMissingError:
            return False
        return True

    def create_repo(self, name: str, description: str = REPO_DESCRIPTION) -> Dict[str, Any]:
        """Create a private repository with an initialised default branch."""
        response = self._request(
            "POST",
            "/user/repos",
            json={
                "name": name,
                "private": True,
                "description": description,
                "auto_init": True,
            },
        )
        if response.status_code not in (200, 201):
            raise self._error(response, "Repository creation")
        data = response.json()
        logger.info(f"Created private repository: {data.get('full_name', name)}")
        return data
