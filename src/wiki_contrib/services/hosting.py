"""Gateway to the repository host that receives contributions.

The orchestrator depends only on the :class:`HostingGateway` protocol.
:class:`GitHubGateway` implements it against the GitHub REST API for the one
repository configured in settings, authenticating with the service's own
write credential.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from wiki_contrib.core.errors import ConfigurationError
from wiki_contrib.core.settings import settings

logger = logging.getLogger(__name__)

# HTTP status codes
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409
HTTP_UNPROCESSABLE = 422

GITHUB_API_VERSION = "2022-11-28"


class GatewayError(RuntimeError):
    """A hosting API call failed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BranchExistsError(GatewayError):
    """The branch name is already taken."""


class RevisionConflictError(GatewayError):
    """The file changed since its revision was read."""


@dataclass(frozen=True)
class PullRequestRef:
    """Identity of an opened pull request."""

    number: int
    url: str


class HostingGateway(Protocol):
    """Write operations the contribution pipeline needs from a host."""

    @property
    def default_branch(self) -> str: ...

    async def get_default_branch_head(self) -> str: ...

    async def create_branch(self, name: str, from_sha: str) -> None: ...

    async def get_file_revision(self, path: str, branch: str) -> str | None: ...

    async def commit_file(
        self,
        branch: str,
        path: str,
        content: str,
        message: str,
        expected_revision: str | None = None,
    ) -> None: ...

    async def open_pull_request(
        self, title: str, body: str, head: str, base: str
    ) -> PullRequestRef: ...

    async def add_labels(self, pr_number: int, labels: list[str]) -> None: ...


class GitHubGateway:
    """GitHub REST implementation of :class:`HostingGateway`."""

    def __init__(
        self,
        token: str | None,
        *,
        owner: str | None = None,
        repo: str | None = None,
        default_branch: str | None = None,
        api_url: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not token:
            raise ConfigurationError("Hosting write credential is not configured")
        self._token = token
        self._owner = owner or settings.github_owner
        self._repo = repo or settings.github_repo
        self._default_branch = default_branch or settings.github_default_branch
        self._api_url = (api_url or settings.github_api_url).rstrip("/")
        self._timeout = httpx.Timeout(
            timeout_seconds if timeout_seconds is not None else settings.http_timeout_seconds
        )
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    @property
    def default_branch(self) -> str:
        return self._default_branch

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self._owner}/{self._repo}"

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self._api_url,
                    timeout=self._timeout,
                    transport=self._transport,
                    headers={
                        "Authorization": f"Bearer {self._token}",
                        "Accept": "application/vnd.github+json",
                        "X-GitHub-Api-Version": GITHUB_API_VERSION,
                    },
                )
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_data: Any | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        client = await self._ensure_client()
        try:
            return await client.request(method, path, json=json_data, params=params)
        except httpx.HTTPError as exc:
            raise GatewayError(f"{method} {path} failed: {type(exc).__name__}") from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        raise GatewayError(
            f"Failed to {action}: GitHub responded with {response.status_code}",
            status_code=response.status_code,
        )

    @staticmethod
    def _json(response: httpx.Response, action: str) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise GatewayError(f"Failed to {action}: response was not JSON") from exc
        if not isinstance(payload, dict):
            raise GatewayError(f"Failed to {action}: unexpected response shape")
        return payload

    async def get_default_branch_head(self) -> str:
        action = "read default branch"
        branch = quote(self._default_branch, safe="")
        response = await self._request("GET", f"{self._repo_path}/branches/{branch}")
        self._raise_for_status(response, action)
        try:
            sha = self._json(response, action)["commit"]["sha"]
        except (KeyError, TypeError) as exc:
            raise GatewayError(f"Failed to {action}: no commit sha") from exc
        return str(sha)

    async def create_branch(self, name: str, from_sha: str) -> None:
        response = await self._request(
            "POST",
            f"{self._repo_path}/git/refs",
            json_data={"ref": f"refs/heads/{name}", "sha": from_sha},
        )
        if response.status_code == HTTP_UNPROCESSABLE:
            raise BranchExistsError(
                f"Branch {name} already exists", status_code=response.status_code
            )
        self._raise_for_status(response, f"create branch {name}")
        logger.debug("Created branch %s at %s", name, from_sha[:7])

    async def get_file_revision(self, path: str, branch: str) -> str | None:
        action = f"read {path}"
        response = await self._request(
            "GET",
            f"{self._repo_path}/contents/{quote(path)}",
            params={"ref": branch},
        )
        if response.status_code == HTTP_NOT_FOUND:
            return None
        self._raise_for_status(response, action)
        sha = self._json(response, action).get("sha")
        return str(sha) if sha else None

    async def commit_file(
        self,
        branch: str,
        path: str,
        content: str,
        message: str,
        expected_revision: str | None = None,
    ) -> None:
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if expected_revision:
            body["sha"] = expected_revision

        response = await self._request(
            "PUT", f"{self._repo_path}/contents/{quote(path)}", json_data=body
        )
        if response.status_code in (HTTP_CONFLICT, HTTP_UNPROCESSABLE):
            raise RevisionConflictError(
                f"{path} changed since revision {expected_revision}",
                status_code=response.status_code,
            )
        self._raise_for_status(response, f"commit {path}")

    async def open_pull_request(
        self, title: str, body: str, head: str, base: str
    ) -> PullRequestRef:
        action = "open pull request"
        response = await self._request(
            "POST",
            f"{self._repo_path}/pulls",
            json_data={"title": title, "body": body, "head": head, "base": base},
        )
        self._raise_for_status(response, action)
        payload = self._json(response, action)
        try:
            return PullRequestRef(number=int(payload["number"]), url=str(payload["html_url"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise GatewayError(f"Failed to {action}: missing number or url") from exc

    async def add_labels(self, pr_number: int, labels: list[str]) -> None:
        response = await self._request(
            "POST",
            f"{self._repo_path}/issues/{pr_number}/labels",
            json_data={"labels": labels},
        )
        self._raise_for_status(response, f"label pull request #{pr_number}")

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None
