"""Bitbucket Cloud REST client."""

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from .config import DEFAULT_API_BASE_URL, DEFAULT_GIT_HOST, DEFAULT_REQUEST_TIMEOUT
from .models import RemoteBranch, RepositoryRecord

PAGE_LEN = 100

logger = logging.getLogger(__name__)


class ConnectivityError(Exception):
    """Remote could not be reached or refused the credentials."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class RemoteRepository:
    """Subset of the repository resource used by the connectivity probe."""

    full_name: str
    main_branch: str | None


class BitbucketClient:
    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self, token: str) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {token}",
            },
        )

    def _get(self, client: httpx.Client, url: str) -> dict[str, Any]:
        try:
            response = client.get(url)
        except httpx.HTTPError as exc:
            raise ConnectivityError(f"Request to {url} failed: {exc}") from exc

        if response.status_code >= 400:
            raise ConnectivityError(
                f"Bitbucket returned {response.status_code} for {url}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise ConnectivityError(f"Invalid JSON from {url}") from exc
        if not isinstance(data, dict):
            raise ConnectivityError(f"Unexpected response shape from {url}")
        return data

    def fetch_repository(self, workspace: str, repo_name: str, token: str) -> RemoteRepository:
        """Fetch the repository resource; succeeds iff the token grants access."""
        path = f"/repositories/{quote(workspace, safe='')}/{quote(repo_name, safe='')}"
        with self._client(token) as client:
            data = self._get(client, path)
        main_branch = data.get("mainbranch") or {}
        return RemoteRepository(
            full_name=str(data.get("full_name") or f"{workspace}/{repo_name}"),
            main_branch=main_branch.get("name") if isinstance(main_branch, dict) else None,
        )

    def fetch_branches(self, workspace: str, repo_name: str, token: str) -> list[RemoteBranch]:
        """Fetch every branch with its head commit, following pagination."""
        next_page: str | None = (
            f"/repositories/{quote(workspace, safe='')}/{quote(repo_name, safe='')}"
            f"/refs/branches?pagelen={PAGE_LEN}&page=1"
        )
        branches: list[RemoteBranch] = []
        with self._client(token) as client:
            while next_page:
                page = self._get(client, next_page)
                for value in page.get("values") or []:
                    branch = _parse_branch(value)
                    if branch is not None:
                        branches.append(branch)
                # absent on the last page
                next_url = page.get("next")
                next_page = next_url if isinstance(next_url, str) and next_url else None

        logger.debug("Fetched %d branches for %s/%s", len(branches), workspace, repo_name)
        return branches

    def fetch_record_branches(self, record: RepositoryRecord) -> list[RemoteBranch]:
        return self.fetch_branches(record.workspace_name, record.name, record.access_token)


def _parse_branch(value: object) -> RemoteBranch | None:
    if not isinstance(value, dict):
        return None
    name = value.get("name")
    target = value.get("target")
    commit_hash = target.get("hash") if isinstance(target, dict) else None
    if not isinstance(name, str) or not isinstance(commit_hash, str):
        return None
    return RemoteBranch(name=name, commit_hash=commit_hash)


def clone_url(record: RepositoryRecord, host: str = DEFAULT_GIT_HOST) -> str:
    """Authenticated HTTPS clone URL for a repository."""
    token = quote(record.access_token, safe="")
    return f"https://x-token-auth:{token}@{host}/{record.workspace_name}/{record.name}.git"
