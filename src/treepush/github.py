"""Object service backed by the GitHub git-data REST API."""

from __future__ import annotations

import base64
import logging
from collections.abc import Sequence
from typing import Any
from urllib.parse import quote

import httpx

from .exceptions import ExternalServiceError, TransportError
from .tree import BranchHead, TreeEntry, TreeListing

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"
USER_AGENT = "treepush"


def _validate_repository(repository: str) -> None:
    """Reject repository names that are not ``owner/name``."""
    owner, sep, name = repository.partition("/")
    if not sep or not owner or not name or "/" in name:
        raise ValueError(f"Invalid repository {repository!r}: expected OWNER/NAME")


def _parse_listing(data: dict[str, Any]) -> TreeListing:
    entries = [
        TreeEntry(item["path"], int(item["mode"], 8), item["sha"])
        for item in data.get("tree", [])
    ]
    return TreeListing(data["sha"], entries, truncated=bool(data.get("truncated", False)))


def _sha(data: dict[str, Any]) -> str:
    return data["sha"]


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and "message" in body:
        return str(body["message"])
    return response.text


class GitHubService:
    """Talks to ``/repos/{owner}/{name}/git/*``.

    Use as an async context manager; the underlying :class:`httpx.AsyncClient`
    is opened on entry and closed on exit.
    """

    def __init__(
        self,
        repository: str,
        token: str | None,
        *,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        _validate_repository(repository)
        self.repository = repository
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": USER_AGENT,
        }
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._client: httpx.AsyncClient | None = None

    def __repr__(self) -> str:
        return f"GitHubService({self.repository!r})"

    async def __aenter__(self) -> GitHubService:
        self._client = httpx.AsyncClient(
            base_url=f"{self._api_url}/repos/{self.repository}/git/",
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        return False

    async def _request(self, method: str, url: str, *, parse=None, **kwargs) -> Any:
        """Send one API call and return its JSON body passed through *parse*.

        The body is not read when *parse* is None.  Anything but a 2xx reply
        that *parse* accepts raises :class:`ExternalServiceError`.
        """
        if self._client is None:
            raise RuntimeError("GitHubService is not open; use 'async with'")
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            raise TransportError(f"{method} {url}: {exc}") from exc
        if not response.is_success:
            raise ExternalServiceError(response.status_code, _error_message(response))
        if parse is None:
            return None
        try:
            return parse(response.json())
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise ExternalServiceError(
                response.status_code, f"Unexpected response to {method} {url}: {exc!r}"
            ) from exc

    async def create_blob(self, data: bytes) -> str:
        body = {"content": base64.b64encode(data).decode("ascii"), "encoding": "base64"}
        return await self._request("POST", "blobs", json=body, parse=_sha)

    async def create_tree(
        self, entries: Sequence[TreeEntry], base_tree: str | None = None
    ) -> TreeListing:
        body: dict[str, Any] = {
            "tree": [
                {"path": e.name, "mode": f"{e.mode:06o}", "type": e.type, "sha": e.sha}
                for e in entries
            ],
        }
        if base_tree is not None:
            body["base_tree"] = base_tree
        return await self._request("POST", "trees", json=body, parse=_parse_listing)

    async def fetch_tree(self, ref: str, recursive: bool = False) -> TreeListing:
        params = {"recursive": "1"} if recursive else None
        return await self._request(
            "GET", f"trees/{quote(ref, safe='')}", params=params, parse=_parse_listing
        )

    async def resolve_branch(self, branch: str) -> BranchHead:
        commit_sha = await self._request(
            "GET", f"ref/heads/{quote(branch, safe='/')}", parse=lambda ref: ref["object"]["sha"]
        )
        tree_sha = await self._request(
            "GET", f"commits/{commit_sha}", parse=lambda commit: commit["tree"]["sha"]
        )
        return BranchHead(commit_sha, tree_sha)

    async def create_commit(self, message: str, tree: str, parents: Sequence[str]) -> str:
        body = {"message": message, "tree": tree, "parents": list(parents)}
        return await self._request("POST", "commits", json=body, parse=_sha)

    async def update_ref(self, branch: str, commit: str, force: bool = False) -> None:
        body = {"sha": commit, "force": force}
        await self._request("PATCH", f"refs/heads/{quote(branch, safe='/')}", json=body)
        logger.info("Updated refs/heads/%s to %s", branch, commit[:7])


def resolve_token(api_url: str = DEFAULT_API_URL) -> str | None:
    """Return a token from ``gh auth token`` for the API host, or None.

    Only consulted when no token was given explicitly or through the
    environment.
    """
    import subprocess
    from urllib.parse import urlparse

    host = urlparse(api_url).hostname or "github.com"
    if host.startswith("api."):
        host = host[len("api."):]
    try:
        proc = subprocess.run(
            ["gh", "auth", "token", "--hostname", host],
            capture_output=True, text=True, timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None
    token = proc.stdout.strip()
    if proc.returncode == 0 and token:
        return token
    return None
