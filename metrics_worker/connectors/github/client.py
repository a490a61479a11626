"""Metrics Worker: GitHub REST Client.

Handles authentication and Link-header pagination. Errors surface as
GitHubAPIError; retrying is left to the next scheduled cycle.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from metrics_worker.core.logging import get_logger

API_VERSION = "2022-11-28"
PER_PAGE = 100


class GitHubAPIError(Exception):
    """Raised when GitHub returns an error."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


class GitHubClient:
    """Async HTTP client for the GitHub REST API."""

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        max_pages: int = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger=None,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_pages = max_pages
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.logger = logger or get_logger("github.client")

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
                "User-Agent": "metrics-worker",
            }
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ── Core Request Method ──

    async def _request(
        self, url: str, params: Dict[str, Any] | None = None
    ) -> httpx.Response:
        client = await self._get_client()
        try:
            resp = await client.get(url, params=params)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise GitHubAPIError(
                _error_message(e.response) or str(e), e.response.status_code
            ) from e
        except httpx.RequestError as e:
            raise GitHubAPIError(f"Request to {url} failed: {e}") from e
        return resp

    async def _get(self, url: str, params: Dict[str, Any] | None = None) -> Any:
        resp = await self._request(url, params)
        return resp.json()

    # ── Pagination ──

    async def _paginated_get(
        self, url: str, params: Dict[str, Any] | None = None
    ) -> List[Dict[str, Any]]:
        """Follow `Link: rel="next"` until exhausted or max_pages is reached."""
        all_data: List[Dict[str, Any]] = []
        params = {"per_page": PER_PAGE, **(params or {})}
        current_url = url

        for page in range(self.max_pages):
            resp = await self._request(current_url, params if page == 0 else None)
            data = resp.json()
            if isinstance(data, list):
                all_data.extend(data)

            next_link = resp.links.get("next", {}).get("url")
            if not next_link:
                break
            current_url = next_link
        else:
            self.logger.warning(f"Stopped paginating {url} after {self.max_pages} pages")

        self.logger.debug(f"Fetched {len(all_data)} records from {url}")
        return all_data

    # ── Repository ──

    async def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        """Fetch repository metadata (size, stars, forks, issues, language)."""
        return await self._get(f"/repos/{owner}/{repo}")

    # ── Commits ──

    async def list_commits(
        self, owner: str, repo: str, since: datetime
    ) -> List[Dict[str, Any]]:
        """List commits on the default branch since a point in time."""
        params = {"since": _isoformat(since)}
        return await self._paginated_get(f"/repos/{owner}/{repo}/commits", params)

    async def get_commit(self, owner: str, repo: str, sha: str) -> Dict[str, Any]:
        """Fetch one commit including its addition/deletion stats."""
        return await self._get(f"/repos/{owner}/{repo}/commits/{sha}")

    # ── Pull Requests ──

    async def list_pull_requests(self, owner: str, repo: str) -> List[Dict[str, Any]]:
        """List all pull requests, most recently updated first."""
        params = {"state": "all", "sort": "updated", "direction": "desc"}
        return await self._paginated_get(f"/repos/{owner}/{repo}/pulls", params)

    async def list_reviews(
        self, owner: str, repo: str, number: int
    ) -> List[Dict[str, Any]]:
        return await self._paginated_get(f"/repos/{owner}/{repo}/pulls/{number}/reviews")

    async def list_issue_comments(
        self, owner: str, repo: str, number: int
    ) -> List[Dict[str, Any]]:
        return await self._paginated_get(
            f"/repos/{owner}/{repo}/issues/{number}/comments"
        )

    async def list_review_comments(
        self, owner: str, repo: str, number: int
    ) -> List[Dict[str, Any]]:
        return await self._paginated_get(
            f"/repos/{owner}/{repo}/pulls/{number}/comments"
        )


def _isoformat(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _error_message(response: httpx.Response) -> str:
    if not response.headers.get("content-type", "").startswith("application/json"):
        return ""
    try:
        body = response.json()
    except ValueError:
        return ""
    return body.get("message", "") if isinstance(body, dict) else ""
