"""GitLab API client with rate limiting and retry logic.

Uses httpx.AsyncClient with trio for concurrent requests.
"""

import logging
import time
from collections.abc import AsyncGenerator
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx
import trio

from .config import GITLAB_TOKEN, GITLAB_URL, MAX_PAGES, PER_PAGE, REQUEST_TIMEOUT

logger = logging.getLogger(__name__)


class RetriesExhaustedError(Exception):
    """Raised when a request keeps failing after all retries."""


def encode_path(project: str | int) -> str:
    """URL-encode a project or group path ("group/project" -> "group%2Fproject")."""
    return quote(str(project), safe="")


class GitLabClient:
    """Async GitLab REST API (v4) client with automatic rate limit handling."""

    def __init__(self, token: str | None = None, base_url: str | None = None):
        """Initialize the client.

        Args:
            token: Personal, project or group access token
            base_url: API root, e.g. https://gitlab.example.com/api/v4

        Falls back to GITLAB_TOKEN and GITLAB_URL from the environment.
        """
        self.token = token or GITLAB_TOKEN
        if not self.token:
            raise ValueError("GitLab auth required. Set GITLAB_TOKEN")

        self.base_url = (base_url or GITLAB_URL).rstrip("/")
        self.client: httpx.AsyncClient | None = None
        self._request_count = 0
        self.rate_limit_remaining: int | None = None

    async def __aenter__(self):
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/json",
            },
            timeout=REQUEST_TIMEOUT,
            http2=True,
        )
        return self

    async def __aexit__(self, *args):
        if self.client:
            await self.client.aclose()

    @property
    def request_count(self) -> int:
        return self._request_count

    def _track_rate_limit(self, response: httpx.Response) -> None:
        remaining = response.headers.get("RateLimit-Remaining")
        if remaining is not None:
            self.rate_limit_remaining = int(remaining)

    async def _handle_rate_limit(self, response: httpx.Response) -> bool:
        """Handle rate limiting. Returns True if request should be retried."""
        if response.status_code != 429:
            return False

        retry_after = response.headers.get("Retry-After")
        if retry_after is not None:
            wait_seconds = float(retry_after)
        else:
            reset_time = int(response.headers.get("RateLimit-Reset", 0))
            wait_seconds = max(reset_time - time.time(), 60) if reset_time else 60

        logger.warning(f"Rate limited. Waiting {wait_seconds:.0f}s...")
        await trio.sleep(wait_seconds)
        return True

    async def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        max_retries: int = 3,
    ) -> httpx.Response:
        """Make request with automatic rate limit handling and retries."""
        if not self.client:
            raise RuntimeError("Client not initialized. Use async context manager.")

        for attempt in range(max_retries):
            response = await self.client.request(method, path, params=params)
            self._request_count += 1
            self._track_rate_limit(response)

            if await self._handle_rate_limit(response):
                continue

            if response.status_code >= 500:
                wait = 2**attempt
                logger.warning(f"Server error {response.status_code}. Retrying in {wait}s...")
                await trio.sleep(wait)
                continue

            response.raise_for_status()
            return response

        raise RetriesExhaustedError(f"Max retries exceeded for {path}")

    async def get(self, path: str, params: dict | None = None) -> Any:
        """GET request returning JSON."""
        response = await self._request("GET", path, params=params)
        return response.json()

    async def paginate(
        self,
        path: str,
        params: dict | None = None,
        max_pages: int | None = None,
    ) -> AsyncGenerator[Any]:
        """Paginate through results, yielding each item."""
        params = params.copy() if params else {}
        params["per_page"] = PER_PAGE
        page = 1

        while True:
            params["page"] = page
            response = await self._request("GET", path, params=params)
            items = response.json()

            if not items:
                break

            for item in items:
                yield item

            if len(items) < PER_PAGE:
                break

            if max_pages and page >= max_pages:
                break

            page += 1

    async def paginate_all(
        self,
        path: str,
        params: dict | None = None,
        max_pages: int | None = None,
    ) -> list[dict]:
        """Paginate through all results, returning a list."""
        results = []
        async for item in self.paginate(path, params, max_pages=max_pages):
            results.append(item)
        return results

    async def is_group(self, path: str) -> bool:
        """Check whether path names a group rather than a project."""
        if str(path).isdigit():
            return False
        try:
            await self.get(f"/groups/{encode_path(path)}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return False
            raise
        return True

    async def get_group_projects(self, group: str) -> list[dict]:
        """Get all projects in a group, including subgroups."""
        path = f"/groups/{encode_path(group)}/projects"
        params = {"include_subgroups": "true", "archived": "false", "simple": "true"}
        return await self.paginate_all(path, params)

    async def get_merge_requests(
        self,
        project: str | int,
        state: str | None = None,
        updated_after: datetime | None = None,
        author_username: str | None = None,
        max_pages: int | None = MAX_PAGES,
    ) -> list[dict]:
        """Get merge requests, most recently updated first."""
        path = f"/projects/{encode_path(project)}/merge_requests"
        params: dict[str, Any] = {"order_by": "updated_at", "sort": "desc"}
        if state:
            params["state"] = state
        if updated_after:
            params["updated_after"] = updated_after.isoformat()
        if author_username:
            params["author_username"] = author_username
        return await self.paginate_all(path, params, max_pages=max_pages)

    async def get_mr_notes(self, project: str | int, iid: int) -> list[dict]:
        """Get all notes on a merge request, oldest first."""
        path = f"/projects/{encode_path(project)}/merge_requests/{iid}/notes"
        return await self.paginate_all(path, {"sort": "asc", "order_by": "created_at"})

    async def get_mr_discussions(self, project: str | int, iid: int) -> list[dict]:
        """Get discussion threads on a merge request."""
        path = f"/projects/{encode_path(project)}/merge_requests/{iid}/discussions"
        return await self.paginate_all(path)

    async def get_mr_changes(self, project: str | int, iid: int) -> dict:
        """Get a merge request with its file diffs."""
        path = f"/projects/{encode_path(project)}/merge_requests/{iid}/changes"
        return await self.get(path)
