"""
Upstream OCDS release fetcher using httpx.

One call retrieves one page of releases for a date range. The fetcher
keeps no state between pages beyond its connection pool.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any

import httpx

from tendersync.core.config.models import DEFAULT_UPSTREAM_URL, UPSTREAM_MAX_PAGE_SIZE
from tendersync.core.errors import FetchError
from tendersync.core.logging import get_logger

from .retries import RetryConfig, retry_async

if TYPE_CHECKING:
    from tendersync.core.config.models import UpstreamConfig


logger = get_logger("fetch")

# Upstream error bodies can be whole HTML pages
MAX_ERROR_BODY = 500


@dataclass
class FetchedPage:
    """One page of upstream releases."""

    page_number: int
    releases: list[dict[str, Any]] = field(default_factory=list)
    has_next_page: bool = False

    def __len__(self) -> int:
        return len(self.releases)


def format_day(value: date | str) -> str:
    """Render a date bound as YYYY-MM-DD."""
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    return value


class UpstreamFetcher:
    """Async client for the paginated OCDS releases endpoint.

    Usage:
        async with UpstreamFetcher() as fetcher:
            page = await fetcher.fetch_page(1, 1000, "2024-01-01", "2024-06-30")
    """

    def __init__(
        self,
        base_url: str = DEFAULT_UPSTREAM_URL,
        *,
        timeout: float | None = None,
        max_page_size: int = UPSTREAM_MAX_PAGE_SIZE,
        retry: RetryConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the fetcher.

        Args:
            base_url: Releases endpoint
            timeout: Request timeout in seconds (None = no internal deadline)
            max_page_size: Upstream page size ceiling
            retry: Transport retry policy (default: single attempt)
            client: Pre-built client, e.g. with a mock transport; not closed by us
        """
        self.base_url = base_url
        self.timeout = timeout
        self.max_page_size = min(max_page_size, UPSTREAM_MAX_PAGE_SIZE)
        self.retry = retry or RetryConfig()
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_config(cls, config: "UpstreamConfig") -> "UpstreamFetcher":
        return cls(
            config.base_url,
            timeout=config.timeout_seconds,
            max_page_size=config.max_page_size,
            retry=RetryConfig(max_attempts=config.max_attempts),
        )

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                headers={"Accept": "application/json"},
            )
            self._owns_client = True
        return self._client

    def clamp_page_size(self, page_size: int) -> int:
        return max(1, min(page_size, self.max_page_size))

    async def fetch_page(
        self,
        page_number: int,
        page_size: int,
        date_from: date | str,
        date_to: date | str,
    ) -> FetchedPage:
        """Fetch one page of releases.

        Args:
            page_number: 1-based page index
            page_size: Requested releases per page (capped at the upstream max)
            date_from: Inclusive start of the release date range
            date_to: Inclusive end of the release date range

        Returns:
            FetchedPage with releases and whether another page exists

        Raises:
            ValueError: If page_number is below 1
            FetchError: On non-2xx status, transport failure or invalid JSON
        """
        if page_number < 1:
            raise ValueError(f"page_number must be >= 1, got {page_number}")

        params = {
            "PageNumber": str(page_number),
            "PageSize": str(self.clamp_page_size(page_size)),
            "dateFrom": format_day(date_from),
            "dateTo": format_day(date_to),
        }

        client = await self._ensure_client()

        try:
            response = await retry_async(
                client.get,
                self.base_url,
                params=params,
                headers={"Accept": "application/json"},
                config=self.retry,
            )
        except httpx.HTTPError as e:
            raise FetchError(
                f"Upstream request failed: {e}",
                url=self.base_url,
                cause=e,
            ) from e

        if not response.is_success:
            body = response.text[:MAX_ERROR_BODY]
            raise FetchError(
                f"API returned {response.status_code}: {body}",
                url=str(response.url),
                status_code=response.status_code,
                body=body,
            )

        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise FetchError(
                f"Upstream returned invalid JSON: {e}",
                url=str(response.url),
                status_code=response.status_code,
                cause=e,
            ) from e

        if not isinstance(payload, dict):
            raise FetchError(
                "Upstream returned an unexpected payload shape",
                url=str(response.url),
                status_code=response.status_code,
            )

        return parse_page(payload, page_number)

    async def close(self) -> None:
        """Close the HTTP client if we created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "UpstreamFetcher":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


def parse_page(payload: dict[str, Any], page_number: int) -> FetchedPage:
    """Build a FetchedPage from a decoded response body."""
    releases = payload.get("releases")
    if not isinstance(releases, list):
        releases = []

    links = payload.get("links")
    next_link = links.get("next") if isinstance(links, dict) else None

    return FetchedPage(
        page_number=page_number,
        releases=releases,
        has_next_page=isinstance(next_link, str) and bool(next_link.strip()),
    )
