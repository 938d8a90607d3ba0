"""Tests for the upstream fetcher using httpx.MockTransport."""

from datetime import date

import httpx
import pytest

from conftest import BASE_URL, FakeUpstream, make_page, make_release
from tendersync.core.errors import FetchError
from tendersync.core.fetch import RetryConfig, UpstreamFetcher, parse_page


@pytest.mark.asyncio
async def test_fetch_page_sends_query_and_parses_releases() -> None:
    upstream = FakeUpstream([make_page([make_release(), make_release(ocid="ocds-2")], next_link="?PageNumber=2")])

    async with upstream.fetcher() as fetcher:
        page = await fetcher.fetch_page(1, 500, date(2024, 1, 1), "2024-06-30")

    assert len(page) == 2
    assert page.page_number == 1
    assert page.has_next_page is True

    request = upstream.requests[0]
    assert str(request.url).startswith(BASE_URL)
    assert request.url.params["PageNumber"] == "1"
    assert request.url.params["PageSize"] == "500"
    assert request.url.params["dateFrom"] == "2024-01-01"
    assert request.url.params["dateTo"] == "2024-06-30"
    assert request.headers["Accept"] == "application/json"


@pytest.mark.asyncio
async def test_page_size_capped_at_upstream_maximum() -> None:
    upstream = FakeUpstream([make_page([])])

    async with upstream.fetcher() as fetcher:
        await fetcher.fetch_page(1, 5000, "2024-01-01", "2024-06-30")

    assert upstream.param("PageSize") == ["1000"]


@pytest.mark.asyncio
async def test_configured_page_size_cannot_exceed_upstream_maximum() -> None:
    upstream = FakeUpstream([make_page([])])

    async with upstream.fetcher(max_page_size=5000) as fetcher:
        assert fetcher.max_page_size == 1000


@pytest.mark.asyncio
async def test_page_number_must_be_positive() -> None:
    upstream = FakeUpstream([make_page([])])

    async with upstream.fetcher() as fetcher:
        with pytest.raises(ValueError):
            await fetcher.fetch_page(0, 10, "2024-01-01", "2024-06-30")

    assert upstream.requests == []


@pytest.mark.asyncio
async def test_error_status_raises_fetch_error() -> None:
    upstream = FakeUpstream([httpx.Response(500, text="Internal Server Error")])

    async with upstream.fetcher() as fetcher:
        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch_page(1, 10, "2024-01-01", "2024-06-30")

    error = exc_info.value
    assert error.status_code == 500
    assert error.body == "Internal Server Error"
    assert str(error) == "API returned 500: Internal Server Error"


@pytest.mark.asyncio
async def test_error_body_is_truncated() -> None:
    upstream = FakeUpstream([httpx.Response(502, text="x" * 5000)])

    async with upstream.fetcher() as fetcher:
        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch_page(1, 10, "2024-01-01", "2024-06-30")

    assert len(exc_info.value.body) == 500


@pytest.mark.asyncio
async def test_http_errors_are_not_retried() -> None:
    upstream = FakeUpstream([httpx.Response(503, text="busy"), make_page([])])

    async with upstream.fetcher(retry=RetryConfig(max_attempts=3, min_wait=0, max_wait=0, jitter=False)) as fetcher:
        with pytest.raises(FetchError):
            await fetcher.fetch_page(1, 10, "2024-01-01", "2024-06-30")

    assert len(upstream.requests) == 1


@pytest.mark.asyncio
async def test_invalid_json_raises_fetch_error() -> None:
    upstream = FakeUpstream([httpx.Response(200, text="<html>maintenance</html>")])

    async with upstream.fetcher() as fetcher:
        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch_page(1, 10, "2024-01-01", "2024-06-30")

    assert exc_info.value.status_code == 200


@pytest.mark.asyncio
async def test_transport_failure_raises_fetch_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    async with UpstreamFetcher(BASE_URL, client=client) as fetcher:
        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch_page(1, 10, "2024-01-01", "2024-06-30")

    assert exc_info.value.status_code is None
    assert isinstance(exc_info.value.cause, httpx.ConnectError)
    await client.aclose()


@pytest.mark.asyncio
async def test_transport_failure_retried_when_configured() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("reset", request=request)
        return httpx.Response(200, json=make_page([make_release()]))

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    retry = RetryConfig(max_attempts=2, min_wait=0, max_wait=0, jitter=False)
    async with UpstreamFetcher(BASE_URL, client=client, retry=retry) as fetcher:
        page = await fetcher.fetch_page(1, 10, "2024-01-01", "2024-06-30")

    assert len(calls) == 2
    assert len(page) == 1
    await client.aclose()


class TestParsePage:
    """Tests for response body interpretation."""

    def test_next_link_present(self) -> None:
        assert parse_page(make_page([], next_link="https://x/?PageNumber=3"), 2).has_next_page is True

    @pytest.mark.parametrize("links", [None, {}, {"next": ""}, {"next": "  "}, {"next": None}, "next"])
    def test_no_next_link(self, links) -> None:
        assert parse_page({"releases": [], "links": links}, 1).has_next_page is False

    def test_missing_releases_is_empty(self) -> None:
        page = parse_page({"links": {"next": "x"}}, 1)
        assert page.releases == []
        assert page.has_next_page is True
