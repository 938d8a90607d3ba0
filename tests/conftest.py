"""Shared fixtures: temporary SQLite store and upstream release builders."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterator

import httpx
import pytest

from tendersync.core.fetch import UpstreamFetcher
from tendersync.persistence.db import create_db_engine, create_session_factory
from tendersync.persistence.models import Base

BASE_URL = "https://upstream.test/api/OCDSReleases"


def make_release(
    ocid: str = "ocds-9t57fa-100001",
    title: str = "Supply and delivery of office furniture",
    **tender_overrides: Any,
) -> dict[str, Any]:
    """Build an upstream release document with realistic nesting."""
    tender = {
        "id": f"{ocid}-T",
        "title": title,
        "status": "active",
        "category": "Goods",
        "province": "Gauteng",
        "description": "Three-year contract for office furniture",
        "deliveryLocation": "Pretoria",
        "procurementMethod": "open",
        "procurementMethodDetails": "Request for Bid(Open-Tender)",
        "mainProcurementCategory": "goods",
        "tenderPeriod": {
            "startDate": "2024-03-01T09:00:00Z",
            "endDate": "2024-03-29T11:00:00+02:00",
        },
        "value": {"amount": 250000, "currency": "ZAR"},
        "procuringEntity": {"id": "ZA-DPW", "name": "Department of Public Works"},
        "contactPerson": {
            "name": "T. Mokoena",
            "email": "tenders@dpw.gov.za",
            "telephoneNumber": "012 000 0000",
        },
        "briefingSession": {
            "isSession": True,
            "compulsory": False,
            "date": "2024-03-08T10:00:00",
            "venue": "Room 4, Central Government Offices",
        },
        "documents": [{"id": "doc-1"}, {"id": "doc-2"}],
    }
    tender.update(tender_overrides)
    return {
        "ocid": ocid,
        "id": f"{ocid}-release-1",
        "date": "2024-03-01T08:30:00Z",
        "tender": tender,
        "buyer": {"id": "ZA-DPW", "name": "Department of Public Works"},
        "awards": [],
    }


def make_page(releases: list[dict[str, Any]], next_link: str | None = None) -> dict[str, Any]:
    links = {"next": next_link} if next_link else {}
    return {"releases": releases, "links": links}


@pytest.fixture
def release_factory() -> Callable[..., dict[str, Any]]:
    return make_release


@pytest.fixture
def engine(tmp_path: Path):
    """Engine on a temporary SQLite file with the full schema."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'tendersync.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def session(session_factory) -> Iterator:
    session = session_factory()
    yield session
    session.close()


class TickingClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 8, 31, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(seconds=1)
        return current


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


class FakeUpstream:
    """Serves a fixed sequence of responses and records every request."""

    def __init__(self, responses: list[httpx.Response | dict[str, Any]]):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []
        self.on_request: Callable[[httpx.Request], None] | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.on_request is not None:
            self.on_request(request)
        index = min(len(self.requests), len(self.responses)) - 1
        response = self.responses[index]
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)

    def fetcher(self, **kwargs: Any) -> UpstreamFetcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return UpstreamFetcher(BASE_URL, client=client, **kwargs)

    def param(self, name: str) -> list[str]:
        return [request.url.params[name] for request in self.requests]
