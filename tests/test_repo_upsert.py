"""Tests for TenderRepository batch upsert and read queries."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from conftest import make_release
from tendersync.core.errors import UpsertError
from tendersync.core.transform import normalize_release
from tendersync.persistence.repo import TenderRepository

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _records(count: int, prefix: str = "ocds-a", **overrides):
    return [normalize_release(make_release(ocid=f"{prefix}-{n:04d}", **overrides)) for n in range(count)]


@pytest.fixture
def repo(session) -> TenderRepository:
    return TenderRepository(session)


class TestUpsertMany:
    """Tests for insert-or-overwrite by ocid."""

    def test_inserts_new_records(self, repo: TenderRepository) -> None:
        written = repo.upsert_many(_records(3), synced_at=T0)

        assert written == 3
        assert repo.count() == 3
        tender = repo.get_by_ocid("ocds-a-0001")
        assert tender is not None
        assert tender.title == "Supply and delivery of office furniture"
        assert tender.raw_payload["ocid"] == "ocds-a-0001"

    def test_second_write_overwrites_not_merges(self, repo: TenderRepository, session) -> None:
        first = normalize_release(make_release(ocid="ocds-1", title="Original title", category="Goods"))
        second = normalize_release(make_release(ocid="ocds-1", title="Amended title", category=None))

        repo.upsert_many([first], synced_at=T0)
        repo.upsert_many([second], synced_at=T0 + timedelta(hours=1))
        session.expire_all()

        tender = repo.get_by_ocid("ocds-1")
        assert repo.count() == 1
        assert tender.title == "Amended title"
        # a field dropped upstream is cleared, not kept from the first write
        assert tender.category is None
        assert tender.raw_payload["tender"]["title"] == "Amended title"

    def test_synced_at_bumped_created_at_kept(self, repo: TenderRepository, session) -> None:
        record = _records(1)
        repo.upsert_many(record, synced_at=T0)
        repo.upsert_many(record, synced_at=T0 + timedelta(minutes=5))
        session.expire_all()

        tender = repo.get_by_ocid("ocds-a-0000")
        assert tender.synced_at.replace(tzinfo=None) == datetime(2024, 6, 1, 12, 5)
        assert tender.updated_at.replace(tzinfo=None) == datetime(2024, 6, 1, 12, 5)
        assert tender.created_at.replace(tzinfo=None) == datetime(2024, 6, 1, 12, 0)

    def test_chunks_cover_every_record(self, repo: TenderRepository) -> None:
        assert repo.upsert_many(_records(123), chunk_size=50) == 123
        assert repo.count() == 123

    def test_duplicate_ocid_in_batch_keeps_last(self, repo: TenderRepository) -> None:
        batch = [
            normalize_release(make_release(ocid="ocds-dup", title="first")),
            normalize_release(make_release(ocid="ocds-other")),
            normalize_release(make_release(ocid="ocds-dup", title="last")),
        ]
        assert repo.upsert_many(batch) == 2
        assert repo.get_by_ocid("ocds-dup").title == "last"

    def test_records_without_ocid_are_skipped(self, repo: TenderRepository) -> None:
        batch = [normalize_release({"id": "r-1"}), *_records(2)]
        assert repo.upsert_many(batch) == 2
        assert repo.count() == 2

    def test_empty_batch(self, repo: TenderRepository) -> None:
        assert repo.upsert_many([]) == 0

    def test_invalid_chunk_size(self, repo: TenderRepository) -> None:
        with pytest.raises(ValueError):
            repo.upsert_many(_records(1), chunk_size=0)

    def test_failing_chunk_rolls_back_and_reports_written(
        self, repo: TenderRepository, session, monkeypatch
    ) -> None:
        real_execute = session.execute
        calls = {"n": 0}

        def flaky_execute(statement, *args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 3:
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            return real_execute(statement, *args, **kwargs)

        monkeypatch.setattr(session, "execute", flaky_execute)

        with pytest.raises(UpsertError) as exc_info:
            repo.upsert_many(_records(120), chunk_size=50)

        monkeypatch.undo()
        assert exc_info.value.written == 100
        # the failing chunk left nothing behind; earlier chunks stay
        assert repo.count() == 100


class TestSearch:
    """Tests for filtering, sorting and pagination."""

    @pytest.fixture(autouse=True)
    def seed(self, repo: TenderRepository) -> None:
        releases = [
            make_release(ocid="ocds-1", title="Cleaning services", province="Gauteng", status="active"),
            make_release(ocid="ocds-2", title="Road maintenance", province="Limpopo", status="complete"),
            make_release(ocid="ocds-3", title="Security services", province="gauteng", status="active"),
            make_release(ocid="ocds-4", title="Catering 100% local", province="Western Cape", status="cancelled"),
        ]
        releases[1]["date"] = "2024-04-01T00:00:00Z"
        releases[2]["date"] = "2024-02-01T00:00:00Z"
        releases[3]["date"] = None
        repo.upsert_many([normalize_release(r) for r in releases])

    def test_no_filters_sorted_by_release_date_desc_nulls_last(self, repo: TenderRepository) -> None:
        page = repo.search()
        assert [t.ocid for t in page.items] == ["ocds-2", "ocds-1", "ocds-3", "ocds-4"]
        assert page.total == 4

    def test_ascending_keeps_nulls_last(self, repo: TenderRepository) -> None:
        page = repo.search(sort_order="asc")
        assert [t.ocid for t in page.items] == ["ocds-3", "ocds-1", "ocds-2", "ocds-4"]

    def test_keyword_is_case_insensitive_across_columns(self, repo: TenderRepository) -> None:
        assert {t.ocid for t in repo.search(keyword="SERVICES").items} == {"ocds-1", "ocds-3"}
        assert {t.ocid for t in repo.search(keyword="limpopo").items} == {"ocds-2"}

    def test_keyword_wildcards_are_literal(self, repo: TenderRepository) -> None:
        assert [t.ocid for t in repo.search(keyword="100%").items] == ["ocds-4"]

    def test_province_and_status_filters(self, repo: TenderRepository) -> None:
        assert {t.ocid for t in repo.search(province="GAUTENG").items} == {"ocds-1", "ocds-3"}
        assert {t.ocid for t in repo.search(status="active", province="Gauteng").items} == {"ocds-1", "ocds-3"}
        assert repo.search(province="All Provinces", status="All Statuses").total == 4

    def test_unknown_sort_key_falls_back(self, repo: TenderRepository) -> None:
        page = repo.search(sort_by="raw_payload")
        assert page.items[0].ocid == "ocds-2"

    def test_pagination(self, repo: TenderRepository) -> None:
        page = repo.search(page=2, limit=3)
        data = page.to_dict()

        assert len(page.items) == 1
        assert data["pagination"] == {
            "page": 2,
            "limit": 3,
            "total": 4,
            "totalPages": 2,
            "hasNext": False,
            "hasPrev": True,
        }
        assert "raw_payload" not in data["tenders"][0]

    def test_limit_is_clamped(self, repo: TenderRepository) -> None:
        assert repo.search(limit=1000).limit == 100
        assert repo.search(limit=0, page=-3).limit == 1

    def test_stats(self, repo: TenderRepository) -> None:
        stats = repo.stats()

        assert stats.total == 4
        assert dict(stats.by_status) == {"active": 2, "complete": 1, "cancelled": 1}
        assert stats.by_status[0] == ("active", 2)
        assert stats.unique_entities == 1
        assert stats.to_dict()["byCategory"] == [{"category": "Goods", "count": 4}]

    def test_raw_payload_lookup(self, repo: TenderRepository) -> None:
        assert repo.get_raw_payload("ocds-2")["tender"]["title"] == "Road maintenance"
        assert repo.get_raw_payload("missing") is None
