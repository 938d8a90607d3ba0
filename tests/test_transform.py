"""Unit tests for the release transformer."""

from datetime import datetime, timezone

import pytest

from conftest import make_release
from tendersync.core.transform import (
    NormalizedRecord,
    is_sentinel_date,
    normalize_release,
    normalize_releases,
    parse_amount,
    parse_timestamp,
    sum_award_values,
)


class TestNormalizeRelease:
    """Tests for field extraction."""

    def test_flattens_nested_fields(self) -> None:
        record = normalize_release(make_release())

        assert record.ocid == "ocds-9t57fa-100001"
        assert record.release_id == "ocds-9t57fa-100001-release-1"
        assert record.tender_id == "ocds-9t57fa-100001-T"
        assert record.title == "Supply and delivery of office furniture"
        assert record.status == "active"
        assert record.province == "Gauteng"
        assert record.buyer_name == "Department of Public Works"
        assert record.procuring_entity_name == "Department of Public Works"
        assert record.contact_email == "tenders@dpw.gov.za"
        assert record.contact_phone == "012 000 0000"
        assert record.briefing_is_session is True
        assert record.briefing_compulsory is False
        assert record.briefing_venue == "Room 4, Central Government Offices"
        assert record.document_count == 2
        assert record.estimated_value == 250000.0
        assert record.currency == "ZAR"

    def test_dates_are_aware_utc(self) -> None:
        record = normalize_release(make_release())

        assert record.release_date == datetime(2024, 3, 1, 8, 30, tzinfo=timezone.utc)
        assert record.tender_period_start == datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
        # +02:00 is converted, not dropped
        assert record.tender_period_end == datetime(2024, 3, 29, 9, 0, tzinfo=timezone.utc)
        # naive briefing date is taken as UTC
        assert record.briefing_date == datetime(2024, 3, 8, 10, 0, tzinfo=timezone.utc)

    def test_raw_payload_is_verbatim(self) -> None:
        release = make_release()
        record = normalize_release(release)
        assert record.raw_payload == release

    def test_deterministic(self) -> None:
        release = make_release()
        assert normalize_release(release) == normalize_release(release)

    def test_missing_currency_uses_home_currency(self) -> None:
        release = make_release(value={"amount": 10})
        assert normalize_release(release).currency == "ZAR"
        assert normalize_release(release, home_currency="USD").currency == "USD"

    def test_to_row_matches_fields(self) -> None:
        record = normalize_release(make_release())
        row = record.to_row()
        assert row["ocid"] == record.ocid
        assert row["total_award_value"] == 0.0
        assert row["raw_payload"] is record.raw_payload


class TestAwardAggregates:
    """Tests for award count and total."""

    def test_sums_award_amounts(self) -> None:
        release = make_release()
        release["awards"] = [
            {"value": {"amount": 1000.5}},
            {"value": {"amount": "2,000"}},
            {"value": {}},
            {"id": "no-value"},
        ]
        record = normalize_release(release)

        assert record.award_count == 4
        assert record.total_award_value == pytest.approx(3000.5)

    def test_empty_awards_sum_to_zero(self) -> None:
        record = normalize_release(make_release())
        assert record.award_count == 0
        assert record.total_award_value == 0.0

    @pytest.mark.parametrize("awards", [None, "n/a", {"value": {"amount": 5}}])
    def test_non_list_awards_treated_as_empty(self, awards) -> None:
        assert sum_award_values(awards) == 0.0

    def test_award_value_not_a_mapping(self) -> None:
        assert sum_award_values([{"value": "R 500"}, {"value": {"amount": 7}}]) == 7.0


class TestSentinelDates:
    """Tests for the upstream zero-date placeholder."""

    @pytest.mark.parametrize(
        "value",
        ["0001-01-01T00:00:00", "0001-01-01T00:00:00Z", "0001-01-01", " 0001-01-01T00:00:00+00:00"],
    )
    def test_sentinel_briefing_date_is_absent(self, value: str) -> None:
        record = normalize_release(
            make_release(briefingSession={"isSession": False, "date": value})
        )
        assert record.briefing_date is None

    def test_is_sentinel_date(self) -> None:
        assert is_sentinel_date("0001-01-01T00:00:00")
        assert not is_sentinel_date("2024-01-01")
        assert not is_sentinel_date(None)


class TestMalformedInput:
    """The transformer never raises, whatever it is given."""

    @pytest.mark.parametrize("release", [None, "not a release", 42, [], {}])
    def test_non_documents_give_defaults(self, release) -> None:
        record = normalize_release(release)

        assert isinstance(record, NormalizedRecord)
        assert record.ocid == ""
        assert record.has_identity is False
        assert record.title is None
        assert record.estimated_value == 0.0
        assert record.award_count == 0
        assert record.briefing_is_session is False
        assert record.currency == "ZAR"

    def test_null_sub_objects(self) -> None:
        release = {
            "ocid": "ocds-x-1",
            "id": "r-1",
            "tender": None,
            "buyer": "Department of Health",
            "awards": None,
        }
        record = normalize_release(release)

        assert record.ocid == "ocds-x-1"
        assert record.title is None
        assert record.buyer_name is None
        assert record.document_count == 0

    def test_garbage_scalars(self) -> None:
        release = make_release(
            title="   ",
            value={"amount": "about a million", "currency": ""},
            tenderPeriod={"startDate": "###", "endDate": 12},
            briefingSession={"isSession": "maybe", "date": "??"},
        )
        record = normalize_release(release)

        assert record.title is None
        assert record.estimated_value == 0.0
        assert record.currency == "ZAR"
        assert record.tender_period_start is None
        assert record.tender_period_end is None
        assert record.briefing_is_session is False
        assert record.briefing_date is None

    def test_normalize_releases_preserves_order(self) -> None:
        releases = [make_release(ocid=f"ocds-{n}") for n in range(3)]
        assert [r.ocid for r in normalize_releases(releases)] == ["ocds-0", "ocds-1", "ocds-2"]


class TestParsingHelpers:
    """Tests for scalar coercion."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(12, 12.0), ("1,234.50", 1234.5), (None, 0.0), (True, 0.0), ("abc", 0.0), (float("nan"), 0.0)],
    )
    def test_parse_amount(self, value, expected) -> None:
        assert parse_amount(value) == expected

    def test_parse_timestamp_zulu(self) -> None:
        assert parse_timestamp("2024-05-01T10:00:00Z") == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

    def test_parse_timestamp_rejects_non_strings(self) -> None:
        assert parse_timestamp(20240501) is None
        assert parse_timestamp("") is None
