"""
Release transformer.

Flattens one OCDS release document into a fully populated
``NormalizedRecord``. Every upstream field is optional, so each
extraction falls back to a fixed default instead of raising. The
function is pure, which keeps it safe to re-run when a batch is retried.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from .parsing import (
    as_list,
    as_mapping,
    clean_text,
    is_sentinel_date,
    parse_amount,
    parse_flag,
    parse_timestamp,
)

DEFAULT_CURRENCY = "ZAR"


@dataclass(frozen=True)
class NormalizedRecord:
    """Canonical row for one procurement opportunity, keyed by ``ocid``."""

    # Identity
    ocid: str
    release_id: str
    tender_id: str | None = None

    # Descriptive
    title: str | None = None
    status: str | None = None
    category: str | None = None
    province: str | None = None
    description: str | None = None
    delivery_location: str | None = None
    special_conditions: str | None = None
    procurement_method: str | None = None
    procurement_method_details: str | None = None
    main_procurement_category: str | None = None

    # Temporal
    release_date: datetime | None = None
    tender_period_start: datetime | None = None
    tender_period_end: datetime | None = None

    # Monetary
    estimated_value: float = 0.0
    currency: str = DEFAULT_CURRENCY

    # Flattened parties
    buyer_id: str | None = None
    buyer_name: str | None = None
    procuring_entity_id: str | None = None
    procuring_entity_name: str | None = None
    contact_name: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None

    # Briefing session
    briefing_is_session: bool = False
    briefing_compulsory: bool = False
    briefing_date: datetime | None = None
    briefing_venue: str | None = None

    # Aggregates computed at ingestion time
    document_count: int = 0
    award_count: int = 0
    total_award_value: float = 0.0

    # Original document, verbatim
    raw_payload: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def has_identity(self) -> bool:
        """Whether the record carries a usable natural key."""
        return bool(self.ocid)

    def to_row(self) -> dict[str, Any]:
        """Column mapping used by the batch upserter."""
        row = asdict(self)
        row["raw_payload"] = self.raw_payload
        return row


def sum_award_values(awards: Any) -> float:
    """Sum ``value.amount`` across awards, counting missing amounts as zero."""
    return sum(
        (parse_amount(as_mapping(as_mapping(award).get("value")).get("amount")) for award in as_list(awards)),
        0.0,
    )


def normalize_release(release: Any, home_currency: str = DEFAULT_CURRENCY) -> NormalizedRecord:
    """Map one upstream release document to a ``NormalizedRecord``.

    Args:
        release: Decoded OCDS release (any shape is tolerated)
        home_currency: Currency code used when the tender value omits one

    Returns:
        A fully populated record; never raises
    """
    doc = as_mapping(release)
    tender = as_mapping(doc.get("tender"))
    buyer = as_mapping(doc.get("buyer"))
    entity = as_mapping(tender.get("procuringEntity"))
    contact = as_mapping(tender.get("contactPerson"))
    briefing = as_mapping(tender.get("briefingSession"))
    period = as_mapping(tender.get("tenderPeriod"))
    value = as_mapping(tender.get("value"))
    awards = as_list(doc.get("awards"))

    briefing_raw = briefing.get("date")
    briefing_date = None if is_sentinel_date(briefing_raw) else parse_timestamp(briefing_raw)

    return NormalizedRecord(
        ocid=clean_text(doc.get("ocid")) or "",
        release_id=clean_text(doc.get("id")) or "",
        tender_id=clean_text(tender.get("id")),
        title=clean_text(tender.get("title")),
        status=clean_text(tender.get("status")),
        category=clean_text(tender.get("category")),
        province=clean_text(tender.get("province")),
        description=clean_text(tender.get("description")),
        delivery_location=clean_text(tender.get("deliveryLocation")),
        special_conditions=clean_text(tender.get("specialConditions")),
        procurement_method=clean_text(tender.get("procurementMethod")),
        procurement_method_details=clean_text(tender.get("procurementMethodDetails")),
        main_procurement_category=clean_text(tender.get("mainProcurementCategory")),
        release_date=parse_timestamp(doc.get("date")),
        tender_period_start=parse_timestamp(period.get("startDate")),
        tender_period_end=parse_timestamp(period.get("endDate")),
        estimated_value=parse_amount(value.get("amount")),
        currency=clean_text(value.get("currency")) or home_currency,
        buyer_id=clean_text(buyer.get("id")),
        buyer_name=clean_text(buyer.get("name")),
        procuring_entity_id=clean_text(entity.get("id")),
        procuring_entity_name=clean_text(entity.get("name")),
        contact_name=clean_text(contact.get("name")),
        contact_email=clean_text(contact.get("email")),
        contact_phone=clean_text(contact.get("telephoneNumber")),
        briefing_is_session=parse_flag(briefing.get("isSession")),
        briefing_compulsory=parse_flag(briefing.get("compulsory")),
        briefing_date=briefing_date,
        briefing_venue=clean_text(briefing.get("venue")),
        document_count=len(as_list(tender.get("documents"))),
        award_count=len(awards),
        total_award_value=sum_award_values(awards),
        raw_payload=doc,
    )


def normalize_releases(releases: list[Any], home_currency: str = DEFAULT_CURRENCY) -> list[NormalizedRecord]:
    """Normalize a page of releases, preserving order."""
    return [normalize_release(release, home_currency=home_currency) for release in releases]
