"""
Raw event record schemas.

Transaction, listing and engagement events are validated one record at a time
at load time. Date fields keep the caller's original string but must parse to a
real calendar date; ``parse_event_datetime`` converts them for aggregation.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


TransactionType = Literal["sale", "refinance", "listing-transfer", "other"]
OccupancyType = Literal["primary", "investment", "second-home"]
ListingStatus = Literal["active", "pending", "coming-soon", "sold", "expired", "withdrawn"]
EngagementChannel = Literal["email", "sms", "web", "call", "app", "social"]

ENGAGEMENT_CHANNELS: tuple[str, ...] = ("email", "sms", "web", "call", "app", "social")


def to_camel(name: str) -> str:
    """snake_case to camelCase, leaving digit runs untouched (refinance_count_36m -> refinanceCount36m)."""
    first, *rest = name.split("_")
    return first + "".join(part[:1].upper() + part[1:] for part in rest)


def parse_event_datetime(value: Any) -> datetime:
    """
    Parse an ISO date or datetime into an aware UTC datetime.

    Date-only values are midnight UTC and naive datetimes are assumed to be UTC.

    Raises:
        ValueError: If the value is not a valid ISO date/datetime.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        parsed = datetime.fromisoformat(value.strip())
    else:
        raise ValueError(f"expected an ISO date string, got {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class CamelModel(BaseModel):
    """Base model serializing to camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())


class EventModel(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


def _iso_date_field(value: Any) -> str:
    parse_event_datetime(value)
    return value if isinstance(value, str) else value.isoformat()


class TransactionEvent(EventModel):
    property_id: str = Field(..., min_length=1)
    event_type: TransactionType = "sale"
    closed_date: str
    price: Optional[float] = Field(None, ge=0)
    loan_balance: Optional[float] = None
    occupancy_type: Optional[OccupancyType] = None

    @field_validator("closed_date", mode="before")
    @classmethod
    def _validate_closed_date(cls, value: Any) -> str:
        try:
            return _iso_date_field(value)
        except (TypeError, ValueError):
            raise ValueError("closedDate must be a valid ISO date string")

    @property
    def closed_at(self) -> datetime:
        return parse_event_datetime(self.closed_date)


class ListingEvent(EventModel):
    property_id: str = Field(..., min_length=1)
    listing_id: str = Field(..., min_length=1)
    listed_date: str
    status: ListingStatus
    list_price: float = Field(..., ge=0)
    days_on_market: Optional[float] = None

    @field_validator("listed_date", mode="before")
    @classmethod
    def _validate_listed_date(cls, value: Any) -> str:
        try:
            return _iso_date_field(value)
        except (TypeError, ValueError):
            raise ValueError("listedDate must be a valid ISO date string")

    @property
    def listed_at(self) -> datetime:
        return parse_event_datetime(self.listed_date)


class EngagementEvent(EventModel):
    property_id: str = Field(..., min_length=1)
    channel: EngagementChannel
    event: str = Field(..., min_length=1)
    occurred_at: str
    campaign: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("occurred_at", mode="before")
    @classmethod
    def _validate_occurred_at(cls, value: Any) -> str:
        try:
            return _iso_date_field(value)
        except (TypeError, ValueError):
            raise ValueError("occurredAt must be a valid ISO date string")

    @property
    def occurred(self) -> datetime:
        return parse_event_datetime(self.occurred_at)


class IngestionBundle(CamelModel):
    """The three raw event collections for one feature store build."""

    transactions: List[TransactionEvent] = Field(default_factory=list)
    listings: List[ListingEvent] = Field(default_factory=list)
    engagement: List[EngagementEvent] = Field(default_factory=list)
