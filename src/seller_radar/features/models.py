"""
Feature store record and snapshot models.

These are the persisted shapes of ``latest.json`` and the timestamped snapshot
files; they serialize with camelCase keys.
"""
from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import Field

from src.seller_radar.pipeline.schemas import CamelModel

MarketHealth = Literal["excellent", "good", "fair", "poor"]

SUMMARY_GROUPS: tuple[str, ...] = ("transactions", "listings", "engagement", "macro")


class TransactionSummary(CamelModel):
    last_sale_date: Optional[str] = None
    last_sale_price: Optional[float] = None
    ownership_duration_years: Optional[int] = None
    transaction_recency_months: Optional[int] = None
    refinance_count_36m: int = 0


class ListingSummary(CamelModel):
    last_listed_date: Optional[str] = None
    last_status: Optional[str] = None
    active_listings: int = 0
    listings_past_12_months: int = 0
    average_days_on_market: Optional[float] = None


class EngagementSummary(CamelModel):
    last_engaged_at: Optional[str] = None
    events_last_90_days: int = 0
    high_intent_events_30_days: int = 0
    multi_channel_score: float = 0.0
    channel_counts: Dict[str, int] = Field(default_factory=dict)


class MacroSummary(CamelModel):
    affordability_score: Optional[float] = None
    market_velocity: Optional[float] = None
    market_health: Optional[MarketHealth] = None

    def is_empty(self) -> bool:
        return (
            self.affordability_score is None
            and self.market_velocity is None
            and self.market_health is None
        )


class RecordQuality(CamelModel):
    sources: List[str] = Field(default_factory=list)
    completeness: float = 0.0


class SellerFeatureStoreRecord(CamelModel):
    property_id: str
    transaction_summary: TransactionSummary = Field(default_factory=TransactionSummary)
    listing_summary: ListingSummary = Field(default_factory=ListingSummary)
    engagement_summary: EngagementSummary = Field(default_factory=EngagementSummary)
    macro_summary: MacroSummary = Field(default_factory=MacroSummary)
    quality: RecordQuality = Field(default_factory=RecordQuality)


class FeatureStoreSourceVersions(CamelModel):
    transactions_version: Optional[str] = None
    listings_version: Optional[str] = None
    engagement_version: Optional[str] = None


class DataQualityMetric(CamelModel):
    id: str
    label: str
    value: float
    unit: Literal["%", "count"]
    target: Optional[float] = None


class SnapshotStats(CamelModel):
    properties_with_transactions: int = 0
    properties_with_listings: int = 0
    properties_with_engagement: int = 0
    properties_with_macro: int = 0
    average_completeness: float = 0.0


class SellerFeatureStoreSnapshot(CamelModel):
    generated_at: str
    record_count: int
    stats: SnapshotStats = Field(default_factory=SnapshotStats)
    sources: FeatureStoreSourceVersions = Field(default_factory=FeatureStoreSourceVersions)
    records: List[SellerFeatureStoreRecord] = Field(default_factory=list)
    quality_metrics: List[DataQualityMetric] = Field(default_factory=list)

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")
