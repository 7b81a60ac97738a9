"""
Seller Feature Store Builder

Aggregates raw transaction, listing and engagement events into one summary
record per property, tracks which sources contributed, and persists the
result as versioned JSON snapshots.
"""
import hashlib
import json
import os
from collections import defaultdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

import pandas as pd

from src.seller_radar.features.models import (
    DataQualityMetric,
    EngagementSummary,
    FeatureStoreSourceVersions,
    ListingSummary,
    MacroSummary,
    RecordQuality,
    SellerFeatureStoreRecord,
    SellerFeatureStoreSnapshot,
    SnapshotStats,
    SUMMARY_GROUPS,
    TransactionSummary,
)
from src.seller_radar.pipeline.schemas import (
    ENGAGEMENT_CHANNELS,
    EngagementEvent,
    IngestionBundle,
    ListingEvent,
    TransactionEvent,
)
from src.seller_radar.utils.dates import (
    calendar_months_between,
    file_timestamp,
    isoformat_utc,
    months_between,
    utc_now,
    whole_years_between,
)
from src.seller_radar.utils.logger import get_logger

logger = get_logger(__name__)

MacroLookup = Callable[[str], Optional[MacroSummary]]

ACTIVE_LISTING_STATUSES = frozenset({"active", "pending", "coming-soon"})
HIGH_INTENT_CHANNELS = frozenset({"call", "app"})
HIGH_INTENT_EVENTS = frozenset({
    "valuation-check",
    "seller-guide-download",
    "form_submission",
    "conversation",
    "call",
    "link-click",
})

REFINANCE_WINDOW_MONTHS = 36
LISTING_WINDOW_MONTHS = 12
ENGAGEMENT_WINDOW_DAYS = 90
HIGH_INTENT_WINDOW_DAYS = 30

# (metric id, label, stats attribute, target %)
COVERAGE_METRICS = (
    ("transactions-coverage", "Transaction coverage", "properties_with_transactions", 85.0),
    ("listings-coverage", "Listing coverage", "properties_with_listings", 80.0),
    ("engagement-coverage", "Engagement coverage", "properties_with_engagement", 70.0),
)
AVERAGE_COMPLETENESS_TARGET = 75.0


def compute_transaction_summary(events: List[TransactionEvent], now: datetime) -> TransactionSummary:
    """
    Summarize ownership history.

    Only ``sale`` events define the last sale; refinances within the trailing
    36 calendar months are counted separately.
    """
    refinance_count = sum(
        1
        for event in events
        if event.event_type == "refinance"
        and 0 <= calendar_months_between(now, event.closed_at) <= REFINANCE_WINDOW_MONTHS
    )

    sales = [event for event in events if event.event_type == "sale"]
    if not sales:
        return TransactionSummary(refinance_count_36m=refinance_count)

    last_sale = max(sales, key=lambda event: event.closed_at)
    closed_at = last_sale.closed_at
    return TransactionSummary(
        last_sale_date=closed_at.date().isoformat(),
        last_sale_price=last_sale.price,
        ownership_duration_years=whole_years_between(now, closed_at),
        transaction_recency_months=months_between(now, closed_at),
        refinance_count_36m=refinance_count,
    )


def compute_listing_summary(events: List[ListingEvent], now: datetime) -> ListingSummary:
    if not events:
        return ListingSummary()

    latest = max(events, key=lambda event: event.listed_at)
    recent = [
        event
        for event in events
        if calendar_months_between(now, event.listed_at) <= LISTING_WINDOW_MONTHS
    ]
    active = [event for event in events if event.status in ACTIVE_LISTING_STATUSES]
    dom_values = [
        event.days_on_market
        for event in events
        if event.days_on_market is not None and event.days_on_market >= 0
    ]
    average_dom = round(sum(dom_values) / len(dom_values), 1) if dom_values else None

    return ListingSummary(
        last_listed_date=latest.listed_at.date().isoformat(),
        last_status=latest.status,
        active_listings=len(active),
        listings_past_12_months=len(recent),
        average_days_on_market=average_dom,
    )


def is_high_intent(event: EngagementEvent) -> bool:
    return event.channel in HIGH_INTENT_CHANNELS or event.event in HIGH_INTENT_EVENTS


def compute_engagement_summary(events: List[EngagementEvent], now: datetime) -> EngagementSummary:
    if not events:
        return EngagementSummary()

    engagement_cutoff = now - timedelta(days=ENGAGEMENT_WINDOW_DAYS)
    intent_cutoff = now - timedelta(days=HIGH_INTENT_WINDOW_DAYS)

    channel_counts: Dict[str, int] = defaultdict(int)
    events_last_90 = 0
    high_intent_30 = 0
    for event in events:
        occurred = event.occurred
        channel_counts[event.channel] += 1
        if occurred >= engagement_cutoff:
            events_last_90 += 1
        if occurred >= intent_cutoff and is_high_intent(event):
            high_intent_30 += 1

    last_engaged = max(event.occurred for event in events)
    return EngagementSummary(
        last_engaged_at=isoformat_utc(last_engaged),
        events_last_90_days=events_last_90,
        high_intent_events_30_days=high_intent_30,
        multi_channel_score=round(len(channel_counts) / len(ENGAGEMENT_CHANNELS), 3),
        channel_counts={channel: channel_counts[channel] for channel in sorted(channel_counts)},
    )


def _lookup_macro(property_id: str, macro_lookup: Optional[MacroLookup]) -> MacroSummary:
    if macro_lookup is None:
        return MacroSummary()
    try:
        return macro_lookup(property_id) or MacroSummary()
    except Exception as e:
        # Market data is optional; a failed lookup only costs completeness
        logger.warning("macro_lookup_failed", property_id=property_id, error=str(e))
        return MacroSummary()


def compute_completeness(sources: Iterable[str]) -> float:
    return round(len(set(sources)) / len(SUMMARY_GROUPS), 4)


def build_seller_feature_record(
    property_id: str,
    transactions: List[TransactionEvent],
    listings: List[ListingEvent],
    engagement: List[EngagementEvent],
    now: datetime,
    macro_lookup: Optional[MacroLookup] = None,
) -> SellerFeatureStoreRecord:
    """Build one property's record from its already-filtered events."""
    macro_summary = _lookup_macro(property_id, macro_lookup)

    contributing = {
        "transactions": bool(transactions),
        "listings": bool(listings),
        "engagement": bool(engagement),
        "macro": not macro_summary.is_empty(),
    }
    sources = [group for group in SUMMARY_GROUPS if contributing[group]]

    return SellerFeatureStoreRecord(
        property_id=property_id,
        transaction_summary=compute_transaction_summary(transactions, now),
        listing_summary=compute_listing_summary(listings, now),
        engagement_summary=compute_engagement_summary(engagement, now),
        macro_summary=macro_summary,
        quality=RecordQuality(sources=sources, completeness=compute_completeness(sources)),
    )


def _group_by_property(events: Iterable) -> Dict[str, list]:
    grouped: Dict[str, list] = defaultdict(list)
    for event in events:
        grouped[event.property_id].append(event)
    return grouped


def _percent(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


def build_quality_metrics(stats: SnapshotStats, record_count: int) -> List[DataQualityMetric]:
    metrics = [
        DataQualityMetric(
            id=metric_id,
            label=label,
            value=_percent(getattr(stats, attribute), record_count),
            unit="%",
            target=target,
        )
        for metric_id, label, attribute, target in COVERAGE_METRICS
    ]
    metrics.append(
        DataQualityMetric(
            id="average-completeness",
            label="Average record completeness",
            value=round(stats.average_completeness * 100, 1),
            unit="%",
            target=AVERAGE_COMPLETENESS_TARGET,
        )
    )
    return metrics


def build_seller_feature_store_snapshot(
    property_ids: Iterable[str],
    bundle: IngestionBundle,
    sources: Optional[FeatureStoreSourceVersions] = None,
    now: Optional[datetime] = None,
    macro_lookup: Optional[MacroLookup] = None,
) -> SellerFeatureStoreSnapshot:
    """
    Build a feature store snapshot for the requested properties.

    Args:
        property_ids: Properties to build records for. Duplicates are dropped
            and first-seen order is kept; events for other properties are ignored.
        bundle: Raw events loaded by ``load_ingestion_bundle``.
        sources: Version fingerprints of the event files.
        now: Reference time for all trailing windows (defaults to current UTC).
        macro_lookup: Optional ``property_id -> MacroSummary`` collaborator.

    Returns:
        The snapshot. Properties without any events still get a record with
        empty summaries and completeness 0.
    """
    now = now or utc_now()
    ordered_ids = list(dict.fromkeys(property_ids))

    transactions_by_property = _group_by_property(bundle.transactions)
    listings_by_property = _group_by_property(bundle.listings)
    engagement_by_property = _group_by_property(bundle.engagement)

    records: List[SellerFeatureStoreRecord] = []
    for property_id in ordered_ids:
        records.append(
            build_seller_feature_record(
                property_id,
                transactions_by_property.get(property_id, []),
                listings_by_property.get(property_id, []),
                engagement_by_property.get(property_id, []),
                now,
                macro_lookup,
            )
        )

    record_count = len(records)

    def with_source(name: str) -> int:
        return sum(1 for record in records if name in record.quality.sources)

    stats = SnapshotStats(
        properties_with_transactions=with_source("transactions"),
        properties_with_listings=with_source("listings"),
        properties_with_engagement=with_source("engagement"),
        properties_with_macro=with_source("macro"),
        average_completeness=(
            round(sum(record.quality.completeness for record in records) / record_count, 4)
            if record_count
            else 0.0
        ),
    )

    snapshot = SellerFeatureStoreSnapshot(
        generated_at=isoformat_utc(now),
        record_count=record_count,
        stats=stats,
        sources=sources or FeatureStoreSourceVersions(),
        records=records,
        quality_metrics=build_quality_metrics(stats, record_count),
    )

    logger.info(
        "feature_store_snapshot_built",
        record_count=record_count,
        average_completeness=stats.average_completeness,
    )
    return snapshot


def _write_json(path: Path, payload) -> None:
    # Write then rename so readers never observe a partially written file
    tmp_path = path.with_name(f".{path.name}.tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
        f.write("\n")
    os.replace(tmp_path, path)


def persist_seller_feature_store_snapshot(
    snapshot: SellerFeatureStoreSnapshot,
    output_dir: Union[str, Path],
) -> Dict[str, str]:
    """
    Write ``snapshot-<timestamp>.json``, ``latest.json`` and ``quality.json``.

    Returns:
        Mapping of file role to written path.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    payload = snapshot.to_json_dict()
    generated_at = datetime.fromisoformat(snapshot.generated_at)

    snapshot_path = output_dir / f"snapshot-{file_timestamp(generated_at)}.json"
    latest_path = output_dir / "latest.json"
    quality_path = output_dir / "quality.json"

    _write_json(snapshot_path, payload)
    _write_json(latest_path, payload)
    _write_json(quality_path, payload["qualityMetrics"])

    logger.info(
        "feature_store_snapshot_persisted",
        snapshot_path=str(snapshot_path),
        record_count=snapshot.record_count,
    )
    return {
        "snapshot": str(snapshot_path),
        "latest": str(latest_path),
        "quality": str(quality_path),
    }


def compute_source_fingerprint(path: Union[str, Path]) -> Optional[str]:
    """``<file name>@<first 12 hex chars of sha256>``, or None if the file is missing."""
    path = Path(path)
    if not path.exists():
        return None

    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return f"{path.name}@{digest.hexdigest()[:12]}"


def build_quality_report(snapshot: SellerFeatureStoreSnapshot) -> pd.DataFrame:
    """
    Tabulate quality metrics against their targets.

    Columns: id, label, value, unit, target, meets_target.
    """
    df = pd.DataFrame(
        [metric.model_dump() for metric in snapshot.quality_metrics],
        columns=["id", "label", "value", "unit", "target"],
    )
    df["meets_target"] = df["target"].isna() | (df["value"] >= df["target"])
    return df


def records_to_frame(snapshot: SellerFeatureStoreSnapshot) -> pd.DataFrame:
    """Flatten snapshot records into one row per property (dotted camelCase columns)."""
    rows = [record.model_dump(by_alias=True, mode="json") for record in snapshot.records]
    if not rows:
        return pd.DataFrame(columns=["propertyId"])
    return pd.json_normalize(rows)
