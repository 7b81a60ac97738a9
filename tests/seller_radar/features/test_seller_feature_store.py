"""
Tests for the seller feature store builder.
"""
import json
from pathlib import Path

import pytest

from src.seller_radar.features.feature_store import (
    build_quality_report,
    build_seller_feature_store_snapshot,
    compute_listing_summary,
    compute_source_fingerprint,
    compute_transaction_summary,
    persist_seller_feature_store_snapshot,
    records_to_frame,
)
from src.seller_radar.features.models import (
    FeatureStoreSourceVersions,
    MacroSummary,
    SellerFeatureStoreSnapshot,
)
from src.seller_radar.pipeline.schemas import (
    EngagementEvent,
    IngestionBundle,
    ListingEvent,
    TransactionEvent,
)


def transaction(**fields):
    return TransactionEvent.model_validate({"propertyId": "austin-elm-001", **fields})


def listing(**fields):
    return ListingEvent.model_validate({"propertyId": "austin-elm-001", "listPrice": 500000, **fields})


def engagement(**fields):
    return EngagementEvent.model_validate({"propertyId": "austin-elm-001", **fields})


@pytest.fixture
def austin_bundle():
    return IngestionBundle(
        transactions=[transaction(eventType="sale", closedDate="2022-01-01", price=410000)],
        listings=[],
        engagement=[engagement(channel="email", event="open", occurredAt="2024-06-01")],
    )


def test_austin_record(austin_bundle, fixed_now):
    snapshot = build_seller_feature_store_snapshot(["austin-elm-001"], austin_bundle, now=fixed_now)

    assert snapshot.record_count == 1
    record = snapshot.records[0]
    assert record.property_id == "austin-elm-001"

    assert record.transaction_summary.last_sale_date == "2022-01-01"
    assert record.transaction_summary.last_sale_price == 410000
    assert record.transaction_summary.ownership_duration_years == 2
    assert record.transaction_summary.transaction_recency_months == 29

    assert record.listing_summary.last_listed_date is None
    assert record.listing_summary.active_listings == 0

    assert record.engagement_summary.channel_counts["email"] == 1
    assert record.engagement_summary.events_last_90_days == 1
    assert record.engagement_summary.high_intent_events_30_days == 0
    assert record.engagement_summary.last_engaged_at == "2024-06-01T00:00:00.000Z"
    assert record.engagement_summary.multi_channel_score == pytest.approx(0.167)

    assert record.quality.sources == ["transactions", "engagement"]
    assert "listings" not in record.quality.sources
    assert record.quality.completeness == 0.5


def test_snapshot_serializes_camel_case(austin_bundle, fixed_now):
    payload = build_seller_feature_store_snapshot(["austin-elm-001"], austin_bundle, now=fixed_now).to_json_dict()

    assert payload["generatedAt"] == "2024-06-15T00:00:00.000Z"
    assert payload["recordCount"] == 1
    record = payload["records"][0]
    assert record["propertyId"] == "austin-elm-001"
    assert record["transactionSummary"]["refinanceCount36m"] == 0
    assert record["engagementSummary"]["eventsLast90Days"] == 1


def test_build_is_deterministic(austin_bundle, fixed_now):
    first = build_seller_feature_store_snapshot(["austin-elm-001"], austin_bundle, now=fixed_now)
    second = build_seller_feature_store_snapshot(["austin-elm-001"], austin_bundle, now=fixed_now)

    assert first.to_json_dict() == second.to_json_dict()


def test_properties_without_events_get_empty_records(austin_bundle, fixed_now):
    snapshot = build_seller_feature_store_snapshot(
        ["austin-elm-001", "no-events-002", "austin-elm-001"], austin_bundle, now=fixed_now
    )

    assert [record.property_id for record in snapshot.records] == ["austin-elm-001", "no-events-002"]
    empty = snapshot.records[1]
    assert empty.quality.sources == []
    assert empty.quality.completeness == 0.0
    assert empty.transaction_summary.last_sale_date is None
    assert empty.engagement_summary.channel_counts == {}


def test_events_for_unrequested_properties_are_ignored(fixed_now):
    bundle = IngestionBundle(
        transactions=[TransactionEvent.model_validate({"propertyId": "other", "closedDate": "2020-01-01"})]
    )

    snapshot = build_seller_feature_store_snapshot(["austin-elm-001"], bundle, now=fixed_now)

    assert snapshot.stats.properties_with_transactions == 0


def test_full_completeness_with_macro(fixed_now):
    bundle = IngestionBundle(
        transactions=[transaction(closedDate="2010-05-01")],
        listings=[listing(listingId="L1", listedDate="2024-02-01", status="active", daysOnMarket=30)],
        engagement=[engagement(channel="call", event="conversation", occurredAt="2024-06-10T09:00:00Z")],
    )

    snapshot = build_seller_feature_store_snapshot(
        ["austin-elm-001"],
        bundle,
        now=fixed_now,
        macro_lookup=lambda property_id: MacroSummary(affordability_score=42, market_velocity=58, market_health="fair"),
    )

    record = snapshot.records[0]
    assert record.quality.sources == ["transactions", "listings", "engagement", "macro"]
    assert record.quality.completeness == 1.0
    assert record.macro_summary.market_health == "fair"
    assert record.engagement_summary.high_intent_events_30_days == 1
    assert snapshot.stats.average_completeness == 1.0


def test_failed_macro_lookup_only_costs_completeness(austin_bundle, fixed_now):
    def broken_lookup(property_id):
        raise OSError("market cache offline")

    snapshot = build_seller_feature_store_snapshot(
        ["austin-elm-001"], austin_bundle, now=fixed_now, macro_lookup=broken_lookup
    )

    assert snapshot.records[0].macro_summary.is_empty()
    assert "macro" not in snapshot.records[0].quality.sources


def test_transaction_summary_counts_recent_refinances(fixed_now):
    summary = compute_transaction_summary(
        [
            transaction(eventType="sale", closedDate="2015-03-20"),
            transaction(eventType="refinance", closedDate="2021-07-01"),
            transaction(eventType="refinance", closedDate="2020-01-10"),
        ],
        fixed_now,
    )

    assert summary.refinance_count_36m == 1
    assert summary.ownership_duration_years == 9


def test_future_dated_refinances_are_not_counted(fixed_now):
    summary = compute_transaction_summary(
        [
            transaction(eventType="refinance", closedDate="2024-09-01"),
            transaction(eventType="refinance", closedDate="2024-06-20"),
            transaction(eventType="refinance", closedDate="2023-02-01"),
        ],
        fixed_now,
    )

    assert summary.refinance_count_36m == 1


def test_refinance_only_history_has_no_last_sale(fixed_now):
    summary = compute_transaction_summary([transaction(eventType="refinance", closedDate="2023-01-01")], fixed_now)

    assert summary.last_sale_date is None
    assert summary.ownership_duration_years is None
    assert summary.refinance_count_36m == 1


def test_listing_summary(fixed_now):
    summary = compute_listing_summary(
        [
            listing(listingId="L1", listedDate="2022-05-01", status="expired", daysOnMarket=100),
            listing(listingId="L2", listedDate="2024-03-01", status="pending", daysOnMarket=21),
            listing(listingId="L3", listedDate="2024-01-15", status="withdrawn"),
        ],
        fixed_now,
    )

    assert summary.last_listed_date == "2024-03-01"
    assert summary.last_status == "pending"
    assert summary.active_listings == 1
    assert summary.listings_past_12_months == 2
    assert summary.average_days_on_market == 60.5


def test_quality_metrics(austin_bundle, fixed_now):
    snapshot = build_seller_feature_store_snapshot(["austin-elm-001", "empty-002"], austin_bundle, now=fixed_now)

    metrics = {metric.id: metric for metric in snapshot.quality_metrics}
    assert metrics["transactions-coverage"].value == 50.0
    assert metrics["transactions-coverage"].target == 85.0
    assert metrics["listings-coverage"].value == 0.0
    assert metrics["average-completeness"].value == 25.0

    report = build_quality_report(snapshot)
    assert list(report["id"]) == [
        "transactions-coverage",
        "listings-coverage",
        "engagement-coverage",
        "average-completeness",
    ]
    assert not report["meets_target"].any()


def test_empty_snapshot(fixed_now):
    snapshot = build_seller_feature_store_snapshot([], IngestionBundle(), now=fixed_now)

    assert snapshot.record_count == 0
    assert snapshot.stats.average_completeness == 0.0
    assert records_to_frame(snapshot).empty


def test_records_to_frame(austin_bundle, fixed_now):
    snapshot = build_seller_feature_store_snapshot(["austin-elm-001"], austin_bundle, now=fixed_now)

    df = records_to_frame(snapshot)

    assert df.loc[0, "propertyId"] == "austin-elm-001"
    assert df.loc[0, "transactionSummary.lastSaleDate"] == "2022-01-01"


def test_persist_snapshot(tmp_path, austin_bundle, fixed_now):
    sources = FeatureStoreSourceVersions(transactions_version="tx.json@abc123def456")
    snapshot = build_seller_feature_store_snapshot(
        ["austin-elm-001"], austin_bundle, sources=sources, now=fixed_now
    )

    paths = persist_seller_feature_store_snapshot(snapshot, tmp_path / "feature-store")

    assert paths["snapshot"].endswith("snapshot-2024-06-15T00-00-00-000Z.json")
    latest = SellerFeatureStoreSnapshot.model_validate(json.loads(Path(paths["latest"]).read_text()))
    assert latest == snapshot
    assert latest.sources.transactions_version == "tx.json@abc123def456"

    quality = json.loads(Path(paths["quality"]).read_text())
    assert isinstance(quality, list)
    assert {metric["id"] for metric in quality} >= {"transactions-coverage", "average-completeness"}
    assert not list((tmp_path / "feature-store").glob(".*.tmp"))


def test_compute_source_fingerprint(tmp_path):
    path = tmp_path / "property-transactions.json"
    path.write_text("[]", encoding="utf-8")

    fingerprint = compute_source_fingerprint(path)

    name, digest = fingerprint.split("@")
    assert name == "property-transactions.json"
    assert len(digest) == 12
    assert compute_source_fingerprint(path) == fingerprint
    assert compute_source_fingerprint(tmp_path / "missing.json") is None
