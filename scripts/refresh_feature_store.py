"""
Rebuild the Seller Feature Store

Loads the raw transaction, listing and engagement event files, builds one
record per catalogue property and writes a new versioned snapshot plus
latest.json and quality.json.
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add parent directory to Python path
ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from config.settings import settings
from src.seller_radar.features.feature_store import (
    build_seller_feature_store_snapshot,
    compute_source_fingerprint,
    persist_seller_feature_store_snapshot,
)
from src.seller_radar.features.models import FeatureStoreSourceVersions
from src.seller_radar.insights.market import CachedMarketDataProvider, MarketGeography
from src.seller_radar.insights.properties import PropertyCatalogue
from src.seller_radar.pipeline.errors import IngestionValidationError
from src.seller_radar.pipeline.loaders import load_ingestion_bundle
from src.seller_radar.utils.logger import bind_correlation_id, get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rebuild the seller feature store snapshot from raw event files.")
    parser.add_argument("--transactions", default=settings.transactions_path, help="Transaction events JSON array.")
    parser.add_argument("--listings", default=settings.listings_path, help="Listing events JSON array.")
    parser.add_argument("--engagement", default=settings.engagement_path, help="Engagement events JSON array.")
    parser.add_argument("--catalogue", default=settings.property_catalogue_path, help="Property opportunity catalogue.")
    parser.add_argument("--market-dir", default=settings.market_data_dir, help="Market data cache directory.")
    parser.add_argument("--output-dir", default=str(settings.feature_store_dir), help="Feature store directory.")
    parser.add_argument("--no-macro", action="store_true", help="Skip market data lookups.")
    return parser.parse_args()


async def refresh(args: argparse.Namespace) -> dict:
    bundle = await load_ingestion_bundle(args.transactions, args.listings, args.engagement)
    properties = await PropertyCatalogue(args.catalogue).list_all_property_opportunities()

    macro_lookup = None
    if not args.no_macro:
        market = CachedMarketDataProvider(args.market_dir)
        by_id = {prop.id: prop for prop in properties}

        def macro_lookup(property_id: str):
            prop = by_id.get(property_id)
            if prop is None:
                return None
            return market.macro_summary_for(
                MarketGeography(zip=prop.zip, city=prop.city, county=prop.county, state=prop.state)
            )

    sources = FeatureStoreSourceVersions(
        transactions_version=compute_source_fingerprint(args.transactions),
        listings_version=compute_source_fingerprint(args.listings),
        engagement_version=compute_source_fingerprint(args.engagement),
    )

    snapshot = build_seller_feature_store_snapshot(
        [prop.id for prop in properties],
        bundle,
        sources=sources,
        macro_lookup=macro_lookup,
    )
    paths = persist_seller_feature_store_snapshot(snapshot, args.output_dir)
    return {"snapshot": snapshot, "paths": paths}


def main():
    args = parse_args()
    bind_correlation_id()

    try:
        result = asyncio.run(refresh(args))
    except (FileNotFoundError, json.JSONDecodeError, IngestionValidationError) as e:
        logger.error("feature_store_refresh_failed", error=str(e))
        sys.exit(1)

    snapshot = result["snapshot"]
    print("\nFeature store refreshed:")
    print(f"  Records:      {snapshot.record_count}")
    print(f"  Completeness: {snapshot.stats.average_completeness:.1%}")
    print(f"  Latest:       {result['paths']['latest']}")


if __name__ == "__main__":
    main()
