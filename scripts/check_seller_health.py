"""
Feature store data-quality check.

Prints the quality metrics of the latest snapshot against their targets and
exits non-zero when the snapshot is missing or a target is not met.
"""
import argparse
import sys
from pathlib import Path

# Add parent directory to Python path
ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from config.settings import settings
from src.seller_radar.features.feature_store import build_quality_report
from src.seller_radar.features.store import FileFeatureStoreReader
from src.seller_radar.pipeline.errors import CacheError
from src.seller_radar.utils.logger import get_logger

logger = get_logger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Check seller feature store quality against targets.")
    parser.add_argument("--latest", default=str(settings.feature_store_latest_path), help="Path to latest.json.")
    args = parser.parse_args()

    try:
        snapshot = FileFeatureStoreReader(args.latest).get_snapshot()
    except CacheError as e:
        logger.error("feature_store_unreadable", error=str(e))
        return 2

    if snapshot is None:
        print(f"No feature store snapshot at {args.latest}. Run scripts/refresh_feature_store.py first.")
        return 2

    report = build_quality_report(snapshot)
    print(f"Snapshot generated at {snapshot.generated_at} ({snapshot.record_count} records)\n")
    print(report.to_string(index=False))

    failing = report.loc[~report["meets_target"], "id"].tolist()
    logger.info("feature_store_quality_checked", failing=failing, record_count=snapshot.record_count)
    return 1 if failing else 0


if __name__ == "__main__":
    sys.exit(main())
