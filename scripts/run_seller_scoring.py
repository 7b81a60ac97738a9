"""
Run Seller Propensity Scoring

Scores the catalogue against the current feature store and appends the run
to the run log, the same as the API endpoint with persistence enabled.
"""
import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to Python path
ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from src.seller_radar.api.dependencies import build_services
from src.seller_radar.insights.properties import PropertyFilters
from src.seller_radar.predictions.run_logger import try_append_run_log
from src.seller_radar.utils.logger import bind_correlation_id, get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Score the property catalogue for seller propensity.")
    parser.add_argument("--state", help="Two-letter state filter.")
    parser.add_argument("--city", help="City filter.")
    parser.add_argument("--zip", help="ZIP prefix filter.")
    parser.add_argument("--min-score", type=float, help="Minimum overall score (0-100).")
    parser.add_argument("--limit", type=int, help="Keep the top N properties.")
    parser.add_argument("--no-persist", action="store_true", help="Do not append to the run log.")
    return parser.parse_args()


async def run(args: argparse.Namespace):
    services = build_services()
    filters = PropertyFilters(state=args.state, city=args.city, zip=args.zip, min_score=args.min_score)
    analysis = await services.scorer.score_all_cached_property_opportunities(
        filters=filters if filters.active() else None,
        limit=args.limit,
    )

    if not args.no_persist:
        outcome = try_append_run_log(services.run_logger, analysis)
        if outcome.warning:
            print(f"WARNING: {outcome.warning}")
    return analysis


def main():
    args = parse_args()
    bind_correlation_id()
    analysis = asyncio.run(run(args))

    print(f"\nScored {analysis.sample_size} properties")
    print(f"  Average score: {analysis.summary.average_score}")
    print(f"  Median score:  {analysis.summary.median_score}")
    for score in analysis.scores[:10]:
        print(f"  {score.overall_score:>3}  {score.property_id:<24} {score.property_details.address}")


if __name__ == "__main__":
    main()
