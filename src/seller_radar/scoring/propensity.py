"""
Seller Propensity Scorer

Ranks catalogue properties by how likely their owners are to sell.

Each property gets five heuristic sub-signals in [0, 1] (equity upside,
tenure, engagement, listing velocity, affordability pressure), combined with
the configured component weights. Signals without data are left out and the
remaining weights renormalized. When a trained model is available its
probability is blended in, trusting the model more as feature completeness
rises.
"""
import asyncio
import re
from collections import defaultdict
from contextlib import nullcontext
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from src.seller_radar.features.models import MacroSummary, SellerFeatureStoreRecord
from src.seller_radar.features.store import FeatureStoreReader
from src.seller_radar.insights.market import CachedMarketDataProvider, MarketGeography, MarketSnapshot
from src.seller_radar.insights.properties import PropertyCatalogue, PropertyFilters, PropertyOpportunity, filter_properties
from src.seller_radar.ml.model_weights import ModelWeightsProvider, SellerModelWeights, project_features_with_model
from src.seller_radar.pipeline.dedup import RequestDeduplicator, make_dedup_key
from src.seller_radar.pipeline.errors import CacheError
from src.seller_radar.pipeline.metrics import MetricsRegistry
from src.seller_radar.scoring.models import (
    AnalysisInputs,
    AnalysisSummary,
    Attribution,
    AttributionSummary,
    CohortEntry,
    GeographyRankingEntry,
    ModelMetadata,
    ModelPrediction,
    PropertyDetails,
    ScoreCohorts,
    ScoreGeography,
    ScoreRange,
    SellerPropensityAnalysis,
    SellerPropensityScore,
    TopProperty,
)
from src.seller_radar.utils.dates import isoformat_utc, utc_now
from src.seller_radar.utils.logger import get_logger

logger = get_logger(__name__)

SIGNAL_NAMES: Tuple[str, ...] = (
    "equityUpside",
    "tenure",
    "engagement",
    "listingVelocity",
    "affordability",
)

DEFAULT_COMPONENT_WEIGHTS: Dict[str, float] = {
    "equityUpside": 0.30,
    "tenure": 0.25,
    "engagement": 0.20,
    "listingVelocity": 0.15,
    "affordability": 0.10,
}

DRIVER_LABELS: Dict[str, str] = {
    "equityUpside": "High equity upside",
    "tenure": "Long ownership tenure",
    "engagement": "Recent high-intent engagement",
    "listingVelocity": "Fast-moving local market",
    "affordability": "Affordability pressure in local market",
}

DRIVER_THRESHOLD = 0.65
MODEL_DRIVER_THRESHOLD = 0.7
LOW_COMPLETENESS_THRESHOLD = 0.5
SHORT_TENURE_YEARS = 3
LIMITED_EQUITY_RATIO = 0.3
SLOW_MARKET_THRESHOLD = 0.35

# Model trust grows linearly with completeness: 0.2 at 0%, 0.6 at 100%
MODEL_WEIGHT_BASE = 0.2
MODEL_WEIGHT_PER_COMPLETENESS = 0.4

COHORT_DIMENSIONS: Tuple[str, ...] = ("ownerType", "priority")
RANKING_LEVELS: Tuple[str, ...] = ("state", "region", "zip")
TOP_PROPERTIES_PER_GROUP = 5

CORPORATE_MARKERS = frozenset({
    "llc", "inc", "corp", "corporation", "lp", "llp", "ltd", "co",
    "company", "holdings", "properties", "investments", "partners",
})


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def scale(value: Optional[float], low: float, high: float, invert: bool = False) -> Optional[float]:
    """Linear map of ``value`` from [low, high] onto [0, 1], clamped."""
    if value is None:
        return None
    ratio = clamp((value - low) / (high - low))
    return 1.0 - ratio if invert else ratio


def validate_component_weights(weights: Optional[Dict[str, float]]) -> Dict[str, float]:
    """
    Check a component weight configuration.

    Raises:
        ValueError: Unknown or missing signal names, negative weights, or
            weights that do not sum to 1.
    """
    if weights is None:
        return dict(DEFAULT_COMPONENT_WEIGHTS)

    if set(weights) != set(SIGNAL_NAMES):
        raise ValueError(f"component weights must name exactly {list(SIGNAL_NAMES)}")
    if any(weight < 0 for weight in weights.values()):
        raise ValueError("component weights must be non-negative")
    if abs(sum(weights.values()) - 1.0) > 1e-6:
        raise ValueError("component weights must sum to 1")
    return {name: float(weights[name]) for name in SIGNAL_NAMES}


def derive_owner_type(prop: PropertyOpportunity) -> str:
    """Explicit owner type if the catalogue has one, otherwise inferred from the owner name."""
    if prop.owner_type and prop.owner_type.strip():
        return prop.owner_type.strip().lower()

    tokens = set(re.findall(r"[a-z]+", prop.owner.lower()))
    if "trust" in tokens:
        return "trust"
    if "estate" in tokens:
        return "estate"
    if tokens & CORPORATE_MARKERS:
        return "corporate"
    return "individual"


def tenure_years(prop: PropertyOpportunity, record: Optional[SellerFeatureStoreRecord]) -> Optional[float]:
    if record is not None and record.transaction_summary.ownership_duration_years is not None:
        return float(record.transaction_summary.ownership_duration_years)
    return prop.years_in_home


def resolve_macro(record: Optional[SellerFeatureStoreRecord], market: Optional[MarketSnapshot]) -> MacroSummary:
    """Feature store macro summary when present, otherwise the live market lookup."""
    if record is not None and not record.macro_summary.is_empty():
        return record.macro_summary
    if market is not None:
        return market.to_macro_summary()
    return MacroSummary()


def compute_signals(
    prop: PropertyOpportunity,
    record: Optional[SellerFeatureStoreRecord],
    macro: MacroSummary,
) -> Dict[str, Optional[float]]:
    signals: Dict[str, Optional[float]] = {}

    equity_ratio = prop.equity_ratio
    if equity_ratio is None:
        signals["equityUpside"] = None
    else:
        upside_ratio = prop.upside_ratio or 0.0
        signals["equityUpside"] = clamp(
            0.7 * clamp(equity_ratio * 1.2) + 0.3 * clamp(upside_ratio * 1.4)
        )

    signals["tenure"] = scale(tenure_years(prop, record), 1, 12)

    engagement = record.engagement_summary if record is not None else None
    if engagement is None or engagement.last_engaged_at is None:
        signals["engagement"] = None
    else:
        signals["engagement"] = clamp(
            0.4 * min(engagement.events_last_90_days, 12) / 12
            + 0.35 * min(engagement.high_intent_events_30_days, 3) / 3
            + 0.25 * engagement.multi_channel_score
        )

    velocity_parts = []
    if macro.market_velocity is not None:
        velocity_parts.append(clamp(macro.market_velocity / 100))
    if record is not None and record.listing_summary.average_days_on_market is not None:
        velocity_parts.append(scale(record.listing_summary.average_days_on_market, 0, 120, invert=True))
    signals["listingVelocity"] = float(np.mean(velocity_parts)) if velocity_parts else None

    if macro.affordability_score is None:
        signals["affordability"] = None
    else:
        signals["affordability"] = clamp(1 - macro.affordability_score / 100)

    return {name: (round(value, 4) if value is not None else None) for name, value in signals.items()}


def combine_signals(signals: Dict[str, Optional[float]], weights: Dict[str, float]) -> Tuple[float, float]:
    """
    Weighted mean over present signals.

    Returns:
        (heuristic in [0, 1], share of total weight that had data). With no
        usable signals the heuristic is a neutral 0.5.
    """
    used_weight = sum(weights[name] for name, value in signals.items() if value is not None)
    if used_weight <= 0:
        return 0.5, 0.0
    weighted = sum(weights[name] * value for name, value in signals.items() if value is not None)
    return clamp(weighted / used_weight), clamp(used_weight / sum(weights.values()))


def attribution_weights(completeness: float, has_model: bool) -> Attribution:
    if not has_model:
        return Attribution(heuristic_weight=1.0, model_weight=0.0)
    model_weight = round(MODEL_WEIGHT_BASE + MODEL_WEIGHT_PER_COMPLETENESS * clamp(completeness), 4)
    return Attribution(heuristic_weight=round(1.0 - model_weight, 4), model_weight=model_weight)


def compute_confidence(completeness: float, coverage: float, probability: Optional[float]) -> float:
    base = 0.5 * clamp(completeness) + 0.5 * clamp(coverage)
    if probability is not None:
        certainty = abs(probability - 0.5) * 2
        base = 0.8 * base + 0.2 * certainty
    return round(clamp(base), 3)


def build_drivers(
    signals: Dict[str, Optional[float]],
    weights: Dict[str, float],
    probability: Optional[float],
) -> List[str]:
    material = [
        (name, value)
        for name, value in signals.items()
        if value is not None and value >= DRIVER_THRESHOLD
    ]
    material.sort(key=lambda item: (-weights[item[0]] * item[1], SIGNAL_NAMES.index(item[0])))
    drivers = [DRIVER_LABELS[name] for name, _ in material]
    if probability is not None and probability >= MODEL_DRIVER_THRESHOLD:
        drivers.append(f"Model propensity {round(probability * 100)}%")
    return drivers


def build_risk_flags(
    prop: PropertyOpportunity,
    record: Optional[SellerFeatureStoreRecord],
    macro: MacroSummary,
    signals: Dict[str, Optional[float]],
    completeness: float,
) -> List[str]:
    flags = []

    if record is None or record.engagement_summary.events_last_90_days == 0:
        flags.append("No engagement in 90+ days")

    if completeness < LOW_COMPLETENESS_THRESHOLD:
        flags.append("Low data completeness")

    years = tenure_years(prop, record)
    if years is not None and years < SHORT_TENURE_YEARS:
        flags.append("Short ownership tenure (<3 years)")

    equity_ratio = prop.equity_ratio
    if equity_ratio is not None and equity_ratio < LIMITED_EQUITY_RATIO:
        flags.append(f"Limited equity (~{round(equity_ratio * 100)}%)")

    if record is not None and record.transaction_summary.refinance_count_36m > 0:
        flags.append("Recent refinance (last 36 months)")

    velocity = signals.get("listingVelocity")
    if macro.market_health == "poor" or (velocity is not None and velocity < SLOW_MARKET_THRESHOLD):
        flags.append("Slow local market")

    return flags


def score_property(
    prop: PropertyOpportunity,
    record: Optional[SellerFeatureStoreRecord],
    market: Optional[MarketSnapshot],
    model: Optional[SellerModelWeights],
    weights: Dict[str, float],
) -> SellerPropensityScore:
    """Score a single property. Pure CPU work; all lookups are done by the caller."""
    macro = resolve_macro(record, market)
    completeness = record.quality.completeness if record is not None else 0.0

    signals = compute_signals(prop, record, macro)
    heuristic, coverage = combine_signals(signals, weights)

    projection = None
    if model is not None:
        projection = project_features_with_model({**signals, "featureCompleteness": completeness}, model)

    attribution = attribution_weights(completeness, projection is not None)
    probability = projection.probability if projection is not None else None
    blended = attribution.heuristic_weight * heuristic + attribution.model_weight * (probability or 0.0)

    return SellerPropensityScore(
        property_id=prop.id,
        property_details=PropertyDetails(address=prop.address, owner=prop.owner, priority=prop.priority),
        geography=ScoreGeography(
            city=prop.city,
            state=prop.state,
            zip=prop.zip,
            county=prop.county,
            region=f"{prop.city}, {prop.state}",
        ),
        cohorts=ScoreCohorts(owner_type=derive_owner_type(prop), priority=prop.priority),
        overall_score=int(round(clamp(blended) * 100)),
        heuristic_score=int(round(heuristic * 100)),
        confidence=compute_confidence(completeness, coverage, probability),
        model_prediction=(
            ModelPrediction(
                probability=round(projection.probability, 4),
                model_id=projection.model_id,
                algorithm=projection.algorithm,
            )
            if projection is not None
            else None
        ),
        attribution=attribution,
        feature_completeness=completeness,
        signals=signals,
        missing_signals=[name for name in SIGNAL_NAMES if signals[name] is None],
        drivers=build_drivers(signals, weights, probability),
        risk_flags=build_risk_flags(prop, record, macro, signals, completeness),
    )


def ranking_sort_key(score: SellerPropensityScore):
    return (-score.overall_score, -score.confidence, score.property_id)


def summarize_scores(scores: List[SellerPropensityScore]) -> AnalysisSummary:
    if not scores:
        return AnalysisSummary()

    values = np.array([score.overall_score for score in scores], dtype=float)
    confidences = np.array([score.confidence for score in scores], dtype=float)
    return AnalysisSummary(
        average_score=round(float(values.mean()), 1),
        median_score=round(float(np.median(values)), 1),
        average_confidence=round(float(confidences.mean()), 3),
        score_range=ScoreRange(min=int(values.min()), max=int(values.max())),
    )


def build_cohorts(scores: List[SellerPropensityScore]) -> Dict[str, List[CohortEntry]]:
    cohorts: Dict[str, List[CohortEntry]] = {}
    for dimension in COHORT_DIMENSIONS:
        groups: Dict[str, List[SellerPropensityScore]] = defaultdict(list)
        for score in scores:
            key = score.cohorts.owner_type if dimension == "ownerType" else score.cohorts.priority
            groups[key].append(score)

        entries = []
        for key, group in groups.items():
            probabilities = [s.model_prediction.probability for s in group if s.model_prediction]
            entries.append(
                CohortEntry(
                    key=key,
                    sample_size=len(group),
                    average_score=round(float(np.mean([s.overall_score for s in group])), 1),
                    average_probability=round(float(np.mean(probabilities)), 4) if probabilities else None,
                )
            )
        entries.sort(key=lambda entry: (-entry.average_score, entry.key))
        cohorts[dimension] = entries
    return cohorts


def build_geography_rankings(scores: List[SellerPropensityScore]) -> Dict[str, List[GeographyRankingEntry]]:
    rankings: Dict[str, List[GeographyRankingEntry]] = {}
    for level in RANKING_LEVELS:
        groups: Dict[str, List[SellerPropensityScore]] = defaultdict(list)
        for score in scores:
            key = (getattr(score.geography, level) or "").strip()
            if key:
                groups[key].append(score)

        entries = []
        for key, group in groups.items():
            summary = summarize_scores(group)
            top = sorted(group, key=ranking_sort_key)[:TOP_PROPERTIES_PER_GROUP]
            entries.append(
                GeographyRankingEntry(
                    key=key,
                    label=key,
                    sample_size=len(group),
                    average_score=summary.average_score,
                    median_score=summary.median_score,
                    average_confidence=summary.average_confidence,
                    score_range=summary.score_range,
                    top_properties=[TopProperty(property_id=s.property_id, score=s.overall_score) for s in top],
                )
            )
        entries.sort(key=lambda entry: (-entry.average_score, entry.key))
        rankings[level] = entries
    return rankings


def summarize_attribution(scores: List[SellerPropensityScore]) -> AttributionSummary:
    if not scores:
        return AttributionSummary()
    return AttributionSummary(
        heuristic_average_weight=round(float(np.mean([s.attribution.heuristic_weight for s in scores])), 4),
        model_average_weight=round(float(np.mean([s.attribution.model_weight for s in scores])), 4),
    )


class SellerPropensityScorer:
    """
    Scores the property catalogue against the cached feature store.

    Usage:
        scorer = SellerPropensityScorer(catalogue, feature_store=reader)
        analysis = await scorer.score_all_cached_property_opportunities(
            PropertyFilters(state="TX", min_score=70), limit=25
        )
    """

    def __init__(
        self,
        catalogue: PropertyCatalogue,
        feature_store: Optional[FeatureStoreReader] = None,
        market_data: Optional[CachedMarketDataProvider] = None,
        model_provider: Optional[ModelWeightsProvider] = None,
        deduplicator: Optional[RequestDeduplicator] = None,
        metrics: Optional[MetricsRegistry] = None,
        component_weights: Optional[Dict[str, float]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.catalogue = catalogue
        self.feature_store = feature_store
        self.market_data = market_data
        self.model_provider = model_provider
        self.deduplicator = deduplicator or RequestDeduplicator(metrics)
        self.metrics = metrics
        self.component_weights = validate_component_weights(component_weights)
        self.clock = clock

    def _feature_store_ready(self) -> bool:
        if self.feature_store is None:
            return False
        try:
            snapshot = self.feature_store.get_snapshot()
        except CacheError as e:
            logger.warning("feature_store_unreadable", error=str(e))
            return False
        if snapshot is None:
            logger.info("feature_store_cold_start")
            return False
        return True

    async def _market_snapshot(self, prop: PropertyOpportunity) -> Optional[MarketSnapshot]:
        geography = MarketGeography(zip=prop.zip, city=prop.city, county=prop.county, state=prop.state)
        key = geography.cache_key()
        if self.market_data is None or key is None:
            return None
        try:
            return await self.deduplicator.dedupe(
                make_dedup_key("market", geography=key, county=prop.county),
                lambda: self.market_data.get_market_snapshot(geography),
            )
        except (CacheError, OSError, ValueError) as e:
            logger.warning("market_lookup_failed", property_id=prop.id, geography=key, error=str(e))
            return None

    async def _load_model(self) -> Optional[SellerModelWeights]:
        if self.model_provider is None:
            return None
        return await self.model_provider.get_latest()

    async def score_properties(
        self,
        properties: List[PropertyOpportunity],
        model: Optional[SellerModelWeights] = None,
    ) -> List[SellerPropensityScore]:
        """
        Score properties in input order.

        Market lookups for properties without a cached macro summary run
        concurrently (identical geographies share one lookup); scoring itself
        is sequential.
        """
        use_store = self._feature_store_ready()
        records = {
            prop.id: (self.feature_store.get_record(prop.id) if use_store else None)
            for prop in properties
        }

        needs_market = [
            prop
            for prop in properties
            if records[prop.id] is None or records[prop.id].macro_summary.is_empty()
        ]
        markets = await asyncio.gather(*(self._market_snapshot(prop) for prop in needs_market))
        market_by_id = {prop.id: market for prop, market in zip(needs_market, markets)}

        return [
            score_property(prop, records[prop.id], market_by_id.get(prop.id), model, self.component_weights)
            for prop in properties
        ]

    async def score_property_ids(self, property_ids: List[str]) -> List[SellerPropensityScore]:
        """Score specific catalogue properties, in request order. Unknown ids are skipped."""
        by_id = {prop.id: prop for prop in await self.catalogue.list_all_property_opportunities()}
        wanted = [by_id[pid] for pid in dict.fromkeys(property_ids) if pid in by_id]
        return await self.score_properties(wanted, await self._load_model())

    async def score_all_cached_property_opportunities(
        self,
        filters: Optional[PropertyFilters] = None,
        limit: Optional[int] = None,
    ) -> SellerPropensityAnalysis:
        """
        Score and rank the catalogue.

        Args:
            filters: Catalogue filters; ``min_score`` applies to the overall score.
            limit: Keep the first N after ranking.

        Returns:
            The analysis. No matches gives ``sample_size == 0`` and no scores.
        """
        timer_tags = {"operation": "seller_scoring"}
        with self._timer("seller_scoring.duration_ms", timer_tags):
            properties = await self.catalogue.list_all_property_opportunities()
            candidates = filter_properties(properties, filters)
            model = await self._load_model()

            scores = await self.score_properties(candidates, model)
            if filters is not None and filters.min_score is not None:
                scores = [score for score in scores if score.overall_score >= filters.min_score]

            scores.sort(key=ranking_sort_key)
            if limit is not None and limit > 0:
                scores = scores[:limit]

            analysis = SellerPropensityAnalysis(
                generated_at=isoformat_utc(self.clock()),
                sample_size=len(scores),
                inputs=AnalysisInputs(
                    filters=filters.active() if filters is not None else {},
                    limit=limit,
                    property_ids=[score.property_id for score in scores],
                ),
                summary=summarize_scores(scores),
                component_weights=dict(self.component_weights),
                model_metadata=(
                    ModelMetadata(
                        model_id=model.id,
                        algorithm=model.algorithm,
                        trained_at=model.trained_at,
                        metrics=model.metrics,
                    )
                    if model is not None
                    else None
                ),
                attribution_summary=summarize_attribution(scores),
                cohorts=build_cohorts(scores),
                rankings=build_geography_rankings(scores),
                scores=scores,
            )

        if self.metrics is not None:
            self.metrics.record_gauge("seller_scoring.sample_size", analysis.sample_size)

        logger.info(
            "seller_scoring_completed",
            catalogue_size=len(properties),
            candidates=len(candidates),
            sample_size=analysis.sample_size,
            average_score=analysis.summary.average_score,
            model_id=model.id if model is not None else None,
        )
        return analysis

    def _timer(self, name: str, tags: Dict[str, str]):
        if self.metrics is None:
            return nullcontext()
        return self.metrics.timer(name, tags)

