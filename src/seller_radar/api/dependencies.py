"""
FastAPI Dependencies

The service container holds every stateful service (feature store cache,
rate limiter, de-duplicator, metrics) so that each is created once at startup
and can be swapped out in tests.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request

from config.settings import settings
from src.seller_radar.features.store import FileFeatureStoreReader, configure_feature_store_reader
from src.seller_radar.insights.market import CachedMarketDataProvider
from src.seller_radar.insights.properties import PropertyCatalogue
from src.seller_radar.integrations.crm import CrmWebhookClient
from src.seller_radar.ml.model_registry import ModelRegistry
from src.seller_radar.ml.model_weights import ModelWeightsProvider
from src.seller_radar.pipeline.dedup import RequestDeduplicator
from src.seller_radar.pipeline.metrics import MetricsRegistry
from src.seller_radar.pipeline.rate_limit import RateLimiter, client_key_from_headers
from src.seller_radar.predictions.run_logger import RunLogger
from src.seller_radar.scoring.propensity import SellerPropensityScorer


class RateLimitExceeded(Exception):
    def __init__(self, headers: dict):
        super().__init__("Too many requests")
        self.headers = headers


@dataclass
class ServiceContainer:
    scorer: SellerPropensityScorer
    feature_store: FileFeatureStoreReader
    run_logger: RunLogger
    model_registry: ModelRegistry
    crm_client: CrmWebhookClient
    rate_limiter: RateLimiter
    deduplicator: RequestDeduplicator
    metrics: MetricsRegistry

    def reset(self) -> None:
        """Drop cached state (feature store snapshot, rate windows, in-flight lookups, metrics)."""
        self.feature_store.clear()
        self.rate_limiter.reset()
        self.deduplicator.clear()
        self.metrics.clear()


def build_services() -> ServiceContainer:
    """
    Wire the default services from settings.

    Returns:
        Service container for one application instance
    """
    metrics = MetricsRegistry()
    deduplicator = RequestDeduplicator(metrics)
    feature_store = FileFeatureStoreReader(settings.feature_store_latest_path)
    configure_feature_store_reader(feature_store)

    scorer = SellerPropensityScorer(
        catalogue=PropertyCatalogue(settings.property_catalogue_path),
        feature_store=feature_store,
        market_data=CachedMarketDataProvider(settings.market_data_dir),
        model_provider=ModelWeightsProvider(url=settings.model_weights_url),
        deduplicator=deduplicator,
        metrics=metrics,
    )

    return ServiceContainer(
        scorer=scorer,
        feature_store=feature_store,
        run_logger=RunLogger(),
        model_registry=ModelRegistry(),
        crm_client=CrmWebhookClient(),
        rate_limiter=RateLimiter(settings.api_rate_limit_requests, settings.api_rate_limit_window_seconds),
        deduplicator=deduplicator,
        metrics=metrics,
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def enforce_rate_limit(request: Request, services: ServiceContainer = Depends(get_services)) -> None:
    """
    Rate limit dependency.

    Raises:
        RateLimitExceeded: When the caller's window is exhausted
    """
    client_host: Optional[str] = request.client.host if request.client else None
    decision = services.rate_limiter.check(client_key_from_headers(request.headers, client_host))
    request.state.rate_limit_headers = decision.headers()
    if not decision.allowed:
        services.metrics.increment_counter("api.rate_limited", {"path": request.url.path})
        raise RateLimitExceeded(decision.headers())

