"""
Ingestion and Request Pipeline

Event loaders and validation, retry with backoff, request de-duplication,
rate limiting and in-process metrics.
"""
from src.seller_radar.pipeline.errors import (
    APIFetchError,
    CacheError,
    IngestionValidationError,
    SellerRadarError,
)

__all__ = [
    "APIFetchError",
    "CacheError",
    "IngestionValidationError",
    "SellerRadarError",
]
