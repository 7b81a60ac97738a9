"""
Configuration Settings

Centralized configuration management using Pydantic and environment variables.
"""
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All sensitive values should be stored in .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Persisted prediction artifacts (feature store, run log, model registry)
    predictions_data_dir: str = "predictions-data"
    run_log_max_entries: int = 50
    model_registry_max_entries: int = 50

    # Collaborator inputs
    property_catalogue_path: str = "data/property-opportunities.json"
    market_data_dir: str = "data/market"
    transactions_path: str = "data/property-transactions.json"
    listings_path: str = "data/property-listings.json"
    engagement_path: str = "data/property-engagement.json"

    # Optional remote location of the latest model weights
    model_weights_url: Optional[str] = None

    # CRM webhook
    crm_seller_webhook_url: Optional[str] = None
    crm_seller_webhook_token: Optional[str] = None
    crm_timeout_seconds: float = 10.0

    # Timeout for the remote model weights fetch
    model_weights_timeout_seconds: float = 10.0

    # Retry policy for outbound calls
    http_max_retries: int = 3
    http_initial_delay_seconds: float = 1.0
    http_max_delay_seconds: float = 30.0
    http_backoff_multiplier: float = 2.0

    # API rate limiting (requests per window per client)
    api_rate_limit_requests: int = 100
    api_rate_limit_window_seconds: int = 60

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "json"

    # Application settings
    environment: str = "development"
    debug: bool = False

    @property
    def feature_store_dir(self) -> Path:
        return Path(self.predictions_data_dir) / "feature-store" / "seller"

    @property
    def feature_store_latest_path(self) -> Path:
        return self.feature_store_dir / "latest.json"

    @property
    def run_log_path(self) -> Path:
        return Path(self.predictions_data_dir) / "seller-propensity-run-log.json"

    @property
    def models_dir(self) -> Path:
        return Path(self.predictions_data_dir) / "models" / "seller-propensity"

    @property
    def model_registry_path(self) -> Path:
        return self.models_dir / "registry.json"


# Singleton instance
settings = Settings()
