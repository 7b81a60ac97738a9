"""
Custom error types for data pipeline operations.
"""
from typing import Any, Optional


class SellerRadarError(Exception):
    """Base class for pipeline errors."""


class IngestionValidationError(SellerRadarError):
    """
    A raw event record failed schema validation.

    Raised for the first offending record; the whole batch is rejected.
    """

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        index: Optional[int] = None,
        field: Optional[str] = None,
        value: Any = None,
        schema: Optional[str] = None,
    ):
        super().__init__(message)
        self.file_path = file_path
        self.index = index
        self.field = field
        self.value = value
        self.schema = schema


class APIFetchError(SellerRadarError):
    """An outbound HTTP call failed."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code

    @property
    def is_retryable(self) -> bool:
        # No status code means the request never completed (network/timeout)
        return self.status_code is None or self.status_code >= 500 or self.status_code == 429

    @property
    def is_rate_limit(self) -> bool:
        return self.status_code == 429


class CacheError(SellerRadarError):
    """A cached artifact could not be read or parsed."""

    def __init__(self, message: str, cache_key: Optional[str] = None):
        super().__init__(message)
        self.cache_key = cache_key

