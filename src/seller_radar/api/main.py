"""
FastAPI Main Application

Seller Radar REST API: seller propensity analysis, export and CRM push.
"""
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src import __version__
from src.seller_radar.api.dependencies import RateLimitExceeded, ServiceContainer, build_services
from src.seller_radar.api.routers import predictions
from src.seller_radar.api.schemas import HealthCheck
from src.seller_radar.pipeline.errors import CacheError, SellerRadarError
from src.seller_radar.utils.logger import (
    bind_correlation_id,
    clear_correlation_id,
    get_logger,
    setup_logging,
)

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query"))
    message = first.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the application.

    Args:
        services: Pre-built services (tests pass their own); defaults to
            services wired from settings.
    """
    setup_logging()

    app = FastAPI(
        title="Seller Radar API",
        description="Seller propensity scoring over the cached property feature store",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.services = services or build_services()

    @app.middleware("http")
    async def correlation_and_rate_headers(request: Request, call_next):
        correlation_id = bind_correlation_id(request.headers.get(CORRELATION_HEADER))
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers[CORRELATION_HEADER] = correlation_id
        for name, value in getattr(request.state, "rate_limit_headers", {}).items():
            if name != "Retry-After":
                response.headers.setdefault(name, value)
        return response

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=422, content={"error": _validation_message(exc)})

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(RateLimitExceeded)
    async def handle_rate_limited(request: Request, exc: RateLimitExceeded):
        return JSONResponse(status_code=429, content={"error": "Too many requests"}, headers=exc.headers)

    @app.exception_handler(SellerRadarError)
    async def handle_pipeline_error(request: Request, exc: SellerRadarError):
        logger.error("request_failed", path=request.url.path, error=str(exc), error_type=type(exc).__name__)
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception("unhandled_error", path=request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    app.include_router(predictions.router)

    @app.get("/health", response_model=HealthCheck, tags=["health"])
    def health_check(request: Request):
        """
        Health check endpoint.

        Returns:
            Health status with feature store availability
        """
        feature_store = request.app.state.services.feature_store
        record_count = 0
        generated_at = None
        try:
            snapshot = feature_store.get_snapshot()
            if snapshot is None:
                feature_store_status = "missing"
            else:
                feature_store_status = "available"
                record_count = snapshot.record_count
                generated_at = snapshot.generated_at
        except CacheError as e:
            feature_store_status = f"error: {e}"

        return HealthCheck(
            status="healthy" if feature_store_status == "available" else "degraded",
            version=__version__,
            feature_store=feature_store_status,
            feature_store_records=record_count,
            feature_store_generated_at=generated_at,
            timestamp=datetime.now(timezone.utc),
        )

    @app.get("/", tags=["root"])
    def root():
        return {
            "name": "Seller Radar API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
            "endpoints": [
                "/api/predictions/seller",
                "/api/predictions/seller/export",
                "/api/predictions/seller/push",
                "/api/predictions/seller/runs",
                "/api/predictions/seller/models",
            ],
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.seller_radar.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
