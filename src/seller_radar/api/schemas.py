"""
Pydantic Schemas for API Request/Response Models

These schemas define the JSON structure for API endpoints.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from src.seller_radar.pipeline.schemas import CamelModel
from src.seller_radar.scoring.models import AttributionSummary, ModelMetadata, SellerPropensityAnalysis


class HealthCheck(BaseModel):
    """Health check response."""
    status: str = "healthy"
    version: str
    feature_store: str
    feature_store_records: int = 0
    feature_store_generated_at: Optional[str] = None
    timestamp: datetime


class ErrorResponse(BaseModel):
    error: str


class SellerPropensityMetadata(CamelModel):
    filters: Dict[str, Any] = Field(default_factory=dict)
    limit: Optional[int] = None
    persisted: bool = False
    generated_at: str
    component_weights: Dict[str, float]
    model_metadata: Optional[ModelMetadata] = None
    cohort_dimensions: List[str] = Field(default_factory=list)
    attribution_summary: AttributionSummary
    warnings: List[str] = Field(default_factory=list)


class SellerPropensityResponse(CamelModel):
    analysis: SellerPropensityAnalysis
    metadata: SellerPropensityMetadata


class PushRequest(CamelModel):
    """Properties to forward to the CRM."""
    property_ids: List[str] = Field(..., min_length=1)
    campaign: Optional[str] = None


class PushResponse(CamelModel):
    requested: int
    pushed: int
    matched_property_ids: List[str]
    missing_property_ids: List[str] = Field(default_factory=list)
    campaign: Optional[str] = None
    webhook_status: str
    webhook_status_code: Optional[int] = None
