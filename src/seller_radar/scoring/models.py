"""
Seller propensity score and analysis models (camelCase JSON).
"""
from typing import Any, Dict, List, Optional

from pydantic import Field

from src.seller_radar.ml.model_registry import ModelMetrics
from src.seller_radar.pipeline.schemas import CamelModel


class PropertyDetails(CamelModel):
    address: str
    owner: str
    priority: str


class ScoreGeography(CamelModel):
    city: str
    state: str
    zip: str
    county: Optional[str] = None
    region: str


class ScoreCohorts(CamelModel):
    owner_type: str
    priority: str


class ModelPrediction(CamelModel):
    probability: float
    model_id: str
    algorithm: str


class Attribution(CamelModel):
    heuristic_weight: float = 1.0
    model_weight: float = 0.0


class SellerPropensityScore(CamelModel):
    property_id: str
    property_details: PropertyDetails
    geography: ScoreGeography
    cohorts: ScoreCohorts
    overall_score: int
    heuristic_score: int
    confidence: float
    model_prediction: Optional[ModelPrediction] = None
    attribution: Attribution = Field(default_factory=Attribution)
    feature_completeness: float = 0.0
    signals: Dict[str, Optional[float]] = Field(default_factory=dict)
    missing_signals: List[str] = Field(default_factory=list)
    drivers: List[str] = Field(default_factory=list)
    risk_flags: List[str] = Field(default_factory=list)


class ScoreRange(CamelModel):
    min: int = 0
    max: int = 0


class AnalysisSummary(CamelModel):
    average_score: float = 0.0
    median_score: float = 0.0
    average_confidence: float = 0.0
    score_range: ScoreRange = Field(default_factory=ScoreRange)


class ModelMetadata(CamelModel):
    model_id: str
    algorithm: str
    trained_at: str
    metrics: Optional[ModelMetrics] = None


class AttributionSummary(CamelModel):
    heuristic_average_weight: float = 1.0
    model_average_weight: float = 0.0


class CohortEntry(CamelModel):
    key: str
    sample_size: int
    average_score: float
    average_probability: Optional[float] = None


class TopProperty(CamelModel):
    property_id: str
    score: int


class GeographyRankingEntry(CamelModel):
    key: str
    label: str
    sample_size: int
    average_score: float
    median_score: float
    average_confidence: float
    score_range: ScoreRange
    top_properties: List[TopProperty] = Field(default_factory=list)


class AnalysisInputs(CamelModel):
    filters: Dict[str, Any] = Field(default_factory=dict)
    limit: Optional[int] = None
    property_ids: List[str] = Field(default_factory=list)


class SellerPropensityAnalysis(CamelModel):
    generated_at: str
    sample_size: int
    inputs: AnalysisInputs
    summary: AnalysisSummary
    component_weights: Dict[str, float]
    model_metadata: Optional[ModelMetadata] = None
    attribution_summary: AttributionSummary = Field(default_factory=AttributionSummary)
    cohorts: Dict[str, List[CohortEntry]] = Field(default_factory=dict)
    rankings: Dict[str, List[GeographyRankingEntry]] = Field(default_factory=dict)
    scores: List[SellerPropensityScore] = Field(default_factory=list)

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")
