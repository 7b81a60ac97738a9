"""
Seller Predictions Router

Endpoints for seller propensity analysis, CSV export, CRM push, run history
and the model registry.
"""
import asyncio
import io
from datetime import datetime
from typing import List, Optional

import pandas as pd
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, Response

from src.seller_radar.api.dependencies import ServiceContainer, enforce_rate_limit, get_services
from src.seller_radar.api.schemas import (
    ErrorResponse,
    PushRequest,
    PushResponse,
    SellerPropensityMetadata,
    SellerPropensityResponse,
)
from src.seller_radar.insights.properties import PropertyFilters
from src.seller_radar.integrations.crm import build_crm_payload
from src.seller_radar.pipeline.errors import APIFetchError
from src.seller_radar.predictions.run_logger import try_append_run_log
from src.seller_radar.scoring.models import SellerPropensityAnalysis
from src.seller_radar.scoring.propensity import COHORT_DIMENSIONS
from src.seller_radar.utils.dates import file_timestamp
from src.seller_radar.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/predictions/seller",
    tags=["seller-predictions"],
    dependencies=[Depends(enforce_rate_limit)],
    responses={
        422: {"model": ErrorResponse, "description": "Invalid parameters"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        500: {"model": ErrorResponse, "description": "Scoring failed"},
    },
)

EXPORT_COLUMNS = [
    "propertyId",
    "address",
    "owner",
    "priority",
    "ownerType",
    "city",
    "state",
    "zip",
    "overallScore",
    "heuristicScore",
    "confidence",
    "modelProbability",
    "heuristicWeight",
    "modelWeight",
    "featureCompleteness",
    "drivers",
    "riskFlags",
]


def seller_filters(
    query: Optional[str] = Query(None, max_length=200),
    city: Optional[str] = Query(None, max_length=100),
    state: Optional[str] = Query(None, max_length=50),
    zip: Optional[str] = Query(None, max_length=10),
    min_score: Optional[float] = Query(None, alias="minScore", ge=0, le=100),
    min_equity: Optional[float] = Query(None, alias="minEquity", ge=0),
    min_years: Optional[float] = Query(None, alias="minYears", ge=0),
) -> PropertyFilters:
    """Query-string filters shared by the analysis and export endpoints."""
    return PropertyFilters(
        query=query,
        city=city,
        state=state,
        zip=zip,
        min_score=min_score,
        min_equity=min_equity,
        min_years=min_years,
    )


def _filters_or_none(filters: PropertyFilters) -> Optional[PropertyFilters]:
    return filters if filters.active() else None


def analysis_to_frame(analysis: SellerPropensityAnalysis) -> pd.DataFrame:
    """One export row per score, in ranking order."""
    rows = [
        {
            "propertyId": score.property_id,
            "address": score.property_details.address,
            "owner": score.property_details.owner,
            "priority": score.property_details.priority,
            "ownerType": score.cohorts.owner_type,
            "city": score.geography.city,
            "state": score.geography.state,
            "zip": score.geography.zip,
            "overallScore": score.overall_score,
            "heuristicScore": score.heuristic_score,
            "confidence": score.confidence,
            "modelProbability": score.model_prediction.probability if score.model_prediction else None,
            "heuristicWeight": score.attribution.heuristic_weight,
            "modelWeight": score.attribution.model_weight,
            "featureCompleteness": score.feature_completeness,
            "drivers": "|".join(score.drivers),
            "riskFlags": "|".join(score.risk_flags),
        }
        for score in analysis.scores
    ]
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


@router.get("")
async def get_seller_propensity(
    filters: PropertyFilters = Depends(seller_filters),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    persist: bool = Query(True),
    services: ServiceContainer = Depends(get_services),
):
    """
    Score and rank the property catalogue.

    Returns:
        ``{analysis, metadata}``. With ``persist`` (default) the run is
        appended to the run log; a failed append is reported in
        ``metadata.warnings`` and does not fail the request.
    """
    analysis = await services.scorer.score_all_cached_property_opportunities(
        filters=_filters_or_none(filters), limit=limit
    )

    warnings: List[str] = []
    persisted = False
    if persist:
        outcome = await asyncio.to_thread(try_append_run_log, services.run_logger, analysis)
        persisted = outcome.persisted
        if outcome.warning:
            warnings.append(outcome.warning)

    if analysis.sample_size == 0:
        warnings.append("No properties matched the supplied filters")

    response = SellerPropensityResponse(
        analysis=analysis,
        metadata=SellerPropensityMetadata(
            filters=analysis.inputs.filters,
            limit=limit,
            persisted=persisted,
            generated_at=analysis.generated_at,
            component_weights=analysis.component_weights,
            model_metadata=analysis.model_metadata,
            cohort_dimensions=list(COHORT_DIMENSIONS),
            attribution_summary=analysis.attribution_summary,
            warnings=warnings,
        ),
    )
    return JSONResponse(content=response.model_dump(by_alias=True, mode="json"))


@router.get("/export")
async def export_seller_propensity(
    filters: PropertyFilters = Depends(seller_filters),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    services: ServiceContainer = Depends(get_services),
):
    """
    Export the ranked analysis as CSV.

    The whole file is rendered in memory before the response starts.
    """
    analysis = await services.scorer.score_all_cached_property_opportunities(
        filters=_filters_or_none(filters), limit=limit
    )

    buffer = io.StringIO()
    analysis_to_frame(analysis).to_csv(buffer, index=False, lineterminator="\n")

    stamp = file_timestamp(datetime.fromisoformat(analysis.generated_at))
    logger.info("seller_propensity_exported", rows=analysis.sample_size)
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="seller-propensity-{stamp}.csv"'},
    )


@router.post("/push")
async def push_seller_leads(
    request: PushRequest,
    services: ServiceContainer = Depends(get_services),
):
    """
    Forward scored properties to the CRM webhook.

    Returns:
        Push summary. ``webhookStatus`` is ``skipped`` when no webhook is
        configured.
    """
    property_ids = [pid.strip() for pid in request.property_ids if pid and pid.strip()]
    if not property_ids:
        raise HTTPException(status_code=422, detail="propertyIds must contain at least one id")

    scores = await services.scorer.score_property_ids(property_ids)
    if not scores:
        raise HTTPException(status_code=404, detail="None of the requested properties were found")

    matched = [score.property_id for score in scores]
    missing = [pid for pid in dict.fromkeys(property_ids) if pid not in set(matched)]

    crm = services.crm_client
    webhook_status = "skipped"
    status_code = None
    if crm.is_configured:
        try:
            result = await crm.send_to_crm(build_crm_payload(scores, request.campaign))
        except APIFetchError as e:
            logger.error("crm_push_failed", requested=len(property_ids), error=str(e), status_code=e.status_code)
            raise HTTPException(status_code=502, detail=f"CRM webhook delivery failed: {e}")
        webhook_status = "delivered"
        status_code = result.status_code

    summary = PushResponse(
        requested=len(dict.fromkeys(property_ids)),
        pushed=len(matched) if webhook_status == "delivered" else 0,
        matched_property_ids=matched,
        missing_property_ids=missing,
        campaign=request.campaign,
        webhook_status=webhook_status,
        webhook_status_code=status_code,
    )
    logger.info(
        "crm_push_summary",
        requested=summary.requested,
        matched=len(matched),
        missing=len(missing),
        webhook_status=webhook_status,
        campaign=request.campaign,
    )
    return JSONResponse(content=summary.model_dump(by_alias=True, mode="json"))


@router.get("/runs")
async def list_seller_runs(
    limit: Optional[int] = Query(None, ge=1, le=50),
    services: ServiceContainer = Depends(get_services),
):
    """Run history, newest last."""
    runs = await asyncio.to_thread(services.run_logger.load_run_log)
    if limit:
        runs = runs[-limit:]
    return JSONResponse(
        content={
            "count": len(runs),
            "runs": [run.model_dump(by_alias=True, mode="json") for run in runs],
        }
    )


@router.get("/models")
async def list_seller_models(services: ServiceContainer = Depends(get_services)):
    """Registered models, newest trained first."""
    entries = await asyncio.to_thread(services.model_registry.load_model_registry)
    return JSONResponse(
        content={
            "count": len(entries),
            "models": [entry.model_dump(by_alias=True, mode="json", exclude_none=True) for entry in entries],
        }
    )
