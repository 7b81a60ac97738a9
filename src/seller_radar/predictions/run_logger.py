"""
Seller Propensity Run Log

Keeps a capped JSON history of scoring runs: one compact entry per run with
its inputs and summary statistics, ordered by ``generatedAt`` with the newest
last. When the cap is exceeded the oldest runs are evicted.

Writes are read-modify-write without locking. Concurrent writers can lose
updates; the log assumes a single writer (the nightly job or one API worker).
"""
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import Field

from config.settings import settings
from src.seller_radar.pipeline.errors import CacheError
from src.seller_radar.pipeline.schemas import CamelModel, parse_event_datetime
from src.seller_radar.scoring.models import (
    AttributionSummary,
    ModelMetadata,
    ScoreRange,
    SellerPropensityAnalysis,
)
from src.seller_radar.utils.logger import get_logger

logger = get_logger(__name__)


class SellerPropensityRunLogEntry(CamelModel):
    generated_at: str
    sample_size: int
    property_ids: List[str] = Field(default_factory=list)
    filters: Dict[str, Any] = Field(default_factory=dict)
    limit: Optional[int] = None
    average_score: float
    median_score: float
    score_range: ScoreRange
    average_confidence: float
    component_weights: Dict[str, float]
    model_metadata: Optional[ModelMetadata] = None
    attribution_summary: Optional[AttributionSummary] = None

    @classmethod
    def from_analysis(cls, analysis: SellerPropensityAnalysis) -> "SellerPropensityRunLogEntry":
        return cls(
            generated_at=analysis.generated_at,
            sample_size=analysis.sample_size,
            property_ids=list(analysis.inputs.property_ids),
            filters=dict(analysis.inputs.filters),
            limit=analysis.inputs.limit,
            average_score=analysis.summary.average_score,
            median_score=analysis.summary.median_score,
            score_range=analysis.summary.score_range,
            average_confidence=analysis.summary.average_confidence,
            component_weights=dict(analysis.component_weights),
            model_metadata=analysis.model_metadata,
            attribution_summary=analysis.attribution_summary,
        )


@dataclass
class PersistOutcome:
    """Result of a best-effort persistence attempt."""

    persisted: bool
    entry: Optional[SellerPropensityRunLogEntry] = None
    warning: Optional[str] = None


class RunLogger:
    """Capped run history stored as a JSON array."""

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        max_entries: Optional[int] = None,
    ):
        self.path = Path(path) if path is not None else settings.run_log_path
        self.max_entries = max_entries or settings.run_log_max_entries

    def load_run_log(self) -> List[SellerPropensityRunLogEntry]:
        """
        Read the history; empty when the file does not exist yet.

        Raises:
            CacheError: If the file exists but is not valid JSON.
        """
        try:
            with self.path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            return []
        except json.JSONDecodeError as e:
            raise CacheError(f"Run log {self.path} is not valid JSON: {e}", cache_key=str(self.path)) from e

        if not isinstance(raw, list):
            logger.warning("run_log_not_a_list", path=str(self.path))
            return []
        return [SellerPropensityRunLogEntry.model_validate(item) for item in raw]

    def append_seller_propensity_run_log(
        self, analysis: SellerPropensityAnalysis
    ) -> SellerPropensityRunLogEntry:
        """
        Derive a run log entry from an analysis and append it.

        Returns:
            The entry that was written.
        """
        entry = SellerPropensityRunLogEntry.from_analysis(analysis)

        history = self.load_run_log()
        history.append(entry)
        history.sort(key=lambda item: parse_event_datetime(item.generated_at))
        if len(history) > self.max_entries:
            history = history[-self.max_entries:]

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump([item.model_dump(by_alias=True, mode="json") for item in history], f, indent=2)
            f.write("\n")

        logger.info(
            "run_log_appended",
            path=str(self.path),
            sample_size=entry.sample_size,
            history_size=len(history),
        )
        return entry


def try_append_run_log(run_logger: RunLogger, analysis: SellerPropensityAnalysis) -> PersistOutcome:
    """
    Append to the run log without ever failing the caller.

    Scoring is the primary result; a failed write is reported back as a
    warning on the outcome and logged.
    """
    try:
        entry = run_logger.append_seller_propensity_run_log(analysis)
    except Exception as e:
        logger.warning("run_log_append_failed", path=str(run_logger.path), error=str(e))
        return PersistOutcome(persisted=False, warning=f"Run log not persisted: {e}")
    return PersistOutcome(persisted=True, entry=entry)
