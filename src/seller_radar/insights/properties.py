"""
Property Opportunity Catalogue

Loads the property opportunity catalogue (a JSON array) and applies the
catalogue-level search filters used by the seller propensity scorer.
"""
import asyncio
import json
from pathlib import Path
from typing import List, Optional, Union

from pydantic import Field

from src.seller_radar.pipeline.loaders import parse_event_array
from src.seller_radar.pipeline.schemas import CamelModel
from src.seller_radar.utils.logger import get_logger

logger = get_logger(__name__)


class PropertyOpportunity(CamelModel):
    id: str = Field(..., min_length=1)
    address: str
    city: str
    state: str
    zip: str
    owner: str
    listing_score: float = 0
    priority: str = "Medium Priority"
    assessed_value: float = 0
    market_value: float = 0
    estimated_equity: float = 0
    equity_upside: float = 0
    years_in_home: float = 0
    county: Optional[str] = None
    owner_type: Optional[str] = None

    @property
    def equity_ratio(self) -> Optional[float]:
        if self.market_value <= 0:
            return None
        return self.estimated_equity / self.market_value

    @property
    def upside_ratio(self) -> Optional[float]:
        if self.market_value <= 0:
            return None
        return self.equity_upside / self.market_value


class PropertyFilters(CamelModel):
    """
    Search filters. All supplied filters must match (logical AND).

    ``min_score`` is not a catalogue filter: it applies to the computed
    overall score and is enforced by the scorer.
    """

    query: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    min_score: Optional[float] = None
    min_equity: Optional[float] = None
    min_years: Optional[float] = None

    def active(self) -> dict:
        """Supplied filters only, camelCase keys."""
        return self.model_dump(by_alias=True, exclude_none=True)


def _normalize(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip().lower()
    return value or None


def matches_filters(prop: PropertyOpportunity, filters: PropertyFilters) -> bool:
    query = _normalize(filters.query)
    if query:
        haystack = f"{prop.address} {prop.owner} {prop.city} {prop.zip}".lower()
        if query not in haystack:
            return False

    city = _normalize(filters.city)
    if city and prop.city.strip().lower() != city:
        return False

    state = _normalize(filters.state)
    if state and prop.state.strip().lower() != state:
        return False

    zip_prefix = _normalize(filters.zip)
    if zip_prefix and not prop.zip.strip().lower().startswith(zip_prefix):
        return False

    if filters.min_equity is not None and prop.estimated_equity < filters.min_equity:
        return False

    if filters.min_years is not None and prop.years_in_home < filters.min_years:
        return False

    return True


def filter_properties(
    properties: List[PropertyOpportunity],
    filters: Optional[PropertyFilters] = None,
) -> List[PropertyOpportunity]:
    """Apply catalogue filters, preserving catalogue order."""
    if filters is None:
        return list(properties)
    return [prop for prop in properties if matches_filters(prop, filters)]


class PropertyCatalogue:
    """
    File-backed catalogue, re-read only when the file changes.

    A missing catalogue file is treated as an empty catalogue.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._properties: List[PropertyOpportunity] = []
        self._mtime_ns: Optional[int] = None

    def _read(self) -> List[PropertyOpportunity]:
        try:
            mtime_ns = self.path.stat().st_mtime_ns
        except FileNotFoundError:
            logger.warning("property_catalogue_missing", path=str(self.path))
            self._properties, self._mtime_ns = [], None
            return []

        if self._mtime_ns == mtime_ns:
            return self._properties

        with self.path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
        self._properties = parse_event_array(raw, PropertyOpportunity, source=str(self.path))
        self._mtime_ns = mtime_ns
        logger.info("property_catalogue_loaded", path=str(self.path), count=len(self._properties))
        return self._properties

    async def list_all_property_opportunities(self) -> List[PropertyOpportunity]:
        return list(await asyncio.to_thread(self._read))

    async def get_property_opportunities(
        self, filters: Optional[PropertyFilters] = None
    ) -> List[PropertyOpportunity]:
        return filter_properties(await self.list_all_property_opportunities(), filters)
