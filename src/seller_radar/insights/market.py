"""
Cached Market Data

Reads the pre-built market data cache files (Redfin, Census, HUD, FRED) and
derives the macro insights used by the feature store and the scorer:
affordability score, market velocity and a qualitative market health bucket.

Cache files live in one directory, each keyed by region level and then region
code::

    redfin.json  {"zip": {...}, "city": {"TX|austin": {...}}, "state": {"TX": {...}}}
    census.json  {"zip": {...}, "county": {"TX|travis": {...}}, "state": {...}}
    hud.json     {"county": {...}, "metro": {...}, "state": {...}}
    fred.json    {"national": {...}}

A region that is not cached is simply absent (``None``), never an error.
"""
import asyncio
import json
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from pydantic import ConfigDict, Field

from src.seller_radar.features.models import MacroSummary
from src.seller_radar.pipeline.errors import CacheError
from src.seller_radar.pipeline.schemas import CamelModel, to_camel
from src.seller_radar.utils.logger import get_logger

logger = get_logger(__name__)

class _MarketRecord(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class RedfinSnapshot(_MarketRecord):
    median_sale_price: Optional[float] = None
    median_dom: Optional[float] = None
    inventory: Optional[float] = None
    new_listings: Optional[float] = None
    months_of_supply: Optional[float] = None
    sold_above_list: Optional[float] = None
    price_drops: Optional[float] = None


class CensusRecord(_MarketRecord):
    median_household_income: Optional[float] = None
    median_home_value: Optional[float] = None
    occupancy_rate: Optional[float] = None
    poverty_rate: Optional[float] = None
    total_population: Optional[float] = None


class HudRecord(_MarketRecord):
    affordability_index: Optional[float] = None
    price_appreciation: Optional[float] = None
    income_to_price_ratio: Optional[float] = None
    cost_burdened_households: Optional[float] = None


class FredRecord(_MarketRecord):
    rate_30_year: Optional[float] = None
    unemployment_rate: Optional[float] = None
    gdp_growth: Optional[float] = None


class MarketGeography(CamelModel):
    zip: Optional[str] = None
    city: Optional[str] = None
    county: Optional[str] = None
    state: Optional[str] = None

    def cache_key(self) -> Optional[str]:
        """Most specific geography key, used to de-duplicate lookups."""
        if self.zip:
            return f"zip:{self.zip.strip()}"
        if self.city and self.state:
            return f"city:{self.state.strip().upper()}|{self.city.strip().lower()}"
        if self.state:
            return f"state:{self.state.strip().upper()}"
        return None


class MarketSnapshot(CamelModel):
    region_type: str
    region_code: str
    matched_levels: Dict[str, str] = Field(default_factory=dict)
    redfin: Optional[RedfinSnapshot] = None
    census: Optional[CensusRecord] = None
    hud: Optional[HudRecord] = None
    economic: Optional[FredRecord] = None
    affordability_score: Optional[float] = None
    investment_potential: Optional[float] = None
    market_velocity: Optional[float] = None
    market_health: Optional[str] = None
    risk_factors: List[str] = Field(default_factory=list)
    opportunities: List[str] = Field(default_factory=list)

    def to_macro_summary(self) -> MacroSummary:
        return MacroSummary(
            affordability_score=self.affordability_score,
            market_velocity=self.market_velocity,
            market_health=self.market_health,
        )


def calculate_affordability_score(
    redfin: Optional[RedfinSnapshot],
    census: Optional[CensusRecord],
    economic: Optional[FredRecord],
) -> Optional[float]:
    """
    0-100, higher is more affordable.

    Annual cost of a 30-year fixed mortgage on the median sale price plus 2%
    per year for taxes and insurance, as a share of median household income.
    """
    if not (redfin and redfin.median_sale_price):
        return None
    if not (census and census.median_household_income):
        return None
    if not (economic and economic.rate_30_year):
        return None

    home_price = redfin.median_sale_price
    monthly_rate = economic.rate_30_year / 100 / 12
    payments = 30 * 12
    growth = (1 + monthly_rate) ** payments
    monthly_payment = home_price * (monthly_rate * growth) / (growth - 1)
    monthly_taxes_insurance = home_price * 0.02 / 12

    ratio = (monthly_payment + monthly_taxes_insurance) * 12 / census.median_household_income
    return float(round(max(0.0, min(100.0, 100 - ratio * 100))))


def calculate_market_velocity(redfin: Optional[RedfinSnapshot]) -> Optional[float]:
    if not redfin or not redfin.median_dom or not redfin.inventory or not redfin.new_listings:
        return None
    dom_score = max(0.0, 100 - redfin.median_dom)
    turnover_score = min(100.0, redfin.inventory / redfin.new_listings * 20)
    return float(round((dom_score + turnover_score) / 2))


def calculate_investment_potential(
    redfin: Optional[RedfinSnapshot],
    census: Optional[CensusRecord],
    economic: Optional[FredRecord],
) -> Optional[float]:
    if not redfin:
        return None

    score = 50.0
    if redfin.sold_above_list and redfin.sold_above_list > 0.1:
        score += 15
    if redfin.price_drops and redfin.price_drops < 0.2:
        score += 10
    if redfin.median_dom and redfin.median_dom < 30:
        score += 15
    if redfin.inventory and redfin.inventory < 1000:
        score += 10
    if economic and economic.unemployment_rate and economic.unemployment_rate < 5:
        score += 10
    if census and census.total_population:
        score += 5
    return min(100.0, max(0.0, score))


def collect_risk_factors(
    redfin: Optional[RedfinSnapshot],
    census: Optional[CensusRecord],
    economic: Optional[FredRecord],
) -> List[str]:
    risks = []
    if redfin and redfin.months_of_supply and redfin.months_of_supply > 6:
        risks.append("High inventory levels (buyer's market)")
    if redfin and redfin.median_dom and redfin.median_dom > 60:
        risks.append("Slow market velocity")
    if economic and economic.unemployment_rate and economic.unemployment_rate > 8:
        risks.append("High unemployment rate")
    if economic and economic.rate_30_year and economic.rate_30_year > 7:
        risks.append("High mortgage rates")
    if census and census.poverty_rate and census.poverty_rate > 20:
        risks.append("High poverty rate")
    return risks


def collect_opportunities(
    redfin: Optional[RedfinSnapshot],
    census: Optional[CensusRecord],
    economic: Optional[FredRecord],
) -> List[str]:
    opportunities = []
    if redfin and redfin.sold_above_list and redfin.sold_above_list > 0.2:
        opportunities.append("Strong seller leverage")
    if redfin and redfin.median_dom and redfin.median_dom < 20:
        opportunities.append("Fast market velocity")
    if economic and economic.unemployment_rate and economic.unemployment_rate < 4:
        opportunities.append("Low unemployment")
    if census and census.median_household_income and census.median_household_income > 75000:
        opportunities.append("High median income")
    return opportunities


def determine_market_health(
    affordability_score: Optional[float],
    investment_potential: Optional[float],
    market_velocity: Optional[float],
    risk_count: int,
    opportunity_count: int,
) -> Optional[str]:
    if affordability_score is None or investment_potential is None or market_velocity is None:
        return None

    final_score = (
        (affordability_score + investment_potential + market_velocity) / 3
        - risk_count * 5
        + opportunity_count * 3
    )
    if final_score >= 80:
        return "excellent"
    if final_score >= 65:
        return "good"
    if final_score >= 50:
        return "fair"
    return "poor"


def _pair_key(state: Optional[str], name: Optional[str]) -> Optional[str]:
    if not state or not name:
        return None
    return f"{state.strip().upper()}|{name.strip().lower()}"


class CachedMarketDataProvider:
    """
    Market data lookups over the cache directory.

    Each cache file is parsed once per modification time. Lookups fall back
    from the most specific level a source carries to the state level.
    """

    def __init__(self, market_data_dir: Union[str, Path]):
        self.market_data_dir = Path(market_data_dir)
        self._caches: Dict[str, Tuple[Optional[int], dict]] = {}

    def _load_source(self, source: str) -> dict:
        path = self.market_data_dir / f"{source}.json"
        try:
            mtime_ns = path.stat().st_mtime_ns
        except FileNotFoundError:
            return {}

        cached = self._caches.get(source)
        if cached and cached[0] == mtime_ns:
            return cached[1]

        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise CacheError(f"Market cache {path} is not valid JSON: {e}", cache_key=source) from e

        if not isinstance(data, dict):
            raise CacheError(f"Market cache {path} must be a JSON object", cache_key=source)

        self._caches[source] = (mtime_ns, data)
        logger.debug("market_cache_loaded", source=source, path=str(path))
        return data

    def _lookup(self, source: str, candidates: List[Tuple[str, Optional[str]]]) -> Tuple[Optional[dict], Optional[str]]:
        data = self._load_source(source)
        for level, code in candidates:
            if not code:
                continue
            by_code = data.get(level) or {}
            if not isinstance(by_code, dict):
                raise CacheError(f"Market cache {source} level {level!r} must be a JSON object", cache_key=source)
            record = by_code.get(code)
            if record:
                return record, level
        return None, None

    def get_redfin(self, geography: MarketGeography) -> Tuple[Optional[RedfinSnapshot], Optional[str]]:
        record, level = self._lookup("redfin", [
            ("zip", geography.zip),
            ("city", _pair_key(geography.state, geography.city)),
            ("state", geography.state.upper() if geography.state else None),
        ])
        return (RedfinSnapshot.model_validate(record) if record else None), level

    def get_census(self, geography: MarketGeography) -> Tuple[Optional[CensusRecord], Optional[str]]:
        record, level = self._lookup("census", [
            ("zip", geography.zip),
            ("county", _pair_key(geography.state, geography.county)),
            ("state", geography.state.upper() if geography.state else None),
        ])
        return (CensusRecord.model_validate(record) if record else None), level

    def get_hud(self, geography: MarketGeography) -> Tuple[Optional[HudRecord], Optional[str]]:
        record, level = self._lookup("hud", [
            ("county", _pair_key(geography.state, geography.county)),
            ("state", geography.state.upper() if geography.state else None),
        ])
        return (HudRecord.model_validate(record) if record else None), level

    def get_fred(self) -> Optional[FredRecord]:
        record = self._load_source("fred").get("national")
        return FredRecord.model_validate(record) if record else None

    def build_market_snapshot(self, geography: MarketGeography) -> Optional[MarketSnapshot]:
        """
        Combine every source for one geography.

        Returns:
            The snapshot, or None when the geography is empty or no source
            has data for it.
        """
        key = geography.cache_key()
        if key is None:
            return None

        redfin, redfin_level = self.get_redfin(geography)
        census, census_level = self.get_census(geography)
        hud, hud_level = self.get_hud(geography)
        economic = self.get_fred()

        if not any((redfin, census, hud)):
            return None

        matched = {
            source: level
            for source, level in (("redfin", redfin_level), ("census", census_level), ("hud", hud_level))
            if level
        }
        if economic:
            matched["fred"] = "national"

        affordability = calculate_affordability_score(redfin, census, economic)
        investment = calculate_investment_potential(redfin, census, economic)
        velocity = calculate_market_velocity(redfin)
        risks = collect_risk_factors(redfin, census, economic)
        opportunities = collect_opportunities(redfin, census, economic)

        region_type, _, region_code = key.partition(":")
        return MarketSnapshot(
            region_type=region_type,
            region_code=region_code,
            matched_levels=matched,
            redfin=redfin,
            census=census,
            hud=hud,
            economic=economic,
            affordability_score=affordability,
            investment_potential=investment,
            market_velocity=velocity,
            market_health=determine_market_health(
                affordability, investment, velocity, len(risks), len(opportunities)
            ),
            risk_factors=risks,
            opportunities=opportunities,
        )

    def macro_summary_for(self, geography: MarketGeography) -> Optional[MacroSummary]:
        snapshot = self.build_market_snapshot(geography)
        return snapshot.to_macro_summary() if snapshot else None

    async def get_market_snapshot(self, geography: MarketGeography) -> Optional[MarketSnapshot]:
        return await asyncio.to_thread(self.build_market_snapshot, geography)

    def clear(self) -> None:
        self._caches.clear()
