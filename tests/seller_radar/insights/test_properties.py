"""
Tests for the property catalogue and its filters.
"""
import asyncio

import pytest

from src.seller_radar.insights.properties import (
    PropertyCatalogue,
    PropertyFilters,
    filter_properties,
    matches_filters,
)
from src.seller_radar.pipeline.errors import IngestionValidationError


@pytest.fixture
def catalogue(write_json, property_rows):
    return PropertyCatalogue(write_json("property-opportunities.json", property_rows))


def ids(properties):
    return [prop.id for prop in properties]


def test_filters_are_combined_with_and(catalogue):
    properties = asyncio.run(catalogue.list_all_property_opportunities())

    assert ids(filter_properties(properties, PropertyFilters(state="tx"))) == ["tx-high-001", "tx-low-002"]
    assert ids(filter_properties(properties, PropertyFilters(state="TX", zip="7874"))) == ["tx-low-002"]
    assert ids(filter_properties(properties, PropertyFilters(state="TX", city="denver"))) == []


def test_query_matches_address_owner_city_and_zip(catalogue):
    properties = asyncio.run(catalogue.list_all_property_opportunities())

    assert ids(filter_properties(properties, PropertyFilters(query="family trust"))) == ["co-high-003"]
    assert ids(filter_properties(properties, PropertyFilters(query="LAMAR"))) == ["tx-high-001"]
    assert ids(filter_properties(properties, PropertyFilters(query="80206"))) == ["co-high-003"]


def test_numeric_filters(catalogue):
    properties = asyncio.run(catalogue.list_all_property_opportunities())

    assert ids(filter_properties(properties, PropertyFilters(min_equity=500000))) == ["tx-high-001", "co-high-003"]
    assert ids(filter_properties(properties, PropertyFilters(min_years=21))) == ["co-high-003"]


def test_min_score_is_not_a_catalogue_filter(make_property):
    assert matches_filters(make_property(), PropertyFilters(min_score=99))


def test_blank_filters_are_ignored(make_property):
    assert matches_filters(make_property(), PropertyFilters(city="  ", query=""))


def test_active_filters_use_camel_case():
    assert PropertyFilters(state="TX", min_score=70).active() == {"state": "TX", "minScore": 70}


def test_missing_catalogue_is_empty(tmp_path):
    catalogue = PropertyCatalogue(tmp_path / "missing.json")

    assert asyncio.run(catalogue.list_all_property_opportunities()) == []


def test_invalid_catalogue_record(write_json):
    catalogue = PropertyCatalogue(write_json("bad.json", [{"id": "x", "address": "1 Main"}]))

    with pytest.raises(IngestionValidationError):
        asyncio.run(catalogue.list_all_property_opportunities())


def test_get_property_opportunities_filters(catalogue):
    result = asyncio.run(catalogue.get_property_opportunities(PropertyFilters(state="CO")))

    assert ids(result) == ["co-high-003"]


def test_equity_ratios(make_property):
    prop = make_property(marketValue=400000, estimatedEquity=100000, equityUpside=20000)

    assert prop.equity_ratio == 0.25
    assert prop.upside_ratio == 0.05
    assert make_property(marketValue=0).equity_ratio is None
