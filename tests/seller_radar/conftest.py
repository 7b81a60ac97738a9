import json
from datetime import datetime, timezone

import pytest

from src.seller_radar.insights.properties import PropertyOpportunity


@pytest.fixture
def fixed_now():
    return datetime(2024, 6, 15, tzinfo=timezone.utc)


@pytest.fixture
def write_json(tmp_path):
    """Write a JSON payload under tmp_path and return its path."""
    def _write(name, payload):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def property_rows():
    return [
        {
            "id": "tx-high-001",
            "address": "100 Lamar Blvd",
            "city": "Austin",
            "state": "TX",
            "zip": "78704",
            "county": "Travis",
            "owner": "Margaret Holloway",
            "priority": "High Priority",
            "assessedValue": 450000,
            "marketValue": 500000,
            "estimatedEquity": 500000,
            "equityUpside": 150000,
            "yearsInHome": 20,
        },
        {
            "id": "tx-low-002",
            "address": "22 Cedar Bend Ln",
            "city": "Austin",
            "state": "TX",
            "zip": "78745",
            "county": "Travis",
            "owner": "Cedar Bend Holdings LLC",
            "priority": "Low Priority",
            "assessedValue": 450000,
            "marketValue": 500000,
            "estimatedEquity": 50000,
            "equityUpside": 0,
            "yearsInHome": 2,
        },
        {
            "id": "co-high-003",
            "address": "450 Birch St",
            "city": "Denver",
            "state": "CO",
            "zip": "80206",
            "county": "Denver",
            "owner": "Pike Family Trust",
            "priority": "High Priority",
            "assessedValue": 700000,
            "marketValue": 800000,
            "estimatedEquity": 760000,
            "equityUpside": 200000,
            "yearsInHome": 25,
        },
    ]


@pytest.fixture
def make_property():
    def _make(**overrides):
        fields = {
            "id": "prop-1",
            "address": "1 Main St",
            "city": "Austin",
            "state": "TX",
            "zip": "78704",
            "owner": "Jane Doe",
            "marketValue": 400000,
            "estimatedEquity": 200000,
            "equityUpside": 40000,
            "yearsInHome": 8,
        }
        fields.update(overrides)
        return PropertyOpportunity.model_validate(fields)
    return _make
