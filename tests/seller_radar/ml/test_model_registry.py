"""
Tests for the model registry.
"""
import json

import pytest

from src.seller_radar.ml.model_registry import (
    ModelMetrics,
    ModelRegistry,
    ModelRegistryEntry,
    append_model_registry_entry,
    load_model_registry,
)
from src.seller_radar.pipeline.errors import CacheError


def entry(model_id, trained_at):
    return ModelRegistryEntry(
        id=model_id,
        algorithm="logistic-regression",
        trained_at=trained_at,
        file_name=f"{model_id}.json",
        metrics=ModelMetrics(accuracy=0.8, auc=0.84),
    )


def test_missing_registry_is_empty(tmp_path):
    assert load_model_registry(tmp_path / "registry.json") == []


def test_entries_sorted_newest_first_and_capped(tmp_path):
    registry = ModelRegistry(tmp_path / "registry.json", max_entries=3)

    for model_id, trained_at in [
        ("m-march", "2024-03-01T00:00:00Z"),
        ("m-june", "2024-06-01T00:00:00Z"),
        ("m-january", "2024-01-01T00:00:00Z"),
        ("m-may", "2024-05-01T00:00:00Z"),
        ("m-april", "2024-04-01T00:00:00Z"),
    ]:
        registry.append_model_registry_entry(entry(model_id, trained_at))

    assert [item.id for item in registry.load_model_registry()] == ["m-june", "m-may", "m-april"]
    assert registry.latest().id == "m-june"
    assert registry.get_entry("m-may").file_name == "m-may.json"
    assert registry.get_entry("m-january") is None


def test_registry_file_is_camel_case(tmp_path):
    path = tmp_path / "registry.json"

    append_model_registry_entry(entry("m1", "2024-06-01T00:00:00Z"), path)

    raw = json.loads(path.read_text())
    assert raw[0]["trainedAt"] == "2024-06-01T00:00:00Z"
    assert raw[0]["fileName"] == "m1.json"
    assert raw[0]["metrics"]["logLoss"] == 0.0
    assert "hyperparameters" not in raw[0]


def test_corrupt_registry(tmp_path):
    path = tmp_path / "registry.json"
    path.write_text("[{", encoding="utf-8")

    with pytest.raises(CacheError):
        load_model_registry(path)


def test_non_list_registry_is_empty(tmp_path):
    path = tmp_path / "registry.json"
    path.write_text('{"id": "m1"}', encoding="utf-8")

    assert ModelRegistry(path).load_model_registry() == []
    assert ModelRegistry(path).latest() is None
