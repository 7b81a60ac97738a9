"""
Tests for seller model weights: projection, persistence and loading.
"""
import asyncio
import json
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from src.seller_radar.ml import model_weights
from src.seller_radar.ml.model_registry import ModelRegistry
from src.seller_radar.ml.model_weights import (
    ModelWeightsProvider,
    SellerModelWeights,
    fetch_model_weights,
    load_latest_model_weights,
    persist_model_weights,
    project_features_with_model,
)
from src.seller_radar.pipeline.errors import APIFetchError


@pytest.fixture
def model():
    return SellerModelWeights(
        id="seller-lr-2024-06",
        coefficients=[2.0, 1.0],
        intercept=-0.5,
        feature_names=["equityUpside", "featureCompleteness"],
        feature_means=[0.5, 0.5],
        feature_std_devs=[0.25, 0.0],
        trained_at="2024-06-01T00:00:00.000Z",
        training_size=1200,
    )


def test_dimension_mismatch_is_rejected():
    with pytest.raises(ValidationError):
        SellerModelWeights(
            id="bad",
            coefficients=[1.0],
            feature_names=["a", "b"],
            feature_means=[0.0, 0.0],
            feature_std_devs=[1.0, 1.0],
            trained_at="2024-06-01",
        )


def test_projection_at_the_mean_is_intercept_only(model):
    projection = project_features_with_model({"equityUpside": 0.5, "featureCompleteness": 0.5}, model)

    assert projection.probability == pytest.approx(1 / (1 + 2.718281828459045 ** 0.5))
    assert projection.model_id == "seller-lr-2024-06"


def test_missing_values_are_imputed_with_mean(model):
    imputed = project_features_with_model({"equityUpside": None, "featureCompleteness": 0.5}, model)
    at_mean = project_features_with_model({"equityUpside": 0.5, "featureCompleteness": 0.5}, model)

    assert imputed.probability == pytest.approx(at_mean.probability)


def test_zero_std_dev_does_not_divide_by_zero(model):
    projection = project_features_with_model({"equityUpside": 0.5, "featureCompleteness": 1.0}, model)

    # (1.0 - 0.5) / 1 * 1.0 - 0.5 == 0
    assert projection.probability == pytest.approx(0.5)


def test_projection_needs_every_model_feature(model):
    assert project_features_with_model({"equityUpside": 0.9}, model) is None


def test_higher_equity_raises_probability(model):
    low = project_features_with_model({"equityUpside": 0.2, "featureCompleteness": 0.5}, model)
    high = project_features_with_model({"equityUpside": 0.9, "featureCompleteness": 0.5}, model)

    assert high.probability > low.probability


def test_persist_and_load_latest(tmp_path, model):
    registry = ModelRegistry(tmp_path / "registry.json")

    target = persist_model_weights(model, tmp_path, file_name="seller-lr.json", registry=registry)

    assert target.name == "seller-lr.json"
    assert json.loads((tmp_path / "latest.json").read_text())["id"] == model.id
    assert [entry.file_name for entry in registry.load_model_registry()] == ["seller-lr.json"]

    loaded = asyncio.run(load_latest_model_weights(tmp_path / "latest.json"))
    assert loaded == model


def test_load_latest_without_weights(tmp_path):
    assert asyncio.run(load_latest_model_weights(tmp_path / "latest.json")) is None


def test_fetch_model_weights_over_http(monkeypatch, model):
    response = MagicMock(status_code=200)
    response.json.return_value = model.model_dump(by_alias=True, mode="json")
    get = MagicMock(return_value=response)
    monkeypatch.setattr(model_weights.requests, "get", get)

    fetched = asyncio.run(fetch_model_weights("https://models.test/seller/latest.json"))

    assert fetched == model
    assert get.call_args.args[0] == "https://models.test/seller/latest.json"


def test_fetch_model_weights_uses_its_own_timeout(monkeypatch, model):
    response = MagicMock(status_code=200)
    response.json.return_value = model.model_dump(by_alias=True, mode="json")
    get = MagicMock(return_value=response)
    monkeypatch.setattr(model_weights.requests, "get", get)
    monkeypatch.setattr(model_weights.settings, "model_weights_timeout_seconds", 2.5)
    monkeypatch.setattr(model_weights.settings, "crm_timeout_seconds", 30.0)

    asyncio.run(fetch_model_weights("https://models.test/seller/latest.json"))

    assert get.call_args.kwargs["timeout"] == 2.5


def test_fetch_model_weights_not_published(monkeypatch):
    monkeypatch.setattr(model_weights.requests, "get", MagicMock(return_value=MagicMock(status_code=404)))

    assert asyncio.run(fetch_model_weights("https://models.test/missing.json")) is None


def test_fetch_model_weights_client_error(monkeypatch):
    monkeypatch.setattr(model_weights.requests, "get", MagicMock(return_value=MagicMock(status_code=403)))

    with pytest.raises(APIFetchError) as exc_info:
        asyncio.run(fetch_model_weights("https://models.test/forbidden.json"))

    assert exc_info.value.status_code == 403


def test_provider_memoizes_latest(monkeypatch, model):
    calls = []

    async def fake_load(path, url):
        calls.append((path, url))
        return model

    monkeypatch.setattr(model_weights, "load_latest_model_weights", fake_load)
    provider = ModelWeightsProvider(path="latest.json")

    async def main():
        return await asyncio.gather(provider.get_latest(), provider.get_latest())

    assert asyncio.run(main()) == [model, model]
    assert len(calls) == 1

    provider.invalidate()
    asyncio.run(provider.get_latest())
    assert len(calls) == 2


def test_provider_treats_unreadable_weights_as_no_model(tmp_path):
    path = tmp_path / "latest.json"
    path.write_text("{broken", encoding="utf-8")

    assert asyncio.run(ModelWeightsProvider(path=path).get_latest()) is None
