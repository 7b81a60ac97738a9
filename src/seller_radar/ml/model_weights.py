"""
Seller Model Weights

Loads, persists and applies the logistic seller-propensity model produced by
the external training job. Weights are plain JSON: coefficients plus the
standardization statistics of each named feature.
"""
import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional, Union

import numpy as np
import requests
from pydantic import Field, model_validator

from config.settings import settings
from src.seller_radar.ml.model_registry import ModelMetrics, ModelRegistry, ModelRegistryEntry
from src.seller_radar.pipeline.errors import APIFetchError, CacheError
from src.seller_radar.pipeline.retry import retry_with_backoff
from src.seller_radar.pipeline.schemas import CamelModel
from src.seller_radar.utils.dates import file_timestamp, utc_now
from src.seller_radar.utils.logger import get_logger

logger = get_logger(__name__)


class SellerModelWeights(CamelModel):
    id: str
    algorithm: str = "logistic-regression"
    coefficients: List[float]
    intercept: float = 0.0
    feature_names: List[str]
    feature_means: List[float]
    feature_std_devs: List[float]
    trained_at: str
    training_size: int = 0
    validation_size: int = 0
    metrics: ModelMetrics = Field(default_factory=ModelMetrics)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _check_dimensions(self):
        size = len(self.feature_names)
        if not (len(self.coefficients) == len(self.feature_means) == len(self.feature_std_devs) == size):
            raise ValueError(
                "coefficients, featureMeans and featureStdDevs must match featureNames in length"
            )
        return self

    def registry_entry(self, file_name: str) -> ModelRegistryEntry:
        return ModelRegistryEntry(
            id=self.id,
            algorithm=self.algorithm,
            trained_at=self.trained_at,
            file_name=file_name,
            metrics=self.metrics,
        )


@dataclass
class ModelProjection:
    probability: float
    model_id: str
    algorithm: str


def sigmoid(z: float) -> float:
    return float(1.0 / (1.0 + np.exp(-z)))


def project_features_with_model(
    features: Mapping[str, Optional[float]],
    model: SellerModelWeights,
) -> Optional[ModelProjection]:
    """
    Score a named feature vector with the logistic model.

    Missing (None) feature values are imputed with the training mean. Returns
    None when the model expects a feature the vector does not carry.
    """
    if any(name not in features for name in model.feature_names):
        return None

    means = np.asarray(model.feature_means, dtype=float)
    stds = np.asarray(model.feature_std_devs, dtype=float)
    stds = np.where(stds > 0, stds, 1.0)
    values = np.asarray(
        [
            features[name] if features[name] is not None else means[i]
            for i, name in enumerate(model.feature_names)
        ],
        dtype=float,
    )

    standardized = (values - means) / stds
    z = float(np.dot(np.asarray(model.coefficients, dtype=float), standardized) + model.intercept)
    return ModelProjection(probability=sigmoid(z), model_id=model.id, algorithm=model.algorithm)


def load_model_weights_file(path: Union[str, Path]) -> Optional[SellerModelWeights]:
    """Read weights from disk; None when the file does not exist."""
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError:
        return None
    except json.JSONDecodeError as e:
        raise CacheError(f"Model weights {path} are not valid JSON: {e}", cache_key=str(path)) from e
    return SellerModelWeights.model_validate(raw)


def _get_json(url: str, timeout: float):
    try:
        response = requests.get(url, timeout=timeout, headers={"Accept": "application/json"})
    except requests.RequestException as e:
        raise APIFetchError(f"Model weights request failed: {e}", url=url) from e

    if response.status_code == 404:
        return None
    if response.status_code >= 400:
        raise APIFetchError(
            f"Model weights request returned {response.status_code}",
            url=url,
            status_code=response.status_code,
        )
    return response.json()


async def fetch_model_weights(url: str, timeout: Optional[float] = None) -> Optional[SellerModelWeights]:
    """Fetch weights over HTTP with retry. A 404 means no model is published."""
    timeout = timeout or settings.model_weights_timeout_seconds
    raw = await retry_with_backoff(lambda: asyncio.to_thread(_get_json, url, timeout))
    if raw is None:
        return None
    return SellerModelWeights.model_validate(raw)


async def load_latest_model_weights(
    path: Optional[Union[str, Path]] = None,
    url: Optional[str] = None,
) -> Optional[SellerModelWeights]:
    """
    Load the latest model, from ``url`` when given, otherwise from the
    ``latest.json`` in the models directory.
    """
    url = url or settings.model_weights_url
    if url:
        return await fetch_model_weights(url)
    path = Path(path) if path is not None else settings.models_dir / "latest.json"
    return await asyncio.to_thread(load_model_weights_file, path)


def persist_model_weights(
    model: SellerModelWeights,
    directory: Optional[Union[str, Path]] = None,
    file_name: Optional[str] = None,
    registry: Optional[ModelRegistry] = None,
) -> Path:
    """
    Write the weights file and ``latest.json`` and register the model.

    Returns:
        Path of the versioned weights file.
    """
    directory = Path(directory) if directory is not None else settings.models_dir
    directory.mkdir(parents=True, exist_ok=True)

    file_name = file_name or f"{model.algorithm}-{file_timestamp(utc_now())}.json"
    payload = json.dumps(model.model_dump(by_alias=True, mode="json", exclude_none=True), indent=2)

    target = directory / file_name
    target.write_text(payload + "\n", encoding="utf-8")
    (directory / "latest.json").write_text(payload + "\n", encoding="utf-8")

    registry = registry or ModelRegistry(directory / "registry.json")
    registry.append_model_registry_entry(model.registry_entry(file_name))

    logger.info("model_weights_persisted", model_id=model.id, path=str(target))
    return target


class ModelWeightsProvider:
    """
    Memoizes the latest model for the life of the process.

    A failed load is logged and treated as "no model", so scoring falls back
    to the heuristic alone. Call ``invalidate`` after publishing new weights.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None, url: Optional[str] = None):
        self.path = path
        self.url = url
        self._loaded = False
        self._model: Optional[SellerModelWeights] = None
        self._lock = asyncio.Lock()

    async def get_latest(self) -> Optional[SellerModelWeights]:
        async with self._lock:
            if not self._loaded:
                try:
                    self._model = await load_latest_model_weights(self.path, self.url)
                except Exception as e:
                    logger.warning("model_weights_load_failed", error=str(e))
                    self._model = None
                self._loaded = True
        return self._model

    def invalidate(self) -> None:
        self._loaded = False
        self._model = None
