"""
Model Registry Utility

Tracks trained seller-propensity model versions in a capped JSON file.
Entries are kept newest-trained first; when the cap is exceeded the oldest
trained models are dropped, regardless of the order they were appended in.

The registry is rewritten with a plain read-modify-write and no locking:
a single writer (the training job) is assumed.
"""
import json
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import Field

from config.settings import settings
from src.seller_radar.pipeline.errors import CacheError
from src.seller_radar.pipeline.schemas import CamelModel, parse_event_datetime
from src.seller_radar.utils.logger import get_logger

logger = get_logger(__name__)


class ModelMetrics(CamelModel):
    accuracy: float = 0.0
    precision: float = 0.0
    recall: float = 0.0
    f1: float = 0.0
    log_loss: float = 0.0
    auc: Optional[float] = None


class ModelRegistryEntry(CamelModel):
    id: str
    algorithm: str
    trained_at: str
    file_name: str
    metrics: ModelMetrics = Field(default_factory=ModelMetrics)
    hyperparameters: Optional[Dict[str, Union[float, int, str]]] = None


def _trained_at_key(entry: ModelRegistryEntry):
    return parse_event_datetime(entry.trained_at)


class ModelRegistry:
    """
    File-backed registry of trained models.

    Usage:
        registry = ModelRegistry()
        registry.append_model_registry_entry(entry)
        latest = registry.latest()
    """

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        max_entries: Optional[int] = None,
    ):
        self.path = Path(path) if path is not None else settings.model_registry_path
        self.max_entries = max_entries or settings.model_registry_max_entries

    def load_model_registry(self) -> List[ModelRegistryEntry]:
        """
        Read the registry.

        Returns:
            Registry entries; an empty list when the file does not exist yet.

        Raises:
            CacheError: If the file exists but cannot be parsed.
        """
        try:
            with self.path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            return []
        except json.JSONDecodeError as e:
            raise CacheError(f"Model registry {self.path} is not valid JSON: {e}", cache_key=str(self.path)) from e

        if not isinstance(raw, list):
            logger.warning("model_registry_not_a_list", path=str(self.path))
            return []
        return [ModelRegistryEntry.model_validate(item) for item in raw]

    def append_model_registry_entry(self, entry: ModelRegistryEntry) -> List[ModelRegistryEntry]:
        """
        Add an entry, sort by trainedAt descending and keep the newest entries.

        Returns:
            The registry as written.
        """
        registry = self.load_model_registry()
        registry.append(entry)
        registry.sort(key=_trained_at_key, reverse=True)
        trimmed = registry[: self.max_entries]

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(
                [item.model_dump(by_alias=True, mode="json", exclude_none=True) for item in trimmed],
                f,
                indent=2,
            )
            f.write("\n")

        logger.info(
            "model_registered",
            model_id=entry.id,
            algorithm=entry.algorithm,
            registry_size=len(trimmed),
        )
        return trimmed

    def latest(self) -> Optional[ModelRegistryEntry]:
        registry = self.load_model_registry()
        if not registry:
            return None
        return max(registry, key=_trained_at_key)

    def get_entry(self, model_id: str) -> Optional[ModelRegistryEntry]:
        for entry in self.load_model_registry():
            if entry.id == model_id:
                return entry
        return None


def load_model_registry(path: Optional[Union[str, Path]] = None) -> List[ModelRegistryEntry]:
    return ModelRegistry(path).load_model_registry()


def append_model_registry_entry(
    entry: ModelRegistryEntry,
    path: Optional[Union[str, Path]] = None,
) -> List[ModelRegistryEntry]:
    return ModelRegistry(path).append_model_registry_entry(entry)
