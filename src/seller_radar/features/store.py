"""
Feature Store Reader

Read path for the persisted seller feature store. The file-backed reader
memoizes the parsed ``latest.json`` and a property index, and only goes back
to disk when the file's modification time changes.

The cache is not locked: rebuilds replace ``latest.json`` atomically, so a
reader only ever sees a complete file.
"""
import json
from pathlib import Path
from typing import Dict, Optional, Protocol, Union

from pydantic import ValidationError

from src.seller_radar.features.models import SellerFeatureStoreRecord, SellerFeatureStoreSnapshot
from src.seller_radar.pipeline.errors import CacheError
from src.seller_radar.utils.logger import get_logger

logger = get_logger(__name__)


class FeatureStoreReader(Protocol):
    def get_snapshot(self) -> Optional[SellerFeatureStoreSnapshot]:
        ...

    def get_record(self, property_id: str) -> Optional[SellerFeatureStoreRecord]:
        ...

    def clear(self) -> None:
        ...


class FileFeatureStoreReader:
    """Feature store reader backed by a ``latest.json`` file."""

    def __init__(self, latest_path: Union[str, Path]):
        self.latest_path = Path(latest_path)
        self._snapshot: Optional[SellerFeatureStoreSnapshot] = None
        self._index: Dict[str, SellerFeatureStoreRecord] = {}
        self._mtime_ns: Optional[int] = None
        self.loads = 0

    def _load(self) -> Optional[SellerFeatureStoreSnapshot]:
        try:
            mtime_ns = self.latest_path.stat().st_mtime_ns
        except FileNotFoundError:
            if self._snapshot is not None:
                logger.warning("feature_store_snapshot_disappeared", path=str(self.latest_path))
            self.clear()
            return None

        if self._snapshot is not None and mtime_ns == self._mtime_ns:
            return self._snapshot

        try:
            with self.latest_path.open("r", encoding="utf-8") as f:
                snapshot = SellerFeatureStoreSnapshot.model_validate(json.load(f))
        except (json.JSONDecodeError, ValidationError) as e:
            raise CacheError(
                f"Feature store snapshot at {self.latest_path} is unreadable: {e}",
                cache_key=str(self.latest_path),
            ) from e

        self._snapshot = snapshot
        self._index = {record.property_id: record for record in snapshot.records}
        self._mtime_ns = mtime_ns
        self.loads += 1
        logger.debug(
            "feature_store_snapshot_loaded",
            path=str(self.latest_path),
            record_count=snapshot.record_count,
        )
        return snapshot

    def get_snapshot(self) -> Optional[SellerFeatureStoreSnapshot]:
        """The current snapshot, or None before the first build."""
        return self._load()

    def get_record(self, property_id: str) -> Optional[SellerFeatureStoreRecord]:
        if self._load() is None:
            return None
        return self._index.get(property_id)

    def clear(self) -> None:
        self._snapshot = None
        self._index = {}
        self._mtime_ns = None


_reader: Optional[FeatureStoreReader] = None


def configure_feature_store_reader(reader: Optional[FeatureStoreReader]) -> None:
    """Install the reader used by the module-level helpers (done once at startup)."""
    global _reader
    _reader = reader


def get_seller_feature_store_snapshot() -> Optional[SellerFeatureStoreSnapshot]:
    if _reader is None:
        return None
    return _reader.get_snapshot()


def get_seller_feature_record(property_id: str) -> Optional[SellerFeatureStoreRecord]:
    if _reader is None:
        return None
    return _reader.get_record(property_id)
