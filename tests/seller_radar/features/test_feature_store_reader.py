"""
Tests for the cached feature store reader.
"""
import os

import pytest

from src.seller_radar.features import store as store_module
from src.seller_radar.features.feature_store import (
    build_seller_feature_store_snapshot,
    persist_seller_feature_store_snapshot,
)
from src.seller_radar.features.store import (
    FileFeatureStoreReader,
    configure_feature_store_reader,
    get_seller_feature_record,
    get_seller_feature_store_snapshot,
)
from src.seller_radar.pipeline.errors import CacheError
from src.seller_radar.pipeline.schemas import IngestionBundle


@pytest.fixture
def store_dir(tmp_path):
    return tmp_path / "feature-store"


def persist(store_dir, property_ids, now):
    snapshot = build_seller_feature_store_snapshot(property_ids, IngestionBundle(), now=now)
    paths = persist_seller_feature_store_snapshot(snapshot, store_dir)
    return snapshot, paths


def test_missing_snapshot_is_cold_start(store_dir):
    reader = FileFeatureStoreReader(store_dir / "latest.json")

    assert reader.get_snapshot() is None
    assert reader.get_record("p1") is None
    assert reader.loads == 0


def test_snapshot_is_cached_until_file_changes(store_dir, fixed_now):
    _, paths = persist(store_dir, ["p1"], fixed_now)
    reader = FileFeatureStoreReader(paths["latest"])

    assert reader.get_snapshot().record_count == 1
    assert reader.get_record("p1").property_id == "p1"
    assert reader.loads == 1

    persist(store_dir, ["p1", "p2"], fixed_now)
    stat = os.stat(paths["latest"])
    os.utime(paths["latest"], ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))

    assert reader.get_snapshot().record_count == 2
    assert reader.get_record("p2") is not None
    assert reader.loads == 2


def test_unknown_property_returns_none(store_dir, fixed_now):
    _, paths = persist(store_dir, ["p1"], fixed_now)
    reader = FileFeatureStoreReader(paths["latest"])

    assert reader.get_record("missing") is None


def test_corrupt_snapshot_raises_cache_error(store_dir):
    store_dir.mkdir(parents=True)
    latest = store_dir / "latest.json"
    latest.write_text("{not json", encoding="utf-8")

    with pytest.raises(CacheError):
        FileFeatureStoreReader(latest).get_snapshot()


def test_snapshot_removed_after_load(store_dir, fixed_now):
    _, paths = persist(store_dir, ["p1"], fixed_now)
    reader = FileFeatureStoreReader(paths["latest"])
    assert reader.get_snapshot() is not None

    os.remove(paths["latest"])

    assert reader.get_snapshot() is None


def test_module_helpers_use_configured_reader(monkeypatch, store_dir, fixed_now):
    monkeypatch.setattr(store_module, "_reader", None)
    assert get_seller_feature_store_snapshot() is None
    assert get_seller_feature_record("p1") is None

    _, paths = persist(store_dir, ["p1"], fixed_now)
    configure_feature_store_reader(FileFeatureStoreReader(paths["latest"]))

    assert get_seller_feature_store_snapshot().record_count == 1
    assert get_seller_feature_record("p1").property_id == "p1"
