"""
Seller Feature Store

Builds per-property transaction, listing, engagement and macro summaries and
serves the latest persisted snapshot.
"""
from src.seller_radar.features.feature_store import (
    build_seller_feature_store_snapshot,
    persist_seller_feature_store_snapshot,
)
from src.seller_radar.features.store import (
    get_seller_feature_record,
    get_seller_feature_store_snapshot,
)

__all__ = [
    "build_seller_feature_store_snapshot",
    "persist_seller_feature_store_snapshot",
    "get_seller_feature_record",
    "get_seller_feature_store_snapshot",
]
