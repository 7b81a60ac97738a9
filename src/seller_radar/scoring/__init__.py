"""
Seller Propensity Scoring

Blends heuristic signals with an optional logistic model into ranked scores.
"""
from src.seller_radar.scoring.propensity import SellerPropensityScorer, score_property

__all__ = [
    "SellerPropensityScorer",
    "score_property",
]
