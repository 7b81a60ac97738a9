"""
Seller Radar - Core Package

Seller-propensity scoring pipeline: event ingestion, feature store snapshots,
heuristic plus model scoring, run history and the prediction API.
"""

__version__ = "0.4.0"
