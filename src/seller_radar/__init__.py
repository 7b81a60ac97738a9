"""
Seller Radar

Seller propensity scoring over a cached per-property feature store.
"""
