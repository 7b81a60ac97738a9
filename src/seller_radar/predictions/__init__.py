"""Run history for seller propensity analyses."""
