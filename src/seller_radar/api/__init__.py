"""
FastAPI REST API for Seller Radar

Provides REST endpoints for:
- Seller propensity analysis and CSV export
- CRM lead push
- Run history and model registry
- Health checks
"""
