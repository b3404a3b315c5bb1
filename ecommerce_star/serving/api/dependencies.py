"""
Request dependencies shared by the API routes.
"""

from fastapi import HTTPException, Request

from ecommerce_star.analytics.metrics import MetricsEngine
from ecommerce_star.transformation.transformers import StarSchema


def get_schema(request: Request) -> StarSchema:
    schema = getattr(request.app.state, "schema", None)
    if schema is None:
        raise HTTPException(status_code=503, detail="Star schema not loaded")
    return schema


def get_metrics(request: Request) -> MetricsEngine:
    metrics = getattr(request.app.state, "metrics", None)
    if metrics is None:
        raise HTTPException(status_code=503, detail="Star schema not loaded")
    return metrics
