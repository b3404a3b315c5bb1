"""
Metrics API Endpoints

Read-only REST surface over the metrics engine. An undefined metric is
answered with HTTP 422 by the application's exception handler.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
import structlog

from ecommerce_star.analytics.metrics import MetricsEngine
from ecommerce_star.serving.api.dependencies import get_metrics

router = APIRouter()
logger = structlog.get_logger(__name__)


class MetricValue(BaseModel):
    """A single scalar metric"""
    metric: str
    value: float


class MonthValue(BaseModel):
    year: int
    month: int
    value: float


class DashboardResponse(BaseModel):
    total_users: int
    total_revenue: float
    total_purchases: int
    total_returns: int
    purchasing_users: int
    average_order_value: Optional[float]
    conversion_rate: Optional[float]
    return_rate: Optional[float]
    repeat_purchase_rate: float
    top_revenue_month: Optional[MonthValue]


class FunnelResponse(BaseModel):
    viewed_users: int
    carted_users: int
    purchased_users: int
    view_to_cart_pct: Optional[float]
    cart_to_purchase_pct: Optional[float]
    view_to_purchase_pct: Optional[float]


@router.get("/summary", response_model=DashboardResponse)
def get_summary(metrics: MetricsEngine = Depends(get_metrics)) -> DashboardResponse:
    """Headline dashboard counters and rates"""
    return DashboardResponse(**metrics.dashboard_summary().to_dict())


@router.get("/revenue", response_model=MetricValue)
def get_total_revenue(metrics: MetricsEngine = Depends(get_metrics)) -> MetricValue:
    return MetricValue(metric="total_revenue", value=metrics.total_revenue())


@router.get("/aov", response_model=MetricValue)
def get_average_order_value(metrics: MetricsEngine = Depends(get_metrics)) -> MetricValue:
    return MetricValue(metric="average_order_value", value=metrics.average_order_value())


@router.get("/conversion", response_model=MetricValue)
def get_conversion_rate(metrics: MetricsEngine = Depends(get_metrics)) -> MetricValue:
    return MetricValue(metric="conversion_rate", value=metrics.conversion_rate())


@router.get("/return-rate", response_model=MetricValue)
def get_return_rate(metrics: MetricsEngine = Depends(get_metrics)) -> MetricValue:
    return MetricValue(metric="return_rate", value=metrics.return_rate())


@router.get("/repeat-rate", response_model=MetricValue)
def get_repeat_purchase_rate(metrics: MetricsEngine = Depends(get_metrics)) -> MetricValue:
    return MetricValue(metric="repeat_purchase_rate", value=metrics.repeat_purchase_rate())


@router.get("/funnel", response_model=FunnelResponse)
def get_funnel(metrics: MetricsEngine = Depends(get_metrics)) -> FunnelResponse:
    """View -> cart -> purchase funnel over clean events"""
    return FunnelResponse(**metrics.funnel().to_dict())


@router.get("/monthly-revenue")
def get_monthly_revenue(metrics: MetricsEngine = Depends(get_metrics)) -> List[Dict[str, Any]]:
    return metrics.monthly_purchase_summary().to_dicts()


@router.get("/monthly-return-rate")
def get_monthly_return_rate(metrics: MetricsEngine = Depends(get_metrics)) -> List[Dict[str, Any]]:
    return metrics.monthly_return_rate().to_dicts()


@router.get("/top-brands")
def get_top_brands(
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    metrics: MetricsEngine = Depends(get_metrics),
) -> List[Dict[str, Any]]:
    return metrics.top_brands_by_purchases(limit).to_dicts()


@router.get("/top-returned-categories")
def get_top_returned_categories(
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    metrics: MetricsEngine = Depends(get_metrics),
) -> List[Dict[str, Any]]:
    return metrics.top_returned_categories(limit).to_dicts()
