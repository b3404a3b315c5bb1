"""
Analytics Module

Business metrics computed over a built star schema.
"""
from .metrics import CategoryRevenue, DashboardSummary, FunnelResult, MetricsEngine, MonthTotal

__all__ = [
    "CategoryRevenue",
    "DashboardSummary",
    "FunnelResult",
    "MetricsEngine",
    "MonthTotal",
]
