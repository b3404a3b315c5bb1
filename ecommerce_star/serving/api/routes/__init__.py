"""
API Routes Module
"""
from .health import router as health_router
from .integrity import router as integrity_router
from .metrics import router as metrics_router

__all__ = [
    "health_router",
    "integrity_router",
    "metrics_router",
]
