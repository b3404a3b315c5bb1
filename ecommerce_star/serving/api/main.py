"""
FastAPI Application Factory

Creates the read-only analytics API over one star schema.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import structlog

from ecommerce_star.analytics.metrics import MetricsEngine
from ecommerce_star.config import get_settings
from ecommerce_star.errors import UndefinedMetricError
from ecommerce_star.ingestion.event_source import RawEventSource
from ecommerce_star.serving.api.middleware import RequestLoggingMiddleware
from ecommerce_star.serving.api.routes import health_router, integrity_router, metrics_router
from ecommerce_star.transformation.transformers import StarSchema, StarSchemaTransformer

logger = structlog.get_logger(__name__)


def _attach_schema(app: FastAPI, schema: StarSchema) -> None:
    app.state.schema = schema
    app.state.metrics = MetricsEngine(schema)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the star schema from the configured raw file unless one was supplied."""
    if app.state.schema is None:
        data_lake = get_settings().data_lake
        logger.info("Building star schema on startup", raw_path=data_lake.raw_path)
        source = RawEventSource.from_path(data_lake.raw_path, data_lake.default_format)
        _attach_schema(app, StarSchemaTransformer().run_source(source))

    yield

    logger.info("Shutting down...")


async def undefined_metric_handler(request: Request, exc: UndefinedMetricError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "metric": exc.metric, "reason": exc.reason},
    )


def create_app(schema: Optional[StarSchema] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        schema: Prebuilt star schema; when omitted it is built at startup

    Returns:
        Configured FastAPI app instance
    """
    settings = get_settings()

    app = FastAPI(
        title="E-Commerce Star Schema API",
        description="Read-only business metrics over the clickstream star schema",
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.schema = None
    app.state.metrics = None
    if schema is not None:
        _attach_schema(app, schema)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(UndefinedMetricError, undefined_metric_handler)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(metrics_router, prefix="/api/v1/metrics", tags=["Metrics"])
    app.include_router(integrity_router, prefix="/api/v1", tags=["Integrity"])

    return app
