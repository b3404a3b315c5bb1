"""
Command Line Entry Point

Usage:
    ecommerce-star build data/raw/events.csv --output-dir data/curated
    ecommerce-star build data/raw/events.csv --persist --database-url sqlite+aiosqlite:///star.db
    ecommerce-star serve data/raw/events.csv --port 8000
    ecommerce-star generate data/raw/events.csv --users 500 --noise 0.05
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

import structlog

from ecommerce_star.config import get_settings
from ecommerce_star.config.logging import configure_logging
from ecommerce_star.errors import StarSchemaError
from ecommerce_star.ingestion.event_source import FileFormat, RawEventSource
from ecommerce_star.transformation.dimensions import PRODUCT_KEY_STRATEGIES
from ecommerce_star.transformation.transformers import StarSchema, StarSchemaTransformer, write_parquet

logger = structlog.get_logger(__name__)


def _build(args: argparse.Namespace) -> StarSchema:
    pipeline = get_settings().pipeline
    if args.strategy:
        pipeline = pipeline.model_copy(update={"product_key_strategy": args.strategy})
    source = RawEventSource.from_path(args.path, args.format)
    return StarSchemaTransformer(pipeline).run_source(source)


async def _persist(schema: StarSchema, url: Optional[str]) -> dict:
    from ecommerce_star.database import StarSchemaRepository, close_database, init_database

    engine = await init_database(url)
    try:
        return await StarSchemaRepository(engine).save(schema)
    finally:
        await close_database()


def run_build(args: argparse.Namespace) -> int:
    """Build the star schema and print integrity and dashboard summaries"""
    from ecommerce_star.analytics.metrics import MetricsEngine

    schema = _build(args)
    output = {
        "pipeline": schema.result.to_dict(),
        "integrity": schema.integrity.to_dict(),
        "dashboard": MetricsEngine(schema).dashboard_summary().to_dict(),
    }
    if args.output_dir:
        output["written"] = write_parquet(schema, args.output_dir)
    if args.persist:
        output["persisted"] = asyncio.run(_persist(schema, args.database_url))

    print(json.dumps(output, indent=2, default=str))
    return 0


def run_serve(args: argparse.Namespace) -> int:
    """Build the star schema and serve it over HTTP"""
    import uvicorn

    from ecommerce_star.serving.api.main import create_app

    settings = get_settings()
    app = create_app(_build(args))
    uvicorn.run(
        app,
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        log_config=None,
        access_log=False,
    )
    return 0


def run_generate(args: argparse.Namespace) -> int:
    """Write a synthetic raw event file"""
    from ecommerce_star.data.generators import ClickstreamGenerator

    generator = ClickstreamGenerator(seed=args.seed)
    df = generator.generate(n_users=args.users, n_products=args.products, days=args.days)
    if args.noise:
        df = generator.inject_noise(df, args.noise)
    path = generator.write_csv(args.path, df)
    print(f"Generated {len(df):,} raw events -> {path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ecommerce-star",
        description="E-Commerce clickstream star schema pipeline",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    formats = [f.value for f in FileFormat]

    build = subparsers.add_parser("build", help="Build the star schema from a raw event file")
    build.add_argument("path", help="Raw event file")
    build.add_argument("--format", choices=formats, default=None, help="File format (default: from suffix)")
    build.add_argument("--output-dir", default=None, help="Write Parquet snapshots here")
    build.add_argument("--strategy", choices=sorted(PRODUCT_KEY_STRATEGIES), default=None,
                       help="Product key strategy")
    build.add_argument("--persist", action="store_true", help="Full-refresh the star schema database")
    build.add_argument("--database-url", default=None, help="Async database URL (default: settings)")
    build.set_defaults(handler=run_build)

    serve = subparsers.add_parser("serve", help="Serve metrics over HTTP")
    serve.add_argument("path", help="Raw event file")
    serve.add_argument("--format", choices=formats, default=None)
    serve.add_argument("--strategy", choices=sorted(PRODUCT_KEY_STRATEGIES), default=None)
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.set_defaults(handler=run_serve)

    generate = subparsers.add_parser("generate", help="Write a synthetic raw event CSV")
    generate.add_argument("path", help="Output CSV path")
    generate.add_argument("--users", type=int, default=100)
    generate.add_argument("--products", type=int, default=50)
    generate.add_argument("--days", type=int, default=60)
    generate.add_argument("--seed", type=int, default=42)
    generate.add_argument("--noise", type=float, default=0.0, help="Fraction of dirty rows to add")
    generate.set_defaults(handler=run_generate)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        return args.handler(args)
    except (StarSchemaError, FileNotFoundError) as e:
        logger.error("Run failed", error=str(e), error_type=type(e).__name__)
        return 1


if __name__ == "__main__":
    sys.exit(main())
