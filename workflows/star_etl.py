"""
Prefect Workflow Orchestration - Star Schema ETL

Batch workflow that rebuilds the clickstream star schema with:
- Retries on I/O tasks
- An integrity gate before persistence
- Parquet snapshots and optional database full refresh
- Dashboard metrics for the run summary
"""

from typing import Optional

import polars as pl
from prefect import flow, task, get_run_logger
from prefect.cache_policies import NO_CACHE

from ecommerce_star.analytics.metrics import MetricsEngine
from ecommerce_star.config import get_settings
from ecommerce_star.errors import IntegrityViolationError
from ecommerce_star.ingestion.event_source import RawEventSource
from ecommerce_star.quality.integrity import IntegrityChecker
from ecommerce_star.transformation.transformers import StarSchema, StarSchemaTransformer, write_parquet


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="load_raw_events",
    description="Read and coerce the raw event file",
    retries=3,
    retry_delay_seconds=10,
)
def load_raw_events(source_path: str, file_format: Optional[str] = None) -> pl.DataFrame:
    logger = get_run_logger()
    df = RawEventSource.from_path(source_path, file_format).load()
    logger.info(f"Loaded {len(df)} raw events from {source_path}")
    return df


@task(
    name="build_star_schema",
    description="Sanitize events, build dimensions and assemble facts",
    cache_policy=NO_CACHE,
)
def build_star_schema(raw_df: pl.DataFrame, product_key_strategy: Optional[str] = None) -> StarSchema:
    logger = get_run_logger()

    # The integrity gate is its own task, so the transformer never aborts here
    update = {"fail_on_integrity_violation": False}
    if product_key_strategy:
        update["product_key_strategy"] = product_key_strategy
    pipeline = get_settings().pipeline.model_copy(update=update)

    schema = StarSchemaTransformer(pipeline).run(raw_df)
    logger.info(
        f"Star schema built: {schema.result.clean_rows} clean events -> "
        f"{schema.result.fact_rows} facts ({schema.assembly.report.unresolved} unresolved)"
    )
    return schema


@task(
    name="check_integrity",
    description="Gate on fact table nulls and orphans",
    cache_policy=NO_CACHE,
)
def check_integrity(schema: StarSchema, fail_on_violation: bool = False) -> dict:
    logger = get_run_logger()
    report = schema.integrity or IntegrityChecker(schema.dims).check(schema.facts)

    if not report.is_clean:
        logger.warning(
            f"Integrity violations: {report.total_nulls} nulls, {report.total_orphans} orphans"
        )
        if fail_on_violation:
            raise IntegrityViolationError(report)
    else:
        logger.info(f"Integrity clean over {report.total_rows} facts")

    return report.to_dict()


@task(
    name="write_snapshots",
    description="Write Parquet snapshots to the curated zone",
    retries=2,
    retry_delay_seconds=10,
    cache_policy=NO_CACHE,
)
def write_snapshots(schema: StarSchema, output_dir: Optional[str] = None) -> dict:
    return write_parquet(schema, output_dir)


@task(
    name="persist_star_schema",
    description="Full-refresh the star schema database",
    retries=3,
    retry_delay_seconds=30,
    cache_policy=NO_CACHE,
)
async def persist_star_schema(schema: StarSchema, database_url: Optional[str] = None) -> dict:
    from ecommerce_star.database import StarSchemaRepository, close_database, init_database

    logger = get_run_logger()
    engine = await init_database(database_url)
    try:
        counts = await StarSchemaRepository(engine).save(schema)
    finally:
        await close_database()
    logger.info(f"Persisted star schema: {counts}")
    return counts


@task(
    name="compute_dashboard",
    description="Compute the dashboard summary",
    cache_policy=NO_CACHE,
)
def compute_dashboard(schema: StarSchema) -> dict:
    return MetricsEngine(schema).dashboard_summary().to_dict()


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="star_schema_etl",
    description="Rebuild the clickstream star schema from one raw event batch",
)
async def star_schema_etl(
    source_path: Optional[str] = None,
    file_format: Optional[str] = None,
    persist: bool = False,
    output_dir: Optional[str] = None,
    database_url: Optional[str] = None,
    product_key_strategy: Optional[str] = None,
) -> dict:
    """
    Star schema ETL pipeline.

    Steps:
    1. Load raw events
    2. Build dimensions and facts
    3. Integrity gate
    4. Write snapshots and optionally persist to the database
    5. Compute dashboard metrics
    """
    logger = get_run_logger()
    settings = get_settings()

    source_path = source_path or settings.data_lake.raw_path
    logger.info(f"Starting star schema ETL for {source_path}")

    raw_df = load_raw_events(source_path, file_format or None)
    schema = build_star_schema(raw_df, product_key_strategy)
    integrity = check_integrity(schema, settings.pipeline.fail_on_integrity_violation)

    results = {
        "source_path": source_path,
        "pipeline": schema.result.to_dict(),
        "integrity": integrity,
    }

    if output_dir:
        results["written"] = write_snapshots(schema, output_dir)
    if persist:
        results["persisted"] = await persist_star_schema(schema, database_url)

    results["dashboard"] = compute_dashboard(schema)
    results["status"] = "success"
    return results


if __name__ == "__main__":
    import asyncio

    asyncio.run(star_schema_etl())
