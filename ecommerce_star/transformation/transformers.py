"""
Star Schema Transformer

Pipeline orchestrator that runs sanitize -> dimensions -> facts -> integrity
over one raw event batch and returns an immutable StarSchema.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Union
import time

import polars as pl
import structlog

from ecommerce_star.config import PipelineSettings, get_settings
from ecommerce_star.errors import IntegrityViolationError
from ecommerce_star.ingestion.event_source import RawEventSource
from ecommerce_star.quality.integrity import IntegrityChecker, IntegrityReport
from ecommerce_star.transformation.dimensions import DimensionBuilder, StarDimensions
from ecommerce_star.transformation.facts import AssemblyReport, FactAssembler, FactAssembly
from ecommerce_star.transformation.sanitizer import EventSanitizer, SanitizeStats

logger = structlog.get_logger(__name__)


@dataclass
class PipelineResult:
    """Audit record for one transformation run"""
    raw_rows: int
    clean_rows: int
    fact_rows: int
    dimension_rows: Dict[str, int]
    started_at: datetime
    completed_at: datetime
    duration_seconds: float
    stage_seconds: Dict[str, float] = field(default_factory=dict)
    sanitize_stats: Optional[SanitizeStats] = None
    assembly_report: Optional[AssemblyReport] = None
    integrity_report: Optional[IntegrityReport] = None

    def to_dict(self) -> dict:
        return {
            "raw_rows": self.raw_rows,
            "clean_rows": self.clean_rows,
            "fact_rows": self.fact_rows,
            "dimension_rows": self.dimension_rows,
            "unresolved_events": self.assembly_report.unresolved if self.assembly_report else 0,
            "integrity_clean": self.integrity_report.is_clean if self.integrity_report else None,
            "duration_seconds": self.duration_seconds,
            "stage_seconds": self.stage_seconds,
        }


@dataclass(frozen=True)
class StarSchema:
    """Immutable output of one run: clean events, dimensions and facts"""
    clean_events: pl.DataFrame
    dims: StarDimensions
    facts: pl.DataFrame
    assembly: Optional[FactAssembly] = None
    integrity: Optional[IntegrityReport] = None
    result: Optional[PipelineResult] = None

    def tables(self) -> Dict[str, pl.DataFrame]:
        """Every star schema table by name, dimensions first"""
        return {**self.dims.tables(), "fact_sales": self.facts}


class StarSchemaTransformer:
    """
    Star schema pipeline orchestrator.

    Example:
        transformer = StarSchemaTransformer()
        schema = transformer.run(raw_df)
        print(schema.result.to_dict())
    """

    def __init__(self, pipeline_settings: Optional[PipelineSettings] = None):
        self.settings = pipeline_settings or get_settings().pipeline
        self.sanitizer = EventSanitizer(self.settings.allowed_event_types)
        self.dimension_builder = DimensionBuilder(self.settings.product_key_strategy)
        self.fact_assembler = FactAssembler(self.settings.fact_event_types)

    def run(self, raw_events: pl.DataFrame) -> StarSchema:
        """
        Transform a coerced raw event frame into a star schema.

        Pipeline:
        1. Sanitize raw events
        2. Build dimensions
        3. Assemble facts
        4. Check fact integrity

        Raises:
            IntegrityViolationError: If the facts are not clean and
                fail_on_integrity_violation is enabled
        """
        started_at = datetime.utcnow()
        stage_seconds: Dict[str, float] = {}

        logger.info("Starting star schema transformation", raw_rows=len(raw_events))

        tick = time.perf_counter()
        clean, sanitize_stats = self.sanitizer.sanitize_with_stats(raw_events)
        stage_seconds["sanitize"] = time.perf_counter() - tick

        tick = time.perf_counter()
        dims = self.dimension_builder.build(clean)
        stage_seconds["dimensions"] = time.perf_counter() - tick

        tick = time.perf_counter()
        assembly = self.fact_assembler.assemble(clean, dims)
        stage_seconds["facts"] = time.perf_counter() - tick

        tick = time.perf_counter()
        integrity = IntegrityChecker(dims).check(assembly.facts)
        stage_seconds["integrity"] = time.perf_counter() - tick

        completed_at = datetime.utcnow()
        result = PipelineResult(
            raw_rows=len(raw_events),
            clean_rows=len(clean),
            fact_rows=len(assembly.facts),
            dimension_rows=dims.row_counts(),
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=(completed_at - started_at).total_seconds(),
            stage_seconds=stage_seconds,
            sanitize_stats=sanitize_stats,
            assembly_report=assembly.report,
            integrity_report=integrity,
        )

        logger.info("Star schema transformation complete", **result.to_dict())

        if not integrity.is_clean and self.settings.fail_on_integrity_violation:
            logger.error("Aborting run on integrity violation", **integrity.to_dict())
            raise IntegrityViolationError(integrity)

        return StarSchema(
            clean_events=clean,
            dims=dims,
            facts=assembly.facts,
            assembly=assembly,
            integrity=integrity,
            result=result,
        )

    def run_source(self, source: RawEventSource) -> StarSchema:
        """Load a raw event source and transform it"""
        return self.run(source.load())

    def write_parquet(self, schema: StarSchema, output_dir: Union[str, Path, None] = None) -> Dict[str, str]:
        return write_parquet(schema, output_dir)


def write_parquet(
    schema: StarSchema,
    output_dir: Union[str, Path, None] = None,
    compression: Optional[str] = None,
) -> Dict[str, str]:
    """
    Write every star schema table as a Parquet snapshot.

    Returns:
        Mapping of table name to written file path
    """
    data_lake = get_settings().data_lake
    output_path = Path(output_dir or data_lake.curated_path)
    output_path.mkdir(parents=True, exist_ok=True)

    written = {}
    for name, df in schema.tables().items():
        output_file = output_path / f"{name}.parquet"
        df.write_parquet(output_file, compression=compression or data_lake.compression)
        logger.info("Written table", table=name, rows=len(df), path=str(output_file))
        written[name] = str(output_file)
    return written
