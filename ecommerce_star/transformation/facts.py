"""
Fact Assembler

Joins clean purchase/return events against the dimensions and produces the
fact_sales table.

Each event resolves to either Resolved (one fact row) or Unresolved (the
dimensions it could not be matched against). Unresolved events are left out
of the fact table, counted in an AssemblyReport and logged; assembly never
raises on a referential miss.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple, Union
import heapq

import polars as pl
import structlog

from ecommerce_star.transformation.dimensions import StarDimensions

logger = structlog.get_logger(__name__)

DEFAULT_FACT_EVENT_TYPES = ("purchase", "return")

FACT_COLUMNS = [
    "sales_id",
    "user_id",
    "product_key",
    "category_id",
    "session_id",
    "date_id",
    "price",
    "event_type",
]

# dimension name -> column that is null when the lookup missed
RESOLUTION_COLUMNS = {
    "product": "product_key",
    "category": "category_id",
    "session": "_session_found",
    "date": "date_id",
}


@dataclass(frozen=True)
class Resolved:
    """An event that produced a fact row"""
    event_index: int
    fact: Dict[str, Any]


@dataclass(frozen=True)
class Unresolved:
    """An event dropped because a dimension lookup missed"""
    event_index: int
    event: Dict[str, Any]
    reasons: Tuple[str, ...]


@dataclass
class AssemblyReport:
    """Counts from one assembly pass"""
    input_events: int
    resolved: int
    unresolved: int
    misses_by_dimension: Dict[str, int] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return self.unresolved == 0


@dataclass(frozen=True)
class FactAssembly:
    """
    Output of the fact assembler.

    facts holds the resolved rows only. unresolved holds the dropped events
    with their event_index and a list of reasons.
    """
    facts: pl.DataFrame
    unresolved: pl.DataFrame
    report: AssemblyReport
    fact_event_index: pl.Series

    def iter_results(self) -> Iterator[Union[Resolved, Unresolved]]:
        """Yield one Resolved or Unresolved per input event, in input order"""
        resolved = (
            (idx, Resolved(event_index=idx, fact=row))
            for idx, row in zip(self.fact_event_index.to_list(), self.facts.iter_rows(named=True))
        )
        unresolved = (
            (row["event_index"], Unresolved(
                event_index=row["event_index"],
                event={k: v for k, v in row.items() if k not in ("event_index", "reasons")},
                reasons=tuple(row["reasons"]),
            ))
            for row in self.unresolved.iter_rows(named=True)
        )
        for _, result in heapq.merge(resolved, unresolved, key=lambda item: item[0]):
            yield result


class FactAssembler:
    """
    Builds fact_sales from clean events and dimensions.

    Example:
        assembly = FactAssembler().assemble(clean_df, dims)
        facts = assembly.facts
    """

    def __init__(self, fact_event_types: Optional[Iterable[str]] = None):
        self.fact_event_types = tuple(fact_event_types or DEFAULT_FACT_EVENT_TYPES)

    def _resolve(self, events: pl.DataFrame, dims: StarDimensions) -> pl.DataFrame:
        """Attach every dimension key; unmatched lookups stay null"""
        # brand, price and category_code are nullable attributes, matched null-safe
        df = dims.indexes["products"].resolve(events, nulls_equal=True)
        df = dims.indexes["categories"].resolve(df, nulls_equal=True)
        df = df.join(
            dims.sessions.select("session_id").with_columns(pl.lit(True).alias("_session_found")),
            on="session_id",
            how="left",
        )
        df = dims.indexes["dates"].resolve(df, nulls_equal=False)
        return df.sort("event_index")

    def assemble(self, clean_events: pl.DataFrame, dims: StarDimensions) -> FactAssembly:
        """
        Assemble fact rows for purchase/return events.

        Args:
            clean_events: Output of the event sanitizer
            dims: Dimensions built from the same clean events

        Returns:
            FactAssembly with facts, unresolved events and a report
        """
        events = (
            clean_events
            .filter(pl.col("event_type").is_in(list(self.fact_event_types)))
            # The raw category_id is a source identifier; the fact carries the surrogate
            .drop("category_id", strict=False)
            .with_row_index("event_index")
            .with_columns(pl.col("event_time").dt.date().alias("full_date"))
        )
        event_columns = [c for c in events.columns if c != "full_date"]

        resolved = self._resolve(events, dims).with_columns(
            pl.concat_list([
                pl.when(pl.col(column).is_null()).then(pl.lit(dimension)).otherwise(pl.lit(None, dtype=pl.Utf8))
                for dimension, column in RESOLUTION_COLUMNS.items()
            ]).list.drop_nulls().alias("reasons")
        )

        misses = {
            dimension: int(resolved[column].null_count())
            for dimension, column in RESOLUTION_COLUMNS.items()
        }

        is_resolved = pl.col("reasons").list.len() == 0
        resolved_rows = resolved.filter(is_resolved)

        facts = (
            resolved_rows
            .with_row_index("sales_id", offset=1)
            .with_columns(pl.col("sales_id").cast(pl.Int64))
            .select(FACT_COLUMNS)
        )
        unresolved = resolved.filter(~is_resolved).select([*event_columns, "reasons"])

        report = AssemblyReport(
            input_events=len(events),
            resolved=len(facts),
            unresolved=len(unresolved),
            misses_by_dimension=misses,
        )

        if report.unresolved:
            logger.warning(
                "Dropped events with unresolved dimensions",
                unresolved=report.unresolved,
                input_events=report.input_events,
                misses_by_dimension=misses,
            )
        logger.info("Assembled facts", input_events=report.input_events, facts=report.resolved)

        return FactAssembly(
            facts=facts,
            unresolved=unresolved,
            report=report,
            fact_event_index=resolved_rows["event_index"].cast(pl.Int64),
        )


def assemble_facts(
    clean_events: pl.DataFrame,
    dims: StarDimensions,
    fact_event_types: Optional[Iterable[str]] = None,
) -> pl.DataFrame:
    """Convenience function returning only the fact table"""
    return FactAssembler(fact_event_types).assemble(clean_events, dims).facts
