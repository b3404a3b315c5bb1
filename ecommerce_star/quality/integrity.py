"""
Fact Table Integrity Checker

Reports, per foreign key of fact_sales, how many values are null and how many
reference no dimension row (orphans). The check is read-only and never raises:
a non-zero count is a warning signal for the caller to act on.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Optional

import polars as pl
import structlog

from ecommerce_star.quality.validators import (
    DataValidator,
    ValidationResult,
    ValidationSeverity,
)

if TYPE_CHECKING:
    from ecommerce_star.transformation.dimensions import StarDimensions

logger = structlog.get_logger(__name__)


# fact column -> (dimension attribute, dimension column)
FOREIGN_KEYS: Dict[str, tuple] = {
    "user_id": ("users", "user_id"),
    "product_key": ("products", "product_key"),
    "category_id": ("categories", "category_id"),
    "session_id": ("sessions", "session_id"),
    "date_id": ("dates", "date_id"),
}

# Measure columns that must also be populated
REQUIRED_MEASURES = ["price", "event_type"]


@dataclass
class ColumnIntegrity:
    """Null and orphan counts for one fact column"""
    column: str
    null_count: int = 0
    orphan_count: Optional[int] = None  # None for non foreign key columns

    @property
    def is_clean(self) -> bool:
        return self.null_count == 0 and not self.orphan_count


@dataclass
class IntegrityReport:
    """Integrity of one fact table against its dimensions"""
    total_rows: int
    columns: Dict[str, ColumnIntegrity] = field(default_factory=dict)
    validation: Optional[ValidationResult] = None

    @property
    def total_nulls(self) -> int:
        return sum(c.null_count for c in self.columns.values())

    @property
    def total_orphans(self) -> int:
        return sum(c.orphan_count or 0 for c in self.columns.values())

    @property
    def is_clean(self) -> bool:
        return all(c.is_clean for c in self.columns.values())

    def to_frame(self) -> pl.DataFrame:
        """One row per checked column"""
        return pl.DataFrame(
            {
                "column": [c.column for c in self.columns.values()],
                "null_count": [c.null_count for c in self.columns.values()],
                "orphan_count": [c.orphan_count for c in self.columns.values()],
            },
            schema={"column": pl.Utf8, "null_count": pl.Int64, "orphan_count": pl.Int64},
        )

    def to_dict(self) -> dict:
        return {
            "total_rows": self.total_rows,
            "is_clean": self.is_clean,
            "total_nulls": self.total_nulls,
            "total_orphans": self.total_orphans,
            "columns": {
                name: {"null_count": c.null_count, "orphan_count": c.orphan_count}
                for name, c in self.columns.items()
            },
        }


class IntegrityChecker:
    """
    Checks fact rows against the dimension tables.

    Example:
        report = IntegrityChecker(dims).check(facts)
        if not report.is_clean:
            ...
    """

    def __init__(self, dims: "StarDimensions"):
        self.dims = dims

    def _build_validator(self) -> DataValidator:
        validator = DataValidator()
        for column, (dimension, dim_column) in FOREIGN_KEYS.items():
            validator.add_not_null_check(column, severity=ValidationSeverity.WARNING)
            validator.add_referential_integrity_check(
                column,
                reference_df=getattr(self.dims, dimension),
                reference_column=dim_column,
                severity=ValidationSeverity.WARNING,
            )
        for column in REQUIRED_MEASURES:
            validator.add_not_null_check(column, severity=ValidationSeverity.WARNING)
        return validator

    def check(self, facts: pl.DataFrame) -> IntegrityReport:
        """Count nulls and orphans per fact column"""
        result = self._build_validator().validate(facts)

        columns: Dict[str, ColumnIntegrity] = {}
        for column in [*FOREIGN_KEYS, *REQUIRED_MEASURES]:
            not_null = result.get_check(f"not_null_{column}")
            entry = ColumnIntegrity(column=column, null_count=not_null.failed_rows if not_null else 0)
            if column in FOREIGN_KEYS:
                ref = result.get_check(f"ref_integrity_{column}")
                entry.orphan_count = ref.failed_rows if ref else 0
            columns[column] = entry

        report = IntegrityReport(total_rows=len(facts), columns=columns, validation=result)

        log = logger.info if report.is_clean else logger.warning
        log(
            "Fact integrity checked",
            total_rows=report.total_rows,
            total_nulls=report.total_nulls,
            total_orphans=report.total_orphans,
        )
        return report


def check_integrity(facts: pl.DataFrame, dims: "StarDimensions") -> IntegrityReport:
    """Convenience function wrapping IntegrityChecker"""
    return IntegrityChecker(dims).check(facts)
