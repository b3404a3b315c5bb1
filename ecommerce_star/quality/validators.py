"""
Data Validation Module

Rule-based data quality checks over polars frames.
Implements validation patterns inspired by Great Expectations.

Features:
- Null checks
- Uniqueness checks (single or composite keys)
- Allowed value checks
- Range checks
- Referential integrity checks
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import polars as pl
import structlog

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Critical - blocks pipeline
    WARNING = "warning"  # Non-critical - logged but continues
    INFO = "info"  # Informational only


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    def get_check(self, name: str) -> Optional[ValidationCheck]:
        """Find a check result by name"""
        return next((c for c in self.checks if c.name == name), None)


def _missing_column(name: str, column: str, severity: ValidationSeverity) -> ValidationCheck:
    return ValidationCheck(
        name=name,
        passed=False,
        severity=severity,
        message=f"Column '{column}' not found",
    )


class DataValidator:
    """
    Data validator with a chainable check suite.

    Example:
        validator = DataValidator()
        validator.add_not_null_check("user_id")
        validator.add_unique_check(["product_id", "brand", "price"])
        result = validator.validate(df)
    """

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode  # Fail on any warning
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def reset(self) -> None:
        """Reset validator state"""
        self._checks = []

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        name = f"not_null_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(name, column, severity)

            null_count = df[column].null_count()
            total = len(df)
            passed = null_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {null_count} null values" if not passed else f"Column '{column}' has no null values",
                details={"null_count": null_count, "null_percentage": (null_count / total) * 100 if total > 0 else 0},
                failed_rows=null_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        columns: Union[str, Sequence[str]],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for uniqueness of a column or a composite key"""
        cols = [columns] if isinstance(columns, str) else list(columns)
        name = f"unique_{'_'.join(cols)}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            missing = [c for c in cols if c not in df.columns]
            if missing:
                return _missing_column(name, missing[0], severity)

            total = len(df)
            # Nulls compare equal, matching how dimension keys are deduplicated
            unique_count = df.select(cols).unique().height
            duplicate_count = total - unique_count
            passed = duplicate_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Key {cols} has {duplicate_count} duplicate values" if not passed else f"Key {cols} values are unique",
                details={"unique_count": unique_count, "duplicate_count": duplicate_count},
                failed_rows=duplicate_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values within specified range"""
        name = f"range_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(name, column, severity)

            conditions = []
            if min_value is not None:
                conditions.append(pl.col(column) < min_value)
            if max_value is not None:
                conditions.append(pl.col(column) > max_value)

            if not conditions:
                return ValidationCheck(
                    name=name,
                    passed=True,
                    severity=severity,
                    message="No range specified",
                )

            out_of_range = df.filter(pl.any_horizontal(conditions)).height
            total = len(df)
            passed = out_of_range == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {out_of_range} values outside range [{min_value}, {max_value}]" if not passed else "All values in range",
                details={"min": min_value, "max": max_value, "out_of_range_count": out_of_range},
                failed_rows=out_of_range,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_enum_check(
        self,
        column: str,
        allowed_values: List[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values in allowed set"""
        name = f"enum_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(name, column, severity)

            invalid = df.filter(
                ~pl.col(column).is_in(allowed_values) & pl.col(column).is_not_null()
            ).height
            total = len(df)
            passed = invalid == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {invalid} invalid values" if not passed else "All values are valid",
                details={"allowed_values": allowed_values, "invalid_count": invalid},
                failed_rows=invalid,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_referential_integrity_check(
        self,
        column: str,
        reference_df: pl.DataFrame,
        reference_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that every non-null value of column exists in the reference"""
        name = f"ref_integrity_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(name, column, severity)

            reference = reference_df.select(pl.col(reference_column).alias(column)).unique()
            orphans = (
                df.select(column)
                .filter(pl.col(column).is_not_null())
                .join(reference, on=column, how="anti")
                .height
            )
            total = len(df)
            passed = orphans == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {orphans} orphan records" if not passed else "Referential integrity maintained",
                details={"orphan_count": orphans, "reference": reference_column},
                failed_rows=orphans,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], bool],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add custom validation check"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            passed = bool(check_func(df))
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message="Check passed" if passed else message_on_fail,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationResult with all check results
        """
        started_at = datetime.utcnow()
        results = []

        logger.debug("Running validation checks", checks=len(self._checks), rows=len(df))

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    f"Validation failed: {result.name}",
                    message=result.message,
                    severity=result.severity.value,
                )

        completed_at = datetime.utcnow()

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0 and self.strict_mode:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        return ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=completed_at,
        )


def create_fact_validator(fact_event_types: Sequence[str] = ("purchase", "return")) -> DataValidator:
    """Create pre-configured validator for fact_sales column contents"""
    return (
        DataValidator()
        .add_unique_check("sales_id")
        .add_not_null_check("price", severity=ValidationSeverity.WARNING)
        .add_range_check("price", min_value=0, severity=ValidationSeverity.WARNING)
        .add_enum_check("event_type", list(fact_event_types))
    )
