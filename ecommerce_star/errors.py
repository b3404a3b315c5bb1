"""
Exception hierarchy for the star schema pipeline.
"""

from typing import Iterable, Optional


class StarSchemaError(Exception):
    """Base class for all pipeline errors"""


class RawSchemaError(StarSchemaError):
    """Raw event input is missing required columns"""

    def __init__(self, missing_columns: Iterable[str], source: Optional[str] = None):
        self.missing_columns = sorted(missing_columns)
        self.source = source
        where = f" in {source}" if source else ""
        super().__init__(f"Raw events{where} missing required columns: {self.missing_columns}")


class UnsupportedFormatError(StarSchemaError):
    """Raw event file format is not readable"""


class IntegrityViolationError(StarSchemaError):
    """Fact table failed referential integrity and the run is configured to abort"""

    def __init__(self, report):
        self.report = report
        super().__init__(
            f"Fact table integrity violated: {report.total_nulls} nulls, "
            f"{report.total_orphans} orphans"
        )


class UndefinedMetricError(StarSchemaError, ZeroDivisionError):
    """A metric's denominator is zero, so the metric has no defined value"""

    def __init__(self, metric: str, reason: str):
        self.metric = metric
        self.reason = reason
        super().__init__(f"Metric '{metric}' is undefined: {reason}")
