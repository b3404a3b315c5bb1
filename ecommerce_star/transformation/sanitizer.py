"""
Event Sanitizer

Filters raw clickstream events down to the clean event stream.

A record is kept iff:
- event_type is one of the allowed types
- user_id is present
- product_id is present

Sanitizing is a pure, order-preserving filter. Rows are never modified or
deduplicated here; duplicates collapse later in the dimension builder.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Optional, Tuple

import polars as pl
import structlog

logger = structlog.get_logger(__name__)

DEFAULT_EVENT_TYPES = ("view", "cart", "purchase", "return")


@dataclass
class SanitizeStats:
    """Statistics from one sanitize pass"""
    input_rows: int
    kept_rows: int
    # Rows failing each rule; a row can fail several rules
    failed_by_rule: Dict[str, int] = field(default_factory=dict)

    @property
    def dropped_rows(self) -> int:
        return self.input_rows - self.kept_rows


class EventSanitizer:
    """
    Rule-based filter producing clean events.

    Example:
        sanitizer = EventSanitizer()
        clean_df = sanitizer.sanitize(raw_df)
    """

    def __init__(self, allowed_event_types: Optional[Iterable[str]] = None):
        self.allowed_event_types: Tuple[str, ...] = tuple(allowed_event_types or DEFAULT_EVENT_TYPES)
        self._rules: Dict[str, Callable[[], pl.Expr]] = {}
        self._register_default_rules()

    def _register_default_rules(self) -> None:
        """Register default keep rules"""
        self._rules = {
            "allowed_event_type": self._allowed_event_type,
            "user_id_present": lambda: pl.col("user_id").is_not_null(),
            "product_id_present": lambda: pl.col("product_id").is_not_null(),
        }

    def register_rule(self, name: str, func: Callable[[], pl.Expr]) -> None:
        """Register a custom keep rule; func returns a boolean expression"""
        self._rules[name] = func

    def _allowed_event_type(self) -> pl.Expr:
        return pl.col("event_type").is_in(list(self.allowed_event_types)).fill_null(False)

    def _keep_expr(self) -> pl.Expr:
        """All rules combined with AND"""
        return pl.all_horizontal([rule().fill_null(False) for rule in self._rules.values()])

    def sanitize(self, df: pl.DataFrame) -> pl.DataFrame:
        """Return the clean events, in input order"""
        return df.filter(self._keep_expr())

    def sanitize_with_stats(self, df: pl.DataFrame) -> Tuple[pl.DataFrame, SanitizeStats]:
        """Return the clean events together with per-rule drop counts"""
        failed = df.select([
            (~rule().fill_null(False)).sum().alias(name)
            for name, rule in self._rules.items()
        ]).row(0, named=True) if len(df) else {name: 0 for name in self._rules}

        clean = self.sanitize(df)
        stats = SanitizeStats(
            input_rows=len(df),
            kept_rows=len(clean),
            failed_by_rule={name: int(count or 0) for name, count in failed.items()},
        )

        logger.info(
            "Sanitized raw events",
            input_rows=stats.input_rows,
            kept_rows=stats.kept_rows,
            dropped_rows=stats.dropped_rows,
            failed_by_rule=stats.failed_by_rule,
        )
        return clean, stats


def sanitize_events(
    df: pl.DataFrame,
    allowed_event_types: Optional[Iterable[str]] = None,
) -> pl.DataFrame:
    """
    Convenience function to sanitize raw events.

    Args:
        df: Raw event frame
        allowed_event_types: Override the default allowed types

    Returns:
        Clean event frame
    """
    return EventSanitizer(allowed_event_types).sanitize(df)
