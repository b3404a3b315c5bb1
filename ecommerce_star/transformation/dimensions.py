"""
Dimension Builder

Derives the deduplicated dimension tables of the star schema from clean events
and assigns their surrogate keys.

Dimensions:
- dim_users: user_key, user_id
- dim_products: product_key, product_id, brand, price
- dim_category: category_id, category_code
- dim_sessions: session_id (natural key, no surrogate)
- dim_date: date_id, full_date, year, month, day, week, weekday_name, is_weekend

Each dimension owns a SurrogateKeyIndex built once per run. Keys start at 1
and are unique and stable within one build only; callers must not depend on
which natural key receives which surrogate.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple, Union

import polars as pl
import structlog

from ecommerce_star.quality.validators import DataValidator, ValidationStatus

logger = structlog.get_logger(__name__)


# =============================================================================
# PRODUCT KEY STRATEGIES
# =============================================================================

@dataclass(frozen=True)
class ProductKeyStrategy:
    """Selects the natural key of the product dimension"""
    name: str
    columns: Tuple[str, ...]
    description: str = ""

    @property
    def attributes(self) -> Tuple[str, ...]:
        """Product attributes outside the key; first observed value wins"""
        return tuple(c for c in PRODUCT_ATTRIBUTES if c not in self.columns)


PRODUCT_ATTRIBUTES = ("product_id", "brand", "price")

PRODUCT_KEY_STRATEGIES: Dict[str, ProductKeyStrategy] = {
    strategy.name: strategy
    for strategy in (
        ProductKeyStrategy(
            "product_id_brand_price",
            ("product_id", "brand", "price"),
            "Legacy key: a product seen at a new price is a new dimension row",
        ),
        ProductKeyStrategy(
            "product_id_brand",
            ("product_id", "brand"),
            "Price is an attribute, brand still splits a product id",
        ),
        ProductKeyStrategy(
            "product_id",
            ("product_id",),
            "One row per product id",
        ),
    )
}

DEFAULT_PRODUCT_KEY_STRATEGY = "product_id_brand_price"


def get_product_key_strategy(
    strategy: Union[str, ProductKeyStrategy, None] = None,
) -> ProductKeyStrategy:
    """Resolve a strategy name (or instance) to a ProductKeyStrategy"""
    if isinstance(strategy, ProductKeyStrategy):
        return strategy
    name = strategy or DEFAULT_PRODUCT_KEY_STRATEGY
    try:
        return PRODUCT_KEY_STRATEGIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown product key strategy '{name}'. "
            f"Available: {sorted(PRODUCT_KEY_STRATEGIES)}"
        ) from None


# =============================================================================
# SURROGATE KEY INDEX
# =============================================================================

class SurrogateKeyIndex:
    """
    Natural key to surrogate key mapping for one dimension.

    The backing frame holds the surrogate column followed by the natural key
    columns and any attributes.
    """

    def __init__(
        self,
        name: str,
        natural_key: Sequence[str],
        key_column: str,
        frame: pl.DataFrame,
    ):
        self.name = name
        self.natural_key = tuple(natural_key)
        self.key_column = key_column
        self.frame = frame
        self._lookup: Optional[Dict[Tuple[Any, ...], int]] = None

    @classmethod
    def build(
        cls,
        name: str,
        df: pl.DataFrame,
        natural_key: Sequence[str],
        key_column: str,
        attributes: Sequence[str] = (),
    ) -> "SurrogateKeyIndex":
        """Assign surrogates to the distinct natural keys of df, in first-seen order"""
        natural_key = list(natural_key)
        distinct = (
            df.select([*natural_key, *attributes])
            .unique(subset=natural_key, keep="first", maintain_order=True)
            .with_row_index(key_column, offset=1)
            .with_columns(pl.col(key_column).cast(pl.Int64))
        )
        return cls(name, natural_key, key_column, distinct)

    def __len__(self) -> int:
        return len(self.frame)

    def __contains__(self, key: Any) -> bool:
        return self.lookup(key) is not None

    def lookup(self, key: Any) -> Optional[int]:
        """Surrogate for a natural key (scalar or tuple); None when absent"""
        if self._lookup is None:
            self._lookup = {
                tuple(row[:-1]): row[-1]
                for row in self.frame.select([*self.natural_key, self.key_column]).iter_rows()
            }
        if not isinstance(key, tuple):
            key = (key,)
        return self._lookup.get(key)

    def resolve(self, df: pl.DataFrame, nulls_equal: bool = True) -> pl.DataFrame:
        """Left-join the surrogate column onto df by natural key"""
        return df.join(
            self.frame.select([*self.natural_key, self.key_column]),
            on=list(self.natural_key),
            how="left",
            nulls_equal=nulls_equal,
        )

    def natural_keys(self) -> Set[Tuple[Any, ...]]:
        """Set of natural key tuples in this index"""
        return set(self.frame.select(list(self.natural_key)).iter_rows())


# =============================================================================
# DIMENSIONS
# =============================================================================

@dataclass(frozen=True)
class StarDimensions:
    """The five dimension tables of one build, plus their key indexes"""
    users: pl.DataFrame
    products: pl.DataFrame
    categories: pl.DataFrame
    sessions: pl.DataFrame
    dates: pl.DataFrame
    indexes: Dict[str, SurrogateKeyIndex] = field(default_factory=dict)
    product_key_strategy: ProductKeyStrategy = field(
        default_factory=lambda: get_product_key_strategy(DEFAULT_PRODUCT_KEY_STRATEGY)
    )

    def tables(self) -> Dict[str, pl.DataFrame]:
        """Dimension tables by table name"""
        return {
            "dim_users": self.users,
            "dim_products": self.products,
            "dim_category": self.categories,
            "dim_sessions": self.sessions,
            "dim_date": self.dates,
        }

    def row_counts(self) -> Dict[str, int]:
        return {name: len(df) for name, df in self.tables().items()}

    def natural_keys(self, name: str) -> Set[Tuple[Any, ...]]:
        """Natural key tuples of a dimension ("users", "products", ...)"""
        if name == "sessions":
            # The session token is its own key
            return set(self.sessions.iter_rows())
        return self.indexes[name].natural_keys()


DATE_COLUMNS = ["date_id", "full_date", "year", "month", "day", "week", "weekday_name", "is_weekend"]


def derive_date_attributes(dates: pl.DataFrame) -> pl.DataFrame:
    """
    Calendar attributes of a full_date column.

    week is the ISO-8601 week number; weekday_name is the English day name;
    is_weekend is true for Saturday and Sunday.
    """
    return dates.with_columns([
        pl.col("full_date").dt.year().cast(pl.Int32).alias("year"),
        pl.col("full_date").dt.month().cast(pl.Int32).alias("month"),
        pl.col("full_date").dt.day().cast(pl.Int32).alias("day"),
        pl.col("full_date").dt.week().cast(pl.Int32).alias("week"),
        pl.col("full_date").dt.strftime("%A").alias("weekday_name"),
        # polars weekday(): Monday=1 .. Sunday=7
        (pl.col("full_date").dt.weekday() >= 6).alias("is_weekend"),
    ])


class DimensionBuilder:
    """
    Builds the dimension tables of the star schema.

    Example:
        builder = DimensionBuilder(product_key_strategy="product_id")
        dims = builder.build(clean_df)
    """

    def __init__(
        self,
        product_key_strategy: Union[str, ProductKeyStrategy, None] = None,
        validate: bool = True,
    ):
        self.product_key_strategy = get_product_key_strategy(product_key_strategy)
        self.validate = validate

    def build_users(self, events: pl.DataFrame) -> SurrogateKeyIndex:
        return SurrogateKeyIndex.build(
            "users",
            events.filter(pl.col("user_id").is_not_null()),
            natural_key=["user_id"],
            key_column="user_key",
        )

    def build_products(self, events: pl.DataFrame) -> SurrogateKeyIndex:
        strategy = self.product_key_strategy
        index = SurrogateKeyIndex.build(
            "products",
            events.filter(pl.col("product_id").is_not_null()),
            natural_key=strategy.columns,
            key_column="product_key",
            attributes=strategy.attributes,
        )
        index.frame = index.frame.select(["product_key", *PRODUCT_ATTRIBUTES])
        return index

    def build_categories(self, events: pl.DataFrame) -> SurrogateKeyIndex:
        # category_code is nullable; unknown categories share one row
        return SurrogateKeyIndex.build(
            "categories",
            events,
            natural_key=["category_code"],
            key_column="category_id",
        )

    def build_sessions(self, events: pl.DataFrame) -> pl.DataFrame:
        return (
            events.select("session_id")
            .filter(pl.col("session_id").is_not_null())
            .unique(maintain_order=True)
        )

    def build_dates(self, events: pl.DataFrame) -> SurrogateKeyIndex:
        full_dates = (
            events.select(pl.col("event_time").dt.date().alias("full_date"))
            .filter(pl.col("full_date").is_not_null())
            .unique()
            .sort("full_date")
        )
        index = SurrogateKeyIndex.build(
            "dates",
            full_dates,
            natural_key=["full_date"],
            key_column="date_id",
        )
        index.frame = derive_date_attributes(index.frame).select(DATE_COLUMNS)
        return index

    def build(self, clean_events: pl.DataFrame) -> StarDimensions:
        """
        Build all dimensions from the clean event stream.

        An empty input yields empty, correctly typed dimensions.
        """
        users = self.build_users(clean_events)
        products = self.build_products(clean_events)
        categories = self.build_categories(clean_events)
        sessions = self.build_sessions(clean_events)
        dates = self.build_dates(clean_events)

        dims = StarDimensions(
            users=users.frame,
            products=products.frame,
            categories=categories.frame,
            sessions=sessions,
            dates=dates.frame,
            indexes={
                "users": users,
                "products": products,
                "categories": categories,
                "dates": dates,
            },
            product_key_strategy=self.product_key_strategy,
        )

        logger.info(
            "Built dimensions",
            product_key_strategy=self.product_key_strategy.name,
            **dims.row_counts(),
        )

        if self.validate:
            self._validate(dims)

        return dims

    def _validate(self, dims: StarDimensions) -> None:
        """Check surrogate and natural key uniqueness of every dimension"""
        checks: List[Tuple[str, pl.DataFrame, DataValidator]] = [
            ("dim_users", dims.users,
             DataValidator().add_unique_check("user_key").add_unique_check("user_id")),
            ("dim_products", dims.products,
             DataValidator().add_unique_check("product_key")
             .add_unique_check(list(dims.product_key_strategy.columns))),
            ("dim_category", dims.categories,
             DataValidator().add_unique_check("category_id").add_unique_check("category_code")),
            ("dim_sessions", dims.sessions,
             DataValidator().add_unique_check("session_id").add_not_null_check("session_id")),
            ("dim_date", dims.dates,
             DataValidator().add_unique_check("date_id").add_unique_check("full_date")),
        ]
        for table, df, validator in checks:
            result = validator.validate(df)
            if result.status != ValidationStatus.PASSED:
                logger.error("Dimension key validation failed", table=table, failed=result.failed_checks)
