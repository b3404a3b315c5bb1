"""
Metrics Engine

Read-only business queries over one StarSchema: revenue, product performance,
time series trends, retention, returns, funnel and customer segmentation.

Scalar metrics whose denominator is zero raise UndefinedMetricError. Row-shaped
results carry None for an undefined percentage instead.
"""

from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

import polars as pl
import structlog

from ecommerce_star.config import PipelineSettings, get_settings
from ecommerce_star.errors import UndefinedMetricError
from ecommerce_star.transformation.transformers import StarSchema

logger = structlog.get_logger(__name__)

VIEW = "view"
CART = "cart"
PURCHASE = "purchase"
RETURN = "return"


def _percentage(numerator: int, denominator: int) -> Optional[float]:
    """numerator / denominator * 100 rounded to 2 places, None when undefined"""
    if not denominator:
        return None
    return round(numerator * 100.0 / denominator, 2)


def _percentage_expr(numerator: pl.Expr, denominator: pl.Expr) -> pl.Expr:
    return (
        pl.when(denominator > 0)
        .then((numerator * 100.0 / denominator).round(2))
        .otherwise(pl.lit(None, dtype=pl.Float64))
    )


@dataclass(frozen=True)
class CategoryRevenue:
    category_id: int
    category_code: Optional[str]
    revenue: float


@dataclass(frozen=True)
class MonthTotal:
    """A (year, month) bucket and the value it was ranked by"""
    year: int
    month: int
    value: float


@dataclass(frozen=True)
class FunnelResult:
    """Users reaching each funnel stage and the stage-to-stage percentages"""
    viewed_users: int
    carted_users: int
    purchased_users: int
    view_to_cart_pct: Optional[float]
    cart_to_purchase_pct: Optional[float]
    view_to_purchase_pct: Optional[float]

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class DashboardSummary:
    total_users: int
    total_revenue: float
    total_purchases: int
    total_returns: int
    purchasing_users: int
    average_order_value: Optional[float]
    conversion_rate: Optional[float]
    return_rate: Optional[float]
    repeat_purchase_rate: float
    top_revenue_month: Optional[MonthTotal]

    def to_dict(self) -> dict:
        return asdict(self)


class MetricsEngine:
    """
    Analytical queries over a built star schema.

    Example:
        engine = MetricsEngine(schema)
        engine.total_revenue()
        engine.funnel()
    """

    def __init__(self, schema: StarSchema, pipeline_settings: Optional[PipelineSettings] = None):
        self.schema = schema
        self.settings = pipeline_settings or get_settings().pipeline

    # =========================================================================
    # Frame helpers
    # =========================================================================

    @property
    def facts(self) -> pl.DataFrame:
        return self.schema.facts

    def _facts_of(self, event_type: str) -> pl.DataFrame:
        return self.facts.filter(pl.col("event_type") == event_type)

    def _purchases(self) -> pl.DataFrame:
        return self._facts_of(PURCHASE)

    def _returns(self) -> pl.DataFrame:
        return self._facts_of(RETURN)

    def _with_dates(self, df: pl.DataFrame) -> pl.DataFrame:
        """Attach full_date, year and month from dim_date"""
        return df.join(
            self.schema.dims.dates.select(["date_id", "full_date", "year", "month"]),
            on="date_id",
            how="left",
        )

    def _clean_event_counts(self) -> Dict[str, int]:
        return dict(
            self.schema.clean_events.group_by("event_type").agg(pl.len()).iter_rows()
        )

    def _purchases_per_user(self) -> pl.DataFrame:
        return self._purchases().group_by("user_id").agg(pl.len().cast(pl.Int64).alias("purchases"))

    # =========================================================================
    # Revenue and users
    # =========================================================================

    def total_revenue(self) -> float:
        """Sum of purchase prices; 0.0 when there are no purchases"""
        return round(float(self._purchases()["price"].sum() or 0.0), 2)

    def purchasing_users(self) -> int:
        return self._purchases()["user_id"].n_unique()

    def average_order_value(self) -> float:
        """Purchase revenue per distinct purchasing user"""
        users = self.purchasing_users()
        if users == 0:
            raise UndefinedMetricError("average_order_value", "no purchasing users")
        return round(self.total_revenue() / users, 2)

    def total_users(self) -> int:
        """Distinct users across all facts"""
        return self.facts["user_id"].n_unique()

    def total_purchases(self) -> int:
        return len(self._purchases())

    def total_returns(self) -> int:
        return len(self._returns())

    def view_only_users(self) -> int:
        """Distinct users who viewed at least once and never purchased"""
        clean = self.schema.clean_events
        viewers = clean.filter(pl.col("event_type") == VIEW).select("user_id").unique()
        buyers = clean.filter(pl.col("event_type") == PURCHASE).select("user_id").unique()
        return viewers.join(buyers, on="user_id", how="anti").height

    # =========================================================================
    # Product performance
    # =========================================================================

    def top_category_by_revenue(self) -> Optional[CategoryRevenue]:
        """Category with the highest purchase revenue; ties go to the lowest category_id"""
        purchases = self._purchases()
        if purchases.is_empty():
            return None

        row = (
            purchases.group_by("category_id")
            .agg(pl.col("price").sum().alias("revenue"))
            .join(self.schema.dims.categories, on="category_id", how="left")
            .sort(["revenue", "category_id"], descending=[True, False])
            .row(0, named=True)
        )
        return CategoryRevenue(
            category_id=row["category_id"],
            category_code=row["category_code"],
            revenue=round(row["revenue"], 2),
        )

    def top_brands_by_purchases(self, n: Optional[int] = None) -> pl.DataFrame:
        """Brands by purchase count; ties ordered by brand name"""
        n = n if n is not None else self.settings.top_brands_limit
        return (
            self._purchases()
            .join(self.schema.dims.products.select(["product_key", "brand"]), on="product_key", how="left")
            .filter(pl.col("brand").is_not_null())
            .group_by("brand")
            .agg(pl.len().cast(pl.Int64).alias("purchases"))
            .sort(["purchases", "brand"], descending=[True, False])
            .head(n)
        )

    def highest_avg_price_products(
        self,
        min_purchases: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> pl.DataFrame:
        """
        Products by average selling price.

        Only products purchased strictly more than min_purchases times qualify.
        """
        min_purchases = min_purchases if min_purchases is not None else self.settings.min_product_purchases
        limit = limit if limit is not None else self.settings.top_products_limit
        return (
            self._purchases()
            .group_by("product_key")
            .agg(
                pl.len().cast(pl.Int64).alias("purchases"),
                pl.col("price").mean().alias("avg_price"),
            )
            .filter(pl.col("purchases") > min_purchases)
            .join(self.schema.dims.products.select(["product_key", "product_id", "brand"]), on="product_key", how="left")
            .sort(["avg_price", "product_key"], descending=[True, False])
            .head(limit)
            .select(["product_key", "product_id", "brand", "purchases", pl.col("avg_price").round(2)])
        )

    # =========================================================================
    # Time series
    # =========================================================================

    def monthly_purchase_summary(self) -> pl.DataFrame:
        """Purchases and revenue per (year, month), chronological"""
        return (
            self._with_dates(self._purchases())
            .group_by(["year", "month"])
            .agg(
                pl.len().cast(pl.Int64).alias("purchases"),
                pl.col("price").sum().round(2).alias("revenue"),
            )
            .sort(["year", "month"])
        )

    def monthly_revenue(self) -> pl.DataFrame:
        return self.monthly_purchase_summary().select(["year", "month", "revenue"])

    def _best_month(self, column: str) -> Optional[MonthTotal]:
        summary = self.monthly_purchase_summary()
        if summary.is_empty():
            return None
        row = summary.sort(
            [column, "year", "month"], descending=[True, False, False]
        ).row(0, named=True)
        return MonthTotal(year=row["year"], month=row["month"], value=float(row[column]))

    def peak_purchase_month(self) -> Optional[MonthTotal]:
        """Month with the most purchases; ties go to the earliest month"""
        return self._best_month("purchases")

    def top_revenue_month(self) -> Optional[MonthTotal]:
        """Month with the highest purchase revenue; ties go to the earliest month"""
        return self._best_month("revenue")

    def daily_average_revenue_by_month(self) -> pl.DataFrame:
        """Monthly revenue divided by the number of calendar dates of that month in dim_date"""
        days = (
            self.schema.dims.dates.group_by(["year", "month"])
            .agg(pl.col("full_date").n_unique().cast(pl.Int64).alias("days"))
        )
        return (
            self.monthly_revenue()
            .join(days, on=["year", "month"], how="left")
            .with_columns((pl.col("revenue") / pl.col("days")).round(2).alias("daily_avg_revenue"))
            .sort(["year", "month"])
        )

    # =========================================================================
    # Retention
    # =========================================================================

    def repeat_purchase_rate(self) -> float:
        """Share of purchasing users with more than one purchase; 0.0 without purchasers"""
        per_user = self._purchases_per_user()
        if per_user.is_empty():
            return 0.0
        return per_user.filter(pl.col("purchases") > 1).height / per_user.height

    def repeat_customer_percentage(self) -> float:
        """Users with more than one purchase as a percentage of all users in the facts"""
        total = self.total_users()
        if total == 0:
            raise UndefinedMetricError("repeat_customer_percentage", "fact table has no users")
        repeaters = self._purchases_per_user().filter(pl.col("purchases") > 1).height
        return round(repeaters * 100.0 / total, 2)

    def average_days_between_purchases(self) -> float:
        """Mean gap in days between consecutive purchases of the same user, pooled over users"""
        gaps = (
            self._with_dates(self._purchases())
            .sort(["user_id", "full_date", "sales_id"])
            .select(
                (pl.col("full_date") - pl.col("full_date").shift(1).over("user_id"))
                .dt.total_days()
                .alias("days_between")
            )
            .drop_nulls()
        )
        if gaps.is_empty():
            raise UndefinedMetricError("average_days_between_purchases", "no user has two purchases")
        return round(float(gaps["days_between"].mean()), 2)

    def purchase_date_range_by_user(self) -> pl.DataFrame:
        """First and most recent purchase date per user"""
        return (
            self._with_dates(self._purchases())
            .group_by("user_id")
            .agg(
                pl.col("full_date").min().alias("first_purchase"),
                pl.col("full_date").max().alias("most_recent_purchase"),
            )
            .sort("user_id")
        )

    def top_spenders(self, n: Optional[int] = None) -> pl.DataFrame:
        n = n if n is not None else self.settings.top_spenders_limit
        return (
            self._purchases()
            .group_by("user_id")
            .agg(pl.col("price").sum().round(2).alias("total_spent"))
            .sort(["total_spent", "user_id"], descending=[True, False])
            .head(n)
        )

    # =========================================================================
    # Conversion and returns
    # =========================================================================

    def conversion_rate(self) -> float:
        """Purchases per 100 views over the clean event stream"""
        counts = self._clean_event_counts()
        views = counts.get(VIEW, 0)
        if views == 0:
            raise UndefinedMetricError("conversion_rate", "no view events")
        return round(counts.get(PURCHASE, 0) * 100.0 / views, 2)

    def return_rate(self) -> float:
        """Returns per 100 purchases over the clean event stream"""
        counts = self._clean_event_counts()
        purchases = counts.get(PURCHASE, 0)
        if purchases == 0:
            raise UndefinedMetricError("return_rate", "no purchase events")
        return round(counts.get(RETURN, 0) * 100.0 / purchases, 2)

    def monthly_return_rate(self) -> pl.DataFrame:
        """Per month: returns / (returns + purchases) * 100"""
        return (
            self._with_dates(self.facts)
            .group_by(["year", "month"])
            .agg(
                (pl.col("event_type") == RETURN).sum().cast(pl.Int64).alias("returns"),
                (pl.col("event_type") == PURCHASE).sum().cast(pl.Int64).alias("purchases"),
            )
            .with_columns(
                _percentage_expr(pl.col("returns"), pl.col("returns") + pl.col("purchases")).alias("return_rate")
            )
            .sort(["year", "month"])
        )

    def top_returned_categories(self, n: Optional[int] = None) -> pl.DataFrame:
        n = n if n is not None else self.settings.top_categories_limit
        return (
            self._returns()
            .group_by("category_id")
            .agg(pl.len().cast(pl.Int64).alias("returns"))
            .join(self.schema.dims.categories, on="category_id", how="left")
            .sort(["returns", "category_id"], descending=[True, False])
            .head(n)
            .select(["category_id", "category_code", "returns"])
        )

    def purchased_then_returned_users(self) -> List[int]:
        """
        Users who returned a product after first buying it.

        Matched on the natural product_id, so a price change between purchase
        and return does not hide the pair. The legacy SQL report paired on
        product_key instead.
        """
        dated = self._with_dates(self.facts).join(
            self.schema.dims.products.select(["product_key", "product_id"]),
            on="product_key",
            how="left",
        )

        def first_dates(event_type: str) -> pl.DataFrame:
            return (
                dated.filter(pl.col("event_type") == event_type)
                .group_by(["user_id", "product_id"])
                .agg(pl.col("full_date").min().alias(f"first_{event_type}"))
            )

        pairs = first_dates(PURCHASE).join(first_dates(RETURN), on=["user_id", "product_id"], how="inner")
        users = pairs.filter(pl.col(f"first_{PURCHASE}") < pl.col(f"first_{RETURN}"))["user_id"]
        return sorted(users.unique().to_list())

    def funnel(self) -> FunnelResult:
        """Per-user view -> cart -> purchase funnel over the clean event stream"""
        flags = self.schema.clean_events.group_by("user_id").agg(
            (pl.col("event_type") == VIEW).any().alias("viewed"),
            (pl.col("event_type") == CART).any().alias("carted"),
            (pl.col("event_type") == PURCHASE).any().alias("purchased"),
        )
        viewed = int(flags["viewed"].sum())
        carted = int(flags["carted"].sum())
        purchased = int(flags["purchased"].sum())
        return FunnelResult(
            viewed_users=viewed,
            carted_users=carted,
            purchased_users=purchased,
            view_to_cart_pct=_percentage(carted, viewed),
            cart_to_purchase_pct=_percentage(purchased, carted),
            view_to_purchase_pct=_percentage(purchased, viewed),
        )

    # =========================================================================
    # Segmentation
    # =========================================================================

    def top_users_by_aov(self, n: Optional[int] = None) -> pl.DataFrame:
        n = n if n is not None else self.settings.segment_limit
        return (
            self._purchases()
            .group_by("user_id")
            .agg(pl.col("price").mean().round(2).alias("aov"))
            .sort(["aov", "user_id"], descending=[True, False])
            .head(n)
        )

    def high_value_low_return_users(
        self,
        min_revenue: Optional[float] = None,
        max_return_ratio: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> pl.DataFrame:
        """Users with purchase total above min_revenue and few returns"""
        min_revenue = min_revenue if min_revenue is not None else self.settings.high_value_revenue_threshold
        max_return_ratio = (
            max_return_ratio if max_return_ratio is not None else self.settings.high_value_max_return_ratio
        )
        limit = limit if limit is not None else self.settings.segment_limit

        is_purchase = pl.col("event_type") == PURCHASE
        is_return = pl.col("event_type") == RETURN
        events = pl.col("purchase_count") + pl.col("return_count")

        return (
            self.facts.group_by("user_id")
            .agg(
                pl.when(is_purchase).then(pl.col("price")).otherwise(0.0).sum().round(2).alias("purchase_total"),
                is_purchase.sum().cast(pl.Int64).alias("purchase_count"),
                is_return.sum().cast(pl.Int64).alias("return_count"),
            )
            .with_columns(_percentage_expr(pl.col("return_count"), events).alias("return_rate"))
            .filter(
                (pl.col("purchase_total") > min_revenue)
                & (
                    (pl.col("return_count") == 0)
                    | (pl.col("return_count") / events < max_return_ratio)
                )
            )
            .sort(["purchase_total", "user_id"], descending=[True, False])
            .head(limit)
        )

    # =========================================================================
    # Dashboard
    # =========================================================================

    def _defined_or_none(self, metric) -> Optional[float]:
        try:
            return metric()
        except UndefinedMetricError as e:
            logger.info("Metric undefined", metric=e.metric, reason=e.reason)
            return None

    def dashboard_summary(self) -> DashboardSummary:
        """Headline counters and rates for the final dashboard"""
        summary = DashboardSummary(
            total_users=self.total_users(),
            total_revenue=self.total_revenue(),
            total_purchases=self.total_purchases(),
            total_returns=self.total_returns(),
            purchasing_users=self.purchasing_users(),
            average_order_value=self._defined_or_none(self.average_order_value),
            conversion_rate=self._defined_or_none(self.conversion_rate),
            return_rate=self._defined_or_none(self.return_rate),
            repeat_purchase_rate=self.repeat_purchase_rate(),
            top_revenue_month=self.top_revenue_month(),
        )
        logger.info("Computed dashboard summary", total_users=summary.total_users, total_revenue=summary.total_revenue)
        return summary
