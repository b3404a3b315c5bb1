"""
Unit Tests - Metrics Engine
"""
from datetime import date

import pytest

from ecommerce_star.analytics.metrics import MetricsEngine, MonthTotal
from ecommerce_star.errors import UndefinedMetricError


@pytest.fixture
def metrics(star_schema) -> MetricsEngine:
    return MetricsEngine(star_schema)


class TestRevenueMetrics:
    """Revenue and user counters"""

    def test_revenue_and_aov(self, metrics):
        assert metrics.total_revenue() == 60.0
        assert metrics.purchasing_users() == 2
        assert metrics.average_order_value() == 30.0

    def test_revenue_scenario(self, build_schema, event):
        schema = build_schema([
            event("purchase", user_id=1, price=10.0, session_id="a"),
            event("purchase", user_id=1, price=20.0, product_id=101, session_id="a"),
            event("purchase", user_id=2, price=30.0, product_id=102, session_id="b"),
        ])
        engine = MetricsEngine(schema)

        assert engine.total_revenue() == 60.0
        assert engine.average_order_value() == 30.0

    def test_counters(self, metrics):
        assert metrics.total_users() == 2
        assert metrics.total_purchases() == 3
        assert metrics.total_returns() == 1
        assert metrics.view_only_users() == 1

    def test_no_purchases(self, build_schema, event):
        engine = MetricsEngine(build_schema([event("view")]))

        assert engine.total_revenue() == 0.0
        assert engine.purchasing_users() == 0
        assert engine.top_category_by_revenue() is None
        assert engine.peak_purchase_month() is None
        with pytest.raises(UndefinedMetricError) as exc_info:
            engine.average_order_value()
        assert exc_info.value.metric == "average_order_value"

    def test_undefined_metric_is_zero_division(self, build_schema, event):
        engine = MetricsEngine(build_schema([event("view")]))

        with pytest.raises(ZeroDivisionError):
            engine.return_rate()


class TestProductMetrics:
    """Product performance"""

    def test_top_category_by_revenue(self, metrics):
        top = metrics.top_category_by_revenue()

        assert top.category_code is None
        assert top.revenue == 30.0

    def test_top_category_tie_goes_to_lowest_id(self, build_schema, event):
        schema = build_schema([
            event("purchase", category_code="a.first", price=10.0),
            event("purchase", category_code="b.second", product_id=101, price=10.0, hour=11),
        ])

        top = MetricsEngine(schema).top_category_by_revenue()

        assert top.category_id == 1
        assert top.category_code == "a.first"

    def test_top_brands(self, metrics):
        brands = metrics.top_brands_by_purchases()

        assert brands["brand"].to_list() == ["acme", "beta"]
        assert brands["purchases"].to_list() == [1, 1]

    def test_top_brands_limit(self, metrics):
        assert len(metrics.top_brands_by_purchases(1)) == 1

    def test_highest_avg_price_strict_threshold(self, build_schema, event):
        five = [event("purchase", product_id=1, price=100.0, hour=h) for h in range(5)]
        six = [event("purchase", product_id=2, price=50.0, brand="beta", hour=h) for h in range(6)]
        engine = MetricsEngine(build_schema(five + six))

        result = engine.highest_avg_price_products()

        assert result["product_id"].to_list() == [2]
        assert result["purchases"].to_list() == [6]
        assert result["avg_price"].to_list() == [50.0]

    def test_highest_avg_price_has_own_limit(self, build_schema, event):
        records = [
            event("purchase", product_id=pid, brand=f"b{pid}", price=10.0 * pid, hour=h)
            for pid in (1, 2, 3)
            for h in range(6)
        ]
        engine = MetricsEngine(build_schema(records, top_products_limit=2, top_brands_limit=1))

        assert engine.highest_avg_price_products()["product_id"].to_list() == [3, 2]
        assert len(engine.top_brands_by_purchases()) == 1


class TestTimeSeriesMetrics:
    """Monthly trends"""

    def test_monthly_revenue(self, metrics):
        monthly = metrics.monthly_revenue()

        assert monthly.rows() == [(2021, 11, 60.0)]

    def test_monthly_purchase_summary(self, build_schema, event):
        schema = build_schema([
            event("purchase", price=10.0, month=10),
            event("purchase", price=20.0, month=11),
            event("purchase", price=5.0, month=11, hour=11),
        ])

        summary = MetricsEngine(schema).monthly_purchase_summary()

        assert summary.rows() == [(2021, 10, 1, 10.0), (2021, 11, 2, 25.0)]

    def test_daily_average_is_one_row_per_month(self, metrics):
        daily = metrics.daily_average_revenue_by_month()

        assert len(daily) == 1
        row = daily.row(0, named=True)
        assert row["days"] == 5
        assert row["daily_avg_revenue"] == 12.0

    def test_best_months(self, build_schema, event):
        schema = build_schema([
            event("purchase", price=100.0, month=10),
            event("purchase", price=10.0, month=11),
            event("purchase", price=10.0, month=11, hour=11),
        ])
        engine = MetricsEngine(schema)

        assert engine.peak_purchase_month() == MonthTotal(year=2021, month=11, value=2.0)
        assert engine.top_revenue_month() == MonthTotal(year=2021, month=10, value=100.0)


class TestRetentionMetrics:
    """Repeat purchases and purchase gaps"""

    def test_repeat_purchase_rate_scenario(self, build_schema, event):
        records = [event("purchase", user_id=1, day=d) for d in (1, 2, 3)]
        records.append(event("purchase", user_id=2, day=1, session_id="s2"))

        assert MetricsEngine(build_schema(records)).repeat_purchase_rate() == 0.5

    def test_repeat_purchase_rate_without_purchasers(self, build_schema, event):
        assert MetricsEngine(build_schema([event("view")])).repeat_purchase_rate() == 0.0

    def test_repeat_customer_percentage(self, metrics):
        assert metrics.repeat_customer_percentage() == 50.0

    def test_average_days_between_purchases(self, metrics):
        assert metrics.average_days_between_purchases() == 2.0

    def test_average_days_pooled_over_users(self, build_schema, event):
        records = [
            event("purchase", user_id=1, day=1),
            event("purchase", user_id=1, day=2),
            event("purchase", user_id=1, day=3),
            event("purchase", user_id=2, day=1, session_id="s2"),
            event("purchase", user_id=2, day=11, session_id="s2"),
        ]

        # gaps 1, 1, 10
        assert MetricsEngine(build_schema(records)).average_days_between_purchases() == 4.0

    def test_average_days_undefined(self, build_schema, event):
        engine = MetricsEngine(build_schema([event("purchase", user_id=1), event("purchase", user_id=2)]))

        with pytest.raises(UndefinedMetricError):
            engine.average_days_between_purchases()

    def test_purchase_date_range_by_user(self, metrics):
        ranges = metrics.purchase_date_range_by_user()

        assert ranges.rows() == [
            (1, date(2021, 11, 1), date(2021, 11, 3)),
            (2, date(2021, 11, 2), date(2021, 11, 2)),
        ]

    def test_top_spenders_tie_break(self, metrics):
        spenders = metrics.top_spenders()

        assert spenders["user_id"].to_list() == [1, 2]
        assert spenders["total_spent"].to_list() == [30.0, 30.0]


class TestConversionAndReturns:
    """Rates over clean events and return reconciliation"""

    def test_conversion_scenario(self, build_schema, event):
        records = [event("view", user_id=u, hour=1) for u in range(100)]
        records += [event("purchase", user_id=u, hour=2) for u in range(10)]

        assert MetricsEngine(build_schema(records)).conversion_rate() == 10.0

    def test_conversion_undefined_without_views(self, build_schema, event):
        with pytest.raises(UndefinedMetricError):
            MetricsEngine(build_schema([event("purchase")])).conversion_rate()

    def test_rates_over_sample(self, metrics):
        assert metrics.conversion_rate() == 100.0
        assert metrics.return_rate() == 33.33

    def test_monthly_return_rate(self, metrics):
        row = metrics.monthly_return_rate().row(0, named=True)

        assert (row["returns"], row["purchases"]) == (1, 3)
        assert row["return_rate"] == 25.0

    def test_top_returned_categories(self, metrics):
        top = metrics.top_returned_categories()

        assert top["category_code"].to_list() == ["electronics.smartphone"]
        assert top["returns"].to_list() == [1]

    def test_return_after_purchase_included(self, build_schema, event):
        schema = build_schema([
            event("purchase", user_id=7, product_id=5, day=1),
            event("return", user_id=7, product_id=5, day=5),
        ])

        assert MetricsEngine(schema).purchased_then_returned_users() == [7]

    def test_return_before_purchase_excluded(self, build_schema, event):
        schema = build_schema([
            event("return", user_id=7, product_id=5, day=1),
            event("purchase", user_id=7, product_id=5, day=5),
        ])

        assert MetricsEngine(schema).purchased_then_returned_users() == []

    def test_return_matches_product_across_prices(self, build_schema, event):
        schema = build_schema([
            event("purchase", user_id=7, product_id=5, price=10.0, day=1),
            event("return", user_id=7, product_id=5, price=9.0, day=5),
        ])

        assert MetricsEngine(schema).purchased_then_returned_users() == [7]

    def test_funnel(self, metrics):
        funnel = metrics.funnel()

        assert (funnel.viewed_users, funnel.carted_users, funnel.purchased_users) == (3, 1, 2)
        assert funnel.view_to_cart_pct == 33.33
        assert funnel.cart_to_purchase_pct == 200.0
        assert funnel.view_to_purchase_pct == 66.67

    def test_funnel_without_carts(self, build_schema, event):
        funnel = MetricsEngine(build_schema([event("view"), event("purchase", hour=11)])).funnel()

        assert funnel.cart_to_purchase_pct is None
        assert funnel.view_to_purchase_pct == 100.0


class TestSegmentation:
    """Customer segmentation"""

    def test_top_users_by_aov(self, metrics):
        aov = metrics.top_users_by_aov()

        assert aov.rows() == [(2, 30.0), (1, 15.0)]

    def test_high_value_low_return_users(self, metrics):
        users = metrics.high_value_low_return_users(min_revenue=15)

        assert users["user_id"].to_list() == [2]
        assert users["return_rate"].to_list() == [0.0]

    def test_high_value_allows_higher_ratio(self, metrics):
        users = metrics.high_value_low_return_users(min_revenue=15, max_return_ratio=0.5)

        row = users.filter(users["user_id"] == 1).row(0, named=True)
        assert row["purchase_total"] == 30.0
        assert row["purchase_count"] == 2
        assert row["return_count"] == 1
        assert row["return_rate"] == 33.33

    def test_default_threshold_excludes_small_spenders(self, metrics):
        assert metrics.high_value_low_return_users().is_empty()


class TestDashboardSummary:
    """Dashboard bundle"""

    def test_summary(self, metrics):
        summary = metrics.dashboard_summary()

        assert summary.total_users == 2
        assert summary.total_revenue == 60.0
        assert summary.average_order_value == 30.0
        assert summary.return_rate == 33.33
        assert summary.top_revenue_month == MonthTotal(year=2021, month=11, value=60.0)

    def test_undefined_rates_become_none(self, build_schema, event):
        summary = MetricsEngine(build_schema([event("view")])).dashboard_summary()

        assert summary.average_order_value is None
        assert summary.return_rate is None
        assert summary.conversion_rate == 0.0
        assert summary.to_dict()["top_revenue_month"] is None
