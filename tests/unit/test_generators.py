"""
Unit Tests - Synthetic Clickstream Generator
"""
import polars as pl

from ecommerce_star.data.generators import ClickstreamGenerator
from ecommerce_star.ingestion.event_source import RawEventSource
from ecommerce_star.transformation import StarSchemaTransformer


class TestClickstreamGenerator:
    """Tests for ClickstreamGenerator"""

    def test_same_seed_same_frame(self):
        first = ClickstreamGenerator(seed=7).generate(n_users=20, n_products=10)
        second = ClickstreamGenerator(seed=7).generate(n_users=20, n_products=10)

        assert first.equals(second)

    def test_export_layout(self):
        df = ClickstreamGenerator(seed=1).generate(n_users=10, n_products=5)

        assert df.columns == [
            "event_time", "event_type", "product_id", "category_id",
            "category_code", "brand", "price", "user_id", "user_session",
        ]
        assert df["event_time"].str.ends_with(" UTC").all()
        assert set(df["event_type"].unique()) <= {"view", "cart", "purchase", "return"}

    def test_noise_row_count(self):
        generator = ClickstreamGenerator(seed=3)
        df = generator.generate(n_users=30, n_products=10)
        n = int(len(df) * 0.1)

        noisy = generator.inject_noise(df, rate=0.1)

        assert len(noisy) == len(df) + 4 * n
        assert noisy["user_id"].null_count() == n

    def test_noise_on_empty_frame(self):
        generator = ClickstreamGenerator()
        empty = generator.generate(n_users=0)

        assert generator.inject_noise(empty).is_empty()

    def test_pipeline_over_generated_data(self, pipeline_settings):
        generator = ClickstreamGenerator(seed=11)
        raw = generator.inject_noise(generator.generate(n_users=50, n_products=20), rate=0.05)

        schema = StarSchemaTransformer(pipeline_settings).run_source(RawEventSource.from_frame(raw))

        fact_events = schema.clean_events.filter(pl.col("event_type").is_in(["purchase", "return"]))
        assert schema.integrity.is_clean
        assert schema.assembly.report.unresolved == 0
        assert len(schema.facts) == len(fact_events)
        assert schema.clean_events["user_id"].null_count() == 0

    def test_write_csv_roundtrips_through_source(self, tmp_path):
        generator = ClickstreamGenerator(seed=5)
        df = generator.generate(n_users=10, n_products=5)

        path = generator.write_csv(tmp_path / "raw" / "events.csv", df)
        loaded = RawEventSource.from_path(path).load()

        assert len(loaded) == len(df)
        assert "session_id" in loaded.columns
