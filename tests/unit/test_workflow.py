"""
Unit Tests - Star Schema ETL Flow
"""
import pytest

pytest.importorskip("prefect")

from prefect.testing.utilities import prefect_test_harness

from ecommerce_star.data.generators import ClickstreamGenerator
from workflows.star_etl import star_schema_etl


@pytest.fixture(scope="module", autouse=True)
def prefect_backend():
    with prefect_test_harness():
        yield


@pytest.fixture
def raw_csv(tmp_path):
    generator = ClickstreamGenerator(seed=21)
    return generator.write_csv(tmp_path / "events.csv", generator.generate(n_users=15, n_products=8))


class TestStarSchemaFlow:
    """Tests for the star_schema_etl flow"""

    async def test_flow_builds_and_writes(self, raw_csv, tmp_path):
        results = await star_schema_etl(source_path=str(raw_csv), output_dir=str(tmp_path / "curated"))

        assert results["status"] == "success"
        assert results["integrity"]["is_clean"] is True
        assert set(results["written"]) >= {"fact_sales", "dim_users"}
        assert results["dashboard"]["total_revenue"] >= 0

    async def test_flow_persists(self, raw_csv, tmp_path):
        pytest.importorskip("aiosqlite")

        results = await star_schema_etl(
            source_path=str(raw_csv),
            persist=True,
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'star.db'}",
        )

        assert results["persisted"]["fact_sales"] == results["pipeline"]["fact_rows"]
