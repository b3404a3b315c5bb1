"""
Unit Tests - Star Schema Repository
"""
import pytest
from sqlalchemy import select

pytest.importorskip("aiosqlite")

from ecommerce_star.database import (
    DimCategory,
    DimProduct,
    FactSale,
    StarSchemaRepository,
    close_database,
    get_db,
    get_engine,
    init_database,
)


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite engine, closed after each test"""
    engine = await init_database(f"sqlite+aiosqlite:///{tmp_path / 'star.db'}")
    yield engine
    await close_database()


class TestConnection:
    """Tests for engine lifecycle"""

    async def test_get_engine_after_init(self, engine):
        assert get_engine() is engine

    async def test_get_engine_before_init(self):
        with pytest.raises(RuntimeError):
            get_engine()

    async def test_get_db_requires_init(self):
        with pytest.raises(RuntimeError):
            async with get_db():
                pass


class TestStarSchemaRepository:
    """Tests for StarSchemaRepository"""

    async def test_save_inserts_every_table(self, engine, star_schema):
        counts = await StarSchemaRepository(engine).save(star_schema)

        assert counts == {**star_schema.dims.row_counts(), "fact_sales": 4}

    async def test_count_rows(self, engine, star_schema):
        repository = StarSchemaRepository(engine, chunk_size=2)
        await repository.save(star_schema)

        assert await repository.count_rows(FactSale) == 4
        assert await repository.count_rows(DimProduct) == 3

    async def test_save_is_full_refresh(self, engine, star_schema):
        repository = StarSchemaRepository(engine)

        await repository.save(star_schema)
        await repository.save(star_schema)

        assert await repository.count_rows(FactSale) == 4
        assert await repository.count_rows(DimCategory) == 3

    async def test_rows_readable_through_session(self, engine, star_schema):
        await StarSchemaRepository(engine).save(star_schema)

        async with get_db() as db:
            result = await db.execute(select(FactSale).order_by(FactSale.sales_id))
            facts = result.scalars().all()

        assert [f.price for f in facts] == [10.0, 30.0, 20.0, 10.0]
        assert facts[-1].event_type == "return"

    async def test_null_category_code_persisted(self, engine, star_schema):
        await StarSchemaRepository(engine).save(star_schema)

        async with get_db() as db:
            result = await db.execute(select(DimCategory).where(DimCategory.category_code.is_(None)))
            assert len(result.scalars().all()) == 1
