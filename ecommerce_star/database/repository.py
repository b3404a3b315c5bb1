"""
Star Schema Repository

Full-refresh persistence of a built StarSchema: drop and recreate the star
tables, then bulk insert dimensions before facts in chunks.
"""

from typing import Any, Dict, List, Optional, Type

import polars as pl
import structlog
from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncEngine

from ecommerce_star.config import get_settings
from ecommerce_star.database.models import STAR_SCHEMA_MODELS, Base
from ecommerce_star.transformation.transformers import StarSchema

logger = structlog.get_logger(__name__)


class StarSchemaRepository:
    """
    Writes star schema tables to a relational database.

    Example:
        engine = await init_database()
        repository = StarSchemaRepository(engine)
        counts = await repository.save(schema)
    """

    def __init__(self, engine: AsyncEngine, chunk_size: Optional[int] = None):
        self.engine = engine
        self.chunk_size = chunk_size or get_settings().database.insert_chunk_size

    async def reset(self) -> None:
        """Drop and recreate every star schema table"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Star schema tables recreated")

    def _records(self, df: pl.DataFrame, model: Type[Base]) -> List[Dict[str, Any]]:
        columns = [c.name for c in model.__table__.columns]
        return df.select(columns).to_dicts()

    async def save(self, schema: StarSchema) -> Dict[str, int]:
        """
        Replace the stored star schema with this one.

        Returns:
            Rows inserted per table
        """
        await self.reset()

        tables = schema.tables()
        inserted: Dict[str, int] = {}

        async with self.engine.begin() as conn:
            for name, model in STAR_SCHEMA_MODELS.items():
                records = self._records(tables[name], model)
                for i in range(0, len(records), self.chunk_size):
                    chunk = records[i:i + self.chunk_size]
                    await conn.execute(insert(model), chunk)
                inserted[name] = len(records)
                logger.info("Inserted table", table=name, rows=len(records))

        logger.info("Star schema persisted", **inserted)
        return inserted

    async def count_rows(self, model: Type[Base]) -> int:
        """Row count of one star schema table"""
        async with self.engine.connect() as conn:
            result = await conn.execute(select(func.count()).select_from(model))
            return int(result.scalar_one())
