"""
Test Suite Configuration
"""
from typing import Any, Callable, Dict, List, Optional

import pytest
import polars as pl

from ecommerce_star.config import PipelineSettings, Settings
from ecommerce_star.ingestion.event_source import RawEventSource
from ecommerce_star.transformation.transformers import StarSchema, StarSchemaTransformer


def make_event(
    event_type: str,
    user_id: Optional[int] = 1,
    product_id: Optional[int] = 100,
    price: Optional[float] = 10.0,
    day: int = 1,
    hour: int = 10,
    brand: Optional[str] = "acme",
    category_code: Optional[str] = "electronics.smartphone",
    category_id: Optional[int] = 2053013555631882655,
    session_id: Optional[str] = "s1",
    month: int = 11,
) -> Dict[str, Any]:
    """One raw event in the export layout (user_session column, UTC suffix)"""
    return {
        "event_time": f"2021-{month:02d}-{day:02d} {hour:02d}:00:00 UTC",
        "event_type": event_type,
        "product_id": product_id,
        "category_id": category_id,
        "category_code": category_code,
        "brand": brand,
        "price": price,
        "user_id": user_id,
        "user_session": session_id,
    }


def load_records(records: List[Dict[str, Any]]) -> pl.DataFrame:
    return RawEventSource.from_records(records).load()


@pytest.fixture
def event():
    """Factory for raw event records"""
    return make_event


@pytest.fixture
def load():
    """Coerce raw event records into a raw event frame"""
    return load_records


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
def pipeline_settings() -> PipelineSettings:
    return PipelineSettings()


@pytest.fixture
def sample_records() -> List[Dict[str, Any]]:
    """
    Small consistent clickstream plus three dirty rows.

    user 1: views, carts and buys product 100 on day 1, buys product 200 on
            day 3, returns product 100 on day 5
    user 2: views product 200, buys product 300 (no brand, no category) on day 2
    user 3: only views
    """
    sofa = {"brand": "beta", "category_code": "furniture.living_room.sofa", "category_id": 2053013558920217191}
    unbranded = {"brand": None, "category_code": None, "category_id": 2053013553341792533}
    return [
        make_event("view", user_id=1, product_id=100, day=1, session_id="s1"),
        make_event("cart", user_id=1, product_id=100, day=1, hour=11, session_id="s1"),
        make_event("purchase", user_id=1, product_id=100, day=1, hour=12, session_id="s1"),
        make_event("view", user_id=2, product_id=200, price=20.0, day=2, session_id="s3", **sofa),
        make_event("purchase", user_id=2, product_id=300, price=30.0, day=2, hour=12, session_id="s3", **unbranded),
        make_event("purchase", user_id=1, product_id=200, price=20.0, day=3, session_id="s2", **sofa),
        make_event("view", user_id=3, product_id=100, day=4, session_id="s4"),
        make_event("return", user_id=1, product_id=100, day=5, session_id="s2"),
        # dirty rows
        make_event("wishlist", user_id=3, product_id=100, day=4, session_id="s4"),
        make_event("purchase", user_id=None, product_id=100, day=4, session_id="s4"),
        make_event("view", user_id=3, product_id=None, day=4, session_id="s4"),
    ]


@pytest.fixture
def raw_events_df(sample_records) -> pl.DataFrame:
    """Coerced raw events of sample_records"""
    return load_records(sample_records)


@pytest.fixture
def clean_events_df(raw_events_df) -> pl.DataFrame:
    from ecommerce_star.transformation.sanitizer import sanitize_events

    return sanitize_events(raw_events_df)


@pytest.fixture
def build_schema(pipeline_settings) -> Callable[[List[Dict[str, Any]]], StarSchema]:
    """Factory building a star schema from raw records"""
    def build(records: List[Dict[str, Any]], **overrides) -> StarSchema:
        settings = pipeline_settings.model_copy(update=overrides) if overrides else pipeline_settings
        return StarSchemaTransformer(settings).run(load_records(records))

    return build


@pytest.fixture
def star_schema(build_schema, sample_records) -> StarSchema:
    return build_schema(sample_records)
