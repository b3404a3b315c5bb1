"""
Synthetic Clickstream Generator

Generates realistic raw e-commerce clickstream events for testing and
development, in the column layout of the public "eCommerce behavior" exports:

    event_time, event_type, product_id, category_id, category_code, brand,
    price, user_id, user_session

Includes:
- A product catalog across categories, with some unbranded and uncategorized items
- Sessions of views, carts and purchases per user
- Returns after purchases
- Optional noise: unknown event types, missing ids and duplicate rows
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Union
import random

import numpy as np
import polars as pl
import structlog
from faker import Faker

logger = structlog.get_logger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

CATEGORIES = [
    ("electronics", ["smartphone", "audio.headphone", "video.tv", "clocks"]),
    ("appliances", ["kitchen.washer", "kitchen.refrigerators", "environment.vacuum"]),
    ("computers", ["notebook", "desktop", "peripherals.mouse"]),
    ("apparel", ["shoes", "shirt", "jacket"]),
    ("furniture", ["living_room.sofa", "bedroom.bed"]),
]

BRANDS = ["samsung", "apple", "xiaomi", "huawei", "lg", "sony", "bosch", "lenovo", "acer", "nike"]

EVENT_TIME_FORMAT = "%Y-%m-%d %H:%M:%S UTC"

DEFAULT_START = datetime(2021, 11, 1)

UNKNOWN_EVENT_TYPES = ["remove_from_cart", "wishlist", "page_view"]


# =============================================================================
# GENERATOR
# =============================================================================

class ClickstreamGenerator:
    """
    Seeded generator of raw clickstream events.

    The same seed always yields the same frame.

    Example:
        generator = ClickstreamGenerator(seed=7)
        raw_df = generator.inject_noise(generator.generate(n_users=200))
    """

    def __init__(self, seed: int = 42):
        self.seed = seed
        self.rng = np.random.default_rng(seed)
        self.random = random.Random(seed)
        self.fake = Faker()
        self.fake.seed_instance(seed)

    def _catalog(self, n_products: int) -> List[dict]:
        """Products with category, brand and list price"""
        category_codes = [f"{root}.{leaf}" for root, leaves in CATEGORIES for leaf in leaves]
        category_ids = {
            code: 2053013552000000000 + i * 1000003 for i, code in enumerate(category_codes)
        }

        products = []
        for i in range(n_products):
            code = self.random.choice(category_codes)
            products.append({
                "product_id": 1000000 + i,
                "category_id": category_ids[code],
                # ~10% of products have no category code or brand in the exports
                "category_code": code if self.random.random() > 0.1 else None,
                "brand": self.random.choice(BRANDS) if self.random.random() > 0.1 else None,
                "price": round(float(self.rng.lognormal(mean=4.5, sigma=0.9)), 2),
            })
        return products

    def _event(
        self,
        event_time: datetime,
        event_type: str,
        product: dict,
        user_id: int,
        session: str,
        price: float,
    ) -> dict:
        return {
            "event_time": event_time.strftime(EVENT_TIME_FORMAT),
            "event_type": event_type,
            "product_id": product["product_id"],
            "category_id": product["category_id"],
            "category_code": product["category_code"],
            "brand": product["brand"],
            "price": price,
            "user_id": user_id,
            "user_session": session,
        }

    def generate(
        self,
        n_users: int = 100,
        n_products: int = 50,
        days: int = 60,
        start: Optional[datetime] = None,
        return_probability: float = 0.1,
    ) -> pl.DataFrame:
        """
        Generate raw events for n_users over a window of days.

        Returns:
            Raw event frame ordered by event_time
        """
        start = start or DEFAULT_START
        products = self._catalog(n_products)
        events = []

        for user_index in range(n_users):
            user_id = 500000000 + user_index
            n_sessions = int(self.rng.poisson(2.0)) + 1

            for _ in range(n_sessions):
                session = self.fake.uuid4()
                current = start + timedelta(
                    days=int(self.rng.integers(0, days)),
                    seconds=int(self.rng.integers(0, 86400)),
                )
                n_views = int(self.rng.choice([1, 2, 3, 4, 5, 6], p=[0.25, 0.25, 0.2, 0.15, 0.1, 0.05]))

                for _ in range(n_views):
                    product = self.random.choice(products)
                    # Occasional discount: the same product observed at another price
                    price = product["price"]
                    if self.random.random() < 0.1:
                        price = round(price * 0.9, 2)

                    events.append(self._event(current, "view", product, user_id, session, price))
                    current += timedelta(seconds=int(self.rng.integers(10, 300)))

                    if self.random.random() < 0.3:
                        events.append(self._event(current, "cart", product, user_id, session, price))
                        current += timedelta(seconds=int(self.rng.integers(10, 300)))

                        if self.random.random() < 0.5:
                            events.append(self._event(current, "purchase", product, user_id, session, price))

                            if self.random.random() < return_probability:
                                returned_at = current + timedelta(days=int(self.rng.integers(1, 15)))
                                events.append(self._event(returned_at, "return", product, user_id, session, price))

                            current += timedelta(seconds=int(self.rng.integers(10, 300)))

        df = pl.DataFrame(
            events,
            schema={
                "event_time": pl.Utf8,
                "event_type": pl.Utf8,
                "product_id": pl.Int64,
                "category_id": pl.Int64,
                "category_code": pl.Utf8,
                "brand": pl.Utf8,
                "price": pl.Float64,
                "user_id": pl.Int64,
                "user_session": pl.Utf8,
            },
        ).sort("event_time", maintain_order=True)

        logger.info("Generated clickstream", users=n_users, products=n_products, events=len(df))
        return df

    def inject_noise(self, df: pl.DataFrame, rate: float = 0.05) -> pl.DataFrame:
        """
        Append dirty rows the sanitizer must reject or the pipeline must absorb.

        Adds, each at roughly rate * len(df) rows: unknown event types, missing
        user_id, missing product_id and exact duplicates.
        """
        n = int(len(df) * rate)
        if n == 0 or df.is_empty():
            return df

        def sample() -> pl.DataFrame:
            return df[self.rng.integers(0, len(df), size=n).tolist()]

        unknown = sample().with_columns(
            pl.Series("event_type", [self.random.choice(UNKNOWN_EVENT_TYPES) for _ in range(n)])
        )
        no_user = sample().with_columns(pl.lit(None, dtype=pl.Int64).alias("user_id"))
        no_product = sample().with_columns(pl.lit(None, dtype=pl.Int64).alias("product_id"))
        duplicates = sample()

        noisy = pl.concat([df, unknown, no_user, no_product, duplicates])
        logger.info("Injected noise", rows_added=len(noisy) - len(df))
        return noisy

    def write_csv(self, path: Union[str, Path], df: Optional[pl.DataFrame] = None) -> Path:
        """Write df (or a freshly generated default batch) as a raw event CSV"""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        if df is None:
            df = self.inject_noise(self.generate())
        df.write_csv(path)
        logger.info("Written raw events", path=str(path), rows=len(df))
        return path
