"""
Database Models - Star Schema Design

Relational mirror of the in-memory star schema. The constraints follow the
dimensional model: every dimension is unique on its natural key and every
fact_sales foreign key references its dimension.

Fact Tables:
- FactSale: purchase and return events

Dimension Tables:
- DimUser: distinct users
- DimProduct: products keyed by (product_id, brand, price)
- DimCategory: distinct category codes
- DimSession: distinct session tokens
- DimDate: calendar attributes of every event date
"""

from datetime import date
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# DIMENSION TABLES
# =============================================================================

class DimUser(Base):
    """User Dimension Table"""
    __tablename__ = "dim_users"

    user_key: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)


class DimProduct(Base):
    """
    Product Dimension Table

    One row per product natural key. Under the default key strategy the same
    product_id observed at two prices is two rows.
    """
    __tablename__ = "dim_products"

    product_key: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    product_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    brand: Mapped[Optional[str]] = mapped_column(String(100))
    price: Mapped[Optional[float]] = mapped_column(Numeric(10, 2, asdecimal=False))

    __table_args__ = (
        UniqueConstraint("product_id", "brand", "price", name="uq_dim_products_natural_key"),
        Index("ix_dim_products_brand", "brand"),
    )


class DimCategory(Base):
    """Category Dimension Table"""
    __tablename__ = "dim_category"

    category_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    category_code: Mapped[Optional[str]] = mapped_column(String(255), unique=True)


class DimSession(Base):
    """Session Dimension Table; the session token is its own key"""
    __tablename__ = "dim_sessions"

    session_id: Mapped[str] = mapped_column(String(100), primary_key=True)


class DimDate(Base):
    """
    Date Dimension Table

    One row per distinct event date. week is the ISO-8601 week number.
    """
    __tablename__ = "dim_date"

    date_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    full_date: Mapped[date] = mapped_column(Date, unique=True, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    day: Mapped[int] = mapped_column(Integer, nullable=False)
    week: Mapped[int] = mapped_column(Integer, nullable=False)
    weekday_name: Mapped[str] = mapped_column(String(20), nullable=False)
    is_weekend: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (
        Index("ix_dim_date_year_month", "year", "month"),
    )


# =============================================================================
# FACT TABLES
# =============================================================================

class FactSale(Base):
    """
    Sales Fact Table

    Grain: one purchase or return event.
    """
    __tablename__ = "fact_sales"

    sales_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)

    # Dimension foreign keys
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("dim_users.user_id"), nullable=False
    )
    product_key: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("dim_products.product_key"), nullable=False
    )
    category_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("dim_category.category_id"), nullable=False
    )
    session_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("dim_sessions.session_id"), nullable=False
    )
    date_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("dim_date.date_id"), nullable=False
    )

    # Measures
    price: Mapped[Optional[float]] = mapped_column(Numeric(10, 2, asdecimal=False))
    event_type: Mapped[str] = mapped_column(String(20), nullable=False)

    __table_args__ = (
        Index("ix_fact_sales_user", "user_id"),
        Index("ix_fact_sales_date", "date_id"),
        Index("ix_fact_sales_event_type", "event_type"),
    )


# Insert order respecting the foreign keys, keyed by star schema table name
STAR_SCHEMA_MODELS = {
    "dim_users": DimUser,
    "dim_products": DimProduct,
    "dim_category": DimCategory,
    "dim_sessions": DimSession,
    "dim_date": DimDate,
    "fact_sales": FactSale,
}
