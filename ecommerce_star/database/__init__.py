"""
Database Module
"""
from .connection import init_database, close_database, get_db, get_engine
from .models import Base, DimCategory, DimDate, DimProduct, DimSession, DimUser, FactSale
from .repository import StarSchemaRepository

__all__ = [
    "init_database",
    "close_database",
    "get_db",
    "get_engine",
    "Base",
    "DimCategory",
    "DimDate",
    "DimProduct",
    "DimSession",
    "DimUser",
    "FactSale",
    "StarSchemaRepository",
]
