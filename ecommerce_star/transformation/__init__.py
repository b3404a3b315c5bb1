"""
Star Schema Transformation Module
"""
from .sanitizer import EventSanitizer, SanitizeStats, sanitize_events
from .dimensions import (
    DimensionBuilder,
    ProductKeyStrategy,
    StarDimensions,
    SurrogateKeyIndex,
    get_product_key_strategy,
)
from .facts import AssemblyReport, FactAssembler, FactAssembly, Resolved, Unresolved, assemble_facts
from .transformers import PipelineResult, StarSchema, StarSchemaTransformer, write_parquet

__all__ = [
    "EventSanitizer",
    "SanitizeStats",
    "sanitize_events",
    "DimensionBuilder",
    "ProductKeyStrategy",
    "StarDimensions",
    "SurrogateKeyIndex",
    "get_product_key_strategy",
    "AssemblyReport",
    "FactAssembler",
    "FactAssembly",
    "Resolved",
    "Unresolved",
    "assemble_facts",
    "PipelineResult",
    "StarSchema",
    "StarSchemaTransformer",
    "write_parquet",
]
