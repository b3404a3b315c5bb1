"""
Raw Event Ingestion Module
"""
from .event_source import (
    RAW_EVENT_COLUMNS,
    EventSourceConfig,
    FileFormat,
    RawEventSource,
    coerce_raw_events,
)

__all__ = [
    "RAW_EVENT_COLUMNS",
    "EventSourceConfig",
    "FileFormat",
    "RawEventSource",
    "coerce_raw_events",
]
