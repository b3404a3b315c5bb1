"""
Raw Event Source

Reads a bounded batch of raw clickstream events from CSV, JSON Lines, or
Parquet and coerces them onto the raw event schema.

Coercion never drops rows. Values that cannot be parsed become null and are
left for the sanitizer and the fact assembler to filter.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union
import hashlib

import polars as pl
import structlog

from ecommerce_star.errors import RawSchemaError, UnsupportedFormatError

logger = structlog.get_logger(__name__)


RAW_EVENT_COLUMNS = [
    "event_time",
    "event_type",
    "product_id",
    "category_id",
    "category_code",
    "brand",
    "price",
    "user_id",
    "session_id",
]

# File column names that map onto the canonical raw schema
COLUMN_ALIASES = {"user_session": "session_id"}

ID_COLUMNS = ["product_id", "category_id", "user_id"]
STRING_COLUMNS = ["category_code", "brand", "session_id"]

EVENT_TIME_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S%.f",
    "%Y-%m-%dT%H:%M:%S%.f",
    "%Y-%m-%d",
]

# Offset-qualified timestamps, parsed to UTC
EVENT_TIME_OFFSET_FORMATS = [
    "%Y-%m-%d %H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%d %H:%M:%S%.f%z",
    "%Y-%m-%dT%H:%M:%S%.f%z",
]


class FileFormat(str, Enum):
    """Supported raw event file formats"""
    CSV = "csv"
    JSONL = "jsonl"
    PARQUET = "parquet"


@dataclass
class EventSourceConfig:
    """Configuration for reading a raw event file"""
    file_path: Union[str, Path]
    file_format: FileFormat = FileFormat.CSV
    delimiter: str = ","
    encoding: str = "utf8"
    null_values: List[str] = field(default_factory=lambda: ["", "NULL", "null", "None", "NA", "N/A"])


@dataclass
class LoadStats:
    """Audit record for one load"""
    source: str
    rows_read: int
    loaded_at: datetime
    file_hash: Optional[str] = None


def coerce_raw_events(df: pl.DataFrame, source: Optional[str] = None) -> pl.DataFrame:
    """
    Coerce an arbitrary frame onto the raw event schema.

    Raises:
        RawSchemaError: If a required column is missing
    """
    df = df.rename({old: new for old, new in COLUMN_ALIASES.items() if old in df.columns and new not in df.columns})

    missing = set(RAW_EVENT_COLUMNS) - set(df.columns)
    if missing:
        raise RawSchemaError(missing, source)

    return df.select(
        _event_time_expr(df.schema["event_time"]),
        pl.col("event_type").cast(pl.Utf8).str.strip_chars().str.to_lowercase().alias("event_type"),
        *[_id_expr(col, df.schema[col]) for col in ID_COLUMNS],
        *[
            pl.when(pl.col(col).cast(pl.Utf8).str.strip_chars() == "")
            .then(pl.lit(None, dtype=pl.Utf8))
            .otherwise(pl.col(col).cast(pl.Utf8).str.strip_chars())
            .alias(col)
            for col in STRING_COLUMNS
        ],
        pl.col("price").cast(pl.Utf8).str.strip_chars().cast(pl.Float64, strict=False).round(2).alias("price"),
    ).select(RAW_EVENT_COLUMNS)


def _id_expr(name: str, dtype: pl.DataType) -> pl.Expr:
    """Build the expression that turns an id column into Int64; non-integral values become null"""
    col = pl.col(name)

    if dtype.is_integer():
        return col.cast(pl.Int64, strict=False).alias(name)

    if dtype.is_float():
        return pl.when(col == col.floor()).then(col.cast(pl.Int64, strict=False)).alias(name)

    text = col.cast(pl.Utf8).str.strip_chars()
    as_float = text.cast(pl.Float64, strict=False)
    # Exact integer parse first so 19-digit ids keep full precision
    return pl.coalesce([
        text.cast(pl.Int64, strict=False),
        pl.when(as_float == as_float.floor()).then(as_float.cast(pl.Int64, strict=False)),
    ]).alias(name)


def _event_time_expr(dtype: pl.DataType) -> pl.Expr:
    """Build the expression that turns event_time into a naive Datetime"""
    col = pl.col("event_time")

    if isinstance(dtype, pl.Datetime):
        if dtype.time_zone is not None:
            col = col.dt.convert_time_zone("UTC").dt.replace_time_zone(None)
        return col.cast(pl.Datetime("us")).alias("event_time")

    if dtype == pl.Date:
        return col.cast(pl.Datetime("us")).alias("event_time")

    text = (
        col.cast(pl.Utf8)
        .str.strip_chars()
        .str.replace(r"\s*(UTC|Z)$", "")
    )
    naive = [
        text.str.to_datetime(format=fmt, strict=False, time_unit="us")
        for fmt in EVENT_TIME_FORMATS
    ]
    # "+05:30" -> "+0530" for %z
    offset_text = text.str.replace(r"([+-]\d{2}):(\d{2})$", "${1}${2}")
    offset = [
        offset_text.str.to_datetime(format=fmt, strict=False, time_unit="us")
        .dt.convert_time_zone("UTC")
        .dt.replace_time_zone(None)
        for fmt in EVENT_TIME_OFFSET_FORMATS
    ]
    return pl.coalesce([*naive, *offset]).alias("event_time")


def _stringify(value: Any) -> Optional[str]:
    """Render one record value as text so mixed-type records build a frame"""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


class RawEventSource:
    """
    Source of raw clickstream events for one ETL run.

    Example:
        source = RawEventSource(EventSourceConfig("data/raw/events.csv"))
        raw_df = source.load()
    """

    def __init__(self, config: Optional[EventSourceConfig] = None, frame: Optional[pl.DataFrame] = None):
        if config is None and frame is None:
            raise ValueError("RawEventSource needs a file config or an in-memory frame")
        self.config = config
        self._frame = frame
        self.last_load: Optional[LoadStats] = None

    @classmethod
    def from_path(
        cls,
        file_path: Union[str, Path],
        file_format: Union[str, FileFormat, None] = None,
        **kwargs,
    ) -> "RawEventSource":
        """Create a source for a file, inferring the format from its suffix"""
        path = Path(file_path)
        if file_format is None:
            file_format = path.suffix.lstrip(".").lower()
        try:
            fmt = FileFormat(file_format)
        except ValueError:
            raise UnsupportedFormatError(f"Unsupported file format: {file_format}") from None
        return cls(EventSourceConfig(file_path=path, file_format=fmt, **kwargs))

    @classmethod
    def from_frame(cls, df: pl.DataFrame) -> "RawEventSource":
        """Create a source over an in-memory frame"""
        return cls(frame=df)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "RawEventSource":
        """Create a source over raw record mappings"""
        rows = [{key: _stringify(value) for key, value in record.items()} for record in records]
        if not rows:
            df = pl.DataFrame(schema={col: pl.Utf8 for col in RAW_EVENT_COLUMNS})
        else:
            columns: Dict[str, None] = {}
            for row in rows:
                columns.update(dict.fromkeys(row))
            df = pl.DataFrame(rows, schema={col: pl.Utf8 for col in columns})
        return cls(frame=df)

    def _compute_file_hash(self, file_path: Path) -> str:
        """Compute MD5 hash of file for audit"""
        hash_md5 = hashlib.md5()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(4096), b""):
                hash_md5.update(chunk)
        return hash_md5.hexdigest()

    def _read_csv(self, config: EventSourceConfig) -> pl.DataFrame:
        """Read CSV with every column as text"""
        return pl.read_csv(
            config.file_path,
            separator=config.delimiter,
            encoding=config.encoding,
            null_values=config.null_values,
            infer_schema=False,
        )

    def _read_jsonl(self, config: EventSourceConfig) -> pl.DataFrame:
        """Read JSON Lines (NDJSON) file"""
        return pl.read_ndjson(config.file_path, infer_schema_length=None)

    def _read_parquet(self, config: EventSourceConfig) -> pl.DataFrame:
        """Read Parquet file"""
        return pl.read_parquet(config.file_path)

    def _read_file(self, config: EventSourceConfig) -> pl.DataFrame:
        """Read file based on format"""
        readers = {
            FileFormat.CSV: self._read_csv,
            FileFormat.JSONL: self._read_jsonl,
            FileFormat.PARQUET: self._read_parquet,
        }
        reader = readers.get(config.file_format)
        if not reader:
            raise UnsupportedFormatError(f"Unsupported file format: {config.file_format}")
        return reader(config)

    def load(self) -> pl.DataFrame:
        """
        Load and coerce the raw events.

        Returns:
            Raw event frame with the canonical columns

        Raises:
            FileNotFoundError: If the configured file does not exist
            RawSchemaError: If required columns are missing
        """
        if self._frame is not None:
            df = coerce_raw_events(self._frame, source="<memory>")
            self.last_load = LoadStats(source="<memory>", rows_read=len(df), loaded_at=datetime.utcnow())
            logger.info("Loaded raw events", source="<memory>", rows=len(df))
            return df

        file_path = Path(self.config.file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        logger.info("Reading raw events", file=str(file_path), format=self.config.file_format.value)

        df = coerce_raw_events(self._read_file(self.config), source=str(file_path))

        self.last_load = LoadStats(
            source=str(file_path),
            rows_read=len(df),
            loaded_at=datetime.utcnow(),
            file_hash=self._compute_file_hash(file_path),
        )
        logger.info(
            "Loaded raw events",
            source=str(file_path),
            rows=len(df),
            file_hash=self.last_load.file_hash,
        )
        return df

    def iter_records(self) -> Iterator[Dict[str, Any]]:
        """Yield coerced raw events one record at a time"""
        yield from self.load().iter_rows(named=True)
