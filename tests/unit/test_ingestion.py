"""
Unit Tests - Raw Event Ingestion
"""
from datetime import datetime, timezone

import pytest
import polars as pl

from ecommerce_star.errors import RawSchemaError, UnsupportedFormatError
from ecommerce_star.ingestion.event_source import (
    RAW_EVENT_COLUMNS,
    FileFormat,
    RawEventSource,
    coerce_raw_events,
)
from ecommerce_star.transformation import StarSchemaTransformer


CSV_HEADER = "event_time,event_type,product_id,category_id,category_code,brand,price,user_id,user_session\n"


class TestCoerceRawEvents:
    """Tests for raw schema coercion"""

    def test_renames_user_session(self, sample_records):
        df = RawEventSource.from_records(sample_records).load()

        assert df.columns == RAW_EVENT_COLUMNS
        assert df["session_id"][0] == "s1"

    def test_types(self, raw_events_df):
        schema = raw_events_df.schema

        assert schema["event_time"] == pl.Datetime("us")
        assert schema["product_id"] == pl.Int64
        assert schema["user_id"] == pl.Int64
        assert schema["category_id"] == pl.Int64
        assert schema["price"] == pl.Float64

    def test_event_time_formats(self):
        df = pl.DataFrame({
            "event_time": [
                "2021-11-27 10:15:00 UTC",
                "2021-11-27T10:15:00",
                "2021-11-27 10:15:00.250",
                "2021-11-27",
                "not a time",
            ],
        }).with_columns([pl.lit("view").alias(c) for c in RAW_EVENT_COLUMNS if c != "event_time"])

        result = coerce_raw_events(df.with_columns(pl.lit("1").alias("product_id")))

        times = result["event_time"].to_list()
        assert times[0] == datetime(2021, 11, 27, 10, 15)
        assert times[1] == datetime(2021, 11, 27, 10, 15)
        assert times[2] == datetime(2021, 11, 27, 10, 15, 0, 250000)
        assert times[3] == datetime(2021, 11, 27)
        assert times[4] is None

    def test_offset_event_time_converted_to_utc(self, event, load):
        records = [event("purchase"), event("purchase", hour=11)]
        records[0]["event_time"] = "2021-11-02 10:00:00+00:00"
        records[1]["event_time"] = "2021-11-02T12:30:00.5+05:30"

        times = load(records)["event_time"].to_list()

        assert times[0] == datetime(2021, 11, 2, 10, 0)
        assert times[1] == datetime(2021, 11, 2, 7, 0, 0, 500000)

    def test_float_ids_kept_when_integral(self):
        df = pl.DataFrame({
            "event_time": ["2021-11-01 10:00:00"] * 3,
            "event_type": ["purchase"] * 3,
            "product_id": [100.0, 100.5, None],
            "category_id": [2053013555631882655] * 3,
            "category_code": ["electronics.smartphone"] * 3,
            "brand": ["acme"] * 3,
            "price": [10.0] * 3,
            "user_id": [1.0, 1.0, 2.0],
            "session_id": ["s1"] * 3,
        })

        result = coerce_raw_events(df)

        assert result.schema["product_id"] == pl.Int64
        assert result["product_id"].to_list() == [100, None, None]
        assert result["user_id"].to_list() == [1, 1, 2]
        assert result["category_id"][0] == 2053013555631882655

    def test_float_text_ids_kept_when_integral(self, event, load):
        record = event("purchase")
        record.update({"product_id": "100.0", "user_id": " 7.0 ", "category_id": "2053013555631882655"})

        df = load([record, event("purchase", product_id="1.5")])

        assert df["product_id"].to_list() == [100, None]
        assert df["user_id"][0] == 7
        assert df["category_id"][0] == 2053013555631882655

    def test_malformed_values_become_null(self, event, load):
        record = event("Purchase ", price=None)
        record.update({"product_id": "abc", "price": "12,5", "brand": "  ", "user_id": " 7 "})

        df = load([record])

        assert df["event_type"][0] == "purchase"
        assert df["product_id"][0] is None
        assert df["price"][0] is None
        assert df["brand"][0] is None
        assert df["user_id"][0] == 7

    def test_price_rounded_to_cents(self, event, load):
        df = load([event("purchase", price=19.999)])

        assert df["price"][0] == 20.0

    def test_missing_column_raises(self):
        df = pl.DataFrame({"event_time": ["2021-11-01"], "event_type": ["view"]})

        with pytest.raises(RawSchemaError) as exc_info:
            coerce_raw_events(df, source="events.csv")

        assert "user_id" in exc_info.value.missing_columns
        assert "session_id" in exc_info.value.missing_columns
        assert "events.csv" in str(exc_info.value)

    def test_timezone_aware_datetime_converted_to_utc(self, event):
        record = event("view")
        record["event_time"] = datetime(2021, 11, 27, 12, 0, tzinfo=timezone.utc)

        df = RawEventSource.from_records([record]).load()

        assert df["event_time"][0] == datetime(2021, 11, 27, 12, 0)


class TestRawEventSource:
    """Tests for RawEventSource"""

    def test_load_csv(self, tmp_path):
        path = tmp_path / "events.csv"
        path.write_text(
            CSV_HEADER
            + "2021-11-01 10:00:00 UTC,view,100,2053013555631882655,electronics.smartphone,acme,10.00,1,s1\n"
            + "2021-11-01 11:00:00 UTC,purchase,100,2053013555631882655,,acme,10.00,1,s1\n"
        )

        source = RawEventSource.from_path(path)
        df = source.load()

        assert source.config.file_format == FileFormat.CSV
        assert len(df) == 2
        assert df["category_code"].to_list() == ["electronics.smartphone", None]
        assert source.last_load.rows_read == 2
        assert source.last_load.file_hash is not None

    def test_load_jsonl(self, tmp_path, sample_records):
        path = tmp_path / "events.jsonl"
        pl.DataFrame(sample_records).write_ndjson(path)

        df = RawEventSource.from_path(path).load()

        assert len(df) == len(sample_records)
        assert df.columns == RAW_EVENT_COLUMNS

    def test_load_parquet(self, tmp_path, raw_events_df):
        path = tmp_path / "events.parquet"
        raw_events_df.write_parquet(path)

        df = RawEventSource.from_path(path).load()

        assert df.equals(raw_events_df)

    def test_float_ids_from_parquet_and_jsonl_reach_facts(self, tmp_path, pipeline_settings):
        # Integer columns with gaps are written as float64 by pandas-style exporters
        df = pl.DataFrame({
            "event_time": ["2021-11-01 10:00:00 UTC", "2021-11-02 10:00:00 UTC", "2021-11-02 11:00:00 UTC"],
            "event_type": ["purchase", "purchase", "view"],
            "product_id": [100.0, 100.0, None],
            "category_id": [2053013555631882655, 2053013555631882655, None],
            "category_code": ["electronics.smartphone", "electronics.smartphone", None],
            "brand": ["acme", "acme", None],
            "price": [10.0, 10.0, None],
            "user_id": [1.0, 1.0, 2.0],
            "user_session": ["s1", "s2", "s3"],
        })
        parquet_path = tmp_path / "events.parquet"
        jsonl_path = tmp_path / "events.jsonl"
        df.write_parquet(parquet_path)
        df.write_ndjson(jsonl_path)

        for path in (parquet_path, jsonl_path):
            schema = StarSchemaTransformer(pipeline_settings).run_source(RawEventSource.from_path(path))

            assert schema.result.clean_rows == 2
            assert len(schema.facts) == 2
            assert schema.facts["user_id"].to_list() == [1, 1]

    def test_unsupported_format(self, tmp_path):
        with pytest.raises(UnsupportedFormatError):
            RawEventSource.from_path(tmp_path / "events.xlsx")

    def test_missing_file(self, tmp_path):
        source = RawEventSource.from_path(tmp_path / "missing.csv")

        with pytest.raises(FileNotFoundError):
            source.load()

    def test_empty_records(self):
        df = RawEventSource.from_records([]).load()

        assert df.is_empty()
        assert df.columns == RAW_EVENT_COLUMNS
        assert df.schema["event_time"] == pl.Datetime("us")

    def test_iter_records(self, sample_records):
        records = list(RawEventSource.from_records(sample_records).iter_records())

        assert len(records) == len(sample_records)
        assert records[0]["event_type"] == "view"
        assert records[0]["session_id"] == "s1"

    def test_requires_config_or_frame(self):
        with pytest.raises(ValueError):
            RawEventSource()
