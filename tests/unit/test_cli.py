"""
Unit Tests - Command Line Entry Point
"""
import json

import pytest

from ecommerce_star.main import build_parser, main


class TestCommandLine:
    """Tests for the ecommerce-star command"""

    def test_generate_then_build(self, tmp_path):
        raw_path = tmp_path / "events.csv"
        curated = tmp_path / "curated"

        assert main(["generate", str(raw_path), "--users", "20", "--products", "10", "--noise", "0.05"]) == 0
        assert raw_path.exists()

        assert main(["build", str(raw_path), "--output-dir", str(curated)]) == 0
        assert (curated / "fact_sales.parquet").exists()
        assert (curated / "dim_date.parquet").exists()

    def test_build_reports_integrity(self, tmp_path, capsys):
        raw_path = tmp_path / "events.csv"
        main(["generate", str(raw_path), "--users", "10"])
        capsys.readouterr()

        main(["--log-level", "ERROR", "build", str(raw_path), "--strategy", "product_id"])

        report = json.loads(capsys.readouterr().out)
        assert report["integrity"]["is_clean"] is True
        assert report["pipeline"]["unresolved_events"] == 0

    def test_missing_file_fails(self, tmp_path):
        assert main(["build", str(tmp_path / "missing.csv")]) == 1

    def test_unsupported_format_fails(self, tmp_path):
        path = tmp_path / "events.xml"
        path.write_text("<events/>")

        assert main(["build", str(path)]) == 1

    def test_unknown_strategy_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["build", "events.csv", "--strategy", "sku"])
