"""
Integration tests for the Spark CSV reader
"""

import os

import pytest

from asset_etl.core.aliases import AliasResolver
from asset_etl.core.rules import RuleConfigBuilder, RuleEngine
from asset_etl.pipeline.phases import ExtractPhase, PhaseContext
from asset_etl.readers.base import SourceReadError
from asset_etl.readers.csv_reader import SparkCsvSource, upload_source


@pytest.mark.integration
class TestSparkCsvSource:
    """Tests for SparkCsvSource"""

    def test_reads_every_column_as_string(self, spark_session, test_data_dir):
        source = SparkCsvSource(spark_session, os.path.join(test_data_dir, "assets_sample.csv"))

        table = source.read()

        assert source.name == "assets_sample.csv"
        assert table.headers[0] == "Asset ID"
        assert table.headers[-1] == "Foo Bar"
        assert len(table.rows) == 5
        assert table.rows[0][1] == "  Rooftop Unit 1 "
        assert table.rows[0][5] == "$12,500.00"
        assert table.rows[2][0] is None

    def test_headers_only(self, spark_session, test_data_dir):
        table = SparkCsvSource(spark_session, os.path.join(test_data_dir, "headers_only.csv")).read()

        assert table.headers == ["Asset Tag", "Asset Name"]
        assert table.rows == []

    def test_missing_file(self, spark_session, tmp_path):
        with pytest.raises(SourceReadError, match="File not found"):
            SparkCsvSource(spark_session, tmp_path / "missing.csv").read()

    def test_upload_source_rejects_missing_upload(self, spark_session, tmp_path):
        with pytest.raises(FileNotFoundError):
            upload_source(spark_session, tmp_path, "missing.csv")


@pytest.mark.integration
def test_extract_resplits_semicolon_file(spark_session, test_data_dir):
    rules = RuleConfigBuilder().add_delimiter_detector().build()
    context = PhaseContext(
        engine=RuleEngine(rules),
        resolver=AliasResolver([]),
        source=SparkCsvSource(spark_session, os.path.join(test_data_dir, "semicolon_assets.csv")),
    )

    output = ExtractPhase().run([], context)

    assert [row.data for row in output.rows] == [
        {"Asset Tag": "SEMI-001", "Asset Name": "Chiller", "Manufacturer": "Carrier"},
        {"Asset Tag": "SEMI-002", "Asset Name": "Pump", "Manufacturer": "Trane"},
    ]
