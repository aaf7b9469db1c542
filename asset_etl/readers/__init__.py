"""
Row sources for the EXTRACT phase.
"""

from .base import InMemoryRowSource, RowSource, SourceReadError
from .csv_reader import CSVReader, SparkCsvSource, create_spark_session, upload_source

__all__ = [
    "RowSource",
    "InMemoryRowSource",
    "SourceReadError",
    "CSVReader",
    "SparkCsvSource",
    "create_spark_session",
    "upload_source",
]
