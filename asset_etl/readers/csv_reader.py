"""
CSV reader using Spark for uploaded files.
"""

from pathlib import Path

from pyspark.sql import DataFrame, SparkSession
from pyspark.errors import PySparkException

from asset_etl.core.models import TabularData
from asset_etl.observability.logger import get_logger
from asset_etl.utils.validation import resolve_upload_path

from .base import RowSource, SourceReadError

logger = get_logger(__name__)

CORRUPT_RECORD_COLUMN = "_corrupt_record"


class CSVReader:
    """
    Reads CSV files with Spark, keeping every column as a string.

    Values are cleaned and typed by pipeline rules, so no schema is inferred.
    """

    def __init__(self, spark: SparkSession):
        """
        Initialize CSV reader.

        Args:
            spark: Active Spark session
        """
        self.spark = spark

    def read(
        self,
        file_path: str,
        header: bool = True,
        delimiter: str = ",",
        encoding: str = "UTF-8",
    ) -> DataFrame:
        """
        Read CSV file into Spark DataFrame.

        Args:
            file_path: Path to CSV file
            header: Whether CSV has header row
            delimiter: Field delimiter
            encoding: File encoding

        Returns:
            Spark DataFrame with string columns
        """
        df = self.spark.read \
            .option("header", str(header).lower()) \
            .option("delimiter", delimiter) \
            .option("encoding", encoding) \
            .option("inferSchema", "false") \
            .option("multiLine", "true") \
            .option("escape", "\"") \
            .option("mode", "PERMISSIVE") \
            .csv(file_path)

        return df


class SparkCsvSource(RowSource):
    """
    Row source backed by a CSV file read through Spark.

    The file is collected to the driver: an import is a bounded spreadsheet,
    not a distributed dataset.
    """

    def __init__(self, spark: SparkSession, file_path: str | Path, delimiter: str = ",", encoding: str = "UTF-8"):
        self.reader = CSVReader(spark)
        self.file_path = str(file_path)
        self.delimiter = delimiter
        self.encoding = encoding

    @property
    def name(self) -> str:
        return Path(self.file_path).name

    def read(self) -> TabularData:
        if not Path(self.file_path).is_file():
            raise SourceReadError(f"File not found: {self.file_path}")

        try:
            df = self.reader.read(self.file_path, delimiter=self.delimiter, encoding=self.encoding)
            # select by position; header text may contain dots or backticks
            positions = [i for i, column in enumerate(df.columns) if column != CORRUPT_RECORD_COLUMN]
            headers = [df.columns[i] for i in positions]
            rows = [[row[i] for i in positions] for row in df.collect()] if headers else []
        except PySparkException as e:
            raise SourceReadError(f"Could not read {self.file_path}: {e}") from e

        logger.info(f"Read {len(rows)} rows with {len(headers)} columns from {self.name}")
        return TabularData(headers=headers, rows=rows)


def upload_source(
    spark: SparkSession,
    upload_dir: str | Path,
    file_id: str,
    delimiter: str = ",",
) -> SparkCsvSource:
    """
    Build a row source for an uploaded file.

    Args:
        spark: Active Spark session
        upload_dir: Directory holding uploads
        file_id: Uploaded file identifier
        delimiter: Field delimiter

    Returns:
        SparkCsvSource for the file

    Raises:
        InputValidationError: If the file id is invalid
        FileNotFoundError: If the file does not exist
    """
    path = resolve_upload_path(upload_dir, file_id)
    return SparkCsvSource(spark, path, delimiter=delimiter)


def create_spark_session(app_name: str = "AssetImport") -> SparkSession:
    """
    Create a local Spark session for reading uploads.

    Args:
        app_name: Application name

    Returns:
        SparkSession
    """
    spark = SparkSession.builder \
        .appName(app_name) \
        .master("local[*]") \
        .config("spark.sql.adaptive.enabled", "true") \
        .config("spark.ui.enabled", "false") \
        .getOrCreate()

    return spark
