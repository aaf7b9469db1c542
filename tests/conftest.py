"""
Pytest configuration and fixtures for the asset import pipeline tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import os
from typing import Generator

import psycopg
import pytest
from pyspark.sql import SparkSession
from testcontainers.postgres import PostgresContainer

from asset_etl.config import PipelineSettings
from asset_etl.core.models import ColumnAlias
from asset_etl.core.rules import RuleConfigBuilder
from asset_etl.warehouse.connection import DatabaseConnectionPool

PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# SPARK FIXTURES
# =======================

@pytest.fixture(scope="session")
def spark_session() -> Generator[SparkSession, None, None]:
    """
    Create a Spark session for testing with local mode

    Yields:
        SparkSession configured for local testing
    """
    spark = (
        SparkSession.builder
        .appName("asset-etl-test")
        .master("local[2]")
        .config("spark.sql.shuffle.partitions", "2")
        .config("spark.driver.memory", "1g")
        .config("spark.ui.enabled", "false")  # Disable UI for tests
        .config("spark.sql.warehouse.dir", "/tmp/spark-warehouse")
        .getOrCreate()
    )

    # Set log level to WARN to reduce test output noise
    spark.sparkContext.setLogLevel("WARN")

    yield spark

    spark.stop()


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Yields:
        PostgresContainer instance with initialized database
    """
    with PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_pipeline",
        password="test_password",
        dbname="test_asset_management",
        driver=None,
    ) as postgres:
        init_sql_path = os.path.join(PROJECT_ROOT, "docker", "init-db.sql")

        with open(init_sql_path, "r") as f:
            init_sql = f.read()

        with psycopg.connect(postgres.get_connection_url()) as conn:
            with conn.cursor() as cur:
                cur.execute(init_sql)
            conn.commit()

        yield postgres


@pytest.fixture(scope="session")
def db_pool(postgres_container) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Connection pool shared by the Postgres store tests

    Yields:
        Open DatabaseConnectionPool pointing at the test container
    """
    pool = DatabaseConnectionPool(conninfo=postgres_container.get_connection_url(), max_size=4)
    pool.open()
    yield pool
    pool.close()


@pytest.fixture(scope="function")
def clean_db(db_pool) -> DatabaseConnectionPool:
    """
    Provide a clean database by truncating all tables before each test

    Returns:
        Pool over the emptied database
    """
    with db_pool.get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("TRUNCATE TABLE phase_result, import_job, asset, asset_column_alias, pipeline_rule CASCADE")
        conn.commit()

    return db_pool


# =======================
# PIPELINE FIXTURES
# =======================

@pytest.fixture
def settings() -> PipelineSettings:
    return PipelineSettings(sample_size=3, max_job_errors=50, max_transformations=100)


@pytest.fixture
def aliases() -> list[ColumnAlias]:
    """Aliases for the headers used throughout the tests"""
    return [
        ColumnAlias(csv_alias="Asset Tag", asset_field="assetTag", confidence=1.0),
        ColumnAlias(csv_alias="Asset ID", asset_field="assetTag", confidence=1.0),
        ColumnAlias(csv_alias="Asset Name", asset_field="name", confidence=1.0),
        ColumnAlias(csv_alias="Manufacturer", asset_field="manufacturer", confidence=1.0),
        ColumnAlias(csv_alias="Status", asset_field="status", confidence=1.0),
        ColumnAlias(csv_alias="Condition", asset_field="condition", confidence=0.9),
        ColumnAlias(csv_alias="Purchase Cost", asset_field="purchaseCost", confidence=0.95),
    ]


@pytest.fixture
def cleaning_rules():
    """Trim every field and normalize Carrier spellings"""
    return RuleConfigBuilder() \
        .add_trim("*", priority=1) \
        .add_regex_replace(
            "Manufacturer",
            r"\b(carrier|CARRIER|Carrier Corp\.?)\b",
            "Carrier",
            flags="gi",
            priority=2,
        ) \
        .build()


# =======================
# FILE FIXTURES
# =======================

@pytest.fixture(scope="session")
def test_data_dir() -> str:
    """
    Get path to test data fixtures directory

    Returns:
        Path to tests/fixtures directory
    """
    return os.path.join(os.path.dirname(__file__), "fixtures")


# =======================
# CONFIGURATION FIXTURES
# =======================

@pytest.fixture(scope="session")
def test_env_vars():
    """
    Set test environment variables

    This fixture loads test.env and sets environment variables
    """
    from dotenv import load_dotenv

    env_path = os.path.join(PROJECT_ROOT, "config", "test.env")

    if os.path.exists(env_path):
        load_dotenv(env_path, override=True)
