"""
Wiring shared by the command-line interfaces.
"""

import argparse
import json
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from asset_etl.config import PipelineSettings
from asset_etl.core.rules import RuleConfigLoader
from asset_etl.observability.logger import get_logger
from asset_etl.pipeline import JobTracker, PipelineService
from asset_etl.warehouse.asset_writer import PostgresAssetStore
from asset_etl.warehouse.connection import DatabaseConnectionPool
from asset_etl.warehouse.memory import (
    InMemoryAliasStore,
    InMemoryAssetStore,
    InMemoryJobStore,
    InMemoryPhaseResultStore,
    InMemoryRuleStore,
)
from asset_etl.warehouse.postgres import (
    PostgresAliasStore,
    PostgresJobStore,
    PostgresPhaseResultStore,
    PostgresRuleStore,
)

logger = get_logger(__name__)


def load_environment(env_file: str | None = None) -> None:
    """Load a .env file (or the given file) into the environment without overriding it."""
    if env_file:
        load_dotenv(env_file, override=False)
    else:
        load_dotenv(override=False)


def add_db_arguments(parser: argparse.ArgumentParser) -> None:
    """Database connection options; unset values fall back to DB_* environment variables."""
    parser.add_argument("--db-host", default=None, help="Database host (default: $DB_HOST or localhost)")
    parser.add_argument("--db-port", type=int, default=None, help="Database port (default: $DB_PORT or 5432)")
    parser.add_argument("--db-name", default=None, help="Database name (default: $DB_NAME or asset_management)")
    parser.add_argument("--db-user", default=None, help="Database user (default: $DB_USER or pipeline)")
    parser.add_argument("--db-password", default=None, help="Database password (default: $DB_PASSWORD)")


def create_pool(args: argparse.Namespace) -> DatabaseConnectionPool:
    pool = DatabaseConnectionPool(
        host=args.db_host,
        port=args.db_port,
        database=args.db_name,
        user=args.db_user,
        password=args.db_password,
    )
    pool.open()
    return pool


def seeded_memory_stores(settings: PipelineSettings) -> tuple[InMemoryRuleStore, InMemoryAliasStore]:
    """In-memory rule and alias stores filled from the YAML seed files that exist."""
    rules = []
    aliases = []
    if Path(settings.rules_path).exists():
        rules = RuleConfigLoader(settings.rules_path).load_rules()
    else:
        logger.warning(f"Rules file not found: {settings.rules_path}")
    if Path(settings.aliases_path).exists():
        aliases = RuleConfigLoader(settings.aliases_path).load_aliases()
    else:
        logger.warning(f"Aliases file not found: {settings.aliases_path}")
    return InMemoryRuleStore(rules), InMemoryAliasStore(aliases)


def build_service(
    settings: PipelineSettings,
    pool: DatabaseConnectionPool | None = None,
    source_factory=None,
) -> PipelineService:
    """
    Build a PipelineService over PostgreSQL stores, or over seeded in-memory
    stores when no pool is given.
    """
    if pool is None:
        rule_store, alias_store = seeded_memory_stores(settings)
        return PipelineService(
            rule_store=rule_store,
            alias_store=alias_store,
            job_tracker=JobTracker(InMemoryJobStore(), max_errors=settings.max_job_errors),
            phase_result_store=InMemoryPhaseResultStore(),
            asset_store=InMemoryAssetStore(),
            settings=settings,
            source_factory=source_factory,
        )

    return PipelineService(
        rule_store=PostgresRuleStore(pool),
        alias_store=PostgresAliasStore(pool),
        job_tracker=JobTracker(PostgresJobStore(pool), max_errors=settings.max_job_errors),
        phase_result_store=PostgresPhaseResultStore(pool),
        asset_store=PostgresAssetStore(pool),
        settings=settings,
        source_factory=source_factory,
    )


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str, ensure_ascii=False))
