"""
Shared psycopg3 connection pool for the Postgres stores.

Connections hand out rows as dictionaries. Stores open transactions
explicitly with conn.transaction(); the LOAD writer nests them as savepoints.
"""
import os
import time
from contextlib import contextmanager
from typing import Any, Iterator

import psycopg
from psycopg import OperationalError
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from asset_etl.observability.logger import get_logger

logger = get_logger(__name__)

QueryParams = tuple | list | dict[str, Any] | None


def conninfo_from_env(
    host: str | None = None,
    port: int | None = None,
    database: str | None = None,
    user: str | None = None,
    password: str | None = None,
    connect_timeout: int = 30,
) -> str:
    """
    Build a libpq connection string, filling gaps from DB_* environment variables.

    Raises:
        ValueError: If no password is given or set in DB_PASSWORD
    """
    password = password or os.getenv("DB_PASSWORD")
    if not password:
        raise ValueError(
            "Database password must be provided. "
            "Set DB_PASSWORD environment variable or pass --db-password."
        )

    parts = {
        "host": host or os.getenv("DB_HOST", "localhost"),
        "port": port or int(os.getenv("DB_PORT", "5432")),
        "dbname": database or os.getenv("DB_NAME", "asset_management"),
        "user": user or os.getenv("DB_USER", "pipeline"),
        "password": password,
        "connect_timeout": connect_timeout,
    }
    return " ".join(f"{key}={value}" for key, value in parts.items())


class DatabaseConnectionPool:
    """
    Connection pool used by the rule, alias, job, phase result and asset stores.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        min_size: int = 1,
        max_size: int = 10,
        timeout: float = 30.0,
        conninfo: str | None = None,
    ) -> None:
        """
        Args:
            host: Database host (defaults to env var DB_HOST)
            port: Database port (defaults to env var DB_PORT)
            database: Database name (defaults to env var DB_NAME)
            user: Database user (defaults to env var DB_USER)
            password: Database password (defaults to env var DB_PASSWORD)
            min_size: Minimum pool size
            max_size: Maximum pool size
            timeout: Seconds to wait for a connection
            conninfo: Full connection string; replaces the individual settings

        Raises:
            ValueError: If no password is configured and no conninfo is given
        """
        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout
        self.conninfo = conninfo or conninfo_from_env(
            host, port, database, user, password, connect_timeout=int(timeout)
        )
        self._pool: ConnectionPool | None = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def open(self, max_retries: int = 3, retry_delay: float = 2.0) -> None:
        """
        Open the pool, retrying while the database comes up.

        Raises:
            OperationalError: If the database is still unreachable after max_retries
        """
        if self._pool is not None:
            return

        pool = ConnectionPool(
            conninfo=self.conninfo,
            min_size=self.min_size,
            max_size=self.max_size,
            timeout=self.timeout,
            kwargs={"row_factory": dict_row},
            open=False,
        )

        for attempt in range(1, max_retries + 1):
            try:
                pool.open(wait=True, timeout=self.timeout)
                break
            except (OperationalError, TimeoutError) as e:
                if attempt == max_retries:
                    pool.close()
                    raise OperationalError(
                        f"Database unreachable after {max_retries} attempts: {e}"
                    ) from e
                logger.warning(f"Database not reachable (attempt {attempt}/{max_retries}): {e}")
                time.sleep(retry_delay)

        self._pool = pool
        logger.info(f"Connection pool open (min={self.min_size}, max={self.max_size})")

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool = None

    @contextmanager
    def get_connection(self) -> Iterator[psycopg.Connection]:
        """
        Borrow a connection; it is committed on clean exit and rolled back on error.

        Raises:
            RuntimeError: If the pool is not open
        """
        if self._pool is None:
            raise RuntimeError("Connection pool is not open. Call open() first.")

        with self._pool.connection() as conn:
            yield conn

    def execute_query(self, query: str, params: QueryParams = None) -> list[dict[str, Any]]:
        """Run a SELECT and return every row as a dictionary."""
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                return cur.fetchall()

    def execute_command(self, command: str, params: QueryParams = None) -> int:
        """
        Run an INSERT/UPDATE/DELETE in its own transaction.

        Returns:
            Number of rows affected
        """
        with self.get_connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute(command, params)
                    return cur.rowcount
