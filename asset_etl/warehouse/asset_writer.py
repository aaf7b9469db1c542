"""
Asset persistence in PostgreSQL.

Writes use INSERT ... ON CONFLICT (asset_tag) DO UPDATE so re-importing a file
is idempotent. Atomic groups run in one transaction; non-atomic groups give
every row its own savepoint so a failing row does not undo its neighbours.
"""

import hashlib
import json
from typing import Any

import psycopg

from asset_etl.core.models import AssetRecord, AssetUpsert
from asset_etl.observability.logger import get_logger

from .connection import DatabaseConnectionPool
from .stores import AssetStore, BatchWriteResult

logger = get_logger(__name__)

# canonical asset field name -> column name
ASSET_COLUMNS: dict[str, str] = {
    field.alias or name: name for name, field in AssetRecord.model_fields.items()
}

_COLUMN_LIST = ", ".join(ASSET_COLUMNS.values())
_PLACEHOLDERS = ", ".join(f"%({column})s" for column in ASSET_COLUMNS.values())
_UPDATES = ", ".join(
    f"{column} = EXCLUDED.{column}" for column in ASSET_COLUMNS.values() if column != "asset_tag"
)

UPSERT_ASSET_SQL = f"""
    INSERT INTO asset ({_COLUMN_LIST}, source_job_id, checksum, created_at, updated_at)
    VALUES ({_PLACEHOLDERS}, %(source_job_id)s, %(checksum)s, NOW(), NOW())
    ON CONFLICT (asset_tag) DO UPDATE SET
        {_UPDATES},
        source_job_id = EXCLUDED.source_job_id,
        checksum = EXCLUDED.checksum,
        updated_at = NOW()
"""


def calculate_checksum(values: dict[str, Any]) -> str:
    """MD5 of the asset values, used to spot unchanged re-imports."""
    data_str = json.dumps(values, sort_keys=True, default=str)
    return hashlib.md5(data_str.encode()).hexdigest()


class PostgresAssetStore(AssetStore):
    """Assets in the asset table, keyed by asset_tag."""

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool

    def fetch_existing(self, asset_tags: list[str]) -> dict[str, dict[str, Any]]:
        if not asset_tags:
            return {}
        rows = self.pool.execute_query(
            f"SELECT {_COLUMN_LIST} FROM asset WHERE asset_tag = ANY(%s)",
            (list(asset_tags),),
        )
        return {row["asset_tag"]: self._to_fields(row) for row in rows}

    def get(self, asset_tag: str) -> dict[str, Any] | None:
        rows = self.pool.execute_query(f"SELECT {_COLUMN_LIST} FROM asset WHERE asset_tag = %s", (asset_tag,))
        return self._to_fields(rows[0]) if rows else None

    def count(self) -> int:
        rows = self.pool.execute_query("SELECT COUNT(*) AS total FROM asset")
        return rows[0]["total"]

    def write_batch(self, writes: list[AssetUpsert], atomic: bool, job_id: str | None = None) -> BatchWriteResult:
        result = BatchWriteResult()
        if not writes:
            return result

        with self.pool.get_connection() as conn:
            if atomic:
                current: AssetUpsert | None = None
                try:
                    with conn.transaction():
                        with conn.cursor() as cur:
                            for write in writes:
                                current = write
                                cur.execute(UPSERT_ASSET_SQL, self._params(write, job_id))
                except psycopg.Error as e:
                    logger.warning(f"Rolled back group of {len(writes)} assets: {e}")
                    result.failed[current.row_number] = str(e)
                    result.rolled_back = True
                    return result
                result.written = list(writes)
                return result

            with conn.transaction():
                with conn.cursor() as cur:
                    for write in writes:
                        try:
                            with conn.transaction():
                                cur.execute(UPSERT_ASSET_SQL, self._params(write, job_id))
                        except psycopg.Error as e:
                            logger.warning(f"Skipped asset {write.asset_tag} (row {write.row_number}): {e}")
                            result.failed[write.row_number] = str(e)
                            continue
                        result.written.append(write)
        return result

    @staticmethod
    def _params(write: AssetUpsert, job_id: str | None) -> dict[str, Any]:
        params = {column: write.values.get(field) for field, column in ASSET_COLUMNS.items()}
        params["asset_tag"] = write.asset_tag
        params["source_job_id"] = job_id
        params["checksum"] = calculate_checksum(write.values)
        return params

    @staticmethod
    def _to_fields(row: dict[str, Any]) -> dict[str, Any]:
        fields = {field: row.get(column) for field, column in ASSET_COLUMNS.items()}
        if fields.get("purchaseCost") is not None:
            fields["purchaseCost"] = float(fields["purchaseCost"])
        return fields
