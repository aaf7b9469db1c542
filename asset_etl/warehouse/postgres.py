"""
PostgreSQL stores for rules, column aliases, import jobs and phase results.
"""

from datetime import datetime
from typing import Any

import psycopg
from psycopg.types.json import Jsonb

from asset_etl.core.constants import TERMINAL_JOB_STATUSES
from asset_etl.core.models import ColumnAlias, ImportJob, PhaseResult, PipelineRule
from asset_etl.observability.logger import get_logger

from .connection import DatabaseConnectionPool
from .stores import AliasStore, JobStore, PhaseResultStore, RecordNotFoundError, RuleStore

logger = get_logger(__name__)

RULE_COLUMNS = (
    "id, name, description, phase, type, target, config, priority, "
    "is_active, created_at, updated_at, created_by"
)

ALIAS_COLUMNS = "id, asset_field, csv_alias, confidence, created_at, updated_at, created_by"

JOB_COLUMNS = (
    "id, file_id, status, total_rows, processed_rows, error_rows, errors, "
    "started_at, completed_at, created_at, created_by"
)


class PostgresRuleStore(RuleStore):
    """Rules in the pipeline_rule table; ties on priority are ordered by insertion sequence."""

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool

    def list_rules(self, phase: str | None = None, active_only: bool = False) -> list[PipelineRule]:
        conditions = []
        params: dict[str, Any] = {}
        if phase is not None:
            conditions.append("phase = %(phase)s")
            params["phase"] = phase
        if active_only:
            conditions.append("is_active")
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        rows = self.pool.execute_query(
            f"SELECT {RULE_COLUMNS} FROM pipeline_rule {where} ORDER BY priority, created_at, seq",
            params,
        )
        return [PipelineRule.model_validate(row) for row in rows]

    def get(self, rule_id: str) -> PipelineRule:
        rows = self.pool.execute_query(
            f"SELECT {RULE_COLUMNS} FROM pipeline_rule WHERE id = %s", (rule_id,)
        )
        if not rows:
            raise RecordNotFoundError("Rule", rule_id)
        return PipelineRule.model_validate(rows[0])

    def create(self, rule: PipelineRule) -> PipelineRule:
        self.pool.execute_command(
            """
            INSERT INTO pipeline_rule (
                id, name, description, phase, type, target, config, priority,
                is_active, created_at, updated_at, created_by
            ) VALUES (
                %(id)s, %(name)s, %(description)s, %(phase)s, %(type)s, %(target)s, %(config)s,
                %(priority)s, %(is_active)s, %(created_at)s, %(updated_at)s, %(created_by)s
            )
            """,
            self._params(rule),
        )
        logger.info(f"Created rule '{rule.name}' ({rule.phase}/{rule.type})")
        return rule

    def update(self, rule: PipelineRule) -> PipelineRule:
        updated = self.pool.execute_command(
            """
            UPDATE pipeline_rule SET
                name = %(name)s, description = %(description)s, phase = %(phase)s,
                type = %(type)s, target = %(target)s, config = %(config)s,
                priority = %(priority)s, is_active = %(is_active)s, updated_at = %(updated_at)s
            WHERE id = %(id)s
            """,
            self._params(rule),
        )
        if updated == 0:
            raise RecordNotFoundError("Rule", rule.id)
        return rule

    def delete(self, rule_id: str) -> None:
        deleted = self.pool.execute_command("DELETE FROM pipeline_rule WHERE id = %s", (rule_id,))
        if deleted == 0:
            raise RecordNotFoundError("Rule", rule_id)

    @staticmethod
    def _params(rule: PipelineRule) -> dict[str, Any]:
        params = rule.model_dump()
        params["config"] = Jsonb(rule.config)
        return params


class PostgresAliasStore(AliasStore):
    """Aliases in the asset_column_alias table, unique on csv_alias."""

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool

    def list_aliases(self) -> list[ColumnAlias]:
        rows = self.pool.execute_query(
            f"SELECT {ALIAS_COLUMNS} FROM asset_column_alias ORDER BY asset_field, csv_alias"
        )
        return [ColumnAlias.model_validate(row) for row in rows]

    def get(self, alias_id: str) -> ColumnAlias:
        rows = self.pool.execute_query(
            f"SELECT {ALIAS_COLUMNS} FROM asset_column_alias WHERE id = %s", (alias_id,)
        )
        if not rows:
            raise RecordNotFoundError("Alias", alias_id)
        return ColumnAlias.model_validate(rows[0])

    def get_by_alias(self, csv_alias: str) -> ColumnAlias | None:
        rows = self.pool.execute_query(
            f"SELECT {ALIAS_COLUMNS} FROM asset_column_alias WHERE csv_alias = %s", (csv_alias,)
        )
        return ColumnAlias.model_validate(rows[0]) if rows else None

    def upsert(self, alias: ColumnAlias) -> ColumnAlias:
        with self.pool.get_connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        INSERT INTO asset_column_alias (
                            id, asset_field, csv_alias, confidence, created_at, updated_at, created_by
                        ) VALUES (
                            %(id)s, %(asset_field)s, %(csv_alias)s, %(confidence)s,
                            %(created_at)s, %(updated_at)s, %(created_by)s
                        )
                        ON CONFLICT (csv_alias) DO UPDATE SET
                            asset_field = EXCLUDED.asset_field,
                            confidence = EXCLUDED.confidence,
                            updated_at = NOW()
                        RETURNING {ALIAS_COLUMNS}
                        """,
                        alias.model_dump(),
                    )
                    row = cur.fetchone()
        return ColumnAlias.model_validate(row)

    def update(self, alias: ColumnAlias) -> ColumnAlias:
        try:
            updated = self.pool.execute_command(
                """
                UPDATE asset_column_alias SET
                    asset_field = %(asset_field)s, csv_alias = %(csv_alias)s,
                    confidence = %(confidence)s, updated_at = %(updated_at)s
                WHERE id = %(id)s
                """,
                alias.model_dump(),
            )
        except psycopg.errors.UniqueViolation as e:
            raise ValueError(f"Alias '{alias.csv_alias}' already exists") from e
        if updated == 0:
            raise RecordNotFoundError("Alias", alias.id)
        return alias

    def delete(self, alias_id: str) -> None:
        deleted = self.pool.execute_command("DELETE FROM asset_column_alias WHERE id = %s", (alias_id,))
        if deleted == 0:
            raise RecordNotFoundError("Alias", alias_id)


class PostgresJobStore(JobStore):
    """Jobs in the import_job table."""

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool

    def insert(self, job: ImportJob) -> ImportJob:
        self.pool.execute_command(
            """
            INSERT INTO import_job (
                id, file_id, status, total_rows, processed_rows, error_rows, errors,
                started_at, completed_at, created_at, created_by
            ) VALUES (
                %(id)s, %(file_id)s, %(status)s, %(total_rows)s, %(processed_rows)s, %(error_rows)s,
                %(errors)s, %(started_at)s, %(completed_at)s, %(created_at)s, %(created_by)s
            )
            """,
            self._params(job),
        )
        return job

    def get(self, job_id: str) -> ImportJob:
        rows = self.pool.execute_query(f"SELECT {JOB_COLUMNS} FROM import_job WHERE id = %s", (job_id,))
        if not rows:
            raise RecordNotFoundError("Job", job_id)
        return ImportJob.model_validate(rows[0])

    def save(self, job: ImportJob) -> ImportJob:
        updated = self.pool.execute_command(
            """
            UPDATE import_job SET
                status = %(status)s, total_rows = %(total_rows)s,
                processed_rows = %(processed_rows)s, error_rows = %(error_rows)s,
                errors = %(errors)s, started_at = %(started_at)s, completed_at = %(completed_at)s
            WHERE id = %(id)s
            """,
            self._params(job),
        )
        if updated == 0:
            raise RecordNotFoundError("Job", job.id)
        return job

    def list_jobs(self, limit: int = 50, offset: int = 0) -> list[ImportJob]:
        rows = self.pool.execute_query(
            f"SELECT {JOB_COLUMNS} FROM import_job ORDER BY created_at DESC LIMIT %s OFFSET %s",
            (limit, offset),
        )
        return [ImportJob.model_validate(row) for row in rows]

    def delete_older_than(self, cutoff: datetime | None) -> list[str]:
        # phase results go with their job (ON DELETE CASCADE)
        conditions = ["status = ANY(%(statuses)s)"]
        params: dict[str, Any] = {"statuses": list(TERMINAL_JOB_STATUSES)}
        if cutoff is not None:
            conditions.append("completed_at < %(cutoff)s")
            params["cutoff"] = cutoff

        with self.pool.get_connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute(
                        f"DELETE FROM import_job WHERE {' AND '.join(conditions)} RETURNING id",
                        params,
                    )
                    deleted = [row["id"] for row in cur.fetchall()]
        logger.info(f"Deleted {len(deleted)} finished import job(s)")
        return deleted

    @staticmethod
    def _params(job: ImportJob) -> dict[str, Any]:
        params = job.model_dump()
        params["errors"] = Jsonb(job.errors)
        return params


class PostgresPhaseResultStore(PhaseResultStore):
    """Phase diagnostics in the phase_result table."""

    JSON_FIELDS = ("rules_applied", "input_sample", "output_sample", "transformations", "errors", "warnings")

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool

    def save(self, result: PhaseResult) -> None:
        if result.job_id is None:
            raise ValueError("Phase results must belong to a job")

        params = result.model_dump(mode="json")
        for field in self.JSON_FIELDS:
            params[field] = Jsonb(params[field])
        params["started_at"] = result.started_at
        params["completed_at"] = result.completed_at

        try:
            self.pool.execute_command(
                """
                INSERT INTO phase_result (
                    job_id, phase, success, rows_in, rows_out, rows_modified, rows_failed,
                    rules_applied, input_sample, output_sample, transformations, errors, warnings,
                    started_at, completed_at, duration_ms
                ) VALUES (
                    %(job_id)s, %(phase)s, %(success)s, %(rows_in)s, %(rows_out)s, %(rows_modified)s,
                    %(rows_failed)s, %(rules_applied)s, %(input_sample)s, %(output_sample)s,
                    %(transformations)s, %(errors)s, %(warnings)s,
                    %(started_at)s, %(completed_at)s, %(duration_ms)s
                )
                """,
                params,
            )
        except psycopg.DatabaseError as e:
            logger.error(f"Failed to save {result.phase} result for job {result.job_id}: {e}")
            raise

    def list_for_job(self, job_id: str) -> list[PhaseResult]:
        rows = self.pool.execute_query(
            """
            SELECT job_id, phase, success, rows_in, rows_out, rows_modified, rows_failed,
                   rules_applied, input_sample, output_sample, transformations, errors, warnings,
                   started_at, completed_at, duration_ms
            FROM phase_result
            WHERE job_id = %s
            ORDER BY id
            """,
            (job_id,),
        )
        return [PhaseResult.model_validate(row) for row in rows]

    def delete_for_jobs(self, job_ids: list[str]) -> int:
        if not job_ids:
            return 0
        return self.pool.execute_command("DELETE FROM phase_result WHERE job_id = ANY(%s)", (job_ids,))
