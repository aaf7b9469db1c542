"""
Pipeline service: the operations behind the pipeline's HTTP endpoints.

Every method takes and returns JSON-compatible values so a web layer or the
CLIs can call it directly.
"""

from datetime import datetime, timedelta
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError

from asset_etl.config import PipelineSettings
from asset_etl.core.aliases import AliasResolver
from asset_etl.core.constants import (
    DEFAULT_CLEANUP_HOURS,
    MAX_ERROR_DISPLAY,
    PREVIEW_ROWS,
    PREVIEW_VALUE_LENGTH,
    VALIDATION_SAMPLE_ROWS,
)
from asset_etl.core.models import ColumnAlias, RowErrorLog, TabularData
from asset_etl.core.rules import RuleEngine, validate_rule_definition
from asset_etl.observability.logger import get_logger
from asset_etl.readers.base import InMemoryRowSource, RowSource
from asset_etl.utils.validation import (
    InputValidationError,
    validate_identifier,
    validate_limit,
    validate_offset,
)
from asset_etl.warehouse.stores import AliasStore, AssetStore, PhaseResultStore, RuleStore

from .export import export_phase_results, phase_results_document
from .fixtures import fixture_rows
from .job_tracker import JobTracker
from .orchestrator import PhaseOrchestrator
from .phases import CancellationToken, apply_overrides, normalize_headers
from .phases.extract import PRE_NORMALIZATION_RULES

logger = get_logger(__name__)

SourceFactory = Callable[[str], RowSource]

# fields a rule update may not change
IMMUTABLE_RULE_FIELDS = ("id", "created_at", "created_by")

# fields an alias update may change
MUTABLE_ALIAS_FIELDS = ("asset_field", "csv_alias", "confidence")


class PipelineService:
    """
    Facade over the rule, alias, job and asset stores and the orchestrator.
    """

    def __init__(
        self,
        rule_store: RuleStore,
        alias_store: AliasStore,
        job_tracker: JobTracker,
        phase_result_store: PhaseResultStore,
        asset_store: AssetStore,
        settings: PipelineSettings | None = None,
        source_factory: SourceFactory | None = None,
    ):
        """
        Args:
            rule_store: Pipeline rules
            alias_store: Column aliases
            job_tracker: Import job tracking
            phase_result_store: Phase diagnostics of jobs
            asset_store: Asset persistence used by LOAD
            settings: Pipeline settings
            source_factory: Builds a row source from an uploaded file id
        """
        self.rule_store = rule_store
        self.alias_store = alias_store
        self.job_tracker = job_tracker
        self.phase_result_store = phase_result_store
        self.asset_store = asset_store
        self.settings = settings or PipelineSettings()
        self.source_factory = source_factory
        self.orchestrator = PhaseOrchestrator(
            asset_store=asset_store,
            job_tracker=job_tracker,
            phase_result_store=phase_result_store,
            settings=self.settings,
        )

    # =======================
    # RULES
    # =======================

    def list_rules(self, phase: str | None = None) -> list[dict[str, Any]]:
        return [rule.model_dump(mode="json") for rule in self.rule_store.list_rules(phase=phase)]

    def get_rule(self, rule_id: str) -> dict[str, Any]:
        rule_id = validate_identifier(rule_id, "rule id")
        return self.rule_store.get(rule_id).model_dump(mode="json")

    def create_rule(self, payload: dict[str, Any], created_by: str | None = None) -> dict[str, Any]:
        """
        Validate and store a new rule.

        Raises:
            RuleConfigError: If the rule or its config is invalid
        """
        payload = {key: value for key, value in payload.items() if key not in IMMUTABLE_RULE_FIELDS}
        payload["created_by"] = created_by
        rule = self.rule_store.create(validate_rule_definition(payload))
        logger.info(f"Rule '{rule.name}' created ({rule.id})")
        return rule.model_dump(mode="json")

    def update_rule(self, rule_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        """
        Apply a partial update to a rule; the merged rule is validated before it is stored.

        Raises:
            RecordNotFoundError: If the rule does not exist
            RuleConfigError: If the updated rule is invalid
        """
        rule_id = validate_identifier(rule_id, "rule id")
        current = self.rule_store.get(rule_id)
        merged = current.model_dump()
        merged.update({key: value for key, value in changes.items() if key not in IMMUTABLE_RULE_FIELDS})
        merged["updated_at"] = datetime.utcnow()

        rule = self.rule_store.update(validate_rule_definition(merged))
        logger.info(f"Rule '{rule.name}' updated ({rule.id})")
        return rule.model_dump(mode="json")

    def delete_rule(self, rule_id: str) -> None:
        rule_id = validate_identifier(rule_id, "rule id")
        self.rule_store.delete(rule_id)
        logger.info(f"Rule {rule_id} deleted")

    # =======================
    # ALIASES
    # =======================

    def list_aliases(self) -> list[dict[str, Any]]:
        return [alias.model_dump(mode="json") for alias in self.alias_store.list_aliases()]

    def upsert_alias(self, payload: dict[str, Any], created_by: str | None = None) -> dict[str, Any]:
        """
        Create an alias or update the alias with the same csv_alias.

        Raises:
            InputValidationError: If the payload is not a valid alias
        """
        try:
            alias = ColumnAlias.model_validate({**payload, "created_by": created_by})
        except PydanticValidationError as e:
            raise InputValidationError(f"Invalid column alias: {e}") from e
        return self.alias_store.upsert(alias).model_dump(mode="json")

    def update_alias(self, alias_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        """
        Change the asset field, csv alias or confidence of an alias.

        Raises:
            RecordNotFoundError: If the alias does not exist
            InputValidationError: If the changes are invalid or the csv alias is taken
        """
        alias_id = validate_identifier(alias_id, "alias id")
        current = self.alias_store.get(alias_id)
        merged = current.model_dump()
        merged.update({key: value for key, value in changes.items() if key in MUTABLE_ALIAS_FIELDS})
        merged["updated_at"] = datetime.utcnow()

        try:
            alias = self.alias_store.update(ColumnAlias.model_validate(merged))
        except PydanticValidationError as e:
            raise InputValidationError(f"Invalid column alias: {e}") from e
        except ValueError as e:
            raise InputValidationError(str(e)) from e
        logger.info(f"Alias '{alias.csv_alias}' updated ({alias.id})")
        return alias.model_dump(mode="json")

    def delete_alias(self, alias_id: str) -> None:
        alias_id = validate_identifier(alias_id, "alias id")
        self.alias_store.delete(alias_id)

    # =======================
    # JOBS
    # =======================

    def list_jobs(self, limit: int = 50, offset: int = 0) -> list[dict[str, Any]]:
        limit = validate_limit(limit)
        offset = validate_offset(offset)
        return [job.model_dump(mode="json") for job in self.job_tracker.list_jobs(limit=limit, offset=offset)]

    def get_job(self, job_id: str) -> dict[str, Any]:
        job_id = validate_identifier(job_id, "job id")
        return self.job_tracker.get(job_id).model_dump(mode="json")

    def download_phase_results(self, job_id: str) -> tuple[str, bytes]:
        """
        Returns:
            Tuple of (filename, JSON document bytes)

        Raises:
            RecordNotFoundError: If the job does not exist
        """
        job_id = validate_identifier(job_id, "job id")
        job = self.job_tracker.get(job_id)
        return export_phase_results(job, self.phase_result_store.list_for_job(job_id))

    def get_phase_results(self, job_id: str) -> dict[str, Any]:
        """
        Raises:
            RecordNotFoundError: If the job does not exist
        """
        job_id = validate_identifier(job_id, "job id")
        job = self.job_tracker.get(job_id)
        return phase_results_document(job, self.phase_result_store.list_for_job(job_id))

    def cleanup_jobs(self, older_than_hours: float | None = DEFAULT_CLEANUP_HOURS) -> dict[str, Any]:
        """
        Delete finished jobs and their phase results.

        Args:
            older_than_hours: Only jobs that finished at least this long ago;
                None deletes every COMPLETED and FAILED job

        Raises:
            InputValidationError: If older_than_hours is negative
        """
        cutoff = None
        if older_than_hours is not None:
            if older_than_hours < 0:
                raise InputValidationError("older_than_hours must be >= 0")
            cutoff = datetime.utcnow() - timedelta(hours=older_than_hours)

        deleted = self.job_tracker.delete_finished(cutoff)
        self.phase_result_store.delete_for_jobs(deleted)

        scope = "finished" if cutoff is None else f"finished more than {older_than_hours:g}h ago"
        logger.info(f"Cleaned up {len(deleted)} job(s) {scope}")
        return {"message": f"Deleted {len(deleted)} job(s) {scope}", "jobsDeleted": len(deleted)}

    # =======================
    # PIPELINE RUNS
    # =======================

    def test_orchestrator(
        self,
        rows: list[dict[str, Any]] | None = None,
        include_second_row: bool = True,
    ) -> dict[str, Any]:
        """
        Dry-run the pipeline with the current rules and aliases.

        Args:
            rows: Rows to run; defaults to the built-in fixture rows
            include_second_row: Whether the fixture includes its second row

        Returns:
            The full orchestration result; LOAD writes are planned, not executed
        """
        records = rows if rows is not None else fixture_rows(include_second_row)
        result = self.orchestrator.run(
            InMemoryRowSource(records=records, name="fixture"),
            self.rule_store.snapshot(),
            self.alias_store.snapshot(),
            dry_run=True,
        )
        response = result.model_dump(mode="json")
        if result.field_mappings is not None:
            response["field_mappings"] = result.field_mappings.to_response()
        return response

    def test_rules(self, record: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Run the current rules over one sample row and show it before and after.

        Args:
            record: Row to run; defaults to the first fixture row

        Returns:
            Dictionary with the row before and after the rules, the rules that
            ran and the errors and warnings they raised
        """
        before = dict(record) if record is not None else fixture_rows(include_second=False)[0]
        rules = self.rule_store.snapshot()
        result = self.orchestrator.run(
            InMemoryRowSource(records=[before], name="sample"),
            rules,
            self.alias_store.snapshot(),
            dry_run=True,
        )

        by_name = {rule.name: rule for rule in rules}
        applied = [name for phase in result.phases for name in phase.rules_applied]
        warnings = [warning for phase in result.phases for warning in phase.warnings]
        errors = [error.describe() for error in result.row_errors]
        if result.error:
            errors.append(result.error)

        return {
            "success": result.success,
            "testData": {
                "before": before,
                "after": result.final_rows[0] if result.final_rows else {},
            },
            "rulesApplied": [
                {
                    "name": name,
                    "type": by_name[name].type,
                    "phase": by_name[name].phase,
                    "target": by_name[name].target,
                }
                for name in dict.fromkeys(applied)
                if name in by_name
            ],
            "processing": {"errors": errors, "warnings": warnings},
        }

    def preview_file(self, file_id: str) -> dict[str, Any]:
        """
        First rows of an uploaded file, without running any phase.

        Long values are cut to PREVIEW_VALUE_LENGTH characters.

        Returns:
            Dictionary with the preview rows, the column names and the file's row count

        Raises:
            InputValidationError: If the file id is invalid
            FileNotFoundError: If the file does not exist
            SourceReadError: If the file cannot be read
        """
        table = self._read_table(file_id, RuleEngine(self.rule_store.snapshot()))
        headers, _ = normalize_headers(table.headers)

        def shorten(value: Any) -> Any:
            if isinstance(value, str) and len(value) > PREVIEW_VALUE_LENGTH:
                return value[:PREVIEW_VALUE_LENGTH] + "..."
            return value

        data = [
            {header: shorten(value) for header, value in zip(headers, row)}
            for row in table.rows[:PREVIEW_ROWS]
        ]
        return {"data": data, "columns": headers, "totalRows": len(table.rows)}

    def validate_file(self, file_id: str) -> dict[str, Any]:
        """
        Dry-run an uploaded file through every phase without writing assets or a job.

        Returns:
            Dictionary with row counts, the first errors and samples of valid
            and invalid rows

        Raises:
            InputValidationError: If the file id is invalid
            FileNotFoundError: If the file does not exist
        """
        source = self._source_for(file_id)
        result = self.orchestrator.run(
            source,
            self.rule_store.snapshot(),
            self.alias_store.snapshot(),
            dry_run=True,
        )

        row_errors: dict[int, list[str]] = {}
        for error in result.row_errors:
            if error.row_number is not None:
                row_errors.setdefault(error.row_number, []).append(error.describe())
        valid = [write for write in result.planned_writes if write.row_number not in row_errors]

        errors = [error.describe() for error in result.row_errors]
        if result.error:
            errors.append(result.error)

        return {
            "isValid": result.success and not errors,
            "totalRows": result.summary.total_rows,
            "validRows": len(valid),
            "invalidRows": len(row_errors),
            "droppedRows": result.summary.dropped_rows,
            "errors": errors[:MAX_ERROR_DISPLAY],
            "sampleValidData": [
                {"rowNumber": write.row_number, "mappedData": write.values}
                for write in valid[:VALIDATION_SAMPLE_ROWS]
            ],
            "sampleInvalidData": [
                {"rowNumber": row_number, "errors": messages}
                for row_number, messages in list(row_errors.items())[:VALIDATION_SAMPLE_ROWS]
            ],
        }

    def get_field_mappings(self, file_id: str) -> dict[str, Any]:
        """
        Resolve the headers of an uploaded file against the aliases and FIELD_MAPPING rules.

        Raises:
            InputValidationError: If the file id is invalid
            FileNotFoundError: If the file does not exist
            SourceReadError: If the file cannot be read
        """
        engine = RuleEngine(self.rule_store.snapshot())
        errors = RowErrorLog()
        table = self._read_table(file_id, engine, errors)
        headers, _ = normalize_headers(table.headers)

        overrides: dict[str, str] = {}
        for _, config in engine.directive_configs("MAP", "FIELD_MAPPING", errors):
            overrides.update(config.mappings)

        resolver = AliasResolver(self.alias_store.snapshot(), strategy=self.settings.alias_strategy)
        report = apply_overrides(resolver.resolve_headers(headers), headers, overrides)
        return report.to_response()

    def import_file(
        self,
        file_id: str,
        created_by: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> dict[str, Any]:
        """
        Import an uploaded file as a tracked job.

        Returns:
            Dictionary with the final job and the run summary
        """
        file_id = validate_identifier(file_id, "file id")
        job_id = self.job_tracker.create(file_id, created_by=created_by)

        try:
            source = self._source_for(file_id)
        except (FileNotFoundError, InputValidationError) as e:
            logger.error(f"Job {job_id}: cannot open file {file_id}: {e}")
            job = self.job_tracker.finish(job_id, "FAILED", error=str(e))
            return {"job": job.model_dump(mode="json"), "summary": None, "error": str(e)}

        result = self.orchestrator.run(
            source,
            self.rule_store.snapshot(),
            self.alias_store.snapshot(),
            job_id=job_id,
            cancel=cancel,
        )
        job = self.job_tracker.get(job_id)
        return {
            "job": job.model_dump(mode="json"),
            "summary": result.summary.model_dump(mode="json"),
            "error": result.error,
        }

    def _source_for(self, file_id: str) -> RowSource:
        if self.source_factory is None:
            raise RuntimeError("No file source configured")
        return self.source_factory(validate_identifier(file_id, "file id"))

    def _read_table(self, file_id: str, engine: RuleEngine, errors: RowErrorLog | None = None) -> TabularData:
        """Read an uploaded file and decode it with the EXTRACT encoding and delimiter rules."""
        table = self._source_for(file_id).read()
        errors = errors if errors is not None else RowErrorLog()
        return engine.apply_table("EXTRACT", table, errors, rule_types=PRE_NORMALIZATION_RULES).table
