"""
Phase orchestrator: runs EXTRACT → VALIDATE → CLEAN → TRANSFORM → MAP → LOAD.

Each phase gets the previous phase's rows and produces a PhaseResult with
samples, value changes, errors and timings. Row-level problems never stop a
run; only a PipelineAbort (unreadable or empty file, missing required
headers), a cancellation or an unexpected error does, and then LOAD never
runs and the job fails.
"""

import time
from datetime import datetime
from typing import Any

from asset_etl.config import PipelineSettings
from asset_etl.core.aliases import AliasResolver
from asset_etl.core.models import (
    ColumnAlias,
    OrchestrationResult,
    OrchestrationSummary,
    PhaseResult,
    PipelineRow,
    PipelineRule,
    RowErrorLog,
)
from asset_etl.core.rules import RuleEngine
from asset_etl.observability.logger import get_logger, log_operation
from asset_etl.observability.metrics import phase_duration_seconds, record_phase, track_duration
from asset_etl.readers.base import RowSource
from asset_etl.warehouse.stores import AssetStore, PhaseResultStore

from .job_tracker import JobTracker
from .phases import (
    DEFAULT_PHASES,
    CancellationToken,
    PhaseContext,
    PhaseProcessor,
    PipelineAbort,
    PipelineCancelled,
)

logger = get_logger(__name__)


class PhaseOrchestrator:
    """
    Drives one pipeline run over a row source.

    Example:
        >>> orchestrator = PhaseOrchestrator(asset_store=InMemoryAssetStore())
        >>> result = orchestrator.run(InMemoryRowSource(records), rules, aliases)
        >>> result.summary.loaded_rows
        2
    """

    def __init__(
        self,
        asset_store: AssetStore | None = None,
        job_tracker: JobTracker | None = None,
        phase_result_store: PhaseResultStore | None = None,
        settings: PipelineSettings | None = None,
        phases: list[PhaseProcessor] | None = None,
    ):
        """
        Args:
            asset_store: Where LOAD writes assets (and reads existing ones in dry runs)
            job_tracker: Tracker updated when a run belongs to a job
            phase_result_store: Where phase diagnostics of job runs are kept
            settings: Sample and diagnostics limits
            phases: Phase processors, defaults to the six standard phases
        """
        self.asset_store = asset_store
        self.job_tracker = job_tracker
        self.phase_result_store = phase_result_store
        self.settings = settings or PipelineSettings()
        self.phases = phases if phases is not None else [phase_class() for phase_class in DEFAULT_PHASES]

    def run(
        self,
        source: RowSource,
        rules: list[PipelineRule | dict[str, Any]],
        aliases: list[ColumnAlias],
        job_id: str | None = None,
        dry_run: bool = False,
        cancel: CancellationToken | None = None,
    ) -> OrchestrationResult:
        """
        Run every phase over the source.

        Args:
            source: Row source for EXTRACT
            rules: Rule snapshot for the run
            aliases: Column alias snapshot for the run
            job_id: Job to update; None for unattached and dry runs
            dry_run: Plan LOAD writes without executing them
            cancel: Token checked between phases and between LOAD groups

        Returns:
            OrchestrationResult with every phase result produced
        """
        cancel = cancel or CancellationToken()
        tracked = job_id is not None and self.job_tracker is not None and not dry_run
        errors = RowErrorLog()
        result = OrchestrationResult(success=False, job_id=job_id, dry_run=dry_run)
        context: PhaseContext | None = None
        dropped = 0

        if tracked:
            self.job_tracker.mark_running(job_id)

        try:
            with log_operation("Pipeline run", logger=logger, job_id=job_id, dry_run=dry_run, source=source.name):
                context = PhaseContext(
                    engine=RuleEngine(rules),
                    resolver=AliasResolver(aliases, strategy=self.settings.alias_strategy),
                    errors=errors,
                    settings=self.settings,
                    source=source,
                    asset_store=self.asset_store,
                    job_id=job_id,
                    dry_run=dry_run,
                    cancel=cancel,
                    on_progress=self._progress_callback(job_id) if tracked else None,
                )

                rows: list[PipelineRow] = []
                for phase in self.phases:
                    cancel.raise_if_cancelled(phase.phase)
                    if phase.phase == "LOAD":
                        result.final_rows = [dict(row.data) for row in rows]

                    rows, phase_dropped = self._run_phase(phase, rows, context, result)
                    dropped += len(phase_dropped)

                    if phase.phase == "EXTRACT":
                        result.summary.total_rows = len(rows)
                        if tracked:
                            self.job_tracker.set_total_rows(job_id, len(rows))
                    context.report_rows(phase_dropped)

            result.success = True
        except PipelineAbort as e:
            result.error = e.message
        except PipelineCancelled:
            logger.warning(f"Run cancelled (job {job_id})")
            result.error = "cancelled"
        except Exception as e:
            logger.error(f"Unexpected error in pipeline run (job {job_id}): {e}", exc_info=True)
            result.error = f"Unexpected error: {e}"

        self._summarize(result, errors, context, dropped)

        if tracked:
            file_errors = [error.describe() for error in errors if error.row_number is None]
            if file_errors:
                self.job_tracker.record_progress(job_id, 0, 0, file_errors)
            self.job_tracker.finish(job_id, "COMPLETED" if result.success else "FAILED", error=result.error)

        return result

    def _run_phase(
        self,
        phase: PhaseProcessor,
        rows: list[PipelineRow],
        context: PhaseContext,
        result: OrchestrationResult,
    ) -> tuple[list[PipelineRow], list[int]]:
        name = phase.phase
        mark = len(context.errors)
        sample_size = self.settings.sample_size
        phase_result = PhaseResult(
            job_id=context.job_id,
            phase=name,
            rows_in=len(rows),
            input_sample=[dict(row.data) for row in rows[:sample_size]],
            started_at=datetime.utcnow(),
        )
        start = time.perf_counter()

        try:
            with log_operation(f"Phase {name}", logger=logger, job_id=context.job_id, phase=name):
                with track_duration(phase_duration_seconds, phase=name):
                    output = phase.run(rows, context)
        except Exception as e:
            message = str(e) if isinstance(e, (PipelineAbort, PipelineCancelled)) else f"Unexpected error: {e}"
            phase_result.success = False
            phase_result.errors = [error.describe() for error in context.errors.since(mark)] + [message]
            self._finish_phase(phase_result, start, result)
            raise

        new_errors = context.errors.since(mark)
        failed_rows = {error.row_number for error in new_errors if error.row_number is not None}
        limit = self.settings.max_transformations

        phase_result.rows_out = len(output.rows)
        phase_result.rows_modified = output.modified_rows
        phase_result.rows_failed = len(failed_rows)
        phase_result.rules_applied = output.rules_applied
        phase_result.output_sample = [dict(row.data) for row in output.rows[:sample_size]]
        phase_result.transformations = output.changes[:limit]
        phase_result.errors = [error.describe() for error in new_errors]
        phase_result.warnings = list(output.warnings)
        if len(output.changes) > limit:
            phase_result.warnings.append(f"{len(output.changes) - limit} more value change(s) not shown")

        record_phase(
            name,
            rows_ok=max(len(output.rows) - len(failed_rows), 0),
            rows_failed=len(failed_rows),
            rows_dropped=len(output.dropped_rows),
        )
        self._finish_phase(phase_result, start, result)
        return output.rows, output.dropped_rows

    def _finish_phase(self, phase_result: PhaseResult, start: float, result: OrchestrationResult) -> None:
        phase_result.completed_at = datetime.utcnow()
        phase_result.duration_ms = int((time.perf_counter() - start) * 1000)
        result.phases.append(phase_result)
        if phase_result.job_id is not None and self.phase_result_store is not None and not result.dry_run:
            self.phase_result_store.save(phase_result)

    @staticmethod
    def _summarize(
        result: OrchestrationResult,
        errors: RowErrorLog,
        context: PhaseContext | None,
        dropped: int,
    ) -> None:
        summary = OrchestrationSummary(
            phases_completed=sum(1 for phase in result.phases if phase.success),
            total_duration_ms=sum(phase.duration_ms for phase in result.phases),
            total_rows=result.summary.total_rows,
            dropped_rows=dropped,
            error_rows=len(errors.rows_with_errors()),
        )
        if context is not None:
            result.field_mappings = context.field_mappings
            report = context.load_report
            if report is not None:
                summary.inserted_rows = report.inserted
                summary.updated_rows = report.updated
                summary.loaded_rows = report.inserted + report.updated
                summary.skipped_rows = report.skipped
                result.planned_writes = list(report.writes)

        result.summary = summary
        result.row_errors = errors.errors

    def _progress_callback(self, job_id: str):
        def on_progress(processed: int, error_rows: int, messages: list[str]) -> None:
            self.job_tracker.record_progress(job_id, processed, error_rows, messages)
        return on_progress
