"""
Base classes shared by the pipeline phases.
"""

import threading
from abc import ABC, abstractmethod
from typing import Callable, ClassVar

from pydantic import BaseModel, Field

from asset_etl.config import PipelineSettings
from asset_etl.core.aliases import AliasResolver
from asset_etl.core.models import AssetUpsert, FieldChange, FieldMappingReport, PipelineRow, RowErrorLog
from asset_etl.core.rules import RuleApplication, RuleEngine
from asset_etl.readers.base import RowSource
from asset_etl.warehouse.stores import AssetStore

# processed_delta, error_delta, new error messages
ProgressCallback = Callable[[int, int, list[str]], None]


class PipelineAbort(Exception):
    """Raised by a phase when the run cannot continue (unreadable or empty file, missing headers)."""

    def __init__(self, phase: str, message: str):
        self.phase = phase
        self.message = message
        super().__init__(f"{phase} aborted: {message}")


class PipelineCancelled(Exception):
    """Raised when a run notices its cancellation token."""

    def __init__(self, phase: str | None = None):
        self.phase = phase
        super().__init__("cancelled")


class CancellationToken:
    """Cooperative cancellation flag, checked between phases and between LOAD groups."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, phase: str | None = None) -> None:
        if self._event.is_set():
            raise PipelineCancelled(phase)


class LoadReport(BaseModel):
    """
    Outcome of the LOAD phase.

    Attributes:
        writes: Planned (dry run) or attempted writes, including skips
        inserted: Rows inserted
        updated: Rows updated
        skipped: Rows skipped by conflict resolution
        failed: Rows rejected before or during the write
        groups: Write groups executed
        rolled_back_groups: Groups undone after a failing row
    """

    writes: list[AssetUpsert] = Field(default_factory=list)
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    groups: int = 0
    rolled_back_groups: int = 0


class PhaseContext:
    """
    Everything a phase needs besides its input rows.

    One context is created per run and carries state the later phases read:
    the field mapping report from MAP and the load report from LOAD.
    """

    def __init__(
        self,
        engine: RuleEngine,
        resolver: AliasResolver,
        errors: RowErrorLog | None = None,
        settings: PipelineSettings | None = None,
        source: RowSource | None = None,
        asset_store: AssetStore | None = None,
        job_id: str | None = None,
        dry_run: bool = False,
        cancel: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
    ):
        self.engine = engine
        self.resolver = resolver
        self.errors = errors if errors is not None else RowErrorLog()
        self.settings = settings or PipelineSettings()
        self.source = source
        self.asset_store = asset_store
        self.job_id = job_id
        self.dry_run = dry_run
        self.cancel = cancel or CancellationToken()
        self.on_progress = on_progress

        self.field_mappings: FieldMappingReport | None = None
        self.load_report: LoadReport | None = None

    def report_progress(self, processed: int, error_rows: int = 0, messages: list[str] | None = None) -> None:
        if self.on_progress is not None and (processed or error_rows or messages):
            self.on_progress(processed, error_rows, messages or [])

    def report_rows(self, row_numbers: list[int]) -> None:
        """Report rows as processed, counting those with errors logged so far."""
        if not row_numbers:
            return
        wanted = set(row_numbers)
        row_errors = [error for error in self.errors if error.row_number in wanted]
        error_rows = len({error.row_number for error in row_errors})
        self.report_progress(len(row_numbers), error_rows, [error.describe() for error in row_errors])


class PhaseOutput(BaseModel):
    """
    What a phase produced.

    Attributes:
        rows: Rows handed to the next phase
        rules_applied: Names of rules that ran, in order
        changes: Values rewritten in this phase
        warnings: Non-blocking findings
        dropped_rows: Row numbers removed in this phase
    """

    rows: list[PipelineRow] = Field(default_factory=list)
    rules_applied: list[str] = Field(default_factory=list)
    changes: list[FieldChange] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    dropped_rows: list[int] = Field(default_factory=list)

    @classmethod
    def from_application(cls, application: RuleApplication) -> "PhaseOutput":
        return cls(
            rows=application.rows,
            rules_applied=application.rules_applied,
            changes=application.changes,
            warnings=application.warnings,
            dropped_rows=application.dropped_rows,
        )

    @property
    def modified_rows(self) -> int:
        return len({change.row_number for change in self.changes})


class PhaseProcessor(ABC):
    """
    One step of the pipeline.

    A phase receives the previous phase's rows and returns new rows; it never
    mutates its input. With no active rules a phase passes rows through.
    """

    phase: ClassVar[str]

    @abstractmethod
    def run(self, rows: list[PipelineRow], context: PhaseContext) -> PhaseOutput:
        """
        Execute the phase.

        Raises:
            PipelineAbort: If the run cannot continue
            PipelineCancelled: If cancellation was requested mid-phase
        """
        pass


class RuleDrivenPhase(PhaseProcessor):
    """A phase that is nothing more than its rules applied to the row set."""

    def run(self, rows: list[PipelineRow], context: PhaseContext) -> PhaseOutput:
        application = context.engine.apply_rows(self.phase, rows, context.errors)
        return PhaseOutput.from_application(application)
