"""
Per-phase diagnostics and the overall orchestration result.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from asset_etl.core.constants import PipelinePhase

from .asset import AssetUpsert
from .column_alias import FieldMappingReport
from .row import RowError


class FieldChange(BaseModel):
    """A single value rewritten by a rule."""

    row_number: int
    field: str
    before: Any = None
    after: Any = None
    rule: str


class PhaseResult(BaseModel):
    """
    Diagnostic record of one phase execution.

    Attributes:
        job_id: Job the phase ran for (None for dry runs)
        phase: Phase name
        success: False only when the phase aborted the run
        rows_in: Rows received
        rows_out: Rows emitted
        rows_modified: Rows with at least one changed value
        rows_failed: Rows that picked up an error in this phase
        rules_applied: Names of rules that ran, in order
        input_sample: First rows received
        output_sample: First rows emitted
        transformations: Bounded list of value changes
        errors: Error messages raised in this phase
        warnings: Warning messages raised in this phase
        started_at: Phase start
        completed_at: Phase end
        duration_ms: Elapsed time in milliseconds
    """

    job_id: str | None = None
    phase: PipelinePhase
    success: bool = True
    rows_in: int = 0
    rows_out: int = 0
    rows_modified: int = 0
    rows_failed: int = 0
    rules_applied: list[str] = Field(default_factory=list)
    input_sample: list[dict[str, Any]] = Field(default_factory=list)
    output_sample: list[dict[str, Any]] = Field(default_factory=list)
    transformations: list[FieldChange] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None
    duration_ms: int = 0


class OrchestrationSummary(BaseModel):
    """Run-level totals."""

    phases_completed: int = 0
    total_duration_ms: int = 0
    total_rows: int = 0
    loaded_rows: int = 0
    inserted_rows: int = 0
    updated_rows: int = 0
    skipped_rows: int = 0
    dropped_rows: int = 0
    error_rows: int = 0


class OrchestrationResult(BaseModel):
    """
    Outcome of a full pipeline run.

    Attributes:
        success: False when the run aborted or was cancelled
        job_id: Job the run belongs to (None for dry runs)
        dry_run: Whether LOAD only planned its writes
        phases: Phase results in execution order
        summary: Run totals
        final_rows: Rows as handed to LOAD (asset field names)
        field_mappings: Header resolution computed by MAP
        row_errors: Every row error of the run, in order
        planned_writes: Asset writes decided by LOAD
        error: Abort or cancellation message
    """

    success: bool
    job_id: str | None = None
    dry_run: bool = False
    phases: list[PhaseResult] = Field(default_factory=list)
    summary: OrchestrationSummary = Field(default_factory=OrchestrationSummary)
    final_rows: list[dict[str, Any]] = Field(default_factory=list)
    field_mappings: FieldMappingReport | None = None
    row_errors: list[RowError] = Field(default_factory=list)
    planned_writes: list[AssetUpsert] = Field(default_factory=list)
    error: str | None = None

    def phase(self, name: str) -> PhaseResult | None:
        for result in self.phases:
            if result.phase == name:
                return result
        return None
