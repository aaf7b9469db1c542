"""
ImportJob model tracking one execution of the pipeline over an uploaded file.
"""

from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from asset_etl.core.constants import TERMINAL_JOB_STATUSES, JobStatus


class ImportJob(BaseModel):
    """
    Progress and outcome of an import.

    Counters only grow during a run and always satisfy
    error_rows <= processed_rows <= total_rows.

    Attributes:
        id: Job identifier
        file_id: Uploaded file the job processes
        status: PENDING, RUNNING, COMPLETED or FAILED
        total_rows: Rows extracted from the file
        processed_rows: Rows that have reached a final outcome
        error_rows: Processed rows with at least one error
        errors: Bounded list of human-readable error messages
        started_at: When the job entered RUNNING
        completed_at: When the job reached a terminal status
        created_at: When the job was created
        created_by: Optional user that started the import
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    file_id: str = Field(..., min_length=1)
    status: JobStatus = "PENDING"
    total_rows: int = Field(default=0, ge=0)
    processed_rows: int = Field(default=0, ge=0)
    error_rows: int = Field(default=0, ge=0)
    errors: list[str] = Field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    created_by: str | None = None

    @model_validator(mode="after")
    def check_counters(self) -> "ImportJob":
        if self.processed_rows > self.total_rows:
            raise ValueError(
                f"processed_rows ({self.processed_rows}) exceeds total_rows ({self.total_rows})"
            )
        if self.error_rows > self.processed_rows:
            raise ValueError(
                f"error_rows ({self.error_rows}) exceeds processed_rows ({self.processed_rows})"
            )
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    class Config:
        json_schema_extra = {
            "example": {
                "file_id": "upload-2024-001",
                "status": "COMPLETED",
                "total_rows": 100,
                "processed_rows": 100,
                "error_rows": 2,
                "errors": ["Row 14 [VALIDATE] REQUIRED_FIELD 'Asset Tag': Field value is null"],
            }
        }
