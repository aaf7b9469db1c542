"""
Job tracker: lifecycle and counters of import jobs.

PENDING → RUNNING → COMPLETED | FAILED. Counters only grow and always satisfy
error_rows <= processed_rows <= total_rows. A job is FAILED only when the run
itself could not finish; row errors produce a COMPLETED job with error_rows > 0.
"""

import threading
from datetime import datetime
from typing import Literal

from asset_etl.core.constants import DEFAULT_MAX_JOB_ERRORS
from asset_etl.core.models import ImportJob
from asset_etl.observability.logger import get_logger
from asset_etl.observability.metrics import increment_counter, jobs_running, jobs_total
from asset_etl.warehouse.stores import JobStore

logger = get_logger(__name__)

JobOutcome = Literal["COMPLETED", "FAILED"]

ALLOWED_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "PENDING": ("RUNNING", "FAILED"),
    "RUNNING": ("COMPLETED", "FAILED"),
    "COMPLETED": (),
    "FAILED": (),
}


class JobStateError(Exception):
    """Raised on an invalid job transition or counter update."""

    def __init__(self, job_id: str, message: str):
        self.job_id = job_id
        self.message = message
        super().__init__(f"Job {job_id}: {message}")


class JobTracker:
    """
    Tracks import jobs in a JobStore.

    Updates of one job are serialized with a lock so progress can be recorded
    from LOAD while readers poll the job.
    """

    def __init__(self, job_store: JobStore, max_errors: int = DEFAULT_MAX_JOB_ERRORS):
        """
        Args:
            job_store: Store holding the jobs
            max_errors: Error messages kept on a job; the rest are counted
        """
        self.job_store = job_store
        self.max_errors = max_errors
        self._lock = threading.Lock()
        # job id -> error messages not stored because the list was full
        self._overflow: dict[str, int] = {}

    def create(self, file_id: str, created_by: str | None = None) -> str:
        """
        Create a PENDING job for an uploaded file.

        Returns:
            The new job id
        """
        job = self.job_store.insert(ImportJob(file_id=file_id, created_by=created_by))
        logger.info(f"Created import job {job.id} for file {file_id}")
        return job.id

    def get(self, job_id: str) -> ImportJob:
        return self.job_store.get(job_id)

    def list_jobs(self, limit: int = 50, offset: int = 0) -> list[ImportJob]:
        return self.job_store.list_jobs(limit=limit, offset=offset)

    def delete_finished(self, cutoff: datetime | None = None) -> list[str]:
        """
        Delete COMPLETED and FAILED jobs that finished before the cutoff.

        PENDING and RUNNING jobs are never deleted.

        Returns:
            Ids of the deleted jobs
        """
        with self._lock:
            deleted = self.job_store.delete_older_than(cutoff)
            for job_id in deleted:
                self._overflow.pop(job_id, None)
        return deleted

    def mark_running(self, job_id: str) -> ImportJob:
        with self._lock:
            job = self._transition(self.job_store.get(job_id), "RUNNING")
            job = job.model_copy(update={"started_at": datetime.utcnow()})
            self.job_store.save(job)
        jobs_running.inc()
        logger.info(f"Job {job_id} is running")
        return job

    def set_total_rows(self, job_id: str, total_rows: int) -> ImportJob:
        """
        Set the row total once EXTRACT knows it.

        Raises:
            JobStateError: If the job is not running or the total is below processed_rows
        """
        with self._lock:
            job = self.job_store.get(job_id)
            if job.status != "RUNNING":
                raise JobStateError(job_id, f"cannot set total rows while {job.status}")
            if total_rows < job.processed_rows:
                raise JobStateError(
                    job_id, f"total_rows {total_rows} is below processed_rows {job.processed_rows}"
                )
            job = job.model_copy(update={"total_rows": total_rows})
            self.job_store.save(job)
        return job

    def record_progress(
        self,
        job_id: str,
        processed_delta: int,
        error_delta: int = 0,
        new_errors: list[str] | None = None,
    ) -> ImportJob:
        """
        Add processed and error rows to a running job.

        Args:
            job_id: Job to update
            processed_delta: Rows that reached a final outcome
            error_delta: Of those, rows with at least one error
            new_errors: Error messages to append (bounded by max_errors)

        Raises:
            JobStateError: If a delta is negative or would break the counter invariants
        """
        if processed_delta < 0 or error_delta < 0:
            raise JobStateError(job_id, "progress deltas must be non-negative")

        with self._lock:
            job = self.job_store.get(job_id)
            if job.status != "RUNNING":
                raise JobStateError(job_id, f"cannot record progress while {job.status}")

            processed = job.processed_rows + processed_delta
            error_rows = job.error_rows + error_delta
            if processed > job.total_rows:
                raise JobStateError(
                    job_id, f"processed_rows {processed} would exceed total_rows {job.total_rows}"
                )
            if error_rows > processed:
                raise JobStateError(job_id, f"error_rows {error_rows} would exceed processed_rows {processed}")

            job = job.model_copy(update={
                "processed_rows": processed,
                "error_rows": error_rows,
                "errors": self._append_errors(job_id, job.errors, new_errors or []),
            })
            self.job_store.save(job)
        return job

    def finish(self, job_id: str, outcome: JobOutcome, error: str | None = None) -> ImportJob:
        """
        Move a job to its terminal status.

        Args:
            job_id: Job to finish
            outcome: COMPLETED or FAILED
            error: Failure reason, stored as the last error message

        Raises:
            JobStateError: If the job already finished or the transition is invalid
        """
        with self._lock:
            job = self.job_store.get(job_id)
            was_running = job.status == "RUNNING"
            job = self._transition(job, outcome)

            errors = list(job.errors)
            overflow = self._overflow.pop(job_id, 0)
            if overflow:
                errors.append(f"... and {overflow} more errors")
            if error:
                errors.append(error)

            job = job.model_copy(update={"errors": errors, "completed_at": datetime.utcnow()})
            self.job_store.save(job)

        if was_running:
            jobs_running.dec()
        increment_counter(jobs_total, 1, status=outcome)
        logger.info(
            f"Job {job_id} {outcome}: {job.processed_rows}/{job.total_rows} rows processed, "
            f"{job.error_rows} with errors"
        )
        return job

    def _transition(self, job: ImportJob, status: str) -> ImportJob:
        if status not in ALLOWED_TRANSITIONS[job.status]:
            raise JobStateError(job.id, f"invalid transition {job.status} -> {status}")
        return job.model_copy(update={"status": status})

    def _append_errors(self, job_id: str, errors: list[str], new_errors: list[str]) -> list[str]:
        room = max(self.max_errors - len(errors), 0)
        kept = errors + new_errors[:room]
        dropped = len(new_errors) - min(room, len(new_errors))
        if dropped:
            self._overflow[job_id] = self._overflow.get(job_id, 0) + dropped
        return kept
