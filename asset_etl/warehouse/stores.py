"""
Store interfaces for pipeline state and asset persistence.

Two implementations exist for each store: in-memory (memory.py) for tests and
dry runs, and PostgreSQL (postgres.py, asset_writer.py) for production.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from asset_etl.core.models import AssetUpsert, ColumnAlias, ImportJob, PhaseResult, PipelineRule


class RecordNotFoundError(LookupError):
    """Raised when a record looked up by id does not exist."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} '{record_id}' not found")


class BatchWriteResult(BaseModel):
    """
    Outcome of writing one LOAD group.

    Attributes:
        written: Writes that were committed
        failed: Row number → failure message for writes that did not commit
        rolled_back: True when an atomic group was undone
    """

    written: list[AssetUpsert] = Field(default_factory=list)
    failed: dict[int, str] = Field(default_factory=dict)
    rolled_back: bool = False


class RuleStore(ABC):
    """Persistence for pipeline rules."""

    @abstractmethod
    def list_rules(self, phase: str | None = None, active_only: bool = False) -> list[PipelineRule]:
        """Rules ordered by priority, then creation order."""
        pass

    @abstractmethod
    def get(self, rule_id: str) -> PipelineRule:
        """
        Raises:
            RecordNotFoundError: If the rule does not exist
        """
        pass

    @abstractmethod
    def create(self, rule: PipelineRule) -> PipelineRule:
        pass

    @abstractmethod
    def update(self, rule: PipelineRule) -> PipelineRule:
        """
        Raises:
            RecordNotFoundError: If the rule does not exist
        """
        pass

    @abstractmethod
    def delete(self, rule_id: str) -> None:
        """
        Raises:
            RecordNotFoundError: If the rule does not exist
        """
        pass

    def snapshot(self) -> list[PipelineRule]:
        """Active rules as of now; a run works on this list only."""
        return self.list_rules(active_only=True)


class AliasStore(ABC):
    """Persistence for column aliases, keyed by csv_alias."""

    @abstractmethod
    def list_aliases(self) -> list[ColumnAlias]:
        pass

    @abstractmethod
    def get(self, alias_id: str) -> ColumnAlias:
        """
        Raises:
            RecordNotFoundError: If the alias does not exist
        """
        pass

    @abstractmethod
    def get_by_alias(self, csv_alias: str) -> ColumnAlias | None:
        pass

    @abstractmethod
    def upsert(self, alias: ColumnAlias) -> ColumnAlias:
        """
        Insert an alias, or update asset_field/confidence of the existing alias
        with the same csv_alias (its id and created_at are preserved).
        """
        pass

    @abstractmethod
    def update(self, alias: ColumnAlias) -> ColumnAlias:
        """
        Replace the alias with the same id.

        Raises:
            RecordNotFoundError: If the alias does not exist
            ValueError: If another alias already uses the csv_alias
        """
        pass

    @abstractmethod
    def delete(self, alias_id: str) -> None:
        """
        Raises:
            RecordNotFoundError: If the alias does not exist
        """
        pass

    def snapshot(self) -> list[ColumnAlias]:
        return self.list_aliases()


class JobStore(ABC):
    """Persistence for import jobs."""

    @abstractmethod
    def insert(self, job: ImportJob) -> ImportJob:
        pass

    @abstractmethod
    def get(self, job_id: str) -> ImportJob:
        """
        Raises:
            RecordNotFoundError: If the job does not exist
        """
        pass

    @abstractmethod
    def save(self, job: ImportJob) -> ImportJob:
        """Persist the full current state of an existing job."""
        pass

    @abstractmethod
    def list_jobs(self, limit: int = 50, offset: int = 0) -> list[ImportJob]:
        """Jobs, most recent first."""
        pass

    @abstractmethod
    def delete_older_than(self, cutoff: datetime | None) -> list[str]:
        """
        Delete COMPLETED and FAILED jobs that finished before the cutoff.

        Args:
            cutoff: Completion time limit; None deletes every finished job

        Returns:
            Ids of the deleted jobs
        """
        pass


class PhaseResultStore(ABC):
    """Persistence for per-phase diagnostics."""

    @abstractmethod
    def save(self, result: PhaseResult) -> None:
        pass

    @abstractmethod
    def list_for_job(self, job_id: str) -> list[PhaseResult]:
        """Phase results of a job in execution order."""
        pass

    @abstractmethod
    def delete_for_jobs(self, job_ids: list[str]) -> int:
        """
        Returns:
            Number of phase results deleted
        """
        pass


class AssetStore(ABC):
    """Persistence for assets, keyed by asset tag."""

    @abstractmethod
    def fetch_existing(self, asset_tags: list[str]) -> dict[str, dict[str, Any]]:
        """
        Look up existing assets.

        Returns:
            Asset tag → asset fields (canonical names) for tags that exist
        """
        pass

    @abstractmethod
    def write_batch(self, writes: list[AssetUpsert], atomic: bool, job_id: str | None = None) -> BatchWriteResult:
        """
        Write a group of inserts/updates.

        Args:
            writes: Writes with action "insert" or "update"
            atomic: All-or-nothing when True; otherwise each write commits on its own
            job_id: Job recorded as the source of the writes

        Returns:
            BatchWriteResult
        """
        pass

    @abstractmethod
    def get(self, asset_tag: str) -> dict[str, Any] | None:
        pass

    @abstractmethod
    def count(self) -> int:
        pass
