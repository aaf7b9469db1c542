"""
In-memory store implementations.

Used for dry runs, tests and single-process CLI runs without a database.
Each store guards its state with a lock so concurrent jobs can share it.
"""

import threading
from datetime import datetime
from typing import Any

from asset_etl.core.constants import TERMINAL_JOB_STATUSES
from asset_etl.core.models import AssetUpsert, ColumnAlias, ImportJob, PhaseResult, PipelineRule

from .stores import (
    AliasStore,
    AssetStore,
    BatchWriteResult,
    JobStore,
    PhaseResultStore,
    RecordNotFoundError,
    RuleStore,
)


class InMemoryRuleStore(RuleStore):
    def __init__(self, rules: list[PipelineRule] | None = None):
        self._lock = threading.Lock()
        self._rules: dict[str, PipelineRule] = {}
        for rule in rules or []:
            self.create(rule)

    def list_rules(self, phase: str | None = None, active_only: bool = False) -> list[PipelineRule]:
        with self._lock:
            rules = list(self._rules.values())
        if phase is not None:
            rules = [rule for rule in rules if rule.phase == phase]
        if active_only:
            rules = [rule for rule in rules if rule.is_active]
        # dict order is insertion order, so the sort keeps creation order on ties
        return sorted(rules, key=lambda rule: rule.priority)

    def get(self, rule_id: str) -> PipelineRule:
        with self._lock:
            rule = self._rules.get(rule_id)
        if rule is None:
            raise RecordNotFoundError("Rule", rule_id)
        return rule

    def create(self, rule: PipelineRule) -> PipelineRule:
        with self._lock:
            if rule.id in self._rules:
                raise ValueError(f"Rule '{rule.id}' already exists")
            self._rules[rule.id] = rule
        return rule

    def update(self, rule: PipelineRule) -> PipelineRule:
        with self._lock:
            if rule.id not in self._rules:
                raise RecordNotFoundError("Rule", rule.id)
            self._rules[rule.id] = rule
        return rule

    def delete(self, rule_id: str) -> None:
        with self._lock:
            if self._rules.pop(rule_id, None) is None:
                raise RecordNotFoundError("Rule", rule_id)


class InMemoryAliasStore(AliasStore):
    def __init__(self, aliases: list[ColumnAlias] | None = None):
        self._lock = threading.Lock()
        self._by_alias: dict[str, ColumnAlias] = {}
        for alias in aliases or []:
            self.upsert(alias)

    def list_aliases(self) -> list[ColumnAlias]:
        with self._lock:
            return list(self._by_alias.values())

    def get(self, alias_id: str) -> ColumnAlias:
        with self._lock:
            for alias in self._by_alias.values():
                if alias.id == alias_id:
                    return alias
        raise RecordNotFoundError("Alias", alias_id)

    def get_by_alias(self, csv_alias: str) -> ColumnAlias | None:
        with self._lock:
            return self._by_alias.get(csv_alias)

    def upsert(self, alias: ColumnAlias) -> ColumnAlias:
        with self._lock:
            existing = self._by_alias.get(alias.csv_alias)
            if existing is not None:
                alias = existing.model_copy(update={
                    "asset_field": alias.asset_field,
                    "confidence": alias.confidence,
                    "updated_at": datetime.utcnow(),
                })
            self._by_alias[alias.csv_alias] = alias
            return alias

    def update(self, alias: ColumnAlias) -> ColumnAlias:
        with self._lock:
            current = next((key for key, stored in self._by_alias.items() if stored.id == alias.id), None)
            if current is None:
                raise RecordNotFoundError("Alias", alias.id)
            taken = self._by_alias.get(alias.csv_alias)
            if taken is not None and taken.id != alias.id:
                raise ValueError(f"Alias '{alias.csv_alias}' already exists")
            del self._by_alias[current]
            self._by_alias[alias.csv_alias] = alias
            return alias

    def delete(self, alias_id: str) -> None:
        with self._lock:
            for csv_alias, alias in self._by_alias.items():
                if alias.id == alias_id:
                    del self._by_alias[csv_alias]
                    return
        raise RecordNotFoundError("Alias", alias_id)


class InMemoryJobStore(JobStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._jobs: dict[str, ImportJob] = {}

    def insert(self, job: ImportJob) -> ImportJob:
        with self._lock:
            self._jobs[job.id] = job
        return job

    def get(self, job_id: str) -> ImportJob:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise RecordNotFoundError("Job", job_id)
        return job

    def save(self, job: ImportJob) -> ImportJob:
        with self._lock:
            if job.id not in self._jobs:
                raise RecordNotFoundError("Job", job.id)
            self._jobs[job.id] = job
        return job

    def list_jobs(self, limit: int = 50, offset: int = 0) -> list[ImportJob]:
        with self._lock:
            jobs = list(self._jobs.values())
        jobs.sort(key=lambda job: job.created_at, reverse=True)
        return jobs[offset:offset + limit]

    def delete_older_than(self, cutoff: datetime | None) -> list[str]:
        with self._lock:
            expired = [
                job.id for job in self._jobs.values()
                if job.status in TERMINAL_JOB_STATUSES
                and (cutoff is None or (job.completed_at is not None and job.completed_at < cutoff))
            ]
            for job_id in expired:
                del self._jobs[job_id]
        return expired


class InMemoryPhaseResultStore(PhaseResultStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._results: dict[str, list[PhaseResult]] = {}

    def save(self, result: PhaseResult) -> None:
        if result.job_id is None:
            raise ValueError("Phase results must belong to a job")
        with self._lock:
            self._results.setdefault(result.job_id, []).append(result)

    def list_for_job(self, job_id: str) -> list[PhaseResult]:
        with self._lock:
            return list(self._results.get(job_id, []))

    def delete_for_jobs(self, job_ids: list[str]) -> int:
        with self._lock:
            return sum(len(self._results.pop(job_id, [])) for job_id in job_ids)


class InMemoryAssetStore(AssetStore):
    def __init__(self, assets: list[dict[str, Any]] | None = None):
        self._lock = threading.Lock()
        self._assets: dict[str, dict[str, Any]] = {}
        for asset in assets or []:
            self._assets[asset["assetTag"]] = dict(asset)

    def fetch_existing(self, asset_tags: list[str]) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {tag: dict(self._assets[tag]) for tag in asset_tags if tag in self._assets}

    def _write_one(self, assets: dict[str, dict[str, Any]], write: AssetUpsert, job_id: str | None) -> None:
        if write.action == "insert" and write.asset_tag in assets:
            raise ValueError(f"Asset '{write.asset_tag}' already exists")
        values = dict(write.values)
        values["assetTag"] = write.asset_tag
        assets[write.asset_tag] = values

    def write_batch(self, writes: list[AssetUpsert], atomic: bool, job_id: str | None = None) -> BatchWriteResult:
        result = BatchWriteResult()
        with self._lock:
            if atomic:
                staged = dict(self._assets)
                for write in writes:
                    try:
                        self._write_one(staged, write, job_id)
                    except Exception as e:
                        result.failed[write.row_number] = str(e)
                        result.rolled_back = True
                        return result
                self._assets = staged
                result.written = list(writes)
                return result

            for write in writes:
                try:
                    self._write_one(self._assets, write, job_id)
                except Exception as e:
                    result.failed[write.row_number] = str(e)
                    continue
                result.written.append(write)
        return result

    def get(self, asset_tag: str) -> dict[str, Any] | None:
        with self._lock:
            asset = self._assets.get(asset_tag)
        return dict(asset) if asset is not None else None

    def count(self) -> int:
        with self._lock:
            return len(self._assets)
