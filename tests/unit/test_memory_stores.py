"""
Unit tests for the in-memory stores.
"""

from datetime import datetime, timedelta

import pytest

from asset_etl.core.models import AssetUpsert, ColumnAlias, ImportJob, PhaseResult, PipelineRule
from asset_etl.warehouse.memory import (
    InMemoryAliasStore,
    InMemoryAssetStore,
    InMemoryJobStore,
    InMemoryPhaseResultStore,
    InMemoryRuleStore,
)
from asset_etl.warehouse.stores import RecordNotFoundError


def make_rule(name, priority, phase="CLEAN", rule_type="TRIM", is_active=True):
    return PipelineRule(name=name, phase=phase, type=rule_type, priority=priority, is_active=is_active)


@pytest.mark.unit
class TestInMemoryRuleStore:
    """Tests for InMemoryRuleStore"""

    def test_ordered_by_priority_then_creation(self):
        store = InMemoryRuleStore([make_rule("b", 5), make_rule("a", 1), make_rule("c", 5)])

        assert [rule.name for rule in store.list_rules()] == ["a", "b", "c"]

    def test_filters(self):
        store = InMemoryRuleStore([
            make_rule("trim", 1),
            make_rule("upper", 1, phase="TRANSFORM", rule_type="TO_UPPERCASE"),
            make_rule("off", 2, is_active=False),
        ])

        assert [rule.name for rule in store.list_rules(phase="CLEAN")] == ["trim", "off"]
        assert [rule.name for rule in store.snapshot()] == ["trim", "upper"]

    def test_update_and_delete(self):
        rule = make_rule("trim", 1)
        store = InMemoryRuleStore([rule])

        store.update(rule.model_copy(update={"priority": 9}))
        assert store.get(rule.id).priority == 9

        store.delete(rule.id)
        with pytest.raises(RecordNotFoundError):
            store.get(rule.id)
        with pytest.raises(RecordNotFoundError):
            store.delete(rule.id)

    def test_update_unknown_rule(self):
        with pytest.raises(RecordNotFoundError):
            InMemoryRuleStore().update(make_rule("ghost", 1))


@pytest.mark.unit
class TestInMemoryAliasStore:
    """Tests for InMemoryAliasStore"""

    def test_upsert_keeps_identity(self):
        store = InMemoryAliasStore()
        original = store.upsert(ColumnAlias(csv_alias="Tag", asset_field="assetTag", confidence=0.5))

        updated = store.upsert(ColumnAlias(csv_alias="Tag", asset_field="name", confidence=0.8))

        assert updated.id == original.id
        assert updated.created_at == original.created_at
        assert updated.asset_field == "name"
        assert updated.confidence == 0.8
        assert len(store.list_aliases()) == 1

    def test_delete_by_id(self):
        store = InMemoryAliasStore()
        alias = store.upsert(ColumnAlias(csv_alias="Tag", asset_field="assetTag"))

        store.delete(alias.id)

        assert store.get_by_alias("Tag") is None
        with pytest.raises(RecordNotFoundError):
            store.delete(alias.id)

    def test_update_renames_alias(self):
        store = InMemoryAliasStore()
        alias = store.upsert(ColumnAlias(csv_alias="Tag", asset_field="assetTag"))

        store.update(alias.model_copy(update={"csv_alias": "Tag No.", "confidence": 0.7}))

        assert store.get_by_alias("Tag") is None
        assert store.get(alias.id).csv_alias == "Tag No."
        assert store.get(alias.id).confidence == 0.7
        assert len(store.list_aliases()) == 1

    def test_update_refuses_taken_csv_alias(self):
        store = InMemoryAliasStore()
        alias = store.upsert(ColumnAlias(csv_alias="Tag", asset_field="assetTag"))
        store.upsert(ColumnAlias(csv_alias="Name", asset_field="name"))

        with pytest.raises(ValueError, match="already exists"):
            store.update(alias.model_copy(update={"csv_alias": "Name"}))
        assert store.get_by_alias("Tag").id == alias.id

    def test_update_unknown_alias(self):
        with pytest.raises(RecordNotFoundError):
            InMemoryAliasStore().update(ColumnAlias(csv_alias="Tag", asset_field="assetTag"))
        with pytest.raises(RecordNotFoundError):
            InMemoryAliasStore().get("missing")


@pytest.mark.unit
class TestInMemoryJobStore:
    """Tests for deleting finished jobs"""

    def test_delete_older_than(self):
        store = InMemoryJobStore()
        now = datetime.utcnow()
        old = store.insert(ImportJob(file_id="a.csv", status="COMPLETED", completed_at=now - timedelta(hours=30)))
        failed = store.insert(ImportJob(file_id="b.csv", status="FAILED", completed_at=now - timedelta(hours=25)))
        recent = store.insert(ImportJob(file_id="c.csv", status="COMPLETED", completed_at=now - timedelta(hours=1)))
        running = store.insert(ImportJob(file_id="d.csv", status="RUNNING"))

        deleted = store.delete_older_than(now - timedelta(hours=24))

        assert sorted(deleted) == sorted([old.id, failed.id])
        assert {job.id for job in store.list_jobs()} == {recent.id, running.id}

    def test_delete_every_finished_job(self):
        store = InMemoryJobStore()
        finished = store.insert(ImportJob(file_id="a.csv", status="COMPLETED", completed_at=datetime.utcnow()))
        pending = store.insert(ImportJob(file_id="b.csv"))

        assert store.delete_older_than(None) == [finished.id]
        assert [job.id for job in store.list_jobs()] == [pending.id]


@pytest.mark.unit
class TestInMemoryAssetStore:
    """Tests for InMemoryAssetStore"""

    def test_atomic_batch_rolls_back(self):
        store = InMemoryAssetStore([{"assetTag": "A-1", "name": "Old"}])
        writes = [
            AssetUpsert(row_number=1, asset_tag="A-2", action="insert", values={"name": "New"}),
            AssetUpsert(row_number=2, asset_tag="A-1", action="insert", values={"name": "Dup"}),
        ]

        result = store.write_batch(writes, atomic=True)

        assert result.rolled_back is True
        assert result.written == []
        assert 2 in result.failed
        assert store.get("A-2") is None
        assert store.count() == 1

    def test_non_atomic_batch_keeps_successes(self):
        store = InMemoryAssetStore([{"assetTag": "A-1", "name": "Old"}])
        writes = [
            AssetUpsert(row_number=1, asset_tag="A-2", action="insert", values={"name": "New"}),
            AssetUpsert(row_number=2, asset_tag="A-1", action="insert", values={"name": "Dup"}),
            AssetUpsert(row_number=3, asset_tag="A-1", action="update", values={"name": "Renamed"}),
        ]

        result = store.write_batch(writes, atomic=False)

        assert [write.row_number for write in result.written] == [1, 3]
        assert list(result.failed) == [2]
        assert store.get("A-1")["name"] == "Renamed"
        assert store.get("A-2") == {"name": "New", "assetTag": "A-2"}

    def test_fetch_existing(self):
        store = InMemoryAssetStore([{"assetTag": "A-1", "name": "Old"}])

        assert store.fetch_existing(["A-1", "A-9"]) == {"A-1": {"assetTag": "A-1", "name": "Old"}}


@pytest.mark.unit
def test_phase_results_require_job():
    store = InMemoryPhaseResultStore()

    with pytest.raises(ValueError):
        store.save(PhaseResult(phase="CLEAN"))

    store.save(PhaseResult(phase="CLEAN", job_id="job-1"))
    assert len(store.list_for_job("job-1")) == 1
    assert store.list_for_job("job-2") == []


@pytest.mark.unit
def test_phase_results_deleted_with_jobs():
    store = InMemoryPhaseResultStore()
    store.save(PhaseResult(phase="EXTRACT", job_id="job-1"))
    store.save(PhaseResult(phase="VALIDATE", job_id="job-1"))
    store.save(PhaseResult(phase="EXTRACT", job_id="job-2"))

    assert store.delete_for_jobs(["job-1", "job-9"]) == 2
    assert store.list_for_job("job-1") == []
    assert len(store.list_for_job("job-2")) == 1
