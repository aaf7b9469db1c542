"""
Integration tests for the PostgreSQL stores

Runs against a throwaway Postgres started by testcontainers.
"""

from datetime import datetime, timedelta

import pytest

from asset_etl.core.models import AssetRecord, AssetUpsert, ColumnAlias, ImportJob, PhaseResult, PipelineRule
from asset_etl.warehouse.asset_writer import PostgresAssetStore
from asset_etl.warehouse.postgres import (
    PostgresAliasStore,
    PostgresJobStore,
    PostgresPhaseResultStore,
    PostgresRuleStore,
)
from asset_etl.warehouse.stores import RecordNotFoundError


def upsert(row_number, tag, **overrides):
    values = AssetRecord(assetTag=tag).to_fields()
    values.update(overrides)
    return AssetUpsert(row_number=row_number, asset_tag=tag, action="insert", values=values)


@pytest.mark.integration
class TestPostgresRuleStore:
    """Tests for PostgresRuleStore"""

    def test_priority_then_insertion_order(self, clean_db):
        store = PostgresRuleStore(clean_db)
        for name in ["first", "second", "third"]:
            store.create(PipelineRule(name=name, phase="CLEAN", type="TRIM", priority=10))
        store.create(PipelineRule(name="early", phase="CLEAN", type="TRIM", priority=1))

        assert [rule.name for rule in store.list_rules(phase="CLEAN")] == ["early", "first", "second", "third"]

    def test_config_round_trip_and_update(self, clean_db):
        store = PostgresRuleStore(clean_db)
        rule = store.create(PipelineRule(
            name="Carrier",
            phase="CLEAN",
            type="REGEX_REPLACE",
            target="Manufacturer",
            config={"pattern": "carrier", "replacement": "Carrier", "flags": "gi"},
        ))

        stored = store.get(rule.id)
        assert stored.config == {"pattern": "carrier", "replacement": "Carrier", "flags": "gi"}

        store.update(stored.model_copy(update={"is_active": False}))
        assert store.snapshot() == []
        assert len(store.list_rules()) == 1

    def test_delete_missing(self, clean_db):
        with pytest.raises(RecordNotFoundError):
            PostgresRuleStore(clean_db).delete("nope")


@pytest.mark.integration
class TestPostgresAliasStore:
    """Tests for PostgresAliasStore"""

    def test_upsert_conflict_keeps_id(self, clean_db):
        store = PostgresAliasStore(clean_db)
        first = store.upsert(ColumnAlias(csv_alias="Asset ID", asset_field="assetTag", confidence=0.9))

        second = store.upsert(ColumnAlias(csv_alias="Asset ID", asset_field="serialNumber", confidence=0.5))

        assert second.id == first.id
        assert second.asset_field == "serialNumber"
        assert second.confidence == 0.5
        assert len(store.list_aliases()) == 1

    def test_delete(self, clean_db):
        store = PostgresAliasStore(clean_db)
        alias = store.upsert(ColumnAlias(csv_alias="Maker", asset_field="manufacturer"))

        store.delete(alias.id)

        assert store.get_by_alias("Maker") is None
        with pytest.raises(RecordNotFoundError):
            store.delete(alias.id)

    def test_update_by_id(self, clean_db):
        store = PostgresAliasStore(clean_db)
        alias = store.upsert(ColumnAlias(csv_alias="Maker", asset_field="manufacturer"))
        store.upsert(ColumnAlias(csv_alias="Brand", asset_field="manufacturer"))

        store.update(alias.model_copy(update={"csv_alias": "Make", "confidence": 0.6}))

        assert store.get(alias.id).csv_alias == "Make"
        assert store.get(alias.id).confidence == 0.6
        assert store.get_by_alias("Maker") is None
        with pytest.raises(ValueError, match="already exists"):
            store.update(alias.model_copy(update={"csv_alias": "Brand"}))
        with pytest.raises(RecordNotFoundError):
            store.get("missing")


@pytest.mark.integration
class TestPostgresJobStores:
    """Tests for PostgresJobStore and PostgresPhaseResultStore"""

    def test_insert_save_and_list(self, clean_db):
        store = PostgresJobStore(clean_db)
        older = store.insert(ImportJob(file_id="a.csv", created_at=datetime.utcnow() - timedelta(minutes=5)))
        newer = store.insert(ImportJob(file_id="b.csv"))

        store.save(newer.model_copy(update={
            "status": "RUNNING",
            "total_rows": 3,
            "processed_rows": 2,
            "error_rows": 1,
            "errors": ["Row 2: assetTag is required"],
        }))

        fetched = store.get(newer.id)
        assert fetched.status == "RUNNING"
        assert fetched.errors == ["Row 2: assetTag is required"]
        assert [job.id for job in store.list_jobs()] == [newer.id, older.id]
        assert [job.id for job in store.list_jobs(limit=1, offset=1)] == [older.id]

    def test_phase_results_round_trip(self, clean_db):
        job = PostgresJobStore(clean_db).insert(ImportJob(file_id="a.csv"))
        store = PostgresPhaseResultStore(clean_db)

        for phase in ["EXTRACT", "VALIDATE"]:
            store.save(PhaseResult(
                job_id=job.id,
                phase=phase,
                rows_in=2,
                rows_out=2,
                rules_applied=[f"{phase.lower()} rule"],
                output_sample=[{"assetTag": "HVAC-001"}],
                completed_at=datetime.utcnow(),
                duration_ms=3,
            ))

        results = store.list_for_job(job.id)
        assert [result.phase for result in results] == ["EXTRACT", "VALIDATE"]
        assert results[0].output_sample == [{"assetTag": "HVAC-001"}]
        assert results[1].rules_applied == ["validate rule"]

    def test_delete_older_than_cascades(self, clean_db):
        jobs = PostgresJobStore(clean_db)
        results = PostgresPhaseResultStore(clean_db)
        now = datetime.utcnow()
        old = jobs.insert(ImportJob(file_id="a.csv", status="COMPLETED", completed_at=now - timedelta(hours=30)))
        recent = jobs.insert(ImportJob(file_id="b.csv", status="FAILED", completed_at=now - timedelta(hours=1)))
        running = jobs.insert(ImportJob(file_id="c.csv", status="RUNNING"))
        results.save(PhaseResult(job_id=old.id, phase="EXTRACT"))

        assert jobs.delete_older_than(now - timedelta(hours=24)) == [old.id]
        assert results.list_for_job(old.id) == []
        assert {job.id for job in jobs.list_jobs()} == {recent.id, running.id}

        assert jobs.delete_older_than(None) == [recent.id]
        assert [job.id for job in jobs.list_jobs()] == [running.id]

    def test_phase_result_needs_job(self, clean_db):
        with pytest.raises(ValueError):
            PostgresPhaseResultStore(clean_db).save(PhaseResult(phase="EXTRACT"))


@pytest.mark.integration
class TestPostgresAssetStore:
    """Tests for PostgresAssetStore"""

    def test_upsert_is_idempotent(self, clean_db):
        store = PostgresAssetStore(clean_db)
        store.write_batch([upsert(1, "HVAC-001", name="Rooftop Unit", purchaseCost=12500.0)], atomic=True)

        result = store.write_batch([upsert(1, "HVAC-001", name="Rooftop Unit 1")], atomic=True, job_id="job-1")

        assert len(result.written) == 1
        assert store.count() == 1
        assert store.get("HVAC-001")["name"] == "Rooftop Unit 1"
        assert set(store.fetch_existing(["HVAC-001", "HVAC-404"])) == {"HVAC-001"}

    def test_atomic_group_rolls_back(self, clean_db):
        store = PostgresAssetStore(clean_db)

        result = store.write_batch(
            [upsert(1, "HVAC-001"), upsert(2, "HVAC-002", purchaseCost="not-a-number")],
            atomic=True,
        )

        assert result.rolled_back is True
        assert list(result.failed) == [2]
        assert result.written == []
        assert store.count() == 0

    def test_non_atomic_group_keeps_good_rows(self, clean_db):
        store = PostgresAssetStore(clean_db)

        result = store.write_batch(
            [upsert(1, "HVAC-001"), upsert(2, "HVAC-002", purchaseCost="not-a-number"), upsert(3, "HVAC-003")],
            atomic=False,
        )

        assert result.rolled_back is False
        assert list(result.failed) == [2]
        assert [write.asset_tag for write in result.written] == ["HVAC-001", "HVAC-003"]
        assert store.count() == 2
        assert store.get("HVAC-003")["status"] == "ACTIVE"
