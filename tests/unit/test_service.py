"""
Unit tests for PipelineService over in-memory stores.
"""

import json
from datetime import datetime, timedelta

import pytest

from asset_etl.core.rules import RuleConfigError
from asset_etl.pipeline import JobTracker, PipelineService
from asset_etl.readers.base import InMemoryRowSource
from asset_etl.utils.validation import InputValidationError
from asset_etl.warehouse.memory import (
    InMemoryAliasStore,
    InMemoryAssetStore,
    InMemoryJobStore,
    InMemoryPhaseResultStore,
    InMemoryRuleStore,
)
from asset_etl.warehouse.stores import RecordNotFoundError

UPLOADS = {
    "hvac-upload.csv": InMemoryRowSource(
        headers=["Asset ID", "Asset Name", "Manufacturer", "Foo Bar"],
        rows=[["hvac-001", "Rooftop Unit", " carrier ", "x"], ["hvac-002", "Chiller", "Trane", "y"]],
    ),
    "mixed-upload.csv": InMemoryRowSource(
        headers=["Asset ID", "Asset Name", "Manufacturer"],
        rows=[["hvac-001", "Rooftop Unit", "Carrier"], ["hvac-002", "Chiller", "Trane"], ["", "Orphan", "Trane"]],
    ),
    "long-upload.csv": InMemoryRowSource(
        headers=["Asset ID", "Notes"],
        rows=[[f"hvac-{index:03d}", "x" * 80] for index in range(12)],
    ),
}


def source_factory(file_id):
    if file_id not in UPLOADS:
        raise FileNotFoundError(f"Uploaded file not found: {file_id}")
    return UPLOADS[file_id]


@pytest.fixture
def service(settings, aliases, cleaning_rules):
    return PipelineService(
        rule_store=InMemoryRuleStore(cleaning_rules),
        alias_store=InMemoryAliasStore(aliases),
        job_tracker=JobTracker(InMemoryJobStore(), max_errors=settings.max_job_errors),
        phase_result_store=InMemoryPhaseResultStore(),
        asset_store=InMemoryAssetStore(),
        settings=settings,
        source_factory=source_factory,
    )


@pytest.mark.unit
class TestRuleOperations:
    """Tests for rule CRUD"""

    def test_create_and_list(self, service):
        created = service.create_rule(
            {"name": "Upper tags", "phase": "TRANSFORM", "type": "TO_UPPERCASE", "target": "Asset ID", "priority": 1},
            created_by="admin",
        )

        assert created["created_by"] == "admin"
        assert [rule["name"] for rule in service.list_rules(phase="TRANSFORM")] == ["Upper tags"]
        assert service.get_rule(created["id"])["target"] == "Asset ID"

    def test_create_rejects_invalid_config(self, service):
        with pytest.raises(RuleConfigError):
            service.create_rule({"name": "bad", "phase": "CLEAN", "type": "REGEX_REPLACE", "config": {"pattern": "("}})

    def test_update_is_validated(self, service):
        rule_id = service.list_rules(phase="CLEAN")[0]["id"]

        updated = service.update_rule(rule_id, {"priority": 50, "id": "hijack"})
        assert updated["priority"] == 50
        assert updated["id"] == rule_id

        with pytest.raises(RuleConfigError):
            service.update_rule(rule_id, {"type": "TO_UPPERCASE"})

    def test_delete(self, service):
        rule_id = service.list_rules()[0]["id"]
        service.delete_rule(rule_id)

        with pytest.raises(RecordNotFoundError):
            service.get_rule(rule_id)


@pytest.mark.unit
class TestAliasOperations:
    """Tests for alias upsert and delete"""

    def test_upsert_updates_existing(self, service):
        before = {alias["csv_alias"]: alias for alias in service.list_aliases()}["Condition"]

        after = service.upsert_alias({"csv_alias": "Condition", "asset_field": "notes", "confidence": 0.4})

        assert after["id"] == before["id"]
        assert after["asset_field"] == "notes"

    def test_upsert_rejects_unknown_field(self, service):
        with pytest.raises(InputValidationError):
            service.upsert_alias({"csv_alias": "Foo", "asset_field": "foo"})

    def test_delete(self, service):
        alias = service.upsert_alias({"csv_alias": "Foo Bar", "asset_field": "notes"})
        service.delete_alias(alias["id"])

        assert "Foo Bar" not in {a["csv_alias"] for a in service.list_aliases()}

    def test_update_by_id(self, service):
        alias = {a["csv_alias"]: a for a in service.list_aliases()}["Condition"]

        updated = service.update_alias(alias["id"], {"csv_alias": "Cond.", "confidence": 0.5, "id": "hijack"})

        assert updated["id"] == alias["id"]
        assert updated["csv_alias"] == "Cond."
        assert updated["asset_field"] == "condition"
        assert updated["confidence"] == 0.5
        csv_aliases = {a["csv_alias"] for a in service.list_aliases()}
        assert "Cond." in csv_aliases
        assert "Condition" not in csv_aliases

    def test_update_rejects_taken_csv_alias(self, service):
        alias = {a["csv_alias"]: a for a in service.list_aliases()}["Condition"]

        with pytest.raises(InputValidationError):
            service.update_alias(alias["id"], {"csv_alias": "Manufacturer"})
        with pytest.raises(InputValidationError):
            service.update_alias(alias["id"], {"confidence": 2})

    def test_update_unknown_alias(self, service):
        with pytest.raises(RecordNotFoundError):
            service.update_alias("missing-alias", {"confidence": 0.5})


@pytest.mark.unit
class TestJobOperations:
    """Tests for phase results and job cleanup"""

    def test_get_phase_results(self, service):
        job_id = service.import_file("hvac-upload.csv")["job"]["id"]

        document = service.get_phase_results(job_id)

        assert document["job"]["id"] == job_id
        assert [result["phase"] for result in document["phaseResults"]] == [
            "EXTRACT", "VALIDATE", "CLEAN", "TRANSFORM", "MAP", "LOAD",
        ]
        assert document["phaseResults"][0]["rows_out"] == 2

    def test_get_phase_results_unknown_job(self, service):
        with pytest.raises(RecordNotFoundError):
            service.get_phase_results("missing-job")

    def test_cleanup_removes_old_finished_jobs(self, service):
        old_id = service.import_file("hvac-upload.csv")["job"]["id"]
        recent_id = service.import_file("hvac-upload.csv")["job"]["id"]
        pending_id = service.job_tracker.create("later.csv")
        store = service.job_tracker.job_store
        old = store.get(old_id)
        store.save(old.model_copy(update={"completed_at": datetime.utcnow() - timedelta(hours=25)}))

        outcome = service.cleanup_jobs()

        assert outcome["jobsDeleted"] == 1
        assert {job["id"] for job in service.list_jobs()} == {recent_id, pending_id}
        assert service.phase_result_store.list_for_job(old_id) == []
        assert len(service.phase_result_store.list_for_job(recent_id)) == 6

    def test_cleanup_all_keeps_unfinished_jobs(self, service):
        service.import_file("hvac-upload.csv")
        service.import_file("nope.csv")
        pending_id = service.job_tracker.create("later.csv")

        outcome = service.cleanup_jobs(older_than_hours=None)

        assert outcome["jobsDeleted"] == 2
        assert [job["id"] for job in service.list_jobs()] == [pending_id]

    def test_cleanup_rejects_negative_age(self, service):
        with pytest.raises(InputValidationError):
            service.cleanup_jobs(older_than_hours=-1)


@pytest.mark.unit
class TestPipelineRuns:
    """Tests for dry runs, imports and field mappings"""

    def test_test_orchestrator_uses_fixture_rows(self, service):
        response = service.test_orchestrator()

        assert response["success"] is True
        assert response["dry_run"] is True
        assert len(response["planned_writes"]) == 2
        assert response["final_rows"][0]["assetTag"] == "HVAC-001"
        assert response["field_mappings"]["coveragePercent"] == 100

    def test_test_orchestrator_single_row(self, service):
        response = service.test_orchestrator(include_second_row=False)

        assert response["summary"]["total_rows"] == 1
        assert service.asset_store.count() == 0

    def test_import_file(self, service):
        response = service.import_file("hvac-upload.csv", created_by="admin")

        assert response["error"] is None
        assert response["job"]["status"] == "COMPLETED"
        assert response["job"]["processed_rows"] == 2
        assert response["summary"]["inserted_rows"] == 2
        assert service.asset_store.get("hvac-001")["manufacturer"] == "Carrier"

    def test_import_missing_file_fails_job(self, service):
        response = service.import_file("nope.csv")

        assert response["job"]["status"] == "FAILED"
        assert "not found" in response["error"]
        assert response["summary"] is None

    def test_import_rejects_unsafe_file_id(self, service):
        with pytest.raises(InputValidationError):
            service.import_file("../etc/passwd")

    def test_field_mappings(self, service):
        response = service.get_field_mappings("hvac-upload.csv")

        assert [m["csvHeader"] for m in response["mappedFields"]] == ["Asset ID", "Asset Name", "Manufacturer"]
        assert response["unmappedFields"] == ["Foo Bar"]
        assert response["coveragePercent"] == 75

    def test_field_mappings_apply_overrides(self, service):
        service.create_rule({
            "name": "Foo is notes",
            "phase": "MAP",
            "type": "FIELD_MAPPING",
            "config": {"mappings": {"Foo Bar": "notes"}},
        })

        response = service.get_field_mappings("hvac-upload.csv")

        assert response["unmappedFields"] == []
        assert response["mappedCount"] == 4

    def test_download_phase_results(self, service):
        job_id = service.import_file("hvac-upload.csv")["job"]["id"]

        filename, payload = service.download_phase_results(job_id)
        document = json.loads(payload)

        assert filename == f"job-{job_id}-phase-results.json"
        assert document["job"]["id"] == job_id
        assert [result["phase"] for result in document["phaseResults"]] == [
            "EXTRACT", "VALIDATE", "CLEAN", "TRANSFORM", "MAP", "LOAD",
        ]
        assert "exportedAt" in document

    def test_list_jobs_validates_paging(self, service):
        with pytest.raises(InputValidationError):
            service.list_jobs(limit=0)

    def test_test_rules_shows_before_and_after(self, service):
        response = service.test_rules()

        assert response["success"] is True
        assert response["testData"]["before"]["Asset Tag"] == "  HVAC-001  "
        assert response["testData"]["after"]["assetTag"] == "HVAC-001"
        assert response["testData"]["after"]["manufacturer"] == "TestCorp"
        assert (response["rulesApplied"][0]["phase"], response["rulesApplied"][0]["type"]) == ("CLEAN", "TRIM")
        assert service.asset_store.count() == 0

    def test_test_rules_reports_row_errors(self, service):
        response = service.test_rules({"Asset Tag": "   ", "Asset Name": "Orphan"})

        assert response["success"] is True
        assert response["testData"]["after"]["name"] == "Orphan"
        assert any(message.startswith("Row 1 [LOAD]") for message in response["processing"]["errors"])

    def test_preview_file(self, service):
        response = service.preview_file("hvac-upload.csv")

        assert response["columns"] == ["Asset ID", "Asset Name", "Manufacturer", "Foo Bar"]
        assert response["totalRows"] == 2
        assert response["data"][0]["Manufacturer"] == " carrier "
        assert service.list_jobs() == []

    def test_preview_limits_rows_and_values(self, service):
        response = service.preview_file("long-upload.csv")

        assert response["totalRows"] == 12
        assert len(response["data"]) == 10
        assert response["data"][0]["Notes"] == "x" * 50 + "..."

    def test_validate_file_without_import(self, service):
        response = service.validate_file("mixed-upload.csv")

        assert response["isValid"] is False
        assert response["totalRows"] == 3
        assert response["validRows"] == 2
        assert response["invalidRows"] == 1
        assert [sample["rowNumber"] for sample in response["sampleValidData"]] == [1, 2]
        assert response["sampleValidData"][0]["mappedData"]["assetTag"] == "hvac-001"
        assert response["sampleInvalidData"][0]["rowNumber"] == 3
        assert service.asset_store.count() == 0
        assert service.list_jobs() == []

    def test_validate_missing_file(self, service):
        with pytest.raises(FileNotFoundError):
            service.validate_file("nope.csv")
