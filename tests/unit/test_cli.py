"""
Unit tests for the command-line helpers, the in-memory dry run commands and the admin commands.
"""

import argparse
import json
import os
from datetime import datetime

import pytest

from asset_etl.cli import admin_cli
from asset_etl.cli.admin_cli import format_timestamp, parse_assignments
from asset_etl.cli.common import build_service
from asset_etl.cli.pipeline_cli import test_orchestrator_command as dry_run_command
from asset_etl.cli.pipeline_cli import test_rules_command as rule_trial_command
from asset_etl.config import PipelineSettings
from asset_etl.core.models import PhaseResult

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(__file__)))
RULES_PATH = os.path.join(PROJECT_ROOT, "config", "pipeline_rules.yaml")
ALIASES_PATH = os.path.join(PROJECT_ROOT, "config", "column_aliases.yaml")


class ClosedPool:
    def close(self):
        pass


@pytest.fixture
def admin_service(monkeypatch):
    """A seeded in-memory service handed to the admin commands instead of PostgreSQL"""
    service = build_service(PipelineSettings(rules_path=RULES_PATH, aliases_path=ALIASES_PATH))
    monkeypatch.setattr(admin_cli, "create_pool", lambda args: ClosedPool())
    monkeypatch.setattr(admin_cli, "build_service", lambda settings, pool=None: service)
    return service


@pytest.mark.unit
class TestAdminHelpers:
    """Tests for admin CLI helpers"""

    def test_parse_assignments_keeps_types(self):
        changes = parse_assignments(["priority=5", "is_active=false", "config={sides: left}", "name=Trim = all"])

        assert changes == {
            "priority": 5,
            "is_active": False,
            "config": {"sides": "left"},
            "name": "Trim = all",
        }

    def test_parse_assignments_requires_equals(self):
        with pytest.raises(ValueError):
            parse_assignments(["priority"])

    def test_format_timestamp(self):
        assert format_timestamp(None) == "N/A"
        assert format_timestamp(datetime(2024, 3, 15, 9, 30, 1)) == "2024-03-15 09:30:01"
        assert format_timestamp("2024-03-15T09:30:01.123456") == "2024-03-15 09:30:01"


@pytest.mark.unit
def test_dry_run_command_with_seed_files(capsys, monkeypatch, tmp_path):
    monkeypatch.delenv("PIPELINE_RULES_PATH", raising=False)
    monkeypatch.delenv("PIPELINE_ALIASES_PATH", raising=False)
    rows_path = tmp_path / "rows.json"
    rows_path.write_text(json.dumps([
        {"Asset ID": " hvac-009 ", "Asset Name": "Boiler", "Manufacturer": "Lennox International", "Status": "Scrapped"},
    ]))
    args = argparse.Namespace(
        memory=True,
        rules=os.path.join(PROJECT_ROOT, "config", "pipeline_rules.yaml"),
        aliases=os.path.join(PROJECT_ROOT, "config", "column_aliases.yaml"),
        rows=str(rows_path),
        single_row=False,
    )

    dry_run_command(args)

    out = capsys.readouterr().out
    result = json.loads(out[out.index("{\n"):])
    assert result["success"] is True
    assert result["final_rows"][0]["assetTag"] == "HVAC-009"
    assert result["final_rows"][0]["manufacturer"] == "Lennox"
    assert result["final_rows"][0]["status"] == "DISPOSED"
    assert result["planned_writes"][0]["action"] == "insert"


@pytest.mark.unit
def test_rule_trial_command_prints_before_and_after(capsys, monkeypatch, tmp_path):
    monkeypatch.delenv("PIPELINE_RULES_PATH", raising=False)
    monkeypatch.delenv("PIPELINE_ALIASES_PATH", raising=False)
    row_path = tmp_path / "row.json"
    row_path.write_text(json.dumps(
        {"Asset ID": " hvac-009 ", "Asset Name": "Boiler", "Manufacturer": "Lennox International"}
    ))
    args = argparse.Namespace(memory=True, rules=RULES_PATH, aliases=ALIASES_PATH, row=str(row_path))

    rule_trial_command(args)

    out = capsys.readouterr().out
    result = json.loads(out[out.index("{\n"):])
    assert result["testData"]["before"]["Asset ID"] == " hvac-009 "
    assert result["testData"]["after"]["assetTag"] == "HVAC-009"
    assert result["testData"]["after"]["manufacturer"] == "Lennox"
    assert result["rulesApplied"]


@pytest.mark.unit
class TestAdminCommands:
    """Tests for the alias, phase result and cleanup admin commands"""

    def test_update_alias(self, admin_service, capsys):
        alias = admin_service.list_aliases()[0]
        args = argparse.Namespace(
            command="update-alias", alias_id=alias["id"], csv_alias=None, asset_field=None, confidence=0.3
        )

        admin_cli.update_alias_command(args)

        assert f"Updated alias {alias['id']}" in capsys.readouterr().out
        updated = {a["id"]: a for a in admin_service.list_aliases()}[alias["id"]]
        assert updated["confidence"] == 0.3
        assert updated["csv_alias"] == alias["csv_alias"]

    def test_update_alias_needs_a_change(self, admin_service):
        args = argparse.Namespace(
            command="update-alias", alias_id="any-id", csv_alias=None, asset_field=None, confidence=None
        )

        with pytest.raises(SystemExit):
            admin_cli.update_alias_command(args)

    def test_phase_results(self, admin_service, capsys):
        job_id = admin_service.job_tracker.create("a.csv")
        admin_service.phase_result_store.save(PhaseResult(phase="EXTRACT", job_id=job_id, rules_applied=["Detect"]))

        admin_cli.phase_results_command(argparse.Namespace(command="phase-results", job_id=job_id, json=False))

        out = capsys.readouterr().out
        assert "EXTRACT" in out
        assert "Detect" in out

    def test_cleanup_all(self, admin_service, capsys):
        finished = admin_service.job_tracker.create("a.csv")
        admin_service.job_tracker.finish(finished, "FAILED", error="upload missing")
        pending = admin_service.job_tracker.create("b.csv")
        args = argparse.Namespace(command="cleanup-jobs", all=True, older_than_hours=24)

        admin_cli.cleanup_jobs_command(args)

        assert "Deleted 1 job(s) finished" in capsys.readouterr().out
        assert [job["id"] for job in admin_service.list_jobs()] == [pending]

    def test_cleanup_keeps_recent_jobs(self, admin_service, capsys):
        finished = admin_service.job_tracker.create("a.csv")
        admin_service.job_tracker.finish(finished, "FAILED")
        args = argparse.Namespace(command="cleanup-jobs", all=False, older_than_hours=24)

        admin_cli.cleanup_jobs_command(args)

        assert "Deleted 0 job(s)" in capsys.readouterr().out
        assert len(admin_service.list_jobs()) == 1
