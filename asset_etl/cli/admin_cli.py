"""
Admin CLI for managing pipeline rules, column aliases and import jobs.

Usage:
    asset-pipeline-admin list-rules [--phase <phase>]
    asset-pipeline-admin add-rule --rule-file <path>
    asset-pipeline-admin update-rule --rule-id <id> --set key=value [--set ...]
    asset-pipeline-admin disable-rule --rule-id <id>
    asset-pipeline-admin delete-rule --rule-id <id>
    asset-pipeline-admin list-aliases
    asset-pipeline-admin upsert-alias --csv-alias <header> --asset-field <field> [--confidence <c>]
    asset-pipeline-admin update-alias --alias-id <id> [--csv-alias <header>] [--asset-field <field>] [--confidence <c>]
    asset-pipeline-admin delete-alias --alias-id <id>
    asset-pipeline-admin list-jobs [--limit <n>]
    asset-pipeline-admin show-job --job-id <id>
    asset-pipeline-admin phase-results --job-id <id> [--json]
    asset-pipeline-admin cleanup-jobs [--older-than-hours <h> | --all]
    asset-pipeline-admin seed [--rules <path>] [--aliases <path>]
"""

import argparse
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from asset_etl.cli.common import add_db_arguments, build_service, create_pool, load_environment, print_json
from asset_etl.config import PipelineSettings
from asset_etl.core.constants import DEFAULT_CLEANUP_HOURS, PHASE_ORDER
from asset_etl.core.rules import RuleConfigLoader
from asset_etl.observability.logger import get_logger
from asset_etl.pipeline import PipelineService

logger = get_logger(__name__)


def format_timestamp(ts: datetime | str | None) -> str:
    """Format timestamp for display."""
    if ts is None:
        return "N/A"
    if isinstance(ts, str):
        return ts.replace("T", " ")[:19]
    return ts.strftime("%Y-%m-%d %H:%M:%S")


def parse_assignments(assignments: list[str]) -> dict[str, Any]:
    """
    Parse key=value pairs; values are read as YAML so numbers, booleans and
    inline mappings keep their type.

    Raises:
        ValueError: If an assignment has no '='
    """
    changes: dict[str, Any] = {}
    for assignment in assignments:
        if "=" not in assignment:
            raise ValueError(f"Expected key=value, got '{assignment}'")
        key, raw = assignment.split("=", 1)
        changes[key.strip()] = yaml.safe_load(raw)
    return changes


def _run(args, action):
    """Open the service over PostgreSQL, run the action, and exit non-zero on failure."""
    pool = create_pool(args)
    try:
        service = build_service(PipelineSettings.from_env(), pool=pool)
        action(service)
    except Exception as e:
        logger.error(f"Error running {args.command}: {e}", exc_info=True)
        print(f"\nError: {e}")
        sys.exit(1)
    finally:
        pool.close()


def list_rules_command(args):
    def action(service: PipelineService):
        rules = service.list_rules(phase=args.phase)
        if args.json:
            print_json(rules)
            return

        print(f"\n{'Priority':<10} {'Phase':<10} {'Type':<22} {'Active':<8} {'Name'}")
        print(f"{'-' * 80}")
        for rule in rules:
            active = "yes" if rule["is_active"] else "no"
            print(f"{rule['priority']:<10} {rule['phase']:<10} {rule['type']:<22} {active:<8} {rule['name']}")
        print(f"\nTotal rules: {len(rules)}\n")

    _run(args, action)


def add_rule_command(args):
    """
    Add every rule defined in a YAML file (same format as the seed file).
    """
    def action(service: PipelineService):
        with open(args.rule_file) as f:
            document = yaml.safe_load(f) or {}
        definitions = document.get("rules", [document]) if isinstance(document, dict) else document

        for definition in definitions:
            rule = service.create_rule(definition, created_by=args.created_by)
            print(f"Added rule {rule['id']}: {rule['name']} ({rule['phase']}/{rule['type']})")

    _run(args, action)


def update_rule_command(args):
    def action(service: PipelineService):
        rule = service.update_rule(args.rule_id, parse_assignments(args.set))
        print(f"Updated rule {rule['id']}: {rule['name']}")

    _run(args, action)


def disable_rule_command(args):
    def action(service: PipelineService):
        rule = service.update_rule(args.rule_id, {"is_active": False})
        print(f"Disabled rule {rule['id']}: {rule['name']}")

    _run(args, action)


def delete_rule_command(args):
    def action(service: PipelineService):
        service.delete_rule(args.rule_id)
        print(f"Deleted rule {args.rule_id}")

    _run(args, action)


def list_aliases_command(args):
    def action(service: PipelineService):
        aliases = service.list_aliases()
        if args.json:
            print_json(aliases)
            return

        print(f"\n{'Asset field':<20} {'Confidence':<12} {'CSV alias'}")
        print(f"{'-' * 60}")
        for alias in aliases:
            print(f"{alias['asset_field']:<20} {alias['confidence']:<12.2f} {alias['csv_alias']}")
        print(f"\nTotal aliases: {len(aliases)}\n")

    _run(args, action)


def upsert_alias_command(args):
    def action(service: PipelineService):
        alias = service.upsert_alias(
            {"csv_alias": args.csv_alias, "asset_field": args.asset_field, "confidence": args.confidence},
            created_by=args.created_by,
        )
        print(f"Alias {alias['id']}: '{alias['csv_alias']}' -> {alias['asset_field']}")

    _run(args, action)


def update_alias_command(args):
    def action(service: PipelineService):
        changes = {
            key: value
            for key, value in (
                ("csv_alias", args.csv_alias),
                ("asset_field", args.asset_field),
                ("confidence", args.confidence),
            )
            if value is not None
        }
        if not changes:
            raise ValueError("Nothing to update: pass --csv-alias, --asset-field or --confidence")
        alias = service.update_alias(args.alias_id, changes)
        print(f"Updated alias {alias['id']}: '{alias['csv_alias']}' -> {alias['asset_field']}")

    _run(args, action)


def delete_alias_command(args):
    def action(service: PipelineService):
        service.delete_alias(args.alias_id)
        print(f"Deleted alias {args.alias_id}")

    _run(args, action)


def list_jobs_command(args):
    def action(service: PipelineService):
        jobs = service.list_jobs(limit=args.limit)
        if args.json:
            print_json(jobs)
            return

        print(f"\n{'Created':<20} {'Status':<10} {'Rows':<12} {'Errors':<8} {'Job'}")
        print(f"{'-' * 90}")
        for job in jobs:
            rows = f"{job['processed_rows']}/{job['total_rows']}"
            print(
                f"{format_timestamp(job['created_at']):<20} {job['status']:<10} {rows:<12} "
                f"{job['error_rows']:<8} {job['id']} ({job['file_id']})"
            )
        print()

    _run(args, action)


def show_job_command(args):
    def action(service: PipelineService):
        job = service.get_job(args.job_id)
        if args.json:
            print_json(job)
            return

        print(f"\n{'=' * 80}")
        print(f"JOB {job['id']}")
        print(f"{'=' * 80}\n")
        print(f"File:       {job['file_id']}")
        print(f"Status:     {job['status']}")
        print(f"Rows:       {job['processed_rows']}/{job['total_rows']} processed, {job['error_rows']} with errors")
        print(f"Started:    {format_timestamp(job['started_at'])}")
        print(f"Completed:  {format_timestamp(job['completed_at'])}")
        if job["errors"]:
            print("\nErrors:")
            for message in job["errors"]:
                print(f"  - {message}")
        print()

    _run(args, action)


def phase_results_command(args):
    def action(service: PipelineService):
        document = service.get_phase_results(args.job_id)
        if args.json:
            print_json(document)
            return

        print(f"\n{'Phase':<10} {'OK':<4} {'In':<8} {'Out':<8} {'Failed':<8} {'ms':<8} {'Rules'}")
        print(f"{'-' * 80}")
        for result in document["phaseResults"]:
            ok = "yes" if result["success"] else "no"
            print(
                f"{result['phase']:<10} {ok:<4} {result['rows_in']:<8} {result['rows_out']:<8} "
                f"{result['rows_failed']:<8} {result['duration_ms']:<8} {', '.join(result['rules_applied'])}"
            )
        print()

    _run(args, action)


def cleanup_jobs_command(args):
    """
    Delete finished jobs; --all ignores their age.
    """
    def action(service: PipelineService):
        outcome = service.cleanup_jobs(None if args.all else args.older_than_hours)
        print(outcome["message"])

    _run(args, action)


def seed_command(args):
    """
    Load the YAML seed rules and aliases into the database.
    """
    settings = PipelineSettings.from_env()
    rules_path = Path(args.rules or settings.rules_path)
    aliases_path = Path(args.aliases or settings.aliases_path)

    def action(service: PipelineService):
        existing = {(rule["phase"], rule["name"]) for rule in service.list_rules()}
        added = 0
        for rule in RuleConfigLoader(rules_path).load_rules():
            if (rule.phase, rule.name) in existing:
                continue
            service.create_rule(rule.model_dump(mode="json"), created_by="seed")
            added += 1
        print(f"Seeded {added} rule(s) from {rules_path}")

        aliases = RuleConfigLoader(aliases_path).load_aliases()
        for alias in aliases:
            service.upsert_alias(alias.model_dump(mode="json"), created_by="seed")
        print(f"Seeded {len(aliases)} alias(es) from {aliases_path}")

    _run(args, action)


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Administer pipeline rules, column aliases and import jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--env-file", default=None, help="Environment file to load (default: .env)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    list_rules_parser = subparsers.add_parser("list-rules", help="List pipeline rules")
    list_rules_parser.add_argument("--phase", choices=PHASE_ORDER, default=None, help="Only rules of this phase")
    list_rules_parser.add_argument("--json", action="store_true", help="Print as JSON")

    add_rule_parser = subparsers.add_parser("add-rule", help="Add rules from a YAML file")
    add_rule_parser.add_argument("--rule-file", required=True, help="YAML file with a rule or a 'rules' list")
    add_rule_parser.add_argument("--created-by", default=None, help="Author recorded on the rules")

    update_rule_parser = subparsers.add_parser("update-rule", help="Change fields of a rule")
    update_rule_parser.add_argument("--rule-id", required=True, help="Rule id")
    update_rule_parser.add_argument(
        "--set", action="append", required=True, help="Field assignment, e.g. priority=5 (repeatable)"
    )

    disable_rule_parser = subparsers.add_parser("disable-rule", help="Deactivate a rule")
    disable_rule_parser.add_argument("--rule-id", required=True, help="Rule id")

    delete_rule_parser = subparsers.add_parser("delete-rule", help="Delete a rule")
    delete_rule_parser.add_argument("--rule-id", required=True, help="Rule id")

    list_aliases_parser = subparsers.add_parser("list-aliases", help="List column aliases")
    list_aliases_parser.add_argument("--json", action="store_true", help="Print as JSON")

    upsert_alias_parser = subparsers.add_parser("upsert-alias", help="Create or update a column alias")
    upsert_alias_parser.add_argument("--csv-alias", required=True, help="Spreadsheet header text")
    upsert_alias_parser.add_argument("--asset-field", required=True, help="Canonical asset field")
    upsert_alias_parser.add_argument("--confidence", type=float, default=1.0, help="Confidence in [0, 1]")
    upsert_alias_parser.add_argument("--created-by", default=None, help="Author recorded on the alias")

    update_alias_parser = subparsers.add_parser("update-alias", help="Change a column alias by id")
    update_alias_parser.add_argument("--alias-id", required=True, help="Alias id")
    update_alias_parser.add_argument("--csv-alias", default=None, help="New spreadsheet header text")
    update_alias_parser.add_argument("--asset-field", default=None, help="New canonical asset field")
    update_alias_parser.add_argument("--confidence", type=float, default=None, help="New confidence in [0, 1]")

    delete_alias_parser = subparsers.add_parser("delete-alias", help="Delete a column alias")
    delete_alias_parser.add_argument("--alias-id", required=True, help="Alias id")

    list_jobs_parser = subparsers.add_parser("list-jobs", help="List recent import jobs")
    list_jobs_parser.add_argument("--limit", type=int, default=50, help="Jobs to show (default: 50)")
    list_jobs_parser.add_argument("--json", action="store_true", help="Print as JSON")

    show_job_parser = subparsers.add_parser("show-job", help="Show an import job")
    show_job_parser.add_argument("--job-id", required=True, help="Job id")
    show_job_parser.add_argument("--json", action="store_true", help="Print as JSON")

    phase_results_parser = subparsers.add_parser("phase-results", help="Show the phase results of a job")
    phase_results_parser.add_argument("--job-id", required=True, help="Job id")
    phase_results_parser.add_argument("--json", action="store_true", help="Print as JSON")

    cleanup_parser = subparsers.add_parser("cleanup-jobs", help="Delete finished import jobs")
    cleanup_age = cleanup_parser.add_mutually_exclusive_group()
    cleanup_age.add_argument(
        "--older-than-hours",
        type=float,
        default=DEFAULT_CLEANUP_HOURS,
        help=f"Only jobs finished at least this long ago (default: {DEFAULT_CLEANUP_HOURS})",
    )
    cleanup_age.add_argument("--all", action="store_true", help="Every COMPLETED and FAILED job, whatever its age")

    seed_parser = subparsers.add_parser("seed", help="Load seed rules and aliases into the database")
    seed_parser.add_argument("--rules", default=None, help="Rules YAML file (default: $PIPELINE_RULES_PATH)")
    seed_parser.add_argument("--aliases", default=None, help="Aliases YAML file (default: $PIPELINE_ALIASES_PATH)")

    for subparser in subparsers.choices.values():
        add_db_arguments(subparser)

    args = parser.parse_args()
    load_environment(args.env_file)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "list-rules": list_rules_command,
        "add-rule": add_rule_command,
        "update-rule": update_rule_command,
        "disable-rule": disable_rule_command,
        "delete-rule": delete_rule_command,
        "list-aliases": list_aliases_command,
        "upsert-alias": upsert_alias_command,
        "update-alias": update_alias_command,
        "delete-alias": delete_alias_command,
        "list-jobs": list_jobs_command,
        "show-job": show_job_command,
        "phase-results": phase_results_command,
        "cleanup-jobs": cleanup_jobs_command,
        "seed": seed_command,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
