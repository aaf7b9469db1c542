"""
Command-line interface for running the import pipeline.

Usage:
    asset-pipeline process --file-id <file> [--upload-dir <dir>] [--memory] [options]
    asset-pipeline test-orchestrator [--rows <rows.json>] [--single-row]
    asset-pipeline test-rules [--row <row.json>]
    asset-pipeline field-mappings --file-id <file> [options]
    asset-pipeline preview --file-id <file> [options]
    asset-pipeline validate --file-id <file> [options]
    asset-pipeline export --job-id <id> [--output <path>]
"""

import argparse
import json
import sys
from pathlib import Path

from asset_etl.cli.common import add_db_arguments, build_service, create_pool, load_environment, print_json
from asset_etl.config import PipelineSettings
from asset_etl.observability.logger import get_logger
from asset_etl.observability.metrics import start_metrics_server
from asset_etl.readers import create_spark_session, upload_source

logger = get_logger(__name__)


def _settings(args: argparse.Namespace) -> PipelineSettings:
    settings = PipelineSettings.from_env()
    updates = {}
    if getattr(args, "upload_dir", None):
        updates["upload_dir"] = Path(args.upload_dir)
    if getattr(args, "rules", None):
        updates["rules_path"] = Path(args.rules)
    if getattr(args, "aliases", None):
        updates["aliases_path"] = Path(args.aliases)
    return settings.model_copy(update=updates)


def process_command(args):
    """
    Import an uploaded file as a tracked job.

    Args:
        args: Command-line arguments
    """
    settings = _settings(args)
    logger.info(f"Importing file {args.file_id} from {settings.upload_dir}")

    if settings.metrics_port:
        start_metrics_server(settings.metrics_port)

    spark = create_spark_session(f"AssetImport-{args.file_id}")
    pool = None if args.memory else create_pool(args)

    try:
        service = build_service(
            settings,
            pool=pool,
            source_factory=lambda file_id: upload_source(spark, settings.upload_dir, file_id, args.delimiter),
        )
        outcome = service.import_file(args.file_id, created_by=args.created_by)
        job = outcome["job"]

        logger.info("=" * 60)
        logger.info(f"IMPORT {job['status']}")
        logger.info("=" * 60)
        logger.info(f"Job: {job['id']}")
        logger.info(f"Rows processed: {job['processed_rows']}/{job['total_rows']}")
        logger.info(f"Rows with errors: {job['error_rows']}")
        if outcome["summary"]:
            summary = outcome["summary"]
            logger.info(
                f"Inserted {summary['inserted_rows']}, updated {summary['updated_rows']}, "
                f"skipped {summary['skipped_rows']}, dropped {summary['dropped_rows']}"
            )
        logger.info("=" * 60)

        if args.json:
            print_json(outcome)
        if job["status"] == "FAILED":
            sys.exit(1)

    except Exception as e:
        logger.error(f"Error during import: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if pool is not None:
            pool.close()
        spark.stop()


def test_orchestrator_command(args):
    """
    Dry-run the pipeline over fixture rows (or rows from a JSON file) and print the trail.

    Args:
        args: Command-line arguments
    """
    settings = _settings(args)
    pool = None if args.memory else create_pool(args)

    try:
        rows = None
        if args.rows:
            with open(args.rows) as f:
                rows = json.load(f)
            if not isinstance(rows, list):
                raise ValueError(f"{args.rows} must contain a JSON array of row objects")

        service = build_service(settings, pool=pool)
        result = service.test_orchestrator(rows=rows, include_second_row=not args.single_row)
        print_json(result)
        if not result["success"]:
            sys.exit(1)

    except Exception as e:
        logger.error(f"Error during dry run: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if pool is not None:
            pool.close()


def test_rules_command(args):
    """
    Run the current rules over one row and print it before and after.

    Args:
        args: Command-line arguments
    """
    settings = _settings(args)
    pool = None if args.memory else create_pool(args)

    try:
        record = None
        if args.row:
            with open(args.row) as f:
                record = json.load(f)
            if not isinstance(record, dict):
                raise ValueError(f"{args.row} must contain a JSON object")

        service = build_service(settings, pool=pool)
        result = service.test_rules(record)
        print_json(result)
        if not result["success"]:
            sys.exit(1)

    except Exception as e:
        logger.error(f"Error testing rules: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if pool is not None:
            pool.close()


def _inspect_upload(args, app_name: str, inspect) -> None:
    """Build a service reading uploads through Spark, print what inspect returns and clean up."""
    settings = _settings(args)
    spark = create_spark_session(app_name)
    pool = None if args.memory else create_pool(args)

    try:
        service = build_service(
            settings,
            pool=pool,
            source_factory=lambda file_id: upload_source(spark, settings.upload_dir, file_id, args.delimiter),
        )
        print_json(inspect(service))

    except Exception as e:
        logger.error(f"Error running {args.command} on {args.file_id}: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if pool is not None:
            pool.close()
        spark.stop()


def field_mappings_command(args):
    """Show how the headers of an uploaded file resolve to asset fields."""
    _inspect_upload(args, "AssetFieldMappings", lambda service: service.get_field_mappings(args.file_id))


def preview_command(args):
    """Show the first rows of an uploaded file."""
    _inspect_upload(args, "AssetPreview", lambda service: service.preview_file(args.file_id))


def validate_command(args):
    """Dry-run an uploaded file and report valid and invalid rows without importing."""
    _inspect_upload(args, "AssetValidate", lambda service: service.validate_file(args.file_id))


def export_command(args):
    """
    Write a job's phase results to a JSON file.

    Args:
        args: Command-line arguments
    """
    settings = _settings(args)
    pool = create_pool(args)

    try:
        service = build_service(settings, pool=pool)
        filename, payload = service.download_phase_results(args.job_id)
        output = Path(args.output) if args.output else Path(filename)
        output.write_bytes(payload)
        logger.info(f"Wrote phase results of job {args.job_id} to {output}")

    except Exception as e:
        logger.error(f"Error exporting phase results: {e}", exc_info=True)
        sys.exit(1)
    finally:
        pool.close()


def _add_store_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--memory",
        action="store_true",
        help="Use in-memory stores seeded from the YAML files instead of PostgreSQL",
    )
    parser.add_argument("--rules", default=None, help="Rules YAML file (default: $PIPELINE_RULES_PATH)")
    parser.add_argument("--aliases", default=None, help="Aliases YAML file (default: $PIPELINE_ALIASES_PATH)")
    add_db_arguments(parser)


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Asset import pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Import an uploaded CSV file
  asset-pipeline process --file-id assets.csv --upload-dir uploads

  # Import without a database, using the seed rules and aliases
  asset-pipeline process --file-id assets.csv --upload-dir uploads --memory

  # Dry run over the fixture rows
  asset-pipeline test-orchestrator --memory

  # Check an uploaded file without importing it
  asset-pipeline validate --file-id assets.csv --upload-dir uploads --memory

  # Download the phase results of a job
  asset-pipeline export --job-id 6f1c... --output results.json
        """
    )
    parser.add_argument("--env-file", default=None, help="Environment file to load (default: .env)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    process_parser = subparsers.add_parser("process", help="Import an uploaded file")
    process_parser.add_argument("--file-id", required=True, help="Uploaded file id (file name in the upload dir)")
    process_parser.add_argument("--upload-dir", default=None, help="Upload directory (default: $PIPELINE_UPLOAD_DIR)")
    process_parser.add_argument("--delimiter", default=",", help="Field delimiter (default: ,)")
    process_parser.add_argument("--created-by", default=None, help="User starting the import")
    process_parser.add_argument("--json", action="store_true", help="Print the job and summary as JSON")
    _add_store_arguments(process_parser)

    test_parser = subparsers.add_parser("test-orchestrator", help="Dry-run the pipeline over fixture rows")
    test_parser.add_argument("--rows", default=None, help="JSON file with an array of row objects")
    test_parser.add_argument("--single-row", action="store_true", help="Use only the first fixture row")
    _add_store_arguments(test_parser)

    rules_parser = subparsers.add_parser("test-rules", help="Run the rules over one row, before and after")
    rules_parser.add_argument("--row", default=None, help="JSON file with one row object (default: fixture row)")
    _add_store_arguments(rules_parser)

    mappings_parser = subparsers.add_parser("field-mappings", help="Resolve the headers of an uploaded file")
    mappings_parser.add_argument("--file-id", required=True, help="Uploaded file id")
    mappings_parser.add_argument("--upload-dir", default=None, help="Upload directory (default: $PIPELINE_UPLOAD_DIR)")
    mappings_parser.add_argument("--delimiter", default=",", help="Field delimiter (default: ,)")
    _add_store_arguments(mappings_parser)

    for name, help_text in (
        ("preview", "Show the first rows of an uploaded file"),
        ("validate", "Dry-run an uploaded file without importing it"),
    ):
        upload_parser = subparsers.add_parser(name, help=help_text)
        upload_parser.add_argument("--file-id", required=True, help="Uploaded file id")
        upload_parser.add_argument(
            "--upload-dir", default=None, help="Upload directory (default: $PIPELINE_UPLOAD_DIR)"
        )
        upload_parser.add_argument("--delimiter", default=",", help="Field delimiter (default: ,)")
        _add_store_arguments(upload_parser)

    export_parser = subparsers.add_parser("export", help="Download the phase results of a job")
    export_parser.add_argument("--job-id", required=True, help="Job id")
    export_parser.add_argument("--output", default=None, help="Output path (default: job-<id>-phase-results.json)")
    add_db_arguments(export_parser)

    args = parser.parse_args()
    load_environment(args.env_file)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "process": process_command,
        "test-orchestrator": test_orchestrator_command,
        "test-rules": test_rules_command,
        "field-mappings": field_mappings_command,
        "preview": preview_command,
        "validate": validate_command,
        "export": export_command,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
