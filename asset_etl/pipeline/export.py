"""
Export of a job's phase results as a downloadable JSON document.
"""

import json
from datetime import datetime
from typing import Any

from asset_etl.core.models import ImportJob, PhaseResult


def phase_results_filename(job_id: str) -> str:
    return f"job-{job_id}-phase-results.json"


def phase_results_document(job: ImportJob, results: list[PhaseResult]) -> dict[str, Any]:
    """A job and its phase results in execution order, as JSON-compatible values."""
    return {
        "exportedAt": datetime.utcnow().isoformat(),
        "job": job.model_dump(mode="json"),
        "phaseResults": [result.model_dump(mode="json") for result in results],
    }


def export_phase_results(job: ImportJob, results: list[PhaseResult]) -> tuple[str, bytes]:
    """
    Serialize a job and its phase results.

    Args:
        job: Job the results belong to
        results: Phase results in execution order

    Returns:
        Tuple of (filename, UTF-8 encoded JSON document)
    """
    document = phase_results_document(job, results)
    payload = json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")
    return phase_results_filename(job.id), payload
