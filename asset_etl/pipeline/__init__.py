"""
Import pipeline: phases, orchestrator, job tracking and the service facade.
"""

from .export import export_phase_results
from .fixtures import FIXTURE_ROWS, fixture_rows
from .job_tracker import JobStateError, JobTracker
from .orchestrator import PhaseOrchestrator
from .phases import CancellationToken, PipelineAbort, PipelineCancelled
from .service import PipelineService

__all__ = [
    "PhaseOrchestrator",
    "JobTracker",
    "JobStateError",
    "PipelineService",
    "CancellationToken",
    "PipelineAbort",
    "PipelineCancelled",
    "FIXTURE_ROWS",
    "fixture_rows",
    "export_phase_results",
]
