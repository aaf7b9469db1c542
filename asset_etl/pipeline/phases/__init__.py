"""
Pipeline phases, in execution order.
"""

from .base import (
    CancellationToken,
    LoadReport,
    PhaseContext,
    PhaseOutput,
    PhaseProcessor,
    PipelineAbort,
    PipelineCancelled,
    RuleDrivenPhase,
)
from .clean import CleanPhase
from .extract import ExtractPhase, normalize_headers
from .load import LoadPhase, LoadSettings
from .map import MapPhase, apply_overrides
from .transform import TransformPhase
from .validate import ValidatePhase

DEFAULT_PHASES: list[type[PhaseProcessor]] = [
    ExtractPhase,
    ValidatePhase,
    CleanPhase,
    TransformPhase,
    MapPhase,
    LoadPhase,
]

__all__ = [
    "DEFAULT_PHASES",
    "CancellationToken",
    "LoadReport",
    "LoadSettings",
    "PhaseContext",
    "PhaseOutput",
    "PhaseProcessor",
    "PipelineAbort",
    "PipelineCancelled",
    "RuleDrivenPhase",
    "ExtractPhase",
    "ValidatePhase",
    "CleanPhase",
    "TransformPhase",
    "MapPhase",
    "LoadPhase",
    "normalize_headers",
    "apply_overrides",
]
