"""
Core data models for the asset import pipeline.

All models use Pydantic for runtime validation and type safety.
"""

from .asset import ASSET_FIELDS, ASSET_KEY_FIELD, AssetRecord, AssetUpsert
from .column_alias import AliasMatch, ColumnAlias, FieldMappingReport
from .import_job import ImportJob
from .phase_result import FieldChange, OrchestrationResult, OrchestrationSummary, PhaseResult
from .row import PipelineRow, RowError, RowErrorLog
from .rule import PipelineRule
from .table import TabularData

__all__ = [
    "ASSET_FIELDS",
    "ASSET_KEY_FIELD",
    "AssetRecord",
    "AssetUpsert",
    "AliasMatch",
    "ColumnAlias",
    "FieldMappingReport",
    "ImportJob",
    "FieldChange",
    "PhaseResult",
    "OrchestrationSummary",
    "OrchestrationResult",
    "PipelineRow",
    "RowError",
    "RowErrorLog",
    "PipelineRule",
    "TabularData",
]
