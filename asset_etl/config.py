"""
Pipeline settings read from environment variables.

Database settings are read by DatabaseConnectionPool (DB_HOST, DB_PORT,
DB_NAME, DB_USER, DB_PASSWORD); logging by the observability logger
(LOG_LEVEL, LOG_FORMAT).
"""

import os
from pathlib import Path

from pydantic import BaseModel, Field

from asset_etl.core.constants import (
    DEFAULT_MAX_JOB_ERRORS,
    DEFAULT_MAX_TRANSFORMATIONS,
    DEFAULT_SAMPLE_SIZE,
)


class PipelineSettings(BaseModel):
    """
    Runtime settings for the pipeline.

    Attributes:
        sample_size: Rows kept as input/output samples per phase
        max_job_errors: Error messages stored on an import job
        max_transformations: Value changes kept per phase result
        rules_path: YAML file with seed rules
        aliases_path: YAML file with seed column aliases
        upload_dir: Directory holding uploaded files, addressed by file id
        alias_strategy: Header matching strategy ("exact" or "normalized")
        metrics_port: Port for the Prometheus endpoint (0 disables it)
    """

    sample_size: int = Field(default=DEFAULT_SAMPLE_SIZE, ge=0)
    max_job_errors: int = Field(default=DEFAULT_MAX_JOB_ERRORS, ge=1)
    max_transformations: int = Field(default=DEFAULT_MAX_TRANSFORMATIONS, ge=0)
    rules_path: Path = Path("config/pipeline_rules.yaml")
    aliases_path: Path = Path("config/column_aliases.yaml")
    upload_dir: Path = Path("uploads")
    alias_strategy: str = "exact"
    metrics_port: int = Field(default=0, ge=0)

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        """Build settings from PIPELINE_* environment variables, falling back to defaults."""
        env = {
            "sample_size": os.getenv("PIPELINE_SAMPLE_SIZE"),
            "max_job_errors": os.getenv("PIPELINE_MAX_JOB_ERRORS"),
            "max_transformations": os.getenv("PIPELINE_MAX_TRANSFORMATIONS"),
            "rules_path": os.getenv("PIPELINE_RULES_PATH"),
            "aliases_path": os.getenv("PIPELINE_ALIASES_PATH"),
            "upload_dir": os.getenv("PIPELINE_UPLOAD_DIR"),
            "alias_strategy": os.getenv("PIPELINE_ALIAS_STRATEGY"),
            "metrics_port": os.getenv("METRICS_PORT"),
        }
        return cls(**{key: value for key, value in env.items() if value is not None})
