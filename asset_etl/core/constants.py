"""
Shared constants for the asset import pipeline.

Phase names, rule types, asset vocabularies and pipeline defaults live here so
that models, rule processors and phases agree on a single definition.
"""

from typing import Literal

# =======================
# PHASES
# =======================

PipelinePhase = Literal["EXTRACT", "VALIDATE", "CLEAN", "TRANSFORM", "MAP", "LOAD"]

PHASE_ORDER: tuple[str, ...] = ("EXTRACT", "VALIDATE", "CLEAN", "TRANSFORM", "MAP", "LOAD")

# =======================
# RULE TYPES
# =======================

RuleType = Literal[
    "ENCODING_DETECTOR",
    "COLUMN_MAPPER",
    "DELIMITER_DETECTOR",
    "HEADER_VALIDATOR",
    "REQUIRED_FIELD",
    "DATA_TYPE_CHECK",
    "RANGE_VALIDATOR",
    "FORMAT_VALIDATOR",
    "TRIM",
    "REGEX_REPLACE",
    "EXACT_REPLACE",
    "REMOVE_DUPLICATES",
    "TO_UPPERCASE",
    "TO_LOWERCASE",
    "TITLE_CASE",
    "DATE_FORMAT",
    "NUMERIC_FORMAT",
    "CALCULATE_FIELD",
    "FIELD_MAPPING",
    "ENUM_MAPPING",
    "REFERENCE_LOOKUP",
    "DEFAULT_VALUE",
    "CONFLICT_RESOLUTION",
    "BATCH_SIZE",
    "TRANSACTION_BOUNDARY",
    "ROLLBACK_STRATEGY",
]

PHASE_RULE_TYPES: dict[str, tuple[str, ...]] = {
    "EXTRACT": ("ENCODING_DETECTOR", "COLUMN_MAPPER", "DELIMITER_DETECTOR", "HEADER_VALIDATOR"),
    "VALIDATE": ("REQUIRED_FIELD", "DATA_TYPE_CHECK", "RANGE_VALIDATOR", "FORMAT_VALIDATOR"),
    "CLEAN": ("TRIM", "REGEX_REPLACE", "EXACT_REPLACE", "REMOVE_DUPLICATES"),
    "TRANSFORM": (
        "TO_UPPERCASE",
        "TO_LOWERCASE",
        "TITLE_CASE",
        "DATE_FORMAT",
        "NUMERIC_FORMAT",
        "CALCULATE_FIELD",
    ),
    "MAP": ("FIELD_MAPPING", "ENUM_MAPPING", "REFERENCE_LOOKUP", "DEFAULT_VALUE"),
    "LOAD": ("CONFLICT_RESOLUTION", "BATCH_SIZE", "TRANSACTION_BOUNDARY", "ROLLBACK_STRATEGY"),
}

ALL_RULE_TYPES: tuple[str, ...] = tuple(
    rule_type for phase in PHASE_ORDER for rule_type in PHASE_RULE_TYPES[phase]
)


def phase_of(rule_type: str) -> str:
    """
    Return the phase a rule type belongs to.

    Raises:
        ValueError: If the rule type is unknown
    """
    for phase, rule_types in PHASE_RULE_TYPES.items():
        if rule_type in rule_types:
            return phase
    raise ValueError(f"Unknown rule type: {rule_type}")


# =======================
# JOBS
# =======================

JobStatus = Literal["PENDING", "RUNNING", "COMPLETED", "FAILED"]

TERMINAL_JOB_STATUSES = ("COMPLETED", "FAILED")

DEFAULT_CLEANUP_HOURS = 24

# =======================
# ASSET VOCABULARIES
# =======================

VALID_ASSET_STATUSES = (
    "ACTIVE",
    "INACTIVE",
    "MAINTENANCE",
    "DISPOSED",
    "PENDING",
    "RESERVED",
    "RETIRED",
)

VALID_ASSET_CONDITIONS = (
    "NEW",
    "EXCELLENT",
    "GOOD",
    "FAIR",
    "POOR",
    "BROKEN",
    "UNKNOWN",
)

DEFAULT_ASSET_STATUS = "ACTIVE"
DEFAULT_ASSET_CONDITION = "GOOD"

REQUIRED_CSV_HEADERS = ("Asset Tag", "Asset Name")

# =======================
# PIPELINE DEFAULTS
# =======================

DEFAULT_BATCH_SIZE = 100
MAX_BATCH_SIZE = 10000
DEFAULT_SAMPLE_SIZE = 5
DEFAULT_MAX_JOB_ERRORS = 100
DEFAULT_MAX_TRANSFORMATIONS = 200
MAX_ERROR_DISPLAY = 20
PREVIEW_ROWS = 10
PREVIEW_VALUE_LENGTH = 50
VALIDATION_SAMPLE_ROWS = 5

DEFAULT_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%d.%m.%Y",
    "%d %b %Y",
    "%b %d, %Y",
    "%Y-%m-%dT%H:%M:%S",
)
