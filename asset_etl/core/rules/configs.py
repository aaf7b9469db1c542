"""
Typed configuration schemas for every rule type.

Rule configs are stored as JSON objects. They are validated against these
schemas when a rule is saved, and deserialized into them when the Rule Engine
snapshots a rule set, so processors never read untyped dictionaries.
"""

import codecs
import re
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from asset_etl.core.constants import (
    ALL_RULE_TYPES,
    DEFAULT_BATCH_SIZE,
    DEFAULT_DATE_FORMATS,
    MAX_BATCH_SIZE,
    REQUIRED_CSV_HEADERS,
)
from asset_etl.core.models.asset import ASSET_FIELDS, ASSET_KEY_FIELD
from asset_etl.core.models.rule import PipelineRule

JS_REGEX_FLAGS = {
    "g": 0,
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "u": 0,
}


class RuleConfigError(ValueError):
    """Raised when a rule definition or its config fails validation."""

    def __init__(self, rule_type: str, message: str, rule_name: str | None = None):
        self.rule_type = rule_type
        self.rule_name = rule_name
        self.message = message
        label = f"{rule_name} ({rule_type})" if rule_name else rule_type
        super().__init__(f"Invalid config for {label}: {message}")


def compile_js_flags(flags: str) -> int:
    """
    Translate JavaScript-style regex flag letters into Python re flags.

    Args:
        flags: Flag letters, e.g. "gi"

    Returns:
        Combined re flags ("g" only affects replacement count)

    Raises:
        ValueError: If an unsupported flag letter is present
    """
    compiled = 0
    for flag in flags:
        if flag not in JS_REGEX_FLAGS:
            raise ValueError(f"Unsupported regex flag '{flag}'. Allowed: {''.join(JS_REGEX_FLAGS)}")
        compiled |= JS_REGEX_FLAGS[flag]
    return compiled


class RuleConfig(BaseModel):
    """Base class for rule configs: unknown keys are rejected."""

    class Config:
        extra = "forbid"
        populate_by_name = True


class SeverityConfig(RuleConfig):
    severity: Literal["error", "warning"] = "error"
    message: str | None = None


# =======================
# EXTRACT
# =======================

class EncodingDetectorConfig(RuleConfig):
    encodings: list[str] = Field(default_factory=lambda: ["utf-8", "utf-8-sig", "latin-1"], min_length=1)
    strip_bom: bool = Field(default=True, alias="stripBom")

    @field_validator("encodings")
    @classmethod
    def validate_encodings(cls, v: list[str]) -> list[str]:
        for encoding in v:
            try:
                codecs.lookup(encoding)
            except LookupError:
                raise ValueError(f"Unknown encoding '{encoding}'")
        return v


class ColumnMapperConfig(RuleConfig):
    mapping: dict[str, str] = Field(..., min_length=1)
    normalize_whitespace: bool = Field(default=True, alias="normalizeWhitespace")


class DelimiterDetectorConfig(RuleConfig):
    candidates: list[str] = Field(default_factory=lambda: [",", ";", "\t", "|"], min_length=1)

    @field_validator("candidates")
    @classmethod
    def validate_candidates(cls, v: list[str]) -> list[str]:
        for candidate in v:
            if len(candidate) != 1:
                raise ValueError(f"Delimiter candidates must be single characters, got '{candidate}'")
        return v


class HeaderValidatorConfig(RuleConfig):
    required: list[str] = Field(default_factory=lambda: list(REQUIRED_CSV_HEADERS))
    case_sensitive: bool = Field(default=False, alias="caseSensitive")
    abort_on_missing: bool = Field(default=True, alias="abortOnMissing")


# =======================
# VALIDATE
# =======================

class RequiredFieldConfig(SeverityConfig):
    allow_empty: bool = Field(default=False, alias="allowEmpty")


class DataTypeCheckConfig(SeverityConfig):
    expected_type: Literal["string", "integer", "number", "boolean", "date"] = Field(alias="expectedType")
    date_formats: list[str] = Field(default_factory=lambda: list(DEFAULT_DATE_FORMATS), alias="dateFormats")


class RangeValidatorConfig(SeverityConfig):
    min: float | None = None
    max: float | None = None

    @model_validator(mode="after")
    def check_bounds(self) -> "RangeValidatorConfig":
        if self.min is None and self.max is None:
            raise ValueError("RANGE_VALIDATOR requires at least one of: min, max")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"min ({self.min}) is greater than max ({self.max})")
        return self


class FormatValidatorConfig(SeverityConfig):
    pattern: str = Field(..., min_length=1)
    flags: str = ""

    @model_validator(mode="after")
    def check_pattern(self) -> "FormatValidatorConfig":
        try:
            re.compile(self.pattern, compile_js_flags(self.flags))
        except re.error as e:
            raise ValueError(f"Invalid regex pattern: {e}")
        return self


# =======================
# CLEAN
# =======================

class TrimConfig(RuleConfig):
    sides: Literal["both", "left", "right"] = "both"
    custom_chars: str = Field(default=" \t\n\r", alias="customChars", min_length=1)


class RegexReplaceConfig(RuleConfig):
    pattern: str = Field(..., min_length=1)
    replacement: str = ""
    flags: str = "g"

    @model_validator(mode="after")
    def check_pattern(self) -> "RegexReplaceConfig":
        try:
            re.compile(self.pattern, compile_js_flags(self.flags))
        except re.error as e:
            raise ValueError(f"Invalid regex pattern: {e}")
        return self


class Replacement(RuleConfig):
    from_: str = Field(..., alias="from", min_length=1)
    to: str = ""


class ExactReplaceConfig(RuleConfig):
    replacements: list[Replacement] = Field(..., min_length=1)
    case_sensitive: bool = Field(default=True, alias="caseSensitive")
    whole_value: bool = Field(default=False, alias="wholeValue")


class RemoveDuplicatesConfig(RuleConfig):
    delimiter: str = Field(default=",", min_length=1)
    case_sensitive: bool = Field(default=False, alias="caseSensitive")
    scope: Literal["value", "rows"] = "value"


# =======================
# TRANSFORM
# =======================

class CaseConversionConfig(RuleConfig):
    pass


class DateFormatConfig(RuleConfig):
    input_formats: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DATE_FORMATS), alias="inputFormats", min_length=1
    )
    output_format: str = Field(default="%Y-%m-%d", alias="outputFormat", min_length=1)


class NumericFormatConfig(RuleConfig):
    decimals: int | None = Field(default=None, ge=0, le=10)
    strip_chars: str = Field(default="$,€£ ", alias="stripChars")
    output: Literal["number", "string"] = "number"


class CalculateFieldConfig(RuleConfig):
    output_field: str = Field(..., alias="outputField", min_length=1)
    operation: Literal["concat", "sum", "subtract", "multiply", "divide", "coalesce"]
    separator: str = " "


# =======================
# MAP
# =======================

class FieldMappingConfig(RuleConfig):
    mappings: dict[str, str] = Field(..., min_length=1)

    @field_validator("mappings")
    @classmethod
    def validate_targets(cls, v: dict[str, str]) -> dict[str, str]:
        unknown = sorted({field for field in v.values() if field not in ASSET_FIELDS})
        if unknown:
            raise ValueError(f"Unknown asset field(s): {', '.join(unknown)}")
        return v


class EnumMappingConfig(RuleConfig):
    mapping: dict[str, str] = Field(..., min_length=1)
    case_sensitive: bool = Field(default=False, alias="caseSensitive")
    default: str | None = None
    strict: bool = False


class ReferenceLookupConfig(RuleConfig):
    table: dict[str, Any] = Field(..., min_length=1)
    output_field: str | None = Field(default=None, alias="outputField")
    case_sensitive: bool = Field(default=False, alias="caseSensitive")
    on_missing: Literal["keep", "null", "error"] = Field(default="keep", alias="onMissing")


class DefaultValueConfig(RuleConfig):
    value: Any
    treat_empty_as_missing: bool = Field(default=True, alias="treatEmptyAsMissing")


# =======================
# LOAD
# =======================

class ConflictResolutionConfig(RuleConfig):
    strategy: Literal["overwrite", "skip", "merge", "fail"] = "overwrite"
    key_field: str = Field(default=ASSET_KEY_FIELD, alias="keyField")

    @field_validator("key_field")
    @classmethod
    def validate_key_field(cls, v: str) -> str:
        # assets are persisted and looked up by asset tag only
        if v != ASSET_KEY_FIELD:
            raise ValueError(f"keyField must be '{ASSET_KEY_FIELD}', got '{v}'")
        return v


class BatchSizeConfig(RuleConfig):
    size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1, le=MAX_BATCH_SIZE)


class TransactionBoundaryConfig(RuleConfig):
    scope: Literal["row", "batch", "job"] = "batch"


class RollbackStrategyConfig(RuleConfig):
    on_failure: Literal["rollback_batch", "skip_row"] = Field(default="skip_row", alias="onFailure")


RULE_CONFIG_MODELS: dict[str, type[RuleConfig]] = {
    "ENCODING_DETECTOR": EncodingDetectorConfig,
    "COLUMN_MAPPER": ColumnMapperConfig,
    "DELIMITER_DETECTOR": DelimiterDetectorConfig,
    "HEADER_VALIDATOR": HeaderValidatorConfig,
    "REQUIRED_FIELD": RequiredFieldConfig,
    "DATA_TYPE_CHECK": DataTypeCheckConfig,
    "RANGE_VALIDATOR": RangeValidatorConfig,
    "FORMAT_VALIDATOR": FormatValidatorConfig,
    "TRIM": TrimConfig,
    "REGEX_REPLACE": RegexReplaceConfig,
    "EXACT_REPLACE": ExactReplaceConfig,
    "REMOVE_DUPLICATES": RemoveDuplicatesConfig,
    "TO_UPPERCASE": CaseConversionConfig,
    "TO_LOWERCASE": CaseConversionConfig,
    "TITLE_CASE": CaseConversionConfig,
    "DATE_FORMAT": DateFormatConfig,
    "NUMERIC_FORMAT": NumericFormatConfig,
    "CALCULATE_FIELD": CalculateFieldConfig,
    "FIELD_MAPPING": FieldMappingConfig,
    "ENUM_MAPPING": EnumMappingConfig,
    "REFERENCE_LOOKUP": ReferenceLookupConfig,
    "DEFAULT_VALUE": DefaultValueConfig,
    "CONFLICT_RESOLUTION": ConflictResolutionConfig,
    "BATCH_SIZE": BatchSizeConfig,
    "TRANSACTION_BOUNDARY": TransactionBoundaryConfig,
    "ROLLBACK_STRATEGY": RollbackStrategyConfig,
}

_missing = set(ALL_RULE_TYPES) - set(RULE_CONFIG_MODELS)
if _missing:
    raise RuntimeError(f"Rule types without a config schema: {', '.join(sorted(_missing))}")


def _format_errors(error: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'config'}: {err['msg']}"
        for err in error.errors()
    )


def parse_rule_config(rule_type: str, config: dict[str, Any] | None, rule_name: str | None = None) -> RuleConfig:
    """
    Deserialize a stored config into the schema of its rule type.

    Args:
        rule_type: Rule type name
        config: Raw config object
        rule_name: Rule name used in error messages

    Returns:
        Typed config instance

    Raises:
        RuleConfigError: If the type is unknown or the config does not match its schema
    """
    model = RULE_CONFIG_MODELS.get(rule_type)
    if model is None:
        raise RuleConfigError(rule_type, "unknown rule type", rule_name)
    if config is not None and not isinstance(config, dict):
        raise RuleConfigError(rule_type, "config must be an object", rule_name)
    try:
        return model.model_validate(config or {})
    except PydanticValidationError as e:
        raise RuleConfigError(rule_type, _format_errors(e), rule_name) from e


def validate_rule_definition(payload: dict[str, Any]) -> PipelineRule:
    """
    Validate a complete rule definition before it is persisted.

    Args:
        payload: Rule fields (name, phase, type, target, config, priority, ...)

    Returns:
        The validated PipelineRule

    Raises:
        RuleConfigError: If the rule or its config is invalid
    """
    rule_type = str(payload.get("type", "UNKNOWN"))
    try:
        rule = PipelineRule.model_validate(payload)
    except PydanticValidationError as e:
        raise RuleConfigError(rule_type, _format_errors(e), payload.get("name")) from e
    parse_rule_config(rule.type, rule.config, rule.name)
    return rule
