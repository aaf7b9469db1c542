"""
MAP-phase processors. They run on canonical asset field names, after the MAP
phase has rebuilt each row from the resolved header mapping.
"""

from typing import Any

from asset_etl.core.rules.configs import (
    DefaultValueConfig,
    EnumMappingConfig,
    ReferenceLookupConfig,
)

from .base import DirectiveProcessor, FieldProcessor, RowProcessor, RuleProcessingError
from .validate import is_blank


def _lookup_key(value: Any, case_sensitive: bool) -> str:
    text = str(value).strip()
    return text if case_sensitive else text.lower()


class FieldMappingProcessor(DirectiveProcessor):
    """Explicit header → asset field overrides, consumed by the MAP phase."""

    rule_type = "FIELD_MAPPING"


class EnumMappingProcessor(FieldProcessor):
    """
    Translates values into the asset vocabulary ("In Service" → "ACTIVE").

    Unknown values fall back to default when configured; with strict set and
    no default they are reported as row errors.
    """

    rule_type = "ENUM_MAPPING"

    def process_value(self, value: Any, config: EnumMappingConfig) -> Any:
        if is_blank(value):
            return value

        mapping = {_lookup_key(key, config.case_sensitive): target for key, target in config.mapping.items()}
        key = _lookup_key(value, config.case_sensitive)
        if key in mapping:
            return mapping[key]
        if config.default is not None:
            return config.default
        if config.strict:
            raise RuleProcessingError(f"Value '{value}' has no mapping")
        return value


class ReferenceLookupProcessor(RowProcessor):
    """
    Looks values up in a reference table and writes the result to output_field
    (or back to the field itself).
    """

    rule_type = "REFERENCE_LOOKUP"

    def process_row(self, data: dict[str, Any], fields: list[str], config: ReferenceLookupConfig) -> dict[str, Any]:
        table = {_lookup_key(key, config.case_sensitive): target for key, target in config.table.items()}
        result = dict(data)

        for field in fields:
            value = data.get(field)
            if is_blank(value):
                continue

            destination = config.output_field or field
            key = _lookup_key(value, config.case_sensitive)
            if key in table:
                result[destination] = table[key]
            elif config.on_missing == "null":
                result[destination] = None
            elif config.on_missing == "error":
                raise RuleProcessingError(f"No reference entry for '{value}'", field=field)

        return result


class DefaultValueProcessor(RowProcessor):
    """Fills target fields that are absent, null or (optionally) blank."""

    rule_type = "DEFAULT_VALUE"
    fills_missing = True

    def process_row(self, data: dict[str, Any], fields: list[str], config: DefaultValueConfig) -> dict[str, Any]:
        result = dict(data)
        for field in fields:
            value = data.get(field)
            missing = value is None or (config.treat_empty_as_missing and is_blank(value))
            if missing:
                result[field] = config.value
        return result
