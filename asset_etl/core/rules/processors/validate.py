"""
VALIDATE-phase processors: checks that flag rows without changing them.
"""

import re
from datetime import datetime
from functools import lru_cache
from typing import Any

from asset_etl.core.rules.configs import (
    DataTypeCheckConfig,
    FormatValidatorConfig,
    RangeValidatorConfig,
    RequiredFieldConfig,
    compile_js_flags,
)

from .base import CheckProcessor, ValidationError

BOOLEAN_VALUES = {"true": True, "1": True, "yes": True, "false": False, "0": False, "no": False}


@lru_cache(maxsize=256)
def compile_pattern(pattern: str, flags: str) -> re.Pattern:
    return re.compile(pattern, compile_js_flags(flags))


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def to_number(value: Any) -> float:
    """
    Coerce a cell to a number.

    Raises:
        ValueError: If the value is not numeric
    """
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got boolean {value}")
    if isinstance(value, int | float):
        return float(value)
    return float(str(value).replace(",", "").strip())


class RequiredFieldProcessor(CheckProcessor):
    """
    Ensures a field is present and not null/empty.

    Fails if the field is missing from the row, its value is None, or it is a
    blank string (unless allow_empty is set).
    """

    rule_type = "REQUIRED_FIELD"
    fills_missing = True

    def check(self, field: str, value: Any, record: dict[str, Any], config: RequiredFieldConfig) -> None:
        if field not in record:
            raise ValidationError(self.rule_type, field, config.message or "Field is missing from record")

        if value is None:
            raise ValidationError(self.rule_type, field, config.message or "Field value is null")

        if not config.allow_empty and isinstance(value, str) and value.strip() == "":
            raise ValidationError(self.rule_type, field, config.message or "Field value is empty string")


class DataTypeCheckProcessor(CheckProcessor):
    """
    Checks that a value can be read as the expected type.

    Blank values pass; presence is REQUIRED_FIELD's concern.
    """

    rule_type = "DATA_TYPE_CHECK"

    def check(self, field: str, value: Any, record: dict[str, Any], config: DataTypeCheckConfig) -> None:
        if is_blank(value):
            return

        try:
            self._coerce(value, config)
        except (ValueError, TypeError) as e:
            raise ValidationError(
                self.rule_type,
                field,
                config.message or f"Cannot read {value!r} as {config.expected_type}: {e}",
            )

    def _coerce(self, value: Any, config: DataTypeCheckConfig) -> Any:
        expected = config.expected_type

        if expected == "string":
            return str(value)

        if expected == "integer":
            if isinstance(value, bool):
                raise ValueError("boolean is not an integer")
            if isinstance(value, int):
                return value
            number = to_number(value)
            if not number.is_integer():
                raise ValueError("value has a fractional part")
            return int(number)

        if expected == "number":
            return to_number(value)

        if expected == "boolean":
            if isinstance(value, bool):
                return value
            key = str(value).strip().lower()
            if key not in BOOLEAN_VALUES:
                raise ValueError(f"'{value}' is not a boolean")
            return BOOLEAN_VALUES[key]

        text = str(value).strip()
        for fmt in config.date_formats:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
        raise ValueError(f"no matching date format among {len(config.date_formats)}")


class RangeValidatorProcessor(CheckProcessor):
    """Checks that a numeric value lies within [min, max]."""

    rule_type = "RANGE_VALIDATOR"

    def check(self, field: str, value: Any, record: dict[str, Any], config: RangeValidatorConfig) -> None:
        if is_blank(value):
            return

        try:
            number = to_number(value)
        except (ValueError, TypeError):
            raise ValidationError(
                self.rule_type, field, config.message or f"Value must be numeric, got {value!r}"
            )

        if config.min is not None and number < config.min:
            raise ValidationError(
                self.rule_type, field, config.message or f"Value {number:g} is less than minimum {config.min:g}"
            )

        if config.max is not None and number > config.max:
            raise ValidationError(
                self.rule_type, field, config.message or f"Value {number:g} exceeds maximum {config.max:g}"
            )


class FormatValidatorProcessor(CheckProcessor):
    """Checks that the whole value matches a regular expression."""

    rule_type = "FORMAT_VALIDATOR"

    def check(self, field: str, value: Any, record: dict[str, Any], config: FormatValidatorConfig) -> None:
        if is_blank(value):
            return

        pattern = compile_pattern(config.pattern, config.flags)
        value_str = value if isinstance(value, str) else str(value)
        if not pattern.fullmatch(value_str):
            raise ValidationError(
                self.rule_type,
                field,
                config.message or f"Value '{value_str}' does not match pattern '{config.pattern}'",
            )
