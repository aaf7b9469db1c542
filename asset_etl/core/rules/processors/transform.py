"""
TRANSFORM-phase processors: case conversion, date/number reshaping, derived fields.
"""

from datetime import date, datetime
from typing import Any

from asset_etl.core.rules.configs import (
    CalculateFieldConfig,
    CaseConversionConfig,
    DateFormatConfig,
    NumericFormatConfig,
)

from .base import FieldProcessor, RowProcessor, RuleProcessingError, TextProcessor
from .validate import is_blank, to_number


def as_number(value: float) -> int | float:
    """Return an int for integral floats so 3.0 is written as 3."""
    return int(value) if float(value).is_integer() else value


class UppercaseProcessor(TextProcessor):
    rule_type = "TO_UPPERCASE"

    def process_text(self, value: str, config: CaseConversionConfig) -> str:
        return value.upper()


class LowercaseProcessor(TextProcessor):
    rule_type = "TO_LOWERCASE"

    def process_text(self, value: str, config: CaseConversionConfig) -> str:
        return value.lower()


class TitleCaseProcessor(TextProcessor):
    """Capitalizes each space-separated word, keeping the original spacing."""

    rule_type = "TITLE_CASE"

    def process_text(self, value: str, config: CaseConversionConfig) -> str:
        return " ".join(word.capitalize() for word in value.split(" "))


class DateFormatProcessor(FieldProcessor):
    """
    Re-formats dates.

    Text is parsed with the first matching input format and written with
    output_format; date/datetime values are formatted directly.
    """

    rule_type = "DATE_FORMAT"

    def process_value(self, value: Any, config: DateFormatConfig) -> Any:
        if is_blank(value):
            return value

        if isinstance(value, datetime | date):
            return value.strftime(config.output_format)

        text = str(value).strip()
        for fmt in config.input_formats:
            try:
                parsed = datetime.strptime(text, fmt)
            except ValueError:
                continue
            return parsed.strftime(config.output_format)

        raise RuleProcessingError(f"Unrecognized date '{text}'")


class NumericFormatProcessor(FieldProcessor):
    """
    Parses numbers written with currency symbols or thousands separators.

    Output is a number (default) or a string with a fixed number of decimals.
    """

    rule_type = "NUMERIC_FORMAT"

    def process_value(self, value: Any, config: NumericFormatConfig) -> Any:
        if is_blank(value):
            return value

        if isinstance(value, bool):
            raise RuleProcessingError(f"Cannot format boolean {value} as a number")

        if isinstance(value, int | float):
            number = float(value)
        else:
            text = str(value)
            for char in config.strip_chars:
                text = text.replace(char, "")
            try:
                number = float(text)
            except ValueError:
                raise RuleProcessingError(f"Cannot parse '{value}' as a number")

        if config.decimals is not None:
            number = round(number, config.decimals)

        if config.output == "string":
            if config.decimals is not None:
                return f"{number:.{config.decimals}f}"
            return str(as_number(number))

        return as_number(number)


class CalculateFieldProcessor(RowProcessor):
    """
    Derives output_field from the target fields, taken in target order.

    Operations: concat (non-blank values joined by separator), coalesce (first
    non-blank value), and the arithmetic operations sum, subtract, multiply,
    divide, which require every operand to be numeric.
    """

    rule_type = "CALCULATE_FIELD"

    def process_row(self, data: dict[str, Any], fields: list[str], config: CalculateFieldConfig) -> dict[str, Any]:
        values = [data.get(field) for field in fields]
        result = dict(data)

        if config.operation == "concat":
            result[config.output_field] = config.separator.join(
                str(value).strip() for value in values if not is_blank(value)
            )
            return result

        if config.operation == "coalesce":
            result[config.output_field] = next((value for value in values if not is_blank(value)), None)
            return result

        numbers = []
        for field, value in zip(fields, values):
            if is_blank(value):
                raise RuleProcessingError(f"Missing operand '{field}'", field=field)
            try:
                numbers.append(to_number(value))
            except (ValueError, TypeError):
                raise RuleProcessingError(f"Operand '{field}' is not numeric: {value!r}", field=field)

        total = numbers[0]
        for number in numbers[1:]:
            if config.operation == "sum":
                total += number
            elif config.operation == "subtract":
                total -= number
            elif config.operation == "multiply":
                total *= number
            else:
                if number == 0:
                    raise RuleProcessingError("Division by zero", field=config.output_field)
                total /= number

        result[config.output_field] = as_number(total)
        return result
