"""
EXTRACT-phase processors: they operate on the raw header row and cells.
"""

import csv
import re
from typing import Any

from asset_etl.core.models import TabularData
from asset_etl.core.rules.configs import (
    ColumnMapperConfig,
    DelimiterDetectorConfig,
    EncodingDetectorConfig,
    HeaderValidatorConfig,
)

from .base import RuleProcessingError, TableProcessor

BOM = "\ufeff"

_WHITESPACE = re.compile(r"\s+")


def normalize_header(header: Any) -> str:
    """Strip a header, drop a leading byte-order mark and collapse inner whitespace."""
    text = "" if header is None else str(header)
    return _WHITESPACE.sub(" ", text.replace(BOM, "")).strip()


class EncodingDetectorProcessor(TableProcessor):
    """
    Decodes byte headers and cells with the first configured encoding that works.
    """

    rule_type = "ENCODING_DETECTOR"

    def process_table(self, table: TabularData, config: EncodingDetectorConfig) -> tuple[TabularData, list[str]]:
        used: dict[str, int] = {}

        def decode(value: Any) -> Any:
            if isinstance(value, bytes | bytearray):
                for encoding in config.encodings:
                    try:
                        text = bytes(value).decode(encoding)
                    except UnicodeDecodeError:
                        continue
                    used[encoding] = used.get(encoding, 0) + 1
                    value = text
                    break
                else:
                    raise RuleProcessingError(
                        f"Could not decode value with any of: {', '.join(config.encodings)}"
                    )
            if config.strip_bom and isinstance(value, str) and value.startswith(BOM):
                value = value.lstrip(BOM)
            return value

        headers = [decode(header) for header in table.headers]
        rows = [[decode(cell) for cell in row] for row in table.rows]

        warnings = [f"Decoded {count} value(s) as {encoding}" for encoding, count in used.items()]
        return table.with_changes(headers=headers, rows=rows), warnings


class DelimiterDetectorProcessor(TableProcessor):
    """
    Re-splits a file that was read with the wrong delimiter.

    Only acts when the table has a single column whose header contains one of
    the candidate delimiters; the most frequent candidate wins.
    """

    rule_type = "DELIMITER_DETECTOR"

    def process_table(self, table: TabularData, config: DelimiterDetectorConfig) -> tuple[TabularData, list[str]]:
        if table.column_count != 1 or not isinstance(table.headers[0], str):
            return table, []

        header_line = table.headers[0]
        counts = {candidate: header_line.count(candidate) for candidate in config.candidates}
        delimiter = max(counts, key=lambda candidate: counts[candidate])
        if counts[delimiter] == 0:
            return table, []

        def split(line: Any) -> list[Any]:
            if line is None:
                return []
            return next(csv.reader([str(line)], delimiter=delimiter), [])

        headers = split(header_line)
        rows = [split(row[0] if row else None) for row in table.rows]
        return (
            table.with_changes(headers=headers, rows=rows),
            [f"Re-split single column into {len(headers)} columns using {delimiter!r}"],
        )


class ColumnMapperProcessor(TableProcessor):
    """Renames headers before any other phase sees them."""

    rule_type = "COLUMN_MAPPER"

    def process_table(self, table: TabularData, config: ColumnMapperConfig) -> tuple[TabularData, list[str]]:
        if config.normalize_whitespace:
            mapping = {normalize_header(source): target for source, target in config.mapping.items()}
        else:
            mapping = dict(config.mapping)

        headers = []
        renamed = 0
        for header in table.headers:
            key = normalize_header(header) if config.normalize_whitespace else header
            if key in mapping:
                headers.append(mapping[key])
                renamed += 1
            else:
                headers.append(header)

        warnings = [f"Renamed {renamed} column(s)"] if renamed else []
        return table.with_changes(headers=headers), warnings


class HeaderValidatorProcessor(TableProcessor):
    """
    Checks that required headers are present.

    Missing headers abort the run unless abort_on_missing is disabled, in which
    case they are reported as a warning.
    """

    rule_type = "HEADER_VALIDATOR"

    def process_table(self, table: TabularData, config: HeaderValidatorConfig) -> tuple[TabularData, list[str]]:
        def key(value: Any) -> str:
            text = normalize_header(value)
            return text if config.case_sensitive else text.lower()

        present = {key(header) for header in table.headers}
        missing = [header for header in config.required if key(header) not in present]
        if not missing:
            return table, []

        message = f"Missing required headers: {', '.join(missing)}"
        if config.abort_on_missing:
            raise RuleProcessingError(message, fatal=True)
        return table, [message]
