"""
EXTRACT phase: turn the row source into pipeline rows.
"""

from typing import Any

from asset_etl.core.models import PipelineRow, TabularData
from asset_etl.core.rules.processors import RuleProcessingError, normalize_header
from asset_etl.observability.logger import get_logger
from asset_etl.readers.base import SourceReadError

from .base import PhaseContext, PhaseOutput, PhaseProcessor, PipelineAbort

logger = get_logger(__name__)

# Table rules that run before header normalization; HEADER_VALIDATOR runs after it
PRE_NORMALIZATION_RULES = ("ENCODING_DETECTOR", "DELIMITER_DETECTOR", "COLUMN_MAPPER")
POST_NORMALIZATION_RULES = ("HEADER_VALIDATOR",)


def _header_text(header: Any) -> str:
    if isinstance(header, bytes | bytearray):
        header = bytes(header).decode("utf-8", errors="replace")
    return normalize_header(header)


def normalize_headers(headers: list[Any]) -> tuple[list[str], list[str]]:
    """
    Make headers usable as field names.

    Blank headers become column_N (1-based position); repeated headers get a
    numeric suffix starting at _2.

    Returns:
        Tuple of (headers, warnings)
    """
    normalized: list[str] = []
    warnings: list[str] = []
    seen: dict[str, int] = {}

    for index, header in enumerate(headers):
        text = _header_text(header)
        if not text:
            text = f"column_{index + 1}"
            warnings.append(f"Blank header at position {index + 1} renamed to '{text}'")

        if text in seen:
            seen[text] += 1
            renamed = f"{text}_{seen[text]}"
            while renamed in seen:
                seen[text] += 1
                renamed = f"{text}_{seen[text]}"
            warnings.append(f"Duplicate header '{text}' renamed to '{renamed}'")
            text = renamed
        seen.setdefault(text, 1)
        normalized.append(text)

    return normalized, warnings


def is_blank_row(cells: list[Any]) -> bool:
    return all(cell is None or (isinstance(cell, str) and not cell.strip()) for cell in cells)


class ExtractPhase(PhaseProcessor):
    """
    Reads the source and produces one PipelineRow per non-blank data row.

    Order of work:
    1. ENCODING_DETECTOR, DELIMITER_DETECTOR and COLUMN_MAPPER rules (priority order)
    2. header normalization, row padding, blank row removal
    3. HEADER_VALIDATOR rules
    """

    phase = "EXTRACT"

    def run(self, rows: list[PipelineRow], context: PhaseContext) -> PhaseOutput:
        if context.source is None:
            raise PipelineAbort(self.phase, "No row source to read")

        try:
            table = context.source.read()
        except (SourceReadError, OSError) as e:
            raise PipelineAbort(self.phase, f"Could not read source: {e}") from e

        output = PhaseOutput()
        table = self._apply_table_rules(table, context, PRE_NORMALIZATION_RULES, output)

        if table.column_count == 0:
            raise PipelineAbort(self.phase, "File has no columns")

        headers, warnings = normalize_headers(table.headers)
        output.warnings.extend(warnings)

        table = self._apply_table_rules(table.with_changes(headers=headers), context, POST_NORMALIZATION_RULES, output)

        blank_rows = 0
        for index, cells in enumerate(table.rows):
            row_number = index + 1
            if len(cells) > len(headers):
                output.warnings.append(
                    f"Row {row_number} has {len(cells) - len(headers)} cell(s) beyond the header; ignored"
                )
            cells = list(cells[:len(headers)]) + [None] * (len(headers) - len(cells))
            if is_blank_row(cells):
                blank_rows += 1
                continue
            output.rows.append(PipelineRow(row_number=row_number, data=dict(zip(headers, cells))))

        if blank_rows:
            output.warnings.append(f"Dropped {blank_rows} blank row(s)")

        if not output.rows:
            raise PipelineAbort(self.phase, "File has no data rows")

        logger.info(f"Extracted {len(output.rows)} rows with {len(headers)} columns")
        return output

    def _apply_table_rules(
        self,
        table: TabularData,
        context: PhaseContext,
        rule_types: tuple[str, ...],
        output: PhaseOutput,
    ) -> TabularData:
        try:
            application = context.engine.apply_table(self.phase, table, context.errors, rule_types=rule_types)
        except RuleProcessingError as e:
            raise PipelineAbort(self.phase, e.message) from e
        output.rules_applied.extend(application.rules_applied)
        output.warnings.extend(application.warnings)
        return application.table
