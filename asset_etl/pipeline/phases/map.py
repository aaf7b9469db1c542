"""
MAP phase: rename columns to asset fields, then apply the MAP rules.
"""

from asset_etl.core.models import AliasMatch, FieldMappingReport, PipelineRow
from asset_etl.core.rules.processors.validate import is_blank
from asset_etl.observability.logger import get_logger
from asset_etl.observability.metrics import alias_coverage_percent, set_gauge

from .base import PhaseContext, PhaseOutput, PhaseProcessor

logger = get_logger(__name__)


def collect_headers(rows: list[PipelineRow]) -> list[str]:
    """Union of row fields in first-seen order."""
    headers: list[str] = []
    seen: set[str] = set()
    for row in rows:
        for field in row.data:
            if field not in seen:
                seen.add(field)
                headers.append(field)
    return headers


def apply_overrides(
    report: FieldMappingReport,
    headers: list[str],
    overrides: dict[str, str],
) -> FieldMappingReport:
    """
    Overlay explicit header → field overrides on an alias report.

    Overridden headers are mapped with confidence 1.0; header order is kept.
    """
    if not overrides:
        return report

    matches = {match.csv_header: match for match in report.mapped_fields}
    mapped: list[AliasMatch] = []
    unmapped: list[str] = []
    for header in headers:
        if header in overrides:
            mapped.append(AliasMatch(csv_header=header, asset_field=overrides[header], confidence=1.0))
        elif header in matches:
            mapped.append(matches[header])
        else:
            unmapped.append(header)

    return FieldMappingReport(mapped_fields=mapped, unmapped_fields=unmapped, total_csv_columns=len(headers))


class MapPhase(PhaseProcessor):
    """
    Resolves headers through the alias resolver and FIELD_MAPPING overrides,
    rebuilds every row keyed by asset field, and runs ENUM_MAPPING,
    REFERENCE_LOOKUP and DEFAULT_VALUE on the asset fields.

    Unmapped columns are dropped. When several columns map to the same field
    the first non-empty value wins.
    """

    phase = "MAP"

    def run(self, rows: list[PipelineRow], context: PhaseContext) -> PhaseOutput:
        output = PhaseOutput()
        headers = collect_headers(rows)

        overrides: dict[str, str] = {}
        for rule, config in context.engine.directive_configs(self.phase, "FIELD_MAPPING", context.errors):
            output.rules_applied.append(rule.name)
            for header, field in config.mappings.items():
                if header not in headers:
                    output.warnings.append(f"{rule.name}: column '{header}' is not in the file")
                    continue
                overrides[header] = field

        report = apply_overrides(context.resolver.resolve_headers(headers), headers, overrides)
        context.field_mappings = report
        set_gauge(alias_coverage_percent, report.coverage_percent)

        if report.unmapped_fields:
            output.warnings.append(f"Unmapped columns dropped: {', '.join(report.unmapped_fields)}")

        header_map = report.header_map()
        by_field: dict[str, list[str]] = {}
        for header, field in header_map.items():
            by_field.setdefault(field, []).append(header)
        for field, sources in by_field.items():
            if len(sources) > 1:
                output.warnings.append(
                    f"Columns {', '.join(repr(s) for s in sources)} all map to '{field}'; "
                    f"first non-empty value wins"
                )

        mapped_rows = [row.with_data(self._map_row(row, header_map)) for row in rows]

        application = context.engine.apply_rows(self.phase, mapped_rows, context.errors)
        output.rows = application.rows
        output.rules_applied.extend(application.rules_applied)
        output.changes = application.changes
        output.warnings.extend(application.warnings)

        logger.info(
            f"Mapped {report.mapped_count} of {report.total_csv_columns} columns "
            f"({report.coverage_percent}% coverage)"
        )
        return output

    @staticmethod
    def _map_row(row: PipelineRow, header_map: dict[str, str]) -> dict:
        data: dict = {}
        for header, field in header_map.items():
            value = row.data.get(header)
            if field not in data or (is_blank(data[field]) and not is_blank(value)):
                data[field] = value
        return data
