"""
LOAD phase: write mapped rows as assets.

LOAD rules are directives. When several rules of one type are active, the
last one in priority order wins:

- CONFLICT_RESOLUTION: what to do when the asset tag already exists
  (overwrite, skip, merge, fail); tags written earlier from the same file
  count as existing
- BATCH_SIZE: rows per write group when TRANSACTION_BOUNDARY is "batch"
- TRANSACTION_BOUNDARY: group rows per row, per batch or as one job-wide group
- ROLLBACK_STRATEGY: rollback_batch makes each group atomic; skip_row lets a
  failing row fail alone
"""

from typing import Any, Literal

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from asset_etl.core.constants import DEFAULT_BATCH_SIZE
from asset_etl.core.models import ASSET_KEY_FIELD, AssetRecord, AssetUpsert, PipelineRow
from asset_etl.core.rules.processors.validate import is_blank
from asset_etl.observability.logger import get_logger
from asset_etl.observability.metrics import (
    assets_written_total,
    batch_rollbacks_total,
    increment_counter,
    load_batch_size,
    observe_histogram,
)
from asset_etl.warehouse.stores import BatchWriteResult

from .base import LoadReport, PhaseContext, PhaseOutput, PhaseProcessor, PipelineAbort

logger = get_logger(__name__)


class LoadSettings(BaseModel):
    """LOAD behaviour resolved from the active LOAD rules."""

    strategy: Literal["overwrite", "skip", "merge", "fail"] = "overwrite"
    key_field: str = ASSET_KEY_FIELD
    batch_size: int = DEFAULT_BATCH_SIZE
    scope: Literal["row", "batch", "job"] = "batch"
    on_failure: Literal["rollback_batch", "skip_row"] = "skip_row"

    @property
    def atomic(self) -> bool:
        return self.on_failure == "rollback_batch"

    def group_size(self, total: int) -> int:
        if self.scope == "row":
            return 1
        if self.scope == "job":
            return max(total, 1)
        return self.batch_size


def _format_validation_error(error: PydanticValidationError) -> tuple[str | None, str]:
    first = error.errors()[0]
    field = str(first["loc"][0]) if first["loc"] else None
    return field, first["msg"]


class LoadPhase(PhaseProcessor):
    """
    Validates rows as asset records, resolves conflicts against existing
    assets and writes them in groups. In a dry run writes are planned but not
    executed.
    """

    phase = "LOAD"

    def read_settings(self, context: PhaseContext, rules_applied: list[str] | None = None) -> LoadSettings:
        """Resolve LOAD directives into settings; later rules override earlier ones."""
        settings = LoadSettings()
        updates: dict[str, Any] = {}
        engine = context.engine

        for rule, config in engine.directive_configs(self.phase, "CONFLICT_RESOLUTION", context.errors):
            updates.update(strategy=config.strategy, key_field=config.key_field)
            if rules_applied is not None:
                rules_applied.append(rule.name)
        for rule, config in engine.directive_configs(self.phase, "BATCH_SIZE", context.errors):
            updates["batch_size"] = config.size
            if rules_applied is not None:
                rules_applied.append(rule.name)
        for rule, config in engine.directive_configs(self.phase, "TRANSACTION_BOUNDARY", context.errors):
            updates["scope"] = config.scope
            if rules_applied is not None:
                rules_applied.append(rule.name)
        for rule, config in engine.directive_configs(self.phase, "ROLLBACK_STRATEGY", context.errors):
            updates["on_failure"] = config.on_failure
            if rules_applied is not None:
                rules_applied.append(rule.name)

        return settings.model_copy(update=updates)

    def run(self, rows: list[PipelineRow], context: PhaseContext) -> PhaseOutput:
        if context.asset_store is None and not context.dry_run:
            raise PipelineAbort(self.phase, "No asset store configured")

        output = PhaseOutput()
        settings = self.read_settings(context, output.rules_applied)
        report = LoadReport()
        context.load_report = report
        errors = context.errors

        loadable: list[tuple[PipelineRow, AssetRecord]] = []
        refused: list[int] = []
        blocking = errors.blocking_rows()
        for row in rows:
            if row.rejected or row.row_number in blocking:
                refused.append(row.row_number)
                continue
            try:
                record = AssetRecord.model_validate(row.data)
            except PydanticValidationError as e:
                field, message = _format_validation_error(e)
                errors.add(self.phase, message, row_number=row.row_number, field=field, blocking=True)
                refused.append(row.row_number)
                continue
            loadable.append((row, record))

        report.failed += len(refused)
        context.report_rows(refused)

        # asset tag -> values as of the rows already written from this file
        seen: dict[str, dict[str, Any]] = {}
        group_size = settings.group_size(len(loadable))
        loaded_rows: list[PipelineRow] = []

        for start in range(0, len(loadable), group_size):
            context.cancel.raise_if_cancelled(self.phase)
            group = loadable[start:start + group_size]
            observe_histogram(load_batch_size, len(group))
            report.groups += 1

            planned = self._plan_group(group, settings, seen, context, report)
            report.writes.extend(planned)
            writes = [write for write in planned if write.action != "skip"]

            if context.dry_run:
                result = BatchWriteResult(written=writes)
            else:
                result = context.asset_store.write_batch(writes, atomic=settings.atomic, job_id=context.job_id)
            self._record_result(result, writes, seen, report, context)

            written = {write.row_number for write in result.written}
            loaded_rows.extend(row for row, _ in group if row.row_number in written)
            skipped = [write for write in planned if write.action == "skip"]
            report.skipped += len(skipped)
            increment_counter(assets_written_total, len(skipped), action="skip")

            context.report_rows([row.row_number for row, _ in group])

        if report.skipped:
            output.warnings.append(f"Skipped {report.skipped} existing asset(s)")
        if report.rolled_back_groups:
            output.warnings.append(f"Rolled back {report.rolled_back_groups} write group(s)")

        output.rows = loaded_rows
        verb = "Planned" if context.dry_run else "Loaded"
        logger.info(
            f"{verb} {report.inserted} inserts and {report.updated} updates, "
            f"{report.skipped} skipped, {report.failed} failed in {report.groups} group(s)"
        )
        return output

    def _plan_group(
        self,
        group: list[tuple[PipelineRow, AssetRecord]],
        settings: LoadSettings,
        seen: dict[str, dict[str, Any]],
        context: PhaseContext,
        report: LoadReport,
    ) -> list[AssetUpsert]:
        tags = [record.asset_tag for _, record in group]
        existing: dict[str, dict[str, Any]] = {}
        if context.asset_store is not None:
            lookup = [tag for tag in dict.fromkeys(tags) if tag not in seen]
            existing = context.asset_store.fetch_existing(lookup)

        # tags planned earlier in this group, before anything is written
        pending: dict[str, dict[str, Any]] = {}
        planned: list[AssetUpsert] = []
        for row, record in group:
            tag = record.asset_tag
            values = record.to_fields()
            current = pending.get(tag, seen.get(tag, existing.get(tag)))

            if current is None:
                action = "insert"
            elif settings.strategy == "skip":
                planned.append(AssetUpsert(
                    row_number=row.row_number,
                    asset_tag=tag,
                    action="skip",
                    values=values,
                    reason=f"Asset '{tag}' already exists",
                ))
                continue
            elif settings.strategy == "fail":
                context.errors.add(
                    self.phase,
                    f"Asset '{tag}' already exists",
                    row_number=row.row_number,
                    field=settings.key_field,
                    rule="CONFLICT_RESOLUTION",
                    blocking=True,
                )
                report.failed += 1
                continue
            else:
                action = "update"
                if settings.strategy == "merge":
                    provided = {
                        field: value
                        for field, value in record.model_dump(by_alias=True).items()
                        if not is_blank(row.data.get(field))
                    }
                    values = {**current, **provided}

            values[ASSET_KEY_FIELD] = tag
            pending[tag] = values
            planned.append(AssetUpsert(row_number=row.row_number, asset_tag=tag, action=action, values=values))

        return planned

    def _record_result(
        self,
        result: BatchWriteResult,
        writes: list[AssetUpsert],
        seen: dict[str, dict[str, Any]],
        report: LoadReport,
        context: PhaseContext,
    ) -> None:
        for write in result.written:
            seen[write.asset_tag] = write.values
            if write.action == "insert":
                report.inserted += 1
            else:
                report.updated += 1
            increment_counter(assets_written_total, 1, action=write.action)

        if result.rolled_back:
            report.rolled_back_groups += 1
            increment_counter(batch_rollbacks_total, 1)
            for write in writes:
                message = result.failed.get(write.row_number)
                if message is None:
                    message = "Write rolled back with its group"
                context.errors.add(self.phase, message, row_number=write.row_number, blocking=True)
            report.failed += len(writes)
            increment_counter(assets_written_total, len(writes), action="failed")
            return

        for row_number, message in result.failed.items():
            context.errors.add(self.phase, message, row_number=row_number, blocking=True)
        report.failed += len(result.failed)
        increment_counter(assets_written_total, len(result.failed), action="failed")
