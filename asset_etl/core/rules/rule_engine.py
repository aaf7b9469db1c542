"""
Rule engine for applying pipeline rules to rows.

The engine snapshots a rule set at construction, orders it by priority and
dispatches each rule to the processor registered for its type. Rule failures
are recorded in the run's RowErrorLog and never unwind the run: the value the
rule failed on is kept and processing continues with the next rule.
"""

from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from asset_etl.core.constants import PHASE_ORDER
from asset_etl.core.models import FieldChange, PipelineRow, PipelineRule, RowErrorLog, TabularData
from asset_etl.core.rules.configs import RuleConfig, RuleConfigError, parse_rule_config
from asset_etl.core.rules.processors import (
    PROCESSORS,
    RuleProcessingError,
    RuleProcessor,
    ValidationError,
    ValueSkipped,
)
from asset_etl.observability.logger import get_logger
from asset_etl.observability.metrics import increment_counter, record_rule_failure, validation_warnings_total

logger = get_logger(__name__)


class RuleApplication(BaseModel):
    """
    What a set of rules did to a row set (or to a table during EXTRACT).

    Attributes:
        rows: Rows after the rules ran
        table: Table after the rules ran (table rules only)
        rules_applied: Names of the rules that ran, in order
        changes: Values rewritten by the rules
        warnings: Non-blocking findings
        dropped_rows: Row numbers removed by row-set rules
    """

    rows: list[PipelineRow] = Field(default_factory=list)
    table: TabularData | None = None
    rules_applied: list[str] = Field(default_factory=list)
    changes: list[FieldChange] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    dropped_rows: list[int] = Field(default_factory=list)

    @property
    def modified_rows(self) -> int:
        return len({change.row_number for change in self.changes})


class CompiledRule:
    """A rule bound to its processor and its deserialized config (or the config error)."""

    def __init__(self, rule: PipelineRule, processor: RuleProcessor):
        self.rule = rule
        self.processor = processor
        self.config: RuleConfig | None = None
        self.config_error: RuleConfigError | None = None
        try:
            self.config = parse_rule_config(rule.type, rule.config, rule.name)
        except RuleConfigError as e:
            self.config_error = e
            logger.warning(f"Rule '{rule.name}' has an invalid config and will fail per row: {e}")

    @property
    def scope(self) -> str:
        if self.config is None:
            return self.processor.scope
        return self.processor.scope_for(self.config)


class RuleEngine:
    """
    Applies an ordered snapshot of pipeline rules.

    Rules are filtered to active ones and sorted by ascending priority; the
    sort is stable, so rules with equal priority keep their input order.
    """

    def __init__(self, rules: list[PipelineRule | dict[str, Any]]):
        """
        Initialize the rule engine with a rule snapshot.

        Args:
            rules: PipelineRule instances or rule dictionaries

        Raises:
            RuleConfigError: If a rule dictionary is not a valid rule definition
        """
        parsed = [self._coerce_rule(rule) for rule in rules]
        active = [rule for rule in parsed if rule.is_active]
        self.rules: list[PipelineRule] = sorted(active, key=lambda rule: rule.priority)
        self._compiled: list[CompiledRule] = [
            CompiledRule(rule, PROCESSORS[rule.type]) for rule in self.rules
        ]

    @staticmethod
    def _coerce_rule(rule: PipelineRule | dict[str, Any]) -> PipelineRule:
        if isinstance(rule, PipelineRule):
            return rule
        try:
            return PipelineRule.model_validate(rule)
        except PydanticValidationError as e:
            raise RuleConfigError(str(rule.get("type", "UNKNOWN")), str(e), rule.get("name")) from e

    # =======================
    # SELECTION
    # =======================

    def rules_for(self, phase: str) -> list[PipelineRule]:
        """Active rules of a phase in execution order."""
        return [compiled.rule for compiled in self._compiled if compiled.rule.phase == phase]

    def _compiled_for(self, phase: str, scopes: tuple[str, ...] | None = None) -> list[CompiledRule]:
        return [
            compiled
            for compiled in self._compiled
            if compiled.rule.phase == phase and (scopes is None or compiled.scope in scopes)
        ]

    def directive_configs(
        self,
        phase: str,
        rule_type: str,
        errors: RowErrorLog | None = None,
    ) -> list[tuple[PipelineRule, RuleConfig]]:
        """
        Configs of active directive rules of one type, in priority order.

        Rules with an invalid config are reported to the error log and left out.
        """
        configs = []
        for compiled in self._compiled_for(phase):
            if compiled.rule.type != rule_type:
                continue
            if compiled.config_error is not None:
                if errors is not None:
                    errors.add(phase, compiled.config_error.message, rule=compiled.rule.name)
                record_rule_failure(phase, rule_type)
                continue
            configs.append((compiled.rule, compiled.config))
        return configs

    @staticmethod
    def _fields_for(compiled: CompiledRule, available: list[str]) -> list[str]:
        rule = compiled.rule
        if rule.targets_all:
            return list(available)
        if compiled.processor.fills_missing:
            return rule.target_fields
        return rule.resolve_targets(available)

    # =======================
    # APPLICATION
    # =======================

    def apply_table(
        self,
        phase: str,
        table: TabularData,
        errors: RowErrorLog,
        rule_types: tuple[str, ...] | None = None,
    ) -> RuleApplication:
        """
        Apply table-scoped rules (EXTRACT) to a raw table.

        Args:
            phase: Phase name
            table: Raw header row and cells
            errors: Run error log
            rule_types: Restrict to these rule types

        Returns:
            RuleApplication with the resulting table

        Raises:
            RuleProcessingError: If a rule fails fatally (missing required headers)
        """
        application = RuleApplication(table=table)

        for compiled in self._compiled_for(phase, scopes=("table",)):
            rule = compiled.rule
            if rule_types is not None and rule.type not in rule_types:
                continue
            application.rules_applied.append(rule.name)

            if compiled.config_error is not None:
                errors.add(phase, compiled.config_error.message, rule=rule.name)
                record_rule_failure(phase, rule.type)
                continue

            try:
                new_table, warnings = compiled.processor.process_table(application.table, compiled.config)
            except RuleProcessingError as e:
                if e.fatal:
                    raise
                errors.add(phase, e.message, rule=rule.name)
                record_rule_failure(phase, rule.type)
                continue

            application.table = new_table
            application.warnings.extend(f"{rule.name}: {warning}" for warning in warnings)

        return application

    def apply(self, phase: str, row: PipelineRow, errors: RowErrorLog) -> RuleApplication:
        """
        Apply the phase's per-row rules to a single row.

        Args:
            phase: Phase name
            row: Input row (not mutated)
            errors: Run error log

        Returns:
            RuleApplication holding the single output row
        """
        application = RuleApplication()
        for compiled in self._compiled_for(phase, scopes=("field", "row", "check")):
            application.rules_applied.append(compiled.rule.name)
            row = self._apply_to_row(compiled, row, errors, application)
        application.rows = [row]
        return application

    def apply_rows(self, phase: str, rows: list[PipelineRow], errors: RowErrorLog) -> RuleApplication:
        """
        Apply every non-directive rule of a phase to a row set.

        Rules run in priority order; each rule is applied to every row before
        the next rule starts, so row-set rules (REMOVE_DUPLICATES with scope
        "rows") take effect at their place in the sequence.

        Args:
            phase: Phase name
            rows: Input rows (not mutated)
            errors: Run error log

        Returns:
            RuleApplication with the output rows
        """
        application = RuleApplication(rows=list(rows))

        for compiled in self._compiled_for(phase, scopes=("field", "row", "check", "rowset")):
            rule = compiled.rule
            application.rules_applied.append(rule.name)
            logger.debug(f"Applying rule '{rule.name}' ({rule.type}) to {len(application.rows)} rows")

            if compiled.scope == "rowset":
                application.rows = self._apply_to_rowset(compiled, application.rows, errors, application)
                continue

            application.rows = [
                self._apply_to_row(compiled, row, errors, application) for row in application.rows
            ]

        return application

    def _apply_to_rowset(
        self,
        compiled: CompiledRule,
        rows: list[PipelineRow],
        errors: RowErrorLog,
        application: RuleApplication,
    ) -> list[PipelineRow]:
        rule = compiled.rule
        available = rows[0].fields if rows else []
        fields = self._fields_for(compiled, available)
        if not rows or not fields:
            return rows

        try:
            kept, dropped = compiled.processor.process_rows(rows, fields, compiled.config)
        except Exception as e:
            logger.warning(f"Row-set rule '{rule.name}' failed: {e}")
            errors.add(rule.phase, f"{type(e).__name__}: {e}", rule=rule.name)
            record_rule_failure(rule.phase, rule.type)
            return rows

        if dropped:
            application.dropped_rows.extend(dropped)
            application.warnings.append(f"{rule.name}: removed {len(dropped)} duplicate row(s)")
        return kept

    def _apply_to_row(
        self,
        compiled: CompiledRule,
        row: PipelineRow,
        errors: RowErrorLog,
        application: RuleApplication,
    ) -> PipelineRow:
        rule = compiled.rule
        fields = self._fields_for(compiled, row.fields)
        if not fields:
            return row

        if compiled.config_error is not None:
            self._record_failure(errors, rule, row.row_number, None, compiled.config_error.message)
            return row

        if compiled.scope == "check":
            return self._check_row(compiled, row, fields, errors, application)

        if compiled.scope == "row":
            try:
                data = compiled.processor.process_row(row.data, fields, compiled.config)
            except RuleProcessingError as e:
                self._record_failure(errors, rule, row.row_number, e.field, e.message)
                return row
            except Exception as e:
                logger.warning(f"Rule '{rule.name}' raised on row {row.row_number}: {e}")
                self._record_failure(errors, rule, row.row_number, None, f"{type(e).__name__}: {e}")
                return row
            return self._with_changes(row, data, rule, application)

        data = dict(row.data)
        for field in fields:
            before = data.get(field)
            try:
                data[field] = compiled.processor.process_value(before, compiled.config)
            except ValueSkipped as e:
                application.warnings.append(f"Row {row.row_number}: {rule.name} skipped '{field}': {e}")
            except RuleProcessingError as e:
                self._record_failure(errors, rule, row.row_number, e.field or field, e.message)
            except Exception as e:
                logger.warning(f"Rule '{rule.name}' raised on row {row.row_number}, field '{field}': {e}")
                self._record_failure(errors, rule, row.row_number, field, f"{type(e).__name__}: {e}")
        return self._with_changes(row, data, rule, application)

    def _check_row(
        self,
        compiled: CompiledRule,
        row: PipelineRow,
        fields: list[str],
        errors: RowErrorLog,
        application: RuleApplication,
    ) -> PipelineRow:
        rule = compiled.rule
        severity = compiled.config.severity
        for field in fields:
            try:
                compiled.processor.check(field, row.data.get(field), row.data, compiled.config)
            except ValidationError as e:
                if severity == "error":
                    errors.add(
                        rule.phase,
                        e.message,
                        row_number=row.row_number,
                        field=field,
                        rule=rule.name,
                        blocking=True,
                    )
                    record_rule_failure(rule.phase, rule.type)
                    row = row.reject()
                else:
                    application.warnings.append(f"Row {row.row_number}: {rule.name} '{field}': {e.message}")
                    increment_counter(validation_warnings_total, 1, rule_type=rule.type)
        return row

    @staticmethod
    def _record_failure(
        errors: RowErrorLog,
        rule: PipelineRule,
        row_number: int,
        field: str | None,
        message: str,
    ) -> None:
        errors.add(rule.phase, message, row_number=row_number, field=field, rule=rule.name)
        record_rule_failure(rule.phase, rule.type)

    @staticmethod
    def _with_changes(
        row: PipelineRow,
        data: dict[str, Any],
        rule: PipelineRule,
        application: RuleApplication,
    ) -> PipelineRow:
        changed = False
        for field, after in data.items():
            before = row.data.get(field)
            if field not in row.data or before != after:
                changed = True
                application.changes.append(
                    FieldChange(row_number=row.row_number, field=field, before=before, after=after, rule=rule.name)
                )
        return row.with_data(data) if changed else row

    # =======================
    # SUMMARY
    # =======================

    def get_rule_summary(self) -> dict[str, Any]:
        """
        Get summary of the active rule snapshot.

        Returns:
            Dictionary with rule counts by phase and type, and invalid rule names
        """
        by_phase = {phase: 0 for phase in PHASE_ORDER}
        by_type: dict[str, int] = {}
        for rule in self.rules:
            by_phase[rule.phase] += 1
            by_type[rule.type] = by_type.get(rule.type, 0) + 1

        return {
            "total_rules": len(self.rules),
            "rules_by_phase": by_phase,
            "rules_by_type": by_type,
            "invalid_rules": [c.rule.name for c in self._compiled if c.config_error is not None],
        }
