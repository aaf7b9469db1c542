"""
Base classes for rule processors.

Every rule type has exactly one processor. A processor declares the scope it
operates on, which tells the Rule Engine how to invoke it:

- field: rewrites one value at a time for each target field
- row: rewrites a whole row (reads several fields, writes one)
- rowset: rewrites the list of rows (e.g. drops duplicate rows)
- table: rewrites headers and raw rows during EXTRACT
- check: raises ValidationError when a value fails a constraint
- directive: carries settings read by the owning phase (LOAD, FIELD_MAPPING)
"""

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Literal

from asset_etl.core.models import TabularData
from asset_etl.core.rules.configs import RULE_CONFIG_MODELS, RuleConfig

ProcessorScope = Literal["field", "row", "rowset", "table", "check", "directive"]


class RuleProcessingError(Exception):
    """
    Raised by a processor when it cannot apply its rule.

    The Rule Engine records it as a row error and keeps the pre-rule value.
    Fatal errors (missing required headers) abort the run instead.
    """

    def __init__(self, message: str, field: str | None = None, fatal: bool = False):
        self.message = message
        self.field = field
        self.fatal = fatal
        super().__init__(message)


class ValueSkipped(Exception):
    """Raised by a field processor for values it does not handle (recorded as a warning)."""


class ValidationError(Exception):
    """Raised when a VALIDATE check fails."""

    def __init__(self, rule_name: str, field_name: str, message: str):
        self.rule_name = rule_name
        self.field_name = field_name
        self.message = message
        super().__init__(f"[{rule_name}] {field_name}: {message}")


class RuleProcessor(ABC):
    """
    Abstract base class for all rule processors.

    Subclasses set rule_type and scope and implement the hook for their scope.
    """

    rule_type: ClassVar[str]
    scope: ClassVar[ProcessorScope]
    fills_missing: ClassVar[bool] = False

    @property
    def config_model(self) -> type[RuleConfig]:
        return RULE_CONFIG_MODELS[self.rule_type]

    def scope_for(self, config: RuleConfig) -> ProcessorScope:
        """Scope used for a given config; most processors have a fixed scope."""
        return self.scope

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(rule_type={self.rule_type})"


class FieldProcessor(RuleProcessor):
    """Rewrites the value of each target field independently."""

    scope: ClassVar[ProcessorScope] = "field"

    @abstractmethod
    def process_value(self, value: Any, config: RuleConfig) -> Any:
        """
        Return the new value for a field.

        Raises:
            RuleProcessingError: If the value cannot be processed
            ValueSkipped: If the value is not of a kind this rule handles
        """
        pass


class TextProcessor(FieldProcessor):
    """Field processor for string values; None passes through, other types are skipped."""

    def process_value(self, value: Any, config: RuleConfig) -> Any:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueSkipped(f"value of type {type(value).__name__} is not text")
        return self.process_text(value, config)

    @abstractmethod
    def process_text(self, value: str, config: RuleConfig) -> str:
        pass


class RowProcessor(RuleProcessor):
    """Rewrites a row using all of its target fields at once."""

    scope: ClassVar[ProcessorScope] = "row"

    @abstractmethod
    def process_row(self, data: dict[str, Any], fields: list[str], config: RuleConfig) -> dict[str, Any]:
        """
        Return the new row data.

        Args:
            data: Current row data (do not mutate)
            fields: Target fields present on the row, in target order
            config: Typed rule config
        """
        pass


class TableProcessor(RuleProcessor):
    """Rewrites the raw header row and cells during EXTRACT."""

    scope: ClassVar[ProcessorScope] = "table"

    @abstractmethod
    def process_table(self, table: TabularData, config: RuleConfig) -> tuple[TabularData, list[str]]:
        """
        Returns:
            Tuple of (new table, warning messages)

        Raises:
            RuleProcessingError: If the table cannot be processed
        """
        pass


class CheckProcessor(RuleProcessor):
    """Validates a field value without changing it."""

    scope: ClassVar[ProcessorScope] = "check"

    @abstractmethod
    def check(self, field: str, value: Any, record: dict[str, Any], config: RuleConfig) -> None:
        """
        Raises:
            ValidationError: If the value fails the check
        """
        pass


class DirectiveProcessor(RuleProcessor):
    """Rule whose config is interpreted by the phase that owns it."""

    scope: ClassVar[ProcessorScope] = "directive"
