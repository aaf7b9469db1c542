"""
Row-level models: the rows flowing between phases and the errors raised on them.
"""

from typing import Any, Iterator

from pydantic import BaseModel, Field

from asset_etl.core.constants import PipelinePhase


class PipelineRow(BaseModel):
    """
    One spreadsheet row as it moves through the phases.

    Phases never mutate a row in place; they emit copies via with_data().

    Attributes:
        row_number: 1-based position of the row in the extracted file
        data: Ordered mapping of column name to value
        rejected: Set by VALIDATE when an error-severity check failed
    """

    row_number: int = Field(..., ge=1)
    data: dict[str, Any] = Field(default_factory=dict)
    rejected: bool = False

    @property
    def fields(self) -> list[str]:
        return list(self.data.keys())

    def get(self, field: str, default: Any = None) -> Any:
        return self.data.get(field, default)

    def with_data(self, data: dict[str, Any]) -> "PipelineRow":
        return self.model_copy(update={"data": dict(data)})

    def reject(self) -> "PipelineRow":
        return self.model_copy(update={"rejected": True})


class RowError(BaseModel):
    """
    A failure attributed to one row (or to the file, when row_number is None).

    Attributes:
        row_number: Row the error belongs to
        phase: Phase that produced the error
        field: Field involved, if any
        rule: Name of the rule involved, if any
        message: Description of the failure
        blocking: Blocking errors keep the row out of LOAD
    """

    row_number: int | None = None
    phase: PipelinePhase
    field: str | None = None
    rule: str | None = None
    message: str
    blocking: bool = False

    def describe(self) -> str:
        """Format the error the way it is stored on an import job."""
        location = f"Row {self.row_number}" if self.row_number is not None else "File"
        parts = [location, f"[{self.phase}]"]
        if self.rule:
            parts.append(self.rule)
        if self.field:
            parts.append(f"'{self.field}'")
        return f"{' '.join(parts)}: {self.message}"


class RowErrorLog:
    """
    Ordered accumulator of row errors threaded through every phase of a run.
    """

    def __init__(self) -> None:
        self._errors: list[RowError] = []

    def add(
        self,
        phase: str,
        message: str,
        row_number: int | None = None,
        field: str | None = None,
        rule: str | None = None,
        blocking: bool = False,
    ) -> RowError:
        error = RowError(
            row_number=row_number,
            phase=phase,
            field=field,
            rule=rule,
            message=message,
            blocking=blocking,
        )
        self._errors.append(error)
        return error

    def extend(self, errors: list[RowError]) -> None:
        self._errors.extend(errors)

    @property
    def errors(self) -> list[RowError]:
        return list(self._errors)

    def for_phase(self, phase: str) -> list[RowError]:
        return [error for error in self._errors if error.phase == phase]

    def since(self, mark: int) -> list[RowError]:
        """Errors added after the given length mark."""
        return self._errors[mark:]

    def rows_with_errors(self) -> set[int]:
        return {error.row_number for error in self._errors if error.row_number is not None}

    def blocking_rows(self) -> set[int]:
        return {
            error.row_number
            for error in self._errors
            if error.blocking and error.row_number is not None
        }

    def __len__(self) -> int:
        return len(self._errors)

    def __iter__(self) -> Iterator[RowError]:
        return iter(self._errors)
