"""
Row sources: where the EXTRACT phase gets its table from.
"""

from abc import ABC, abstractmethod
from typing import Any

from asset_etl.core.models import TabularData


class SourceReadError(Exception):
    """Raised when a row source cannot be read."""
    pass


class RowSource(ABC):
    """A bounded, already-parsed spreadsheet."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    def read(self) -> TabularData:
        """
        Read the whole source.

        Returns:
            TabularData with the header row and data rows

        Raises:
            SourceReadError: If the source cannot be read
        """
        pass


class InMemoryRowSource(RowSource):
    """
    Rows supplied directly, either as dictionaries or as headers plus positional rows.
    """

    def __init__(
        self,
        records: list[dict[str, Any]] | None = None,
        headers: list[Any] | None = None,
        rows: list[list[Any]] | None = None,
        name: str = "memory",
    ):
        if records is not None and (headers is not None or rows is not None):
            raise ValueError("Pass either records or headers/rows, not both")
        self._records = records
        self._headers = headers
        self._rows = rows
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def read(self) -> TabularData:
        if self._records is not None:
            return TabularData.from_records(self._records)
        return TabularData(headers=list(self._headers or []), rows=[list(row) for row in self._rows or []])
