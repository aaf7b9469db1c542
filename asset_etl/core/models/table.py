"""
TabularData model: a parsed spreadsheet before it is split into pipeline rows.
"""

from typing import Any

from pydantic import BaseModel, Field


class TabularData(BaseModel):
    """
    Header row plus positional data rows, as produced by a row source.

    Headers and cells may still be raw bytes when the source could not decode
    them; the ENCODING_DETECTOR rule turns them into text.

    Attributes:
        headers: Header cells in file order
        rows: Data rows; each row is a list of cells in header order
    """

    headers: list[Any] = Field(default_factory=list)
    rows: list[list[Any]] = Field(default_factory=list)

    @classmethod
    def from_records(cls, records: list[dict[str, Any]]) -> "TabularData":
        """
        Build a table from row dictionaries; headers are the union of keys in first-seen order.
        """
        headers: list[str] = []
        seen: set[str] = set()
        for record in records:
            for key in record:
                if key not in seen:
                    seen.add(key)
                    headers.append(key)
        rows = [[record.get(header) for header in headers] for record in records]
        return cls(headers=headers, rows=rows)

    @property
    def column_count(self) -> int:
        return len(self.headers)

    def with_changes(self, headers: list[Any] | None = None, rows: list[list[Any]] | None = None) -> "TabularData":
        return TabularData(
            headers=list(self.headers) if headers is None else headers,
            rows=[list(row) for row in self.rows] if rows is None else rows,
        )
