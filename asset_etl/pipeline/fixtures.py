"""
Fixture rows for dry runs of the orchestrator.

The first row carries the stray whitespace and lower-case vocabulary a real
export tends to have, so a dry run shows the CLEAN and MAP rules at work.
"""

from typing import Any

FIXTURE_FILE_ID = "test-file-123"

FIXTURE_ROWS: list[dict[str, Any]] = [
    {
        "Asset Tag": "  HVAC-001  ",
        "Asset Name": "\t HVAC Unit 001 \n",
        "Manufacturer": "  TestCorp  ",
        "Status": "active",
        "Condition": "good",
    },
    {
        "Asset Tag": "HVAC-002",
        "Asset Name": "HVAC Unit 002",
        "Manufacturer": "TestCorp",
        "Status": "maintenance",
        "Condition": "fair",
    },
]


def fixture_rows(include_second: bool = True) -> list[dict[str, Any]]:
    """Copies of the fixture rows; the second row is optional."""
    rows = FIXTURE_ROWS if include_second else FIXTURE_ROWS[:1]
    return [dict(row) for row in rows]
