"""
ColumnAlias model and the field-mapping report produced by the Alias Resolver.
"""

from datetime import datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from .asset import ASSET_FIELDS


class ColumnAlias(BaseModel):
    """
    A known spreadsheet header for a canonical asset field.

    Attributes:
        id: Alias identifier (preserved across upserts)
        asset_field: Canonical asset field name ("assetTag")
        csv_alias: Spreadsheet header text, globally unique ("Asset ID")
        confidence: Stored confidence in [0, 1]
        created_at: Creation timestamp
        updated_at: Last modification timestamp
        created_by: Optional author
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    asset_field: str
    csv_alias: str = Field(..., min_length=1)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    created_by: str | None = None

    @field_validator("asset_field")
    @classmethod
    def validate_asset_field(cls, v: str) -> str:
        if v not in ASSET_FIELDS:
            raise ValueError(f"Unknown asset field '{v}'")
        return v

    @field_validator("csv_alias")
    @classmethod
    def validate_csv_alias(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("csv_alias cannot be blank")
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "asset_field": "assetTag",
                "csv_alias": "Asset ID",
                "confidence": 0.95,
            }
        }


class AliasMatch(BaseModel):
    """A header resolved to an asset field."""

    csv_header: str
    asset_field: str
    confidence: float = Field(ge=0.0, le=1.0)


class FieldMappingReport(BaseModel):
    """
    Resolution of every header of an uploaded file.

    Attributes:
        mapped_fields: Headers that resolved to an asset field, in header order
        unmapped_fields: Headers with no match, in header order
        total_csv_columns: Number of headers inspected
    """

    mapped_fields: list[AliasMatch] = Field(default_factory=list)
    unmapped_fields: list[str] = Field(default_factory=list)
    total_csv_columns: int = 0

    @property
    def mapped_count(self) -> int:
        return len(self.mapped_fields)

    @property
    def coverage_percent(self) -> int:
        """Mapped share of columns, rounded half up; 0 for an empty header set."""
        if self.total_csv_columns == 0:
            return 0
        return (self.mapped_count * 200 + self.total_csv_columns) // (2 * self.total_csv_columns)

    def header_map(self) -> dict[str, str]:
        return {match.csv_header: match.asset_field for match in self.mapped_fields}

    def to_response(self) -> dict[str, Any]:
        """Serialize in the shape returned by the field-mappings endpoint."""
        return {
            "mappedFields": [
                {
                    "csvHeader": match.csv_header,
                    "assetField": match.asset_field,
                    "confidence": match.confidence,
                }
                for match in self.mapped_fields
            ],
            "unmappedFields": list(self.unmapped_fields),
            "totalCsvColumns": self.total_csv_columns,
            "mappedCount": self.mapped_count,
            "coveragePercent": self.coverage_percent,
        }
