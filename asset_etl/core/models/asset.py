"""
AssetRecord model: the canonical asset shape produced by MAP and written by LOAD.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from asset_etl.core.constants import (
    DEFAULT_ASSET_CONDITION,
    DEFAULT_ASSET_STATUS,
    VALID_ASSET_CONDITIONS,
    VALID_ASSET_STATUSES,
)


class AssetRecord(BaseModel):
    """
    An asset as persisted by the LOAD phase.

    Field aliases are the canonical asset field names used by column aliases,
    FIELD_MAPPING overrides and MAP/LOAD rule targets.

    Attributes:
        asset_tag: Business key of the asset ("HVAC-001")
        name: Display name
        status: One of VALID_ASSET_STATUSES (defaults to ACTIVE)
        condition: One of VALID_ASSET_CONDITIONS (defaults to GOOD)
        purchase_cost: Numeric purchase cost
    """

    asset_tag: str = Field(..., alias="assetTag", min_length=1)
    name: str | None = Field(default=None, alias="name")
    description: str | None = Field(default=None, alias="description")
    manufacturer: str | None = Field(default=None, alias="manufacturer")
    model: str | None = Field(default=None, alias="model")
    serial_number: str | None = Field(default=None, alias="serialNumber")
    category: str | None = Field(default=None, alias="category")
    status: str = Field(default=DEFAULT_ASSET_STATUS, alias="status")
    condition: str = Field(default=DEFAULT_ASSET_CONDITION, alias="condition")
    building: str | None = Field(default=None, alias="building")
    floor: str | None = Field(default=None, alias="floor")
    room: str | None = Field(default=None, alias="room")
    location: str | None = Field(default=None, alias="location")
    department: str | None = Field(default=None, alias="department")
    assigned_to: str | None = Field(default=None, alias="assignedTo")
    purchase_date: str | None = Field(default=None, alias="purchaseDate")
    purchase_cost: float | None = Field(default=None, alias="purchaseCost")
    warranty_expiration: str | None = Field(default=None, alias="warrantyExpiration")
    install_date: str | None = Field(default=None, alias="installDate")
    notes: str | None = Field(default=None, alias="notes")

    @field_validator("asset_tag", mode="before")
    @classmethod
    def strip_asset_tag(cls, v: Any) -> str:
        if v is None:
            raise ValueError("assetTag is required")
        v = str(v).strip()
        if not v:
            raise ValueError("assetTag cannot be blank")
        return v

    @field_validator(
        "name", "description", "manufacturer", "model", "serial_number", "category",
        "building", "floor", "room", "location", "department", "assigned_to",
        "purchase_date", "warranty_expiration", "install_date", "notes",
        mode="before",
    )
    @classmethod
    def stringify_text(cls, v: Any) -> Any:
        """Blank text becomes None; numbers read from spreadsheets become text."""
        if v is None:
            return None
        if isinstance(v, str):
            return v if v.strip() else None
        if isinstance(v, bool):
            return str(v).lower()
        if isinstance(v, int | float):
            return str(v)
        return v

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v: Any) -> str:
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_ASSET_STATUS
        status = str(v).strip().upper()
        if status not in VALID_ASSET_STATUSES:
            raise ValueError(
                f"Invalid status '{v}'. Must be one of: {', '.join(VALID_ASSET_STATUSES)}"
            )
        return status

    @field_validator("condition", mode="before")
    @classmethod
    def validate_condition(cls, v: Any) -> str:
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_ASSET_CONDITION
        condition = str(v).strip().upper()
        if condition not in VALID_ASSET_CONDITIONS:
            raise ValueError(
                f"Invalid condition '{v}'. Must be one of: {', '.join(VALID_ASSET_CONDITIONS)}"
            )
        return condition

    @field_validator("purchase_cost", mode="before")
    @classmethod
    def parse_cost(cls, v: Any) -> Any:
        if isinstance(v, str):
            cleaned = v.replace("$", "").replace(",", "").strip()
            return cleaned or None
        return v

    def to_fields(self, exclude_none: bool = False) -> dict[str, Any]:
        """Return the record keyed by canonical asset field names."""
        return self.model_dump(by_alias=True, exclude_none=exclude_none)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "assetTag": "HVAC-001",
                "name": "HVAC Unit 001",
                "manufacturer": "TestCorp",
                "status": "ACTIVE",
                "condition": "GOOD",
            }
        }


ASSET_FIELDS: tuple[str, ...] = tuple(
    field.alias or name for name, field in AssetRecord.model_fields.items()
)

ASSET_KEY_FIELD = "assetTag"


class AssetUpsert(BaseModel):
    """
    A planned or executed write of one asset by the LOAD phase.

    Attributes:
        row_number: Source row the asset came from
        asset_tag: Business key
        action: "insert", "update" or "skip"
        values: Asset fields to persist (canonical names)
        reason: Why the write was skipped, if it was
    """

    row_number: int
    asset_tag: str
    action: Literal["insert", "update", "skip"]
    values: dict[str, Any] = Field(default_factory=dict)
    reason: str | None = None
