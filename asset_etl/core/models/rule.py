"""
PipelineRule model: a configurable transformation or check bound to one phase.
"""

from datetime import datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from asset_etl.core.constants import PHASE_RULE_TYPES, PipelinePhase, RuleType


class PipelineRule(BaseModel):
    """
    A rule applied by the Rule Engine during one pipeline phase.

    Attributes:
        id: Rule identifier
        name: Human-readable name ("Trim whitespace")
        description: Optional free text
        phase: Phase the rule runs in
        type: Rule type; must belong to the phase's type set
        target: Comma-separated field list, "*" for every field
        config: Type-specific configuration (validated on save)
        priority: Lower runs earlier; ties keep insertion order
        is_active: Inactive rules are never applied
        created_at: Creation timestamp
        updated_at: Last modification timestamp
        created_by: Optional author
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(..., min_length=1)
    description: str | None = None
    phase: PipelinePhase
    type: RuleType
    target: str = "*"
    config: dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(default=100, ge=0)
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    created_by: str | None = None

    @field_validator("config", mode="before")
    @classmethod
    def default_config(cls, v: Any) -> Any:
        return {} if v is None else v

    @model_validator(mode="after")
    def check_type_matches_phase(self) -> "PipelineRule":
        if self.type not in PHASE_RULE_TYPES[self.phase]:
            raise ValueError(
                f"Rule type {self.type} is not valid for phase {self.phase}. "
                f"Allowed: {', '.join(PHASE_RULE_TYPES[self.phase])}"
            )
        return self

    @property
    def target_fields(self) -> list[str]:
        """Parsed target list with whitespace trimmed and empties dropped."""
        return [part.strip() for part in self.target.split(",") if part.strip()]

    @property
    def targets_all(self) -> bool:
        fields = self.target_fields
        return not fields or "*" in fields

    def resolve_targets(self, available: list[str]) -> list[str]:
        """
        Return the fields this rule applies to, in row order for wildcards.

        Args:
            available: Fields present on the row

        Returns:
            Target fields present on the row
        """
        if self.targets_all:
            return list(available)
        present = set(available)
        return [name for name in self.target_fields if name in present]

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Trim whitespace",
                "phase": "CLEAN",
                "type": "TRIM",
                "target": "*",
                "config": {"sides": "both"},
                "priority": 1,
                "is_active": True,
            }
        }
