# =============================================================================
# Table Schema Models
# =============================================================================
# Warehouse column definitions used for explicit and inferred schemas.
# =============================================================================

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "FieldType",
    "FieldMode",
    "SchemaField",
    "validate_unique_field_names",
]


class FieldType(str, Enum):
    """Column types understood by the warehouse."""

    STRING = "STRING"
    INTEGER = "INTEGER"
    FLOAT = "FLOAT"
    BOOLEAN = "BOOLEAN"
    TIMESTAMP = "TIMESTAMP"
    GEOGRAPHY = "GEOGRAPHY"
    JSON = "JSON"


class FieldMode(str, Enum):
    """Column nullability / repetition."""

    REQUIRED = "REQUIRED"
    NULLABLE = "NULLABLE"
    REPEATED = "REPEATED"


class SchemaField(BaseModel):
    """
    A single warehouse column.

    Attributes:
        name: Column name (non-empty)
        type: Column type
        mode: Column mode (default NULLABLE)
        description: Optional column description
    """

    name: str = Field(..., min_length=1, description="Column name")
    type: FieldType = Field(..., description="Column type")
    mode: FieldMode = Field(FieldMode.NULLABLE, description="Column mode")
    description: Optional[str] = Field(None, description="Column description")

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {"name": "parcel_id", "type": "INTEGER", "mode": "REQUIRED"}
        },
    )

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Schema field name cannot be empty")
        return v

    def to_api(self) -> dict:
        """Render the field in the warehouse REST representation."""
        field = {"name": self.name, "type": self.type.value, "mode": self.mode.value}
        if self.description:
            field["description"] = self.description
        return field


def validate_unique_field_names(fields: list[SchemaField]) -> list[SchemaField]:
    """
    Ensure field names are unique within one schema.

    Raises:
        ValueError: If a name appears more than once
    """
    seen: set[str] = set()
    duplicates: list[str] = []
    for field in fields:
        if field.name in seen and field.name not in duplicates:
            duplicates.append(field.name)
        seen.add(field.name)
    if duplicates:
        raise ValueError(f"Duplicate schema field names: {duplicates}")
    return fields
