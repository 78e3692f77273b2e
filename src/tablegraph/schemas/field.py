"""Field schemas for request/response validation."""

import json
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from tablegraph.models.field import FieldType


class FieldCreate(BaseModel):
    """Schema for creating a field."""

    name: str = Field(..., min_length=1, max_length=255, description="Field name")
    field_type: FieldType = Field(..., description="Field type")
    config: dict[str, Any] = Field(
        default_factory=dict, description="Type-specific configuration"
    )
    position: Optional[int] = Field(None, ge=0, description="Field position in table")
    is_primary: bool = Field(default=False, description="Whether this is the primary field")
    width: Optional[float] = Field(None, ge=50, le=1000, description="Column width in pixels")


class FieldUpdate(BaseModel):
    """Schema for updating a field."""

    name: Optional[str] = Field(None, min_length=1, max_length=255, description="Field name")
    config: Optional[dict[str, Any]] = Field(None, description="Type-specific configuration")
    is_primary: Optional[bool] = Field(None, description="Whether this is the primary field")
    width: Optional[float] = Field(None, ge=50, le=1000, description="Column width in pixels")


class FieldPosition(BaseModel):
    field_id: str
    position: int = Field(..., ge=0)


class FieldReorder(BaseModel):
    """Schema for reordering the fields of a table."""

    fields: list[FieldPosition] = Field(..., min_length=1)


class RelationConfigure(BaseModel):
    """Schema for pointing a relation field at a table."""

    related_table_id: str = Field(..., description="Table the relation links to")
    allow_multiple: bool = Field(default=True, description="Allow more than one link per cell")
    bidirectional: bool = Field(default=True, description="Keep a reverse field in sync")
    reverse_allow_multiple: Optional[bool] = Field(
        None, description="Multiplicity of the reverse field, inverse of allow_multiple if unset"
    )
    limit: Optional[int] = Field(None, ge=1, description="Maximum links per cell")
    display_field_id: Optional[str] = Field(None, description="Field used to label linked rows")
    reverse_field_name: Optional[str] = Field(
        None, min_length=1, max_length=255, description="Name of the created reverse field"
    )
    relation_type: Optional[str] = Field(None, description="one_to_one, one_to_many, ...")


class FieldResponse(BaseModel):
    """Schema for field response."""

    id: str
    table_id: str
    name: str
    field_type: str
    position: int
    is_primary: bool
    width: Optional[float]
    config: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("config", mode="before")
    @classmethod
    def parse_config(cls, value: Any) -> Any:
        if isinstance(value, str):
            return json.loads(value or "{}")
        return value


class RecomputeResponse(BaseModel):
    field_id: str
    rows: int
