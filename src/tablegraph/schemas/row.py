"""Row schemas for request/response validation."""

import json
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class RowCreate(BaseModel):
    """Schema for creating a row."""

    data: dict[str, Any] = Field(
        default_factory=dict, description="Field values as {field_id: value}"
    )
    order: Optional[float] = Field(None, description="Sort position, appended when omitted")


class RowUpdate(BaseModel):
    """Schema for updating a row."""

    data: dict[str, Any] = Field(..., description="Field values as {field_id: value}")


class CellUpdate(BaseModel):
    """Schema for writing a single cell."""

    value: Any = Field(None, description="New cell value")


class RowPosition(BaseModel):
    row_id: str
    order: float


class RowReorder(BaseModel):
    """Schema for reordering rows."""

    rows: list[RowPosition] = Field(..., min_length=1)


class BulkUpdateRequest(BaseModel):
    """Schema for applying the same values to several rows."""

    row_ids: list[str] = Field(..., min_length=1)
    updates: dict[str, Any] = Field(..., description="Field values as {field_id: value}")


class BulkRowIdsRequest(BaseModel):
    """Schema for bulk delete and duplicate."""

    row_ids: list[str] = Field(..., min_length=1)


class BulkInsertRow(BaseModel):
    data: dict[str, Any] = Field(default_factory=dict)
    order: Optional[float] = None
    source_entity_id: Optional[str] = None
    source_entity_type: Optional[str] = None
    source_sync_mode: Optional[Literal["snapshot", "live"]] = None


class BulkInsertRequest(BaseModel):
    rows: list[BulkInsertRow] = Field(..., min_length=1)


class BulkResult(BaseModel):
    """Ids produced or affected by a bulk operation, in request order."""

    row_ids: list[str]
    count: int


class RowResponse(BaseModel):
    """Schema for row response."""

    id: str
    table_id: str
    data: dict[str, Any]
    order: Optional[float]
    source_entity_id: Optional[str]
    source_entity_type: Optional[str]
    source_sync_mode: Optional[str]
    edited: bool
    created_by: Optional[str]
    updated_by: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("data", mode="before")
    @classmethod
    def parse_data(cls, value: Any) -> Any:
        if isinstance(value, str):
            return json.loads(value or "{}")
        return value


class RowListResponse(BaseModel):
    items: list[RowResponse]
    total: int


class RowFilterCondition(BaseModel):
    """One condition of a row filter, using the rollup filter operators."""

    field_id: str
    operator: str = Field("equals", description="equals, contains, greater_than, is_empty, ...")
    value: Any = None


class RowFilterRequest(BaseModel):
    """Conditions that must all hold."""

    filters: list[RowFilterCondition] = Field(default_factory=list)
