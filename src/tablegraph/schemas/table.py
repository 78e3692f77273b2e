"""Table schemas for request/response validation."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TableCreate(BaseModel):
    """Schema for creating a table."""

    name: str = Field(..., min_length=1, max_length=255, description="Table name")
    description: Optional[str] = Field(None, max_length=2000, description="Table description")


class TableUpdate(BaseModel):
    """Schema for updating a table; omitted fields are left unchanged."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)


class TableDuplicate(BaseModel):
    """Schema for copying a table."""

    include_rows: bool = Field(False, description="Also copy rows, their values and links")


class TableResponse(BaseModel):
    """Schema for table response."""

    id: str
    workspace_id: str
    name: str
    description: Optional[str]
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
