"""Relation schemas for request/response validation."""

from typing import Optional

from pydantic import BaseModel, Field

from tablegraph.schemas.row import RowResponse


class RelatedRowsResponse(BaseModel):
    rows: list[RowResponse]
    display_field_id: Optional[str]


class LinkCountRequest(BaseModel):
    row_ids: list[str] = Field(..., min_length=1)


class LinkCountResponse(BaseModel):
    count: int
