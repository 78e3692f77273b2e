"""Shared response envelope."""

from typing import Generic, TypeVar

from pydantic import BaseModel

DataT = TypeVar("DataT")


class DataResponse(BaseModel, Generic[DataT]):
    """Successful responses are wrapped as ``{"data": ...}``."""

    data: DataT
