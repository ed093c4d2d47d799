from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None
    request_id: str | None = None


class ErrorResponse(BaseModel):
    error: ErrorBody


class DataStateItem(BaseModel):
    status: Literal["loading", "ready", "failed"]
    error: str | None = None
    municipalities: int
    substances: int
    warnings: list[str]


class HealthResponse(BaseModel):
    status: str
    data: DataStateItem


class SearchItem(BaseModel):
    ibge_code: str
    name: str
    fu: str | None = None
    fu_name: str | None = None
    centroid: list[float] | None = None


class SearchResponse(BaseModel):
    query: str
    loading: bool
    total: int
    items: list[SearchItem]
