from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel

LayerName = Literal["brazil", "fu", "internal-fu", "mun"]


class SubstanceStatItem(BaseModel):
    code: str
    name: str
    short_name: str
    limit: float
    tested_in: int
    detected_in: int
    median_concentration: float | None = None


class SubstancesResponse(BaseModel):
    total: int
    items: list[SubstanceStatItem]


class SubstanceTestItem(BaseModel):
    substance_code: str
    substance_name: str
    samples: list[float]
    max: float | None = None
    limit: float
    exceeds_limit: bool


class MunicipalityResponse(BaseModel):
    ibge_code: str
    name: str | None = None
    deburred_name: str | None = None
    fu: str | None = None
    fu_name: str | None = None
    category: dict[str, str | None] | None = None
    number: dict[str, float | None] | None = None
    tests: list[SubstanceTestItem] | None = None
    centroid: list[float] | None = None
    bounds: list[list[float]] | None = None
    radius: float | None = None
    geometry: dict[str, Any] | None = None


class TooltipResponse(BaseModel):
    title: str
    label: str
    x: float | None = None
    y: float | None = None
    nx: int
    ny: int
