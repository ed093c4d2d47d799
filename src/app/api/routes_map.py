from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_dataset
from app.api.tooltip import build_tooltip
from app.api.utils import find_municipality, jsonable_collection, municipality_response
from app.schemas.map import (
    LayerName,
    MunicipalityResponse,
    SubstancesResponse,
    SubstanceStatItem,
    TooltipResponse,
)
from app.schemas.responses import ErrorResponse
from pipelines.models import MapDataset

router = APIRouter(tags=["map"], responses={503: {"model": ErrorResponse}})


@router.get("/map/layers/{layer}")
def get_layer(layer: LayerName, dataset: MapDataset = Depends(get_dataset)) -> dict[str, Any]:
    return jsonable_collection(dataset.layer(layer))


@router.get("/national")
def get_national(dataset: MapDataset = Depends(get_dataset)) -> dict[str, Any]:
    return jsonable_collection(dataset.national)


@router.get("/substances", response_model=SubstancesResponse)
def get_substances(dataset: MapDataset = Depends(get_dataset)) -> SubstancesResponse:
    items = [
        SubstanceStatItem(
            code=stat.code,
            name=stat.name,
            short_name=stat.short_name,
            limit=stat.limit,
            tested_in=stat.tested_in,
            detected_in=stat.detected_in,
            median_concentration=stat.median_concentration,
        )
        for stat in dataset.substances_lut.values()
    ]
    return SubstancesResponse(total=len(items), items=items)


@router.get("/municipalities/{ibge_code}", response_model=MunicipalityResponse)
def get_municipality(ibge_code: str, dataset: MapDataset = Depends(get_dataset)) -> MunicipalityResponse:
    feature = find_municipality(dataset, ibge_code)
    if feature is None:
        raise HTTPException(status_code=404, detail={"ibge_code": ibge_code, "reason": "not_found"})
    return municipality_response(feature)


@router.get("/municipalities/{ibge_code}/tooltip", response_model=TooltipResponse)
def get_municipality_tooltip(
    ibge_code: str,
    dataset: MapDataset = Depends(get_dataset),
) -> TooltipResponse:
    feature = find_municipality(dataset, ibge_code)
    if feature is None:
        raise HTTPException(status_code=404, detail={"ibge_code": ibge_code, "reason": "not_found"})
    return build_tooltip(feature)
