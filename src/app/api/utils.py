from __future__ import annotations

from typing import Any

from fastapi.encoders import jsonable_encoder

from app.schemas.map import MunicipalityResponse, SubstanceTestItem
from pipelines.enrichment import MUNICIPALITY_ID_PROPERTY
from pipelines.models import Feature, MapDataset, SubstanceTest


def normalize_limit(limit: int, max_limit: int = 50) -> int:
    return max(1, min(limit, max_limit))


def feature_code(feature: Feature) -> str | None:
    code = (feature.get("properties") or {}).get(MUNICIPALITY_ID_PROPERTY)
    return None if code is None else str(code).strip()


def find_municipality(dataset: MapDataset, ibge_code: str) -> Feature | None:
    wanted = ibge_code.strip()
    for feature in dataset.mun["features"]:
        if feature_code(feature) == wanted:
            return feature
    return None


def substance_test_item(test: SubstanceTest) -> SubstanceTestItem:
    limit = test.substance.limit
    return SubstanceTestItem(
        substance_code=test.substance.code,
        substance_name=test.substance.name,
        samples=list(test.samples),
        max=test.max,
        limit=limit,
        exceeds_limit=test.max is not None and test.max > limit,
    )


def municipality_response(feature: Feature) -> MunicipalityResponse:
    properties = feature.get("properties") or {}
    tests = properties.get("tests")
    return MunicipalityResponse(
        ibge_code=feature_code(feature) or "",
        name=properties.get("name"),
        deburred_name=properties.get("deburred_name"),
        fu=properties.get("fu"),
        fu_name=properties.get("fu_name"),
        category=properties.get("category"),
        number=properties.get("number"),
        tests=[substance_test_item(test) for test in tests] if tests is not None else None,
        centroid=properties.get("centroid"),
        bounds=properties.get("bounds"),
        radius=properties.get("radius"),
        geometry=jsonable_encoder(feature.get("geometry")),
    )


def jsonable_collection(collection: dict[str, Any]) -> dict[str, Any]:
    return jsonable_encoder(collection)
