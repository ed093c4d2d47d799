from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_dataset_store
from app.api.utils import feature_code, normalize_limit
from app.schemas.responses import SearchItem, SearchResponse
from app.store import DatasetStore, DataUnavailableError
from pipelines.search import search_municipalities

router = APIRouter(tags=["search"])


@router.get("/search", response_model=SearchResponse)
def search(
    q: str = Query(default=""),
    limit: int = Query(default=10),
    store: DatasetStore = Depends(get_dataset_store),
) -> SearchResponse:
    try:
        dataset = store.require()
    except DataUnavailableError as exc:
        if exc.status == "failed":
            raise
        # The search box shows its loading indicator until the data is ready.
        return SearchResponse(query=q, loading=True, total=0, items=[])

    matches = search_municipalities(dataset.mun["features"], q, limit=normalize_limit(limit))
    items = []
    for feature in matches:
        properties = feature.get("properties") or {}
        items.append(
            SearchItem(
                ibge_code=feature_code(feature) or "",
                name=str(properties.get("name") or ""),
                fu=properties.get("fu"),
                fu_name=properties.get("fu_name"),
                centroid=properties.get("centroid"),
            )
        )
    return SearchResponse(query=q, loading=False, total=len(items), items=items)
