from __future__ import annotations

from collections.abc import Sequence

from pipelines.federative_units import normalize_search_text
from pipelines.models import Feature


def search_municipalities(features: Sequence[Feature], query: str, *, limit: int = 10) -> list[Feature]:
    """Municipalities whose name contains ``query``, ignoring case and accents.

    Names starting with the query rank first, then alphabetical order.
    """
    needle = normalize_search_text(query)
    if not needle:
        return []

    matches: list[tuple[bool, str, Feature]] = []
    for feature in features:
        properties = feature.get("properties") or {}
        name = properties.get("deburred_name") or properties.get("name")
        if not name:
            continue
        haystack = normalize_search_text(str(name))
        if needle in haystack:
            matches.append((not haystack.startswith(needle), haystack, feature))

    matches.sort(key=lambda item: (item[0], item[1]))
    return [feature for _, _, feature in matches[:limit]]
