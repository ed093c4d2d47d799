from __future__ import annotations

from app.schemas.map import TooltipResponse
from pipelines.models import Feature

# Callout offsets used by the map client for the elbow annotation.
NOTE_OFFSET_X = 220
NOTE_OFFSET_Y = 700


def detected_count(feature: Feature) -> int | None:
    number = (feature.get("properties") or {}).get("number") or {}
    value = number.get("detected")
    if value is None or not float(value).is_integer():
        return None
    return int(value)


def build_tooltip(feature: Feature) -> TooltipResponse:
    properties = feature.get("properties") or {}
    count = detected_count(feature)
    label = (
        f"{count} pesticide(s) found in the drinking water."
        if count is not None
        else "Never tested."
    )
    title = str(properties.get("name") or "")
    if properties.get("fu_name"):
        title = f"{title} ({properties['fu_name']})"
    centroid = properties.get("centroid") or [None, None]
    return TooltipResponse(
        title=title,
        label=label,
        x=centroid[0],
        y=centroid[1],
        nx=NOTE_OFFSET_X,
        ny=NOTE_OFFSET_Y,
    )
