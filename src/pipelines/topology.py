from __future__ import annotations

import copy
import io
import json
import math
from typing import Any

import geopandas as gpd
from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

from pipelines.models import Feature, FeatureCollection

REPUBLIC_LAYER = "republic"
FEDERATIVE_UNITS_LAYER = "federative-units"
INTERNAL_FEDERATIVE_UNITS_LAYER = "internal-federative-units"
MUNICIPALITIES_LAYER = "municipalities"

LAYERS: tuple[str, ...] = (
    REPUBLIC_LAYER,
    FEDERATIVE_UNITS_LAYER,
    INTERNAL_FEDERATIVE_UNITS_LAYER,
    MUNICIPALITIES_LAYER,
)

METRIC_KEYS: tuple[str, ...] = ("centroid", "bounds", "width", "height", "radius")


def geometry_metrics(geometry: BaseGeometry | None) -> dict[str, Any]:
    # The topology is already projected to screen units, so everything is planar.
    if geometry is None or geometry.is_empty:
        return dict.fromkeys(METRIC_KEYS)

    min_x, min_y, max_x, max_y = geometry.bounds
    centroid = geometry.centroid
    width = max_x - min_x
    height = max_y - min_y
    return {
        "centroid": [centroid.x, centroid.y],
        "bounds": [[min_x, min_y], [max_x, max_y]],
        "width": width,
        "height": height,
        "radius": math.sqrt(width * width + height * height) / 2,
    }


def _feature(geometry: BaseGeometry | None, properties: dict[str, Any], feature_id: Any = None) -> Feature:
    feature: Feature = {"type": "Feature"}
    if feature_id is not None:
        feature["id"] = feature_id
    feature["properties"] = {**properties, **geometry_metrics(geometry)}
    feature["geometry"] = mapping(geometry) if geometry is not None else None
    return feature


def layer_members(topology: dict[str, Any], layer: str) -> list[dict[str, Any]]:
    objects = topology.get("objects") or {}
    if layer not in objects:
        raise KeyError(f"Topology has no object named '{layer}'.")
    obj = objects[layer]
    if obj.get("type") == "GeometryCollection":
        return list(obj.get("geometries") or [])
    return [obj]


def _has_geometry(member: dict[str, Any]) -> bool:
    return member.get("type") not in (None, "null")


def decode_layer(topology: dict[str, Any], layer: str) -> gpd.GeoDataFrame:
    layer_members(topology, layer)
    payload = json.dumps(topology).encode("utf-8")
    return gpd.read_file(io.BytesIO(payload), layer=layer, engine="pyogrio")


def to_features(topology: dict[str, Any], layer: str) -> FeatureCollection:
    """Decode one topology object into an annotated GeoJSON FeatureCollection.

    GDAL decodes the arcs; ids and properties come from the topology members
    themselves, so a member without properties gets an empty dict plus the
    metrics ``centroid``, ``bounds``, ``width``, ``height`` and ``radius``
    (half the bounding-box diagonal).
    """
    members = layer_members(topology, layer)
    geometries = list(decode_layer(topology, layer).geometry)
    # GDAL may drop members that carry no geometry.
    skip_empty = len(geometries) != len(members)
    if skip_empty and len(geometries) != sum(1 for member in members if _has_geometry(member)):
        raise ValueError(
            f"Topology object '{layer}' decoded to {len(geometries)} geometries "
            f"for {len(members)} members."
        )

    decoded = iter(geometries)
    features: list[Feature] = []
    for member in members:
        geometry = None if skip_empty and not _has_geometry(member) else next(decoded)
        properties = copy.deepcopy(member.get("properties") or {})
        features.append(_feature(geometry, properties, member.get("id")))
    return {"type": "FeatureCollection", "features": features}
