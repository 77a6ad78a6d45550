"""Geometry helpers."""

from __future__ import annotations

import math
from typing import Any


def _outer_ring(geometry: dict[str, Any]) -> list | None:
    geometry_type = geometry.get("type")
    coordinates = geometry.get("coordinates")
    if not coordinates or not isinstance(coordinates, list):
        return None
    if geometry_type == "Polygon":
        ring = coordinates[0]
    elif geometry_type == "MultiPolygon":
        # First polygon only; enough for a display coordinate.
        first = coordinates[0]
        ring = first[0] if isinstance(first, list) and first else None
    else:
        return None
    return ring if isinstance(ring, list) else None


def _is_vertex(vertex: Any) -> bool:
    return isinstance(vertex, (list, tuple)) and len(vertex) >= 2


def _finite(value: Any) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def ring_centroid(geometry: dict[str, Any] | None) -> dict[str, float] | None:
    """Mean of the outer-ring vertices as ``{"lat", "lng"}``.

    Returns None for anything that is not a Polygon or MultiPolygon with at
    least one usable ``[lng, lat]`` vertex.
    """
    if not isinstance(geometry, dict):
        return None
    ring = _outer_ring(geometry)
    if not ring:
        return None

    vertices = [vertex for vertex in ring if _is_vertex(vertex)]
    lats = [lat for lat in (_finite(vertex[1]) for vertex in vertices) if lat is not None]
    lngs = [lng for lng in (_finite(vertex[0]) for vertex in vertices) if lng is not None]
    if not lats or not lngs:
        return None
    return {"lat": sum(lats) / len(lats), "lng": sum(lngs) / len(lngs)}
