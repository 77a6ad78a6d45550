"""Administrative boundary cache and free-text boundary detection.

Departments and municipalities are loaded together from a boundary source,
turned into ``BoundaryLocation`` values with a display centroid, and kept for
a fixed TTL. The cache refreshes lazily on the first access after expiry.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from geo_correlation.common.constants import BOUNDARY_CACHE_TTL_SECONDS, BOUNDARY_SCOPES
from geo_correlation.common.errors import BoundarySourceError, CollaboratorError
from geo_correlation.common.geometry import ring_centroid
from geo_correlation.common.ids import slugify_name
from geo_correlation.common.logging import get_logger, log_event
from geo_correlation.common.models import BoundaryDetection, BoundaryLocation
from geo_correlation.common.text import normalize_key
from geo_correlation.sources.boundaries import BoundarySource

DEPARTMENT_NAME_PROPERTIES = ("Departamento", "NAME", "admin_1")
MUNICIPALITY_NAME_PROPERTIES = ("Municipio", "NAME", "novenombre")
PARENT_DEPARTMENT_PROPERTIES = ("Departamento", "admin_1")
UNNAMED = "Sin nombre"
MIN_SEARCH_LENGTH = 2

EXACT_MATCH_CONFIDENCE = 1.0
PARTIAL_MATCH_CONFIDENCE = 0.7


def _feature_parts(feature: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any] | None]:
    if not isinstance(feature, dict):
        raise BoundarySourceError(f"Boundary feature must be an object, got {type(feature).__name__}")
    properties = feature.get("properties")
    geometry = feature.get("geometry")
    return (
        properties if isinstance(properties, dict) else {},
        geometry if isinstance(geometry, dict) else None,
    )


def _first_property(properties: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = properties.get(key)
        if value:
            return str(value)
    return None


def department_from_feature(feature: dict[str, Any], position: int) -> BoundaryLocation:
    properties, geometry = _feature_parts(feature)
    name = _first_property(properties, DEPARTMENT_NAME_PROPERTIES) or f"Departamento {position + 1}"
    return BoundaryLocation(
        id=f"dept_{slugify_name(name)}",
        name=name,
        type="departamento",
        coordinates=ring_centroid(geometry),
        geometry=geometry,
        properties=properties,
    )


def municipality_from_feature(feature: dict[str, Any], position: int) -> BoundaryLocation:
    properties, geometry = _feature_parts(feature)
    name = _first_property(properties, MUNICIPALITY_NAME_PROPERTIES) or f"Municipio {position + 1}"
    department = _first_property(properties, PARENT_DEPARTMENT_PROPERTIES) or ""
    return BoundaryLocation(
        id=f"muni_{slugify_name(name)}_{slugify_name(department)}",
        name=name,
        type="municipio",
        department=department,
        coordinates=ring_centroid(geometry),
        geometry=geometry,
        properties=properties,
    )


def _named(locations: list[BoundaryLocation]) -> list[BoundaryLocation]:
    return [location for location in locations if location.name and location.name != UNNAMED]


class BoundaryResolver:
    def __init__(
        self,
        source: BoundarySource,
        *,
        ttl_seconds: float = BOUNDARY_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        self.source = source
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.logger = logger or get_logger("geo.boundaries")
        self._departments: list[BoundaryLocation] | None = None
        self._municipalities: list[BoundaryLocation] | None = None
        self._loaded_at: float | None = None

    def _fetch(self, level: str, loader: Callable[[], list[dict[str, Any]]], build) -> list[BoundaryLocation] | None:
        try:
            features = loader()
        except CollaboratorError as exc:
            log_event(
                self.logger,
                f"boundary source failed for {level}",
                level=logging.WARNING,
                stage="boundaries",
                source=level,
                event="SOURCE_FAIL",
                status="error",
                error_code=exc.error_code,
            )
            return None
        locations: list[BoundaryLocation] = []
        for position, feature in enumerate(features):
            try:
                locations.append(build(feature, position))
            except Exception as exc:
                log_event(
                    self.logger,
                    f"feature {position} of {level} skipped: {exc}",
                    level=logging.WARNING,
                    stage="boundaries",
                    source=level,
                    event="FEATURE_FAIL",
                    status="error",
                    error_code=getattr(exc, "error_code", "FEATURE_ERROR"),
                )
        return _named(locations)

    def load(self) -> None:
        """Fetch both collections and cache them.

        A level whose source fails stays empty for this call and is not
        cached, so the next access retries it.
        """
        started = self.clock()
        departments = self._fetch("departamentos", self.source.load_departments, department_from_feature)
        municipalities = self._fetch("municipios", self.source.load_municipalities, municipality_from_feature)

        self._departments = departments or []
        self._municipalities = municipalities or []
        self._loaded_at = started if departments is not None and municipalities is not None else None

        log_event(
            self.logger,
            "boundaries loaded",
            level=logging.DEBUG,
            stage="boundaries",
            event="BOUNDARIES_LOADED",
            status="ok" if self._loaded_at is not None else "partial",
            rows_out=len(self._departments) + len(self._municipalities),
        )

    def _is_fresh(self) -> bool:
        return self._loaded_at is not None and (self.clock() - self._loaded_at) < self.ttl_seconds

    def _ensure_loaded(self) -> None:
        if not self._is_fresh():
            self.load()

    def departments(self) -> list[BoundaryLocation]:
        self._ensure_loaded()
        return list(self._departments or [])

    def municipalities(self) -> list[BoundaryLocation]:
        self._ensure_loaded()
        return list(self._municipalities or [])

    def _all(self) -> tuple[list[BoundaryLocation], list[BoundaryLocation]]:
        self._ensure_loaded()
        return list(self._departments or []), list(self._municipalities or [])

    def clear_cache(self) -> None:
        self._departments = None
        self._municipalities = None
        self._loaded_at = None

    def search(self, query: str, scope: str = "both") -> list[BoundaryLocation]:
        if scope not in BOUNDARY_SCOPES:
            raise ValueError(f"Unsupported boundary scope: {scope}")
        needle = normalize_key(query)
        if len(needle) < MIN_SEARCH_LENGTH:
            return []

        departments, municipalities = self._all()
        results: list[BoundaryLocation] = []
        if scope in ("departamento", "both"):
            results.extend(dept for dept in departments if needle in normalize_key(dept.name))
        if scope in ("municipio", "both"):
            results.extend(
                muni
                for muni in municipalities
                if needle in normalize_key(muni.name)
                or (muni.department and needle in normalize_key(muni.department))
            )
        return results

    def _candidates(self, target_level: str | None) -> list[BoundaryLocation]:
        if target_level == "level1":
            return self.departments()
        if target_level == "level2":
            return self.municipalities()
        if target_level is None:
            departments, municipalities = self._all()
            return departments + municipalities
        raise ValueError(f"Unsupported boundary level: {target_level}")

    def detect_boundary_level(self, name: str, target_level: str | None = None) -> BoundaryDetection:
        candidates = self._candidates(target_level)
        needle = normalize_key(name)
        if not needle:
            return BoundaryDetection(is_boundary=False, confidence=0.0)

        normalized = [(normalize_key(candidate.name), candidate) for candidate in candidates]

        exact = [candidate for key, candidate in normalized if key == needle]
        if exact:
            return BoundaryDetection(is_boundary=True, confidence=EXACT_MATCH_CONFIDENCE, matches=exact)

        partial = [candidate for key, candidate in normalized if key and (needle in key or key in needle)]
        if partial:
            return BoundaryDetection(is_boundary=True, confidence=PARTIAL_MATCH_CONFIDENCE, matches=partial)

        return BoundaryDetection(is_boundary=False, confidence=0.0)

    def get_boundary_by_id(self, boundary_id: str) -> BoundaryLocation | None:
        departments, municipalities = self._all()
        for boundary in departments + municipalities:
            if boundary.id == boundary_id:
                return boundary
        return None
