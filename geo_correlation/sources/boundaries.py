"""GeoJSON boundary source for department and municipality polygons."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

from geo_correlation.common.errors import BoundarySourceError
from geo_correlation.common.fs import read_json
from geo_correlation.common.http import HttpClient, HttpRequestError


class BoundarySource(Protocol):
    def load_departments(self) -> list[dict[str, Any]]: ...

    def load_municipalities(self) -> list[dict[str, Any]]: ...


def _is_url(location: str) -> bool:
    return location.startswith(("http://", "https://"))


class GeoJsonBoundarySource:
    """Reads one GeoJSON FeatureCollection per level from a path or an http(s) URL."""

    def __init__(
        self,
        departments: str | Path,
        municipalities: str | Path,
        *,
        http_client: HttpClient | None = None,
    ) -> None:
        self.departments = str(departments)
        self.municipalities = str(municipalities)
        self.http_client = http_client

    def _fetch(self, location: str) -> Any:
        if _is_url(location):
            owns_client = self.http_client is None
            client = self.http_client or HttpClient()
            try:
                return client.get_json(location)
            except HttpRequestError as exc:
                raise BoundarySourceError(f"Failed to fetch boundaries from {location}: {exc}") from exc
            finally:
                if owns_client:
                    client.close()
        try:
            return read_json(Path(location))
        except (OSError, ValueError) as exc:
            raise BoundarySourceError(f"Failed to read boundaries from {location}: {exc}") from exc

    def _features(self, location: str) -> list[dict[str, Any]]:
        payload = self._fetch(location)
        if not isinstance(payload, dict) or payload.get("type") != "FeatureCollection":
            raise BoundarySourceError(f"{location} is not a GeoJSON FeatureCollection")
        return [feature for feature in payload.get("features") or [] if isinstance(feature, dict)]

    def load_departments(self) -> list[dict[str, Any]]:
        return self._features(self.departments)

    def load_municipalities(self) -> list[dict[str, Any]]:
        return self._features(self.municipalities)
