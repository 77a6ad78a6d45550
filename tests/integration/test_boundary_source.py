from __future__ import annotations

from pathlib import Path

import pytest

from geo_correlation.common.errors import BoundarySourceError
from geo_correlation.common.http import HttpRequestError
from geo_correlation.sources.boundaries import GeoJsonBoundarySource

FIXTURES = Path(__file__).resolve().parents[1] / "fixtures"


class FakeHttpClient:
    def __init__(self, payload=None, error: Exception | None = None) -> None:
        self.payload = payload
        self.error = error
        self.urls: list[str] = []

    def get_json(self, url, *, params=None, headers=None, timeout=None):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.payload


@pytest.mark.integration
def test_reads_feature_collections_from_files():
    source = GeoJsonBoundarySource(FIXTURES / "departamentos.geojson", FIXTURES / "municipios.geojson")
    assert len(source.load_departments()) == 4
    assert [feature["properties"]["Municipio"] for feature in source.load_municipalities()][:2] == ["Guatemala", "Mixco"]


@pytest.mark.integration
def test_reads_feature_collections_over_http():
    client = FakeHttpClient({"type": "FeatureCollection", "features": [{"type": "Feature", "properties": {}}, "junk"]})
    source = GeoJsonBoundarySource("https://geo.example/d.geojson", "https://geo.example/m.geojson", http_client=client)

    assert source.load_departments() == [{"type": "Feature", "properties": {}}]
    assert client.urls == ["https://geo.example/d.geojson"]


@pytest.mark.integration
def test_source_errors_are_wrapped(tmp_path: Path):
    with pytest.raises(BoundarySourceError):
        GeoJsonBoundarySource(tmp_path / "none.geojson", tmp_path / "none.geojson").load_departments()

    not_collection = tmp_path / "feature.geojson"
    not_collection.write_text('{"type": "Feature"}', encoding="utf-8")
    with pytest.raises(BoundarySourceError):
        GeoJsonBoundarySource(not_collection, not_collection).load_municipalities()

    failing = FakeHttpClient(error=HttpRequestError("HTTP status: 404"))
    with pytest.raises(BoundarySourceError):
        GeoJsonBoundarySource("https://geo.example/d.geojson", "x", http_client=failing).load_departments()
