import logging
from pathlib import Path

import pytest

from geo_correlation.common.errors import BoundarySourceError
from geo_correlation.common.fs import read_json
from geo_correlation.geo.boundaries import BoundaryResolver, department_from_feature, municipality_from_feature

FIXTURES = Path(__file__).resolve().parents[1] / "fixtures"


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class FixtureSource:
    def __init__(self, fail_departments: int = 0) -> None:
        self.department_calls = 0
        self.municipality_calls = 0
        self.fail_departments = fail_departments

    def load_departments(self):
        self.department_calls += 1
        if self.department_calls <= self.fail_departments:
            raise BoundarySourceError("departments unavailable")
        return read_json(FIXTURES / "departamentos.geojson")["features"]

    def load_municipalities(self):
        self.municipality_calls += 1
        return read_json(FIXTURES / "municipios.geojson")["features"]


def _resolver(source=None, clock=None) -> BoundaryResolver:
    return BoundaryResolver(source or FixtureSource(), ttl_seconds=600, clock=clock or FakeClock())


def test_feature_builders_assign_ids_and_placeholders():
    dept = department_from_feature({"properties": {"NAME": "Izabal"}, "geometry": None}, 0)
    assert dept.id == "dept_izabal"
    assert dept.type == "departamento"
    assert dept.coordinates is None

    unnamed = department_from_feature({"properties": {}, "geometry": None}, 4)
    assert unnamed.name == "Departamento 5"

    muni = municipality_from_feature({"properties": {"Municipio": "San Juan Sacatepéquez", "Departamento": "Guatemala"}}, 0)
    assert muni.id == "muni_san_juan_sacatepéquez_guatemala"
    assert muni.department == "Guatemala"


def test_feature_builders_tolerate_non_object_parts():
    dept = department_from_feature({"properties": ["Izabal"], "geometry": "Polygon"}, 2)
    assert dept.name == "Departamento 3"
    assert dept.properties == {}
    assert dept.geometry is None
    assert dept.coordinates is None

    with pytest.raises(BoundarySourceError):
        municipality_from_feature("Mixco", 0)


class MalformedFeatureSource(FixtureSource):
    def load_departments(self):
        return [
            {"properties": {"NAME": "Roto"}, "geometry": {"type": "Polygon", "coordinates": [[-90.5, 14.6]]}},
            "not a feature",
            *super().load_departments(),
        ]


def test_malformed_features_do_not_block_the_level(caplog: pytest.LogCaptureFixture):
    resolver = _resolver(MalformedFeatureSource())

    with caplog.at_level(logging.WARNING):
        detection = resolver.detect_boundary_level("Guatemala", "level1")

    assert detection.confidence == 1.0
    assert [match.id for match in detection.matches] == ["dept_guatemala"]
    assert resolver.get_boundary_by_id("dept_roto").coordinates is None
    failures = [record for record in caplog.records if getattr(record, "event", None) == "FEATURE_FAIL"]
    assert [record.error_code for record in failures] == ["BOUNDARY_SOURCE_ERROR"]


def test_unnamed_features_are_dropped():
    names = [dept.name for dept in _resolver().departments()]
    assert names == ["Guatemala", "Chiquimula", "Sacatepéquez"]


def test_department_centroids_average_outer_ring():
    by_name = {dept.name: dept for dept in _resolver().departments()}
    assert by_name["Guatemala"].coordinates == pytest.approx({"lat": 14.6, "lng": -90.5})
    assert by_name["Sacatepéquez"].coordinates == pytest.approx({"lat": 14.55, "lng": -90.7})


def test_detect_exact_department():
    detection = _resolver().detect_boundary_level("Guatemala", "level1")
    assert detection.is_boundary
    assert detection.confidence == 1.0
    assert [match.id for match in detection.matches] == ["dept_guatemala"]


def test_detect_without_level_checks_both_levels():
    detection = _resolver().detect_boundary_level("guatemala")
    assert detection.confidence == 1.0
    assert {match.type for match in detection.matches} == {"departamento", "municipio"}


def test_detect_partial_match_either_direction():
    resolver = _resolver()

    contained = resolver.detect_boundary_level("Antigua", "level2")
    assert contained.is_boundary
    assert contained.confidence == 0.7
    assert [match.name for match in contained.matches] == ["Antigua Guatemala"]

    containing = resolver.detect_boundary_level("Departamento de Chiquimula", "level1")
    assert containing.confidence == 0.7
    assert [match.name for match in containing.matches] == ["Chiquimula"]


def test_detect_no_match_and_empty_input():
    resolver = _resolver()
    assert not resolver.detect_boundary_level("Petén", "level1").is_boundary
    empty = resolver.detect_boundary_level("   ")
    assert not empty.is_boundary
    assert empty.confidence == 0.0


def test_detect_rejects_unknown_level():
    with pytest.raises(ValueError):
        _resolver().detect_boundary_level("Guatemala", "level3")


def test_search_matches_names_and_parent_department():
    results = _resolver().search("gua")
    assert [(item.type, item.name) for item in results] == [
        ("departamento", "Guatemala"),
        ("municipio", "Guatemala"),
        ("municipio", "Mixco"),
        ("municipio", "Antigua Guatemala"),
    ]


def test_search_scope_and_short_queries():
    resolver = _resolver()
    assert [item.name for item in resolver.search("MIXCO", "municipio")] == ["Mixco"]
    assert resolver.search("mixco", "departamento") == []
    assert resolver.search("g") == []
    with pytest.raises(ValueError):
        resolver.search("mixco", "region")


def test_cache_is_reused_within_ttl_and_refreshed_after():
    source = FixtureSource()
    clock = FakeClock()
    resolver = _resolver(source, clock)

    resolver.departments()
    resolver.search("mixco")
    assert source.department_calls == 1

    clock.now += 601
    resolver.municipalities()
    assert source.department_calls == 2
    assert source.municipality_calls == 2


def test_failed_load_is_not_cached():
    source = FixtureSource(fail_departments=1)
    resolver = _resolver(source)

    assert resolver.departments() == []
    assert [muni.name for muni in resolver.search("esquipulas", "municipio")] == ["Esquipulas"]
    assert source.department_calls == 2
    assert [dept.name for dept in resolver.departments()][0] == "Guatemala"
    assert source.department_calls == 2


def test_get_boundary_by_id_and_clear_cache():
    source = FixtureSource()
    resolver = _resolver(source)

    assert resolver.get_boundary_by_id("muni_mixco_guatemala").name == "Mixco"
    assert resolver.get_boundary_by_id("dept_chiquimula").type == "departamento"
    assert resolver.get_boundary_by_id("dept_peten") is None

    resolver.clear_cache()
    resolver.departments()
    assert source.department_calls == 2
