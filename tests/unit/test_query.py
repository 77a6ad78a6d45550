from pathlib import Path

from geo_correlation.common.constants import DEPARTMENT_LEVEL_KEY
from geo_correlation.common.models import Dataset, LocationRecord, SchemaColumn
from geo_correlation.geo.index_builder import GeographicIndexBuilder, GeographicIndexState
from geo_correlation.geo.query import GeographicQueryService, municipality_summary
from geo_correlation.sources.datasets import JsonDatasetStore

FIXTURES = Path(__file__).resolve().parents[1] / "fixtures"


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class CountingStore(JsonDatasetStore):
    def __init__(self, path: Path) -> None:
        super().__init__(path)
        self.list_calls = 0

    def list_datasets(self, visibility=None, project_id=None, search=None):
        self.list_calls += 1
        return super().list_datasets(visibility, project_id, search)


class StaticStore:
    def __init__(self, datasets) -> None:
        self.datasets = datasets

    def list_datasets(self, visibility=None, project_id=None, search=None):
        return list(self.datasets)

    def get_dataset(self, dataset_id):
        return None


def _service(store, clock=None) -> GeographicQueryService:
    state = GeographicIndexState(ttl_seconds=300, clock=clock or FakeClock())
    return GeographicQueryService(GeographicIndexBuilder(store, state))


def test_lazy_build_and_exact_lookup():
    store = CountingStore(FIXTURES / "datasets.json")
    service = _service(store)

    record = service.get_geographic_data("GUATEMALA", "mixco")
    assert record.municipio == "Mixco"
    assert store.list_calls == 1

    service.get_geographic_data("Chiquimula", "Esquipulas")
    assert store.list_calls == 1


def test_department_only_query_returns_non_aggregated_stub():
    service = _service(JsonDatasetStore(FIXTURES / "datasets.json"))

    stub = service.get_geographic_data("Guatemala")
    assert stub.departamento == "Guatemala"
    assert stub.municipio is None
    assert stub.datasets == []
    assert stub.actors == []
    assert stub.is_aggregated is False
    assert stub.municipality_count == 2
    assert sorted(stub.aggregated_from) == ["Guatemala", "Mixco"]
    assert stub.statistics == {"municipalityActorCount": 2, "municipalityDatasetCount": 2}


def test_department_level_record_wins_over_stub():
    service = _service(JsonDatasetStore(FIXTURES / "datasets.json"))
    record = service.get_geographic_data("Chiquimula")
    assert [actor.name for actor in record.actors] == ["Juan Pérez"]
    assert record.municipality_count is None


def test_unknown_municipality_falls_back_to_department_level():
    service = _service(JsonDatasetStore(FIXTURES / "datasets.json"))

    fallback = service.get_geographic_data("Chiquimula", "Jocotán")
    assert fallback.municipio is None
    assert [actor.name for actor in fallback.actors] == ["Juan Pérez"]

    # No department-level bucket for Guatemala, so nothing to fall back to.
    assert service.get_geographic_data("Guatemala", "Villa Nueva") is None


def test_unknown_department_and_private_datasets():
    service = _service(JsonDatasetStore(FIXTURES / "datasets.json"))
    assert service.get_geographic_data("Petén") is None
    assert service.get_geographic_data("Atlantis", "Mixco") is None


def test_department_marker_key_is_used_for_department_queries():
    dataset = Dataset(
        id="ds-m",
        name="Marcados",
        schema=[SchemaColumn("Departamento"), SchemaColumn("Municipio")],
        rows=[
            {"Departamento": "Izabal", "Municipio": "Izabal (Departamento)"},
            {"Departamento": "Izabal", "Municipio": "Livingston"},
        ],
    )
    service = _service(StaticStore([dataset]))

    record = service.get_geographic_data("Izabal")
    assert record.municipio == "Izabal (Departamento)"
    assert record.municipality_count is None


def test_invalidate_triggers_exactly_one_rebuild():
    store = CountingStore(FIXTURES / "datasets.json")
    service = _service(store)

    service.get_geographic_data("Guatemala", "Mixco")
    service.invalidate_cache()
    service.get_geographic_data("Guatemala", "Mixco")
    service.get_geographic_data("Chiquimula")

    assert store.list_calls == 2
    assert service.state.build_count == 2


def test_ttl_expiry_rebuilds_on_next_query():
    clock = FakeClock()
    store = CountingStore(FIXTURES / "datasets.json")
    service = _service(store, clock)

    service.get_geographic_data("Guatemala")
    clock.now = 299
    service.get_geographic_data("Guatemala")
    clock.now = 301
    service.get_geographic_data("Guatemala")
    assert store.list_calls == 2


def test_summary_without_data_is_none():
    empty = {"mixco": LocationRecord(departamento="Guatemala", municipio="Mixco")}
    assert municipality_summary("Guatemala", empty) is None


def test_index_stats():
    clock = FakeClock()
    service = _service(JsonDatasetStore(FIXTURES / "datasets.json"), clock)

    empty = service.get_index_stats()
    assert empty.departments == 0
    assert empty.cache_age_seconds == 0.0

    service.get_geographic_data("Guatemala")
    clock.now = 12
    stats = service.get_index_stats()
    assert stats.departments == 2
    assert stats.total_locations == 4
    assert stats.datasets_indexed == 2
    assert stats.cache_age_seconds == 12
    assert stats.to_dict()["totalLocations"] == 4


def test_department_level_key_never_collides_with_names():
    service = _service(JsonDatasetStore(FIXTURES / "datasets.json"))
    service.get_geographic_data("Chiquimula")
    assert DEPARTMENT_LEVEL_KEY in service.state.index["chiquimula"]
