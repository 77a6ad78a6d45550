"""Point queries against the cached geographic index."""

from __future__ import annotations

from geo_correlation.common.constants import DEPARTMENT_LEVEL_KEY, DEPARTMENT_PATTERN_MARKERS
from geo_correlation.common.models import IndexStats, LocationRecord
from geo_correlation.common.text import normalize_key
from geo_correlation.geo.index_builder import GeographicIndexBuilder, GeographicIndexState


def municipality_summary(departamento: str, municipalities: dict[str, LocationRecord]) -> LocationRecord | None:
    """Department stub describing municipality-level data without copying it.

    Returns ``None`` when no municipality under the department has actors or
    datasets.
    """
    actor_count = 0
    dataset_count = 0
    names: list[str] = []
    for record in municipalities.values():
        actor_count += len(record.actors)
        dataset_count += len(record.datasets)
        if record.municipio:
            names.append(record.municipio)

    if actor_count == 0 and dataset_count == 0:
        return None

    return LocationRecord(
        departamento=departamento,
        municipio=None,
        datasets=[],
        actors=[],
        statistics={
            "municipalityActorCount": actor_count,
            "municipalityDatasetCount": dataset_count,
        },
        has_data=True,
        is_aggregated=False,
        municipality_count=len(municipalities),
        aggregated_from=names,
    )


class GeographicQueryService:
    def __init__(self, builder: GeographicIndexBuilder) -> None:
        self.builder = builder

    @property
    def state(self) -> GeographicIndexState:
        return self.builder.state

    def invalidate_cache(self) -> None:
        self.state.invalidate()

    def get_geographic_data(self, department: str, municipality: str | None = None) -> LocationRecord | None:
        if self.state.is_stale():
            self.builder.build()

        index = self.state.index
        if index is None:
            return None

        dept_key = normalize_key(department)
        muni_key = normalize_key(municipality) if municipality else DEPARTMENT_LEVEL_KEY
        dept_data = index.get(dept_key)

        record = dept_data.get(muni_key) if dept_data else None

        # Municipality data with the department's own name never stands in for
        # the department level.
        if record is None and dept_data and muni_key == DEPARTMENT_LEVEL_KEY:
            for key in dept_data:
                if any(marker in key for marker in DEPARTMENT_PATTERN_MARKERS):
                    record = dept_data[key]
                    break

        if record is None and dept_data and muni_key == DEPARTMENT_LEVEL_KEY:
            municipalities = {key: value for key, value in dept_data.items() if key != DEPARTMENT_LEVEL_KEY}
            record = municipality_summary(department, municipalities)

        if record is None and municipality:
            return (dept_data or {}).get(DEPARTMENT_LEVEL_KEY)

        return record

    def get_index_stats(self) -> IndexStats:
        index = self.state.index
        if index is None:
            return IndexStats(
                departments=0,
                municipalities=0,
                total_locations=0,
                datasets_indexed=0,
                cache_age_seconds=0.0,
            )

        locations = 0
        dataset_ids: set[str] = set()
        for municipalities in index.values():
            locations += len(municipalities)
            for record in municipalities.values():
                dataset_ids.update(match.dataset_id for match in record.datasets)

        return IndexStats(
            departments=len(index),
            municipalities=locations,
            total_locations=locations,
            datasets_indexed=len(dataset_ids),
            cache_age_seconds=self.state.age_seconds(),
        )
