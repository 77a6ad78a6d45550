"""Build the department -> municipality index of correlated dataset facts."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from geo_correlation.common.constants import DEPARTMENT_LEVEL_KEY, INDEX_CACHE_TTL_SECONDS
from geo_correlation.common.errors import CollaboratorError
from geo_correlation.common.logging import get_logger, log_event
from geo_correlation.common.models import (
    ActorData,
    Dataset,
    DetectedDataType,
    GeographicDataIndex,
    LocationRecord,
)
from geo_correlation.common.text import normalize_key
from geo_correlation.geo.column_rules import (
    DEPARTMENT,
    MUNICIPALITY,
    ColumnClassification,
    ColumnRule,
    build_column_rules,
    classify_schema,
    detect_column_type,
)
from geo_correlation.geo.location_values import extract_department, extract_municipality
from geo_correlation.sources.datasets import DatasetStore

ACTOR_PHOTO_FIELDS = ("image_url", "imageUrl", "photo")
ACTOR_PARTY_FIELDS = ("party", "partido")


@dataclass
class GeographicIndexState:
    """Cached index, its build time and TTL, owned by whoever builds and queries it."""

    ttl_seconds: float = INDEX_CACHE_TTL_SECONDS
    clock: Callable[[], float] = time.monotonic
    index: GeographicDataIndex | None = None
    built_at: float | None = None
    build_count: int = field(default=0)

    def is_stale(self) -> bool:
        if self.index is None or self.built_at is None:
            return True
        return (self.clock() - self.built_at) > self.ttl_seconds

    def replace(self, index: GeographicDataIndex) -> None:
        self.index = index
        self.built_at = self.clock()
        self.build_count += 1

    def invalidate(self) -> None:
        self.index = None
        self.built_at = None

    def age_seconds(self) -> float:
        if self.built_at is None:
            return 0.0
        return self.clock() - self.built_at


def _first_string(value: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        candidate = value.get(key)
        if candidate and isinstance(candidate, str):
            return candidate
    return None


def extract_actor_data(row: dict[str, Any], actor_columns: list[str], dataset_name: str) -> list[ActorData]:
    actors: list[ActorData] = []
    for column_name in actor_columns:
        value = row.get(column_name)
        if not value:
            continue

        if isinstance(value, str):
            actor = ActorData(name=value, source_dataset=dataset_name, role=column_name)
        elif isinstance(value, dict):
            # Party only ever comes from the actor's own value, never a sibling column.
            actor = ActorData(
                name=_first_string(value, ("name", "label")) or "",
                source_dataset=dataset_name,
                role=column_name,
                party=_first_string(value, ACTOR_PARTY_FIELDS),
                photo_url=_first_string(value, ACTOR_PHOTO_FIELDS),
                metadata=value,
            )
        else:
            continue

        if actor.name:
            actors.append(actor)
    return actors


def extract_row_location(
    row: dict[str, Any],
    scan: ColumnClassification,
    rules: dict[str, ColumnRule],
) -> tuple[str | None, str | None]:
    dept: str | None = None
    muni: str | None = None

    if scan.department_column:
        dept = extract_department(row.get(scan.department_column))
    if scan.municipality_column:
        muni = extract_municipality(row.get(scan.municipality_column))

    for column in scan.location_columns:
        value = row.get(column)
        if not value:
            continue
        names_department = rules[DEPARTMENT].matches_name(column)
        names_municipality = rules[MUNICIPALITY].matches_name(column)

        if isinstance(value, dict):
            if names_department and not dept:
                # Department pickers sometimes only fill the municipality slot.
                dept = extract_department(value) or extract_municipality(value)
            if names_municipality and not muni:
                muni = extract_municipality(value)
            if not names_department and not names_municipality:
                dept = dept or extract_department(value)
                muni = muni or extract_municipality(value)
        elif isinstance(value, str):
            if names_department and not dept:
                dept = value.strip() or None
            if names_municipality and not muni:
                muni = value.strip() or None

    return dept, muni


class GeographicIndexBuilder:
    def __init__(
        self,
        dataset_store: DatasetStore,
        state: GeographicIndexState,
        *,
        visibility: str | None = "public",
        rules: dict[str, ColumnRule] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.dataset_store = dataset_store
        self.state = state
        self.visibility = visibility
        self.rules = rules or build_column_rules()
        self.logger = logger or get_logger("geo.index")

    def build(self) -> GeographicDataIndex:
        """Scan every dataset and replace the cached index.

        A store that cannot list datasets yields an empty index and leaves the
        cache untouched. Failing datasets and rows are logged and skipped.
        """
        started = time.monotonic()
        try:
            datasets = self.dataset_store.list_datasets(visibility=self.visibility)
        except CollaboratorError as exc:
            log_event(
                self.logger,
                "dataset listing failed; index not rebuilt",
                level=logging.ERROR,
                stage="index",
                event="INDEX_FAIL",
                status="error",
                error_code=exc.error_code,
            )
            return {}

        if not datasets:
            log_event(
                self.logger,
                "no datasets found for geographic indexing",
                level=logging.WARNING,
                stage="index",
                event="INDEX_EMPTY",
                status="warning",
            )

        index: GeographicDataIndex = {}
        indexed_rows = 0
        for dataset in datasets:
            try:
                indexed_rows += self._index_dataset(dataset, index)
            except Exception as exc:
                log_event(
                    self.logger,
                    f"dataset {dataset.id} skipped: {exc}",
                    level=logging.WARNING,
                    stage="index",
                    dataset=dataset.id,
                    event="DATASET_FAIL",
                    status="error",
                    error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
                )

        self.state.replace(index)
        log_event(
            self.logger,
            f"geographic index built with {len(index)} departments",
            stage="index",
            event="INDEX_BUILT",
            status="ok",
            duration_ms=int((time.monotonic() - started) * 1000),
            rows_in=sum(len(dataset.rows) for dataset in datasets),
            rows_out=indexed_rows,
        )
        return index

    def _index_dataset(self, dataset: Dataset, index: GeographicDataIndex) -> int:
        scan = classify_schema(dataset.schema, self.rules)
        if not scan.has_geographic_data:
            return 0

        indexed = 0
        for position, row in enumerate(dataset.rows):
            try:
                if self._index_row(dataset, scan, row, index):
                    indexed += 1
            except Exception as exc:
                log_event(
                    self.logger,
                    f"row {position} of dataset {dataset.id} skipped: {exc}",
                    level=logging.WARNING,
                    stage="index",
                    dataset=dataset.id,
                    event="ROW_FAIL",
                    status="error",
                    error_code="ROW_ERROR",
                )
        return indexed

    def _index_row(
        self,
        dataset: Dataset,
        scan: ColumnClassification,
        row: dict[str, Any],
        index: GeographicDataIndex,
    ) -> bool:
        dept, muni = extract_row_location(row, scan, self.rules)
        if not dept:
            return False

        dept_key = normalize_key(dept)
        muni_key = normalize_key(muni) if muni else DEPARTMENT_LEVEL_KEY

        # Everything derived from the row is computed before the index is touched,
        # so a row that fails leaves no partial entry behind.
        actors = extract_actor_data(row, scan.actor_columns, dataset.name) if scan.actor_columns else []
        data_types = [
            DetectedDataType(
                type=detect_column_type(column.name, row[column.name], column.type, self.rules),
                column_name=column.name,
                display_name=column.name,
                value=row[column.name],
            )
            for column in dataset.schema
            if not scan.is_geographic(column.name) and row.get(column.name) is not None
        ]

        municipalities = index.setdefault(dept_key, {})
        record = municipalities.get(muni_key)
        if record is None:
            record = LocationRecord(departamento=dept, municipio=muni or None)
            municipalities[muni_key] = record

        match = record.dataset_match(dataset)
        match.matched_rows.append(row)
        record.actors.extend(actors)
        for data_type in data_types:
            match.add_data_type(data_type)
        return True
