"""Data models shared by the indexer, the boundary resolver and the relationship resolver."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from geo_correlation.common.constants import MATCHING_STRATEGIES
from geo_correlation.common.errors import DatasetStoreError, RelationshipConfigError


@dataclass(frozen=True)
class SchemaColumn:
    name: str
    type: str | None = None


@dataclass
class Dataset:
    id: str
    name: str
    schema: list[SchemaColumn] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)
    visibility: str | None = None
    description: str | None = None

    @classmethod
    def from_record(cls, record: dict[str, Any], *, visibility: str | None = None) -> "Dataset":
        if not isinstance(record, dict) or record.get("id") in (None, ""):
            raise DatasetStoreError("Dataset record has no id")
        columns = record.get("schema_definition") or []
        rows = record.get("json_data") or []
        if not isinstance(columns, list) or not isinstance(rows, list):
            raise DatasetStoreError(f"Dataset {record['id']} has malformed schema_definition or json_data")
        schema = [
            SchemaColumn(name=str(column["name"]), type=column.get("type"))
            for column in columns
            if isinstance(column, dict) and column.get("name")
        ]
        return cls(
            id=str(record["id"]),
            name=str(record.get("name") or record["id"]),
            schema=schema,
            rows=[row for row in rows if isinstance(row, dict)],
            visibility=visibility or record.get("visibility"),
            description=record.get("description"),
        )


@dataclass(frozen=True)
class DetectedDataType:
    type: str
    column_name: str
    display_name: str
    value: Any

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "columnName": self.column_name,
            "displayName": self.display_name,
            "value": self.value,
        }


@dataclass
class ActorData:
    name: str
    source_dataset: str
    role: str | None = None
    party: str | None = None
    photo_url: str | None = None
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name, "sourceDataset": self.source_dataset}
        if self.role is not None:
            out["role"] = self.role
        if self.party is not None:
            out["party"] = self.party
        if self.photo_url is not None:
            out["photoUrl"] = self.photo_url
        if self.metadata is not None:
            out["metadata"] = self.metadata
        return out


@dataclass
class GeographicDatasetMatch:
    dataset_id: str
    dataset_name: str
    matched_rows: list[dict[str, Any]] = field(default_factory=list)
    data_types: list[DetectedDataType] = field(default_factory=list)

    def add_data_type(self, data_type: DetectedDataType) -> None:
        if any(existing.column_name == data_type.column_name for existing in self.data_types):
            return
        self.data_types.append(data_type)

    def to_dict(self) -> dict[str, Any]:
        return {
            "datasetId": self.dataset_id,
            "datasetName": self.dataset_name,
            "matchedRows": list(self.matched_rows),
            "dataTypes": [data_type.to_dict() for data_type in self.data_types],
        }


@dataclass
class LocationRecord:
    """All correlated data known for one (department, municipality) pair.

    Department stubs built from municipality-only data carry counts and names
    in ``statistics``/``municipality_count``/``aggregated_from`` and keep
    ``datasets`` and ``actors`` empty.
    """

    departamento: str
    municipio: str | None = None
    datasets: list[GeographicDatasetMatch] = field(default_factory=list)
    actors: list[ActorData] = field(default_factory=list)
    statistics: dict[str, Any] = field(default_factory=dict)
    has_data: bool = True
    is_aggregated: bool = False
    municipality_count: int | None = None
    aggregated_from: list[str] | None = None

    def dataset_match(self, dataset: Dataset) -> GeographicDatasetMatch:
        for match in self.datasets:
            if match.dataset_id == dataset.id:
                return match
        match = GeographicDatasetMatch(dataset_id=dataset.id, dataset_name=dataset.name)
        self.datasets.append(match)
        return match

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "departamento": self.departamento,
            "municipio": self.municipio,
            "datasets": [match.to_dict() for match in self.datasets],
            "actors": [actor.to_dict() for actor in self.actors],
            "statistics": dict(self.statistics),
            "hasData": self.has_data,
            "isAggregated": self.is_aggregated,
        }
        if self.municipality_count is not None:
            out["municipalityCount"] = self.municipality_count
        if self.aggregated_from is not None:
            out["aggregatedFrom"] = list(self.aggregated_from)
        return out


# department key -> municipality key (or DEPARTMENT_LEVEL_KEY) -> record
GeographicDataIndex = dict[str, dict[str, LocationRecord]]


def index_to_dict(index: GeographicDataIndex) -> dict[str, dict[str, dict[str, Any]]]:
    return {
        dept_key: {muni_key: record.to_dict() for muni_key, record in municipalities.items()}
        for dept_key, municipalities in index.items()
    }


@dataclass(frozen=True)
class IndexStats:
    departments: int
    municipalities: int
    total_locations: int
    datasets_indexed: int
    cache_age_seconds: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "departments": self.departments,
            "municipalities": self.municipalities,
            "totalLocations": self.total_locations,
            "datasetsIndexed": self.datasets_indexed,
            "cacheAgeSeconds": self.cache_age_seconds,
        }


@dataclass(frozen=True)
class BoundaryLocation:
    id: str
    name: str
    type: str
    department: str | None = None
    coordinates: dict[str, float] | None = None
    geometry: dict[str, Any] | None = None
    properties: dict[str, Any] = field(default_factory=dict)

    def to_dict(self, *, include_geometry: bool = False) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id, "name": self.name, "type": self.type}
        if self.department is not None:
            out["department"] = self.department
        if self.coordinates is not None:
            out["coordinates"] = dict(self.coordinates)
        if include_geometry:
            out["geometry"] = self.geometry
            out["properties"] = dict(self.properties)
        return out


@dataclass(frozen=True)
class BoundaryDetection:
    is_boundary: bool
    confidence: float
    matches: list[BoundaryLocation] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "isBoundary": self.is_boundary,
            "confidence": self.confidence,
            "matches": [match.to_dict() for match in self.matches],
        }


@dataclass(frozen=True)
class ColumnRelationship:
    target_dataset_id: str
    target_column_name: str
    matching_strategy: str
    enabled: bool = True
    fuzzy_threshold: float | None = None
    created_at: str | None = None
    updated_by: str | None = None

    def __post_init__(self) -> None:
        if self.matching_strategy not in MATCHING_STRATEGIES:
            raise RelationshipConfigError(f"Unsupported matching strategy: {self.matching_strategy}")
        if self.fuzzy_threshold is not None and not 0.0 <= self.fuzzy_threshold <= 1.0:
            raise RelationshipConfigError(f"fuzzyThreshold must be within 0..1, got {self.fuzzy_threshold}")

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ColumnRelationship":
        def pick(*keys: str) -> Any:
            for key in keys:
                if key in payload:
                    return payload[key]
            return None

        target_dataset_id = pick("targetDatasetId", "target_dataset_id")
        target_column_name = pick("targetColumnName", "target_column_name")
        if not target_dataset_id or not target_column_name:
            raise RelationshipConfigError("Relationship requires targetDatasetId and targetColumnName")

        threshold = pick("fuzzyThreshold", "fuzzy_threshold")
        try:
            threshold = float(threshold) if threshold is not None else None
        except (TypeError, ValueError) as exc:
            raise RelationshipConfigError(f"Invalid fuzzyThreshold: {threshold!r}") from exc

        enabled = pick("enabled")
        return cls(
            target_dataset_id=str(target_dataset_id),
            target_column_name=str(target_column_name),
            matching_strategy=str(pick("matchingStrategy", "matching_strategy") or "name_normalized"),
            enabled=True if enabled is None else bool(enabled),
            fuzzy_threshold=threshold,
            created_at=pick("createdAt", "created_at"),
            updated_by=pick("updatedBy", "updated_by"),
        )


@dataclass(frozen=True)
class ResolvedRelationship:
    matched: bool
    strategy: str
    confidence: float
    source_value: Any
    target_value: Any = None
    target_row: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "matched": self.matched,
            "strategy": self.strategy,
            "confidence": self.confidence,
            "sourceValue": self.source_value,
            "targetValue": self.target_value,
        }
        if self.target_row is not None:
            out["targetRow"] = self.target_row
        return out
