"""Wiring of the correlation components behind one object."""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Any, Callable

from geo_correlation.common.config_loader import CorrelationConfig
from geo_correlation.common.constants import (
    BOUNDARY_CACHE_TTL_SECONDS,
    DEFAULT_FUZZY_THRESHOLD,
    INDEX_CACHE_TTL_SECONDS,
    RELATIONSHIP_CACHE_TTL_SECONDS,
)
from geo_correlation.common.http import HttpClient, RetryConfig, TimeoutConfig
from geo_correlation.common.logging import get_logger
from geo_correlation.common.models import (
    BoundaryDetection,
    BoundaryLocation,
    ColumnRelationship,
    GeographicDataIndex,
    IndexStats,
    LocationRecord,
    ResolvedRelationship,
)
from geo_correlation.geo.boundaries import BoundaryResolver
from geo_correlation.geo.column_rules import build_column_rules
from geo_correlation.geo.index_builder import GeographicIndexBuilder, GeographicIndexState
from geo_correlation.geo.query import GeographicQueryService
from geo_correlation.relationships.resolver import RelationshipResolver
from geo_correlation.sources.boundaries import BoundarySource, GeoJsonBoundarySource
from geo_correlation.sources.datasets import DatasetStore, JsonDatasetStore, SupabaseDatasetStore


def build_dataset_store(store_cfg: dict, *, logger: logging.Logger | None = None) -> DatasetStore:
    if store_cfg["kind"] == "json":
        return JsonDatasetStore(Path(store_cfg["snapshot_path"]))

    api_key_env = store_cfg.get("api_key_env")
    timeout = float(store_cfg.get("timeout_seconds", 30))
    client = HttpClient(
        timeout=TimeoutConfig(connect=min(timeout, 10.0), read=timeout),
        retry=RetryConfig(max_attempts=int(store_cfg.get("max_attempts", 4))),
        rate_per_sec=float(store_cfg.get("rate_per_sec", 10)),
        logger=logger,
    )
    return SupabaseDatasetStore(
        store_cfg["base_url"],
        os.environ.get(api_key_env) if api_key_env else None,
        http_client=client,
        logger=logger,
    )


class CorrelationEngine:
    def __init__(
        self,
        dataset_store: DatasetStore,
        boundary_source: BoundarySource,
        *,
        visibility: str | None = "public",
        index_ttl_seconds: float = INDEX_CACHE_TTL_SECONDS,
        boundary_ttl_seconds: float = BOUNDARY_CACHE_TTL_SECONDS,
        relationship_cache_ttl_seconds: float = RELATIONSHIP_CACHE_TTL_SECONDS,
        default_fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD,
        column_rules: dict[str, Any] | None = None,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        logger = logger or get_logger()
        self.dataset_store = dataset_store
        self.state = GeographicIndexState(ttl_seconds=index_ttl_seconds, clock=clock)
        self.builder = GeographicIndexBuilder(
            dataset_store,
            self.state,
            visibility=None if visibility == "all" else visibility,
            rules=build_column_rules(column_rules),
            logger=logger,
        )
        self.query = GeographicQueryService(self.builder)
        self.boundaries = BoundaryResolver(
            boundary_source,
            ttl_seconds=boundary_ttl_seconds,
            clock=clock,
            logger=logger,
        )
        self.relationships = RelationshipResolver(
            dataset_store,
            cache_ttl_seconds=relationship_cache_ttl_seconds,
            default_fuzzy_threshold=default_fuzzy_threshold,
            clock=clock,
            logger=logger,
        )

    @classmethod
    def from_config(cls, config: CorrelationConfig, *, logger: logging.Logger | None = None) -> "CorrelationEngine":
        store_cfg = config.dataset_store
        return cls(
            build_dataset_store(store_cfg, logger=logger),
            GeoJsonBoundarySource(config.boundaries["departments"], config.boundaries["municipalities"]),
            visibility=store_cfg.get("visibility", "public"),
            index_ttl_seconds=float(config.index.get("ttl_seconds", INDEX_CACHE_TTL_SECONDS)),
            boundary_ttl_seconds=float(config.boundaries.get("ttl_seconds", BOUNDARY_CACHE_TTL_SECONDS)),
            relationship_cache_ttl_seconds=float(
                config.relationships.get("cache_ttl_seconds", RELATIONSHIP_CACHE_TTL_SECONDS)
            ),
            default_fuzzy_threshold=float(
                config.relationships.get("default_fuzzy_threshold", DEFAULT_FUZZY_THRESHOLD)
            ),
            column_rules=config.index.get("column_rules"),
            logger=logger,
        )

    def build_geographic_index(self) -> GeographicDataIndex:
        return self.builder.build()

    def get_geographic_data(self, department: str, municipality: str | None = None) -> LocationRecord | None:
        return self.query.get_geographic_data(department, municipality)

    def invalidate_cache(self) -> None:
        self.query.invalidate_cache()

    def get_index_stats(self) -> IndexStats:
        return self.query.get_index_stats()

    def resolve_relationship(
        self,
        source_value: Any,
        source_dataset_id: str,
        source_column: str,
        relationship: ColumnRelationship,
        target_rows: list[dict[str, Any]] | None = None,
    ) -> ResolvedRelationship:
        return self.relationships.resolve(
            source_value,
            source_dataset_id,
            source_column,
            relationship,
            target_rows=target_rows,
        )

    def detect_boundary_level(self, name: str, target_level: str | None = None) -> BoundaryDetection:
        return self.boundaries.detect_boundary_level(name, target_level)

    def search_boundaries(self, query: str, scope: str = "both") -> list[BoundaryLocation]:
        return self.boundaries.search(query, scope)
