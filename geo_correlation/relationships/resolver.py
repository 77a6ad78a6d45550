"""Resolve a cell value against the rows of a related dataset.

Strategies:

``id``
    numeric equality against the target cell, confidence 1.0.
``name_exact``
    raw string equality against any value listed in the target cell, 1.0.
``name_normalized``
    equality after ``normalize_key`` (0.95), then containment either way (0.85).
``fuzzy``
    best Levenshtein similarity over every listed target value, accepted at or
    above the threshold; confidence is the similarity.

``id``, ``name_exact`` and ``name_normalized`` return the first row that
satisfies them; ``fuzzy`` returns the single best-scoring row.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Callable, Iterable

from geo_correlation.common.constants import DEFAULT_FUZZY_THRESHOLD, RELATIONSHIP_CACHE_TTL_SECONDS
from geo_correlation.common.errors import CollaboratorError
from geo_correlation.common.logging import get_logger, log_event
from geo_correlation.common.models import ColumnRelationship, ResolvedRelationship
from geo_correlation.common.text import normalize_key, parse_list_values, similarity
from geo_correlation.sources.datasets import DatasetStore

NORMALIZED_EXACT_CONFIDENCE = 0.95
NORMALIZED_PARTIAL_CONFIDENCE = 0.85

Rows = list[dict[str, Any]]


def to_number(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if not math.isnan(number) else None


def no_match(relationship: ColumnRelationship, source_value: Any) -> ResolvedRelationship:
    return ResolvedRelationship(
        matched=False,
        strategy=relationship.matching_strategy,
        confidence=0.0,
        source_value=source_value,
        target_value=None,
    )


def _hit(strategy: str, confidence: float, source_value: Any, row: dict[str, Any], column: str) -> ResolvedRelationship:
    return ResolvedRelationship(
        matched=True,
        strategy=strategy,
        confidence=confidence,
        source_value=source_value,
        target_value=row.get(column),
        target_row=row,
    )


def _match_id(value: str, column: str, rows: Rows) -> ResolvedRelationship | None:
    wanted = to_number(value)
    if wanted is None:
        return None
    for row in rows:
        if to_number(row.get(column)) == wanted:
            return _hit("id", 1.0, value, row, column)
    return None


def _match_exact(value: str, column: str, rows: Rows) -> ResolvedRelationship | None:
    for row in rows:
        if value in parse_list_values(row.get(column)):
            return _hit("name_exact", 1.0, value, row, column)
    return None


def _match_normalized(value: str, column: str, rows: Rows) -> ResolvedRelationship | None:
    wanted = normalize_key(value)
    for row in rows:
        if any(normalize_key(candidate) == wanted for candidate in parse_list_values(row.get(column))):
            return _hit("name_normalized", NORMALIZED_EXACT_CONFIDENCE, value, row, column)

    # Partial names, e.g. "Maldonado Molina" inside "Ervin Adim Maldonado Molina".
    for row in rows:
        for candidate in parse_list_values(row.get(column)):
            normalized = normalize_key(candidate)
            if wanted in normalized or normalized in wanted:
                return _hit("name_normalized", NORMALIZED_PARTIAL_CONFIDENCE, value, row, column)
    return None


def _match_fuzzy(value: str, column: str, rows: Rows, threshold: float) -> ResolvedRelationship | None:
    wanted = normalize_key(value)
    best_row: dict[str, Any] | None = None
    best_score = 0.0
    for row in rows:
        for candidate in parse_list_values(row.get(column)):
            score = similarity(wanted, normalize_key(candidate))
            if score > best_score and score >= threshold:
                best_score = score
                best_row = row
    if best_row is None:
        return None
    return _hit("fuzzy", best_score, value, best_row, column)


def resolve_single_value(
    value: str,
    relationship: ColumnRelationship,
    rows: Rows,
    *,
    default_fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD,
) -> ResolvedRelationship:
    column = relationship.target_column_name
    strategy = relationship.matching_strategy

    if strategy == "id":
        result = _match_id(value, column, rows)
    elif strategy == "name_exact":
        result = _match_exact(value, column, rows)
    elif strategy == "name_normalized":
        result = _match_normalized(value, column, rows)
    else:
        threshold = relationship.fuzzy_threshold
        if threshold is None:
            threshold = default_fuzzy_threshold
        result = _match_fuzzy(value, column, rows, threshold)

    return result or no_match(relationship, value)


def combine_results(
    source_value: Any,
    relationship: ColumnRelationship,
    results: list[ResolvedRelationship],
) -> ResolvedRelationship:
    if not results:
        return no_match(relationship, source_value)
    if len(results) == 1:
        return results[0]
    return ResolvedRelationship(
        matched=any(result.matched for result in results),
        strategy=relationship.matching_strategy,
        confidence=max(result.confidence for result in results),
        source_value=source_value,
        target_value=[result.target_value for result in results if result.matched],
    )


def cache_key(source_dataset_id: str, source_column: str, relationship: ColumnRelationship) -> str:
    parts = [
        source_dataset_id,
        source_column,
        relationship.target_dataset_id,
        relationship.target_column_name,
        relationship.matching_strategy,
    ]
    # An unset threshold means the resolver default, which is fixed per resolver.
    if relationship.fuzzy_threshold is not None:
        parts.append(f"{relationship.fuzzy_threshold:g}")
    return ":".join(parts)


class RelationshipResolver:
    def __init__(
        self,
        dataset_store: DatasetStore | None = None,
        *,
        cache_ttl_seconds: float = RELATIONSHIP_CACHE_TTL_SECONDS,
        default_fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        self.dataset_store = dataset_store
        self.cache_ttl_seconds = cache_ttl_seconds
        self.default_fuzzy_threshold = default_fuzzy_threshold
        self.clock = clock
        self.logger = logger or get_logger("relationships")
        self._cache: dict[str, dict[str, tuple[float, ResolvedRelationship]]] = {}

    def load_target_rows(self, relationship: ColumnRelationship) -> Rows | None:
        """Rows of the target dataset, or ``None`` when they cannot be loaded."""
        if self.dataset_store is None:
            return None
        try:
            dataset = self.dataset_store.get_dataset(relationship.target_dataset_id)
        except CollaboratorError as exc:
            log_event(
                self.logger,
                f"failed to load target dataset {relationship.target_dataset_id}",
                level=logging.WARNING,
                stage="relationships",
                dataset=relationship.target_dataset_id,
                event="TARGET_LOAD_FAIL",
                status="error",
                error_code=exc.error_code,
            )
            return None
        if dataset is None:
            log_event(
                self.logger,
                f"target dataset {relationship.target_dataset_id} not found",
                level=logging.WARNING,
                stage="relationships",
                dataset=relationship.target_dataset_id,
                event="TARGET_MISSING",
                status="warning",
            )
            return None
        return dataset.rows

    def _cached(self, key: str, value_key: str) -> ResolvedRelationship | None:
        entry = self._cache.get(key, {}).get(value_key)
        if entry is None:
            return None
        stored_at, result = entry
        if self.clock() - stored_at > self.cache_ttl_seconds:
            del self._cache[key][value_key]
            return None
        return result

    def _store(self, key: str, value_key: str, result: ResolvedRelationship) -> None:
        self._cache.setdefault(key, {})[value_key] = (self.clock(), result)

    def _resolve_rows(self, source_value: Any, relationship: ColumnRelationship, rows: Rows) -> ResolvedRelationship:
        results = [
            resolve_single_value(
                value,
                relationship,
                rows,
                default_fuzzy_threshold=self.default_fuzzy_threshold,
            )
            for value in parse_list_values(source_value)
        ]
        return combine_results(source_value, relationship, results)

    def resolve(
        self,
        source_value: Any,
        source_dataset_id: str,
        source_column: str,
        relationship: ColumnRelationship,
        target_rows: Rows | None = None,
    ) -> ResolvedRelationship:
        """Resolve ``source_value`` against the relationship's target column.

        Missing values, unloadable or missing target datasets and values with
        no counterpart all come back as an unmatched result. Results computed
        from store-loaded rows are cached per relationship until the TTL runs
        out; rows passed in by the caller bypass the cache.
        """
        if source_value is None:
            return no_match(relationship, None)

        if target_rows is not None:
            return self._resolve_rows(source_value, relationship, target_rows)

        key = cache_key(source_dataset_id, source_column, relationship)
        value_key = str(source_value)
        cached = self._cached(key, value_key)
        if cached is not None:
            return cached

        rows = self.load_target_rows(relationship)
        if rows is None:
            return no_match(relationship, source_value)

        result = self._resolve_rows(source_value, relationship, rows)
        self._store(key, value_key, result)
        return result

    def resolve_for_dataset(
        self,
        source_dataset_id: str,
        source_rows: Rows,
        column_relationships: Iterable[tuple[str, ColumnRelationship]],
    ) -> dict[str, dict[str, ResolvedRelationship]]:
        """Resolve every row of a source dataset, loading each target dataset once."""
        pairs = [(column, relationship) for column, relationship in column_relationships if relationship.enabled]

        target_rows: dict[str, Rows] = {}
        for _column, relationship in pairs:
            if relationship.target_dataset_id in target_rows:
                continue
            rows = self.load_target_rows(relationship)
            if rows is not None:
                target_rows[relationship.target_dataset_id] = rows

        results: dict[str, dict[str, ResolvedRelationship]] = {}
        for column, relationship in pairs:
            rows = target_rows.get(relationship.target_dataset_id)
            if rows is None:
                continue
            column_results: dict[str, ResolvedRelationship] = {}
            for row in source_rows:
                source_value = row.get(column)
                column_results[str(source_value)] = self.resolve(
                    source_value,
                    source_dataset_id,
                    column,
                    relationship,
                    target_rows=rows,
                )
            results[column] = column_results

        log_event(
            self.logger,
            f"resolved relationships for dataset {source_dataset_id}",
            stage="relationships",
            dataset=source_dataset_id,
            event="BULK_RESOLVE",
            status="ok",
            rows_in=len(source_rows),
            rows_out=sum(len(values) for values in results.values()),
        )
        return results

    def clear_cache(self, source_dataset_id: str, source_column: str, relationship: ColumnRelationship) -> None:
        self._cache.pop(cache_key(source_dataset_id, source_column, relationship), None)

    def clear_all(self) -> None:
        self._cache.clear()
