"""Read-only dataset store adapters.

Both adapters expose ``list_datasets`` and ``get_dataset``; nothing here caches
beyond a single call, the index builder owns caching.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol

from geo_correlation.common.errors import DatasetStoreError
from geo_correlation.common.fs import read_json
from geo_correlation.common.http import HttpClient, HttpRequestError, TimeoutConfig
from geo_correlation.common.logging import get_logger, log_event
from geo_correlation.common.models import Dataset

PRIVATE_TABLE = "private_datasets"
PUBLIC_TABLE = "public_datasets"


class DatasetStore(Protocol):
    def list_datasets(
        self,
        visibility: str | None = None,
        project_id: str | None = None,
        search: str | None = None,
    ) -> list[Dataset]: ...

    def get_dataset(self, dataset_id: str) -> Dataset | None: ...


def _wants(visibility: str | None, table_visibility: str) -> bool:
    return visibility in (None, "all", table_visibility)


def _matches_search(dataset: Dataset, search: str | None) -> bool:
    if not search:
        return True
    needle = search.lower()
    return needle in dataset.name.lower() or needle in (dataset.description or "").lower()


def _parse_record(
    record: dict[str, Any],
    visibility: str | None,
    *,
    source: str,
    logger: logging.Logger,
) -> Dataset | None:
    """Build a dataset from a store record, or log and skip a malformed one."""
    try:
        return Dataset.from_record(record, visibility=visibility)
    except DatasetStoreError as exc:
        log_event(
            logger,
            f"malformed dataset record skipped: {exc}",
            level=logging.WARNING,
            stage="list_datasets",
            source=source,
            dataset=record.get("id") if isinstance(record, dict) else None,
            event="RECORD_SKIPPED",
            status="error",
            error_code=exc.error_code,
        )
        return None


class SupabaseDatasetStore:
    """PostgREST access to the ``private_datasets`` / ``public_datasets`` tables."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        *,
        http_client: HttpClient | None = None,
        timeout: TimeoutConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.http_client = http_client or HttpClient()
        self.timeout = timeout
        self.logger = logger or get_logger("sources.datasets")

    def close(self) -> None:
        self.http_client.close()

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        return {"apikey": self.api_key, "Authorization": f"Bearer {self.api_key}"}

    def _select(self, table: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        url = f"{self.base_url}/rest/v1/{table}"
        try:
            payload = self.http_client.get_json(
                url,
                params={"select": "*", **params},
                headers=self._headers(),
                timeout=self.timeout,
            )
        except HttpRequestError as exc:
            raise DatasetStoreError(f"Query on {table} failed: {exc}") from exc
        if not isinstance(payload, list):
            raise DatasetStoreError(f"Unexpected payload from {table}: expected a list of rows")
        return [record for record in payload if isinstance(record, dict)]

    def list_datasets(
        self,
        visibility: str | None = None,
        project_id: str | None = None,
        search: str | None = None,
    ) -> list[Dataset]:
        tables: list[tuple[str, str]] = []
        if _wants(visibility, "private"):
            tables.append((PRIVATE_TABLE, "private"))
        if _wants(visibility, "public"):
            tables.append((PUBLIC_TABLE, "public"))

        datasets: list[Dataset] = []
        failures: list[str] = []
        for table, table_visibility in tables:
            params: dict[str, Any] = {"order": "created_at.desc"}
            if project_id and table_visibility == "private":
                params["project_id"] = f"eq.{project_id}"
            try:
                records = self._select(table, params)
            except DatasetStoreError as exc:
                failures.append(table)
                log_event(
                    self.logger,
                    f"dataset listing failed for {table}",
                    level=logging.WARNING,
                    stage="list_datasets",
                    source=table,
                    event="SOURCE_FAIL",
                    status="error",
                    error_code=exc.error_code,
                )
                continue
            for record in records:
                dataset = _parse_record(record, table_visibility, source=table, logger=self.logger)
                if dataset is not None:
                    datasets.append(dataset)

        if tables and len(failures) >= len(tables):
            raise DatasetStoreError(f"All dataset tables failed: {', '.join(failures)}")

        return [dataset for dataset in datasets if _matches_search(dataset, search)]

    def get_dataset(self, dataset_id: str) -> Dataset | None:
        for table, table_visibility in ((PRIVATE_TABLE, "private"), (PUBLIC_TABLE, "public")):
            records = self._select(table, {"id": f"eq.{dataset_id}", "limit": 1})
            if records:
                return Dataset.from_record(records[0], visibility=table_visibility)
        return None


class JsonDatasetStore:
    """Dataset snapshot stored as JSON: ``{"datasets": [record, ...]}`` or a bare list."""

    def __init__(self, path: Path, *, logger: logging.Logger | None = None) -> None:
        self.path = path
        self.logger = logger or get_logger("sources.datasets")

    def _records(self) -> list[dict[str, Any]]:
        try:
            payload = read_json(self.path)
        except (OSError, ValueError) as exc:
            raise DatasetStoreError(f"Cannot read dataset snapshot {self.path}: {exc}") from exc
        if isinstance(payload, dict):
            payload = payload.get("datasets", [])
        if not isinstance(payload, list):
            raise DatasetStoreError(f"Dataset snapshot {self.path} must hold a list of datasets")
        return [record for record in payload if isinstance(record, dict)]

    def list_datasets(
        self,
        visibility: str | None = None,
        project_id: str | None = None,
        search: str | None = None,
    ) -> list[Dataset]:
        out: list[Dataset] = []
        for record in self._records():
            record_visibility = record.get("visibility", "public")
            if not _wants(visibility, record_visibility):
                continue
            if project_id and record.get("project_id") != project_id:
                continue
            dataset = _parse_record(record, record_visibility, source=str(self.path), logger=self.logger)
            if dataset is not None and _matches_search(dataset, search):
                out.append(dataset)
        return out

    def get_dataset(self, dataset_id: str) -> Dataset | None:
        for record in self._records():
            if str(record.get("id")) == dataset_id:
                return Dataset.from_record(record)
        return None
