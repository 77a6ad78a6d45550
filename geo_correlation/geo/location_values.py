"""Location cell values and the extraction of department/municipality names.

A location cell is either free text (``RawLocation``) or an object produced by
a place picker (``StructuredLocation``) that may carry ``department``,
``municipality``, ``formatted_address`` and similar keys, some of them blank.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

DEPARTMENT_FIELDS = ("department", "departamento", "dept", "depto")
MUNICIPALITY_FIELDS = ("municipality", "municipio", "city", "ciudad")
FALLBACK_FIELDS = ("formatted_address", "name", "label")


@dataclass(frozen=True)
class RawLocation:
    text: str


@dataclass(frozen=True)
class StructuredLocation:
    fields: dict[str, Any]

    def first_present(self, keys: tuple[str, ...]) -> tuple[bool, Any]:
        for key in keys:
            if key in self.fields:
                return True, self.fields[key]
        return False, None


LocationValue = Union[RawLocation, StructuredLocation]


def as_location_value(value: Any) -> LocationValue | None:
    if isinstance(value, str):
        return RawLocation(value)
    if isinstance(value, dict):
        return StructuredLocation(value)
    return None


def _clean(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _fallback(location: StructuredLocation) -> str | None:
    for key in FALLBACK_FIELDS:
        candidate = location.fields.get(key)
        if not candidate or not isinstance(candidate, str):
            continue
        if key == "formatted_address":
            # Leading segment usually names the municipality.
            return candidate.split(",")[0].strip() or None
        return candidate.strip() or None
    return None


def extract_location_field(value: Any, fields: tuple[str, ...]) -> str | None:
    """Read one semantic field from a location cell.

    The first requested key present in a structured value decides the answer,
    even when it is blank. Generic descriptive keys are consulted only when
    none of the requested keys exist.
    """
    location = as_location_value(value)
    if location is None:
        return None
    if isinstance(location, RawLocation):
        return _clean(location.text)

    present, field_value = location.first_present(fields)
    if present:
        return _clean(field_value)
    return _fallback(location)


def extract_department(value: Any) -> str | None:
    return extract_location_field(value, DEPARTMENT_FIELDS)


def extract_municipality(value: Any) -> str | None:
    return extract_location_field(value, MUNICIPALITY_FIELDS)
