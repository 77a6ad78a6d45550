"""Config-driven column classification.

Column names are matched against a pattern table after normalisation; each
rule maps onto one semantic tag. New heuristics are added as data, either in
``DEFAULT_COLUMN_RULES`` or through ``index.column_rules`` in the config.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from geo_correlation.common.errors import ConfigError
from geo_correlation.common.models import SchemaColumn
from geo_correlation.common.text import normalize_key

DEPARTMENT = "department"
MUNICIPALITY = "municipality"
ACTOR = "actor"
LOCATION = "location"
RULE_TAGS = (DEPARTMENT, MUNICIPALITY, ACTOR, LOCATION)


@dataclass(frozen=True)
class ColumnRule:
    tag: str
    patterns: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    schema_types: tuple[str, ...] = ()

    def matches_name(self, column_name: str) -> bool:
        name = normalize_key(column_name)
        if any(pattern in name for pattern in self.exclude):
            return False
        return any(pattern in name for pattern in self.patterns)

    def matches(self, column_name: str, schema_type: str | None = None) -> bool:
        if schema_type is not None and schema_type in self.schema_types:
            return not any(pattern in normalize_key(column_name) for pattern in self.exclude)
        return self.matches_name(column_name)


DEFAULT_COLUMN_RULES: dict[str, ColumnRule] = {
    DEPARTMENT: ColumnRule(DEPARTMENT, patterns=("departamento", "department", "depto", "dept")),
    MUNICIPALITY: ColumnRule(MUNICIPALITY, patterns=("municipio", "municipality", "muni", "ciudad", "city")),
    ACTOR: ColumnRule(
        ACTOR,
        patterns=(
            "alcalde",
            "mayor",
            "gobernador",
            "governor",
            "nombre",
            "name",
            "actor",
            "persona",
            "person",
            "presidente",
            "director",
            "jefe",
            "responsable",
        ),
        exclude=("partido", "party"),
        schema_types=("actor", "entity"),
    ),
    LOCATION: ColumnRule(LOCATION, schema_types=("location",)),
}


def build_column_rules(overrides: dict[str, Any] | None = None) -> dict[str, ColumnRule]:
    rules = dict(DEFAULT_COLUMN_RULES)
    for tag, override in (overrides or {}).items():
        if tag not in RULE_TAGS:
            raise ConfigError(f"Unknown column rule tag: {tag}")
        base = rules[tag]
        rules[tag] = ColumnRule(
            tag,
            patterns=tuple(normalize_key(p) for p in override.get("patterns", base.patterns)),
            exclude=tuple(normalize_key(p) for p in override.get("exclude", base.exclude)),
            schema_types=tuple(override.get("schema_types", base.schema_types)),
        )
    return rules


@dataclass
class ColumnClassification:
    department_column: str | None = None
    municipality_column: str | None = None
    location_columns: list[str] = field(default_factory=list)
    actor_columns: list[str] = field(default_factory=list)

    @property
    def has_geographic_data(self) -> bool:
        return bool(self.department_column or self.municipality_column or self.location_columns)

    def is_geographic(self, column_name: str) -> bool:
        return column_name in (self.department_column, self.municipality_column)


def classify_schema(schema: list[SchemaColumn], rules: dict[str, ColumnRule]) -> ColumnClassification:
    result = ColumnClassification()
    for column in schema:
        if rules[LOCATION].matches(column.name, column.type):
            result.location_columns.append(column.name)
            continue
        # Later columns win when several names match.
        if rules[DEPARTMENT].matches(column.name, column.type):
            result.department_column = column.name
        if rules[MUNICIPALITY].matches(column.name, column.type):
            result.municipality_column = column.name
        if rules[ACTOR].matches(column.name, column.type):
            result.actor_columns.append(column.name)
    return result


def detect_column_type(
    column_name: str,
    value: Any,
    schema_type: str | None,
    rules: dict[str, ColumnRule],
) -> str:
    if schema_type in ("actor", "entity"):
        return "actor"
    if schema_type == "location":
        return "location"
    if schema_type == "money":
        return "money"
    if schema_type == "number":
        return "numeric"

    if rules[ACTOR].matches_name(column_name):
        return "actor"

    if isinstance(value, bool):
        return "text"
    if isinstance(value, (int, float)):
        return "numeric"
    if isinstance(value, dict):
        if "name" in value or "label" in value:
            return "actor"
        if "lat" in value or "lng" in value:
            return "location"
        if "amount" in value or "currency" in value:
            return "money"
    return "text"
