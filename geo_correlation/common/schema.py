"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from geo_correlation.common.errors import ConfigError

DATASET_STORE_KINDS = ("supabase", "json")
DATASET_VISIBILITIES = ("public", "private", "all")


def _assert_mapping(obj, ctx: str) -> dict:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    return obj


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_positive_number(obj: dict, key: str, ctx: str) -> None:
    if key not in obj:
        return
    value = obj[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{ctx}.{key} must be a positive number")


def validate_column_rules(rules: dict) -> dict:
    _assert_mapping(rules, "index.column_rules")
    for tag, rule in rules.items():
        ctx = f"index.column_rules.{tag}"
        _assert_mapping(rule, ctx)
        _assert_required_keys(rule, {"patterns"}, ctx)
        _assert_no_unknown_keys(rule, {"patterns", "exclude", "schema_types"}, ctx, False)
        for key in ("patterns", "exclude", "schema_types"):
            values = rule.get(key, [])
            if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
                raise ConfigError(f"{ctx}.{key} must be a list of strings")
    return rules


def validate_correlation_config(cfg, *, allow_unknown: bool = False) -> dict:
    _assert_mapping(cfg, "correlation config")
    top_required = {"dataset_store", "boundaries", "index", "relationships"}
    _assert_required_keys(cfg, top_required, "correlation config")
    _assert_no_unknown_keys(cfg, top_required, "correlation config", allow_unknown)

    store = _assert_mapping(cfg["dataset_store"], "dataset_store")
    _assert_required_keys(store, {"kind"}, "dataset_store")
    _assert_no_unknown_keys(
        store,
        {
            "kind",
            "base_url",
            "api_key_env",
            "snapshot_path",
            "visibility",
            "timeout_seconds",
            "max_attempts",
            "rate_per_sec",
        },
        "dataset_store",
        allow_unknown,
    )
    if store["kind"] not in DATASET_STORE_KINDS:
        raise ConfigError(f"dataset_store.kind must be one of {', '.join(DATASET_STORE_KINDS)}")
    if store["kind"] == "supabase":
        _assert_required_keys(store, {"base_url"}, "dataset_store")
    if store["kind"] == "json":
        _assert_required_keys(store, {"snapshot_path"}, "dataset_store")
    if store.get("visibility", "public") not in DATASET_VISIBILITIES:
        raise ConfigError(f"dataset_store.visibility must be one of {', '.join(DATASET_VISIBILITIES)}")
    for key in ("timeout_seconds", "max_attempts", "rate_per_sec"):
        _assert_positive_number(store, key, "dataset_store")

    boundaries = _assert_mapping(cfg["boundaries"], "boundaries")
    _assert_required_keys(boundaries, {"departments", "municipalities"}, "boundaries")
    _assert_no_unknown_keys(
        boundaries, {"departments", "municipalities", "ttl_seconds"}, "boundaries", allow_unknown
    )
    _assert_positive_number(boundaries, "ttl_seconds", "boundaries")

    index = _assert_mapping(cfg["index"], "index")
    _assert_no_unknown_keys(index, {"ttl_seconds", "column_rules"}, "index", allow_unknown)
    _assert_positive_number(index, "ttl_seconds", "index")
    if "column_rules" in index:
        validate_column_rules(index["column_rules"])

    relationships = _assert_mapping(cfg["relationships"], "relationships")
    _assert_no_unknown_keys(
        relationships,
        {"cache_ttl_seconds", "default_fuzzy_threshold"},
        "relationships",
        allow_unknown,
    )
    _assert_positive_number(relationships, "cache_ttl_seconds", "relationships")
    threshold = relationships.get("default_fuzzy_threshold", 0.85)
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or not 0 <= threshold <= 1:
        raise ConfigError("relationships.default_fuzzy_threshold must be within 0..1")

    return cfg
