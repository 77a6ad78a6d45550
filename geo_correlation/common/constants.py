"""Application constants."""

USER_AGENT = "geo-correlation/0.3 (+datasets; contact: configured-email)"

DEPARTMENT_LEVEL_KEY = "_department_level"
DEPARTMENT_PATTERN_MARKERS = ("(departamento)", "(department)")

INDEX_CACHE_TTL_SECONDS = 5 * 60
BOUNDARY_CACHE_TTL_SECONDS = 10 * 60
RELATIONSHIP_CACHE_TTL_SECONDS = 5 * 60
DEFAULT_FUZZY_THRESHOLD = 0.85

MATCHING_STRATEGIES = ("id", "name_exact", "name_normalized", "fuzzy")
BOUNDARY_LEVELS = ("level1", "level2")
BOUNDARY_SCOPES = ("departamento", "municipio", "both")

EXIT_SUCCESS = 0
EXIT_NO_MATCH = 10
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "dataset",
    "source",
    "event",
    "status",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
