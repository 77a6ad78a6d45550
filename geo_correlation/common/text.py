"""String normalisation, list parsing and edit-distance similarity."""

from __future__ import annotations

import math
import re
import unicodedata
from typing import Any

from rapidfuzz.distance import Levenshtein

_COMBINING_MARKS_RE = re.compile("[\u0300-\u036f]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_key(value: str) -> str:
    """Lowercase, strip diacritics and collapse whitespace.

    ``normalize_key("JOSÉ  García") == "jose garcia"``. Applying it twice gives
    the same result as applying it once.
    """
    decomposed = unicodedata.normalize("NFD", value.lower())
    stripped = _COMBINING_MARKS_RE.sub("", decomposed).strip()
    return _WHITESPACE_RE.sub(" ", stripped)


def stringify(value: Any) -> str:
    """Render a scalar the way the dataset store serialises it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    return str(value)


def _split_clean(value: str, separator: str) -> list[str]:
    return [part.strip() for part in value.split(separator) if part.strip()]


def parse_list_values(value: Any) -> list[str]:
    """Expand a cell into its individual values.

    Semicolons take priority over commas: ``"A; B, C"`` gives ``["A", "B, C"]``.
    """
    if value is None:
        return []

    if isinstance(value, (list, tuple)):
        return [stringify(item).strip() for item in value if stringify(item).strip()]

    if isinstance(value, str):
        if ";" in value:
            return _split_clean(value, ";")
        if "," in value:
            return _split_clean(value, ",")
        trimmed = value.strip()
        return [trimmed] if trimmed else []

    return [stringify(value)]


def levenshtein_distance(a: str, b: str) -> int:
    return Levenshtein.distance(a, b)


def similarity(a: str, b: str) -> float:
    """``1 - distance / max(len(a), len(b))``; two empty strings are identical."""
    return Levenshtein.normalized_similarity(a, b)
