"""Advisory duplicate detection for moderators. Never merges anything."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable

from quorum.schemas.annotation import SuggestionRecord

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_label(label: str | None) -> str:
    """NFKC fold, casefold and collapse whitespace."""
    folded = unicodedata.normalize("NFKC", str(label or "")).casefold()
    return _WHITESPACE_RE.sub(" ", folded).strip()


def find_duplicates(suggestions: Iterable[SuggestionRecord]) -> list[list[str]]:
    """Groups of two or more suggestion ids sharing a normalized label."""
    groups: dict[str, list[str]] = {}
    for suggestion in suggestions:
        key = normalize_label(suggestion.label)
        if key:
            groups.setdefault(key, []).append(suggestion.id)
    return [ids for ids in groups.values() if len(ids) > 1]
