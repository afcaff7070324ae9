"""
Message normalisation for Sentry grouping.

Volatile identifiers (database ids, UUIDs, compound numeric ids, ...) are
swapped for fixed placeholder tokens so that the same error raised for
different records lands in the same Sentry issue. The replaced substrings
are returned alongside so nothing is lost for debugging.
"""
import itertools
import re
from typing import Dict, Tuple

# ---------------------------------------------------------------------------
# Identifier rules
# ---------------------------------------------------------------------------

# Applied in order; each rule rewrites the whole string before the next runs,
# so later rules never see text an earlier rule already replaced.
# Each entry: (key prefix, pattern, placeholder). Key prefix and placeholder
# may reference named groups of the pattern.
ID_RULES = [
    ("convex_id",   re.compile(r"\b[a-z0-9]{32}\b", re.ASCII), "<convex_id>"),
    ("compound_id", re.compile(r"\b\d{10,}_\d{10,}\b", re.ASCII), "<compound_id>"),
    ("uuid",        re.compile(r"\b[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b",
                               re.ASCII | re.IGNORECASE), "<uuid>"),
    ("object_id",   re.compile(r"\b[0-9a-f]{24}\b", re.ASCII | re.IGNORECASE), "<object_id>"),
    ("hex_id",      re.compile(r"(?:\b0x|#)[0-9a-f]{6,}\b", re.ASCII | re.IGNORECASE), "<hex_id>"),
    ("{prefix}_id", re.compile(r"\b(?P<prefix>user|order|item|session|request|id)[_-]\d{3,}\b",
                               re.ASCII | re.IGNORECASE), "{prefix}_<id>"),
    ("numeric_id",  re.compile(r"\b\d{10,}\b", re.ASCII), "<numeric_id>"),
]


def normalize_message(message: str) -> Tuple[str, Dict[str, str]]:
    """
    Replace volatile identifiers in a log message with placeholders.

    Args:
        message: Raw message text

    Returns:
        (normalized message, extracted ids) where extracted ids maps
        generated keys such as ``uuid_3`` to the original substring.
    """
    extracted_ids: Dict[str, str] = {}
    counter = itertools.count(1)

    def _replacer(key_prefix: str, placeholder: str):
        def _replace(match: re.Match) -> str:
            groups = match.groupdict()
            key = f"{key_prefix.format(**groups)}_{next(counter)}"
            extracted_ids[key] = match.group(0)
            return placeholder.format(**groups)
        return _replace

    normalized = message
    for key_prefix, pattern, placeholder in ID_RULES:
        normalized = pattern.sub(_replacer(key_prefix, placeholder), normalized)

    return normalized, extracted_ids
