"""Detection of queries that name a clause, table or annex directly."""

from __future__ import annotations

_ASCII_DIGITS = frozenset("0123456789")
_ASCII_LETTERS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ")
_ASCII_LOWER = str.maketrans(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz"
)


def _all_in(value: str, allowed: frozenset) -> bool:
    return all(character in allowed for character in value)


def is_exact_intent_query(query_text: str) -> bool:
    """Return True when the query is a reference such as '9.4.2', 'Table 3' or 'Annex D'."""
    trimmed = query_text.strip()
    if not trimmed:
        return False

    lowered = trimmed.translate(_ASCII_LOWER)
    tokens = lowered.split()

    if lowered.startswith("table "):
        return len(tokens) > 1 and _all_in(tokens[1], _ASCII_DIGITS)

    if lowered.startswith("annex "):
        return len(tokens) > 1 and _all_in(tokens[1], _ASCII_LETTERS)

    first_token = tokens[0] if tokens else ""
    return looks_like_clause_reference(first_token)


def looks_like_clause_reference(value: str) -> bool:
    """Return True for dotted numeric references with at least two parts."""
    parts = value.split(".")
    if len(parts) < 2:
        return False
    return all(part and _all_in(part, _ASCII_DIGITS) for part in parts)