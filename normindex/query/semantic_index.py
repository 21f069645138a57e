"""Availability checks and lexical signals for semantic retrieval."""

from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass

_ASCII_LOWER = str.maketrans(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz"
)
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]+")

_SIGNAL_STOPWORDS = frozenset(
    {
        "a", "an", "and", "around", "concept", "concerning", "for", "guidance",
        "in", "of", "on", "related", "requirement", "requirements", "the", "to",
        "with",
    }
)

_NOISE_PREFIXES = (
    "concept guidance for ",
    "requirements concerning ",
    "requirements regarding ",
    "requirements for ",
    "guidance for ",
)


@dataclass(frozen=True)
class SemanticIndexStatus:
    """Whether a semantic index can be used, and why not if it cannot."""

    available: bool
    reason: str | None = None


def _ascii_lower(value: str) -> str:
    return value.translate(_ASCII_LOWER)


def semantic_index_status(connection: sqlite3.Connection, model_id: str) -> SemanticIndexStatus:
    """Check that embeddings exist for the given model."""
    table = connection.execute(
        "SELECT name FROM sqlite_master "
        "WHERE type = 'table' AND name = 'chunk_embeddings' LIMIT 1"
    ).fetchone()
    if table is None:
        return SemanticIndexStatus(
            available=False,
            reason="chunk_embeddings table is missing; run ingest on schema 0.4.0+",
        )

    model = connection.execute(
        "SELECT 1 FROM embedding_models WHERE model_id = ?1 LIMIT 1", (model_id,)
    ).fetchone()
    if model is None:
        return SemanticIndexStatus(
            available=False,
            reason=f"embedding model '{model_id}' is not registered",
        )

    (embedding_count,) = connection.execute(
        "SELECT COUNT(*) FROM chunk_embeddings WHERE model_id = ?1", (model_id,)
    ).fetchone()
    if embedding_count <= 0:
        return SemanticIndexStatus(
            available=False,
            reason=f"semantic index is empty for model '{model_id}'",
        )

    return SemanticIndexStatus(available=True)


def query_signal_tokens(query_text: str) -> list[str]:
    """Sorted unique tokens of at least three characters, minus stopwords."""
    return sorted(
        {
            token
            for token in _NON_ALNUM.split(_ascii_lower(query_text))
            if len(token) >= 3 and token not in _SIGNAL_STOPWORDS
        }
    )


def lexical_signal_bonus(query_tokens: list[str], reference: str, heading: str, text: str) -> float:
    """Fraction of query tokens found as substrings of the reference, heading or text."""
    if not query_tokens:
        return 0.0
    haystack = " ".join(_ascii_lower(value) for value in (reference, heading, text))
    overlap = sum(1 for token in query_tokens if token in haystack)
    return overlap / len(query_tokens)


def semantic_embedding_query_text(query_text: str) -> str:
    """Normalise whitespace and strip a leading boilerplate phrase from the query."""
    normalized = " ".join(query_text.split())
    if not normalized:
        return normalized

    lowered = _ascii_lower(normalized)
    for prefix in _NOISE_PREFIXES:
        if lowered.startswith(prefix):
            stripped = normalized[len(prefix):].strip()
            if stripped:
                return stripped
    return normalized