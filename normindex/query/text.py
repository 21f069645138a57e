"""Small text helpers shared by the query pipeline."""

from __future__ import annotations


def to_fts_query(query_text: str) -> str:
    """Turn free text into an FTS5 query of quoted whitespace-separated tokens."""
    return " ".join(f'"{token.replace(chr(34), "")}"' for token in query_text.split())


def condense_whitespace(text: str) -> str:
    """Collapse every run of whitespace into a single space and trim the ends."""
    return " ".join(text.split())