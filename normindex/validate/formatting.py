"""Formatting helpers for validation reports."""

from __future__ import annotations


def format_page_range(start: int | None, end: int | None) -> str:
    """Render a PDF page range, collapsing equal ends and reporting 'unknown'."""
    if start is not None and end is not None:
        return str(start) if start == end else f"{start}-{end}"
    if start is not None:
        return str(start)
    if end is not None:
        return str(end)
    return "unknown"