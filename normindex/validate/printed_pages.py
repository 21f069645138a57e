"""Printed page label checks and WP2 gate outcomes."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass

from normindex.validate.types import PageProvenanceEntry, Wp2GateStage

_ASCII_DIGITS = frozenset("0123456789")
_ROMAN_CHARACTERS = frozenset("ivxlcdmIVXLCDM")
_I64_MAX = 2**63 - 1

_CHUNK_PAGES_SQL = """
SELECT
  doc_id,
  page_pdf_start,
  page_pdf_end,
  page_printed_start,
  page_printed_end
FROM chunks
"""


def wp2_result(stage: Wp2GateStage | str, hard_fail: bool, stage_b_fail: bool) -> str:
    """'failed' on a hard failure or a stage-B failure under stage B, else 'pass'."""
    if hard_fail:
        return "failed"
    if Wp2GateStage(stage) is Wp2GateStage.B and stage_b_fail:
        return "failed"
    return "pass"


@dataclass
class PrintedPageMetrics:
    """How well chunks are mapped to printed page labels."""

    total_pages: int = 0
    pages_with_explicit_status: int = 0
    detectable_pages: int = 0
    total_chunks: int = 0
    mapped_chunks: int = 0
    detectable_chunks: int = 0
    mapped_detectable_chunks: int = 0
    invalid_label_count: int = 0
    invalid_range_count: int = 0


def _has_text(value: str | None) -> bool:
    return value is not None and bool(value.strip())


def compute_printed_page_metrics(
    connection: sqlite3.Connection, page_provenance: list[PageProvenanceEntry]
) -> PrintedPageMetrics:
    """Count mapped, detectable and malformed printed page labels over all chunks."""
    detectable_lookup = {
        (entry.doc_id, entry.page_pdf)
        for entry in page_provenance
        if entry.printed_page_status == "detected"
    }
    metrics = PrintedPageMetrics(
        total_pages=len(page_provenance),
        pages_with_explicit_status=sum(
            1 for entry in page_provenance if entry.printed_page_status.strip()
        ),
        detectable_pages=sum(
            1 for entry in page_provenance if entry.printed_page_status == "detected"
        ),
    )

    for doc_id, page_start, page_end, printed_start, printed_end in connection.execute(
        _CHUNK_PAGES_SQL
    ):
        metrics.total_chunks += 1

        mapped = _has_text(printed_start) or _has_text(printed_end)
        if mapped:
            metrics.mapped_chunks += 1

        for label in (printed_start, printed_end):
            if _has_text(label) and not is_valid_printed_label(label):
                metrics.invalid_label_count += 1

        if printed_start is not None and printed_end is not None:
            start_num = parse_numeric_printed_label(printed_start)
            end_num = parse_numeric_printed_label(printed_end)
            if start_num is not None and end_num is not None and start_num > end_num:
                metrics.invalid_range_count += 1

        if page_start is not None and page_end is not None:
            chunk_detectable = page_start <= page_end and any(
                (doc_id, page) in detectable_lookup for page in range(page_start, page_end + 1)
            )
        elif page_start is not None or page_end is not None:
            single = page_start if page_start is not None else page_end
            chunk_detectable = (doc_id, single) in detectable_lookup
        else:
            chunk_detectable = False

        if chunk_detectable:
            metrics.detectable_chunks += 1
            if mapped:
                metrics.mapped_detectable_chunks += 1

    return metrics


def is_valid_printed_label(label: str) -> bool:
    """True for a non-empty label of ASCII digits only or Roman numeral letters only."""
    value = label.strip()
    if not value:
        return False
    if all(character in _ASCII_DIGITS for character in value):
        return True
    return all(character in _ROMAN_CHARACTERS for character in value)


def parse_numeric_printed_label(label: str) -> int | None:
    """The integer value of an all-digit label, or None for anything else."""
    value = label.strip()
    if not value or not all(character in _ASCII_DIGITS for character in value):
        return None
    number = int(value)
    return number if number <= _I64_MAX else None