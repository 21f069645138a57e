"""Table parsing quality heuristics, body-line extraction and table rendering."""

from __future__ import annotations

import re
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

_ASCII_LOWER = str.maketrans(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz"
)
_ASCII_LETTERS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ")


@dataclass
class TableQualityCounters:
    """Row-level quality counters of one parsed table."""

    sparse_rows_count: int = 0
    overloaded_rows_count: int = 0
    rows_with_markers_count: int = 0
    rows_with_descriptions_count: int = 0
    marker_expected_count: int = 0
    marker_observed_count: int = 0


def has_row_description(row: Sequence[str]) -> bool:
    """True when the second cell holds text with at least one ASCII letter."""
    if len(row) < 2:
        return False
    description = row[1].strip()
    return bool(description) and any(character in _ASCII_LETTERS for character in description)


def _suffix_index(suffix: str) -> int:
    return max(0, (ord(suffix) & 0xFF) - ord("a"))


def estimate_expected_marker_count(observed_markers: Iterable[tuple[int, str | None]]) -> int:
    """Estimate how many markers a table should have, filling gaps in letter suffixes."""
    grouped: dict[int, list[str | None]] = defaultdict(list)
    for number, suffix in observed_markers:
        grouped[number].append(suffix)

    expected = 0
    for suffixes in grouped.values():
        with_suffix = [suffix for suffix in suffixes if suffix is not None]
        if not with_suffix:
            expected += max(len(suffixes), 1)
            continue
        indices = [_suffix_index(suffix) for suffix in with_suffix]
        expected += max(max(indices) - min(indices) + 1, len(with_suffix))
    return expected


def ratio_usize(numerator: int, denominator: int) -> float | None:
    """numerator / denominator, or None when the denominator is zero."""
    if denominator == 0:
        return None
    return numerator / denominator


def prefer_reconstructed_rows(
    original_rows_count: int,
    original_quality: TableQualityCounters,
    reconstructed_rows_count: int,
    reconstructed_quality: TableQualityCounters,
) -> bool:
    """Decide whether marker-reconstructed rows are better than the original ones."""
    if reconstructed_rows_count < 2:
        return False
    if reconstructed_quality.rows_with_markers_count == 0:
        return False

    original_sparse_ratio = (
        1.0
        if original_rows_count == 0
        else original_quality.sparse_rows_count / original_rows_count
    )
    reconstructed_sparse_ratio = reconstructed_quality.sparse_rows_count / reconstructed_rows_count

    original_coverage = ratio_usize(
        original_quality.rows_with_descriptions_count, original_quality.rows_with_markers_count
    )
    reconstructed_coverage = ratio_usize(
        reconstructed_quality.rows_with_descriptions_count,
        reconstructed_quality.rows_with_markers_count,
    )
    original_coverage = original_coverage if original_coverage is not None else 0.0
    reconstructed_coverage = reconstructed_coverage if reconstructed_coverage is not None else 0.0

    return (
        reconstructed_sparse_ratio + 0.05 < original_sparse_ratio
        or reconstructed_coverage > original_coverage + 0.10
        or (
            reconstructed_quality.sparse_rows_count < original_quality.sparse_rows_count
            and reconstructed_quality.rows_with_descriptions_count
            >= original_quality.rows_with_descriptions_count
        )
    )


def _lines(text: str) -> list[str]:
    if not text:
        return []
    parts = text.split("\n")
    if text.endswith("\n"):
        parts.pop()
    return [part.removesuffix("\r") for part in parts]


def _without_heading(text: str, heading: str) -> list[str]:
    lines = _lines(text)
    if lines and lines[0].strip() == heading.strip():
        del lines[0]
    return lines


def extract_body_lines(text: str, heading: str) -> list[str]:
    """Trimmed non-empty lines of the text, without a leading heading line."""
    return [line.strip() for line in _without_heading(text, heading) if line.strip()]


def extract_body_lines_preserve_blanks(text: str, heading: str) -> list[str]:
    """Lines of the text as they are, without a leading heading line."""
    return _without_heading(text, heading)


def line_is_noise(line: str) -> bool:
    """True for a line that carries a licence or store watermark."""
    return contains_iso_watermark_noise(line)


def contains_iso_watermark_noise(text: str) -> bool:
    """True if the text holds a store download banner, licence notice or licence banner."""
    lower = text.translate(_ASCII_LOWER)
    has_store_download = "iso store order" in lower and "downloaded:" in lower
    has_single_user_notice = (
        "single user licence only" in lower or "single user license only" in lower
    ) and "networking prohibited" in lower
    has_license_banner = (
        "licensed to" in lower and "license #" in lower and "downloaded:" in lower
    )
    return has_store_download or has_single_user_notice or has_license_banner


def _non_empty_trimmed(segments: Iterable[str | None]) -> list[str]:
    return [segment.strip() for segment in segments if segment is not None and segment.strip()]


def split_table_cells(line: str, cell_split_regex: re.Pattern[str]) -> list[str]:
    """Split a table line into cells by the regex, falling back to '|' separators."""
    cells = _non_empty_trimmed(cell_split_regex.split(line))
    if len(cells) <= 1 and "|" in line:
        cells = _non_empty_trimmed(line.split("|"))
    return cells or [line.strip()]


def table_to_markdown(rows: Sequence[Sequence[str]]) -> str:
    """Render rows as a Markdown table whose first row is the header."""
    col_count = max((len(row) for row in rows), default=1)
    col_count = max(col_count, 1)
    padded = [list(row) + [""] * (col_count - len(row)) for row in rows]
    if not padded:
        padded.append([""] * col_count)

    lines = [f"| {' | '.join(padded[0])} |", f"| {' | '.join(['---'] * col_count)} |"]
    lines.extend(f"| {' | '.join(row)} |" for row in padded[1:])
    return "\n".join(lines)


def table_to_csv(rows: Sequence[Sequence[str]]) -> str:
    """Render rows as CSV lines joined by newlines."""
    return "\n".join(",".join(escape_csv_cell(cell) for cell in row) for row in rows)


def escape_csv_cell(value: str) -> str:
    """Quote a CSV cell containing a comma, quote or newline."""
    if "," in value or '"' in value or "\n" in value:
        return '"' + value.replace('"', '""') + '"'
    return value