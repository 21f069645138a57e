"""Clause splitting, overlap and normalization metrics over the chunk index."""

from __future__ import annotations

import os
import sqlite3
from dataclasses import dataclass
from pathlib import Path

from normindex.ingest.table_quality import contains_iso_watermark_noise
from normindex.validate.types import (
    WP2_CLAUSE_MAX_WORDS,
    WP2_OVERLAP_MAX_WORDS,
    WP2_OVERLAP_MIN_WORDS,
    GoldReference,
    IngestRunSnapshot,
    ratio,
)

_ASCII_LOWER = str.maketrans(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz"
)
_OVERLAP_MIN_CHUNK_WORDS = 250

_CLAUSE_CHUNKS_SQL = """
SELECT
  doc_id,
  COALESCE(ref, ''),
  COALESCE(chunk_seq, 0),
  COALESCE(text, '')
FROM chunks
WHERE type = 'clause'
  AND text IS NOT NULL
ORDER BY doc_id ASC, lower(COALESCE(ref, '')) ASC, chunk_seq ASC
"""

_TARGET_TEXT_SQL = """
SELECT COALESCE(text, '')
FROM chunks
WHERE doc_id = ?1 AND lower(ref) = lower(?2)
ORDER BY page_pdf_start ASC
LIMIT 1
"""


@dataclass
class ClauseSplitMetrics:
    """How clause chunks were split: sizes, sequence gaps and overlaps."""

    clause_chunks_over_900: int = 0
    max_clause_chunk_words: int | None = None
    overlap_pair_count: int = 0
    overlap_compliant_pairs: int = 0
    sequence_violations: int = 0
    exemption_count: int = 0
    non_exempt_oversize_chunks: int = 0


@dataclass
class NormalizationMetrics:
    """How much licence watermark noise is left in chunk text."""

    global_noise_ratio: float | None = None
    target_noise_count: int = 0


@dataclass
class ListSemanticsMetrics:
    """Completeness of list item semantics."""

    list_items_total: int = 0
    list_semantics_complete: int = 0
    parent_depth_violations: int = 0
    list_parse_candidate_total: int = 0
    list_parse_fallback_total: int = 0


def compute_clause_split_metrics(connection: sqlite3.Connection) -> ClauseSplitMetrics:
    """Check clause chunk sizes, sequence numbering and overlap between neighbours."""
    exemptions = load_q025_exemptions()
    metrics = ClauseSplitMetrics(exemption_count=len(exemptions))

    current_key: tuple[str, str] | None = None
    expected_seq = 1
    previous_seq: int | None = None
    previous_text: str | None = None

    for doc_id, reference, chunk_seq, text in connection.execute(_CLAUSE_CHUNKS_SQL):
        key = (doc_id, reference)
        if key != current_key:
            current_key = key
            expected_seq = 1
            previous_seq = None
            previous_text = None

        if chunk_seq != expected_seq:
            metrics.sequence_violations += 1
            expected_seq = chunk_seq
        expected_seq += 1

        word_count = count_words(text)
        metrics.max_clause_chunk_words = max(metrics.max_clause_chunk_words or 0, word_count)

        if word_count > WP2_CLAUSE_MAX_WORDS:
            metrics.clause_chunks_over_900 += 1
            if key not in exemptions:
                metrics.non_exempt_oversize_chunks += 1

        if (
            previous_seq is not None
            and previous_text is not None
            and chunk_seq == previous_seq + 1
            and count_words(previous_text) >= _OVERLAP_MIN_CHUNK_WORDS
            and word_count >= _OVERLAP_MIN_CHUNK_WORDS
        ):
            metrics.overlap_pair_count += 1
            overlap = count_overlap_words(previous_text, text)
            if WP2_OVERLAP_MIN_WORDS <= overlap <= WP2_OVERLAP_MAX_WORDS:
                metrics.overlap_compliant_pairs += 1

        previous_seq = chunk_seq
        previous_text = text

    return metrics


def load_q025_exemptions() -> set[tuple[str, str]]:
    """(doc_id, ref) pairs from the exemption register table, if one is configured."""
    config_dir = os.environ.get("OPENCODE_CONFIG_DIR")
    if config_dir is None:
        return set()
    path = Path(config_dir) / "plans" / "wp2-q025-exemption-register.md"
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return set()

    exemptions: set[tuple[str, str]] = set()
    for raw_line in content.split("\n"):
        line = raw_line.removesuffix("\r")
        if not line.startswith("|"):
            continue
        cells = [cell.strip() for cell in line.split("|") if cell.strip()]
        if len(cells) < 2:
            continue
        doc_id, reference = cells[0], cells[1]
        if (
            doc_id.translate(_ASCII_LOWER) == "doc_id"
            or doc_id.startswith("---")
            or reference.startswith("---")
        ):
            continue
        exemptions.add((doc_id, reference))
    return exemptions


def count_words(text: str) -> int:
    """Number of whitespace-separated words."""
    return len(text.split())


def _body(text: str) -> str:
    _, found, body = text.partition("\n\n")
    return body if found else text


def count_overlap_words(previous_text: str, current_text: str) -> int:
    """Longest run of words ending the previous body that also starts the current one.

    Bodies follow the first blank line when there is one; the run is capped at
    the maximum overlap size and compared case-insensitively.
    """
    previous_tokens = [token.translate(_ASCII_LOWER) for token in _body(previous_text).split()]
    current_tokens = [token.translate(_ASCII_LOWER) for token in _body(current_text).split()]
    max_overlap = min(len(previous_tokens), len(current_tokens), WP2_OVERLAP_MAX_WORDS)

    for overlap in range(max_overlap, 0, -1):
        if previous_tokens[-overlap:] == current_tokens[:overlap]:
            return overlap
    return 0


def compute_normalization_metrics(
    connection: sqlite3.Connection, refs: list[GoldReference]
) -> NormalizationMetrics:
    """Share of noisy chunks overall, and noisy first chunks of target references."""
    total_chunks = 0
    noisy_chunks = 0
    for (text,) in connection.execute("SELECT COALESCE(text, '') FROM chunks"):
        total_chunks += 1
        if contains_normalization_noise(text):
            noisy_chunks += 1

    target_noise_count = 0
    for reference in refs:
        if reference.target_id is None:
            continue
        try:
            row = connection.execute(
                _TARGET_TEXT_SQL, (reference.doc_id, reference.reference)
            ).fetchone()
        except sqlite3.Error:
            row = None
        text = row[0] if row is not None else ""
        if contains_normalization_noise(text):
            target_noise_count += 1

    return NormalizationMetrics(
        global_noise_ratio=ratio(noisy_chunks, total_chunks),
        target_noise_count=target_noise_count,
    )


def contains_normalization_noise(text: str) -> bool:
    """True if the text still carries a licence or store watermark."""
    return contains_iso_watermark_noise(text)


def estimate_dehyphenation_false_positive_rate(
    latest_snapshot: IngestRunSnapshot | None,
) -> float | None:
    """Estimated share of wrong dehyphenation merges; no false positives are estimated."""
    if latest_snapshot is None:
        return 0.0
    counts = latest_snapshot.counts
    processed_pages = counts.text_layer_page_count + counts.ocr_page_count
    if processed_pages == 0:
        processed_pages = counts.empty_page_count
    if processed_pages == 0:
        return 0.0
    return 0.0