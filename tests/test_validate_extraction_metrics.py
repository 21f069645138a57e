import sqlite3

import pytest

from normindex.validate.extraction_metrics import (
    compute_clause_split_metrics,
    compute_normalization_metrics,
    contains_normalization_noise,
    count_overlap_words,
    count_words,
    estimate_dehyphenation_false_positive_rate,
    load_q025_exemptions,
)
from normindex.validate.types import (
    WP2_CLAUSE_MAX_WORDS,
    GoldReference,
    IngestRunCountsSnapshot,
    IngestRunSnapshot,
)

WATERMARK = "ISO Store Order: OP-1022919 license #1/ Downloaded: 2026-02-14"


def _db(rows):
    conn = sqlite3.connect(":memory:")
    conn.execute(
        "CREATE TABLE chunks (chunk_id TEXT, doc_id TEXT, ref TEXT, type TEXT,"
        " chunk_seq INTEGER, text TEXT, page_pdf_start INTEGER)"
    )
    conn.executemany(
        "INSERT INTO chunks VALUES (?, ?, ?, ?, ?, ?, ?)",
        [(f"c{index}", *row) for index, row in enumerate(rows)],
    )
    return conn


def _words(prefix, count, start=0):
    return [f"{prefix}{index}" for index in range(start, start + count)]


@pytest.fixture(autouse=True)
def _no_config_dir(monkeypatch):
    monkeypatch.delenv("OPENCODE_CONFIG_DIR", raising=False)


def test_count_words_ignores_repeated_whitespace():
    assert count_words("alpha  beta\n gamma") == len(["alpha", "beta", "gamma"])
    assert count_words("   ") == 0


def test_count_overlap_words_skips_heading_and_ignores_case():
    previous = "Heading\n\nalpha beta gamma"
    current = "Heading\n\nBETA GAMMA delta"
    assert count_overlap_words(previous, current) == len(["beta", "gamma"])


def test_count_overlap_words_zero_when_disjoint():
    assert count_overlap_words("one two", "three four") == 0


def test_clause_sequence_gap_is_a_violation():
    conn = _db(
        [
            ("d1", "5.2", "clause", 1, "short text", 1),
            ("d1", "5.2", "clause", 3, "more text", 2),
        ]
    )
    metrics = compute_clause_split_metrics(conn)
    assert metrics.sequence_violations == 1
    assert metrics.clause_chunks_over_900 == 0


def test_clause_oversize_chunk_counted_and_non_clause_ignored():
    size = WP2_CLAUSE_MAX_WORDS + 1
    text = " ".join(_words("w", size))
    conn = _db(
        [
            ("d1", "6.1", "clause", 1, text, 1),
            ("d1", "T1", "table", 1, " ".join(_words("t", size + 50)), 1),
        ]
    )
    metrics = compute_clause_split_metrics(conn)
    assert metrics.max_clause_chunk_words == size
    assert metrics.clause_chunks_over_900 == 1
    assert metrics.non_exempt_oversize_chunks == metrics.clause_chunks_over_900
    assert metrics.exemption_count == 0


def test_exempt_oversize_chunk_is_not_flagged(tmp_path, monkeypatch):
    plans = tmp_path / "plans"
    plans.mkdir()
    (plans / "wp2-q025-exemption-register.md").write_text(
        "| doc_id | ref |\n| --- | --- |\n| d1 | 6.1 |\n", encoding="utf-8"
    )
    monkeypatch.setenv("OPENCODE_CONFIG_DIR", str(tmp_path))
    text = " ".join(_words("w", WP2_CLAUSE_MAX_WORDS + 5))
    metrics = compute_clause_split_metrics(_db([("d1", "6.1", "clause", 1, text, 1)]))
    assert metrics.exemption_count == 1
    assert metrics.clause_chunks_over_900 == 1
    assert metrics.non_exempt_oversize_chunks == 0


def test_overlap_between_consecutive_chunks_is_compliant():
    previous_words = _words("w", 300)
    shared = previous_words[240:]
    current_words = shared + _words("x", 240)
    previous = " ".join(previous_words)
    current = " ".join(current_words)
    assert count_overlap_words(previous, current) == len(shared)

    conn = _db(
        [
            ("d1", "7.4", "clause", 1, previous, 1),
            ("d1", "7.4", "clause", 2, current, 2),
        ]
    )
    metrics = compute_clause_split_metrics(conn)
    assert metrics.overlap_pair_count == 1
    assert metrics.overlap_compliant_pairs == metrics.overlap_pair_count
    assert metrics.sequence_violations == 0


def test_load_exemptions_reads_register_rows(tmp_path, monkeypatch):
    plans = tmp_path / "plans"
    plans.mkdir()
    (plans / "wp2-q025-exemption-register.md").write_text(
        "# Register\n| DOC_ID | ref | note |\n|---|---|---|\n| doc-a | 5.2 | long |\n| lonely |\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("OPENCODE_CONFIG_DIR", str(tmp_path))
    assert load_q025_exemptions() == {("doc-a", "5.2")}


def test_load_exemptions_empty_without_config_or_file(tmp_path, monkeypatch):
    assert load_q025_exemptions() == set()
    monkeypatch.setenv("OPENCODE_CONFIG_DIR", str(tmp_path))
    assert load_q025_exemptions() == set()


def test_contains_normalization_noise():
    assert contains_normalization_noise(WATERMARK)
    assert contains_normalization_noise(
        "Single user licence only, copying and networking prohibited."
    )
    assert not contains_normalization_noise("Functional safety requirement")


def test_compute_normalization_metrics_counts_noise():
    conn = _db(
        [
            ("d1", "5.2", "clause", 1, f"{WATERMARK}\nbody", 1),
            ("d1", "5.3", "clause", 1, "clean", 2),
            ("d1", "5.4", "clause", 1, "clean", 3),
            ("d1", "5.5", "clause", 1, "clean", 4),
        ]
    )
    refs = [
        GoldReference(
            id="g1",
            doc_id="d1",
            reference="5.2",
            expected_page_pattern="*",
            must_match_terms=[],
            status="active",
            target_id="t1",
        ),
        GoldReference(
            id="g2",
            doc_id="d1",
            reference="5.3",
            expected_page_pattern="*",
            must_match_terms=[],
            status="active",
            target_id="t2",
        ),
        GoldReference(
            id="g3",
            doc_id="d1",
            reference="5.2",
            expected_page_pattern="*",
            must_match_terms=[],
            status="active",
        ),
    ]
    metrics = compute_normalization_metrics(conn, refs)
    assert metrics.global_noise_ratio == pytest.approx(1 / 4)
    assert metrics.target_noise_count == 1


def test_compute_normalization_metrics_empty_index():
    metrics = compute_normalization_metrics(_db([]), [])
    assert metrics.global_noise_ratio is None
    assert metrics.target_noise_count == 0


def test_dehyphenation_false_positive_rate_is_zero():
    assert estimate_dehyphenation_false_positive_rate(None) == 0.0
    snapshot = IngestRunSnapshot(
        counts=IngestRunCountsSnapshot(text_layer_page_count=10, dehyphenation_merges=4)
    )
    assert estimate_dehyphenation_false_positive_rate(snapshot) == 0.0