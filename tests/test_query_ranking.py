from normindex.query.models import QueryCandidate
from normindex.query.ranking import upsert_candidate


def _candidate(score, tags, match_kind, **extra):
    return QueryCandidate(
        chunk_id="chunk-1",
        doc_id="doc",
        part=6,
        year=2018,
        chunk_type="clause",
        score=score,
        match_kind=match_kind,
        source_tags=list(tags),
        **extra,
    )


def test_upsert_inserts_new_candidate():
    dedup = {}
    candidate = _candidate(500.0, ["lexical_fts"], "fts")
    upsert_candidate(dedup, candidate)
    assert list(dedup) == ["chunk-1"]
    assert dedup["chunk-1"] is candidate


def test_higher_score_replaces_and_inherits_traces():
    dedup = {}
    upsert_candidate(dedup, _candidate(500.0, ["lexical_fts"], "fts", rrf_score=0.25))
    upsert_candidate(dedup, _candidate(1000.0, ["lexical_exact"], "exact_ref"))

    kept = dedup["chunk-1"]
    assert kept.match_kind == "exact_ref"
    assert kept.score == 1000.0
    assert kept.source_tags == ["lexical_exact", "lexical_fts"]
    assert kept.rrf_score == 0.25


def test_lower_or_equal_score_keeps_existing_and_merges_tags():
    dedup = {}
    upsert_candidate(dedup, _candidate(700.0, ["lexical_exact"], "ref_contains"))
    upsert_candidate(dedup, _candidate(700.0, ["lexical_fts"], "fts", lexical_rank=3))
    upsert_candidate(dedup, _candidate(100.0, ["lexical_fts", "lexical_node"], "node_match"))

    kept = dedup["chunk-1"]
    assert kept.match_kind == "ref_contains"
    assert kept.source_tags == ["lexical_exact", "lexical_fts", "lexical_node"]
    assert kept.lexical_rank == 3


def test_existing_trace_values_are_not_overwritten():
    dedup = {}
    upsert_candidate(dedup, _candidate(900.0, ["a"], "exact_heading", lexical_rank=1))
    upsert_candidate(dedup, _candidate(10.0, ["a"], "fts", lexical_rank=7))
    kept = dedup["chunk-1"]
    assert kept.lexical_rank == 1
    assert kept.source_tags == ["a"]