import pytest

from normindex.query.fusion import fuse_rrf_candidates
from normindex.query.models import FusionMode, QueryCandidate


def make(chunk_id, score=1.0, **kwargs):
    return QueryCandidate(
        chunk_id=chunk_id,
        doc_id="doc",
        part=6,
        year=2018,
        chunk_type="clause",
        score=score,
        **kwargs,
    )


def by_id(candidates):
    return {candidate.chunk_id: candidate for candidate in candidates}


def test_candidate_in_both_lists_is_hybrid_and_ranks_first():
    lexical = [make("a", 500.0), make("b", 400.0)]
    semantic = [make("b", 0.9), make("c", 0.8)]

    fused = fuse_rrf_candidates(lexical, semantic, 60, FusionMode.RRF)

    assert [candidate.chunk_id for candidate in fused][0] == "b"
    result = by_id(fused)
    assert result["b"].match_kind == "hybrid_rrf"
    assert result["b"].source_tags == ["lexical", "semantic"]
    assert result["a"].match_kind == "lexical_rrf"
    assert result["a"].source_tags == ["lexical"]
    assert result["c"].match_kind == "semantic_rrf"
    assert result["c"].source_tags == ["semantic"]


def test_rrf_score_tracks_score_and_results_are_sorted():
    lexical = [make("a"), make("b"), make("c")]
    semantic = [make("c"), make("d")]

    fused = fuse_rrf_candidates(lexical, semantic, 60, "rrf")

    assert all(candidate.rrf_score == candidate.score for candidate in fused)
    scores = [candidate.score for candidate in fused]
    assert scores == sorted(scores, reverse=True)
    assert len(fused) == 4


def test_ranks_default_to_list_position_and_scores_are_recorded():
    lexical = [make("a", 500.0), make("b", 499.0)]
    semantic = [make("b", 0.7)]

    result = by_id(fuse_rrf_candidates(lexical, semantic, 60, FusionMode.RRF))

    assert result["a"].lexical_rank == 1
    assert result["b"].lexical_rank == 2
    assert result["b"].semantic_rank == 1
    assert result["a"].semantic_rank is None
    assert result["a"].lexical_score == 500.0
    assert result["b"].semantic_score == 0.7


def test_explicit_ranks_are_respected():
    lexical = [make("a", lexical_rank=5), make("b", lexical_rank=1)]

    fused = fuse_rrf_candidates(lexical, [], 60, FusionMode.RRF)

    assert [candidate.chunk_id for candidate in fused] == ["b", "a"]
    assert by_id(fused)["a"].lexical_rank == 5


def test_existing_lexical_score_is_preferred_over_score():
    lexical = [make("a", 3.0, lexical_score=42.0)]

    fused = fuse_rrf_candidates(lexical, [], 60, FusionMode.RRF)

    assert fused[0].lexical_score == 42.0


def test_zero_rrf_k_behaves_like_one():
    lexical = [make("a"), make("b")]
    semantic = [make("b")]

    zero = fuse_rrf_candidates(lexical, semantic, 0, FusionMode.RRF)
    one = fuse_rrf_candidates(lexical, semantic, 1, FusionMode.RRF)

    assert [(c.chunk_id, c.score) for c in zero] == [(c.chunk_id, c.score) for c in one]


def test_inputs_are_not_mutated():
    lexical = [make("a", 10.0, source_tags=["lexical_fts"])]

    fuse_rrf_candidates(lexical, [], 60, FusionMode.RRF)

    assert lexical[0].score == 10.0
    assert lexical[0].source_tags == ["lexical_fts"]
    assert lexical[0].rrf_score is None


def test_empty_inputs_give_empty_output():
    assert fuse_rrf_candidates([], [], 60, FusionMode.RRF) == []


def test_unknown_fusion_mode_is_rejected():
    with pytest.raises(ValueError):
        fuse_rrf_candidates([make("a")], [], 60, "weighted")