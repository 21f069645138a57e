"""Reciprocal-rank fusion of lexical and semantic candidate lists."""

from __future__ import annotations

from dataclasses import replace

from normindex.query.models import FusionMode, QueryCandidate, sort_candidates


def _seed_fusion_candidate(candidate: QueryCandidate) -> QueryCandidate:
    return replace(candidate, score=0.0, rrf_score=0.0, source_tags=[])


def _merge_source_tag(candidate: QueryCandidate, source: str) -> None:
    if source not in candidate.source_tags:
        candidate.source_tags.append(source)


def _match_kind(candidate: QueryCandidate) -> str:
    has_lexical = candidate.lexical_rank is not None
    has_semantic = candidate.semantic_rank is not None
    if has_lexical and not has_semantic:
        return "lexical_rrf"
    if has_semantic and not has_lexical:
        return "semantic_rrf"
    return "hybrid_rrf"


def fuse_rrf_candidates(
    lexical_candidates: list[QueryCandidate],
    semantic_candidates: list[QueryCandidate],
    rrf_k: int,
    fusion_mode: FusionMode | str,
) -> list[QueryCandidate]:
    """Merge two ranked lists with reciprocal-rank fusion and return them sorted.

    The input candidates are left untouched; the result holds fresh copies.
    """
    mode = FusionMode(fusion_mode)
    if mode is not FusionMode.RRF:
        raise ValueError(f"unsupported fusion mode: {fusion_mode!r}")

    merged: dict[str, QueryCandidate] = {}
    rrf_base = float(max(rrf_k, 1))

    for index, candidate in enumerate(lexical_candidates):
        rank = candidate.lexical_rank if candidate.lexical_rank is not None else index + 1
        entry = merged.get(candidate.chunk_id)
        if entry is None:
            entry = merged[candidate.chunk_id] = _seed_fusion_candidate(candidate)
        entry.score += 1.0 / (rrf_base + rank)
        entry.rrf_score = entry.score
        entry.lexical_rank = rank
        entry.lexical_score = (
            candidate.lexical_score if candidate.lexical_score is not None else candidate.score
        )
        _merge_source_tag(entry, "lexical")

    for index, candidate in enumerate(semantic_candidates):
        rank = candidate.semantic_rank if candidate.semantic_rank is not None else index + 1
        entry = merged.get(candidate.chunk_id)
        if entry is None:
            entry = merged[candidate.chunk_id] = _seed_fusion_candidate(candidate)
        entry.score += 1.0 / (rrf_base + rank)
        entry.rrf_score = entry.score
        entry.semantic_rank = rank
        entry.semantic_score = (
            candidate.semantic_score if candidate.semantic_score is not None else candidate.score
        )
        _merge_source_tag(entry, "semantic")

    fused = list(merged.values())
    for candidate in fused:
        candidate.match_kind = _match_kind(candidate)

    sort_candidates(fused)
    return fused