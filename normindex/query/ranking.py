"""De-duplication of candidates collected from several lexical sources."""

from __future__ import annotations

from normindex.query.models import QueryCandidate


def _inherit_candidate_traces(target: QueryCandidate, source: QueryCandidate) -> None:
    for tag in source.source_tags:
        if tag not in target.source_tags:
            target.source_tags.append(tag)

    if target.lexical_rank is None:
        target.lexical_rank = source.lexical_rank
    if target.semantic_rank is None:
        target.semantic_rank = source.semantic_rank
    if target.lexical_score is None:
        target.lexical_score = source.lexical_score
    if target.semantic_score is None:
        target.semantic_score = source.semantic_score
    if target.rrf_score is None:
        target.rrf_score = source.rrf_score


def upsert_candidate(dedup: dict[str, QueryCandidate], candidate: QueryCandidate) -> None:
    """Insert a candidate, keeping the higher-scoring one and merging their traces."""
    existing = dedup.get(candidate.chunk_id)
    if existing is None:
        dedup[candidate.chunk_id] = candidate
        return

    if candidate.score > existing.score:
        _inherit_candidate_traces(candidate, existing)
        dedup[candidate.chunk_id] = candidate
    else:
        _inherit_candidate_traces(existing, candidate)