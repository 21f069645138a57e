"""Data types, ordering and time budgets used by the query pipeline."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum

MAX_QUERY_CANDIDATES = 256
_I64_MAX = 2**63 - 1


class RetrievalMode(str, Enum):
    """How candidates are retrieved."""

    LEXICAL = "lexical"
    SEMANTIC = "semantic"
    HYBRID = "hybrid"


class FusionMode(str, Enum):
    """How lexical and semantic candidates are fused."""

    RRF = "rrf"


@dataclass
class QueryCandidate:
    """A retrieved chunk together with its scoring traces."""

    chunk_id: str
    doc_id: str
    part: int
    year: int
    chunk_type: str
    score: float = 0.0
    match_kind: str = ""
    source_tags: list[str] = field(default_factory=list)
    lexical_rank: int | None = None
    semantic_rank: int | None = None
    lexical_score: float | None = None
    semantic_score: float | None = None
    rrf_score: float | None = None
    reference: str = ""
    heading: str = ""
    page_pdf_start: int | None = None
    page_pdf_end: int | None = None
    source_hash: str = ""
    snippet: str = ""
    origin_node_id: str | None = None
    leaf_node_type: str | None = None
    ancestor_path: str | None = None
    anchor_type: str | None = None
    anchor_label_raw: str | None = None
    anchor_label_norm: str | None = None
    anchor_order: int | None = None
    citation_anchor_id: str | None = None


@dataclass
class DescendantNode:
    """A node below a result's origin node in the document hierarchy."""

    node_id: str
    parent_node_id: str | None
    node_type: str
    reference: str | None
    heading: str | None
    order_index: int
    page_pdf_start: int | None
    page_pdf_end: int | None
    text_preview: str | None


@dataclass
class PinpointUnit:
    """A scored sub-unit (sentence, table row or cell) of a result."""

    unit_id: str
    unit_type: str
    score: float
    text_preview: str
    token_signature: str
    char_start: int | None
    char_end: int | None
    row_idx: int | None
    col_idx: int | None
    row_key: str | None
    origin_node_id: str | None
    citation_anchor_id: str | None
    citation_anchor_compatible: bool


@dataclass
class QueryRankTrace:
    """Where a result ranked in each retrieval channel."""

    lexical_rank: int | None = None
    semantic_rank: int | None = None
    lexical_score: float | None = None
    semantic_score: float | None = None
    rrf_score: float | None = None


@dataclass
class QueryResult:
    """A fully hydrated query result."""

    rank: int
    score: float
    match_kind: str
    source_tags: list[str]
    rank_trace: QueryRankTrace
    chunk_id: str
    doc_id: str
    part: int
    year: int
    chunk_type: str
    reference: str
    parent_ref: str | None
    heading: str
    page_pdf_start: int | None
    page_pdf_end: int | None
    source_hash: str
    snippet: str
    citation: str
    origin_node_id: str | None
    leaf_node_type: str | None
    ancestor_path: str | None
    anchor_type: str | None
    anchor_label_raw: str | None
    anchor_label_norm: str | None
    anchor_order: int | None
    citation_anchor_id: str | None
    ancestor_nodes: list[str] | None
    descendants: list[DescendantNode] | None
    pinpoint_fallback_used: bool | None
    pinpoint_units: list[PinpointUnit] | None


@dataclass
class RetrievalMetadata:
    """Describes how a query was executed."""

    requested_mode: str
    effective_mode: str
    lexical_k: int
    semantic_k: int
    lexical_candidate_count: int
    semantic_candidate_count: int
    fused_candidate_count: int
    fusion: str
    rrf_k: int
    semantic_model_id: str | None
    exact_intent: bool
    exact_intent_forced_lexical: bool
    fallback_used: bool
    fallback_reason: str | None
    pinpoint_enabled: bool
    pinpoint_max_units: int
    timeout_ms: int
    query_duration_ms: float


@dataclass
class QueryResponse:
    """The complete response of a query."""

    query: str
    limit: int
    returned: int
    part_filter: int | None
    chunk_type_filter: str | None
    node_type_filter: str | None
    retrieval: RetrievalMetadata
    results: list[QueryResult]


class QueryTimeoutError(RuntimeError):
    """Raised when a query stage runs past its time budget."""


@dataclass(frozen=True)
class QueryTimeoutBudget:
    """A wall-clock budget measured from the moment it was created."""

    timeout_ms: int
    started: float = field(default_factory=time.monotonic)

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started) * 1000.0

    def enforce(self, stage: str) -> None:
        elapsed_ms = self.elapsed_ms()
        if elapsed_ms <= float(self.timeout_ms):
            return
        raise QueryTimeoutError(
            f"query timeout exceeded during {stage} "
            f"(elapsed {elapsed_ms:.1f} ms > budget {self.timeout_ms} ms); "
            "reduce --lexical-k/--semantic-k, narrow filters, or increase --timeout-ms"
        )


def new_timeout_budget(timeout_ms: int) -> QueryTimeoutBudget | None:
    """Start a budget, or return None when the timeout is zero (unlimited)."""
    if timeout_ms == 0:
        return None
    return QueryTimeoutBudget(timeout_ms=timeout_ms)


def enforce_timeout(timeout_budget: QueryTimeoutBudget | None, stage: str) -> None:
    """Raise QueryTimeoutError if the budget exists and is exhausted."""
    if timeout_budget is not None:
        timeout_budget.enforce(stage)


def sort_candidates(candidates: list[QueryCandidate]) -> None:
    """Order candidates in place: score descending, then part, page and chunk id."""
    candidates.sort(
        key=lambda candidate: (
            -candidate.score,
            candidate.part,
            candidate.page_pdf_start if candidate.page_pdf_start is not None else _I64_MAX,
            candidate.chunk_id,
        )
    )


def clamp_candidates(value: int) -> int:
    """Clamp a candidate count into 1..MAX_QUERY_CANDIDATES."""
    return max(1, min(value, MAX_QUERY_CANDIDATES))