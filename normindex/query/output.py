"""Rendering of query responses as JSON or as tab-indented text."""

from __future__ import annotations

import json
import sys
from dataclasses import asdict
from typing import Any, TextIO

from normindex.query.citation import format_page_range
from normindex.query.models import QueryResponse, QueryResult, RetrievalMetadata


def _flag(value: bool) -> str:
    return "true" if value else "false"


def build_json_response(
    query_text: str,
    limit: int,
    part_filter: int | None,
    chunk_type_filter: str | None,
    node_type_filter: str | None,
    retrieval: RetrievalMetadata,
    results: list[QueryResult],
) -> dict[str, Any]:
    """Assemble the JSON-ready dictionary of a query response."""
    response = QueryResponse(
        query=query_text,
        limit=limit,
        returned=len(results),
        part_filter=part_filter,
        chunk_type_filter=chunk_type_filter,
        node_type_filter=node_type_filter,
        retrieval=retrieval,
        results=list(results),
    )
    return asdict(response)


def write_json_response(
    query_text: str,
    limit: int,
    part_filter: int | None,
    chunk_type_filter: str | None,
    node_type_filter: str | None,
    retrieval: RetrievalMetadata,
    results: list[QueryResult],
    stream: TextIO | None = None,
) -> None:
    """Write the response as pretty-printed JSON followed by a newline."""
    out = stream if stream is not None else sys.stdout
    payload = build_json_response(
        query_text, limit, part_filter, chunk_type_filter, node_type_filter, retrieval, results
    )
    json.dump(payload, out, indent=2, ensure_ascii=False)
    out.write("\n")
    out.flush()


def _result_lines(result: QueryResult) -> list[str]:
    reference = result.reference or "(unreferenced)"
    pages = format_page_range(result.page_pdf_start, result.page_pdf_end)
    lines = [
        f"{result.rank}.\tISO 26262-{result.part}:{result.year}\t"
        f"{result.chunk_type}\t{reference}\tpages {pages}",
        f"\tmatch={result.match_kind} score={result.score:.6f} chunk_id={result.chunk_id}",
        f"\tsources={','.join(result.source_tags)}",
    ]

    trace = result.rank_trace
    if trace.lexical_rank is not None:
        lines.append(f"\tlexical_rank: {trace.lexical_rank}")
    if trace.semantic_rank is not None:
        lines.append(f"\tsemantic_rank: {trace.semantic_rank}")
    if trace.rrf_score is not None:
        lines.append(f"\trrf_score: {trace.rrf_score:.6f}")

    optional_fields = (
        ("origin_node_id", result.origin_node_id),
        ("leaf_node_type", result.leaf_node_type),
        ("parent_ref", result.parent_ref),
        ("anchor_type", result.anchor_type),
        ("anchor_label_raw", result.anchor_label_raw),
        ("anchor_label_norm", result.anchor_label_norm),
        ("anchor_order", result.anchor_order),
        ("citation_anchor_id", result.citation_anchor_id),
    )
    lines.extend(f"\t{name}: {value}" for name, value in optional_fields if value is not None)

    lines.append(f"\tcitation: {result.citation}")
    lines.append(f"\tsnippet: {result.snippet}")
    if result.pinpoint_fallback_used is not None:
        lines.append(f"\tpinpoint_fallback_used: {_flag(result.pinpoint_fallback_used)}")
    for pinpoint_rank, unit in enumerate(result.pinpoint_units or [], start=1):
        lines.append(
            f"\tpinpoint[{pinpoint_rank}]: type={unit.unit_type} "
            f"score={unit.score:.5f} unit_id={unit.unit_id}"
        )
        if unit.row_key is not None:
            lines.append(f"\t  row_key: {unit.row_key}")
        lines.append(f"\t  text: {unit.text_preview}")
    return lines


def render_text_response(
    query_text: str, retrieval: RetrievalMetadata, results: list[QueryResult]
) -> str:
    """Render the response as human-readable text, one newline-terminated line each."""
    lines = [
        f"Query: {query_text}",
        f"Retrieval: requested={retrieval.requested_mode} "
        f"effective={retrieval.effective_mode} fusion={retrieval.fusion} "
        f"fallback_used={_flag(retrieval.fallback_used)} "
        f"timeout_ms={retrieval.timeout_ms} duration_ms={retrieval.query_duration_ms:.3f}",
        f"Candidates: lexical={retrieval.lexical_candidate_count} "
        f"semantic={retrieval.semantic_candidate_count} "
        f"fused={retrieval.fused_candidate_count} "
        f"(k lexical={retrieval.lexical_k} semantic={retrieval.semantic_k}) "
        f"pinpoint={_flag(retrieval.pinpoint_enabled)} "
        f"max_units={retrieval.pinpoint_max_units}",
        f"Results: {len(results)}",
    ]
    for result in results:
        lines.extend(_result_lines(result))
    return "".join(f"{line}\n" for line in lines)


def write_text_response(
    query_text: str,
    retrieval: RetrievalMetadata,
    results: list[QueryResult],
    stream: TextIO | None = None,
) -> None:
    """Write the text rendering of the response."""
    out = stream if stream is not None else sys.stdout
    out.write(render_text_response(query_text, retrieval, results))
    out.flush()