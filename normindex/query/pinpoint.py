"""Scoring of sentence, table-row and table-cell units inside a result chunk."""

from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass

from normindex.query.models import PinpointUnit, QueryCandidate
from normindex.query.text import condense_whitespace

_I64_MAX = 2**63 - 1
_ASCII_LOWER = str.maketrans(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz"
)
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]+")
_SENTENCE_TERMINATORS = frozenset(".!?\n;")
_ASCII_DIGITS = frozenset("0123456789")

PINPOINT_QUERY_STOPWORDS = frozenset(
    {
        "a", "an", "and", "as", "at", "by", "concept", "concerning", "for",
        "from", "guidance", "in", "into", "of", "on", "or", "related",
        "requirement", "requirements", "table", "that", "the", "to", "with",
    }
)

_TABLE_NODE_UNITS_SQL = """
SELECT
  node_id,
  node_type,
  COALESCE(text, ''),
  row_idx,
  col_idx,
  citation_anchor_id
FROM nodes
WHERE table_node_id = ?1
  AND node_type IN ('table_row', 'table_cell')
ORDER BY row_idx ASC, col_idx ASC, node_id ASC
LIMIT 512
"""

_CHUNK_SQL = """
SELECT COALESCE(text, ''), COALESCE(table_md, ''), citation_anchor_id
FROM chunks
WHERE chunk_id = ?1
LIMIT 1
"""


@dataclass
class PinpointComputation:
    """Ranked pinpoint units of one candidate and whether the fallback was used."""

    units: list[PinpointUnit]
    fallback_used: bool


@dataclass
class _PinpointUnitDraft:
    unit_id: str
    unit_type: str
    text: str
    char_start: int | None = None
    char_end: int | None = None
    row_idx: int | None = None
    col_idx: int | None = None
    row_key: str | None = None
    origin_node_id: str | None = None
    citation_anchor_id: str | None = None


def _ascii_lower(value: str) -> str:
    return value.translate(_ASCII_LOWER)


def _byte_len(value: str) -> int:
    return len(value.encode("utf-8"))


def _is_ascii_digits(value: str) -> bool:
    return all(character in _ASCII_DIGITS for character in value)


def compute_pinpoint_units_for_candidate(
    connection: sqlite3.Connection,
    candidate: QueryCandidate,
    query_text: str,
    max_units: int,
) -> PinpointComputation:
    """Score the sub-units of a candidate against the query and keep the best."""
    if max_units == 0:
        return PinpointComputation(units=[], fallback_used=True)

    drafts = _collect_candidate_pinpoint_units(connection, candidate)
    fallback_used = not drafts
    if fallback_used:
        drafts = [_fallback_pinpoint_unit(candidate)]

    query_tokens = tokenize_pinpoint_text(query_text)
    query_phrase = _ascii_lower(condense_whitespace(query_text))
    mentions_table = query_mentions_table_context(query_text)
    table_reference = looks_like_table_reference_query(query_text)
    parent_anchor = candidate.citation_anchor_id

    scored = [
        _score_unit(
            draft, query_tokens, query_phrase, mentions_table, table_reference, parent_anchor
        )
        for draft in drafts
    ]

    scored.sort(
        key=lambda unit: (
            -unit.score,
            -pinpoint_unit_priority(unit.unit_type, mentions_table, table_reference),
            unit.row_idx if unit.row_idx is not None else _I64_MAX,
            unit.col_idx if unit.col_idx is not None else _I64_MAX,
            unit.unit_id,
        )
    )
    return PinpointComputation(units=scored[:max_units], fallback_used=fallback_used)


def _score_unit(
    draft: _PinpointUnitDraft,
    query_tokens: list[str],
    query_phrase: str,
    mentions_table: bool,
    table_reference: bool,
    parent_anchor: str | None,
) -> PinpointUnit:
    normalized_text = condense_whitespace(draft.text)
    unit_tokens = tokenize_pinpoint_text(normalized_text)
    token_overlap = token_overlap_ratio(query_tokens, unit_tokens)
    phrase_bonus = phrase_match_bonus(query_phrase, normalized_text)
    score = token_overlap * 0.70 + phrase_bonus * 0.20

    if token_overlap >= 0.50:
        score += 0.10

    if table_reference:
        score += {"table_row": 0.45, "table_cell": 0.20, "sentence_window": -0.50}.get(
            draft.unit_type, 0.0
        )
    elif mentions_table:
        score += {"table_row": 0.22, "table_cell": 0.12, "sentence_window": -0.15}.get(
            draft.unit_type, 0.0
        )

    compatible = pinpoint_anchor_compatible(draft.citation_anchor_id, parent_anchor)
    if not compatible:
        score -= 0.20

    text_len = _byte_len(draft.text)
    if text_len > 1200:
        score -= 0.04
    elif text_len > 700:
        score -= 0.02
    if draft.unit_type == "chunk_snippet":
        score -= 0.05

    return PinpointUnit(
        unit_id=draft.unit_id,
        unit_type=draft.unit_type,
        score=score,
        text_preview=normalized_text,
        token_signature="|".join(unit_tokens),
        char_start=draft.char_start,
        char_end=draft.char_end,
        row_idx=draft.row_idx,
        col_idx=draft.col_idx,
        row_key=draft.row_key,
        origin_node_id=draft.origin_node_id,
        citation_anchor_id=draft.citation_anchor_id,
        citation_anchor_compatible=compatible,
    )


def _collect_candidate_pinpoint_units(
    connection: sqlite3.Connection, candidate: QueryCandidate
) -> list[_PinpointUnitDraft]:
    row = connection.execute(_CHUNK_SQL, (candidate.chunk_id,)).fetchone()
    if row is None:
        text, table_md, chunk_anchor = "", "", candidate.citation_anchor_id
    else:
        text, table_md, chunk_anchor = row

    drafts: list[_PinpointUnitDraft] = []
    has_table_structure = candidate.origin_node_id is not None or bool(table_md.strip())
    if not has_table_structure:
        drafts.extend(sentence_window_units(candidate.chunk_id, text, chunk_anchor))

    table_units: list[_PinpointUnitDraft] = []
    if candidate.origin_node_id is not None:
        table_units = _table_node_units(connection, candidate.chunk_id, candidate.origin_node_id)
    if not table_units:
        table_units = table_markdown_row_units(candidate.chunk_id, table_md, chunk_anchor)

    drafts.extend(table_units)
    if not drafts:
        drafts.extend(sentence_window_units(candidate.chunk_id, text, chunk_anchor))
    return drafts


def sentence_window_units(
    chunk_id: str, text: str, citation_anchor_id: str | None
) -> list[_PinpointUnitDraft]:
    """Split text into sentence-like windows of at least 24 bytes once condensed."""
    units: list[_PinpointUnitDraft] = []
    start = 0

    for index, character in enumerate(text):
        if character not in _SENTENCE_TERMINATORS:
            continue
        end = index + 1
        normalized = condense_whitespace(text[start:end])
        if _byte_len(normalized) >= 24:
            units.append(
                _PinpointUnitDraft(
                    unit_id=f"{chunk_id}:sentence:{len(units) + 1:03}",
                    unit_type="sentence_window",
                    text=normalized,
                    char_start=start,
                    char_end=end,
                    citation_anchor_id=citation_anchor_id,
                )
            )
        start = end

    if not units:
        normalized = condense_whitespace(text)
        if _byte_len(normalized) >= 24:
            units.append(
                _PinpointUnitDraft(
                    unit_id=f"{chunk_id}:sentence:001",
                    unit_type="sentence_window",
                    text=normalized,
                    citation_anchor_id=citation_anchor_id,
                )
            )

    return units


def _table_node_units(
    connection: sqlite3.Connection, chunk_id: str, table_node_id: str
) -> list[_PinpointUnitDraft]:
    units: list[_PinpointUnitDraft] = []
    for node_id, node_type, raw_text, row_idx, col_idx, anchor in connection.execute(
        _TABLE_NODE_UNITS_SQL, (table_node_id,)
    ):
        text = condense_whitespace(raw_text)
        if not text:
            continue
        units.append(
            _PinpointUnitDraft(
                unit_id=node_id,
                unit_type=node_type,
                text=text,
                row_idx=row_idx,
                col_idx=col_idx,
                row_key=f"{chunk_id}:{row_idx}" if row_idx is not None else None,
                origin_node_id=node_id,
                citation_anchor_id=anchor,
            )
        )
    return units


def table_markdown_row_units(
    chunk_id: str, table_md: str, citation_anchor_id: str | None
) -> list[_PinpointUnitDraft]:
    """Turn each markdown table line into a table_row unit."""
    units: list[_PinpointUnitDraft] = []
    for line in table_md.split("\n"):
        if not line.lstrip().startswith("|"):
            continue
        normalized = condense_whitespace(line)
        if not normalized:
            continue
        row_index = len(units) + 1
        units.append(
            _PinpointUnitDraft(
                unit_id=f"{chunk_id}:table_md_row:{row_index:03}",
                unit_type="table_row",
                text=normalized,
                row_idx=row_index,
                row_key=f"{chunk_id}:{row_index}",
                citation_anchor_id=citation_anchor_id,
            )
        )
    return units


def _fallback_pinpoint_unit(candidate: QueryCandidate) -> _PinpointUnitDraft:
    return _PinpointUnitDraft(
        unit_id=f"{candidate.chunk_id}:fallback:001",
        unit_type="chunk_snippet",
        text=condense_whitespace(candidate.snippet),
        origin_node_id=candidate.origin_node_id,
        citation_anchor_id=candidate.citation_anchor_id,
    )


def tokenize_pinpoint_text(value: str) -> list[str]:
    """Return sorted unique lower-case tokens, dropping stopwords and one-letter words."""
    tokens = {
        token
        for token in _NON_ALNUM.split(_ascii_lower(value))
        if token
        and (len(token) >= 2 or _is_ascii_digits(token))
        and token not in PINPOINT_QUERY_STOPWORDS
    }
    return sorted(tokens)


def token_overlap_ratio(query_tokens: list[str], unit_tokens: list[str]) -> float:
    """Fraction of query tokens that also occur in the unit."""
    if not query_tokens or not unit_tokens:
        return 0.0
    unit = set(unit_tokens)
    overlap = sum(1 for token in query_tokens if token in unit)
    return overlap / len(query_tokens)


def phrase_match_bonus(query_phrase: str, unit_text: str) -> float:
    """1.0 when a phrase of at least 8 bytes occurs verbatim in the unit, else 0.0."""
    query_phrase = query_phrase.strip()
    if _byte_len(query_phrase) < 8:
        return 0.0
    return 1.0 if query_phrase in _ascii_lower(unit_text) else 0.0


def pinpoint_anchor_compatible(unit_anchor: str | None, parent_anchor: str | None) -> bool:
    """True when the anchors are missing, equal, or share their first two segments."""
    if parent_anchor is None or not parent_anchor.strip():
        return True
    if unit_anchor is None or not unit_anchor.strip():
        return True
    if unit_anchor == parent_anchor:
        return True

    parent_family = anchor_family(parent_anchor)
    return parent_family is not None and parent_family == anchor_family(unit_anchor)


def anchor_family(anchor: str) -> tuple[str, str] | None:
    """The first two colon-separated segments of an anchor, if both are non-empty."""
    parts = anchor.split(":")
    if len(parts) < 2:
        return None
    first, second = parts[0].strip(), parts[1].strip()
    if not first or not second:
        return None
    return first, second


def query_mentions_table_context(query_text: str) -> bool:
    """True when the query talks about tables, rows or cells."""
    lowered = _ascii_lower(query_text)
    return "table" in lowered or " row " in lowered or " cell " in lowered


def looks_like_table_reference_query(query_text: str) -> bool:
    """True for queries of exactly the form 'table <number>'."""
    tokens = _ascii_lower(condense_whitespace(query_text)).split()
    return len(tokens) == 2 and tokens[0] == "table" and _is_ascii_digits(tokens[1])


def pinpoint_unit_priority(unit_type: str, mentions_table: bool, table_reference: bool) -> int:
    """Tie-break priority of a unit type given the query's table context."""
    if table_reference:
        return {"table_row": 4, "table_cell": 3, "sentence_window": 1}.get(unit_type, 2)
    if mentions_table:
        return {"table_row": 4, "table_cell": 3, "sentence_window": 2}.get(unit_type, 1)
    return {"sentence_window": 3, "table_row": 2, "table_cell": 1}.get(unit_type, 0)