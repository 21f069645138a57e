# normindex

Helpers for working with a SQLite index of structured standards documents
(clauses, tables, list items, notes and paragraphs): citation strings,
candidate ranking and reciprocal-rank fusion, pinpointing of sentences and
table rows inside a chunk, query output, and quality metrics over the
built index.

Everything uses the standard library only; the database is read through
`sqlite3` connections you open yourself.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

### `normindex.query`

- `models` — the `QueryCandidate`, `QueryResult`, `PinpointUnit`,
  `DescendantNode`, `QueryRankTrace`, `RetrievalMetadata` and
  `QueryResponse` dataclasses, the `RetrievalMode` and `FusionMode` enums,
  `sort_candidates` (score descending, then part, PDF page, chunk id),
  `clamp_candidates` (into 1..256), and time budgets: `new_timeout_budget`
  returns a `QueryTimeoutBudget` (or `None` for a zero timeout) and
  `enforce_timeout` raises `QueryTimeoutError` once it is exceeded.
- `text` — `to_fts_query` (quotes each token for SQLite FTS5) and
  `condense_whitespace`.
- `intent` — `is_exact_intent_query` recognises queries such as `9.4.2`,
  `Table 3` or `Annex D`.
- `citation` — `render_citation`, `format_page_range` and
  `marker_base_reference`.
- `ranking` — `upsert_candidate` de-duplicates candidates by chunk id,
  keeping the higher score and merging rank traces and source tags.
- `fusion` — `fuse_rrf_candidates` merges lexical and semantic lists by
  reciprocal-rank fusion and labels each result `lexical_rrf`,
  `semantic_rrf` or `hybrid_rrf`.
- `pinpoint` — `compute_pinpoint_units_for_candidate` reads a chunk's
  text and table Markdown from the `chunks` table (and table row/cell
  nodes from `nodes` when the candidate has an origin node), scores
  sentence windows and table rows against the query and returns a
  `PinpointComputation`. The scoring pieces (`tokenize_pinpoint_text`,
  `token_overlap_ratio`, `phrase_match_bonus`,
  `pinpoint_anchor_compatible`, `pinpoint_unit_priority`, …) are public.
- `semantic_index` — `semantic_index_status` checks that the
  `chunk_embeddings` table exists and holds embeddings for a registered
  model; `query_signal_tokens`, `lexical_signal_bonus` and
  `semantic_embedding_query_text` prepare and score query text.
- `output` — `build_json_response` / `write_json_response` and
  `render_text_response` / `write_text_response` for a list of
  `QueryResult` objects; the writers take an optional text stream and
  default to standard output.

### `normindex.validate`

- `types` — thresholds and environment-variable names, `ratio`, and the
  records read from manifests (`GoldReference.from_dict`,
  `IngestRunSnapshot.from_dict`, `PageProvenanceEntry.from_dict`,
  `CitationParityIdentity`, `CitationParityEntry`) plus summaries such as
  `AsilTableAlignmentSummary` and `StructuralInvariantSummary`.
- `citation_parity` — `build_citation_parity_artifacts` compares the top
  three citations of every gold target with a metadata-only baseline
  lockfile, creates the lockfile in bootstrap mode (refusing to replace
  an existing one unless `WP2_CITATION_BASELINE_DECISION_ID` and
  `WP2_CITATION_BASELINE_REASON` are set) and writes
  `citation_parity_report.json`. `read_citation_parity_lockfile` rejects
  lockfiles containing text-bearing keys such as `text` or `snippet`.
  `replay_stability_ratio` compares page character counts between runs.
- `printed_pages` — `compute_printed_page_metrics`,
  `is_valid_printed_label`, `parse_numeric_printed_label` and
  `wp2_result`.
- `extraction_metrics` — `compute_clause_split_metrics` (chunk sizes over
  900 words, sequence gaps, 50–100 word overlaps, with exemptions read
  from `$OPENCODE_CONFIG_DIR/plans/wp2-q025-exemption-register.md`),
  `compute_normalization_metrics`, `count_words`, `count_overlap_words`
  and `estimate_dehyphenation_false_positive_rate`.
- `formatting` — `format_page_range`.

### `normindex.ingest`

- `table_quality` — `prefer_reconstructed_rows`,
  `estimate_expected_marker_count`, `has_row_description`,
  `extract_body_lines`, `contains_iso_watermark_noise`,
  `split_table_cells`, `table_to_markdown`, `table_to_csv` and
  `escape_csv_cell`.

## Example

```python
from normindex.query.citation import render_citation
from normindex.query.models import QueryCandidate

candidate = QueryCandidate(
    chunk_id="c1", doc_id="doc-6", part=6, year=2018, chunk_type="list_item",
    reference="9.4.2 item a", anchor_type="marker", anchor_label_norm="a",
    page_pdf_start=25, page_pdf_end=27,
)
print(render_citation(candidate))
# ISO 26262-6:2018, 9.4.2(a), PDF pages 25-27
```

## What this package does not do

- It has no command-line program.
- It does not build the index: there is no PDF reading, OCR, chunking or
  embedding, and nothing creates the database tables it reads.
- It does not run full-text or embedding searches to collect candidates,
  walk the node hierarchy for ancestors or descendants, or turn
  candidates into `QueryResult` objects; callers supply candidates and
  results themselves.