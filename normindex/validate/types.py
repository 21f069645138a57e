"""Thresholds, manifest records and summaries used by validation."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

DB_SCHEMA_VERSION = "0.4.0"
TABLE_SPARSE_ROW_RATIO_MAX = 0.20
TABLE_OVERLOADED_ROW_RATIO_MAX = 0.10
TABLE_MARKER_SEQUENCE_COVERAGE_MIN = 0.90
TABLE_DESCRIPTION_COVERAGE_MIN = 0.90
MARKER_EXTRACTION_COVERAGE_MIN = 0.95
MARKER_CITATION_ACCURACY_MIN = 0.90
PARAGRAPH_CITATION_ACCURACY_MIN = 0.90
ASIL_ALIGNMENT_MIN_RATING_COVERAGE = 0.60
ASIL_ALIGNMENT_MAX_MALFORMED_RATIO = 0.10
ASIL_ALIGNMENT_MAX_OUTLIER_RATIO = 0.15
WP2_EXTRACTION_PROVENANCE_COVERAGE_MIN = 1.0
WP2_TEXT_LAYER_REPLAY_STABILITY_MIN = 0.999
WP2_OCR_REPLAY_STABILITY_MIN = 0.98
WP2_PRINTED_MAPPING_DETECTABLE_MIN = 0.98
WP2_PRINTED_DETECTABILITY_DROP_MAX = 0.05
WP2_CLAUSE_MAX_WORDS = 900
WP2_OVERLAP_MIN_WORDS = 50
WP2_OVERLAP_MAX_WORDS = 100
WP2_OVERLAP_COMPLIANCE_MIN = 0.95
WP2_LIST_FALLBACK_RATIO_MAX = 0.05
WP2_ASIL_STRICT_MIN_RATING_COVERAGE = 0.85
WP2_ASIL_STRICT_MAX_MALFORMED_RATIO = 0.05
WP2_ASIL_STRICT_MAX_OUTLIER_RATIO = 0.08
WP2_ASIL_STRICT_MAX_ONE_CELL_RATIO = 0.25
WP2_NOISE_LEAKAGE_GLOBAL_MAX = 0.001
WP2_CITATION_TOP1_MIN = 0.99
WP2_CITATION_TOP3_MIN = 1.0
WP2_CITATION_PAGE_RANGE_MIN = 0.99
WP2_CITATION_BASELINE_MODE_ENV = "WP2_CITATION_BASELINE_MODE"
WP2_CITATION_BASELINE_PATH_ENV = "WP2_CITATION_BASELINE_PATH"
WP2_CITATION_BASELINE_DECISION_ENV = "WP2_CITATION_BASELINE_DECISION_ID"
WP2_CITATION_BASELINE_REASON_ENV = "WP2_CITATION_BASELINE_REASON"


def ratio(numerator: int, denominator: int) -> float | None:
    """numerator / denominator, or None when the denominator is zero."""
    if denominator == 0:
        return None
    return numerator / denominator


def _require(data: dict[str, Any], keys: tuple[str, ...], what: str) -> None:
    missing = [key for key in keys if key not in data]
    if missing:
        raise ValueError(f"{what} is missing required field(s): {', '.join(missing)}")


def _defaulted(cls: type, data: dict[str, Any]) -> dict[str, Any]:
    """Keyword arguments for the fields of cls that are present in data."""
    return {item.name: data[item.name] for item in fields(cls) if item.name in data}


@dataclass
class GoldReference:
    """A reference from the gold set that validation checks against the index."""

    id: str
    doc_id: str
    reference: str
    expected_page_pattern: str
    must_match_terms: list[str]
    status: str
    target_id: str | None = None
    target_ref_raw: str | None = None
    canonical_ref: str | None = None
    ref_resolution_mode: str | None = None
    expected_node_type: str | None = None
    expected_parent_ref: str | None = None
    expected_min_rows: int | None = None
    expected_min_cols: int | None = None
    expected_min_list_items: int | None = None
    expected_anchor_type: str | None = None
    expected_marker_label: str | None = None
    expected_paragraph_index: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GoldReference:
        """Build from a manifest record, where the reference is stored under 'ref'."""
        _require(
            data,
            ("id", "doc_id", "ref", "expected_page_pattern", "must_match_terms", "status"),
            "gold reference",
        )
        values = _defaulted(cls, data)
        values.pop("reference", None)
        return cls(reference=data["ref"], **values)


@dataclass
class TableQualityCounters:
    """Table parsing counters reported by an ingest run."""

    table_row_nodes_inserted: int = 0
    table_sparse_rows_count: int = 0
    table_overloaded_rows_count: int = 0
    table_rows_with_markers_count: int = 0
    table_rows_with_descriptions_count: int = 0
    table_marker_expected_count: int = 0
    table_marker_observed_count: int = 0


@dataclass
class AsilTableAlignmentSummary:
    """How well marker rows of ASIL tables carry their ratings."""

    tables_expected: int = 0
    tables_found: int = 0
    marker_rows_total: int = 0
    marker_rows_with_ratings: int = 0
    marker_rows_malformed_description: int = 0
    marker_rows_outlier_cell_count: int = 0

    def rating_coverage(self) -> float | None:
        return ratio(self.marker_rows_with_ratings, self.marker_rows_total)

    def malformed_ratio(self) -> float | None:
        return ratio(self.marker_rows_malformed_description, self.marker_rows_total)

    def outlier_ratio(self) -> float | None:
        return ratio(self.marker_rows_outlier_cell_count, self.marker_rows_total)


@dataclass
class StructuralInvariantSummary:
    """Counts of node-hierarchy invariant violations."""

    parent_required_missing_count: int = 0
    dangling_parent_pointer_count: int = 0
    invalid_table_row_parent_count: int = 0
    invalid_table_cell_parent_count: int = 0
    invalid_list_item_parent_count: int = 0
    invalid_note_parent_count: int = 0
    invalid_note_item_parent_count: int = 0
    invalid_paragraph_parent_count: int = 0

    def violation_count(self) -> int:
        return sum(getattr(self, item.name) for item in fields(self))


@dataclass
class IngestRunCountsSnapshot:
    """Counters recorded by an ingest run."""

    processed_pdf_count: int = 0
    text_layer_page_count: int = 0
    ocr_page_count: int = 0
    ocr_fallback_page_count: int = 0
    empty_page_count: int = 0
    header_lines_removed: int = 0
    footer_lines_removed: int = 0
    dehyphenation_merges: int = 0
    list_parse_candidate_count: int = 0
    list_parse_fallback_count: int = 0
    table_row_nodes_inserted: int = 0
    table_sparse_rows_count: int = 0
    table_overloaded_rows_count: int = 0
    table_rows_with_markers_count: int = 0
    table_rows_with_descriptions_count: int = 0
    table_marker_expected_count: int = 0
    table_marker_observed_count: int = 0

    def table_quality_counters(self) -> TableQualityCounters:
        return TableQualityCounters(
            **{item.name: getattr(self, item.name) for item in fields(TableQualityCounters)}
        )


@dataclass
class IngestRunPathsSnapshot:
    """Artifact paths recorded by an ingest run."""

    page_provenance_path: str | None = None


@dataclass
class IngestRunSnapshot:
    """The parts of an ingest run manifest that validation reads."""

    run_id: str | None = None
    started_at: str | None = None
    command: str | None = None
    processed_parts: list[int] = field(default_factory=list)
    counts: IngestRunCountsSnapshot = field(default_factory=IngestRunCountsSnapshot)
    paths: IngestRunPathsSnapshot = field(default_factory=IngestRunPathsSnapshot)
    db_schema_version: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IngestRunSnapshot:
        """Build from a manifest; missing fields take their defaults, unknown ones are ignored."""
        values = _defaulted(cls, data)
        values["counts"] = IngestRunCountsSnapshot(
            **_defaulted(IngestRunCountsSnapshot, data.get("counts") or {})
        )
        values["paths"] = IngestRunPathsSnapshot(
            **_defaulted(IngestRunPathsSnapshot, data.get("paths") or {})
        )
        values["processed_parts"] = list(data.get("processed_parts") or [])
        return cls(**values)


@dataclass
class PageProvenanceEntry:
    """How the text of one PDF page was obtained."""

    doc_id: str = ""
    page_pdf: int = 0
    backend: str = ""
    reason: str = ""
    text_char_count: int = 0
    ocr_char_count: int | None = None
    printed_page_label: str | None = None
    printed_page_status: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PageProvenanceEntry:
        """Build from a manifest entry; missing fields take their defaults."""
        return cls(**_defaulted(cls, data))


class Wp2GateStage(str, Enum):
    """Enforcement stage of the WP2 quality gates."""

    A = "A"
    B = "B"

    def as_str(self) -> str:
        return self.value

    def mode_label(self) -> str:
        return "instrumentation" if self is Wp2GateStage.A else "hard_gate"


class CitationBaselineMode(str, Enum):
    """Whether the citation baseline is verified or (re)created."""

    VERIFY = "verify"
    BOOTSTRAP = "bootstrap"

    def as_str(self) -> str:
        return self.value


@dataclass(frozen=True)
class CitationParityIdentity:
    """Metadata identifying a citation result without any of its text."""

    canonical_ref: str
    anchor_identity: str
    page_start: int | None = None
    page_end: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "canonical_ref": self.canonical_ref,
            "anchor_identity": self.anchor_identity,
            "page_start": self.page_start,
            "page_end": self.page_end,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CitationParityIdentity:
        _require(data, ("canonical_ref", "anchor_identity"), "citation parity identity")
        return cls(
            canonical_ref=data["canonical_ref"],
            anchor_identity=data["anchor_identity"],
            page_start=data.get("page_start"),
            page_end=data.get("page_end"),
        )


@dataclass
class CitationParityEntry:
    """The top citation results recorded for one gold target."""

    target_id: str
    doc_id: str
    reference: str
    top_results: list[CitationParityIdentity] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_id": self.target_id,
            "doc_id": self.doc_id,
            "reference": self.reference,
            "top_results": [result.to_dict() for result in self.top_results],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CitationParityEntry:
        _require(
            data, ("target_id", "doc_id", "reference", "top_results"), "citation parity entry"
        )
        return cls(
            target_id=data["target_id"],
            doc_id=data["doc_id"],
            reference=data["reference"],
            top_results=[CitationParityIdentity.from_dict(item) for item in data["top_results"]],
        )