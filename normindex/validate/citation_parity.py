"""Citation parity between the current index and a recorded metadata-only baseline."""

from __future__ import annotations

import hashlib
import json
import os
import sqlite3
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from normindex.validate.types import (
    WP2_CITATION_BASELINE_DECISION_ENV,
    WP2_CITATION_BASELINE_MODE_ENV,
    WP2_CITATION_BASELINE_REASON_ENV,
    CitationBaselineMode,
    CitationParityEntry,
    CitationParityIdentity,
    GoldReference,
    PageProvenanceEntry,
    ratio,
)

_FORBIDDEN_BASELINE_KEYS = frozenset(
    {
        "text",
        "snippet",
        "heading",
        "chunk_text",
        "table_md",
        "table_csv",
        "raw_text",
        "content",
    }
)

_REFERENCE_SEPARATORS = (" item ", " note ", " para ", " row ")

_PARITY_RESULTS_SQL = """
SELECT
  COALESCE(ref, ''),
  COALESCE(anchor_type, ''),
  COALESCE(anchor_label_norm, ''),
  COALESCE(citation_anchor_id, ''),
  page_pdf_start,
  page_pdf_end,
  chunk_id
FROM chunks
WHERE doc_id = ?1
  AND (
    lower(COALESCE(ref, '')) = lower(?2)
    OR lower(COALESCE(heading, '')) = lower(?2)
    OR lower(COALESCE(ref, '')) LIKE '%' || lower(?2) || '%'
    OR lower(COALESCE(heading, '')) LIKE '%' || lower(?2) || '%'
  )
ORDER BY
  CASE
    WHEN lower(COALESCE(ref, '')) = lower(?2) THEN 1000
    WHEN lower(COALESCE(heading, '')) = lower(?2) THEN 900
    WHEN lower(COALESCE(ref, '')) LIKE '%' || lower(?2) || '%' THEN 700
    ELSE 600
  END DESC,
  page_pdf_start ASC,
  chunk_id ASC
LIMIT 3
"""


def _now_utc_string() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _write_json_pretty(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


@dataclass
class CitationParityBaseline:
    """A lockfile of the top citation results per gold target, without any text."""

    manifest_version: int
    run_id: str
    generated_at: str
    target_linked_count: int
    query_options: str
    checksum: str
    entries: list[CitationParityEntry] = field(default_factory=list)
    db_schema_version: str | None = None
    decision_id: str | None = None
    change_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "manifest_version": self.manifest_version,
            "run_id": self.run_id,
            "generated_at": self.generated_at,
            "db_schema_version": self.db_schema_version,
            "decision_id": self.decision_id,
            "change_reason": self.change_reason,
            "target_linked_count": self.target_linked_count,
            "query_options": self.query_options,
            "checksum": self.checksum,
            "entries": [entry.to_dict() for entry in self.entries],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CitationParityBaseline:
        required = (
            "manifest_version",
            "run_id",
            "generated_at",
            "target_linked_count",
            "query_options",
            "checksum",
            "entries",
        )
        missing = [key for key in required if key not in data]
        if missing:
            raise ValueError(
                f"citation parity baseline is missing required field(s): {', '.join(missing)}"
            )
        return cls(
            manifest_version=data["manifest_version"],
            run_id=data["run_id"],
            generated_at=data["generated_at"],
            target_linked_count=data["target_linked_count"],
            query_options=data["query_options"],
            checksum=data["checksum"],
            entries=[CitationParityEntry.from_dict(item) for item in data["entries"]],
            db_schema_version=data.get("db_schema_version"),
            decision_id=data.get("decision_id"),
            change_reason=data.get("change_reason"),
        )


@dataclass
class CitationParityComparisonEntry:
    """How one target's current results compare with the baseline."""

    target_id: str
    top1_match: bool
    top3_contains_baseline: bool
    page_range_match: bool


@dataclass
class CitationParityArtifact:
    """The citation parity report written next to the other manifests."""

    manifest_version: int
    run_id: str
    generated_at: str
    baseline_path: str
    baseline_mode: str
    baseline_checksum: str | None
    baseline_missing: bool
    target_linked_count: int
    comparable_count: int
    top1_parity: float | None
    top3_containment: float | None
    page_range_parity: float | None
    baseline_created: bool
    entries: list[CitationParityComparisonEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CitationParityComputation:
    """Summary of a citation parity run."""

    baseline_run_id: str | None
    baseline_checksum: str | None
    baseline_created: bool
    baseline_missing: bool
    target_linked_total: int
    comparable_total: int
    top1_parity: float | None
    top3_containment: float | None
    page_range_parity: float | None


def _first(results: list[CitationParityIdentity]) -> CitationParityIdentity | None:
    return results[0] if results else None


def build_citation_parity_artifacts(
    connection: sqlite3.Connection,
    manifest_dir: str | Path,
    baseline_path: str | Path,
    baseline_mode: CitationBaselineMode | str,
    run_id: str,
    refs: list[GoldReference],
    db_schema_version: str | None = None,
) -> CitationParityComputation:
    """Compare current citations with the baseline, bootstrapping it if asked to.

    Writes citation_parity_report.json into manifest_dir.
    """
    mode = CitationBaselineMode(baseline_mode)
    baseline_path = Path(baseline_path)
    report_path = Path(manifest_dir) / "citation_parity_report.json"
    current_entries = collect_citation_parity_entries(connection, refs)
    current_checksum = checksum_citation_entries(current_entries)

    baseline_created = False
    baseline_missing = False
    decision_id, change_reason = resolve_citation_baseline_rationale()

    baseline: CitationParityBaseline | None
    if mode is CitationBaselineMode.BOOTSTRAP:
        if baseline_path.exists() and (decision_id is None or change_reason is None):
            raise ValueError(
                f"{WP2_CITATION_BASELINE_MODE_ENV}=bootstrap would rotate existing lockfile "
                f"at {baseline_path}; set both {WP2_CITATION_BASELINE_DECISION_ENV} "
                f"and {WP2_CITATION_BASELINE_REASON_ENV}"
            )
        baseline_created = True
        baseline = CitationParityBaseline(
            manifest_version=1,
            run_id=run_id,
            generated_at=_now_utc_string(),
            db_schema_version=db_schema_version,
            decision_id=decision_id,
            change_reason=change_reason,
            target_linked_count=len(current_entries),
            query_options="doc+reference deterministic top3",
            checksum=current_checksum,
            entries=list(current_entries),
        )
        write_citation_parity_lockfile(baseline_path, baseline)
    elif baseline_path.exists():
        baseline = read_citation_parity_lockfile(baseline_path)
    else:
        baseline_missing = True
        baseline = None

    baseline_map = (
        {entry.target_id: entry for entry in baseline.entries} if baseline is not None else {}
    )

    comparable = top1_ok = top3_ok = page_ok = 0
    comparison_entries: list[CitationParityComparisonEntry] = []

    for entry in current_entries:
        baseline_entry = baseline_map.get(entry.target_id)
        if baseline_entry is None:
            continue

        comparable += 1
        baseline_top = _first(baseline_entry.top_results)
        current_top = _first(entry.top_results)
        top1_match = baseline_top == current_top
        top3_contains_baseline = set(baseline_entry.top_results) <= set(entry.top_results)
        page_range_match = (
            baseline_top is not None
            and current_top is not None
            and baseline_top.page_start == current_top.page_start
            and baseline_top.page_end == current_top.page_end
        )

        top1_ok += top1_match
        top3_ok += top3_contains_baseline
        page_ok += page_range_match

        comparison_entries.append(
            CitationParityComparisonEntry(
                target_id=entry.target_id,
                top1_match=top1_match,
                top3_contains_baseline=top3_contains_baseline,
                page_range_match=page_range_match,
            )
        )

    top1_parity = ratio(top1_ok, comparable)
    top3_containment = ratio(top3_ok, comparable)
    page_range_parity = ratio(page_ok, comparable)
    baseline_checksum = baseline.checksum if baseline is not None else None

    artifact = CitationParityArtifact(
        manifest_version=1,
        run_id=run_id,
        generated_at=_now_utc_string(),
        baseline_path=str(baseline_path),
        baseline_mode=mode.as_str(),
        baseline_checksum=baseline_checksum,
        baseline_missing=baseline_missing,
        target_linked_count=len(current_entries),
        comparable_count=comparable,
        top1_parity=top1_parity,
        top3_containment=top3_containment,
        page_range_parity=page_range_parity,
        baseline_created=baseline_created,
        entries=comparison_entries,
    )
    _write_json_pretty(report_path, artifact.to_dict())

    return CitationParityComputation(
        baseline_run_id=baseline.run_id if baseline is not None else None,
        baseline_checksum=baseline_checksum,
        baseline_created=baseline_created,
        baseline_missing=baseline_missing,
        target_linked_total=len(current_entries),
        comparable_total=comparable,
        top1_parity=top1_parity,
        top3_containment=top3_containment,
        page_range_parity=page_range_parity,
    )


def _env_value(name: str) -> str | None:
    value = os.environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def resolve_citation_baseline_rationale() -> tuple[str | None, str | None]:
    """The decision id and change reason for rotating the baseline, from the environment."""
    return (
        _env_value(WP2_CITATION_BASELINE_DECISION_ENV),
        _env_value(WP2_CITATION_BASELINE_REASON_ENV),
    )


def write_citation_parity_lockfile(path: str | Path, baseline: CitationParityBaseline) -> None:
    """Write the baseline lockfile, creating its directory when needed."""
    _write_json_pretty(Path(path), baseline.to_dict())


def read_citation_parity_lockfile(path: str | Path) -> CitationParityBaseline:
    """Read a baseline lockfile, refusing one that carries document text."""
    path = Path(path)
    try:
        parsed = json.loads(path.read_bytes())
    except json.JSONDecodeError as error:
        raise ValueError(f"failed to parse {path}: {error}") from error
    ensure_citation_baseline_metadata_only(parsed)
    if not isinstance(parsed, dict):
        raise ValueError(f"failed to decode {path}: expected a JSON object")
    return CitationParityBaseline.from_dict(parsed)


def ensure_citation_baseline_metadata_only(value: Any) -> None:
    """Raise ValueError if any object key in the document may carry source text."""
    stack: list[tuple[str, Any]] = [("$", value)]
    while stack:
        path, node = stack.pop()
        if isinstance(node, dict):
            for key, child in node.items():
                if str(key).lower() in _FORBIDDEN_BASELINE_KEYS:
                    raise ValueError(
                        "citation parity lockfile contains forbidden text-bearing key "
                        f"'{key}' at {path}"
                    )
                stack.append((f"{path}.{key}", child))
        elif isinstance(node, list):
            stack.extend((f"{path}[{index}]", child) for index, child in enumerate(node))


def collect_citation_parity_entries(
    connection: sqlite3.Connection, refs: list[GoldReference]
) -> list[CitationParityEntry]:
    """Top citation results for each distinct target id, ordered by target id."""
    target_refs = sorted(
        (
            (reference.target_id.strip(), reference.doc_id, reference.reference)
            for reference in refs
            if reference.target_id is not None
        ),
        key=lambda item: item[0],
    )

    entries: list[CitationParityEntry] = []
    for target_id, doc_id, reference in target_refs:
        if entries and entries[-1].target_id == target_id:
            continue
        entries.append(
            CitationParityEntry(
                target_id=target_id,
                doc_id=doc_id,
                reference=reference,
                top_results=query_citation_parity_results(connection, doc_id, reference),
            )
        )
    return entries


def query_citation_parity_results(
    connection: sqlite3.Connection, doc_id: str, reference: str
) -> list[CitationParityIdentity]:
    """The three best-matching chunks of a document for a reference, as identities."""
    out: list[CitationParityIdentity] = []
    for (
        raw_ref,
        anchor_type,
        anchor_label_norm,
        citation_anchor_id,
        page_start,
        page_end,
        _chunk_id,
    ) in connection.execute(_PARITY_RESULTS_SQL, (doc_id, reference)):
        if citation_anchor_id.strip():
            anchor_identity = citation_anchor_id
        else:
            anchor_identity = f"{anchor_type.strip()}:{anchor_label_norm.strip()}"
        out.append(
            CitationParityIdentity(
                canonical_ref=canonicalize_reference_for_parity(raw_ref),
                anchor_identity=anchor_identity,
                page_start=page_start,
                page_end=page_end,
            )
        )
    return out


def canonicalize_reference_for_parity(reference: str) -> str:
    """Drop a trailing item/note/para/row qualifier and surrounding whitespace."""
    for separator in _REFERENCE_SEPARATORS:
        base, found, _ = reference.partition(separator)
        if found:
            return base.strip()
    return reference.strip()


def checksum_citation_entries(entries: list[CitationParityEntry]) -> str:
    """A stable 16-hex-digit checksum over the entries and their results."""
    hasher = hashlib.blake2b(digest_size=8)
    for entry in entries:
        record = [
            entry.target_id,
            entry.doc_id,
            entry.reference,
            [
                [result.canonical_ref, result.anchor_identity, result.page_start, result.page_end]
                for result in entry.top_results
            ],
        ]
        hasher.update(json.dumps(record, ensure_ascii=False).encode("utf-8"))
        hasher.update(b"\x00")
    return hasher.hexdigest()


def replay_stability_ratio(
    current_entries: list[PageProvenanceEntry],
    previous_entries: list[PageProvenanceEntry],
    backend: str,
) -> float | None:
    """Share of pages of one backend whose character count is unchanged since the last run."""
    if not current_entries or not previous_entries:
        return None

    previous_map = {
        (entry.doc_id, entry.page_pdf): entry.text_char_count
        for entry in previous_entries
        if entry.backend == backend
    }
    if not previous_map:
        return None

    comparable = stable = 0
    for entry in current_entries:
        if entry.backend != backend:
            continue
        previous_chars = previous_map.get((entry.doc_id, entry.page_pdf))
        if previous_chars is None:
            continue
        comparable += 1
        if previous_chars == entry.text_char_count:
            stable += 1

    return ratio(stable, comparable)