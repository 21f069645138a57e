"""Citation strings for query results."""

from __future__ import annotations

from normindex.query.models import QueryCandidate

_ANCHOR_SEPARATORS = (" item ", " note ", " para ", " row ")


def format_page_range(start: int | None, end: int | None) -> str:
    """Render a PDF page range, collapsing equal ends and reporting 'unknown'."""
    if start is not None and end is not None:
        return str(start) if start == end else f"{start}-{end}"
    if start is not None:
        return str(start)
    if end is not None:
        return str(end)
    return "unknown"


def marker_base_reference(reference: str) -> str:
    """Strip a trailing item/note/para/row qualifier from a reference."""
    for separator in _ANCHOR_SEPARATORS:
        base, found, _ = reference.partition(separator)
        if found:
            return base
    return reference


def render_citation(candidate: QueryCandidate) -> str:
    """Build a human-readable citation for a candidate."""
    reference = candidate.reference or "(unreferenced chunk)"
    anchor_type = candidate.anchor_type
    label = candidate.anchor_label_norm

    if anchor_type == "marker" and label:
        base = marker_base_reference(reference)
        reference = f"{base}, {label}" if label.startswith("NOTE") else f"{base}({label})"
    elif anchor_type == "paragraph" and label:
        reference = f"{marker_base_reference(reference)}, para {label}"

    pages = format_page_range(candidate.page_pdf_start, candidate.page_pdf_end)
    return f"ISO 26262-{candidate.part}:{candidate.year}, {reference}, PDF pages {pages}"