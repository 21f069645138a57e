import re

import pytest

from normindex.ingest.table_quality import (
    TableQualityCounters,
    contains_iso_watermark_noise,
    escape_csv_cell,
    estimate_expected_marker_count,
    extract_body_lines,
    extract_body_lines_preserve_blanks,
    has_row_description,
    line_is_noise,
    prefer_reconstructed_rows,
    ratio_usize,
    split_table_cells,
    table_to_csv,
    table_to_markdown,
)


def test_prefer_reconstructed_rows_when_quality_improves():
    original = TableQualityCounters(
        sparse_rows_count=4,
        overloaded_rows_count=1,
        rows_with_markers_count=5,
        rows_with_descriptions_count=1,
        marker_expected_count=5,
        marker_observed_count=5,
    )
    reconstructed = TableQualityCounters(
        sparse_rows_count=1,
        overloaded_rows_count=1,
        rows_with_markers_count=5,
        rows_with_descriptions_count=4,
        marker_expected_count=5,
        marker_observed_count=5,
    )
    assert prefer_reconstructed_rows(5, original, 5, reconstructed) is True


def test_prefer_reconstructed_rows_rejects_too_few_rows_or_no_markers():
    good = TableQualityCounters(rows_with_markers_count=3, rows_with_descriptions_count=3)
    bad = TableQualityCounters(sparse_rows_count=3, rows_with_markers_count=3)
    assert prefer_reconstructed_rows(3, bad, 1, good) is False
    assert prefer_reconstructed_rows(3, bad, 3, TableQualityCounters()) is False


def test_prefer_reconstructed_rows_keeps_equal_quality():
    same = TableQualityCounters(
        sparse_rows_count=1, rows_with_markers_count=4, rows_with_descriptions_count=3
    )
    assert prefer_reconstructed_rows(4, same, 4, same) is False


def test_ratio_usize():
    assert ratio_usize(3, 0) is None
    assert ratio_usize(1, 2) == pytest.approx(0.5)


def test_has_row_description():
    assert has_row_description(["1a", "Valid description", "++"])
    assert not has_row_description(["1b", "", "+"])
    assert not has_row_description(["1a"])
    assert not has_row_description(["1a", "++"])


def test_estimate_expected_marker_count_fills_suffix_gaps():
    assert estimate_expected_marker_count({(1, "a"), (1, "c")}) == 3
    assert estimate_expected_marker_count({(2, None)}) == 1
    assert estimate_expected_marker_count({(1, "a"), (1, "b"), (1, "c")}) == 3
    assert estimate_expected_marker_count(set()) == 0


def test_estimate_expected_marker_count_sums_groups():
    assert estimate_expected_marker_count({(1, "a"), (1, "d"), (2, None), (3, "b")}) == 6


def test_extract_body_lines_drops_heading_and_blanks():
    text = "9.3 Heading\n  first line \n\nsecond line"
    assert extract_body_lines(text, "9.3 Heading") == ["first line", "second line"]
    assert extract_body_lines_preserve_blanks(text, " 9.3 Heading ") == [
        "  first line ",
        "",
        "second line",
    ]


def test_extract_body_lines_keeps_non_heading_first_line():
    assert extract_body_lines("Intro\nBody", "Other") == ["Intro", "Body"]


def test_watermark_noise_detection():
    line = "ISO Store Order: OP-1022919 license #1/ Downloaded: 2026-02-14"
    assert contains_iso_watermark_noise(line)
    assert line_is_noise("Single user licence only, copying and networking prohibited.")
    assert contains_iso_watermark_noise("Licensed to Example Org License #7 Downloaded: today")
    assert not line_is_noise("Functional safety requirement")


def test_split_table_cells_by_regex_and_pipes():
    splitter = re.compile(r"\s{2,}")
    assert split_table_cells("1a  Description  ++", splitter) == ["1a", "Description", "++"]
    assert split_table_cells("a | b |", splitter) == ["a", "b"]
    assert split_table_cells("   ", splitter) == [""]


def test_table_to_markdown_pads_rows():
    assert table_to_markdown([["h1", "h2"], ["a"]]) == (
        "| h1 | h2 |\n| --- | --- |\n| a |  |"
    )
    assert table_to_markdown([]) == "|  |\n| --- |"


def test_table_to_csv_escapes_cells():
    rows = [["a,b", 'say "hi"', "plain"], ["x"]]
    assert table_to_csv(rows) == '"a,b","say ""hi""",plain\nx'
    assert escape_csv_cell("line\nbreak") == '"line\nbreak"'
    assert escape_csv_cell("simple") == "simple"