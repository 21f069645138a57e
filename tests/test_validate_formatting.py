import pytest

from normindex.query.citation import format_page_range as query_format_page_range
from normindex.validate.formatting import format_page_range


def test_unknown_when_both_missing():
    assert format_page_range(None, None) == "unknown"


def test_equal_ends_collapse():
    assert format_page_range(42, 42) == "42"


def test_distinct_ends_are_joined_by_dash():
    start, end = format_page_range(4, 9).split("-")
    assert (int(start), int(end)) == (4, 9)


@pytest.mark.parametrize(("start", "end"), [(11, None), (None, 11)])
def test_single_known_end(start, end):
    assert format_page_range(start, end) == "11"


@pytest.mark.parametrize("start", [None, 1, 5])
@pytest.mark.parametrize("end", [None, 1, 7])
def test_matches_query_formatter(start, end):
    assert format_page_range(start, end) == query_format_page_range(start, end)