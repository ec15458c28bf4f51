from __future__ import annotations

import pytest

from assert_divide.models import NotAnObligation, Obligation
from assert_divide.runner.extractor import extract_obligation

LINES = [
    "method M(x: int)",
    "{",
    "  assert x > 0;",
    "    assert a[i] == b[i] + 1;   // loop body",
    "  assert x > 0",
    "  assert ;",
    "  assert {:split_here} x > 0;",
    "  assert x > 0 by { reveal P(); }",
    "  assert x > 0; assert y > 0;",
    "  var assertion := true;",
    "  // assert x > 0;",
    "  assertx > 0;",
    "}",
]


def test_extracts_plain_assertion() -> None:
    assert extract_obligation(LINES, 2) == Obligation(line=2, statement="x > 0")


def test_extracts_assertion_with_trailing_comment() -> None:
    assert extract_obligation(LINES, 3) == Obligation(line=3, statement="a[i] == b[i] + 1")


@pytest.mark.parametrize(
    "line",
    [
        0,   # method header
        4,   # missing terminator
        5,   # empty expression
        6,   # attributes
        7,   # by-proof
        8,   # two statements
        9,   # identifier starting with "assert"
        10,  # commented out
        11,  # keyword not followed by whitespace
    ],
)
def test_rejects_non_obligations(line: int) -> None:
    with pytest.raises(NotAnObligation):
        extract_obligation(LINES, line)


@pytest.mark.parametrize("line", [-1, len(LINES)])
def test_rejects_out_of_range_lines(line: int) -> None:
    with pytest.raises(NotAnObligation):
        extract_obligation(LINES, line)
