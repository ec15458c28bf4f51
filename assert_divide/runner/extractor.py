"""
extractor.py — Parses the obligation under the cursor.

Responsibility: Given the buffer lines and a 0-based line index, decide whether
that line is a single-statement obligation (`assert <expr>;`, optionally
followed by a line comment) and return it as an Obligation.

Rejected (raise NotAnObligation):
  - line index outside the buffer
  - lines that don't start with the `assert` keyword
  - attribute forms (`assert {:attr} e;`) and `assert e by { ... }` proofs
  - a missing terminator or an empty expression
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

from assert_divide.config import ASSERT_KEYWORD, STATEMENT_TERMINATOR
from assert_divide.models import NotAnObligation, Obligation

logger = logging.getLogger(__name__)

# `assert <expr>;` with an optional trailing `// comment`. The expression is
# matched lazily so a `;` inside the trailing comment doesn't leak into it.
OBLIGATION_PATTERN = re.compile(
    rf"^\s*{ASSERT_KEYWORD}\s+(?P<expr>.*?)\s*{re.escape(STATEMENT_TERMINATOR)}\s*(?://.*)?$"
)

_BY_PROOF_PATTERN = re.compile(r"\bby\s*\{")


def extract_obligation(lines: Sequence[str], line: int) -> Obligation:
    """
    Extract the obligation at ``line``.

    Args:
        lines: Buffer contents, one entry per line, without newlines.
        line: 0-based cursor line.

    Returns:
        The Obligation found on that line.

    Raises:
        NotAnObligation: if the line is not a single-statement assert.
    """
    if line < 0 or line >= len(lines):
        raise NotAnObligation(
            f"Line {line} is outside the buffer ({len(lines)} lines)"
        )

    text = lines[line]
    logger.debug("Examining line %d: %s", line, text)

    stripped = text.strip()
    if not re.match(rf"^{ASSERT_KEYWORD}\b", stripped):
        raise NotAnObligation(f"Line {line} does not start with '{ASSERT_KEYWORD}'")

    match = OBLIGATION_PATTERN.match(text)
    if match is None:
        raise NotAnObligation(f"Could not parse assertion statement on line {line}")

    expr = match.group("expr").strip()
    if not expr:
        raise NotAnObligation(f"Empty assertion on line {line}")
    if expr.startswith("{:"):
        raise NotAnObligation(
            f"Assertion on line {line} carries attributes; not a plain obligation"
        )
    if _BY_PROOF_PATTERN.search(expr) or STATEMENT_TERMINATOR in expr:
        raise NotAnObligation(
            f"Line {line} holds more than a single assertion statement"
        )

    logger.info("Found assertion `%s` at line %d", expr, line)
    return Obligation(line=line, statement=expr)
