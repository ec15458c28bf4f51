"""
mutator.py — Applies the loop's edits to the buffer.

Two edits, both flushed before the call returns:
  insert(line, stmt)  — new `assert stmt; // intermediate step` line before `line`
  disable(line)       — comment the line out in place; line numbering unchanged

request_verification() is fire-and-forget: the verifier publishes its result
later through the feedback adapter.
"""

from __future__ import annotations

import logging
from typing import Protocol

from assert_divide.config import (
    ASSERT_KEYWORD,
    INTERMEDIATE_MARKER,
    LINE_COMMENT,
    STATEMENT_TERMINATOR,
)
from assert_divide.models import DispatchToken
from assert_divide.runner.buffer import TextBuffer

logger = logging.getLogger(__name__)


class Verifier(Protocol):
    def request_verification(self, buffer_id: str, token: DispatchToken | None = None) -> None: ...


def _indentation(text: str) -> str:
    return text[: len(text) - len(text.lstrip())]


def format_assertion(statement: str, indent: str) -> str:
    return f"{indent}{ASSERT_KEYWORD} {statement}{STATEMENT_TERMINATOR} {INTERMEDIATE_MARKER}"


class DocumentMutator:
    def __init__(self, buffer: TextBuffer):
        self.buffer = buffer

    async def insert(self, line: int, statement: str) -> None:
        """Insert an assertion for ``statement`` immediately before ``line``."""
        lines = self.buffer.lines()
        anchor = lines[line] if line < len(lines) else (lines[-1] if lines else "")
        new_line = format_assertion(statement, _indentation(anchor))
        self.buffer.insert_line(line, new_line)
        await self.buffer.flush()
        logger.info("Inserted `%s` at line %d", new_line.strip(), line)

    async def disable(self, line: int) -> None:
        """Comment out ``line`` so the verifier ignores it."""
        text = self.buffer.lines()[line]
        indent = _indentation(text)
        if text.lstrip().startswith(LINE_COMMENT):
            logger.debug("Line %d already disabled", line)
            return
        self.buffer.replace_line(line, f"{indent}{LINE_COMMENT} {text[len(indent):]}")
        await self.buffer.flush()
        logger.info("Disabled line %d", line)

    def request_verification(self, verifier: Verifier, token: DispatchToken | None = None) -> None:
        verifier.request_verification(self.buffer.buffer_id, token)
