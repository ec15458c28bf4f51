"""
prompt_builder.py — Builds the suggestion oracle's prompt.

Responsibility: Cut a bounded window of source around the target obligation and
wrap it, together with the target statement and the candidates already tried,
into the prompt passed to the LLM backend.

The window is the half-open range [L-K, L+K) clipped to the buffer, with the
target line wrapped in `>>> ... <<<` markers. Both functions are pure.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from assert_divide.config import CONTEXT_RADIUS
from assert_divide.models import Obligation

TARGET_OPEN = ">>> "
TARGET_CLOSE = " <<<"

INSTRUCTIONS = """\
Given the following Dafny verification context, suggest a single-line logical \
step that would help prove the target assertion. Your response must be exactly \
one assertion, no comments, no additional explanation. The assertion must be \
simpler than the target and follow directly from the context."""

OUTPUT_RULES = """\
Provide just the boolean expression, without the 'assert' keyword or \
semicolon, on a single line."""


def context_window(lines: Sequence[str], line: int, radius: int = CONTEXT_RADIUS) -> str:
    """Return the lines around ``line`` with the target line marked."""
    start = max(0, line - radius)
    end = min(len(lines), line + radius)

    out = []
    for i in range(start, end):
        if i == line:
            out.append(f"{TARGET_OPEN}{lines[i]}{TARGET_CLOSE}")
        else:
            out.append(lines[i])
    return "".join(f"{text}\n" for text in out)


def build_prompt(
    context: str,
    target: Obligation,
    excluded: Iterable[str] = (),
) -> str:
    """
    Build the complete oracle prompt.

    Args:
        context: Output of context_window() for the target line.
        target: The obligation being decomposed.
        excluded: Candidates already tried in this session; the oracle is told
            not to repeat them.

    Returns:
        Prompt string for an LlmBackend.
    """
    sections = [INSTRUCTIONS, ""]

    sections.append("Context:")
    sections.append(context.rstrip("\n"))
    sections.append("")

    sections.append(f"Target assertion: {target.statement}")
    sections.append("")

    tried = [c for c in excluded if c]
    if tried:
        sections.append(
            "These intermediate assertions were already tried and did not help. "
            "Do not suggest any of them again:"
        )
        for candidate in tried:
            sections.append(f"- {candidate}")
        sections.append("")

    sections.append(OUTPUT_RULES)
    return "\n".join(sections)
