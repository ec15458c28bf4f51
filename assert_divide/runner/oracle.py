"""
oracle.py — Suggestion oracle client.

Responsibility: Ask an LLM backend for one intermediate assertion and enforce
the response contract: exactly one bare boolean expression. Anything else is
never handed to the mutator.

Normalisation before the contract check (models routinely add these):
  - surrounding whitespace and markdown code fences
  - one leading `assert` keyword and one trailing `;`

Contract (after normalisation), violations raise OracleMalformed:
  - non-empty, single line
  - no `;` statement separator, no `by { ... }` proof, no leading `assert`
  - not a repeat of the target or of an already-tried candidate

Backend exceptions become OracleUnavailable. propose() catches both, logs them
distinctly, and returns a Suggestion with no candidate and the failure reason;
the orchestrator treats that as "abandon".
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Protocol

from assert_divide.config import ASSERT_KEYWORD, STATEMENT_TERMINATOR
from assert_divide.models import Obligation, OracleMalformed, OracleUnavailable, Suggestion
from assert_divide.runner.prompt_builder import build_prompt

logger = logging.getLogger(__name__)

_LEADING_KEYWORD = re.compile(rf"^{ASSERT_KEYWORD}\s+")
_FORBIDDEN = (STATEMENT_TERMINATOR, "\n", "\r")
_BY_PROOF = re.compile(r"\bby\s*\{")


class LlmBackend(Protocol):
    name: str

    async def complete(self, prompt: str) -> str: ...


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else cleaned[3:]
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[: -len("```")]
    return cleaned.strip()


def _normalise_expression(statement: str) -> str:
    return " ".join(statement.split())


def parse_candidate(raw: str, target: Obligation, excluded: Iterable[str] = ()) -> str:
    """
    Turn a raw oracle answer into one bare candidate statement.

    Raises:
        OracleMalformed: if the answer is not exactly one statement, or
            repeats the target or an excluded candidate.
    """
    candidate = _strip_fences(raw)
    candidate = _LEADING_KEYWORD.sub("", candidate, count=1)
    if candidate.endswith(STATEMENT_TERMINATOR):
        candidate = candidate[: -len(STATEMENT_TERMINATOR)]
    candidate = candidate.strip()

    if not candidate:
        raise OracleMalformed("empty response")
    for token in _FORBIDDEN:
        if token in candidate:
            raise OracleMalformed(
                f"response is not a single statement (contains {token!r}): {candidate!r}"
            )
    if _BY_PROOF.search(candidate):
        raise OracleMalformed(f"response carries a proof block: {candidate!r}")
    if _LEADING_KEYWORD.match(candidate) or candidate == ASSERT_KEYWORD:
        raise OracleMalformed(f"response has a nested assert: {candidate!r}")

    key = _normalise_expression(candidate)
    if key == _normalise_expression(target.statement):
        raise OracleMalformed(f"response repeats the target: {candidate!r}")
    if key in {_normalise_expression(e) for e in excluded}:
        raise OracleMalformed(f"response repeats an already-tried candidate: {candidate!r}")

    return candidate


class SuggestionClient:
    """Wraps one LlmBackend call per suggestion."""

    def __init__(self, backend: LlmBackend):
        self._backend = backend
        self.calls = 0

    async def propose(
        self,
        context: str,
        target: Obligation,
        buffer_text: str,
        buffer_id: str,
        excluded: Iterable[str] = (),
    ) -> Suggestion:
        """
        Request one intermediate assertion for ``target``.

        Args:
            context: Context window around the target line.
            target: The obligation currently being decomposed.
            buffer_text: Full buffer contents (logged for inspection only).
            buffer_id: Identity of the buffer being edited.
            excluded: Candidates already tried in this session.

        Returns:
            A Suggestion carrying the candidate statement, or no candidate and
            the reason the oracle's answer was unusable.
        """
        excluded = tuple(excluded)
        prompt = build_prompt(context, target, excluded)
        self.calls += 1
        logger.debug(
            "Oracle request #%d for %s (%d chars of buffer)",
            self.calls,
            buffer_id,
            len(buffer_text),
        )

        try:
            try:
                raw = await self._backend.complete(prompt)
            except Exception as exc:
                raise OracleUnavailable(f"{type(exc).__name__}: {exc}") from exc
            candidate = parse_candidate(raw, target, excluded)
        except OracleUnavailable as e:
            logger.warning(
                "Suggestion oracle %s unavailable for %s: %s",
                getattr(self._backend, "name", "?"),
                buffer_id,
                e,
            )
            return Suggestion(candidate=None, failure=f"oracle unavailable: {e}")
        except OracleMalformed as e:
            logger.info("Rejected oracle answer for %s: %s", buffer_id, e)
            return Suggestion(candidate=None, failure=f"oracle answer rejected: {e}")

        logger.info("Oracle suggested `%s` for `%s`", candidate, target.statement)
        return Suggestion(candidate=candidate)

    async def suggest(
        self,
        context: str,
        target: Obligation,
        buffer_text: str,
        buffer_id: str,
        excluded: Iterable[str] = (),
    ) -> str | None:
        """propose(), reduced to the candidate; None when there is none."""
        suggestion = await self.propose(context, target, buffer_text, buffer_id, excluded)
        return suggestion.candidate
