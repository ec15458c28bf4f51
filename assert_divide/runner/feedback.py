"""
feedback.py — Turns verifier notifications into "does line L hold?".

The adapter is the verifier's listener. It keeps the latest diagnostics per
buffer, but only for buffers that have a live decomposition session; anything
else is dropped on arrival. After storing, it tells the orchestrator that
feedback arrived, passing along the dispatch token the verifier echoed (if any).

Classification is pluggable:
  is_unresolved(d) — d marks an obligation the verifier could not discharge
  is_blocking(d)   — d means verification did not run at all (parse or
                     resolution errors); while present, no line holds
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from assert_divide.models import (
    RESOLUTION,
    SYNTAX,
    UNRESOLVED_OBLIGATION,
    Diagnostic,
    DispatchToken,
    Severity,
)

logger = logging.getLogger(__name__)

DiagnosticPredicate = Callable[[Diagnostic], bool]


def default_is_unresolved(diagnostic: Diagnostic) -> bool:
    return (
        diagnostic.severity is Severity.ERROR
        and diagnostic.category == UNRESOLVED_OBLIGATION
    )


def default_is_blocking(diagnostic: Diagnostic) -> bool:
    return diagnostic.severity is Severity.ERROR and diagnostic.category in (SYNTAX, RESOLUTION)


class FeedbackSink(Protocol):
    def has_session(self, buffer_id: str) -> bool: ...

    def feedback_arrived(self, buffer_id: str, token: DispatchToken | None) -> None: ...

    def verifier_failed(self, buffer_id: str, message: str, token: DispatchToken | None) -> None: ...


class FeedbackAdapter:
    def __init__(
        self,
        is_unresolved: DiagnosticPredicate = default_is_unresolved,
        is_blocking: DiagnosticPredicate = default_is_blocking,
    ):
        self.is_unresolved = is_unresolved
        self.is_blocking = is_blocking
        self._diagnostics: dict[str, list[Diagnostic]] = {}
        self._sink: FeedbackSink | None = None

    def bind(self, sink: FeedbackSink) -> None:
        self._sink = sink

    def _active(self, buffer_id: str) -> bool:
        return self._sink is not None and self._sink.has_session(buffer_id)

    # -- VerificationListener ------------------------------------------------

    def on_diagnostics_changed(
        self,
        buffer_id: str,
        diagnostics: list[Diagnostic],
        token: DispatchToken | None = None,
    ) -> None:
        if not self._active(buffer_id):
            logger.debug("Ignoring diagnostics for %s: no active session", buffer_id)
            return
        self._diagnostics[buffer_id] = list(diagnostics)
        logger.debug(
            "Diagnostics for %s: unresolved at lines %s",
            buffer_id,
            sorted(self.unresolved_lines(buffer_id)),
        )
        self._sink.feedback_arrived(buffer_id, token)

    def on_verifier_failure(
        self,
        buffer_id: str,
        message: str,
        token: DispatchToken | None = None,
    ) -> None:
        if not self._active(buffer_id):
            logger.debug("Ignoring verifier failure for %s: no active session", buffer_id)
            return
        self._sink.verifier_failed(buffer_id, message, token)

    # -- Queries -------------------------------------------------------------

    def unresolved_lines(self, buffer_id: str) -> set[int]:
        return {
            d.line for d in self._diagnostics.get(buffer_id, []) if self.is_unresolved(d)
        }

    def blocked(self, buffer_id: str) -> bool:
        return any(self.is_blocking(d) for d in self._diagnostics.get(buffer_id, []))

    def holds(self, buffer_id: str, line: int) -> bool:
        """True iff no unresolved-obligation diagnostic is reported at ``line``."""
        if self.blocked(buffer_id):
            return False
        return line not in self.unresolved_lines(buffer_id)

    def clear(self, buffer_id: str) -> None:
        self._diagnostics.pop(buffer_id, None)
