"""
Data models for the assert-divide loop.

Defines the value types that flow between the runner components:
  Extractor → Prompt Builder → Oracle → Mutator → Feedback Adapter → Orchestrator

Obligation and Diagnostic are frozen; DecompositionResult is produced once per
session when it reaches a terminal state. The exception hierarchy lives here
too so every component raises from the same root.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Obligation:
    """A single provable statement anchored to a (0-based) buffer line."""
    line: int
    statement: str

    def shifted(self, delta: int) -> Obligation:
        return Obligation(line=self.line + delta, statement=self.statement)

    def to_dict(self) -> dict[str, Any]:
        return {"line": self.line, "statement": self.statement}


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFORMATION = "information"
    HINT = "hint"


# Verifier-supplied categories. Only the first one means "this line does not hold".
UNRESOLVED_OBLIGATION = "unresolved-obligation"
SYNTAX = "syntax"
RESOLUTION = "resolution"
OTHER = "other"


@dataclass(frozen=True)
class Diagnostic:
    """One verifier report for a buffer line (0-based)."""
    line: int
    severity: Severity
    message: str
    category: str = OTHER


# ---------------------------------------------------------------------------
# Session states and outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DispatchToken:
    """Correlates a verification request with the attempt that issued it."""
    session_id: int
    generation: int


class SessionState(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    VERIFYING = "verifying"
    PROMOTED = "promoted"
    RETRIED = "retried"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    ABANDONED = "abandoned"


class Outcome(str, Enum):
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class StepRecord:
    """One candidate issued by the loop and what became of it."""
    generation: int
    candidate: str
    line: int
    verdict: str = "pending"     # "pending", "succeeded", "promoted", "retried"

    def to_dict(self) -> dict[str, Any]:
        return {
            "generation": self.generation,
            "candidate": self.candidate,
            "line": self.line,
            "verdict": self.verdict,
        }


@dataclass(frozen=True)
class Suggestion:
    """One oracle answer: a usable candidate, or why there is none."""
    candidate: str | None
    failure: str = ""


@dataclass(frozen=True)
class DecompositionResult:
    """Terminal report for one session. Surfaced to the user exactly once."""
    outcome: Outcome
    buffer_id: str
    root: Obligation
    target: Obligation
    attempts: int
    max_depth: int
    reason: str = ""
    history: tuple[Obligation, ...] = ()
    steps: tuple[StepRecord, ...] = field(default_factory=tuple)

    @property
    def proved(self) -> bool:
        return self.outcome is Outcome.SUCCEEDED

    def message(self) -> str:
        """Human-readable explanation of how the session ended."""
        if self.outcome is Outcome.SUCCEEDED:
            return (
                f"Assert-divide: proved `{self.root.statement}` "
                f"after {self.attempts} intermediate step(s)."
            )
        if self.outcome is Outcome.EXHAUSTED:
            return (
                f"Assert-divide: gave up after {self.attempts} attempts "
                f"(max depth {self.max_depth}) without proving "
                f"`{self.root.statement}`."
            )
        detail = f" ({self.reason})" if self.reason else ""
        return (
            f"Assert-divide: could not understand the target "
            f"`{self.target.statement}`{detail}."
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "buffer_id": self.buffer_id,
            "root": self.root.to_dict(),
            "target": self.target.to_dict(),
            "attempts": self.attempts,
            "max_depth": self.max_depth,
            "reason": self.reason,
            "history": [o.to_dict() for o in self.history],
            "steps": [s.to_dict() for s in self.steps],
        }


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class AssertDivideError(Exception):
    """Base class for assert-divide failures."""


class NotAnObligation(AssertDivideError):
    """The selected line is not a single-statement `assert` obligation."""


class OracleUnavailable(AssertDivideError):
    """The suggestion backend could not be reached or raised."""


class OracleMalformed(AssertDivideError):
    """The suggestion backend answered with something other than one bare statement."""


class DepthExhausted(AssertDivideError):
    """The session used its whole depth budget without proving the target."""


class VerifierUnavailable(AssertDivideError):
    """The verifier could not be run on the buffer."""
