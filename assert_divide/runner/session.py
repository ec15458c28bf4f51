"""
session.py — Per-buffer decomposition session and the registry that owns it.

A Session is the mutable state of one assert-divide run on one buffer. The
orchestrator creates it through SessionRegistry.create() and tears it down
through SessionRegistry.remove(); nothing else holds a reference that
outlives the run.

Invariants maintained by the orchestrator:
  - at most one session per buffer
  - attempt is not None  =>  attempt.line == target.line - 1
  - 0 <= depth <= max_depth
  - history is append-only
  - generation only grows; invalidate() bumps it so late feedback for a
    replaced session can never match
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from typing import Iterator

from assert_divide.models import (
    DecompositionResult,
    DispatchToken,
    Obligation,
    SessionState,
    StepRecord,
)
from assert_divide.runner.buffer import TextBuffer
from assert_divide.runner.mutator import DocumentMutator


@dataclass
class Session:
    session_id: int
    buffer: TextBuffer
    root: Obligation
    target: Obligation
    max_depth: int
    mutator: DocumentMutator
    attempt: Obligation | None = None
    depth: int = 0
    history: list[Obligation] = field(default_factory=list)
    generation: int = 0
    awaiting_feedback: bool = False
    cancelled: bool = False
    state: SessionState = SessionState.IDLE
    tried: list[str] = field(default_factory=list)
    steps: list[StepRecord] = field(default_factory=list)
    advance_calls: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    result: asyncio.Future | None = None

    @property
    def buffer_id(self) -> str:
        return self.buffer.buffer_id

    @property
    def finished(self) -> bool:
        return self.result is not None and self.result.done()

    def token(self) -> DispatchToken:
        return DispatchToken(session_id=self.session_id, generation=self.generation)

    def invalidate(self) -> None:
        """Make every outstanding dispatch for this session stale."""
        self.generation += 1
        self.cancelled = True
        self.awaiting_feedback = False

    def record_verdict(self, verdict: str) -> None:
        if self.steps:
            self.steps[-1] = replace(self.steps[-1], verdict=verdict)

    async def wait(self) -> DecompositionResult:
        if self.result is None:
            raise RuntimeError("Session was never started")
        return await self.result


class SessionRegistry:
    """The orchestrator's map of buffer id → live session."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._next_id = 1

    def create(self, buffer: TextBuffer, target: Obligation, max_depth: int) -> Session:
        if buffer.buffer_id in self._sessions:
            raise RuntimeError(f"A session is already live for {buffer.buffer_id}")
        session = Session(
            session_id=self._next_id,
            buffer=buffer,
            root=target,
            target=target,
            max_depth=max_depth,
            mutator=DocumentMutator(buffer),
        )
        self._next_id += 1
        self._sessions[buffer.buffer_id] = session
        return session

    def get(self, buffer_id: str) -> Session | None:
        return self._sessions.get(buffer_id)

    def remove(self, session: Session) -> None:
        """Drop ``session`` if it is still the live one for its buffer."""
        if self._sessions.get(session.buffer_id) is session:
            del self._sessions[session.buffer_id]

    def __contains__(self, buffer_id: object) -> bool:
        return buffer_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))
