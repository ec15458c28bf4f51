"""
orchestrator.py — The assert-divide decomposition loop.

Responsibility: Given an `assert` the verifier cannot prove, search for a chain
of intermediate assertions that, inserted above it, make it provable.

State machine per session:
  Idle → Generating → Verifying → { Promoted → Generating
                                  | Retried  → Generating
                                  | Succeeded | Exhausted | Abandoned }

advance() asks the oracle for a candidate, inserts it directly above the
target, and requests verification. It returns as soon as the request is sent;
the loop resumes in on_feedback() when the verifier's diagnostics arrive.
on_feedback() classifies the result:

  target holds, candidate holds     → Succeeded
  target holds, candidate doesn't   → Promote (the candidate becomes the target)
  target doesn't hold               → Retry (disable the candidate, ask again)

Every dispatch carries the session's generation. Feedback for an older
generation, for a replaced session, or arriving while nothing is in flight is
discarded. Depth is capped at max_depth, so a session makes at most
max_depth + 1 advance() calls whatever the oracle does.

Usage:
  python -m assert_divide Program.dfy --line 42

Or programmatically:
  from assert_divide.runner.orchestrator import run_decomposition
  result = run_decomposition(Path("Program.dfy"), line=41)
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable

from assert_divide.config import CONTEXT_RADIUS, MAX_DEPTH, DecomposeConfig
from assert_divide.models import (
    DecompositionResult,
    DepthExhausted,
    DispatchToken,
    Obligation,
    Outcome,
    SessionState,
    StepRecord,
    VerifierUnavailable,
)
from assert_divide.runner.buffer import FileBuffer, TextBuffer
from assert_divide.runner.extractor import extract_obligation
from assert_divide.runner.feedback import FeedbackAdapter
from assert_divide.runner.manifest import Manifest
from assert_divide.runner.mutator import Verifier
from assert_divide.runner.oracle import SuggestionClient
from assert_divide.runner.prompt_builder import context_window
from assert_divide.runner.session import Session, SessionRegistry

logger = logging.getLogger(__name__)

_TERMINAL_STATES = {
    Outcome.SUCCEEDED: SessionState.SUCCEEDED,
    Outcome.EXHAUSTED: SessionState.EXHAUSTED,
    Outcome.ABANDONED: SessionState.ABANDONED,
}


class DecompositionOrchestrator:
    """Owns the session registry and drives every session's loop."""

    def __init__(
        self,
        oracle: SuggestionClient,
        verifier: Verifier,
        feedback: FeedbackAdapter,
        *,
        max_depth: int = MAX_DEPTH,
        context_radius: int = CONTEXT_RADIUS,
        notify: Callable[[DecompositionResult], None] | None = None,
        manifest: Manifest | None = None,
    ):
        self.oracle = oracle
        self.verifier = verifier
        self.feedback = feedback
        self.max_depth = max_depth
        self.context_radius = context_radius
        self.notify = notify
        self.manifest = manifest
        self.registry = SessionRegistry()
        self._tasks: set[asyncio.Task] = set()
        feedback.bind(self)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def start(self, buffer: TextBuffer, line: int) -> Session:
        """
        Begin decomposing the assertion at ``line`` (0-based) in ``buffer``.

        Raises NotAnObligation before touching any state if the line is not a
        single assertion. A live session on the same buffer is cancelled first.
        """
        target = extract_obligation(buffer.lines(), line)

        existing = self.registry.get(buffer.buffer_id)
        if existing is not None:
            logger.info(
                "Cancelling live session #%d on %s", existing.session_id, buffer.buffer_id
            )
            existing.invalidate()
            self._finish(existing, Outcome.ABANDONED, "superseded by a new decomposition")

        session = self.registry.create(buffer, target, self.max_depth)
        session.result = asyncio.get_running_loop().create_future()
        logger.info(
            "=== Session #%d: decomposing `%s` at line %d of %s ===",
            session.session_id,
            target.statement,
            target.line,
            buffer.buffer_id,
        )

        async with session.lock:
            await self._guarded(session, self.advance(session))
        return session

    async def decompose(self, buffer: TextBuffer, line: int) -> DecompositionResult:
        """start() and wait for the session's terminal result."""
        session = await self.start(buffer, line)
        return await session.wait()

    # ------------------------------------------------------------------
    # Loop steps
    # ------------------------------------------------------------------

    async def advance(self, session: Session) -> None:
        """Issue the next candidate for ``session.target`` and request verification."""
        if session.cancelled or session.finished:
            return
        session.advance_calls += 1

        if session.depth >= session.max_depth:
            logger.info("Maximum depth %d reached", session.max_depth)
            self._finish(
                session,
                Outcome.EXHAUSTED,
                str(DepthExhausted(f"no proof within {session.max_depth} attempts")),
            )
            return

        session.depth += 1
        session.state = SessionState.GENERATING
        logger.info(
            "Trying assert step at depth %d/%d for `%s` (line %d)",
            session.depth,
            session.max_depth,
            session.target.statement,
            session.target.line,
        )

        context = context_window(
            session.buffer.lines(), session.target.line, self.context_radius
        )
        suggestion = await self.oracle.propose(
            context,
            session.target,
            session.buffer.text(),
            session.buffer_id,
            excluded=session.tried,
        )

        if session.cancelled:
            logger.debug("Session #%d cancelled while awaiting the oracle", session.session_id)
            return
        candidate = suggestion.candidate
        if candidate is None:
            self._finish(
                session,
                Outcome.ABANDONED,
                suggestion.failure or "oracle produced no candidate",
            )
            return

        await session.mutator.insert(session.target.line, candidate)
        if session.cancelled:
            # The buffer now belongs to the session that replaced this one.
            logger.debug("Session #%d cancelled while inserting", session.session_id)
            return
        session.target = session.target.shifted(1)
        session.attempt = Obligation(line=session.target.line - 1, statement=candidate)
        session.generation += 1
        session.tried.append(candidate)
        session.steps.append(
            StepRecord(
                generation=session.generation,
                candidate=candidate,
                line=session.attempt.line,
            )
        )

        session.state = SessionState.VERIFYING
        session.awaiting_feedback = True
        session.mutator.request_verification(self.verifier, session.token())
        # Further progress is driven by on_feedback().

    async def on_feedback(self, session: Session, generation_at_dispatch: int) -> None:
        """Classify the verifier's verdict for the attempt issued at ``generation_at_dispatch``."""
        if session.cancelled or session.finished:
            logger.debug("Discarding feedback for closed session #%d", session.session_id)
            return
        if not session.awaiting_feedback or generation_at_dispatch != session.generation:
            logger.debug(
                "Discarding stale feedback for session #%d (generation %d, current %d)",
                session.session_id,
                generation_at_dispatch,
                session.generation,
            )
            return
        session.awaiting_feedback = False

        buffer_id = session.buffer_id
        target_ok = self.feedback.holds(buffer_id, session.target.line)

        attempt = session.attempt
        if attempt is None:
            if target_ok:
                self._finish(session, Outcome.SUCCEEDED)
            else:
                self._finish(session, Outcome.ABANDONED, "no intermediate assertion and target not verifying")
            return

        attempt_ok = self.feedback.holds(buffer_id, attempt.line)
        logger.info(
            "Diagnostic check: target line %d %s, attempt line %d %s",
            session.target.line,
            "verified" if target_ok else "failed",
            attempt.line,
            "verified" if attempt_ok else "failed",
        )

        if target_ok and attempt_ok:
            session.record_verdict("succeeded")
            self._finish(session, Outcome.SUCCEEDED)
            return

        if target_ok:
            # The candidate is usable as a hypothesis even while unproved, so
            # it becomes the next, harder target.
            session.record_verdict("promoted")
            session.history.append(session.target)
            session.target = attempt
            session.attempt = None
            session.state = SessionState.PROMOTED
            logger.info("Promoting `%s` to target", attempt.statement)
            await self.advance(session)
            return

        session.record_verdict("retried")
        await session.mutator.disable(attempt.line)
        session.attempt = None
        session.state = SessionState.RETRIED
        logger.info("Intermediate assertion did not help, trying again")
        await self.advance(session)

    # ------------------------------------------------------------------
    # FeedbackSink (called synchronously by the feedback adapter)
    # ------------------------------------------------------------------

    def has_session(self, buffer_id: str) -> bool:
        return buffer_id in self.registry

    def feedback_arrived(self, buffer_id: str, token: DispatchToken | None) -> None:
        session = self._resolve(buffer_id, token)
        if session is None:
            return
        generation = token.generation if token is not None else session.generation
        self._spawn(session, self.on_feedback(session, generation))

    def verifier_failed(self, buffer_id: str, message: str, token: DispatchToken | None) -> None:
        session = self._resolve(buffer_id, token)
        if session is None:
            return
        generation = token.generation if token is not None else session.generation
        self._spawn(session, self._on_verifier_failure(session, generation, message))

    async def _on_verifier_failure(self, session: Session, generation: int, message: str) -> None:
        if not session.awaiting_feedback or generation != session.generation or session.finished:
            logger.debug("Discarding stale verifier failure for session #%d", session.session_id)
            return
        session.awaiting_feedback = False
        self._finish(session, Outcome.ABANDONED, str(VerifierUnavailable(message)))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve(self, buffer_id: str, token: DispatchToken | None) -> Session | None:
        session = self.registry.get(buffer_id)
        if session is None:
            logger.debug("Feedback for %s without a live session", buffer_id)
            return None
        if token is not None and token.session_id != session.session_id:
            logger.debug(
                "Discarding feedback from replaced session #%d on %s",
                token.session_id,
                buffer_id,
            )
            return None
        return session

    def _spawn(self, session: Session, step) -> None:
        async def _locked() -> None:
            async with session.lock:
                await self._guarded(session, step)

        task = asyncio.get_running_loop().create_task(_locked())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guarded(self, session: Session, step) -> None:
        """Run a loop step; an unexpected error ends the session instead of hanging it."""
        try:
            await step
        except Exception as e:
            logger.exception("Assert-divide step failed for session #%d", session.session_id)
            session.awaiting_feedback = False
            self._finish(session, Outcome.ABANDONED, f"{type(e).__name__}: {e}")

    def _finish(self, session: Session, outcome: Outcome, reason: str = "") -> None:
        """Tear down ``session`` and report its outcome exactly once."""
        if session.finished:
            return
        session.state = _TERMINAL_STATES[outcome]
        self.registry.remove(session)
        if self.registry.get(session.buffer_id) is None:
            self.feedback.clear(session.buffer_id)

        result = DecompositionResult(
            outcome=outcome,
            buffer_id=session.buffer_id,
            root=session.root,
            target=session.target,
            attempts=session.depth,
            max_depth=session.max_depth,
            reason=reason,
            history=tuple(session.history),
            steps=tuple(session.steps),
        )
        # Resolving the future is what marks the session finished; side effects
        # below must not be able to prevent it.
        if session.result is not None:
            session.result.set_result(result)
        if outcome is Outcome.SUCCEEDED:
            logger.info("Bingo! %s", result.message())
        else:
            logger.warning("%s", result.message())

        if self.manifest is not None:
            try:
                self.manifest.record(result)
                self.manifest.write()
            except OSError:
                logger.exception("Could not write manifest %s", self.manifest.path)
        if self.notify is not None:
            try:
                self.notify(result)
            except Exception:
                logger.exception("Result callback failed for session #%d", session.session_id)


async def _run_decomposition_async(
    path: Path,
    line: int,
    config: DecomposeConfig,
    notify: Callable[[DecompositionResult], None] | None,
) -> DecompositionResult:
    from assert_divide.llm import create_backend
    from assert_divide.runner.verifier import DafnyVerifier

    buffer = FileBuffer(path)
    verifier = DafnyVerifier(
        executable=config.dafny_path,
        timeout=config.verification_timeout,
    )
    feedback = FeedbackAdapter()
    verifier.subscribe(feedback)

    manifest = Manifest.load(Path(config.manifest_path)) if config.manifest_path else None
    orchestrator = DecompositionOrchestrator(
        oracle=SuggestionClient(create_backend(config)),
        verifier=verifier,
        feedback=feedback,
        max_depth=config.max_depth,
        context_radius=config.context_radius,
        notify=notify,
        manifest=manifest,
    )
    try:
        return await orchestrator.decompose(buffer, line)
    finally:
        await verifier.aclose()


def run_decomposition(
    path: Path,
    line: int,
    config: DecomposeConfig | None = None,
    notify: Callable[[DecompositionResult], None] | None = None,
) -> DecompositionResult:
    """
    Run one assert-divide session against a Dafny file on disk.

    Args:
        path: The .dfy file to edit and verify.
        line: 0-based line of the assertion to decompose.
        config: Run settings. Defaults to DecomposeConfig.from_env().
        notify: Called once with the terminal result.

    Returns:
        The session's DecompositionResult.

    Raises:
        NotAnObligation: if ``line`` is not a single assertion.
        FileNotFoundError: if ``path`` does not exist.
    """
    if config is None:
        config = DecomposeConfig.from_env()
    config.validate()
    if not path.exists():
        raise FileNotFoundError(f"Dafny file not found: {path}")
    return asyncio.run(_run_decomposition_async(path, line, config, notify))
