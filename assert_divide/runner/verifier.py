"""
verifier.py — Dafny verification adapter.

Responsibility: Run `dafny verify <file>` in the background whenever the loop
asks for re-verification, turn the compiler output into structured
Diagnostics, and publish them to subscribed listeners.

request_verification() never blocks: it schedules an asyncio task and returns.
Runs for the same buffer are serialised, so listeners see results in request
order. The adapter is the only place that reads Dafny's message text; it maps
each message onto a category so downstream code never matches strings.

Dafny output line format (1-based positions):
  <file>(<line>,<col>): Error: <message>
  <file>(<line>,<col>): Warning: <message>
  <file>(<line>,<col>): Related location: <message>   (skipped)
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import Protocol, Sequence

from assert_divide.config import DAFNY_EXECUTABLE, VERIFICATION_TIMEOUT_SECONDS
from assert_divide.models import (
    OTHER,
    RESOLUTION,
    SYNTAX,
    UNRESOLVED_OBLIGATION,
    Diagnostic,
    DispatchToken,
    Severity,
)

logger = logging.getLogger(__name__)

DIAGNOSTIC_PATTERN = re.compile(
    r"^(?P<file>.+?)\((?P<line>\d+),(?P<col>\d+)\):\s*"
    r"(?P<kind>Error|Warning|Info|Related location)\s*:?\s*(?P<message>.*)$"
)

# Phrases Dafny uses for proof obligations it could not discharge.
_VERIFICATION_PHRASES = [
    "might not hold",
    "could not be proved",
    "might not be satisfied",
    "might not terminate",
    "cannot prove termination",
    "might be violated",
    "timed out",
    "out of resource",
]

_PARSE_SUMMARY = re.compile(r"\d+ parse errors? detected", re.IGNORECASE)
_RESOLUTION_SUMMARY = re.compile(r"\d+ resolution/type errors? detected", re.IGNORECASE)

_SEVERITIES = {
    "Error": Severity.ERROR,
    "Warning": Severity.WARNING,
    "Info": Severity.INFORMATION,
}


class VerificationListener(Protocol):
    def on_diagnostics_changed(
        self,
        buffer_id: str,
        diagnostics: list[Diagnostic],
        token: DispatchToken | None = None,
    ) -> None: ...

    def on_verifier_failure(
        self,
        buffer_id: str,
        message: str,
        token: DispatchToken | None = None,
    ) -> None: ...


def _classify(kind: str, message: str, phase: str) -> str:
    if kind != "Error":
        return OTHER
    if phase == SYNTAX:
        return SYNTAX
    if phase == RESOLUTION:
        return RESOLUTION
    lowered = message.lower()
    if any(phrase in lowered for phrase in _VERIFICATION_PHRASES):
        return UNRESOLVED_OBLIGATION
    return OTHER


def parse_dafny_output(output: str, base_dir: Path) -> dict[str, list[Diagnostic]]:
    """
    Parse Dafny's output into diagnostics grouped by resolved file path.

    Parse and resolution errors stop Dafny before verification, so when the
    summary line reports them every Error in the run is classified with that
    phase instead of as a verification failure.

    Note: Dafny writes diagnostics to stdout; callers should pass stdout and
    stderr combined.
    """
    phase = ""
    if _PARSE_SUMMARY.search(output):
        phase = SYNTAX
    elif _RESOLUTION_SUMMARY.search(output):
        phase = RESOLUTION

    grouped: dict[str, list[Diagnostic]] = {}
    for raw_line in output.splitlines():
        match = DIAGNOSTIC_PATTERN.match(raw_line.strip())
        if match is None:
            continue
        kind = match.group("kind")
        if kind == "Related location":
            continue
        file_path = Path(match.group("file"))
        if not file_path.is_absolute():
            file_path = base_dir / file_path
        message = match.group("message").strip()
        diagnostic = Diagnostic(
            line=int(match.group("line")) - 1,
            severity=_SEVERITIES[kind],
            message=message,
            category=_classify(kind, message, phase),
        )
        grouped.setdefault(str(file_path.resolve()), []).append(diagnostic)
    return grouped


def _blocking_elsewhere(others: dict[str, list[Diagnostic]]) -> list[Diagnostic]:
    """
    Parse/resolution errors in other files (e.g. an included module) stop
    verification of the requested file too. Restate them against that file so
    it is not read as fully verified.
    """
    restated = []
    for other_id, diagnostics in others.items():
        for d in diagnostics:
            if d.severity is Severity.ERROR and d.category in (SYNTAX, RESOLUTION):
                restated.append(
                    Diagnostic(
                        line=0,
                        severity=Severity.ERROR,
                        message=f"{Path(other_id).name}({d.line + 1}): {d.message}",
                        category=d.category,
                    )
                )
    return restated


class DafnyVerifier:
    """Runs Dafny on a buffer's file and publishes the diagnostics."""

    def __init__(
        self,
        executable: str = DAFNY_EXECUTABLE,
        timeout: int = VERIFICATION_TIMEOUT_SECONDS,
        extra_args: Sequence[str] = (),
    ):
        self.executable = executable
        self.timeout = timeout
        self.extra_args = list(extra_args)
        self._listeners: list[VerificationListener] = []
        self._locks: dict[str, asyncio.Lock] = {}
        self._tasks: set[asyncio.Task] = set()

    def subscribe(self, listener: VerificationListener) -> None:
        self._listeners.append(listener)

    def request_verification(self, buffer_id: str, token: DispatchToken | None = None) -> None:
        """Schedule a verification run for ``buffer_id`` (a file path) and return."""
        task = asyncio.get_running_loop().create_task(self._run(buffer_id, token))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def aclose(self) -> None:
        """Cancel any runs still in flight."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _run(self, buffer_id: str, token: DispatchToken | None) -> None:
        lock = self._locks.setdefault(buffer_id, asyncio.Lock())
        async with lock:
            try:
                await self._verify(buffer_id, token)
            except Exception as e:
                logger.exception("Verification run for %s failed", buffer_id)
                self._publish_failure(buffer_id, f"{type(e).__name__}: {e}", token)

    async def _verify(self, buffer_id: str, token: DispatchToken | None) -> None:
        path = Path(buffer_id)
        cmd = [self.executable, "verify", *self.extra_args, str(path)]
        logger.info("Running %s", " ".join(cmd))

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(path.parent),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            self._publish_failure(
                buffer_id,
                f"'{self.executable}' command not found; is Dafny installed and on PATH?",
                token,
            )
            return
        except OSError as e:
            self._publish_failure(
                buffer_id, f"could not start '{self.executable}': {e}", token
            )
            return

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            self._publish_failure(
                buffer_id, f"Verification timed out after {self.timeout}s", token
            )
            return

        combined = stdout.decode("utf-8", "replace") + "\n" + stderr.decode("utf-8", "replace")
        grouped = parse_dafny_output(combined, path.parent)

        # A failing exit with nothing we could parse means Dafny itself
        # broke (bad flags, crash); reporting "no diagnostics" would read
        # as "everything holds".
        has_errors = any(
            d.severity is Severity.ERROR for ds in grouped.values() for d in ds
        )
        if proc.returncode != 0 and not has_errors:
            self._publish_failure(
                buffer_id,
                f"Dafny exited with code {proc.returncode}: {combined.strip()[-500:]}",
                token,
            )
            return

        own = grouped.pop(str(path.resolve()), [])
        own.extend(_blocking_elsewhere(grouped))

        logger.info(
            "Dafny finished for %s: exit=%s, %d diagnostic(s)",
            path.name,
            proc.returncode,
            len(own),
        )
        for diagnostic in own:
            logger.debug(
                "  l. %d [%s/%s] %s",
                diagnostic.line,
                diagnostic.severity.value,
                diagnostic.category,
                diagnostic.message,
            )

        for other_id, diagnostics in grouped.items():
            self._publish(other_id, diagnostics, None)
        self._publish(buffer_id, own, token)

    def _publish(
        self,
        buffer_id: str,
        diagnostics: list[Diagnostic],
        token: DispatchToken | None,
    ) -> None:
        for listener in self._listeners:
            listener.on_diagnostics_changed(buffer_id, diagnostics, token)

    def _publish_failure(
        self,
        buffer_id: str,
        message: str,
        token: DispatchToken | None,
    ) -> None:
        logger.warning("Verifier failure for %s: %s", buffer_id, message)
        for listener in self._listeners:
            listener.on_verifier_failure(buffer_id, message, token)
