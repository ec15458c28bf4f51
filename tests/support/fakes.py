from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, Sequence

from assert_divide.models import (
    UNRESOLVED_OBLIGATION,
    Diagnostic,
    DispatchToken,
    Severity,
)

_ACTIVE_ASSERT = re.compile(r"^\s*assert\s+(.*?)\s*;")


class InMemoryBuffer:
    """TextBuffer over a list of lines; counts flushes."""

    def __init__(self, lines: Sequence[str], buffer_id: str = "mem://Program.dfy"):
        self.buffer_id = buffer_id
        self._lines = list(lines)
        self.flushes = 0
        self.dirty = False

    def lines(self) -> list[str]:
        return list(self._lines)

    def text(self) -> str:
        return "\n".join(self._lines) + "\n"

    def insert_line(self, line: int, text: str) -> None:
        self._lines.insert(line, text)
        self.dirty = True

    def replace_line(self, line: int, text: str) -> None:
        self._lines[line] = text
        self.dirty = True

    async def flush(self) -> None:
        self.flushes += 1
        self.dirty = False


class GatedBuffer(InMemoryBuffer):
    """InMemoryBuffer that can hold one flush open until the test releases it."""

    def __init__(self, lines: Sequence[str], buffer_id: str = "mem://Program.dfy"):
        super().__init__(lines, buffer_id)
        self._holding = False
        self.flush_started: asyncio.Event | None = None
        self.release: asyncio.Event | None = None

    def hold_next_flush(self) -> None:
        self._holding = True
        self.flush_started = asyncio.Event()
        self.release = asyncio.Event()

    async def flush(self) -> None:
        if self._holding:
            self._holding = False
            self.flush_started.set()
            await self.release.wait()
        await super().flush()


class ScriptedBackend:
    """LlmBackend replaying canned answers; an Exception entry is raised."""

    name = "scripted"

    def __init__(self, answers: Iterable[object]):
        self._answers = list(answers)
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self._answers:
            raise RuntimeError("scripted backend ran out of answers")
        answer = self._answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return str(answer)


class CountingBackend:
    """Always answers with a fresh, valid candidate: c1, c2, ..."""

    name = "counting"

    def __init__(self) -> None:
        self.calls = 0

    async def complete(self, prompt: str) -> str:
        self.calls += 1
        return f"c{self.calls} > 0"


def unresolved(*lines: int) -> list[Diagnostic]:
    return [
        Diagnostic(
            line=line,
            severity=Severity.ERROR,
            message="assertion might not hold",
            category=UNRESOLVED_OBLIGATION,
        )
        for line in lines
    ]


@dataclass
class ManualVerifier:
    """Records verification requests; the test publishes results by hand."""

    requests: list[tuple] = field(default_factory=list)

    def request_verification(self, buffer_id: str, token: DispatchToken | None = None) -> None:
        self.requests.append((buffer_id, token))


class StatementVerifier:
    """
    Answers every request on the next loop iteration.

    Each request consumes one round: the set of assertion statements that fail
    in that round (the last round repeats). Every active `assert` line whose
    statement is in the set gets an unresolved-obligation diagnostic.
    """

    def __init__(
        self,
        buffer: InMemoryBuffer,
        rounds: Sequence[set],
        on_request: Callable[[], None] | None = None,
    ):
        self.buffer = buffer
        self.rounds = [set(r) for r in rounds]
        self.on_request = on_request
        self.listener = None
        self.requests: list[tuple] = []

    def subscribe(self, listener) -> None:
        self.listener = listener

    def request_verification(self, buffer_id: str, token: DispatchToken | None = None) -> None:
        self.requests.append((buffer_id, token))
        if self.on_request is not None:
            self.on_request()
        index = min(len(self.requests), len(self.rounds)) - 1
        failing = self.rounds[index] if self.rounds else set()
        lines = [
            i
            for i, text in enumerate(self.buffer.lines())
            if (m := _ACTIVE_ASSERT.match(text)) and m.group(1) in failing
        ]
        asyncio.get_running_loop().call_soon(
            self.listener.on_diagnostics_changed, buffer_id, unresolved(*lines), token
        )


async def settle(orchestrator) -> None:
    """Wait until every feedback task the orchestrator spawned has finished."""
    await asyncio.sleep(0)
    while orchestrator._tasks:
        await asyncio.gather(*list(orchestrator._tasks))
        await asyncio.sleep(0)
