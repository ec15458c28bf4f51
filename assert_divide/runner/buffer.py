"""
buffer.py — Text buffer the decomposition loop edits.

The orchestrator owns the buffer for a session's duration. Edits are made in
memory and become visible to the verifier only after flush(); the mutator
always flushes before verification is requested.

FileBuffer backs the buffer with a source file on disk. Writes go through a
temp file + rename so the verifier never reads a half-written file.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Protocol


class TextBuffer(Protocol):
    buffer_id: str

    def lines(self) -> list[str]: ...

    def text(self) -> str: ...

    def insert_line(self, line: int, text: str) -> None: ...

    def replace_line(self, line: int, text: str) -> None: ...

    async def flush(self) -> None: ...


class FileBuffer:
    """A buffer loaded from, and flushed back to, a file on disk."""

    def __init__(self, path: Path):
        self.path = Path(path).resolve()
        self.buffer_id = str(self.path)
        raw = self.path.read_text(encoding="utf-8")
        self._trailing_newline = raw.endswith("\n")
        self._lines = raw.splitlines()
        self.dirty = False

    def lines(self) -> list[str]:
        return list(self._lines)

    def text(self) -> str:
        body = "\n".join(self._lines)
        return body + "\n" if self._trailing_newline else body

    def insert_line(self, line: int, text: str) -> None:
        if line < 0 or line > len(self._lines):
            raise IndexError(f"Cannot insert at line {line} of {len(self._lines)}")
        self._lines.insert(line, text)
        self.dirty = True

    def replace_line(self, line: int, text: str) -> None:
        if line < 0 or line >= len(self._lines):
            raise IndexError(f"Line {line} is outside the buffer ({len(self._lines)} lines)")
        self._lines[line] = text
        self.dirty = True

    async def flush(self) -> None:
        if not self.dirty:
            return
        await asyncio.to_thread(self._write)
        self.dirty = False

    def _write(self) -> None:
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        tmp_path.write_text(self.text(), encoding="utf-8")
        os.replace(tmp_path, self.path)
