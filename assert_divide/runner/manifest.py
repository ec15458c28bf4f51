"""
manifest.py — MANIFEST.md reader/writer for assert-divide sessions.

Responsibility: Keep a human-readable, git-diffable record of every
decomposition session: which assertion was targeted, how it ended, which
obligations were promoted past, and every candidate the oracle produced.

Format:
  # Assert-Divide Manifest
  # Started: <iso timestamp>

  ## Session: <file>:<line>
  - outcome: succeeded
  - attempts: 2/5
  - root: x > 0 && f(x) > 0
  - reason: ...
  - history:
    - 11: x >= 1
  - steps:
    - gen 1 @ 10: x > 0 -> retried
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from assert_divide.models import DecompositionResult

_STEP_PATTERN = re.compile(r"^gen (\d+) @ (\d+): (.*) -> (\w+)$")
_HISTORY_PATTERN = re.compile(r"^(\d+): (.*)$")


def _one_line(text: str) -> str:
    return " ".join(text.split())


@dataclass
class SessionEntry:
    """One session's record in the MANIFEST."""

    name: str
    outcome: str = ""
    attempts_used: int = 0
    attempts_max: int = 0
    root: str = ""
    reason: str = ""
    history: list[tuple[int, str]] = field(default_factory=list)
    steps: list[tuple[int, int, str, str]] = field(default_factory=list)

    @classmethod
    def from_result(cls, result: DecompositionResult) -> SessionEntry:
        return cls(
            name=f"{Path(result.buffer_id).name}:{result.root.line + 1}",
            outcome=result.outcome.value,
            attempts_used=result.attempts,
            attempts_max=result.max_depth,
            root=result.root.statement,
            reason=result.reason,
            history=[(o.line, o.statement) for o in result.history],
            steps=[(s.generation, s.line, s.candidate, s.verdict) for s in result.steps],
        )


class Manifest:
    """
    Read and write MANIFEST.md files.

    We parse the markdown structure on read and regenerate it on write. A
    session re-run on the same file and line replaces its earlier entry.
    """

    def __init__(self, path: Path):
        self.path = path
        self.started: str = ""
        self.entries: dict[str, SessionEntry] = {}

    def get_entry(self, name: str) -> SessionEntry | None:
        return self.entries.get(name)

    def upsert_entry(self, entry: SessionEntry) -> None:
        self.entries[entry.name] = entry

    def record(self, result: DecompositionResult) -> SessionEntry:
        entry = SessionEntry.from_result(result)
        self.upsert_entry(entry)
        return entry

    def write(self) -> None:
        """Write the manifest to disk as markdown."""
        lines = ["# Assert-Divide Manifest"]
        if not self.started:
            self.started = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        lines.append(f"# Started: {self.started}")
        lines.append("")

        for entry in self.entries.values():
            lines.append(f"## Session: {entry.name}")
            lines.append(f"- outcome: {entry.outcome}")
            lines.append(f"- attempts: {entry.attempts_used}/{entry.attempts_max}")
            if entry.root:
                lines.append(f"- root: {entry.root}")
            if entry.reason:
                # One line per field; verifier output can span several.
                lines.append(f"- reason: {_one_line(entry.reason)}")
            if entry.history:
                lines.append("- history:")
                for line_no, statement in entry.history:
                    lines.append(f"  - {line_no}: {statement}")
            if entry.steps:
                lines.append("- steps:")
                for generation, line_no, candidate, verdict in entry.steps:
                    lines.append(f"  - gen {generation} @ {line_no}: {candidate} -> {verdict}")
            lines.append("")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("\n".join(lines), encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> Manifest:
        """
        Load a manifest from disk. If the file doesn't exist, return an
        empty manifest bound to that path.
        """
        manifest = cls(path=path)
        if not path.exists():
            return manifest

        current: SessionEntry | None = None
        block = ""

        for line in path.read_text(encoding="utf-8").splitlines():
            if line.startswith("# Started:"):
                manifest.started = line.split(":", 1)[1].strip()
                continue

            session_match = re.match(r"^## Session:\s*(.+)$", line)
            if session_match:
                if current is not None:
                    manifest.entries[current.name] = current
                current = SessionEntry(name=session_match.group(1).strip())
                block = ""
                continue

            if current is None:
                continue

            if line.startswith("  - "):
                item = line[4:]
                if block == "history":
                    m = _HISTORY_PATTERN.match(item)
                    if m:
                        current.history.append((int(m.group(1)), m.group(2)))
                elif block == "steps":
                    m = _STEP_PATTERN.match(item)
                    if m:
                        current.steps.append(
                            (int(m.group(1)), int(m.group(2)), m.group(3), m.group(4))
                        )
                continue

            block = ""
            if line.startswith("- outcome:"):
                current.outcome = line.split(":", 1)[1].strip()
            elif line.startswith("- attempts:"):
                parts = line.split(":", 1)[1].strip().split("/")
                if len(parts) == 2:
                    try:
                        current.attempts_used = int(parts[0])
                        current.attempts_max = int(parts[1])
                    except ValueError:
                        pass
            elif line.startswith("- root:"):
                current.root = line.split(":", 1)[1].strip()
            elif line.startswith("- reason:"):
                current.reason = line.split(":", 1)[1].strip()
            elif line.startswith("- history:"):
                block = "history"
            elif line.startswith("- steps:"):
                block = "steps"

        if current is not None:
            manifest.entries[current.name] = current

        return manifest
