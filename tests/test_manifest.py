from __future__ import annotations

from assert_divide.models import (
    DecompositionResult,
    Obligation,
    Outcome,
    StepRecord,
)
from assert_divide.runner.manifest import Manifest, SessionEntry


def _result() -> DecompositionResult:
    root = Obligation(line=10, statement="x > 0 && f(x) > 0")
    return DecompositionResult(
        outcome=Outcome.EXHAUSTED,
        buffer_id="/work/Program.dfy",
        root=root,
        target=Obligation(line=12, statement="c2 > 0"),
        attempts=3,
        max_depth=3,
        history=(Obligation(line=12, statement="x > 0 && f(x) > 0"),),
        steps=(
            StepRecord(generation=1, candidate="c1 > 0", line=10, verdict="retried"),
            StepRecord(generation=2, candidate="c2 > 0", line=10, verdict="promoted"),
            StepRecord(generation=3, candidate="c3 > 0", line=10, verdict="pending"),
        ),
    )


def test_written_manifest_loads_back(tmp_path) -> None:
    path = tmp_path / "runs" / "MANIFEST.md"
    manifest = Manifest(path)
    entry = manifest.record(_result())
    manifest.write()

    text = path.read_text(encoding="utf-8")
    assert "## Session: Program.dfy:11" in text
    assert "- attempts: 3/3" in text
    assert "  - gen 2 @ 10: c2 > 0 -> promoted" in text

    loaded = Manifest.load(path)
    assert loaded.started == manifest.started
    assert loaded.get_entry("Program.dfy:11") == entry


def test_rerun_replaces_previous_entry(tmp_path) -> None:
    path = tmp_path / "MANIFEST.md"
    manifest = Manifest.load(path)
    assert manifest.entries == {}

    manifest.record(_result())
    manifest.upsert_entry(
        SessionEntry(name="Program.dfy:11", outcome="succeeded", attempts_used=1, attempts_max=5)
    )
    manifest.write()

    loaded = Manifest.load(path)
    assert list(loaded.entries) == ["Program.dfy:11"]
    entry = loaded.get_entry("Program.dfy:11")
    assert entry.outcome == "succeeded"
    assert entry.history == []
    assert entry.steps == []


def test_reason_is_recorded_for_abandoned_sessions(tmp_path) -> None:
    path = tmp_path / "MANIFEST.md"
    result = DecompositionResult(
        outcome=Outcome.ABANDONED,
        buffer_id="/work/Lemma.dfy",
        root=Obligation(line=0, statement="p"),
        target=Obligation(line=0, statement="p"),
        attempts=1,
        max_depth=5,
        reason="oracle unavailable: TimeoutError: read timeout",
    )
    manifest = Manifest(path)
    manifest.record(result)
    manifest.write()

    entry = Manifest.load(path).get_entry("Lemma.dfy:1")
    assert entry.reason == "oracle unavailable: TimeoutError: read timeout"
    assert entry.outcome == "abandoned"


def test_multi_line_reason_is_written_on_one_line(tmp_path) -> None:
    path = tmp_path / "MANIFEST.md"
    result = DecompositionResult(
        outcome=Outcome.ABANDONED,
        buffer_id="/work/Lemma.dfy",
        root=Obligation(line=2, statement="p"),
        target=Obligation(line=3, statement="q"),
        attempts=1,
        max_depth=5,
        reason="verifier unavailable: Dafny exited with code 3:\nUnhandled exception\n  at Main()",
        steps=(StepRecord(generation=1, candidate="q", line=2),),
    )
    manifest = Manifest(path)
    manifest.record(result)
    manifest.write()

    entry = Manifest.load(path).get_entry("Lemma.dfy:3")
    assert entry.reason == (
        "verifier unavailable: Dafny exited with code 3: Unhandled exception at Main()"
    )
    assert entry.steps == [(1, 2, "q", "pending")]
