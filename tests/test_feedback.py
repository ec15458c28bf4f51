from __future__ import annotations

from dataclasses import dataclass, field

from assert_divide.models import (
    OTHER,
    SYNTAX,
    Diagnostic,
    DispatchToken,
    Severity,
)
from assert_divide.runner.feedback import FeedbackAdapter
from tests.support.fakes import unresolved


@dataclass
class RecordingSink:
    active: set = field(default_factory=set)
    arrivals: list[tuple] = field(default_factory=list)
    failures: list[tuple] = field(default_factory=list)

    def has_session(self, buffer_id: str) -> bool:
        return buffer_id in self.active

    def feedback_arrived(self, buffer_id, token) -> None:
        self.arrivals.append((buffer_id, token))

    def verifier_failed(self, buffer_id, message, token) -> None:
        self.failures.append((buffer_id, message, token))


def _adapter(*active: str, **kwargs):
    sink = RecordingSink(active=set(active))
    adapter = FeedbackAdapter(**kwargs)
    adapter.bind(sink)
    return adapter, sink


def test_holds_is_false_only_at_unresolved_lines() -> None:
    adapter, sink = _adapter("a.dfy")
    token = DispatchToken(1, 1)

    adapter.on_diagnostics_changed("a.dfy", unresolved(4, 7), token)

    assert not adapter.holds("a.dfy", 4)
    assert not adapter.holds("a.dfy", 7)
    assert adapter.holds("a.dfy", 5)
    assert sink.arrivals == [("a.dfy", token)]


def test_non_obligation_diagnostics_do_not_count() -> None:
    adapter, _ = _adapter("a.dfy")
    adapter.on_diagnostics_changed(
        "a.dfy",
        [
            Diagnostic(line=3, severity=Severity.WARNING, message="unused", category=OTHER),
            Diagnostic(line=4, severity=Severity.ERROR, message="odd", category=OTHER),
        ],
    )

    assert adapter.holds("a.dfy", 3)
    assert adapter.holds("a.dfy", 4)


def test_blocking_errors_make_every_line_fail() -> None:
    adapter, _ = _adapter("a.dfy")
    adapter.on_diagnostics_changed(
        "a.dfy",
        [Diagnostic(line=9, severity=Severity.ERROR, message="invalid expr", category=SYNTAX)],
    )

    assert not adapter.holds("a.dfy", 2)
    assert adapter.blocked("a.dfy")


def test_other_buffers_and_inactive_buffers_are_ignored() -> None:
    adapter, sink = _adapter("a.dfy")

    adapter.on_diagnostics_changed("b.dfy", unresolved(1))
    adapter.on_verifier_failure("b.dfy", "boom")

    assert adapter.holds("b.dfy", 1)
    assert adapter.holds("a.dfy", 1)
    assert sink.arrivals == []
    assert sink.failures == []


def test_latest_notification_replaces_previous_diagnostics() -> None:
    adapter, _ = _adapter("a.dfy")
    adapter.on_diagnostics_changed("a.dfy", unresolved(2))
    adapter.on_diagnostics_changed("a.dfy", unresolved(3))

    assert adapter.holds("a.dfy", 2)
    assert not adapter.holds("a.dfy", 3)

    adapter.clear("a.dfy")
    assert adapter.holds("a.dfy", 3)


def test_classification_predicate_is_pluggable() -> None:
    adapter, _ = _adapter(
        "a.dfy",
        is_unresolved=lambda d: d.severity is Severity.WARNING,
        is_blocking=lambda d: False,
    )
    adapter.on_diagnostics_changed(
        "a.dfy",
        [Diagnostic(line=1, severity=Severity.WARNING, message="?", category=OTHER)]
        + unresolved(2),
    )

    assert not adapter.holds("a.dfy", 1)
    assert adapter.holds("a.dfy", 2)


def test_verifier_failure_is_forwarded_for_active_buffer() -> None:
    adapter, sink = _adapter("a.dfy")
    token = DispatchToken(2, 5)

    adapter.on_verifier_failure("a.dfy", "timed out", token)

    assert sink.failures == [("a.dfy", "timed out", token)]
