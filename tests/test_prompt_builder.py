from __future__ import annotations

from assert_divide.models import Obligation
from assert_divide.runner.prompt_builder import build_prompt, context_window

LINES = [f"line {i}" for i in range(20)]


def test_window_marks_target_and_spans_radius() -> None:
    window = context_window(LINES, 10, radius=5)

    assert window.splitlines() == [
        "line 5",
        "line 6",
        "line 7",
        "line 8",
        "line 9",
        ">>> line 10 <<<",
        "line 11",
        "line 12",
        "line 13",
        "line 14",
    ]


def test_window_is_clipped_at_buffer_edges() -> None:
    assert context_window(LINES, 1, radius=5).splitlines()[:2] == ["line 0", ">>> line 1 <<<"]
    assert context_window(LINES, 19, radius=5).splitlines()[-1] == ">>> line 19 <<<"
    assert context_window(["only"], 0).splitlines() == [">>> only <<<"]


def test_window_is_deterministic() -> None:
    assert context_window(LINES, 7) == context_window(list(LINES), 7)


def test_prompt_contains_context_target_and_exclusions() -> None:
    target = Obligation(line=10, statement="x > 0 && y > 0")
    prompt = build_prompt(">>> assert x > 0 && y > 0; <<<\n", target, ["x > 0", ""])

    assert "Target assertion: x > 0 && y > 0" in prompt
    assert ">>> assert x > 0 && y > 0; <<<" in prompt
    assert "Do not suggest any of them again" in prompt
    assert "- x > 0" in prompt
    assert prompt.rstrip().endswith("on a single line.")


def test_prompt_without_exclusions_has_no_exclusion_section() -> None:
    prompt = build_prompt("ctx\n", Obligation(line=0, statement="p"))

    assert "already tried" not in prompt
