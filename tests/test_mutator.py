from __future__ import annotations

import asyncio

from assert_divide.models import DispatchToken
from assert_divide.runner.buffer import FileBuffer
from assert_divide.runner.mutator import DocumentMutator
from tests.support.fakes import InMemoryBuffer, ManualVerifier

LINES = [
    "method M(x: int) {",
    "    var y := x;",
    "    assert y == x;",
    "}",
]


def test_insert_goes_above_line_with_its_indentation_and_flushes() -> None:
    buffer = InMemoryBuffer(LINES)
    mutator = DocumentMutator(buffer)

    asyncio.run(mutator.insert(2, "y >= x"))

    assert buffer.lines() == [
        "method M(x: int) {",
        "    var y := x;",
        "    assert y >= x; // intermediate step",
        "    assert y == x;",
        "}",
    ]
    assert buffer.flushes == 1


def test_disable_comments_line_in_place() -> None:
    buffer = InMemoryBuffer(LINES)
    mutator = DocumentMutator(buffer)

    asyncio.run(mutator.disable(2))
    asyncio.run(mutator.disable(2))

    assert buffer.lines()[2] == "    // assert y == x;"
    assert len(buffer.lines()) == len(LINES)
    assert buffer.flushes == 1


def test_request_verification_passes_buffer_id_and_token() -> None:
    buffer = InMemoryBuffer(LINES, buffer_id="mem://m.dfy")
    verifier = ManualVerifier()
    token = DispatchToken(session_id=3, generation=2)

    DocumentMutator(buffer).request_verification(verifier, token)

    assert verifier.requests == [("mem://m.dfy", token)]


def test_file_buffer_edits_reach_disk_only_on_flush(tmp_path) -> None:
    path = tmp_path / "Program.dfy"
    path.write_text("\n".join(LINES) + "\n", encoding="utf-8")
    buffer = FileBuffer(path)
    mutator = DocumentMutator(buffer)

    assert buffer.buffer_id == str(path.resolve())

    buffer.insert_line(0, "// header")
    assert path.read_text(encoding="utf-8").splitlines()[0] == LINES[0]

    asyncio.run(mutator.insert(3, "y == x + 0"))

    on_disk = path.read_text(encoding="utf-8")
    assert on_disk.endswith("}\n")
    assert on_disk.splitlines()[0] == "// header"
    assert on_disk.splitlines()[3] == "    assert y == x + 0; // intermediate step"
    assert not buffer.dirty
    assert not (tmp_path / ".Program.dfy.tmp").exists()
