# assert_divide.runner — the decomposition loop and its collaborators
#
# Modules:
#   extractor.py      — Parses the `assert` under the cursor into an Obligation
#   prompt_builder.py — Context window around the target + oracle prompt
#   oracle.py         — Suggestion client (one bare statement or nothing)
#   buffer.py         — Text buffer protocol and the file-backed buffer
#   mutator.py        — Insert / disable lines, request verification
#   verifier.py       — Runs `dafny verify` and publishes diagnostics
#   feedback.py       — Verifier listener; answers "does line L hold?"
#   session.py        — Per-buffer session state and its registry
#   manifest.py       — MANIFEST.md audit log of finished sessions
#   orchestrator.py   — The state machine tying the above together
