"""assert_divide — iterative proof decomposition for Dafny assertions.

Takes one `assert` the verifier cannot discharge and searches for a chain of
simpler intermediate assertions that, inserted above it, make it provable.
Contract: one failing assertion in, an edited file plus a verdict out.

Architecture: an asyncio orchestrator (runner/) coordinates an LLM suggestion
oracle (llm/) with the Dafny verifier, editing the source file in place.
"""
