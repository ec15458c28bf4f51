"""
Shared configuration for assert-divide.

Module constants hold the loop's fixed parameters; DecomposeConfig bundles the
per-run settings the CLI resolves from flags and environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace


# Decomposition loop bounds.
MAX_DEPTH = 5
CONTEXT_RADIUS = 5

# Obligation syntax (Dafny).
ASSERT_KEYWORD = "assert"
STATEMENT_TERMINATOR = ";"
LINE_COMMENT = "//"
INTERMEDIATE_MARKER = "// intermediate step"

# Suggestion oracle defaults.
DEFAULT_PROVIDER = "openai"
OPENAI_MODEL = "gpt-4o"
ANTHROPIC_MODEL = "claude-sonnet-4-20250514"
ORACLE_MAX_TOKENS = 256
ORACLE_TIMEOUT_SECONDS = 60.0

# Dafny verification. First run on a large file can be slow.
DAFNY_EXECUTABLE = "dafny"
VERIFICATION_TIMEOUT_SECONDS = 300

DEFAULT_MANIFEST_DIR = "assert_divide/runs"

PROVIDERS = ("openai", "anthropic")


@dataclass(frozen=True)
class DecomposeConfig:
    """Per-run settings for one decomposition."""
    provider: str = DEFAULT_PROVIDER
    model: str = ""
    max_depth: int = MAX_DEPTH
    context_radius: int = CONTEXT_RADIUS
    dafny_path: str = DAFNY_EXECUTABLE
    verification_timeout: int = VERIFICATION_TIMEOUT_SECONDS
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    manifest_path: str = ""

    @property
    def resolved_model(self) -> str:
        if self.model:
            return self.model
        return ANTHROPIC_MODEL if self.provider == "anthropic" else OPENAI_MODEL

    @classmethod
    def from_env(cls) -> DecomposeConfig:
        """Read settings from the process environment (call load_dotenv first)."""
        max_depth_raw = os.environ.get("ASSERT_DIVIDE_MAX_DEPTH", "")
        try:
            max_depth = int(max_depth_raw) if max_depth_raw else MAX_DEPTH
        except ValueError:
            raise ValueError(
                f"ASSERT_DIVIDE_MAX_DEPTH must be an integer, got {max_depth_raw!r}"
            )
        return cls(
            provider=os.environ.get("ASSERT_DIVIDE_PROVIDER", DEFAULT_PROVIDER),
            model=os.environ.get("ASSERT_DIVIDE_MODEL", ""),
            max_depth=max_depth,
            dafny_path=os.environ.get("DAFNY_PATH", DAFNY_EXECUTABLE),
            openai_api_key=os.environ.get("OPENAI_API_KEY", ""),
            anthropic_api_key=(
                os.environ.get("ANTHROPIC_API_KEY")
                or os.environ.get("CLAUDE_API_KEY")
                or ""
            ),
        )

    def with_overrides(self, **overrides: object) -> DecomposeConfig:
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)

    def validate(self) -> None:
        if self.provider not in PROVIDERS:
            raise ValueError(
                f"Unknown provider {self.provider!r}; expected one of {', '.join(PROVIDERS)}"
            )
        if self.max_depth < 1:
            raise ValueError(f"max_depth must be at least 1, got {self.max_depth}")
        if self.context_radius < 0:
            raise ValueError(f"context_radius must be >= 0, got {self.context_radius}")
