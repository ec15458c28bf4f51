"""LLM backends for the suggestion oracle.

Every backend exposes ``name`` and ``async complete(prompt) -> str``.
"""

from __future__ import annotations

from assert_divide.config import DecomposeConfig


def create_backend(config: DecomposeConfig):
    """Build the backend selected by ``config.provider``."""
    if config.provider == "anthropic":
        from assert_divide.llm.anthropic import AnthropicBackend

        return AnthropicBackend(
            api_key=config.anthropic_api_key or None,
            model=config.resolved_model,
        )
    if config.provider == "openai":
        from assert_divide.llm.client import OpenAIBackend

        return OpenAIBackend(
            api_key=config.openai_api_key or None,
            model=config.resolved_model,
        )
    raise ValueError(f"Unknown provider: {config.provider!r}")
