"""OpenAI backend for the suggestion oracle.

Sends the oracle prompt through the async Responses API and returns the plain
text of the reply. Rate limits are retried with exponential backoff. A prompt
that overflows the model's context is halved from the bottom (the
instructions and the marked target come first) and resent. Any other API
error propagates so the oracle client can report the oracle as unavailable.
"""

from __future__ import annotations

import asyncio
import logging
import os

import openai
from openai import AsyncOpenAI

from assert_divide.config import OPENAI_MODEL, ORACLE_MAX_TOKENS, ORACLE_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

# Input budget in characters (~110k tokens at 3.5 chars/token).
MAX_PROMPT_CHARS = 385_000
TRUNCATION_NOTE = "\n\n[... context truncated ...]\n"


def _is_context_overflow(exc: openai.BadRequestError) -> bool:
    return getattr(exc, "code", None) == "context_length_exceeded" or (
        "context_length_exceeded" in str(exc)
    )


def shorten_prompt(prompt: str, limit: int) -> str:
    """Cut ``prompt`` to at most ``limit`` characters, at a line boundary when possible."""
    if len(prompt) <= limit:
        return prompt
    cut = prompt[:limit]
    last_newline = cut.rfind("\n")
    if last_newline > limit // 2:
        cut = cut[:last_newline]
    return cut + TRUNCATION_NOTE


class OpenAIBackend:
    def __init__(self, api_key: str | None = None, model: str = OPENAI_MODEL):
        key = api_key or os.getenv("OPENAI_API_KEY")
        if not key:
            raise ValueError("OPENAI_API_KEY is required")
        self._client = AsyncOpenAI(api_key=key, timeout=ORACLE_TIMEOUT_SECONDS)
        self._model = model

    @property
    def name(self) -> str:
        return f"openai:{self._model}"

    async def complete(self, prompt: str, *, max_retries: int = 3) -> str:
        prompt = shorten_prompt(prompt, MAX_PROMPT_CHARS)
        last_error: Exception | None = None

        for attempt in range(max_retries):
            try:
                response = await self._client.responses.create(
                    model=self._model,
                    input=prompt,
                    max_output_tokens=ORACLE_MAX_TOKENS,
                    temperature=0.0,
                )
                return response.output_text
            except openai.RateLimitError as exc:
                last_error = exc
                delay = 2**attempt
                logger.info("OpenAI rate limit (attempt %d/%d), retrying in %ds", attempt + 1, max_retries, delay)
                await asyncio.sleep(delay)
            except openai.BadRequestError as exc:
                if not _is_context_overflow(exc):
                    raise
                last_error = exc
                prompt = shorten_prompt(prompt, len(prompt) // 2)
                logger.info("Prompt too long for %s, resending %d chars", self._model, len(prompt))

        raise RuntimeError(f"OpenAI call failed after {max_retries} attempts: {last_error}")
