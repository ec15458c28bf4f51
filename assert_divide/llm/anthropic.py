"""Anthropic Messages API backend for the suggestion oracle.

Posts the oracle prompt to the Messages API over httpx and returns the
concatenated text blocks of the reply. Retries transient server errors (HTTP
5xx) and rate limits (429) with exponential backoff; anything else propagates
to the oracle client, which reports it as the oracle being unavailable.
"""

from __future__ import annotations

import asyncio
import logging
import os

import httpx

from assert_divide.config import ANTHROPIC_MODEL, ORACLE_MAX_TOKENS, ORACLE_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"

SYSTEM_PROMPT = (
    "You are a Dafny verification expert. You answer with a single boolean "
    "expression and nothing else."
)

MAX_RETRIES = 2
RETRY_BASE_DELAY_S = 1.0  # Exponential backoff: 1s, 2s


class AnthropicBackend:
    def __init__(
        self,
        api_key: str | None = None,
        model: str = ANTHROPIC_MODEL,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        key = api_key or os.getenv("ANTHROPIC_API_KEY") or os.getenv("CLAUDE_API_KEY")
        if not key:
            raise ValueError("ANTHROPIC_API_KEY (or CLAUDE_API_KEY) is required")
        self._api_key = key
        self._model = model
        self._transport = transport

    @property
    def name(self) -> str:
        return f"anthropic:{self._model}"

    async def complete(self, prompt: str) -> str:
        payload = {
            "model": self._model,
            "max_tokens": ORACLE_MAX_TOKENS,
            "temperature": 0.0,
            "system": SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {
            "x-api-key": self._api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

        async with httpx.AsyncClient(
            timeout=ORACLE_TIMEOUT_SECONDS, transport=self._transport
        ) as client:
            for attempt in range(1 + MAX_RETRIES):
                response = await client.post(ANTHROPIC_API_URL, json=payload, headers=headers)
                retryable = response.status_code == 429 or response.status_code >= 500
                if retryable and attempt < MAX_RETRIES:
                    delay = RETRY_BASE_DELAY_S * (2**attempt)
                    logger.info(
                        "Anthropic API returned %d (attempt %d/%d), retrying in %.1fs",
                        response.status_code,
                        attempt + 1,
                        1 + MAX_RETRIES,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                response.raise_for_status()
                data = response.json()
                break

        text = ""
        for block in data.get("content", []):
            if block.get("type") == "text":
                text += block.get("text", "")
        return text
