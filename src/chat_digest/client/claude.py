"""Summarization backend on the Anthropic Messages API."""

from __future__ import annotations

import logging
import os

from chat_digest.client.base import BaseSummaryClient
from chat_digest.exceptions import (
    ConfigurationError,
    DecodeFailureError,
    NoResponseBodyError,
    ServerStatusError,
    TransportFailureError,
    TransportReason,
)

logger = logging.getLogger(__name__)


DEFAULT_MODEL = os.environ.get("DEFAULT_LLM_MODEL", "claude-haiku-4-5-20251001")


class AnthropicSummaryClient(BaseSummaryClient):
    """Sends the payload to Claude instead of a bespoke endpoint.

    SDK retries are disabled; the coordinator decides when to retry.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        temperature: float = 0.3,
        timeout: float = 120.0,
    ):
        if not api_key and not os.environ.get("ANTHROPIC_API_KEY"):
            raise ConfigurationError(
                "Anthropic API key is required. "
                "Pass it directly or set ANTHROPIC_API_KEY in your environment."
            )
        try:
            from anthropic import AsyncAnthropic
        except ImportError:
            raise ImportError(
                "anthropic is required for AnthropicSummaryClient. "
                "Install with: pip install chat-digest[anthropic]"
            )
        self._client = AsyncAnthropic(api_key=api_key or None, max_retries=0, timeout=timeout)
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    @property
    def client(self):
        """Access the underlying AsyncAnthropic SDK client for advanced usage."""
        return self._client

    async def send(self, payload: str) -> str:
        from anthropic import APIConnectionError, APIError, APIStatusError, APITimeoutError

        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": payload}],
            )
        except APITimeoutError as e:
            raise TransportFailureError(
                f"Claude API timeout: {e}", reason=TransportReason.TIMED_OUT, underlying=e
            ) from e
        except APIConnectionError as e:
            raise TransportFailureError(
                f"Claude API connection error: {e}",
                reason=TransportReason.CANNOT_CONNECT,
                underlying=e,
            ) from e
        except APIStatusError as e:
            raise ServerStatusError(e.status_code, f"Claude API error: {e}") from e
        except APIError as e:
            raise DecodeFailureError(f"Claude API returned an unreadable response: {e}") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        if not text:
            raise NoResponseBodyError("Claude returned no text")
        logger.debug(
            f"Claude summary: {response.usage.input_tokens} in, {response.usage.output_tokens} out"
        )
        return text

    async def aclose(self) -> None:
        await self._client.close()
