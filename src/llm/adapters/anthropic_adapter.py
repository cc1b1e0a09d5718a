# src/llm/adapters/anthropic_adapter.py — v3
"""Anthropic Claude adapter implementing BaseLLMClient.

Uses the official anthropic SDK (optional ``anthropic`` extra). The SDK's own
retries are disabled: the dispatcher owns retry and backoff. SDK exceptions
are re-raised as taxonomy errors so the rate limiter sees QUOTA and
TRANSIENT failures for what they are.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from paravault.core.errors import AuthError, to_paravault_error
from paravault.llm.base_client import BaseLLMClient
from paravault.llm.models import LLMResponse, Message

logger = logging.getLogger(__name__)

PROVIDER = "anthropic"


class AnthropicAdapter(BaseLLMClient):
    """Adapter for Anthropic Claude models."""

    def __init__(
        self,
        model: str = "claude-3-5-haiku-latest",
        api_key: str | None = None,
        timeout_s: float = 60.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout_s = timeout_s
        self._sdk_client: Any = None

    def _get_client(self) -> Any:
        """SDK client, created on first call so the key is checked before any import."""
        if self._sdk_client is not None:
            return self._sdk_client
        if not self._api_key:
            raise AuthError("Anthropic API key is not configured")
        try:
            import anthropic
        except ImportError as e:
            raise ImportError(
                "anthropic package required: pip install 'paravault[anthropic]'"
            ) from e
        self._sdk_client = anthropic.AsyncAnthropic(
            api_key=self._api_key, timeout=self._timeout_s, max_retries=0
        )
        return self._sdk_client

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> LLMResponse:
        client = self._get_client()
        request: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        if system:
            request["system"] = system

        started = time.monotonic()
        try:
            response = await client.messages.create(**request)
        except Exception as e:
            raise to_paravault_error(e) from e
        elapsed_ms = int((time.monotonic() - started) * 1000)

        if getattr(response, "stop_reason", None) == "max_tokens":
            # A cut-off JSON answer fails to parse downstream.
            logger.warning(
                "%s stopped at max_tokens=%d; the answer is probably truncated",
                self._model, max_tokens,
            )

        return LLMResponse(
            content=_text_of(response),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=response.model,
            provider=PROVIDER,
            latency_ms=elapsed_ms,
            raw_response=response,
        )

    @property
    def provider_name(self) -> str:
        return PROVIDER


def _text_of(response: Any) -> str:
    return "".join(
        block.text for block in response.content if getattr(block, "type", None) == "text"
    )
