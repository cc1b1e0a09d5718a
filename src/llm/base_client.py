# src/llm/base_client.py — v2
"""Abstract LLM client interface used by the classifier.

Adapters implement ``complete``; the classifier only ever sends one user
prompt per call and goes through ``ask``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from paravault.llm.models import LLMResponse, Message


class BaseLLMClient(ABC):
    """Unified interface for all LLM providers."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> LLMResponse:
        """Text completion over a whole conversation."""

    async def ask(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> LLMResponse:
        """Single-turn completion of *prompt*."""
        return await self.complete(
            [Message(role="user", content=prompt)],
            system=system,
            max_tokens=max_tokens,
            temperature=temperature,
        )

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier, also the rate limiter key (anthropic, google)."""
