# src/llm/adapters/google_adapter.py — v2
"""Google Gemini adapter implementing BaseLLMClient.

Uses the google-generativeai SDK (optional ``google`` extra), imported on
first call. Gemini asks for JSON output directly through the response MIME
type, which suits the classifier's structured answers.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from paravault.core.errors import AuthError, ParseError, to_paravault_error
from paravault.llm.base_client import BaseLLMClient
from paravault.llm.models import LLMResponse, Message

logger = logging.getLogger(__name__)

PROVIDER = "google"


class GoogleAdapter(BaseLLMClient):
    """Google Gemini adapter."""

    def __init__(
        self,
        model: str = "gemini-1.5-flash",
        api_key: str = "",
        timeout_s: float = 60.0,
        json_output: bool = True,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._timeout_s = timeout_s
        self._json_output = json_output

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> LLMResponse:
        if not self._api_key:
            raise AuthError("Google API key is not configured")
        try:
            import google.generativeai as genai
        except ImportError as e:
            raise ImportError(
                "google-generativeai package required: pip install 'paravault[google]'"
            ) from e

        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(self._model, system_instruction=system)
        config: dict[str, Any] = {"max_output_tokens": max_tokens, "temperature": temperature}
        if self._json_output:
            config["response_mime_type"] = "application/json"
        # Gemini calls the assistant side "model".
        contents = [
            {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
            for m in messages
        ]

        started = time.monotonic()
        try:
            response = await model.generate_content_async(
                contents,
                generation_config=config,
                request_options={"timeout": self._timeout_s},
            )
        except Exception as e:
            raise to_paravault_error(e) from e
        elapsed_ms = int((time.monotonic() - started) * 1000)

        try:
            text = response.text or ""
        except ValueError as e:
            # Raised when the candidate was blocked and carries no text part.
            raise ParseError(f"Gemini returned no text: {e}") from e

        usage = getattr(response, "usage_metadata", None)
        return LLMResponse(
            content=text,
            input_tokens=getattr(usage, "prompt_token_count", 0) if usage else 0,
            output_tokens=getattr(usage, "candidates_token_count", 0) if usage else 0,
            model=self._model,
            provider=PROVIDER,
            latency_ms=elapsed_ms,
            raw_response=response,
        )

    @property
    def provider_name(self) -> str:
        return PROVIDER
