# src/llm/client_factory.py — v4
"""Factory: instantiate LLM client from provider name.

Adapters are imported lazily so a provider SDK is only needed when that
provider is actually used. The provider name is also the rate limiter key,
so it is normalized the same way here.
"""

from __future__ import annotations

import importlib
import logging

from paravault.config.settings import Settings
from paravault.llm.base_client import BaseLLMClient
from paravault.ratelimit.limiter import normalize_provider

logger = logging.getLogger(__name__)

# Provider name -> adapter class path (lazy import).
_PROVIDER_REGISTRY: dict[str, str] = {
    "anthropic": "paravault.llm.adapters.anthropic_adapter.AnthropicAdapter",
    "google": "paravault.llm.adapters.google_adapter.GoogleAdapter",
}

# Provider name -> Settings field holding its API key.
_API_KEY_FIELDS: dict[str, str] = {
    "anthropic": "anthropic_api_key",
    "google": "google_api_key",
}


class UnsupportedProviderError(ValueError):
    """Raised when a provider is not registered."""


def available_providers() -> list[str]:
    return sorted(_PROVIDER_REGISTRY)


def create_llm_client(
    provider: str,
    model: str,
    settings: Settings | None = None,
    **kwargs: object,
) -> BaseLLMClient:
    """Instantiate the adapter registered for *provider*.

    The API key comes from *settings* unless ``api_key`` is passed
    explicitly. Extra keyword arguments go to the adapter unchanged.

    Raises:
        UnsupportedProviderError: If provider is not registered.
    """
    name = normalize_provider(provider)
    class_path = _PROVIDER_REGISTRY.get(name)
    if class_path is None:
        raise UnsupportedProviderError(
            f"Unsupported LLM provider: {provider!r}. "
            f"Available: {', '.join(available_providers())}"
        )

    init_kwargs = dict(kwargs)
    init_kwargs["model"] = model
    key_field = _API_KEY_FIELDS.get(name)
    if settings is not None and key_field is not None:
        init_kwargs.setdefault("api_key", getattr(settings, key_field))

    logger.debug("Creating LLM client: provider=%s, model=%s", name, model)
    adapter_cls = _import_class(class_path)
    return adapter_cls(**init_kwargs)


def register_provider(name: str, class_path: str, api_key_field: str | None = None) -> None:
    """Register an adapter by fully qualified class path.

    *api_key_field* names the Settings attribute holding its key, if any.
    """
    name = normalize_provider(name)
    _PROVIDER_REGISTRY[name] = class_path
    if api_key_field is not None:
        _API_KEY_FIELDS[name] = api_key_field
    logger.info("Registered LLM provider: %s -> %s", name, class_path)


def _import_class(class_path: str) -> type:
    module_path, class_name = class_path.rsplit(".", 1)
    return getattr(importlib.import_module(module_path), class_name)


def has_api_key(provider: str, settings: Settings) -> bool:
    """Whether *settings* carries a key for *provider*; providers without one count as keyed."""
    key_field = _API_KEY_FIELDS.get(normalize_provider(provider))
    if key_field is None:
        return True
    return bool(getattr(settings, key_field, ""))
