# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides a fake clock, a scripted classifier, a fake LLM client and vault
folders under tmp_path. No network: nothing here talks to a provider.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

import pytest

from paravault.classification.base_classifier import BaseClassifier
from paravault.classification.context import ClassificationContext
from paravault.core.models import Category, ClassificationInput, ClassificationResult
from paravault.llm.base_client import BaseLLMClient
from paravault.llm.models import LLMResponse, Message
from paravault.vault.layout import VaultLayout


# === FAKES ===


class FakeClock:
    """Deterministic clock: sleeping advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.t = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.t

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.t += seconds
        await asyncio.sleep(0)


Responder = Callable[[ClassificationInput], ClassificationResult]


class FakeClassifier(BaseClassifier):
    """Classifier answering from a function, optionally failing first.

    ``failures`` is consumed one exception per call before any call succeeds.
    """

    def __init__(
        self,
        responder: Responder | None = None,
        provider: str = "anthropic",
        failures: list[Exception] | None = None,
        delay: float = 0.0,
    ) -> None:
        self._responder = responder or (
            lambda item: ClassificationResult(category=Category.RESOURCE, confidence=0.9)
        )
        self._provider = provider
        self._failures = list(failures or [])
        self._delay = delay
        self.calls: list[list[str]] = []

    @property
    def provider_name(self) -> str:
        return self._provider

    async def classify(
        self,
        batch: list[ClassificationInput],
        context: ClassificationContext,
    ) -> list[ClassificationResult]:
        self.calls.append([item.file_name for item in batch])
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._failures:
            raise self._failures.pop(0)
        return [self._responder(item) for item in batch]


class FakeLLMClient(BaseLLMClient):
    """Returns canned replies in order and records the prompts."""

    def __init__(self, replies: list[str], provider: str = "anthropic") -> None:
        self._replies = list(replies)
        self._provider = provider
        self.prompts: list[str] = []

    @property
    def provider_name(self) -> str:
        return self._provider

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> LLMResponse:
        self.prompts.append(messages[-1].content)
        return LLMResponse(
            content=self._replies.pop(0),
            input_tokens=10,
            output_tokens=10,
            model="fake",
            provider=self._provider,
            latency_ms=1,
        )


def make_input(name: str, text: str = "body", path: str | None = None) -> ClassificationInput:
    return ClassificationInput(
        id=name,
        path=path or f"/tmp/{name}",
        file_name=name,
        extracted_text=text,
        preview_text=text[:100],
    )


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


# === FIXTURES ===


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def vault_root(tmp_path: Path) -> Path:
    """Empty vault with inbox and the four category folders."""
    root = tmp_path / "vault"
    VaultLayout(root).initialize()
    return root


@pytest.fixture
def layout(vault_root: Path) -> VaultLayout:
    return VaultLayout(vault_root)


@pytest.fixture
def empty_context() -> ClassificationContext:
    return ClassificationContext()


@pytest.fixture
def classifier_factory() -> type[FakeClassifier]:
    return FakeClassifier


@pytest.fixture
def llm_factory() -> type[FakeLLMClient]:
    return FakeLLMClient


@pytest.fixture
def input_factory() -> Callable[..., ClassificationInput]:
    return make_input


@pytest.fixture
def write_file() -> Callable[[Path, str], Path]:
    return write
