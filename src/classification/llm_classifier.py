# src/classification/llm_classifier.py — v1
"""Classifier backed by a BaseLLMClient.

Two prompt shapes:
  - fast:    many files per call, previews only, model reports its confidence
  - precise: one file per call, full extracted text plus a summary;
             results are treated as confidence 1.0

Responses are parsed tolerantly: markdown code fences are stripped, and if
the payload still does not decode, the span from the first ``[``/``{`` to
the last ``]``/``}`` is tried. Anything else raises ParseError.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from paravault.classification.base_classifier import BaseClassifier
from paravault.classification.context import ClassificationContext
from paravault.core.errors import ParseError
from paravault.core.models import Category, ClassificationInput, ClassificationResult
from paravault.llm.base_client import BaseLLMClient
from paravault.placement.resolver import strip_category_prefix

logger = logging.getLogger(__name__)

Stage = Literal["fast", "precise"]

PRECISE_CONFIDENCE = 1.0

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\n?```\s*$")

_RULES = """\
## Classification rules
- project: working documents of one active project only (action items, checklists, deadlines). Always set "project".
- area: maintenance, monitoring, operations, ongoing responsibilities.
- resource: analyses, guides, references, how-tos, learning material.
- archive: finished work, outdated content, no longer active.

Reference material about a project is resource, not project; operational documents are area.
If a non-project document relates to an active project, still set "project" to its name; omit it otherwise.
If an existing folder covers the same topic, reuse its exact name."""


# === RAW RESPONSE ITEMS ===


class _RawItem(BaseModel):
    """Lenient view of one classifier JSON object."""

    file_name: str = Field(default="", alias="fileName")
    para: str = ""
    tags: list[str] = Field(default_factory=list)
    confidence: float | None = None
    project: str | None = None
    target_folder: str | None = Field(default=None, alias="targetFolder")
    summary: str = ""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return [str(t) for t in v]

    def to_result(self, confidence: float) -> ClassificationResult:
        try:
            category = Category(self.para.strip().lower())
        except ValueError as e:
            raise ParseError(f"Unknown category {self.para!r}") from e
        project = self.project.strip() if self.project and self.project.strip() else None
        return ClassificationResult(
            category=category,
            tags=self.tags,
            summary=self.summary,
            destination_folder=strip_category_prefix(self.target_folder or ""),
            project=project,
            confidence=max(0.0, min(1.0, confidence)),
        )


def parse_json_safe(text: str) -> Any:
    """Decode JSON from an LLM reply that may carry code fences or prose.

    Raises:
        ParseError: If no JSON value can be recovered.
    """
    cleaned = _FENCE_CLOSE_RE.sub("", _FENCE_OPEN_RE.sub("", text.strip())).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    starts = [i for i in (cleaned.find("["), cleaned.find("{")) if i >= 0]
    end = max(cleaned.rfind("]"), cleaned.rfind("}"))
    if starts and end > min(starts):
        try:
            return json.loads(cleaned[min(starts) : end + 1])
        except json.JSONDecodeError:
            pass
    raise ParseError(f"No JSON found in classifier response ({len(text)} chars)")


# === CLASSIFIER ===


class LLMClassifier(BaseClassifier):
    """Prompt an LLM to classify files into the four categories."""

    def __init__(
        self,
        client: BaseLLMClient,
        stage: Stage = "fast",
        max_tokens: int = 4096,
        temperature: float = 0.1,
    ) -> None:
        self._client = client
        self._stage = stage
        self._max_tokens = max_tokens
        self._temperature = temperature

    @property
    def provider_name(self) -> str:
        return self._client.provider_name

    @property
    def stage(self) -> Stage:
        return self._stage

    async def classify(
        self,
        batch: list[ClassificationInput],
        context: ClassificationContext,
    ) -> list[ClassificationResult]:
        if not batch:
            return []
        if self._stage == "fast":
            return await self._classify_fast(batch, context)
        return [await self._classify_precise(item, context) for item in batch]

    # --- Fast: batch of previews ---

    async def _classify_fast(
        self, batch: list[ClassificationInput], context: ClassificationContext
    ) -> list[ClassificationResult]:
        prompt = build_fast_prompt(batch, context)
        response = await self._client.ask(
            prompt,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )
        data = parse_json_safe(response.content)
        if isinstance(data, dict):
            data = data.get("results", [data])
        if not isinstance(data, list):
            raise ParseError("Fast classification response is not a JSON array")

        by_name: dict[str, _RawItem] = {}
        by_index: dict[int, _RawItem] = {}
        for position, raw in enumerate(data):
            if not isinstance(raw, dict):
                continue
            try:
                item = _RawItem.model_validate(raw)
            except ValidationError as e:
                logger.debug("Skipping malformed classification item: %s", e)
                continue
            if item.file_name:
                by_name.setdefault(item.file_name, item)
            index = raw.get("index", position)
            if isinstance(index, int):
                by_index.setdefault(index, item)

        results: list[ClassificationResult] = []
        for i, inp in enumerate(batch):
            item = by_name.get(inp.file_name) or by_index.get(i)
            result = None
            if item is not None:
                try:
                    result = item.to_result(item.confidence or 0.0)
                except ParseError as e:
                    logger.debug("Unusable item for %s: %s", inp.file_name, e)
            if result is None:
                # Missing from the reply: zero confidence forces escalation or confirmation.
                result = ClassificationResult(category=Category.RESOURCE, confidence=0.0)
            results.append(result)
        return results

    # --- Precise: one file, full text ---

    async def _classify_precise(
        self, item: ClassificationInput, context: ClassificationContext
    ) -> ClassificationResult:
        prompt = build_precise_prompt(item, context)
        response = await self._client.ask(
            prompt,
            max_tokens=min(self._max_tokens, 2048),
            temperature=self._temperature,
        )
        data = parse_json_safe(response.content)
        if isinstance(data, list) and data:
            data = data[0]
        if not isinstance(data, dict):
            raise ParseError("Precise classification response is not a JSON object")
        raw = dict(data)
        raw.setdefault("targetFolder", raw.get("targetPath"))
        try:
            parsed = _RawItem.model_validate(raw)
        except ValidationError as e:
            raise ParseError(f"Malformed classification object: {e}") from e
        return parsed.to_result(PRECISE_CONFIDENCE)


# === PROMPTS ===


def _header(context: ClassificationContext) -> str:
    return (
        "You are a document classification expert for a PARA-organized note vault.\n\n"
        f"## Active projects\n{context.project_section()}\n\n"
        f"## Existing subfolders\n{context.subfolder_section()}\n\n"
        f"{_RULES}"
    )


def build_fast_prompt(batch: list[ClassificationInput], context: ClassificationContext) -> str:
    files = "\n\n".join(
        f"[{i}] fileName: {item.file_name}\npreview: {item.preview_text}"
        for i, item in enumerate(batch)
    )
    return f"""{_header(context)}

## Files to classify
{files}

## Response format
Return only a JSON array, no explanation and no code fences. One object per file:
[
  {{
    "index": 0,
    "fileName": "file name",
    "para": "project" | "area" | "resource" | "archive",
    "tags": ["tag1", "tag2"],
    "confidence": 0.0-1.0,
    "project": "related project name, omit if none",
    "targetFolder": "subfolder name such as DevOps, without the category prefix"
  }}
]
At most 5 tags. confidence is how sure you are (0.0 = unknown, 1.0 = certain)."""


def build_precise_prompt(item: ClassificationInput, context: ClassificationContext) -> str:
    return f"""{_header(context)}

## Target file
fileName: {item.file_name}

## Full content
{item.extracted_text}

## Response format
Return only a JSON object, no explanation and no code fences:
{{
  "para": "project" | "area" | "resource" | "archive",
  "tags": ["tag1", "tag2"],
  "summary": "two or three sentence summary of the document",
  "targetFolder": "subfolder name, without the category prefix",
  "project": "related project name, omit if none"
}}
At most 5 tags."""
