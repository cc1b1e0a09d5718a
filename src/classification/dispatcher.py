# src/classification/dispatcher.py — v1
"""Bounded-concurrency classification runner.

Inputs are cut into ordered batches and pushed onto an asyncio.Queue that a
fixed pool of workers drains. Every classifier call runs inside a rate
limiter permit and reports its outcome back to the limiter. Each input is
tagged with its index and the collected outcomes are sorted on it, so the
output order always equals the input order whatever order calls finish in.

Failure handling per batch:
  1. retryable kinds (quota, transient, network) are retried up to
     max_retries times; pacing is left to the limiter
  2. a multi-item batch that still fails is split into single-item batches
  3. whatever still fails becomes a ClassificationError on its items
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from paravault.classification.base_classifier import BaseClassifier
from paravault.classification.context import ClassificationContext
from paravault.core.cancellation import CancellationToken
from paravault.core.errors import (
    ErrorKind,
    OperationCancelled,
    ParseError,
    classify_error,
    feeds_rate_limiter,
    is_retryable,
)
from paravault.core.models import (
    ClassificationError,
    ClassificationInput,
    ClassificationResult,
    DispatchOutcome,
)
from paravault.ratelimit.limiter import RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_ESCALATION_THRESHOLD = 0.8

_Batch = list[tuple[int, ClassificationInput]]


@dataclass(frozen=True)
class DispatchStage:
    """One classification stage: which classifier, how many files per call."""

    name: str
    classifier: BaseClassifier
    batch_size: int = 5

    @property
    def provider(self) -> str:
        return self.classifier.provider_name


class ClassificationDispatcher:
    """Run classifier calls concurrently without breaking provider limits."""

    def __init__(
        self,
        limiter: RateLimiter,
        max_concurrent_batches: int = 5,
        max_retries: int = 3,
        cancel: CancellationToken | None = None,
    ) -> None:
        self._limiter = limiter
        self._max_workers = max(1, max_concurrent_batches)
        self._max_retries = max(0, max_retries)
        self._cancel = cancel

    # --- Two-stage entry point ---

    async def classify(
        self,
        inputs: list[ClassificationInput],
        context: ClassificationContext,
        fast: DispatchStage,
        precise: DispatchStage | None = None,
        threshold: float = DEFAULT_ESCALATION_THRESHOLD,
    ) -> list[DispatchOutcome]:
        """Fast stage for everything, precise stage for what the fast stage is unsure of.

        A precise failure keeps the fast result.
        """
        outcomes = await self.dispatch(inputs, context, fast)
        if precise is None:
            return outcomes

        uncertain = [
            o for o in outcomes if o.result is not None and o.result.confidence < threshold
        ]
        if not uncertain:
            return outcomes
        logger.info(
            "Escalating %d/%d files below confidence %.2f to %s stage",
            len(uncertain), len(outcomes), threshold, precise.name,
        )

        refined = await self.dispatch([o.input for o in uncertain], context, precise)
        merged = list(outcomes)
        for original, second in zip(uncertain, refined):
            if second.result is not None:
                merged[original.index] = original.model_copy(update={"result": second.result})
            else:
                logger.warning(
                    "Precise stage failed for %s (%s), keeping fast result",
                    original.input.file_name, second.error.kind.value if second.error else "?",
                )
        return merged

    # --- Single stage ---

    async def dispatch(
        self,
        inputs: list[ClassificationInput],
        context: ClassificationContext,
        stage: DispatchStage,
    ) -> list[DispatchOutcome]:
        """Classify *inputs* in batches of ``stage.batch_size``; one outcome per input."""
        if not inputs:
            return []

        indexed = list(enumerate(inputs))
        size = max(1, stage.batch_size)
        queue: asyncio.Queue[_Batch] = asyncio.Queue()
        for start in range(0, len(indexed), size):
            queue.put_nowait(indexed[start : start + size])

        collected: list[DispatchOutcome] = []
        worker_count = min(self._max_workers, queue.qsize())

        async def worker() -> None:
            while True:
                try:
                    batch = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                if self._cancel is not None and self._cancel.cancelled:
                    collected.extend(_failed(batch, ErrorKind.CANCELLED))
                    continue
                collected.extend(await self._run_batch(batch, context, stage))

        await asyncio.gather(*(worker() for _ in range(worker_count)))

        collected.sort(key=lambda o: o.index)
        logger.info(
            "%s stage: %d/%d classified",
            stage.name, sum(1 for o in collected if o.ok), len(collected),
        )
        return collected

    async def _run_batch(
        self,
        batch: _Batch,
        context: ClassificationContext,
        stage: DispatchStage,
    ) -> list[DispatchOutcome]:
        items = [inp for _, inp in batch]
        try:
            results = await self._call_with_retries(items, context, stage)
        except OperationCancelled:
            return _failed(batch, ErrorKind.CANCELLED)
        except Exception as e:
            kind = classify_error(e)
            if len(batch) > 1 and kind is not ErrorKind.AUTH:
                logger.warning(
                    "Batch of %d failed (%s), retrying files one by one", len(batch), kind.value
                )
                split: list[DispatchOutcome] = []
                for item in batch:
                    split.extend(await self._run_batch([item], context, stage))
                return split
            logger.error(
                "Classification failed for %s: %s (%s)",
                ", ".join(inp.file_name for inp in items), kind.value, e,
            )
            return _failed(batch, kind)

        return [
            DispatchOutcome(index=index, input=inp, result=result)
            for (index, inp), result in zip(batch, results)
        ]

    async def _call_with_retries(
        self,
        items: list[ClassificationInput],
        context: ClassificationContext,
        stage: DispatchStage,
    ) -> list[ClassificationResult]:
        attempt = 0
        while True:
            if self._cancel is not None:
                self._cancel.raise_if_cancelled()

            error: Exception | None = None
            async with self._limiter.permit(stage.provider):
                started = time.monotonic()
                try:
                    results = await stage.classifier.classify(items, context)
                    if len(results) != len(items):
                        raise ParseError(
                            f"Classifier returned {len(results)} results for {len(items)} files"
                        )
                except Exception as e:
                    error = e
                else:
                    await self._limiter.record_success(stage.provider, time.monotonic() - started)
                    return results

            kind = classify_error(error)
            if feeds_rate_limiter(kind):
                await self._limiter.record_failure(
                    stage.provider, is_rate_limited=kind is ErrorKind.QUOTA
                )
            attempt += 1
            if not is_retryable(kind) or attempt > self._max_retries:
                raise error
            logger.warning(
                "%s call failed (%s), attempt %d/%d",
                stage.name, kind.value, attempt, self._max_retries,
            )


def _failed(batch: _Batch, kind: ErrorKind) -> list[DispatchOutcome]:
    error = ClassificationError.of(kind)
    return [DispatchOutcome(index=index, input=inp, error=error) for index, inp in batch]
