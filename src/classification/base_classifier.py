# src/classification/base_classifier.py — v1
"""Abstract classifier interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from paravault.classification.context import ClassificationContext
from paravault.core.models import ClassificationInput, ClassificationResult


class BaseClassifier(ABC):
    """Given file content, return a category and destination per file."""

    @abstractmethod
    async def classify(
        self,
        batch: list[ClassificationInput],
        context: ClassificationContext,
    ) -> list[ClassificationResult]:
        """Classify *batch*; exactly one result per input, in input order.

        Raises:
            ParaVaultError (or any provider exception): The dispatcher maps
            failures to an ErrorKind with classify_error.
        """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Rate limiter key of the provider behind this classifier."""
