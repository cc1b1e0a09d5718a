# src/core/cancellation.py — v1
"""Cooperative cancellation flag checked between units of work.

Backed by a threading.Event so the same token works in coroutines and in
blocking passes running under asyncio.to_thread.
"""

from __future__ import annotations

import threading

from paravault.core.errors import OperationCancelled


class CancellationToken:
    """Set once, observed by every long-running pass that holds it."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelled if cancel() has been called."""
        if self._event.is_set():
            raise OperationCancelled("operation cancelled")
