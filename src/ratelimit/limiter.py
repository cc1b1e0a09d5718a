# src/ratelimit/limiter.py — v1
"""Adaptive per-provider rate limiter.

Each provider gets a fixed number of in-flight permits (an asyncio.Semaphore)
and a row of time slots. A caller holding a permit reserves the slot with the
earliest next-available time, pushing it forward by the current minimum
interval before it sleeps, so concurrent callers never pick the same start
time. The interval adapts:

- 2 consecutive successes   -> interval * 0.85, floored at the provider floor
- rate-limited failure      -> interval * 2 (cap 30s), cooldown 2**n s (cap 60s),
                               every slot pushed past the cooldown
- transient server failure  -> interval * 1.5 (cap 15s), 5s cooldown

The limiter never interprets exceptions; callers say whether a failure was a
rate limit.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from typing import Protocol

logger = logging.getLogger(__name__)

SUCCESSES_BEFORE_SPEEDUP = 2
SPEEDUP_FACTOR = 0.85
RATE_LIMITED_FACTOR = 2.0
RATE_LIMITED_MAX_INTERVAL = 30.0
RATE_LIMITED_MAX_EXPONENT = 6
RATE_LIMITED_MAX_COOLDOWN = 60.0
TRANSIENT_FACTOR = 1.5
TRANSIENT_MAX_INTERVAL = 15.0
TRANSIENT_COOLDOWN = 5.0


@dataclass(frozen=True)
class ProviderPolicy:
    """Starting interval, concurrency and interval floor of one provider."""

    min_interval: float
    slot_count: int = 1
    floor: float | None = None

    @property
    def interval_floor(self) -> float:
        return self.floor if self.floor is not None else self.min_interval / 2


DEFAULT_POLICIES: dict[str, ProviderPolicy] = {
    "anthropic": ProviderPolicy(min_interval=0.5, slot_count=3),
    "google": ProviderPolicy(min_interval=4.2, slot_count=1),
}
UNKNOWN_PROVIDER_POLICY = ProviderPolicy(min_interval=1.0, slot_count=1)

_ALIASES = {"claude": "anthropic", "gemini": "google"}


def normalize_provider(provider: str) -> str:
    name = provider.strip().lower()
    return _ALIASES.get(name, name)


class Clock(Protocol):
    """Time source used by the limiter."""

    def now(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...


class MonotonicClock:
    """Wall clock: time.monotonic + asyncio.sleep."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


@dataclass
class RateLimiterState:
    """Mutable pacing state of one provider."""

    min_interval: float
    floor: float
    slot_count: int
    slot_next_available: list[float] = field(default_factory=list)
    consecutive_successes: int = 0
    consecutive_failures: int = 0
    backoff_until: float = 0.0

    @classmethod
    def from_policy(cls, policy: ProviderPolicy) -> RateLimiterState:
        return cls(
            min_interval=policy.min_interval,
            floor=policy.interval_floor,
            slot_count=policy.slot_count,
            slot_next_available=[0.0] * policy.slot_count,
        )


class RateLimiter:
    """Admission control shared by every caller of every provider.

    State is created lazily per provider and only ever changed by acquire,
    record_success and record_failure. The lock guarding it is never held
    across a sleep.
    """

    def __init__(
        self,
        policies: dict[str, ProviderPolicy] | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._policies = dict(DEFAULT_POLICIES)
        for name, policy in (policies or {}).items():
            self._policies[normalize_provider(name)] = policy
        self._clock = clock or MonotonicClock()
        self._lock = asyncio.Lock()
        self._states: dict[str, RateLimiterState] = {}
        self._permits: dict[str, asyncio.Semaphore] = {}

    def policy_for(self, provider: str) -> ProviderPolicy:
        return self._policies.get(normalize_provider(provider), UNKNOWN_PROVIDER_POLICY)

    def snapshot(self, provider: str) -> RateLimiterState:
        """Copy of the provider state, for inspection."""
        state = self._state(provider)
        return replace(state, slot_next_available=list(state.slot_next_available))

    def _state(self, provider: str) -> RateLimiterState:
        key = normalize_provider(provider)
        state = self._states.get(key)
        if state is None:
            policy = self.policy_for(key)
            state = RateLimiterState.from_policy(policy)
            self._states[key] = state
            self._permits[key] = asyncio.Semaphore(policy.slot_count)
        return state

    # --- Admission ---

    async def acquire(self, provider: str) -> None:
        """Wait for an in-flight permit and a paced start time."""
        state = self._state(provider)
        permits = self._permits[normalize_provider(provider)]
        await permits.acquire()
        try:
            await self._wait_for_slot(state)
        except BaseException:
            permits.release()
            raise

    async def _wait_for_slot(self, state: RateLimiterState) -> None:
        while True:
            async with self._lock:
                now = self._clock.now()
                if state.backoff_until > now:
                    wait = state.backoff_until - now
                    reserved = False
                else:
                    slots = state.slot_next_available
                    idx = min(range(len(slots)), key=slots.__getitem__)
                    start = max(now, slots[idx])
                    slots[idx] = start + state.min_interval
                    wait = start - now
                    reserved = True

            if wait > 0:
                await self._clock.sleep(wait)
            if reserved:
                return

    def release(self, provider: str) -> None:
        """Return the in-flight permit taken by acquire."""
        self._permits[normalize_provider(provider)].release()

    @asynccontextmanager
    async def permit(self, provider: str) -> AsyncIterator[None]:
        """``async with limiter.permit("anthropic"): ...``"""
        await self.acquire(provider)
        try:
            yield
        finally:
            self.release(provider)

    # --- Feedback ---

    async def record_success(self, provider: str, duration: float = 0.0) -> None:
        state = self._state(provider)
        async with self._lock:
            state.consecutive_failures = 0
            state.backoff_until = 0.0
            state.consecutive_successes += 1
            if state.consecutive_successes >= SUCCESSES_BEFORE_SPEEDUP:
                state.min_interval = max(state.floor, state.min_interval * SPEEDUP_FACTOR)
                state.consecutive_successes = 0
        logger.debug(
            "%s call succeeded in %.2fs, interval now %.3fs",
            provider, duration, state.min_interval,
        )

    async def record_failure(self, provider: str, is_rate_limited: bool) -> None:
        state = self._state(provider)
        async with self._lock:
            now = self._clock.now()
            state.consecutive_successes = 0
            state.consecutive_failures += 1
            if is_rate_limited:
                state.min_interval = min(
                    state.min_interval * RATE_LIMITED_FACTOR, RATE_LIMITED_MAX_INTERVAL
                )
                exponent = min(state.consecutive_failures, RATE_LIMITED_MAX_EXPONENT)
                cooldown = min(2.0**exponent, RATE_LIMITED_MAX_COOLDOWN)
                state.backoff_until = max(state.backoff_until, now + cooldown)
                state.slot_next_available = [
                    max(slot, state.backoff_until) for slot in state.slot_next_available
                ]
            else:
                # Never undo a larger interval left by an earlier rate limit.
                state.min_interval = max(
                    state.min_interval,
                    min(state.min_interval * TRANSIENT_FACTOR, TRANSIENT_MAX_INTERVAL),
                )
                cooldown = TRANSIENT_COOLDOWN
                state.backoff_until = max(state.backoff_until, now + cooldown)
        logger.warning(
            "%s %s (failure %d), interval %.2fs, cooling down %.0fs",
            provider,
            "rate limited" if is_rate_limited else "server error",
            state.consecutive_failures,
            state.min_interval,
            cooldown,
        )
