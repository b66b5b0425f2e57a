"""Declarative retry over an ordered list of fallbacks.

A `RetryPolicy` names the candidates to try in order and how many attempts
each one gets. `run_with_fallback` walks the policy and returns the first
success. Cancellation is never retried.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True, slots=True)
class RetryPolicy(Generic[T]):
    items: tuple[T, ...]
    attempts_per_item: int = 2
    delay_s: float = 0.0

    @classmethod
    def of(cls, items: Sequence[T], *, attempts_per_item: int = 2, delay_s: float = 0.0) -> "RetryPolicy[T]":
        ordered: list[T] = []
        for item in items:
            if item not in ordered:
                ordered.append(item)
        return cls(items=tuple(ordered), attempts_per_item=max(int(attempts_per_item), 1), delay_s=delay_s)


@dataclass(slots=True)
class AttemptFailure:
    item: object
    attempt: int
    error: Exception


@dataclass(eq=False)
class FallbackExhaustedError(Exception):
    failures: list[AttemptFailure] = field(default_factory=list)

    @property
    def last_error(self) -> Exception | None:
        return self.failures[-1].error if self.failures else None

    def __str__(self) -> str:
        last = self.last_error
        if last is None:
            return "No candidates to try"
        return str(last) or type(last).__name__


OnFailure = Callable[[AttemptFailure], None]


async def run_with_fallback(
    policy: RetryPolicy[T],
    operation: Callable[[T], Awaitable[R]],
    *,
    on_failure: OnFailure | None = None,
) -> tuple[T, R]:
    """Return `(item, result)` for the first item whose operation succeeds.

    Raises FallbackExhaustedError once every attempt of every item failed.
    """
    failures: list[AttemptFailure] = []
    for item in policy.items:
        for attempt in range(1, policy.attempts_per_item + 1):
            try:
                return item, await operation(item)
            except Exception as exc:
                failure = AttemptFailure(item=item, attempt=attempt, error=exc)
                failures.append(failure)
                if on_failure is not None:
                    on_failure(failure)
                if policy.delay_s > 0:
                    await asyncio.sleep(policy.delay_s)
    raise FallbackExhaustedError(failures=failures)
