"""
Retry with exponential backoff.

RetryPolicy re-invokes an operation factory, so every attempt rebuilds its
request (transactions get a fresh blockhash). Eligibility comes from
errors.retries_allowed; the delay is base_delay * 2 ** attempt, no jitter.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from solconnect.core.errors import (
    DeadlineExceededError,
    SolanaClientError,
    classify,
    retries_allowed,
    to_client_error,
)
from solconnect.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class RetryState:
    """Progress of a single execute() call."""
    attempt: int = 0
    last_error: Optional[SolanaClientError] = None


class RetryPolicy:
    """
    Bounded retry executor.

    Usage:
        policy = RetryPolicy(max_attempts=3, base_delay=1.0)
        signature = await policy.execute(lambda: send_transfer(...))
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: SleepFn = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep

    def delay_for(self, attempt: int, base_delay: Optional[float] = None) -> float:
        base = self.base_delay if base_delay is None else base_delay
        return base * (2 ** attempt)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        label: str = "operation",
    ) -> T:
        """Run operation until it succeeds, fails terminally or attempts run out.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            max_attempts: Overrides the policy's attempt count
            base_delay: Overrides the policy's base delay in seconds
            label: Name used in log messages

        Returns:
            The operation's result

        Raises:
            SolanaClientError: The last classified failure
        """
        attempts = max_attempts if max_attempts is not None else self.max_attempts
        state = RetryState()
        retries_used: dict = {}

        while True:
            try:
                return await operation()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = to_client_error(e)
                state.last_error = error
                kind = classify(error)
                budget = retries_allowed(kind)
                used = retries_used.get(kind, 0)

                if budget == 0:
                    logger.error(f"[Retry] {label} failed ({kind.value}, not retryable): {error}")
                    raise error
                if budget is not None and used >= budget:
                    logger.error(f"[Retry] {label} failed ({kind.value}) after {used} retry: {error}")
                    raise error
                if state.attempt + 1 >= attempts:
                    logger.error(f"[Retry] All {attempts} attempts of {label} failed: {error}")
                    raise error

                delay = self.delay_for(state.attempt, base_delay)
                logger.warning(
                    f"[Retry] {label} attempt {state.attempt + 1}/{attempts} failed "
                    f"({kind.value}): {error}. Retrying in {delay:.2f}s..."
                )
                retries_used[kind] = used + 1
                state.attempt += 1
                await self._sleep(delay)


async def with_deadline(awaitable: Awaitable[T], timeout: Optional[float], label: str = "call") -> T:
    """Await with an optional deadline, raising DeadlineExceededError on expiry."""
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise DeadlineExceededError(f"{label} did not finish within {timeout}s") from e
