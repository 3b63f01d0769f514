"""Bounded retry for store operations.

A :class:`RetryBudget` wraps ONE logical operation (a single ``fetch_pending``,
a single run transition, ...). It retries only errors that
:func:`~claimrun.core.errors.is_retryable` accepts, sleeps cooperatively
between attempts, and turns an exhausted budget into
:class:`~claimrun.core.errors.RunInvalidError`. A budget given a
:class:`~claimrun.execution.cancel.CancellationToken` also stops retrying once
the token is tripped. Anything non-retryable
(``RunNotFoundError``, ``OptimisticConflictError``, bugs) propagates unchanged
on its first occurrence.

Example:
    >>> budget = RetryBudget(ConstantBackoff(max_attempts=30, delay=5.0), operation="fetch_pending")
    >>> items = await budget.run(store.fetch_pending, 1000)
"""

from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from claimrun.core.errors import RunInvalidError, is_retryable
from claimrun.core.logging import get_logger
from claimrun.execution.cancel import CancellationToken


class RetryStrategy(ABC):
    """Abstract base for retry strategies."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Delay in seconds after the *attempt*-th failure (1-based)."""
        ...

    @abstractmethod
    def should_retry(self, attempt: int, error: BaseException | None = None) -> bool:
        """Whether another attempt is allowed after *attempt* attempts."""
        ...


@dataclass(frozen=True)
class ConstantBackoff(RetryStrategy):
    """Constant delay between attempts.

    ``max_attempts`` counts every attempt including the first, so
    ``ConstantBackoff(max_attempts=30)`` tolerates 29 consecutive failures.
    """

    max_attempts: int = 30
    delay: float = 5.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.delay < 0:
            raise ValueError("delay must be >= 0")

    def next_delay(self, attempt: int) -> float:
        return self.delay

    def should_retry(self, attempt: int, error: BaseException | None = None) -> bool:
        return attempt < self.max_attempts


@dataclass(frozen=True)
class RetryPolicy:
    """Attempts and backoff for one class of operations; mints fresh budgets."""

    max_attempts: int = 30
    delay: float = 5.0

    def budget(
        self,
        operation: str,
        *,
        logger: Any = None,
        run_id: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> RetryBudget:
        return RetryBudget(
            ConstantBackoff(max_attempts=self.max_attempts, delay=self.delay),
            logger=logger,
            operation=operation,
            run_id=run_id,
            cancel_token=cancel_token,
        )


class RetryBudget:
    """Runs a callable until it succeeds, fails fatally, or the budget is spent.

    Sync callables (the store's methods) are executed through
    ``asyncio.to_thread`` so that blocking I/O stays off the event loop;
    coroutine functions are awaited directly.

    Attributes:
        attempts: Attempts made by the most recent ``run`` call.
        last_error: The last retryable error seen, if any.
    """

    def __init__(
        self,
        strategy: RetryStrategy,
        *,
        logger: Any = None,
        operation: str = "operation",
        run_id: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self.strategy = strategy
        self.operation = operation
        self.run_id = run_id
        self.attempts = 0
        self.last_error: BaseException | None = None
        self._logger = logger or get_logger(__name__)
        self._cancel = cancel_token

    async def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        if inspect.iscoroutinefunction(fn):
            return await fn(*args, **kwargs)
        result = await asyncio.to_thread(fn, *args, **kwargs)
        if inspect.isawaitable(result):
            return await result
        return result

    async def run(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Execute *fn* under this budget.

        Raises:
            RunInvalidError: After the strategy refuses another attempt.
                The last transient error is attached as ``cause``.
        """
        self.attempts = 0
        self.last_error = None
        while True:
            self.attempts += 1
            try:
                return await self._call(fn, *args, **kwargs)
            except Exception as exc:
                if not is_retryable(exc):
                    raise
                self.last_error = exc

                if self._cancel is not None and self._cancel.cancelled:
                    raise self._abandoned(exc) from exc

                if not self.strategy.should_retry(self.attempts, exc):
                    self._logger.warning(
                        "retry.budget_exhausted",
                        operation=self.operation,
                        run_id=self.run_id,
                        attempts=self.attempts,
                        error=str(exc),
                    )
                    raise RunInvalidError(
                        f"{self.operation} failed after {self.attempts} attempts: {exc}",
                        cause=exc,
                    ).with_context(
                        run_id=self.run_id,
                        operation=self.operation,
                        attempt=self.attempts,
                    ) from exc

                delay = self.strategy.next_delay(self.attempts)
                self._logger.warning(
                    "retry.transient_failure",
                    operation=self.operation,
                    run_id=self.run_id,
                    attempt=self.attempts,
                    delay=delay,
                    error=str(exc),
                )
                if self._cancel is None:
                    await asyncio.sleep(delay)
                elif await self._cancel.sleep(delay):
                    raise self._abandoned(exc) from exc

    def _abandoned(self, exc: BaseException) -> RunInvalidError:
        reason = self._cancel.reason if self._cancel is not None else None
        self._logger.warning(
            "retry.abandoned",
            operation=self.operation,
            run_id=self.run_id,
            attempts=self.attempts,
            reason=reason,
        )
        return RunInvalidError(
            f"{self.operation} abandoned after {self.attempts} attempts: cancelled ({reason})",
            cause=exc,
        ).with_context(
            run_id=self.run_id,
            operation=self.operation,
            attempt=self.attempts,
        )


__all__ = ["RetryStrategy", "ConstantBackoff", "RetryPolicy", "RetryBudget"]
