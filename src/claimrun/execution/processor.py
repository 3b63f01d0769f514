"""Work processor: drains claimed batches and records each item's outcome.

``WorkProcessor.run`` starts ``claimers`` concurrent claim loops against the
same store. Each loop, for every batch it owns:

1. waits ``processing_delay`` (the cost of the processing step),
2. runs the item handler on every item, up to ``item_attempts`` times,
3. writes the DONE_OK group and the DONE_ERROR group with ``mark_terminal``,
   each under a fresh retry budget.

A failing item never fails the run; it ends DONE_ERROR. A conflict on a
batch this loop already owns means a foreign writer touched it, and that is
fatal. When one loop fails, the shared cancellation token is tripped so the
remaining loops stop at their next poll.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from claimrun.core.errors import OptimisticConflictError, ProcessingError, RunInvalidError
from claimrun.core.logging import get_logger
from claimrun.core.models import WorkItem
from claimrun.core.settings import ClaimrunSettings
from claimrun.core.states import ProcessState
from claimrun.execution.cancel import CancellationToken
from claimrun.execution.claimer import WorkClaimer
from claimrun.execution.retry import RetryPolicy
from claimrun.store.base import VersionedStore

ItemHandler = Callable[[WorkItem], Awaitable[None]]
"""Processes one item. Raising marks the attempt as failed."""


async def noop_handler(item: WorkItem) -> None:
    return None


@dataclass(frozen=True)
class ProcessorConfig:
    """Claim and processing parameters shared by every claim loop."""

    batch_size: int = 1000
    claimers: int = 1
    poll_interval: float = 5.0
    processing_delay: float = 1.0
    item_attempts: int = 3
    retry_attempts: int = 30
    retry_delay: float = 5.0

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.claimers < 1:
            raise ValueError("claimers must be >= 1")
        if self.item_attempts < 1:
            raise ValueError("item_attempts must be >= 1")

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.retry_attempts, delay=self.retry_delay)

    @classmethod
    def from_settings(cls, settings: ClaimrunSettings) -> ProcessorConfig:
        return cls(
            batch_size=settings.batch_size,
            claimers=settings.claimers,
            poll_interval=settings.poll_interval,
            processing_delay=settings.processing_delay,
            item_attempts=settings.item_attempts,
            retry_attempts=settings.processing_retry_budget,
            retry_delay=settings.processing_retry_delay,
        )


@dataclass
class ProcessorStats:
    """Counters for one processor run; updated live while it runs."""

    batches: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    conflicts: int = 0
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "batches": self.batches,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "conflicts": self.conflicts,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class WorkProcessor:
    """Claims, processes and completes work items for one run."""

    def __init__(
        self,
        store: VersionedStore,
        config: ProcessorConfig | None = None,
        *,
        handler: ItemHandler = noop_handler,
        logger: Any = None,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self._store = store
        self.config = config or ProcessorConfig()
        self._handler = handler
        self._logger = logger or get_logger(__name__)
        self._cancel = cancel_token or CancellationToken()
        self.stats = ProcessorStats()
        self._claimers: list[WorkClaimer] = []

    @property
    def processed(self) -> int:
        return self.stats.processed

    def _make_claimer(self, index: int) -> WorkClaimer:
        return WorkClaimer(
            self._store,
            batch_size=self.config.batch_size,
            poll_interval=self.config.poll_interval,
            retry_policy=self.config.retry_policy,
            logger=self._logger,
            cancel_token=self._cancel,
            name=f"claimer-{index}",
        )

    async def run(self, run_id: int) -> ProcessorStats:
        """Process every item of *run_id*'s worklist.

        Raises:
            RunInvalidError: A claim loop failed; the others were stopped.
        """
        started = time.monotonic()
        self._claimers = [self._make_claimer(i) for i in range(self.config.claimers)]
        self._logger.info(
            "processor.started",
            run_id=run_id,
            claimers=len(self._claimers),
            batch_size=self.config.batch_size,
        )

        results = await asyncio.gather(
            *(self._claim_loop(claimer, run_id) for claimer in self._claimers),
            return_exceptions=True,
        )
        self.stats.conflicts = sum(claimer.conflicts for claimer in self._claimers)
        self.stats.duration_seconds = time.monotonic() - started

        for result in results:
            if isinstance(result, BaseException):
                raise result

        self._logger.info("processor.completed", run_id=run_id, **self.stats.to_dict())
        return self.stats

    async def _claim_loop(self, claimer: WorkClaimer, run_id: int) -> None:
        try:
            async for batch in claimer.batches(run_id):
                await self._process_batch(claimer.name, run_id, batch)
        except Exception as exc:
            self._cancel.request_cancel(f"{claimer.name} failed: {exc}")
            raise

    async def _process_item(self, item: WorkItem) -> bool:
        last_error: Exception | None = None
        for attempt in range(1, self.config.item_attempts + 1):
            try:
                await self._handler(item)
                return True
            except Exception as exc:
                last_error = exc
                self._logger.debug("processing.attempt_failed", item_id=item.id, attempt=attempt, error=str(exc))

        error = ProcessingError(
            f"Work item {item.id} failed after {self.config.item_attempts} attempts",
            item_id=item.id,
            cause=last_error,
        )
        self._logger.warning("processing.item_failed", item_id=item.id, **error.to_dict())
        return False

    async def _process_batch(self, claimer_name: str, run_id: int, batch: list[WorkItem]) -> None:
        if self.config.processing_delay > 0:
            await asyncio.sleep(self.config.processing_delay)

        ok: list[WorkItem] = []
        failed: list[WorkItem] = []
        for item in batch:
            (ok if await self._process_item(item) else failed).append(item)

        await self._complete(run_id, ok, ProcessState.DONE_OK)
        await self._complete(run_id, failed, ProcessState.DONE_ERROR)

        self.stats.batches += 1
        self.stats.processed += len(batch)
        self.stats.succeeded += len(ok)
        self.stats.failed += len(failed)
        self._logger.info(
            "processing.batch_completed",
            claimer=claimer_name,
            run_id=run_id,
            size=len(batch),
            failed=len(failed),
            processed=self.stats.processed,
        )

    async def _complete(self, run_id: int, items: list[WorkItem], outcome: ProcessState) -> None:
        if not items:
            return
        # no cancel token: a claimed batch is always written back
        budget = self.config.retry_policy.budget("mark_terminal", logger=self._logger, run_id=run_id)
        try:
            await budget.run(self._store.mark_terminal, items, outcome)
        except OptimisticConflictError as exc:
            raise RunInvalidError(
                f"Claimed items {list(exc.item_ids)} were modified by another writer",
                cause=exc,
            ).with_context(run_id=run_id, operation="mark_terminal") from exc


__all__ = [
    "ItemHandler",
    "noop_handler",
    "ProcessorConfig",
    "ProcessorStats",
    "WorkProcessor",
]
