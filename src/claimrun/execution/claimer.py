"""Exclusive batch claiming over the versioned store.

One :class:`WorkClaimer` is one claim loop. Several loops (in one process
or many) may poll the same store; the conditional ``try_claim`` guarantees
that each Pending item is handed to at most one of them.

Poll cycle::

    get_run + fetch_pending(B)
        │
        ├── no items, run PROCESSOR_RUNNING ──► stop (worklist drained)
        ├── no items, otherwise ──────────────► sleep poll_interval, re-poll
        └── items ──► try_claim(items)
                        ├── ok ───────► yield batch
                        │               (short batch + PROCESSOR_RUNNING ► stop)
                        └── conflict ─► warn, discard, re-poll at once

Every store call runs under a fresh retry budget that shares the claimer's
cancellation token, so a stop request also ends a retry sequence. A conflict
is never charged to a budget.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from claimrun.core.errors import OptimisticConflictError, RunInvalidError, RunNotFoundError
from claimrun.core.logging import get_logger
from claimrun.core.models import Run, WorkItem
from claimrun.core.states import RunState
from claimrun.execution.cancel import CancellationToken
from claimrun.execution.retry import RetryBudget, RetryPolicy
from claimrun.store.base import VersionedStore


class WorkClaimer:
    """Async iterator of exclusively claimed batches for one run."""

    def __init__(
        self,
        store: VersionedStore,
        *,
        batch_size: int = 1000,
        poll_interval: float = 5.0,
        retry_policy: RetryPolicy | None = None,
        logger: Any = None,
        cancel_token: CancellationToken | None = None,
        name: str = "claimer-0",
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._store = store
        self.batch_size = batch_size
        self.poll_interval = poll_interval
        self._retry = retry_policy or RetryPolicy()
        self._logger = logger or get_logger(__name__)
        self._cancel = cancel_token or CancellationToken()
        self.name = name

        self.conflicts = 0
        self.claimed_batches = 0
        self.claimed_items = 0
        self.polls = 0

    def _budget(self, operation: str, run_id: int) -> RetryBudget:
        return self._retry.budget(operation, logger=self._logger, run_id=run_id, cancel_token=self._cancel)

    async def _read_run(self, run_id: int) -> Run:
        try:
            run = await self._budget("get_run", run_id).run(self._store.get_run, run_id)
        except RunNotFoundError as exc:
            raise RunInvalidError(f"Run {run_id} disappeared while claiming", cause=exc).with_context(
                run_id=run_id, operation="get_run"
            ) from exc
        if run.state.is_terminal:
            raise RunInvalidError(
                f"Run {run_id} is already {run.state.name}; refusing to claim"
            ).with_context(run_id=run_id, operation="get_run")
        return run

    async def _fetch(self, run_id: int) -> list[WorkItem]:
        return await self._budget("fetch_pending", run_id).run(self._store.fetch_pending, self.batch_size)

    async def _claim(self, run_id: int, items: list[WorkItem]) -> list[WorkItem]:
        return await self._budget("try_claim", run_id).run(self._store.try_claim, items)

    async def batches(self, run_id: int) -> AsyncIterator[list[WorkItem]]:
        """Yield claimed batches until the run's worklist is drained.

        Raises:
            RunInvalidError: A retry budget was exhausted or abandoned on
                cancellation, or the run is missing or already terminal.
        """
        while not self._cancel.cancelled:
            self.polls += 1
            run = await self._read_run(run_id)
            items = await self._fetch(run_id)
            processor_phase = run.state is RunState.PROCESSOR_RUNNING

            if not items:
                if processor_phase:
                    self._logger.info(
                        "claim.exhausted",
                        claimer=self.name,
                        run_id=run_id,
                        batches=self.claimed_batches,
                    )
                    return
                self._logger.debug("claim.idle", claimer=self.name, run_id=run_id, state=run.state.name)
                await self._cancel.sleep(self.poll_interval)
                continue

            try:
                claimed = await self._claim(run_id, items)
            except OptimisticConflictError as exc:
                self.conflicts += 1
                self._logger.warning(
                    "claim.conflict",
                    claimer=self.name,
                    run_id=run_id,
                    batch_size=len(items),
                    item_ids=list(exc.item_ids),
                )
                continue

            self.claimed_batches += 1
            self.claimed_items += len(claimed)
            self._logger.debug(
                "claim.batch_claimed",
                claimer=self.name,
                run_id=run_id,
                size=len(claimed),
                first_id=claimed[0].id,
            )
            yield claimed

            if len(claimed) < self.batch_size and processor_phase:
                self._logger.info(
                    "claim.exhausted",
                    claimer=self.name,
                    run_id=run_id,
                    batches=self.claimed_batches,
                )
                return

        self._logger.info("claim.cancelled", claimer=self.name, run_id=run_id)


__all__ = ["WorkClaimer"]
