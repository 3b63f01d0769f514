"""The versioned store contract.

Everything the generator, claimer, processor and orchestrator know about
persistence is this protocol. The only synchronization primitive it offers
is the conditional batch write: ``try_claim`` and ``mark_terminal`` succeed
for every item of the batch or for none, and fail with
:class:`~claimrun.core.errors.OptimisticConflictError` when any item's
version token changed since the caller read it.

Error contract:
    - ``OptimisticConflictError``  version mismatch, nothing written
    - ``TransientStorageError``    connectivity/timeout/lock, safe to retry
    - ``RunNotFoundError``         the run row is gone, never retry
    - ``StorageError``             anything else, never retry

Implementations:
    - :class:`~claimrun.store.sqlalchemy_store.SQLAlchemyStore`
    - :class:`~claimrun.store.memory.MemoryStore`

Tags:
    claimrun, store, protocol, optimistic-concurrency, compare-and-swap
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from claimrun.core.models import Run, WorkItem
from claimrun.core.states import ProcessState


@runtime_checkable
class VersionedStore(Protocol):
    """Durable work-item and run tables with conditional batch writes.

    All methods are blocking; async callers run them through
    ``asyncio.to_thread``. Each call is one logical operation on fresh
    resources, nothing is held between calls.
    """

    def create_schema(self) -> None:
        """Create the tables if they do not exist."""
        ...

    # --- runs -----------------------------------------------------------

    def create_run(self, run: Run) -> Run:
        """Insert *run* and return it with its assigned id."""
        ...

    def update_run(self, run: Run) -> Run:
        """Persist state, end and name of an existing run."""
        ...

    def get_run(self, run_id: int) -> Run:
        ...

    def list_runs(self, limit: int = 20) -> list[Run]:
        """Most recent runs first."""
        ...

    # --- work items -----------------------------------------------------

    def clear_worklist(self) -> int:
        """Delete every work item. Returns the number of rows removed."""
        ...

    def append_work_items(self, items: Sequence[WorkItem]) -> int:
        """Insert *items* as new Pending rows in one transaction."""
        ...

    def fetch_pending(self, limit: int) -> list[WorkItem]:
        """Up to *limit* Pending items, lowest id first."""
        ...

    def try_claim(self, items: Sequence[WorkItem]) -> list[WorkItem]:
        """Move every item Pending → Claimed, or none of them."""
        ...

    def mark_terminal(self, items: Sequence[WorkItem], outcome: ProcessState) -> list[WorkItem]:
        """Move every item Claimed → *outcome*, or none of them."""
        ...

    def count_by_state(self) -> dict[ProcessState, int]:
        ...

    def list_work_items(self, state: ProcessState | None = None) -> list[WorkItem]:
        """All items (optionally filtered by state), lowest id first."""
        ...


__all__ = ["VersionedStore"]
