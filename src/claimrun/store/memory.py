"""In-process versioned store.

Same contract as :class:`~claimrun.store.sqlalchemy_store.SQLAlchemyStore`
(atomic batch compare-and-swap, error types, ordering), kept in dicts behind
a single lock. Used by the test-suite and by embedders that do not need
durability.
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Sequence
from dataclasses import replace

from claimrun.core.errors import OptimisticConflictError, RunNotFoundError
from claimrun.core.models import Run, WorkItem
from claimrun.core.states import (
    TERMINAL_OUTCOMES,
    ProcessState,
    validate_process_transition,
)


class MemoryStore:
    """Thread-safe in-memory store."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: dict[int, WorkItem] = {}
        self._runs: dict[int, Run] = {}
        self._item_ids = itertools.count(1)
        self._run_ids = itertools.count(1)

    def create_schema(self) -> None:
        pass

    def create_run(self, run: Run) -> Run:
        with self._lock:
            stored = replace(run, id=next(self._run_ids))
            self._runs[stored.id] = stored
            return stored

    def update_run(self, run: Run) -> Run:
        with self._lock:
            if run.id is None or run.id not in self._runs:
                raise RunNotFoundError(run.id)
            self._runs[run.id] = run
            return run

    def get_run(self, run_id: int) -> Run:
        with self._lock:
            try:
                return self._runs[run_id]
            except KeyError:
                raise RunNotFoundError(run_id) from None

    def list_runs(self, limit: int = 20) -> list[Run]:
        with self._lock:
            return [self._runs[key] for key in sorted(self._runs, reverse=True)[:limit]]

    def delete_run(self, run_id: int) -> None:
        """Drop a run row. Only useful for simulating external interference."""
        with self._lock:
            self._runs.pop(run_id, None)

    def clear_worklist(self) -> int:
        with self._lock:
            removed = len(self._items)
            self._items.clear()
            return removed

    def append_work_items(self, items: Sequence[WorkItem]) -> int:
        with self._lock:
            for item in items:
                item_id = next(self._item_ids)
                self._items[item_id] = WorkItem(name=item.name, id=item_id)
            return len(items)

    def fetch_pending(self, limit: int) -> list[WorkItem]:
        with self._lock:
            pending = (item for _, item in sorted(self._items.items()) if item.state is ProcessState.PENDING)
            return list(itertools.islice(pending, limit))

    def try_claim(self, items: Sequence[WorkItem]) -> list[WorkItem]:
        return self._conditional_write(items, ProcessState.CLAIMED, operation="try_claim")

    def mark_terminal(self, items: Sequence[WorkItem], outcome: ProcessState) -> list[WorkItem]:
        if outcome not in TERMINAL_OUTCOMES:
            raise ValueError(f"{outcome.name} is not a terminal outcome")
        return self._conditional_write(items, outcome, operation="mark_terminal")

    def count_by_state(self) -> dict[ProcessState, int]:
        with self._lock:
            counts = {state: 0 for state in ProcessState}
            for item in self._items.values():
                counts[item.state] += 1
            return counts

    def list_work_items(self, state: ProcessState | None = None) -> list[WorkItem]:
        with self._lock:
            return [
                item
                for _, item in sorted(self._items.items())
                if state is None or item.state is state
            ]

    def force_state(self, item_id: int, state: ProcessState) -> WorkItem:
        """Overwrite a row and bump its token, bypassing validation.

        Stands in for a foreign writer in tests.
        """
        with self._lock:
            current = self._items[item_id]
            updated = replace(current, state=state, version_token=current.version_token + 1)
            self._items[item_id] = updated
            return updated

    def _conditional_write(
        self,
        items: Sequence[WorkItem],
        target: ProcessState,
        *,
        operation: str,
    ) -> list[WorkItem]:
        if not items:
            return []
        for item in items:
            validate_process_transition(item.state, target)

        with self._lock:
            for item in items:
                stored = self._items.get(item.id)
                if (
                    stored is None
                    or stored.version_token != item.version_token
                    or stored.state is not item.state
                ):
                    raise OptimisticConflictError(
                        f"{operation}: work item {item.id} changed since it was read",
                        item_ids=[item.id],
                    ).with_context(operation=operation, batch_size=len(items))
            updated = [replace(item, state=target, version_token=item.version_token + 1) for item in items]
            for item in updated:
                self._items[item.id] = item
            return updated


__all__ = ["MemoryStore"]
