"""Work item and run records.

Records are immutable snapshots of a row as it was read. A state change
produces a new record (``dataclasses.replace``), never an in-place mutation,
so a stale snapshot can always be compared against the store by its
version token.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any

from claimrun.core.states import (
    ProcessState,
    RunState,
    validate_process_transition,
    validate_run_transition,
)


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class WorkItem:
    """A unit of work as stored in the ``work_items`` table.

    Example:
        >>> item = WorkItem.new("3f2c...")
        >>> item.state
        <ProcessState.PENDING: 0>
    """

    name: str
    id: int | None = None
    state: ProcessState = ProcessState.PENDING
    version_token: int = 1
    """Opaque optimistic-concurrency marker; compared, never interpreted."""

    @classmethod
    def new(cls, name: str) -> WorkItem:
        return cls(name=name)

    def transition(self, target: ProcessState) -> WorkItem:
        """Return a copy in *target* state after validating the transition.

        The version token is left untouched; only the store assigns tokens.
        """
        validate_process_transition(self.state, target)
        return replace(self, state=target)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "state": self.state.name,
            "version_token": self.version_token,
        }


@dataclass(frozen=True)
class Run:
    """One end-to-end execution of the generate/process pipeline.

    ``end`` is set if and only if ``state`` is DONE; ``transition`` keeps
    that invariant.
    """

    name: str
    correlation_token: str
    start: datetime
    id: int | None = None
    state: RunState = RunState.INIT
    end: datetime | None = None

    @classmethod
    def new(cls, name: str, correlation_token: str | None = None, *, now: datetime | None = None) -> Run:
        return cls(
            name=name,
            correlation_token=correlation_token or uuid.uuid4().hex,
            start=now or utcnow(),
        )

    def transition(self, target: RunState, *, now: datetime | None = None) -> Run:
        """Return a copy in *target* state.

        Raises:
            InvalidTransitionError: If *target* is not reachable from the
                current state.
        """
        validate_run_transition(self.state, target)
        end = (now or utcnow()) if target is RunState.DONE else None
        return replace(self, state=target, end=end)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "state": self.state.name,
            "start": self.start.isoformat(),
            "end": self.end.isoformat() if self.end else None,
            "correlation_token": self.correlation_token,
        }


__all__ = ["WorkItem", "Run", "utcnow"]
