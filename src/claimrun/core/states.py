"""Work item and run state machines.

Both entities persist their state as a small integer, so the enums are
``IntEnum`` and their values are the stored column values. Transition rules
live in explicit tables; every state change goes through a ``validate_*``
function instead of ad-hoc conditionals.

Work item graph::

    PENDING  → CLAIMED
    CLAIMED  → DONE_OK | DONE_ERROR
    DONE_OK, DONE_ERROR → (terminal)

Run graph::

    INIT              → GENERATOR_RUNNING | ABORTED
    GENERATOR_RUNNING → PROCESSOR_RUNNING | ABORTED
    PROCESSOR_RUNNING → DONE | ABORTED
    PAUSED            → ABORTED            (declared, never entered)
    DONE, ABORTED     → (terminal)

Tags:
    claimrun, state-machine, transitions, runs, work-items
"""

from __future__ import annotations

from enum import IntEnum

from claimrun.core.errors import InvalidTransitionError


class ProcessState(IntEnum):
    """Lifecycle of a single work item."""

    PENDING = 0
    CLAIMED = 1
    DONE_OK = 2
    DONE_ERROR = 3

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessState.DONE_OK, ProcessState.DONE_ERROR)


class RunState(IntEnum):
    """Lifecycle of a run."""

    INIT = 0
    GENERATOR_RUNNING = 1
    PROCESSOR_RUNNING = 2
    DONE = 3
    ABORTED = 4
    PAUSED = 5

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.DONE, RunState.ABORTED)


PROCESS_VALID_TRANSITIONS: dict[ProcessState, frozenset[ProcessState]] = {
    ProcessState.PENDING: frozenset({ProcessState.CLAIMED}),
    ProcessState.CLAIMED: frozenset({ProcessState.DONE_OK, ProcessState.DONE_ERROR}),
    ProcessState.DONE_OK: frozenset(),  # terminal
    ProcessState.DONE_ERROR: frozenset(),  # terminal
}

RUN_VALID_TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.INIT: frozenset({RunState.GENERATOR_RUNNING, RunState.ABORTED}),
    RunState.GENERATOR_RUNNING: frozenset({RunState.PROCESSOR_RUNNING, RunState.ABORTED}),
    RunState.PROCESSOR_RUNNING: frozenset({RunState.DONE, RunState.ABORTED}),
    RunState.PAUSED: frozenset({RunState.ABORTED}),
    RunState.DONE: frozenset(),  # terminal
    RunState.ABORTED: frozenset(),  # terminal
}

TERMINAL_OUTCOMES = frozenset({ProcessState.DONE_OK, ProcessState.DONE_ERROR})


def validate_process_transition(current: ProcessState, target: ProcessState) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal.

    Example:
        >>> validate_process_transition(ProcessState.PENDING, ProcessState.CLAIMED)
        >>> validate_process_transition(ProcessState.DONE_OK, ProcessState.PENDING)
        InvalidTransitionError: Invalid ProcessState transition: DONE_OK → PENDING
    """
    if target not in PROCESS_VALID_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current.name, target.name, "ProcessState")


def validate_run_transition(current: RunState, target: RunState) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal."""
    if target not in RUN_VALID_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current.name, target.name, "RunState")


__all__ = [
    "ProcessState",
    "RunState",
    "PROCESS_VALID_TRANSITIONS",
    "RUN_VALID_TRANSITIONS",
    "TERMINAL_OUTCOMES",
    "validate_process_transition",
    "validate_run_transition",
]
