"""Tests for the work item and run state machines."""

import pytest

from claimrun.core.errors import InvalidTransitionError
from claimrun.core.states import (
    PROCESS_VALID_TRANSITIONS,
    RUN_VALID_TRANSITIONS,
    ProcessState,
    RunState,
    validate_process_transition,
    validate_run_transition,
)


class TestStoredValues:
    def test_process_state_values(self):
        assert [s.value for s in ProcessState] == [0, 1, 2, 3]

    def test_run_state_values(self):
        assert RunState.INIT == 0
        assert RunState.GENERATOR_RUNNING == 1
        assert RunState.PROCESSOR_RUNNING == 2
        assert RunState.DONE == 3
        assert RunState.ABORTED == 4
        assert RunState.PAUSED == 5

    def test_every_state_has_a_transition_entry(self):
        assert set(PROCESS_VALID_TRANSITIONS) == set(ProcessState)
        assert set(RUN_VALID_TRANSITIONS) == set(RunState)


class TestProcessTransitions:
    @pytest.mark.parametrize(
        "current, target",
        [
            (ProcessState.PENDING, ProcessState.CLAIMED),
            (ProcessState.CLAIMED, ProcessState.DONE_OK),
            (ProcessState.CLAIMED, ProcessState.DONE_ERROR),
        ],
    )
    def test_valid(self, current, target):
        validate_process_transition(current, target)

    @pytest.mark.parametrize(
        "current, target",
        [
            (ProcessState.PENDING, ProcessState.DONE_OK),
            (ProcessState.CLAIMED, ProcessState.PENDING),
            (ProcessState.DONE_OK, ProcessState.PENDING),
            (ProcessState.DONE_ERROR, ProcessState.CLAIMED),
            (ProcessState.CLAIMED, ProcessState.CLAIMED),
        ],
    )
    def test_invalid(self, current, target):
        with pytest.raises(InvalidTransitionError, match="ProcessState"):
            validate_process_transition(current, target)

    def test_terminal_flags(self):
        assert ProcessState.DONE_OK.is_terminal
        assert ProcessState.DONE_ERROR.is_terminal
        assert not ProcessState.CLAIMED.is_terminal


class TestRunTransitions:
    def test_happy_path(self):
        path = [
            RunState.INIT,
            RunState.GENERATOR_RUNNING,
            RunState.PROCESSOR_RUNNING,
            RunState.DONE,
        ]
        for current, target in zip(path, path[1:]):
            validate_run_transition(current, target)

    @pytest.mark.parametrize(
        "state",
        [RunState.INIT, RunState.GENERATOR_RUNNING, RunState.PROCESSOR_RUNNING, RunState.PAUSED],
    )
    def test_abort_from_any_live_state(self, state):
        validate_run_transition(state, RunState.ABORTED)

    @pytest.mark.parametrize("state", [RunState.DONE, RunState.ABORTED])
    def test_terminal_states_are_final(self, state):
        assert state.is_terminal
        for target in RunState:
            with pytest.raises(InvalidTransitionError):
                validate_run_transition(state, target)

    def test_cannot_skip_generator_phase(self):
        with pytest.raises(InvalidTransitionError, match="INIT → PROCESSOR_RUNNING"):
            validate_run_transition(RunState.INIT, RunState.PROCESSOR_RUNNING)

    def test_paused_is_never_entered(self):
        assert all(RunState.PAUSED not in targets for targets in RUN_VALID_TRANSITIONS.values())
