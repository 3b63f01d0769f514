"""MemoryStore specifics: foreign-writer simulation and run deletion."""

import pytest

from claimrun.core.errors import OptimisticConflictError, RunNotFoundError
from claimrun.core.models import Run, WorkItem
from claimrun.core.states import ProcessState


def test_force_state_invalidates_snapshots(memory_store):
    memory_store.append_work_items([WorkItem.new("a")])
    snapshot = memory_store.fetch_pending(1)
    claimed = memory_store.try_claim(snapshot)

    memory_store.force_state(claimed[0].id, ProcessState.CLAIMED)

    with pytest.raises(OptimisticConflictError):
        memory_store.mark_terminal(claimed, ProcessState.DONE_OK)


def test_delete_run(memory_store):
    run = memory_store.create_run(Run.new("doomed"))
    memory_store.delete_run(run.id)
    with pytest.raises(RunNotFoundError):
        memory_store.get_run(run.id)
    with pytest.raises(RunNotFoundError):
        memory_store.update_run(run)


def test_appended_items_are_reset_to_pending(memory_store):
    stale = WorkItem(name="x", id=77, state=ProcessState.DONE_OK, version_token=9)
    memory_store.append_work_items([stale])
    stored = memory_store.list_work_items()[0]
    assert stored.state is ProcessState.PENDING
    assert stored.version_token == 1
    assert stored.id != 77
