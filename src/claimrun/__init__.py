"""claimrun - optimistic-concurrency work claiming over a shared store.

A producer appends work items to a versioned store; one or more consumers
claim disjoint batches with conditional writes keyed on a per-row version
token, and an orchestrator drives the run through its lifecycle.
"""

from claimrun.core.errors import ClaimrunError, OptimisticConflictError, RunInvalidError
from claimrun.core.models import Run, WorkItem
from claimrun.core.settings import ClaimrunSettings
from claimrun.core.states import ProcessState, RunState
from claimrun.execution.orchestrator import RunOrchestrator, RunReport
from claimrun.store import MemoryStore, SQLAlchemyStore, VersionedStore

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ClaimrunError",
    "OptimisticConflictError",
    "RunInvalidError",
    "ClaimrunSettings",
    "Run",
    "WorkItem",
    "ProcessState",
    "RunState",
    "RunOrchestrator",
    "RunReport",
    "MemoryStore",
    "SQLAlchemyStore",
    "VersionedStore",
]
