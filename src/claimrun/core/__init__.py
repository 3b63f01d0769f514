"""
claimrun.core - records, state machines, errors, settings and logging.

The ORM layer lives in ``claimrun.core.orm`` and is imported on demand by
the SQLAlchemy store.
"""

from claimrun.core.errors import (
    ClaimrunError,
    ErrorCategory,
    ErrorContext,
    InvalidTransitionError,
    OptimisticConflictError,
    ProcessingError,
    RunInvalidError,
    RunNotFoundError,
    StorageError,
    TransientStorageError,
    is_retryable,
)
from claimrun.core.models import Run, WorkItem, utcnow
from claimrun.core.states import (
    PROCESS_VALID_TRANSITIONS,
    RUN_VALID_TRANSITIONS,
    ProcessState,
    RunState,
    validate_process_transition,
    validate_run_transition,
)

__all__ = [
    # errors
    "ClaimrunError",
    "ErrorCategory",
    "ErrorContext",
    "InvalidTransitionError",
    "OptimisticConflictError",
    "ProcessingError",
    "RunInvalidError",
    "RunNotFoundError",
    "StorageError",
    "TransientStorageError",
    "is_retryable",
    # records
    "Run",
    "WorkItem",
    "utcnow",
    # states
    "ProcessState",
    "RunState",
    "PROCESS_VALID_TRANSITIONS",
    "RUN_VALID_TRANSITIONS",
    "validate_process_transition",
    "validate_run_transition",
]
