"""
Structured error types for claimrun.

Every failure the claim protocol can observe falls into one of a handful of
classes, and each class has exactly one owner that is allowed to absorb it.
ClaimrunError and its subclasses carry:
- **Category:** What kind of error (concurrency, database, orchestration, ...)
- **Retryable:** Whether a RetryBudget may try the operation again
- **Context:** Run id, operation name, attempt number and custom fields
- **Cause:** Chained underlying exception for root cause analysis

Manifesto:
    - **Conflicts are not failures:** OptimisticConflictError is the normal
      outcome of two claimers racing for the same rows
    - **Explicit Retry Semantics:** Only transient storage errors are retryable
    - **Escalate once:** RunInvalidError is raised by whichever budget runs
      out first and is never re-wrapped
    - **Error Chaining:** Preserve driver exceptions as cause

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       ClaimrunError                              │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  OptimisticConflictError   TransientStorageError                 │
        │  (CONCURRENCY)             (DATABASE, retryable)                 │
        │                                                                  │
        │  StorageError              RunInvalidError      ProcessingError  │
        │  (DATABASE)                (ORCHESTRATION)      (PROCESSING)     │
        │       │                                                          │
        │  RunNotFoundError                                                │
        └─────────────────────────────────────────────────────────────────┘

        InvalidTransitionError (ValueError) guards the state machines.

Guardrails:
    ❌ DON'T: Count OptimisticConflictError against a retry budget
    ✅ DO: Discard the batch and re-poll

    ❌ DON'T: Retry RunNotFoundError - the precondition is already false
    ✅ DO: Let the non-retryable error short-circuit the budget

    ❌ DON'T: Swallow the driver exception
    ✅ DO: Pass it as cause= when translating

Tags:
    error-handling, exception-hierarchy, retry-logic, optimistic-concurrency,
    claimrun

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    Attributes:
        CONCURRENCY: Optimistic version-token conflicts
        DATABASE: Connection, timeout, lock and driver errors
        ORCHESTRATION: Run lifecycle failures
        PROCESSING: Per-item processing failures
        INTERNAL: Bugs, unexpected state
    """

    CONCURRENCY = "CONCURRENCY"
    DATABASE = "DATABASE"
    ORCHESTRATION = "ORCHESTRATION"
    PROCESSING = "PROCESSING"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Only fields that are set are serialized by ``to_dict()``, so log lines
    stay short.

    Examples:
        >>> ctx = ErrorContext(run_id=7, operation="fetch_pending")
        >>> ctx.to_dict()
        {'run_id': 7, 'operation': 'fetch_pending'}

    Attributes:
        run_id: Run the failing operation belonged to
        operation: Store or lifecycle operation name
        attempt: Attempt number when the error was recorded
        metadata: Additional key-value pairs
    """

    run_id: int | None = None
    operation: str | None = None
    attempt: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ("run_id", "operation", "attempt"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ClaimrunError(Exception):
    """
    Base exception for all claimrun errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    call sites rarely pass either explicitly.

    Examples:
        >>> error = ClaimrunError("Something went wrong")
        >>> error.retryable
        False
        >>> error.with_context(run_id=3).context.run_id
        3
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ClaimrunError:
        """
        Add context to this error (fluent API).

        Usage:
            raise StorageError("insert failed").with_context(
                operation="append_work_items", chunk=12
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONCURRENCY
# =============================================================================


class OptimisticConflictError(ClaimrunError):
    """
    A conditional write found a version token that changed since it was read.

    Raised by ``try_claim`` and ``mark_terminal`` when at least one row of the
    batch no longer carries the token the caller read. The whole write is
    rolled back, so the caller owns none of the batch.

    Attributes:
        item_ids: Ids of the rows whose token (or state) did not match
    """

    default_category = ErrorCategory.CONCURRENCY
    default_retryable = False

    def __init__(self, message: str, *, item_ids: Iterable[int] = (), **kwargs: Any):
        super().__init__(message, **kwargs)
        self.item_ids = tuple(item_ids)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["conflicting_items"] = len(self.item_ids)
        return result


# =============================================================================
# STORAGE
# =============================================================================


class TransientStorageError(ClaimrunError):
    """Connectivity, timeout or lock contention in the backing store."""

    default_category = ErrorCategory.DATABASE
    default_retryable = True


class StorageError(ClaimrunError):
    """Non-recoverable storage failure (constraint, schema, driver bug)."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class RunNotFoundError(StorageError):
    """The run row a transition depends on does not exist."""

    def __init__(self, run_id: int | None, message: str | None = None):
        super().__init__(
            message or f"Run {run_id} does not exist",
            context=ErrorContext(run_id=run_id),
        )
        self.run_id = run_id


# =============================================================================
# LIFECYCLE
# =============================================================================


class RunInvalidError(ClaimrunError):
    """
    The run can no longer produce a trustworthy result.

    Raised when a retry budget is exhausted at any lifecycle step, when setup
    fails before the run id exists, or when a claimed batch is modified by a
    foreign writer. No partial-result guarantee is made afterwards.
    """

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


class ProcessingError(ClaimrunError):
    """A single work item failed its processing step after all attempts."""

    default_category = ErrorCategory.PROCESSING
    default_retryable = False

    def __init__(self, message: str, *, item_id: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.item_id = item_id


class InvalidTransitionError(ValueError):
    """Raised when an illegal state transition is attempted.

    Transition validation is deliberately strict. A legitimate transition
    that is blocked belongs in the transition table, never in a bypass.
    """

    def __init__(self, current: str, target: str, enum_name: str = "State") -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid {enum_name} transition: {current} → {target}")


# =============================================================================
# HELPERS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check whether a RetryBudget may retry after *error*.

    Only ClaimrunError instances flagged retryable qualify; foreign
    exceptions are treated as bugs and propagate.
    """
    if isinstance(error, ClaimrunError):
        return error.retryable
    return False


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "ClaimrunError",
    "OptimisticConflictError",
    "TransientStorageError",
    "StorageError",
    "RunNotFoundError",
    "RunInvalidError",
    "ProcessingError",
    "InvalidTransitionError",
    "is_retryable",
]
