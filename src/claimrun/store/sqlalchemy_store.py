"""SQLAlchemy implementation of the versioned store.

Every public method opens its own session, does one logical read or write
inside ``session.begin()``, and closes the session before returning. A
claimer that sleeps between polls therefore never pins a connection, and
each poll sees the freshest committed version tokens.

Conditional writes are per-row ``UPDATE ... WHERE id = :id AND
version_token = :token AND state = :expected``; a rowcount of zero on any
row aborts the transaction and raises ``OptimisticConflictError``, so a
batch is claimed completely or not at all.

Driver errors are translated at this boundary:

    OperationalError / InterfaceError / pool TimeoutError → TransientStorageError
    DBAPIError with an invalidated connection            → TransientStorageError
    missing table / column, any other SQLAlchemyError     → StorageError
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Engine

from claimrun.core.errors import (
    OptimisticConflictError,
    RunNotFoundError,
    StorageError,
    TransientStorageError,
)
from claimrun.core.logging import get_logger
from claimrun.core.models import Run, WorkItem
from claimrun.core.orm import (
    ClaimrunBase,
    RunTable,
    WorkItemTable,
    claimrun_session_factory,
    create_claimrun_engine,
)
from claimrun.core.states import (
    TERMINAL_OUTCOMES,
    ProcessState,
    RunState,
    validate_process_transition,
)

logger = get_logger(__name__)

_SCHEMA_MARKERS = ("no such table", "no such column", "does not exist", "undefined table")


def _is_schema_error(exc: sa_exc.DBAPIError) -> bool:
    text = str(exc.orig).lower() if exc.orig is not None else str(exc).lower()
    return any(marker in text for marker in _SCHEMA_MARKERS)


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Translate SQLAlchemy exceptions into the store's error contract."""
    try:
        yield
    except sa_exc.TimeoutError as exc:
        raise TransientStorageError(f"{operation}: connection pool timeout", cause=exc).with_context(
            operation=operation
        ) from exc
    except (sa_exc.OperationalError, sa_exc.InterfaceError) as exc:
        if _is_schema_error(exc):
            raise StorageError(f"{operation}: {exc.orig}", cause=exc).with_context(
                operation=operation
            ) from exc
        raise TransientStorageError(f"{operation}: {exc.orig}", cause=exc).with_context(
            operation=operation
        ) from exc
    except sa_exc.DBAPIError as exc:
        if exc.connection_invalidated:
            raise TransientStorageError(f"{operation}: connection lost", cause=exc).with_context(
                operation=operation
            ) from exc
        raise StorageError(f"{operation}: {exc.orig}", cause=exc).with_context(
            operation=operation
        ) from exc
    except sa_exc.SQLAlchemyError as exc:
        raise StorageError(f"{operation}: {exc}", cause=exc).with_context(operation=operation) from exc


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone=True columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _row_to_run(row: RunTable) -> Run:
    return Run(
        id=row.id,
        name=row.name or "",
        correlation_token=row.correlation_token,
        start=_aware(row.start),
        end=_aware(row.end),
        state=RunState(row.status),
    )


def _row_to_item(row: Any) -> WorkItem:
    return WorkItem(
        id=row.id,
        name=row.name,
        state=ProcessState(row.state),
        version_token=row.version_token,
    )


class SQLAlchemyStore:
    """Versioned store backed by any SQLAlchemy-supported database.

    Example::

        store = SQLAlchemyStore.from_url("sqlite:///claimrun.db")
        store.create_schema()
        run = store.create_run(Run.new("nightly"))
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = claimrun_session_factory(engine)

    @classmethod
    def from_url(cls, url: str, **engine_kwargs: Any) -> SQLAlchemyStore:
        return cls(create_claimrun_engine(url, **engine_kwargs))

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_schema(self) -> None:
        with _storage_errors("create_schema"):
            ClaimrunBase.metadata.create_all(self._engine)

    def dispose(self) -> None:
        """Close every pooled connection."""
        self._engine.dispose()

    # ------------------------------------------------------------------ #
    # Runs
    # ------------------------------------------------------------------ #

    def create_run(self, run: Run) -> Run:
        with _storage_errors("create_run"), self._session_factory() as session, session.begin():
            row = RunTable(
                start=run.start,
                end=run.end,
                status=int(run.state),
                name=run.name,
                correlation_token=run.correlation_token,
            )
            session.add(row)
            session.flush()
            return replace(run, id=row.id)

    def update_run(self, run: Run) -> Run:
        if run.id is None:
            raise RunNotFoundError(None, "Cannot update a run that was never created")
        with _storage_errors("update_run"), self._session_factory() as session, session.begin():
            result = session.execute(
                update(RunTable)
                .where(RunTable.id == run.id)
                .values(status=int(run.state), end=run.end, name=run.name)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise RunNotFoundError(run.id)
        return run

    def get_run(self, run_id: int) -> Run:
        with _storage_errors("get_run"), self._session_factory() as session:
            row = session.get(RunTable, run_id)
            if row is None:
                raise RunNotFoundError(run_id)
            return _row_to_run(row)

    def list_runs(self, limit: int = 20) -> list[Run]:
        with _storage_errors("list_runs"), self._session_factory() as session:
            rows = session.scalars(select(RunTable).order_by(RunTable.id.desc()).limit(limit))
            return [_row_to_run(row) for row in rows]

    # ------------------------------------------------------------------ #
    # Work items
    # ------------------------------------------------------------------ #

    def clear_worklist(self) -> int:
        with _storage_errors("clear_worklist"), self._session_factory() as session, session.begin():
            result = session.execute(
                delete(WorkItemTable).execution_options(synchronize_session=False)
            )
            return result.rowcount

    def append_work_items(self, items: Sequence[WorkItem]) -> int:
        if not items:
            return 0
        rows = [
            {
                "name": item.name,
                "state": int(ProcessState.PENDING),
                "version_token": 1,
            }
            for item in items
        ]
        with _storage_errors("append_work_items"), self._session_factory() as session, session.begin():
            session.execute(insert(WorkItemTable), rows)
        return len(rows)

    def fetch_pending(self, limit: int) -> list[WorkItem]:
        with _storage_errors("fetch_pending"), self._session_factory() as session:
            rows = session.execute(
                select(WorkItemTable.id, WorkItemTable.name, WorkItemTable.state, WorkItemTable.version_token)
                .where(WorkItemTable.state == int(ProcessState.PENDING))
                .order_by(WorkItemTable.id)
                .limit(limit)
            )
            return [_row_to_item(row) for row in rows]

    def try_claim(self, items: Sequence[WorkItem]) -> list[WorkItem]:
        return self._conditional_write(items, ProcessState.CLAIMED, operation="try_claim")

    def mark_terminal(self, items: Sequence[WorkItem], outcome: ProcessState) -> list[WorkItem]:
        if outcome not in TERMINAL_OUTCOMES:
            raise ValueError(f"{outcome.name} is not a terminal outcome")
        return self._conditional_write(items, outcome, operation="mark_terminal")

    def count_by_state(self) -> dict[ProcessState, int]:
        with _storage_errors("count_by_state"), self._session_factory() as session:
            rows = session.execute(
                select(WorkItemTable.state, func.count()).group_by(WorkItemTable.state)
            )
            counts = {state: 0 for state in ProcessState}
            for state, count in rows:
                counts[ProcessState(state)] = count
            return counts

    def list_work_items(self, state: ProcessState | None = None) -> list[WorkItem]:
        stmt = select(
            WorkItemTable.id, WorkItemTable.name, WorkItemTable.state, WorkItemTable.version_token
        ).order_by(WorkItemTable.id)
        if state is not None:
            stmt = stmt.where(WorkItemTable.state == int(state))
        with _storage_errors("list_work_items"), self._session_factory() as session:
            return [_row_to_item(row) for row in session.execute(stmt)]

    # ------------------------------------------------------------------ #
    # Compare-and-swap
    # ------------------------------------------------------------------ #

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

        with _storage_errors(operation), self._session_factory() as session, session.begin():
            for item in items:
                result = session.execute(
                    update(WorkItemTable)
                    .where(
                        WorkItemTable.id == item.id,
                        WorkItemTable.version_token == item.version_token,
                        WorkItemTable.state == int(item.state),
                    )
                    .values(state=int(target), version_token=WorkItemTable.version_token + 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    logger.debug(
                        "store.conflict",
                        operation=operation,
                        item_id=item.id,
                        batch_size=len(items),
                    )
                    # leaving the block rolls back every row written so far
                    raise OptimisticConflictError(
                        f"{operation}: work item {item.id} changed since it was read",
                        item_ids=[item.id],
                    ).with_context(operation=operation, batch_size=len(items))

        return [replace(item, state=target, version_token=item.version_token + 1) for item in items]


__all__ = ["SQLAlchemyStore"]
