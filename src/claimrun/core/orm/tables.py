"""SQLAlchemy 2.0 table definitions for the versioned store.

Two tables, both owned exclusively by the store:

* ``work_items`` -- the work queue. ``version_token`` is bumped by every
  conditional write and is the only synchronization primitive between
  concurrent claimers.
* ``runs`` -- one lifecycle record per execution.

States are stored as integers (``ProcessState`` / ``RunState`` values).

Usage::

    from claimrun.core.orm import ClaimrunBase, create_claimrun_engine

    engine = create_claimrun_engine("sqlite:///claimrun.db")
    ClaimrunBase.metadata.create_all(engine)
"""

from __future__ import annotations

import datetime

from sqlalchemy import DateTime, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from claimrun.core.orm.base import ClaimrunBase


class WorkItemTable(ClaimrunBase):
    __tablename__ = "work_items"
    # AUTOINCREMENT: ids are never reused after clear_worklist, so a stale
    # snapshot can never match a freshly appended row
    __table_args__ = (
        Index("ix_work_items_state_id", "state", "id"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    state: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    version_token: Mapped[int] = mapped_column(Integer, default=1, nullable=False)


class RunTable(ClaimrunBase):
    __tablename__ = "runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    start: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True))
    status: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    name: Mapped[str | None] = mapped_column(Text)
    correlation_token: Mapped[str] = mapped_column(Text, nullable=False)


__all__ = ["WorkItemTable", "RunTable"]
