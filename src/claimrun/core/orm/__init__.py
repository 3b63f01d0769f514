"""SQLAlchemy 2.0 ORM layer for the versioned store.

Modules
-------
base        ClaimrunBase (declarative base)
session     Engine factory, session factory
tables      WorkItemTable, RunTable

Tags:
    claimrun, orm, sqlalchemy, declarative
"""

from __future__ import annotations

from claimrun.core.orm.base import ClaimrunBase
from claimrun.core.orm.session import claimrun_session_factory, create_claimrun_engine
from claimrun.core.orm.tables import RunTable, WorkItemTable

__all__ = [
    "ClaimrunBase",
    "create_claimrun_engine",
    "claimrun_session_factory",
    "RunTable",
    "WorkItemTable",
]
