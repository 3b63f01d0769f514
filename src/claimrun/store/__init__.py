"""Versioned store backends.

``VersionedStore`` is the protocol; ``SQLAlchemyStore`` is the durable
implementation and ``MemoryStore`` the in-process one.
"""

from claimrun.store.base import VersionedStore
from claimrun.store.memory import MemoryStore
from claimrun.store.sqlalchemy_store import SQLAlchemyStore

__all__ = ["VersionedStore", "MemoryStore", "SQLAlchemyStore"]
