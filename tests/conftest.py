"""
Shared pytest fixtures for claimrun tests.

This module provides:
- Store fixtures (temp-file SQLite, in-memory)
- A recording logger that captures structured events
- Fast component configs (no real sleeps)
- ``FlakyStore``, a wrapper that injects transient failures per operation
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest

# Ensure claimrun package is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from claimrun.core.errors import TransientStorageError
from claimrun.execution.generator import GeneratorConfig
from claimrun.execution.orchestrator import OrchestratorConfig
from claimrun.execution.processor import ProcessorConfig
from claimrun.store.memory import MemoryStore
from claimrun.store.sqlalchemy_store import SQLAlchemyStore


# =============================================================================
# Test Markers
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark every test without an explicit marker as a unit test."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Logging
# =============================================================================


class RecordingLogger:
    """Structlog-shaped logger that keeps every call for assertions."""

    def __init__(self) -> None:
        self.records: list[tuple[str, str, dict[str, Any]]] = []

    def _record(self, level: str, event: str, **kwargs: Any) -> None:
        self.records.append((level, event, kwargs))

    def debug(self, event: str, **kwargs: Any) -> None:
        self._record("debug", event, **kwargs)

    def info(self, event: str, **kwargs: Any) -> None:
        self._record("info", event, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self._record("warning", event, **kwargs)

    def error(self, event: str, **kwargs: Any) -> None:
        self._record("error", event, **kwargs)

    def bind(self, **kwargs: Any) -> RecordingLogger:
        return self

    def events(self, level: str | None = None) -> list[str]:
        return [event for lvl, event, _ in self.records if level is None or lvl == level]

    def find(self, event: str) -> list[dict[str, Any]]:
        return [kwargs for _, name, kwargs in self.records if name == event]


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


# =============================================================================
# Stores
# =============================================================================


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    """URL of a fresh SQLite file; a file (not :memory:) so threads share it."""
    return f"sqlite:///{tmp_path / 'claimrun.db'}"


@pytest.fixture
def sqlite_store(sqlite_url: str):
    store = SQLAlchemyStore.from_url(sqlite_url)
    store.create_schema()
    yield store
    store.dispose()


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request: pytest.FixtureRequest, tmp_path: Path):
    """Run a test against both backends."""
    if request.param == "memory":
        yield MemoryStore()
        return
    store = SQLAlchemyStore.from_url(f"sqlite:///{tmp_path / 'any.db'}")
    store.create_schema()
    yield store
    store.dispose()


class FlakyStore:
    """Delegates to a real store, failing selected operations transiently.

    ``failures`` maps an operation name to the number of consecutive calls
    that raise ``TransientStorageError`` before calls go through. Every
    call is counted in ``calls``.
    """

    def __init__(self, inner: Any, failures: dict[str, int] | None = None) -> None:
        self.inner = inner
        self.failures = dict(failures or {})
        self.calls: dict[str, int] = {}
        self.appended_chunks: list[int] = []

    def _maybe_fail(self, operation: str) -> None:
        self.calls[operation] = self.calls.get(operation, 0) + 1
        remaining = self.failures.get(operation, 0)
        if remaining > 0:
            self.failures[operation] = remaining - 1
            raise TransientStorageError(f"{operation}: simulated outage")

    def __getattr__(self, name: str) -> Any:
        target = getattr(self.inner, name)
        if not callable(target):
            return target

        def wrapper(*args: Any, **kwargs: Any) -> Any:
            self._maybe_fail(name)
            result = target(*args, **kwargs)
            if name == "append_work_items":
                self.appended_chunks.append(len(args[0]))
            return result

        return wrapper


@pytest.fixture
def flaky_store(memory_store: MemoryStore):
    def factory(**failures: int) -> FlakyStore:
        return FlakyStore(memory_store, failures)

    return factory


# =============================================================================
# Fast configs
# =============================================================================


@pytest.fixture
def fast_generator_config() -> GeneratorConfig:
    return GeneratorConfig(target_count=250, chunk_size=100, delay=0.0)


@pytest.fixture
def fast_processor_config() -> ProcessorConfig:
    return ProcessorConfig(
        batch_size=50,
        claimers=2,
        poll_interval=0.01,
        processing_delay=0.0,
        item_attempts=2,
        retry_attempts=5,
        retry_delay=0.0,
    )


@pytest.fixture
def fast_orchestrator_config() -> OrchestratorConfig:
    return OrchestratorConfig(transition_attempts=5, transition_delay=0.0, status_interval=0.01)
