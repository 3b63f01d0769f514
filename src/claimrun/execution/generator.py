"""Work generator: appends freshly named work items to the store in chunks.

The generator is write-only. It never reads the store and never retries on
its own; an append failure propagates unless the caller supplies an
``append_budget`` factory, in which case every chunk is written under a
fresh :class:`~claimrun.execution.retry.RetryBudget`.

Example:
    >>> generator = WorkGenerator(store, GeneratorConfig(target_count=5000, chunk_size=1000))
    >>> stats = await generator.run()
    >>> stats.chunks
    5
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from claimrun.core.logging import get_logger
from claimrun.core.models import WorkItem
from claimrun.core.settings import ClaimrunSettings
from claimrun.execution.cancel import CancellationToken
from claimrun.execution.retry import RetryBudget
from claimrun.store.base import VersionedStore


@dataclass(frozen=True)
class GeneratorConfig:
    """How many items to produce, in what chunks, at what cadence."""

    target_count: int = 1_000_000
    chunk_size: int = 1000
    delay: float = 0.5

    def __post_init__(self) -> None:
        if self.target_count < 0:
            raise ValueError("target_count must be >= 0")
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if self.delay < 0:
            raise ValueError("delay must be >= 0")

    @classmethod
    def from_settings(cls, settings: ClaimrunSettings) -> GeneratorConfig:
        return cls(
            target_count=settings.target_count,
            chunk_size=settings.chunk_size,
            delay=settings.generator_delay,
        )


@dataclass
class GeneratorStats:
    """Summary of one generator run."""

    generated: int = 0
    chunks: int = 0
    cancelled: bool = False
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated": self.generated,
            "chunks": self.chunks,
            "cancelled": self.cancelled,
            "duration_seconds": round(self.duration_seconds, 3),
        }


def _uuid_name() -> str:
    return str(uuid.uuid4())


class WorkGenerator:
    """Produces ``target_count`` Pending work items in ``chunk_size`` appends."""

    def __init__(
        self,
        store: VersionedStore,
        config: GeneratorConfig | None = None,
        *,
        logger: Any = None,
        cancel_token: CancellationToken | None = None,
        append_budget: Callable[[], RetryBudget] | None = None,
        name_factory: Callable[[], str] = _uuid_name,
    ) -> None:
        self._store = store
        self.config = config or GeneratorConfig()
        self._logger = logger or get_logger(__name__)
        self._cancel = cancel_token or CancellationToken()
        self._append_budget = append_budget
        self._name_factory = name_factory
        self._generated = 0

    @property
    def generated(self) -> int:
        """Items appended so far; safe to read while ``run`` is in progress."""
        return self._generated

    def _next_chunk(self) -> list[WorkItem]:
        size = min(self.config.chunk_size, self.config.target_count - self._generated)
        return [WorkItem.new(self._name_factory()) for _ in range(size)]

    async def _append(self, chunk: list[WorkItem]) -> None:
        if self._append_budget is not None:
            await self._append_budget().run(self._store.append_work_items, chunk)
        else:
            await asyncio.to_thread(self._store.append_work_items, chunk)

    async def run(self) -> GeneratorStats:
        stats = GeneratorStats()
        started = time.monotonic()
        self._logger.info(
            "generator.started",
            target_count=self.config.target_count,
            chunk_size=self.config.chunk_size,
        )

        while self._generated < self.config.target_count:
            if self._cancel.cancelled:
                stats.cancelled = True
                break

            chunk = self._next_chunk()
            await self._append(chunk)
            self._generated += len(chunk)
            stats.chunks += 1
            self._logger.debug(
                "generator.chunk_appended",
                chunk=stats.chunks,
                size=len(chunk),
                generated=self._generated,
            )

            if self._generated < self.config.target_count:
                if await self._cancel.sleep(self.config.delay):
                    stats.cancelled = True
                    break

        stats.generated = self._generated
        stats.duration_seconds = time.monotonic() - started
        if stats.cancelled:
            self._logger.warning("generator.cancelled", generated=stats.generated)
        else:
            self._logger.info("generator.completed", **stats.to_dict())
        return stats


__all__ = ["GeneratorConfig", "GeneratorStats", "WorkGenerator"]
