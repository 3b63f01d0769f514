"""Run orchestrator: drives one run from Init to Done or Aborted.

Lifecycle::

    create run (INIT) ─► clear worklist ─► start generator + processor tasks
        ─► persist GENERATOR_RUNNING                        (setup: no retries)
    wait generator ─► persist PROCESSOR_RUNNING             (transition budget)
    wait processor ─► persist DONE + end timestamp          (transition budget)

    any failure / budget exhaustion / cancellation
        ─► request cancel, wait for tasks, one ABORTED write, stop

The orchestrator owns the run row; it never touches work items except to
clear the worklist at setup. Generator and processor run as concurrent
asyncio tasks and are never cancelled mid-operation: a stop request goes
through the shared :class:`~claimrun.execution.cancel.CancellationToken`
and each component winds down at its next poll point.

Example:
    >>> orchestrator = RunOrchestrator(store, name="nightly")
    >>> report = await orchestrator.run()
    >>> report.state
    <RunState.DONE: 3>
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any

from claimrun.core.errors import ClaimrunError, RunInvalidError
from claimrun.core.logging import bind_context, get_logger, unbind_context
from claimrun.core.models import Run
from claimrun.core.settings import ClaimrunSettings
from claimrun.core.states import RunState
from claimrun.execution.cancel import CancellationToken
from claimrun.execution.generator import GeneratorConfig, GeneratorStats, WorkGenerator
from claimrun.execution.processor import (
    ItemHandler,
    ProcessorConfig,
    ProcessorStats,
    WorkProcessor,
    noop_handler,
)
from claimrun.execution.retry import RetryPolicy
from claimrun.store.base import VersionedStore


@dataclass(frozen=True)
class OrchestratorConfig:
    """Lifecycle cadence and the budget for persisted run transitions."""

    transition_attempts: int = 3000
    transition_delay: float = 5.0
    status_interval: float = 2.0

    def __post_init__(self) -> None:
        if self.transition_attempts < 1:
            raise ValueError("transition_attempts must be >= 1")
        if self.status_interval <= 0:
            raise ValueError("status_interval must be > 0")

    @property
    def transition_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.transition_attempts, delay=self.transition_delay)

    @classmethod
    def from_settings(cls, settings: ClaimrunSettings) -> OrchestratorConfig:
        return cls(
            transition_attempts=settings.transition_retry_budget,
            transition_delay=settings.transition_retry_delay,
            status_interval=settings.status_interval,
        )


@dataclass
class RunReport:
    """Outcome of one orchestrated run."""

    run_id: int | None
    name: str
    correlation_token: str
    state: RunState
    generator: GeneratorStats = field(default_factory=GeneratorStats)
    processor: ProcessorStats = field(default_factory=ProcessorStats)
    abort_reason: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.DONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "name": self.name,
            "correlation_token": self.correlation_token,
            "state": self.state.name,
            "generator": self.generator.to_dict(),
            "processor": self.processor.to_dict(),
            "abort_reason": self.abort_reason,
        }


class RunOrchestrator:
    """Owns the lifecycle of a single run."""

    def __init__(
        self,
        store: VersionedStore,
        *,
        name: str,
        generator_config: GeneratorConfig | None = None,
        processor_config: ProcessorConfig | None = None,
        config: OrchestratorConfig | None = None,
        handler: ItemHandler = noop_handler,
        logger: Any = None,
        cancel_token: CancellationToken | None = None,
        correlation_token: str | None = None,
    ) -> None:
        self._store = store
        self.name = name
        self.correlation_token = correlation_token or uuid.uuid4().hex
        self.config = config or OrchestratorConfig()
        self.generator_config = generator_config or GeneratorConfig()
        self.processor_config = processor_config or ProcessorConfig()
        self._handler = handler
        self._logger = logger or get_logger(__name__)
        self._cancel = cancel_token or CancellationToken()

        self._run: Run = Run.new(name, self.correlation_token)
        self._generator: WorkGenerator | None = None
        self._processor: WorkProcessor | None = None
        self._tasks: list[asyncio.Task[Any]] = []
        self._abort_reason: str | None = None

    @classmethod
    def from_settings(
        cls,
        store: VersionedStore,
        settings: ClaimrunSettings,
        *,
        name: str,
        **kwargs: Any,
    ) -> RunOrchestrator:
        return cls(
            store,
            name=name,
            generator_config=GeneratorConfig.from_settings(settings),
            processor_config=ProcessorConfig.from_settings(settings),
            config=OrchestratorConfig.from_settings(settings),
            **kwargs,
        )

    @property
    def current_run(self) -> Run:
        return self._run

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Ask the run to stop; it will end Aborted."""
        self._cancel.request_cancel(reason)

    def status(self) -> dict[str, Any]:
        return {
            "run_id": self._run.id,
            "state": self._run.state.name,
            "generated": self._generator.generated if self._generator else 0,
            "processed": self._processor.processed if self._processor else 0,
        }

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def run(self) -> RunReport:
        """Drive the run to a terminal state and report the outcome.

        ``ClaimrunError`` failures end the run Aborted and are reported,
        not raised. Anything else also aborts the run and then propagates.
        """
        bind_context(correlation_token=self.correlation_token)
        try:
            await self._drive()
        except ClaimrunError as exc:
            await self._abort(str(exc), exc)
        except asyncio.CancelledError:
            await self._abort("orchestrator task cancelled")
            raise
        except Exception as exc:
            await self._abort(f"unexpected error: {exc!r}", exc)
            raise
        finally:
            unbind_context("correlation_token", "run_id")
        return self._report()

    async def _drive(self) -> None:
        await self._setup()

        generator_stats = await self._wait_phase(self._tasks[0], "generator")
        if self._cancel.cancelled:
            raise RunInvalidError(f"Run stopped during generation: {self._cancel.reason}")
        self._logger.info("run.generator_finished", generated=generator_stats.generated)
        await self._transition(RunState.PROCESSOR_RUNNING)

        processor_stats = await self._wait_phase(self._tasks[1], "processor")
        if self._cancel.cancelled:
            raise RunInvalidError(f"Run stopped during processing: {self._cancel.reason}")
        self._logger.info("run.processor_finished", **processor_stats.to_dict())
        await self._transition(RunState.DONE)
        self._logger.info("run.done", **self.status())

    async def _setup(self) -> None:
        try:
            self._run = await asyncio.to_thread(self._store.create_run, self._run)
            bind_context(run_id=self._run.id)
            self._logger.info("run.created", run_id=self._run.id, name=self.name)

            removed = await asyncio.to_thread(self._store.clear_worklist)
            self._logger.info("run.worklist_cleared", removed=removed)

            run_id = self._run.id
            append_policy = self.processor_config.retry_policy
            self._generator = WorkGenerator(
                self._store,
                self.generator_config,
                logger=self._logger,
                cancel_token=self._cancel,
                append_budget=lambda: append_policy.budget(
                    "append_work_items", logger=self._logger, run_id=run_id, cancel_token=self._cancel
                ),
            )
            self._processor = WorkProcessor(
                self._store,
                self.processor_config,
                handler=self._handler,
                logger=self._logger,
                cancel_token=self._cancel,
            )
            self._tasks = [
                asyncio.create_task(self._generator.run(), name=f"generator-{run_id}"),
                asyncio.create_task(self._processor.run(run_id), name=f"processor-{run_id}"),
            ]

            target = self._run.transition(RunState.GENERATOR_RUNNING)
            await asyncio.to_thread(self._store.update_run, target)
            self._run = target
            self._logger.info("run.transition", state=target.state.name)
        except ClaimrunError as exc:
            if isinstance(exc, RunInvalidError):
                raise
            raise RunInvalidError(f"Run setup failed: {exc.message}", cause=exc).with_context(
                run_id=self._run.id, operation="setup"
            ) from exc

    async def _wait_phase(self, task: asyncio.Task[Any], phase: str) -> Any:
        """Wait for *task* without cancelling it, reporting status meanwhile."""
        while True:
            done, _ = await asyncio.wait({task}, timeout=self.config.status_interval)
            if done:
                return task.result()
            self._logger.info("run.status", phase=phase, **self.status())

    async def _transition(self, target: RunState) -> None:
        updated = self._run.transition(target)
        budget = self.config.transition_policy.budget(
            f"transition:{target.name}", logger=self._logger, run_id=self._run.id
        )
        await budget.run(self._store.update_run, updated)
        self._run = updated
        self._logger.info("run.transition", state=target.name)

    async def _abort(self, reason: str, error: BaseException | None = None) -> None:
        self._cancel.request_cancel(reason)
        pending = [task for task in self._tasks if not task.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        for task in self._tasks:
            if task.done() and not task.cancelled() and task.exception() is not None:
                self._logger.debug("run.task_failed", task=task.get_name(), error=str(task.exception()))

        if self._run.id is not None and not self._run.state.is_terminal:
            aborted = self._run.transition(RunState.ABORTED)
            try:
                await asyncio.to_thread(self._store.update_run, aborted)
            except ClaimrunError as exc:
                self._logger.warning("run.abort_not_persisted", run_id=self._run.id, error=str(exc))
            self._run = aborted
        elif self._run.id is None:
            self._run = self._run.transition(RunState.ABORTED)

        self._abort_reason = reason
        self._logger.error(
            "run.aborted",
            run_id=self._run.id,
            reason=reason,
            error_type=type(error).__name__ if error else None,
        )

    def _report(self) -> RunReport:
        generator_stats = GeneratorStats()
        if self._tasks:
            task = self._tasks[0]
            if task.done() and not task.cancelled() and task.exception() is None:
                generator_stats = task.result()
            elif self._generator is not None:
                generator_stats = GeneratorStats(generated=self._generator.generated, cancelled=True)
        return RunReport(
            run_id=self._run.id,
            name=self.name,
            correlation_token=self.correlation_token,
            state=self._run.state,
            generator=generator_stats,
            processor=self._processor.stats if self._processor else ProcessorStats(),
            abort_reason=self._abort_reason,
        )


__all__ = ["OrchestratorConfig", "RunReport", "RunOrchestrator"]
