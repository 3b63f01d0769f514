"""Run execution: generator, claimer, processor and the orchestrator.

Modules
-------
cancel        CancellationToken
retry         RetryStrategy, ConstantBackoff, RetryPolicy, RetryBudget
generator     WorkGenerator (producer)
claimer       WorkClaimer (exclusive batch claiming)
processor     WorkProcessor (consumer, N claim loops)
orchestrator  RunOrchestrator (run lifecycle)
"""

from claimrun.execution.cancel import CancellationToken
from claimrun.execution.claimer import WorkClaimer
from claimrun.execution.generator import GeneratorConfig, GeneratorStats, WorkGenerator
from claimrun.execution.orchestrator import OrchestratorConfig, RunOrchestrator, RunReport
from claimrun.execution.processor import (
    ItemHandler,
    ProcessorConfig,
    ProcessorStats,
    WorkProcessor,
    noop_handler,
)
from claimrun.execution.retry import ConstantBackoff, RetryBudget, RetryPolicy, RetryStrategy

__all__ = [
    "CancellationToken",
    "ConstantBackoff",
    "RetryBudget",
    "RetryPolicy",
    "RetryStrategy",
    "GeneratorConfig",
    "GeneratorStats",
    "WorkGenerator",
    "WorkClaimer",
    "ItemHandler",
    "ProcessorConfig",
    "ProcessorStats",
    "WorkProcessor",
    "noop_handler",
    "OrchestratorConfig",
    "RunOrchestrator",
    "RunReport",
]
