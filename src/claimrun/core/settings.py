"""Process settings for claimrun.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    Every tunable of the claim protocol (batch size, poll cadence, retry
    budgets) lives here so a deployment can change it without code.

    - **Pydantic validation:** Sizes and budgets must be positive at startup
    - **Environment-driven:** ``CLAIMRUN_*`` env vars and a ``.env`` file
    - **Sensible defaults:** The defaults give a production cadence
      (1000-item chunks every 0.5 s, 5 s polls, 30/3000 attempt budgets)

Examples:
    >>> from claimrun.core.settings import ClaimrunSettings
    >>> settings = ClaimrunSettings(database_url="sqlite:///demo.db", batch_size=500)
    >>> settings.batch_size
    500

Component configs are built from settings by the ``from_settings``
classmethods of ``GeneratorConfig``, ``ProcessorConfig`` and
``OrchestratorConfig``.

Tags:
    settings, configuration, pydantic, environment, claimrun
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClaimrunSettings(BaseSettings):
    """All claimrun settings, read from ``CLAIMRUN_*`` environment variables.

    Fields
    ──────
    database_url            : SQLAlchemy URL of the versioned store
    log_level               : structlog level
    json_logs               : JSON renderer (None = auto-detect tty)
    target_count            : Work items the generator produces per run
    chunk_size              : Items per generator append
    generator_delay         : Seconds between generator chunks
    batch_size              : Items per claim attempt
    claimers                : Concurrent claim loops inside one processor
    poll_interval           : Seconds to wait when no pending work exists
    processing_delay        : Simulated cost of processing one batch
    item_attempts           : Attempts per item before it is marked DONE_ERROR
    processing_retry_budget : Attempts for claimer/processor store calls
    processing_retry_delay  : Backoff between those attempts
    transition_retry_budget : Attempts for each persisted run transition
    transition_retry_delay  : Backoff between transition attempts
    status_interval         : Orchestrator status-report cadence
    """

    model_config = SettingsConfigDict(
        env_prefix="CLAIMRUN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Store ────────────────────────────────────────────────────
    database_url: str = "sqlite:///claimrun.db"

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    # ── Generator ────────────────────────────────────────────────
    target_count: int = Field(default=1_000_000, gt=0)
    chunk_size: int = Field(default=1000, gt=0)
    generator_delay: float = Field(default=0.5, ge=0)

    # ── Processor ────────────────────────────────────────────────
    batch_size: int = Field(default=1000, gt=0)
    claimers: int = Field(default=1, gt=0)
    poll_interval: float = Field(default=5.0, ge=0)
    processing_delay: float = Field(default=1.0, ge=0)
    item_attempts: int = Field(default=3, gt=0)
    processing_retry_budget: int = Field(default=30, gt=0)
    processing_retry_delay: float = Field(default=5.0, ge=0)

    # ── Orchestrator ─────────────────────────────────────────────
    transition_retry_budget: int = Field(default=3000, gt=0)
    transition_retry_delay: float = Field(default=5.0, ge=0)
    status_interval: float = Field(default=2.0, gt=0)


__all__ = ["ClaimrunSettings"]
