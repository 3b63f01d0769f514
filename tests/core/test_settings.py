"""Tests for core.settings module.

Covers:
- ClaimrunSettings defaults
- Environment variable override (CLAIMRUN_ prefix)
- Field validation
- Component configs built from settings
"""

import os

import pytest
from pydantic import ValidationError

from claimrun.core.settings import ClaimrunSettings
from claimrun.execution.generator import GeneratorConfig
from claimrun.execution.orchestrator import OrchestratorConfig
from claimrun.execution.processor import ProcessorConfig


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    # keep a developer's .env or CLAIMRUN_* variables out of the assertions
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("CLAIMRUN_"):
            monkeypatch.delenv(key)


class TestDefaults:
    def test_store_and_logging(self):
        s = ClaimrunSettings()
        assert s.database_url == "sqlite:///claimrun.db"
        assert s.log_level == "INFO"
        assert s.json_logs is None

    def test_reference_cadence(self):
        s = ClaimrunSettings()
        assert s.target_count == 1_000_000
        assert s.chunk_size == 1000
        assert s.generator_delay == 0.5
        assert s.batch_size == 1000
        assert s.poll_interval == 5.0
        assert s.processing_delay == 1.0

    def test_retry_budgets(self):
        s = ClaimrunSettings()
        assert s.processing_retry_budget == 30
        assert s.processing_retry_delay == 5.0
        assert s.transition_retry_budget == 3000
        assert s.transition_retry_delay == 5.0


class TestEnvOverride:
    def test_prefixed_variables(self, monkeypatch):
        monkeypatch.setenv("CLAIMRUN_BATCH_SIZE", "250")
        monkeypatch.setenv("CLAIMRUN_DATABASE_URL", "sqlite:///other.db")
        s = ClaimrunSettings()
        assert s.batch_size == 250
        assert s.database_url == "sqlite:///other.db"

    def test_unprefixed_variables_ignored(self, monkeypatch):
        monkeypatch.setenv("BATCH_SIZE", "7")
        assert ClaimrunSettings().batch_size == 1000

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("CLAIMRUN_CLAIMERS=4\n")
        assert ClaimrunSettings().claimers == 4


class TestValidation:
    @pytest.mark.parametrize("field", ["batch_size", "chunk_size", "target_count", "claimers"])
    def test_sizes_must_be_positive(self, field):
        with pytest.raises(ValidationError):
            ClaimrunSettings(**{field: 0})

    def test_negative_delay_rejected(self):
        with pytest.raises(ValidationError):
            ClaimrunSettings(poll_interval=-1)


class TestComponentConfigs:
    def test_generator_config(self):
        cfg = GeneratorConfig.from_settings(ClaimrunSettings(target_count=10, chunk_size=3, generator_delay=0))
        assert cfg == GeneratorConfig(target_count=10, chunk_size=3, delay=0)

    def test_processor_config(self):
        s = ClaimrunSettings(batch_size=20, claimers=3, processing_retry_budget=4, processing_retry_delay=0.5)
        cfg = ProcessorConfig.from_settings(s)
        assert cfg.batch_size == 20
        assert cfg.claimers == 3
        assert cfg.retry_policy.max_attempts == 4
        assert cfg.retry_policy.delay == 0.5

    def test_orchestrator_config(self):
        cfg = OrchestratorConfig.from_settings(ClaimrunSettings(transition_retry_budget=9, status_interval=0.5))
        assert cfg.transition_policy.max_attempts == 9
        assert cfg.status_interval == 0.5
