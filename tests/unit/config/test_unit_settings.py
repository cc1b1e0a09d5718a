# tests/unit/config/test_unit_settings.py — v2
"""Tests for config/settings.py: typed Settings and validation rules."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from paravault.config.settings import ConfigurationError, Settings, load_settings
from paravault.ratelimit.limiter import ProviderPolicy


class TestSettingsDefaults:
    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.llm_provider == "anthropic"
        assert s.classify_batch_size == 5
        assert s.precise_batch_size == 1
        assert s.max_concurrent_batches == 5
        assert s.escalation_threshold == 0.8
        assert s.confirmation_threshold == 0.5
        assert s.trash_backend == "vault"
        assert s.state_dirname == ".paravault"
        assert s.log_file is None


class TestEnvironment:
    def test_prefixed_env_vars(self, monkeypatch):
        monkeypatch.setenv("PARAVAULT_CLASSIFY_BATCH_SIZE", "10")
        monkeypatch.setenv("PARAVAULT_LLM_PROVIDER", "google")
        s = Settings(_env_file=None)
        assert s.classify_batch_size == 10
        assert s.llm_provider == "google"

    def test_env_file(self, tmp_path):
        env = tmp_path / ".env"
        env.write_text("PARAVAULT_PREVIEW_LENGTH=300\nUNRELATED=1\n", encoding="utf-8")
        assert Settings(_env_file=str(env)).preview_length == 300

    def test_load_settings_overrides(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        assert load_settings(max_retries=0).max_retries == 0


class TestValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"classify_batch_size": 0},
            {"max_concurrent_batches": 0},
            {"max_retries": -1},
            {"confirmation_threshold": 0.9, "escalation_threshold": 0.8},
            {"rate_limit_interval_ms": 0},
            {"rate_limit_slots": 0},
        ],
    )
    def test_inconsistent(self, overrides):
        with pytest.raises(ConfigurationError):
            Settings(_env_file=None, **overrides)

    def test_threshold_range(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, escalation_threshold=1.5)

    def test_unknown_provider(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, llm_provider="openai")


class TestRateLimitOverrides:
    DEFAULT = ProviderPolicy(min_interval=1.0, slot_count=5)

    def test_none_configured(self):
        assert Settings(_env_file=None).rate_limit_overrides(self.DEFAULT) == {}

    def test_interval_only(self):
        s = Settings(_env_file=None, rate_limit_interval_ms=250)
        policy = s.rate_limit_overrides(self.DEFAULT)["anthropic"]
        assert policy.min_interval == 0.25
        assert policy.slot_count == 5

    def test_slots_only(self):
        s = Settings(_env_file=None, llm_provider="google", rate_limit_slots=2)
        policy = s.rate_limit_overrides(self.DEFAULT)["google"]
        assert policy.min_interval == 1.0
        assert policy.slot_count == 2
