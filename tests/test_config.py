"""
Tests for settlement configuration.
"""

import pytest
from decimal import Decimal

from core.exceptions import ConfigurationError
from settlement.config import SettlementConfig


ENV_KEYS = [
    "DECISION_DELAY_MIN_SECONDS",
    "DECISION_DELAY_MAX_SECONDS",
    "DEFAULT_PROFIT_RATE",
    "SETTLEMENT_INTERVAL_SECONDS",
    "SETTLEMENT_BATCH_LIMIT",
    "ADMIN_JWT_SECRET",
    "ADMIN_JWT_AUDIENCE",
    "ASSIGNMENT_CACHE_TTL_SECONDS",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
    "RUN_SCHEDULER_IN_API",
]


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestSettlementConfig:

    def test_defaults(self, clean_env):
        config = SettlementConfig.from_env()

        assert config.decision.delay_min_seconds == 180
        assert config.decision.delay_max_seconds == 299
        assert config.decision.default_profit_rate == Decimal("85")
        assert config.scheduler.batch_limit == 500
        assert config.access.assignment_cache_ttl_seconds == 10.0
        assert config.run_scheduler_in_api is False
        assert config.alerts.telegram_enabled is False

    def test_reads_environment(self, clean_env):
        clean_env.setenv("DECISION_DELAY_MIN_SECONDS", "60")
        clean_env.setenv("DECISION_DELAY_MAX_SECONDS", "120")
        clean_env.setenv("ADMIN_JWT_SECRET", "s3cret")
        clean_env.setenv("RUN_SCHEDULER_IN_API", "true")
        clean_env.setenv("TELEGRAM_BOT_TOKEN", "token")
        clean_env.setenv("TELEGRAM_CHAT_ID", "42")

        config = SettlementConfig.from_env()

        assert config.decision.delay_min_seconds == 60
        assert config.decision.delay_max_seconds == 120
        assert config.access.jwt_secret == "s3cret"
        assert config.run_scheduler_in_api is True
        assert config.alerts.telegram_enabled is True

    def test_non_numeric_value_rejected(self, clean_env):
        clean_env.setenv("SETTLEMENT_BATCH_LIMIT", "lots")

        with pytest.raises(ConfigurationError):
            SettlementConfig.from_env()

    def test_inverted_delay_window_rejected(self, clean_env):
        clean_env.setenv("DECISION_DELAY_MIN_SECONDS", "300")
        clean_env.setenv("DECISION_DELAY_MAX_SECONDS", "200")

        with pytest.raises(ConfigurationError):
            SettlementConfig.from_env()

    def test_validate_lists_every_problem(self):
        config = SettlementConfig.for_testing()
        config.scheduler.interval_seconds = 0
        config.access.assignment_cache_ttl_seconds = 0

        errors = config.validate()

        assert len(errors) == 2
