"""
Settlement - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the settlement core.

CRITICAL CONSTRAINTS:
- execute_at delay window is bounded
- Assignment cache is never indefinite
- Invalid configuration aborts startup

============================================================
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from dotenv import load_dotenv

from core.exceptions import ConfigurationError


# ============================================================
# ENVIRONMENT HELPERS
# ============================================================

def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer", config_key=key, actual_value=raw)


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number", config_key=key, actual_value=raw)


def _env_decimal(key: str, default: str) -> Decimal:
    raw = os.getenv(key) or default
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ConfigurationError(f"{key} must be a decimal", config_key=key, actual_value=raw)


def _env_bool(key: str, default: bool) -> bool:
    return os.getenv(key, "true" if default else "false").lower() == "true"


# ============================================================
# DECISION CONFIGURATION
# ============================================================

@dataclass
class DecisionConfig:
    """
    Decision timer configuration.

    execute_at = now + uniform integer delay in [min, max] seconds.
    """

    delay_min_seconds: int = 180
    """Shortest delay between a decision and resolution."""

    delay_max_seconds: int = 299
    """Longest delay between a decision and resolution."""

    default_profit_rate: Decimal = Decimal("85")
    """Profit rate (percent) used when a trade carries none."""


# ============================================================
# SCHEDULER CONFIGURATION
# ============================================================

@dataclass
class SchedulerConfig:
    """Settlement sweep cadence."""

    interval_seconds: float = 30.0
    """Seconds between scheduler ticks."""

    batch_limit: int = 500
    """Maximum due trades claimed per tick."""

    resolve_retry_limit: int = 3
    """Re-reads allowed when a decision lands mid-resolve."""

    max_concurrent_ticks: int = 2
    """Ticks allowed to overlap before new ones are skipped."""


# ============================================================
# LEDGER CONFIGURATION
# ============================================================

@dataclass
class LedgerConfig:
    """Balance ledger configuration."""

    currency: str = "USDT"
    """Currency of newly created balance rows."""

    payout_description: str = "Trade win payout"
    """Description written with each trade payout."""

    reconcile_max_attempts: int = 10
    """Retries of a failed payout before an issue stops being retried."""


# ============================================================
# ACCESS CONFIGURATION
# ============================================================

@dataclass
class AccessConfig:
    """Admin credential and assignment cache configuration."""

    jwt_secret: Optional[str] = None
    """Shared secret used to verify admin bearer tokens."""

    jwt_algorithm: str = "HS256"
    """Token signing algorithm."""

    jwt_audience: Optional[str] = None
    """Expected audience claim, if any."""

    assignment_cache_ttl_seconds: float = 10.0
    """Lifetime of a cached assignment set."""


# ============================================================
# ALERT CONFIGURATION
# ============================================================

@dataclass
class AlertConfig:
    """Telegram alerting for settlement issues."""

    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None

    timeout_seconds: float = 10.0
    """HTTP timeout for one alert."""

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass
class SettlementConfig:
    """
    Master configuration for the settlement core.
    """

    decision: DecisionConfig = field(default_factory=DecisionConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    access: AccessConfig = field(default_factory=AccessConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)

    database_url: Optional[str] = None
    """Explicit database URL (engine falls back to DATABASE_URL)."""

    run_scheduler_in_api: bool = False
    """Start the scheduler loop inside the API process."""

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "SettlementConfig":
        """Load configuration from environment variables and validate it."""
        load_dotenv()

        config = cls(
            decision=DecisionConfig(
                delay_min_seconds=_env_int("DECISION_DELAY_MIN_SECONDS", 180),
                delay_max_seconds=_env_int("DECISION_DELAY_MAX_SECONDS", 299),
                default_profit_rate=_env_decimal("DEFAULT_PROFIT_RATE", "85"),
            ),
            scheduler=SchedulerConfig(
                interval_seconds=_env_float("SETTLEMENT_INTERVAL_SECONDS", 30.0),
                batch_limit=_env_int("SETTLEMENT_BATCH_LIMIT", 500),
            ),
            access=AccessConfig(
                jwt_secret=os.getenv("ADMIN_JWT_SECRET"),
                jwt_algorithm=os.getenv("ADMIN_JWT_ALGORITHM", "HS256"),
                jwt_audience=os.getenv("ADMIN_JWT_AUDIENCE") or None,
                assignment_cache_ttl_seconds=_env_float("ASSIGNMENT_CACHE_TTL_SECONDS", 10.0),
            ),
            alerts=AlertConfig(
                telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN") or None,
                telegram_chat_id=os.getenv("TELEGRAM_CHAT_ID") or None,
            ),
            database_url=os.getenv("DATABASE_URL") or None,
            run_scheduler_in_api=_env_bool("RUN_SCHEDULER_IN_API", False),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
        config.ensure_valid()
        return config

    @classmethod
    def for_testing(cls) -> "SettlementConfig":
        """Configuration for tests: fixed secret, no alerts."""
        return cls(
            access=AccessConfig(
                jwt_secret="test-secret",
                assignment_cache_ttl_seconds=10.0,
            ),
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.decision.delay_min_seconds < 0:
            errors.append("delay_min_seconds must not be negative")

        if self.decision.delay_min_seconds > self.decision.delay_max_seconds:
            errors.append("delay_min_seconds must not exceed delay_max_seconds")

        if self.decision.default_profit_rate < 0:
            errors.append("default_profit_rate must not be negative")

        if self.scheduler.interval_seconds <= 0:
            errors.append("interval_seconds must be positive")

        if self.scheduler.batch_limit < 1:
            errors.append("batch_limit must be at least 1")

        if self.access.assignment_cache_ttl_seconds <= 0:
            errors.append("assignment_cache_ttl_seconds must be positive")

        return errors

    def ensure_valid(self) -> None:
        errors = self.validate()
        if errors:
            raise ConfigurationError(f"Invalid settlement configuration: {'; '.join(errors)}")


__all__ = [
    "DecisionConfig",
    "SchedulerConfig",
    "LedgerConfig",
    "AccessConfig",
    "AlertConfig",
    "SettlementConfig",
]
