"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the error taxonomy of the settlement core.

- Distinguishes "session expired" from "not your user" from
  "stale state" so the admin console can name the cause
- Marks which failures happened AFTER a committed state
  transition (DependencyFailure) so they are flagged, never
  replayed through the state machine
- Includes context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
SettlementException (base)
├── ConfigurationError
├── UnauthorizedError
├── PermissionDeniedError
├── TradeStateError
│   ├── DecisionConflictError
│   └── ImmutableFieldError
└── DependencyFailureError
    ├── LedgerError
    │   └── InsufficientBalanceError
    └── PositionStoreError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for alerting."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, may impact operations."""

    CRITICAL = "critical"
    """Money is owed or state is inconsistent."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class SettlementException(Exception):
    """
    Base exception for all settlement errors.

    All exceptions carry:
    - severity: for alerting
    - context: for debugging
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def requires_immediate_action(self) -> bool:
        """Check if error requires immediate action."""
        return self.severity in (Severity.HIGH, Severity.CRITICAL)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(SettlementException):
    """Error in configuration."""

    default_severity = Severity.HIGH

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)


# ============================================================
# ACCESS ERRORS
# ============================================================

class UnauthorizedError(SettlementException):
    """No credential, or the credential could not be verified."""

    default_severity = Severity.LOW


class PermissionDeniedError(SettlementException):
    """
    Authenticated, but not entitled to act.

    `reason` separates "not an admin" from "not your user" for audit.
    """

    NOT_ADMIN = "not_admin"
    NOT_ASSIGNED = "not_assigned"

    default_severity = Severity.MEDIUM

    def __init__(
        self,
        message: str,
        reason: str = NOT_ADMIN,
        admin_id: Optional[str] = None,
        target_user_id: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        context["reason"] = reason
        if admin_id:
            context["admin_id"] = admin_id
        if target_user_id:
            context["target_user_id"] = target_user_id

        super().__init__(message, context=context, **kwargs)
        self.reason = reason

    @classmethod
    def not_admin(cls, admin_id: Optional[str] = None) -> "PermissionDeniedError":
        return cls("Access denied: Not an admin", reason=cls.NOT_ADMIN, admin_id=admin_id)

    @classmethod
    def not_assigned(cls, admin_id: str, target_user_id: Optional[str]) -> "PermissionDeniedError":
        return cls(
            "Access denied: You can only manage trades from your assigned users",
            reason=cls.NOT_ASSIGNED,
            admin_id=admin_id,
            target_user_id=target_user_id,
        )


# ============================================================
# TRADE STATE ERRORS
# ============================================================

class TradeStateError(SettlementException):
    """Base class for trade state errors."""

    default_severity = Severity.MEDIUM


class DecisionConflictError(TradeStateError):
    """
    No pending-and-undecided row matched.

    Covers a missing trade, a trade already resolved and a trade
    that already carries a decision.
    """

    def __init__(self, trade_id: str, message: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        context["trade_id"] = trade_id
        super().__init__(
            message or "Trade not updated. It may no longer be pending.",
            context=context,
            **kwargs,
        )
        self.trade_id = trade_id


class ImmutableFieldError(TradeStateError):
    """Attempt to overwrite a write-once field."""

    default_severity = Severity.HIGH

    def __init__(self, field_name: str, trade_id: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        context["field"] = field_name
        if trade_id:
            context["trade_id"] = trade_id
        super().__init__(
            f"{field_name} is immutable once set",
            context=context,
            **kwargs,
        )
        self.field_name = field_name


# ============================================================
# DEPENDENCY ERRORS
# ============================================================

class DependencyFailureError(SettlementException):
    """
    A downstream call failed after the trade transition committed.

    Never answered by re-running the transition.
    """

    default_severity = Severity.HIGH

    def __init__(self, message: str, trade_id: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if trade_id:
            context["trade_id"] = trade_id
        super().__init__(message, context=context, **kwargs)
        self.trade_id = trade_id


class LedgerError(DependencyFailureError):
    """Balance ledger call failed."""

    default_severity = Severity.CRITICAL


class InsufficientBalanceError(LedgerError):
    """A debit would drive the balance negative."""


class PositionStoreError(DependencyFailureError):
    """Open position cleanup failed."""

    default_severity = Severity.MEDIUM


__all__ = [
    "Severity",
    "SettlementException",
    "ConfigurationError",
    "UnauthorizedError",
    "PermissionDeniedError",
    "TradeStateError",
    "DecisionConflictError",
    "ImmutableFieldError",
    "DependencyFailureError",
    "LedgerError",
    "InsufficientBalanceError",
    "PositionStoreError",
]
