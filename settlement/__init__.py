"""
Settlement Package.

============================================================
TRADE SETTLEMENT CORE
============================================================

Converts an admin's win/lose decision (or the absence of one)
into a financial outcome, exactly once, at a deferred time.

Components:
- state_machine: SetDecision / Resolve on the trades table
- ledger: idempotent balance credit
- positions: open-position archive and cleanup
- scheduler: recurring sweep of due trades
- reconciliation: payouts owed after partial failures
- alerting: Telegram notifications for payout failures

============================================================
"""

from .types import (
    TradeStatus,
    TradeDecision,
    TransactionType,
    LedgerReceipt,
    DecisionResult,
    TradeResolution,
    PayoutStatus,
    SettlementOutcome,
    BatchSummary,
)
from .config import (
    DecisionConfig,
    SchedulerConfig,
    LedgerConfig,
    AccessConfig,
    AlertConfig,
    SettlementConfig,
)
from .repository import TradeRepository
from .state_machine import TradeStateMachine, compute_profit_loss
from .ledger import BalanceLedger, SqlBalanceLedger
from .positions import OpenPositionStore
from .reconciliation import SettlementIssueStore, PayoutReconciler, ReconciliationReport
from .alerting import SettlementAlerter
from .scheduler import SettlementScheduler
from .service import SettlementServices, build_settlement_services

__all__ = [
    "TradeStatus",
    "TradeDecision",
    "TransactionType",
    "LedgerReceipt",
    "DecisionResult",
    "TradeResolution",
    "PayoutStatus",
    "SettlementOutcome",
    "BatchSummary",
    "DecisionConfig",
    "SchedulerConfig",
    "LedgerConfig",
    "AccessConfig",
    "AlertConfig",
    "SettlementConfig",
    "TradeRepository",
    "TradeStateMachine",
    "compute_profit_loss",
    "BalanceLedger",
    "SqlBalanceLedger",
    "OpenPositionStore",
    "SettlementIssueStore",
    "PayoutReconciler",
    "ReconciliationReport",
    "SettlementAlerter",
    "SettlementScheduler",
    "SettlementServices",
    "build_settlement_services",
]
