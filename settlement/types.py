"""
Settlement - Types.

============================================================
PURPOSE
============================================================
Type definitions for the trade settlement core.

CRITICAL PRINCIPLE:
    "A decision only supplies the outcome. Money moves only
     when the Settlement Scheduler resolves the trade."

============================================================
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from enum import Enum


# ============================================================
# TRADE LIFECYCLE
# ============================================================

class TradeStatus(Enum):
    """
    Trade lifecycle status.

    State Machine:

        PENDING ──► WIN
           │
           └──────► LOSE

    WIN and LOSE are terminal. The admin decision is a separate
    attribute and does not change status.
    """

    PENDING = "pending"
    WIN = "win"
    LOSE = "lose"

    def is_terminal(self) -> bool:
        return self in (TradeStatus.WIN, TradeStatus.LOSE)


class TradeDecision(Enum):
    """Outcome chosen by an admin while the trade is pending."""

    WIN = "win"
    LOSE = "lose"

    @property
    def status(self) -> TradeStatus:
        return TradeStatus(self.value)


class TradeDirection(Enum):
    UP = "up"
    DOWN = "down"


class AdminRole(Enum):
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


# ============================================================
# LEDGER
# ============================================================

class TransactionType(Enum):
    """Tag recorded with every ledger mutation."""

    TRADE_PAYOUT = "trade_payout"
    """Stake plus profit returned on a win."""

    MANUAL = "manual"
    """Admin balance adjustment."""

    RECHARGE = "recharge"
    """Prepaid recharge code redemption."""


@dataclass
class LedgerReceipt:
    """Outcome of a ledger credit."""

    user_id: str
    amount: Decimal
    transaction_type: TransactionType
    trade_id: Optional[str] = None
    transaction_id: Optional[str] = None
    balance_after: Optional[Decimal] = None
    duplicate: bool = False
    """True when a record for (trade_id, transaction_type) already existed."""


# ============================================================
# STATE MACHINE RESULTS
# ============================================================

@dataclass
class DecisionResult:
    """Result of a successful SetDecision."""

    trade_id: str
    user_id: str
    status: TradeStatus
    decision: TradeDecision
    execute_at: datetime
    previous_status: Optional[str] = None


@dataclass
class TradeResolution:
    """Financial outcome written by Resolve."""

    trade_id: str
    user_id: str
    result: TradeStatus
    stake_amount: Decimal
    profit_loss_amount: Decimal
    completed_at: datetime
    decided_by_admin: bool = False
    current_price: Optional[Decimal] = None
    """Last known price, used as exit price when positions are archived."""

    @property
    def payout_amount(self) -> Decimal:
        """Amount returned to the user. Zero for a loss."""
        if self.result == TradeStatus.WIN:
            return self.stake_amount + self.profit_loss_amount
        return Decimal("0")


# ============================================================
# SCHEDULER RESULTS
# ============================================================

class PayoutStatus(Enum):
    """Ledger side of one settlement."""

    NOT_REQUIRED = "not_required"
    CREDITED = "credited"
    DUPLICATE = "duplicate"
    FAILED = "failed"
    """Trade resolved but the payout is missing. Flagged for reconciliation."""


@dataclass
class SettlementOutcome:
    """Per-trade record accumulated by the scheduler."""

    trade_id: str
    success: bool
    result: Optional[TradeStatus] = None
    already_resolved: bool = False
    payout_status: PayoutStatus = PayoutStatus.NOT_REQUIRED
    payout_amount: Optional[Decimal] = None
    positions_retired: int = 0
    position_error: Optional[str] = None
    error: Optional[str] = None

    @property
    def needs_reconciliation(self) -> bool:
        return self.payout_status == PayoutStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"tradeId": self.trade_id, "success": self.success}
        if self.result is not None:
            data["result"] = self.result.value
        if self.already_resolved:
            data["alreadyResolved"] = True
        if self.payout_status != PayoutStatus.NOT_REQUIRED:
            data["payoutStatus"] = self.payout_status.value
        if self.payout_amount is not None:
            data["payoutAmount"] = str(self.payout_amount)
        if self.needs_reconciliation:
            data["needsReconciliation"] = True
        if self.position_error:
            data["positionError"] = self.position_error
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class BatchSummary:
    """Summary of one scheduler tick."""

    started_at: datetime
    completed_at: Optional[datetime] = None
    results: List[SettlementOutcome] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def flagged(self) -> List[SettlementOutcome]:
        return [r for r in self.results if r.needs_reconciliation]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "results": [r.to_dict() for r in self.results],
            "flagged": [r.trade_id for r in self.flagged],
        }


__all__ = [
    "TradeStatus",
    "TradeDecision",
    "TradeDirection",
    "AdminRole",
    "TransactionType",
    "LedgerReceipt",
    "DecisionResult",
    "TradeResolution",
    "PayoutStatus",
    "SettlementOutcome",
    "BatchSummary",
]
