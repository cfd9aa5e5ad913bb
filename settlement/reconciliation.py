"""
Settlement - Payout Reconciliation.

============================================================
PURPOSE
============================================================
Closes the one partial-failure window of settlement: a trade
resolved as WIN whose ledger credit did not happen.

FLOW:
1. Scheduler flags the failure  -> settlement_issues (open)
2. retry_open_issues()          -> re-run ONLY the ledger credit
3. detect_unpaid_wins()         -> catch wins with neither a payout
                                   nor an issue (crash in between)

Resolve is never re-run: the status transition already committed.
Retrying the credit is safe because the ledger is idempotent per
(trade_id, transaction_type).

============================================================
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, and_

from core.clock import ClockProtocol, ClockFactory
from database.engine import SessionFactoryType, transaction_scope
from database.models import Trade, BalanceTransaction, SettlementIssue
from .ledger import BalanceLedger
from .types import TradeStatus, TransactionType


logger = logging.getLogger(__name__)


PAYOUT_FAILED = "payout_failed"


# ============================================================
# ISSUE STORE
# ============================================================

class SettlementIssueStore:
    """Persistence for settlement_issues."""

    def __init__(
        self,
        session_factory: Optional[SessionFactoryType] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or ClockFactory.get_clock()

    def flag_payout_failure(
        self,
        trade_id: str,
        user_id: str,
        amount: Decimal,
        error: str,
    ) -> str:
        """
        Open (or refresh) the payout issue of a trade.

        Returns:
            Issue id
        """
        now = self._clock.naive_now()
        with transaction_scope(self._session_factory) as session:
            issue = session.scalars(
                select(SettlementIssue).where(
                    SettlementIssue.trade_id == trade_id,
                    SettlementIssue.issue_type == PAYOUT_FAILED,
                )
            ).first()

            if issue is None:
                issue = SettlementIssue(
                    trade_id=trade_id,
                    user_id=user_id,
                    issue_type=PAYOUT_FAILED,
                    amount=amount,
                    status="open",
                    attempts=1,
                    created_at=now,
                )
                session.add(issue)
            else:
                issue.status = "open"
                issue.attempts = (issue.attempts or 0) + 1
                issue.resolved_at = None

            issue.last_error = error[:2000]
            issue.last_attempt_at = now
            session.flush()
            issue_id = issue.id

        logger.error(
            f"Payout failure flagged for reconciliation: trade={trade_id} "
            f"user={user_id} amount={amount} error={error}"
        )
        return issue_id

    def open_issues(self, max_attempts: Optional[int] = None) -> List[SettlementIssue]:
        with transaction_scope(self._session_factory) as session:
            stmt = select(SettlementIssue).where(
                SettlementIssue.status == "open",
                SettlementIssue.issue_type == PAYOUT_FAILED,
            )
            if max_attempts is not None:
                stmt = stmt.where(SettlementIssue.attempts < max_attempts)
            return list(session.scalars(stmt.order_by(SettlementIssue.created_at)))

    def record_attempt(self, issue_id: str, error: Optional[str]) -> None:
        """Close the issue when error is None, otherwise count the failure."""
        now = self._clock.naive_now()
        with transaction_scope(self._session_factory) as session:
            issue = session.get(SettlementIssue, issue_id)
            issue.attempts = (issue.attempts or 0) + 1
            issue.last_attempt_at = now
            if error is None:
                issue.status = "resolved"
                issue.resolved_at = now
            else:
                issue.last_error = error[:2000]


# ============================================================
# RECONCILIATION RESULT
# ============================================================

@dataclass
class ReconciliationReport:
    """Outcome of one reconciliation pass."""

    retried: int = 0
    paid: List[str] = field(default_factory=list)
    still_failing: List[str] = field(default_factory=list)
    newly_flagged: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "retried": self.retried,
            "paid": self.paid,
            "stillFailing": self.still_failing,
            "newlyFlagged": self.newly_flagged,
        }


# ============================================================
# PAYOUT RECONCILER
# ============================================================

class PayoutReconciler:
    """
    Works off money owed after partial settlement failures.
    """

    def __init__(
        self,
        ledger: BalanceLedger,
        issues: SettlementIssueStore,
        session_factory: Optional[SessionFactoryType] = None,
        payout_description: str = "Trade win payout",
        max_attempts: int = 10,
    ):
        self._ledger = ledger
        self._issues = issues
        self._session_factory = session_factory
        self._payout_description = payout_description
        self._max_attempts = max_attempts

    def retry_open_issues(self, report: Optional[ReconciliationReport] = None) -> ReconciliationReport:
        """Re-run the ledger credit of every open payout issue."""
        report = report or ReconciliationReport()

        for issue in self._issues.open_issues(max_attempts=self._max_attempts):
            report.retried += 1
            try:
                receipt = self._ledger.credit(
                    issue.user_id,
                    Decimal(issue.amount),
                    TransactionType.TRADE_PAYOUT,
                    self._payout_description,
                    trade_id=issue.trade_id,
                )
            except Exception as e:
                logger.error(f"Payout retry failed for trade {issue.trade_id}: {e}")
                self._issues.record_attempt(issue.id, str(e))
                report.still_failing.append(issue.trade_id)
                continue

            self._issues.record_attempt(issue.id, None)
            report.paid.append(issue.trade_id)
            logger.info(
                f"Payout reconciled: trade={issue.trade_id} amount={issue.amount} "
                f"duplicate={receipt.duplicate}"
            )

        return report

    def detect_unpaid_wins(self, report: Optional[ReconciliationReport] = None) -> ReconciliationReport:
        """
        Flag resolved wins with neither a payout record nor an issue.
        """
        report = report or ReconciliationReport()

        with transaction_scope(self._session_factory) as session:
            stmt = (
                select(Trade)
                .outerjoin(
                    BalanceTransaction,
                    and_(
                        BalanceTransaction.trade_id == Trade.id,
                        BalanceTransaction.transaction_type == TransactionType.TRADE_PAYOUT.value,
                    ),
                )
                .outerjoin(
                    SettlementIssue,
                    and_(
                        SettlementIssue.trade_id == Trade.id,
                        SettlementIssue.issue_type == PAYOUT_FAILED,
                    ),
                )
                .where(
                    Trade.status == TradeStatus.WIN.value,
                    BalanceTransaction.id.is_(None),
                    SettlementIssue.id.is_(None),
                )
            )
            unpaid = [
                (t.id, t.user_id, Decimal(t.stake_amount) + Decimal(t.profit_loss_amount or 0))
                for t in session.scalars(stmt)
            ]

        for trade_id, user_id, amount in unpaid:
            self._issues.flag_payout_failure(
                trade_id, user_id, amount, "Resolved as win without a payout record"
            )
            report.newly_flagged.append(trade_id)

        if unpaid:
            logger.warning(f"Detected {len(unpaid)} unpaid win(s)")
        return report

    def run(self) -> ReconciliationReport:
        """Detect, then retry everything open."""
        report = ReconciliationReport()
        self.detect_unpaid_wins(report)
        self.retry_open_issues(report)
        logger.info(
            f"Reconciliation complete: retried={report.retried} paid={len(report.paid)} "
            f"failing={len(report.still_failing)} flagged={len(report.newly_flagged)}"
        )
        return report


__all__ = [
    "PAYOUT_FAILED",
    "SettlementIssueStore",
    "ReconciliationReport",
    "PayoutReconciler",
]
