"""
Settlement - Trade Repository.

============================================================
PURPOSE
============================================================
Database operations on the trades table.

CRITICAL REQUIREMENTS:
- Every lifecycle write is ONE conditional UPDATE
- The affected row count is the only concurrency signal
- No row lock is held across round trips

============================================================
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.orm import Session

from database.models import Trade
from .types import TradeStatus


logger = logging.getLogger(__name__)


# ============================================================
# TRADE REPOSITORY
# ============================================================

class TradeRepository:
    """
    Repository for trade lifecycle persistence.

    Bound to one session; the caller owns the transaction.
    """

    def __init__(self, session: Session):
        self._session = session

    # --------------------------------------------------------
    # READS
    # --------------------------------------------------------

    def get(self, trade_id: str, refresh: bool = False) -> Optional[Trade]:
        """Load a trade by id, optionally bypassing the identity map."""
        if refresh:
            return self._session.get(Trade, trade_id, populate_existing=True)
        return self._session.get(Trade, trade_id)

    def find_due(self, now: datetime, limit: int) -> List[Trade]:
        """
        Pending trades whose execution timer has elapsed.

        Oldest deadline first, so a backlog drains in order.
        """
        stmt = (
            select(Trade)
            .where(
                Trade.status == TradeStatus.PENDING.value,
                Trade.execute_at.is_not(None),
                Trade.execute_at <= now,
            )
            .order_by(Trade.execute_at)
            .limit(limit)
        )
        return list(self._session.scalars(stmt))

    def list_for_users(
        self,
        user_ids: Optional[Iterable[str]],
        status: Optional[str] = None,
        limit: int = 100,
    ) -> List[Trade]:
        """
        Trades owned by the given users, newest first.

        `user_ids=None` means no ownership filter. An empty collection
        matches nothing.
        """
        stmt = select(Trade)
        if user_ids is not None:
            user_ids = list(user_ids)
            if not user_ids:
                return []
            stmt = stmt.where(Trade.user_id.in_(user_ids))
        if status:
            stmt = stmt.where(Trade.status == status)
        stmt = stmt.order_by(Trade.created_at.desc()).limit(limit)
        return list(self._session.scalars(stmt))

    # --------------------------------------------------------
    # CONDITIONAL WRITES
    # --------------------------------------------------------

    def set_decision(
        self,
        trade_id: str,
        decision: str,
        execute_at: datetime,
        now: datetime,
    ) -> int:
        """
        Record a decision on a pending, undecided trade.

        execute_at is only written when not already set.

        Returns:
            Number of rows affected (0 or 1)
        """
        stmt = (
            update(Trade)
            .where(
                Trade.id == trade_id,
                Trade.status == TradeStatus.PENDING.value,
                Trade.decision.is_(None),
            )
            .values(
                decision=decision,
                previous_status=Trade.status,
                modified_by_admin=True,
                execute_at=func.coalesce(Trade.execute_at, execute_at),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount

    def resolve(
        self,
        trade_id: str,
        expected_decision: Optional[str],
        result: str,
        profit_loss_amount: Decimal,
        completed_at: datetime,
    ) -> int:
        """
        Write the final outcome of a pending trade.

        Guarded by status AND by the decision observed when the
        outcome was computed, so a decision landing in between
        forces a re-read instead of being ignored.

        Returns:
            Number of rows affected (0 or 1)
        """
        if expected_decision is None:
            decision_guard = Trade.decision.is_(None)
        else:
            decision_guard = Trade.decision == expected_decision

        stmt = (
            update(Trade)
            .where(
                Trade.id == trade_id,
                Trade.status == TradeStatus.PENDING.value,
                decision_guard,
            )
            .values(
                status=result,
                result=result,
                profit_loss_amount=profit_loss_amount,
                completed_at=completed_at,
                updated_at=completed_at,
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount


__all__ = ["TradeRepository"]
