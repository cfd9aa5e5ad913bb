"""
Settlement - Trade State Machine.

============================================================
PURPOSE
============================================================
Owns the two transitions a trade goes through in this core.

STATE MACHINE:

    PENDING ─────────────► WIN
      │  (decision = win)
      │
      └──────────────────► LOSE
         (decision = lose, or no decision at all)

    `decision` is orthogonal to status: it is set at most once
    while PENDING and only supplies the outcome Resolve uses.

TRANSITIONS:
- SetDecision(trade, decision): pending AND undecided only.
  Arms execute_at (now + random delay) unless already armed.
- Resolve(trade): pending only. Writes status, result,
  profit_loss_amount and completed_at in one guarded UPDATE.
  Zero rows affected means another resolver won: a no-op.

INVARIANTS:
- decision and execute_at are written at most once
- Financial fields are written exactly once, at resolution
- No lock spans more than one round trip

============================================================
"""

import logging
import random
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from core.clock import ClockProtocol, ClockFactory
from core.exceptions import DecisionConflictError, TradeStateError
from database.engine import SessionFactoryType, transaction_scope
from .config import DecisionConfig
from .repository import TradeRepository
from .types import TradeStatus, TradeDecision, DecisionResult, TradeResolution


logger = logging.getLogger(__name__)


MONEY_QUANT = Decimal("0.00000001")


# ============================================================
# PROFIT / LOSS
# ============================================================

def compute_profit_loss(
    stake_amount: Decimal,
    profit_rate: Decimal,
    result: TradeStatus,
) -> Decimal:
    """
    Signed profit/loss of a resolved trade.

    win:  stake_amount * profit_rate / 100
    lose: -stake_amount
    """
    stake = Decimal(stake_amount)
    if result == TradeStatus.WIN:
        profit = stake * Decimal(profit_rate) / Decimal(100)
        return profit.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)
    if result == TradeStatus.LOSE:
        return -stake
    raise TradeStateError(f"Cannot compute profit/loss for status {result.value}")


# ============================================================
# TRADE STATE MACHINE
# ============================================================

class TradeStateMachine:
    """
    Trade lifecycle transitions.

    Each call opens its own transaction; the session factory,
    clock and random source are injected so tests control
    "now" and the decision delay.
    """

    def __init__(
        self,
        session_factory: Optional[SessionFactoryType] = None,
        clock: Optional[ClockProtocol] = None,
        config: Optional[DecisionConfig] = None,
        rng: Optional[random.Random] = None,
        resolve_retry_limit: int = 3,
    ):
        self._session_factory = session_factory
        self._clock = clock or ClockFactory.get_clock()
        self._config = config or DecisionConfig()
        self._rng = rng or random.Random()
        self._resolve_retry_limit = resolve_retry_limit

    @property
    def clock(self) -> ClockProtocol:
        return self._clock

    def draw_execute_at(self, now: datetime) -> datetime:
        """now + a whole number of seconds in the configured window."""
        delay = self._rng.randint(
            self._config.delay_min_seconds,
            self._config.delay_max_seconds,
        )
        return now + timedelta(seconds=delay)

    # --------------------------------------------------------
    # SET DECISION
    # --------------------------------------------------------

    def set_decision(
        self,
        trade_id: str,
        decision: Union[TradeDecision, str],
        acting_admin_id: Optional[str] = None,
    ) -> DecisionResult:
        """
        Record an admin decision on a pending, undecided trade.

        Returns:
            DecisionResult carrying the effective execute_at

        Raises:
            DecisionConflictError: no pending-and-undecided row matched
        """
        decision = TradeDecision(decision)
        now = self._clock.naive_now()
        proposed_execute_at = self.draw_execute_at(now)

        with transaction_scope(self._session_factory) as session:
            repo = TradeRepository(session)
            affected = repo.set_decision(trade_id, decision.value, proposed_execute_at, now)

            if affected == 0:
                logger.info(
                    f"Decision rejected for trade {trade_id}: "
                    f"not pending or already decided (admin={acting_admin_id})"
                )
                raise DecisionConflictError(trade_id)

            trade = repo.get(trade_id, refresh=True)
            result = DecisionResult(
                trade_id=trade.id,
                user_id=trade.user_id,
                status=TradeStatus(trade.status),
                decision=TradeDecision(trade.decision),
                execute_at=trade.execute_at,
                previous_status=trade.previous_status,
            )

        logger.info(
            f"Decision recorded: trade={trade_id} admin={acting_admin_id} "
            f"decision={decision.value} execute_at={result.execute_at.isoformat()}"
        )
        return result

    # --------------------------------------------------------
    # RESOLVE
    # --------------------------------------------------------

    def resolve(
        self,
        trade_id: str,
        default_profit_rate: Optional[Decimal] = None,
    ) -> Optional[TradeResolution]:
        """
        Finalize a pending trade.

        Returns:
            TradeResolution when this call performed the transition,
            None when the trade was already resolved (or is gone).

        Raises:
            TradeStateError: the row kept changing under us
        """
        fallback_rate = default_profit_rate
        if fallback_rate is None:
            fallback_rate = self._config.default_profit_rate

        for attempt in range(self._resolve_retry_limit + 1):
            with transaction_scope(self._session_factory) as session:
                repo = TradeRepository(session)
                trade = repo.get(trade_id, refresh=True)

                if trade is None:
                    logger.warning(f"Resolve skipped: trade {trade_id} not found")
                    return None

                if trade.status != TradeStatus.PENDING.value:
                    logger.info(
                        f"Resolve no-op: trade {trade_id} already resolved as {trade.status}"
                    )
                    return None

                result = TradeStatus(trade.decision) if trade.decision else TradeStatus.LOSE
                rate = trade.profit_rate if trade.profit_rate is not None else fallback_rate
                profit_loss = compute_profit_loss(trade.stake_amount, rate, result)
                completed_at = self._clock.naive_now()

                affected = repo.resolve(
                    trade_id,
                    expected_decision=trade.decision,
                    result=result.value,
                    profit_loss_amount=profit_loss,
                    completed_at=completed_at,
                )

                if affected == 1:
                    resolution = TradeResolution(
                        trade_id=trade.id,
                        user_id=trade.user_id,
                        result=result,
                        stake_amount=Decimal(trade.stake_amount),
                        profit_loss_amount=profit_loss,
                        completed_at=completed_at,
                        decided_by_admin=trade.decision is not None,
                        current_price=trade.current_price,
                    )
                    logger.info(
                        f"Trade resolved: trade={trade_id} result={result.value} "
                        f"profit_loss={profit_loss}"
                    )
                    return resolution

            # Either a concurrent resolver or a late decision changed the row.
            logger.debug(f"Resolve raced on trade {trade_id}, re-reading (attempt {attempt + 1})")

        raise TradeStateError(
            f"Trade {trade_id} kept changing during resolution",
            context={"trade_id": trade_id, "attempts": self._resolve_retry_limit + 1},
        )


__all__ = [
    "TradeStateMachine",
    "compute_profit_loss",
]
