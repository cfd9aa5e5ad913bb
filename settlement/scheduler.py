"""
Settlement - Scheduler.

============================================================
PURPOSE
============================================================
Recurring sweep that resolves every trade whose execution
timer has elapsed, exactly once.

PER TRADE (each its own atomic unit):
1. Resolve                      -> state machine, guarded UPDATE
2. WIN: credit stake + profit   -> balance ledger, idempotent
3. Retire open positions        -> best-effort

ORDERING:
Steps 2 and 3 run strictly AFTER step 1 commits. The only
partial failure possible is "resolved, payout missing", which
is flagged for reconciliation and never answered by re-running
step 1.

CONCURRENCY:
Each tick runs in its own task. A slow tick never delays the
next scan; overlapping ticks are safe because every write is
guarded by status = pending.

============================================================
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional, Set

from core.clock import ClockProtocol, ClockFactory, to_naive_utc
from core.exceptions import PositionStoreError
from database.engine import SessionFactoryType, transaction_scope
from .alerting import SettlementAlerter
from .config import SettlementConfig
from .ledger import BalanceLedger
from .positions import OpenPositionStore
from .reconciliation import SettlementIssueStore
from .repository import TradeRepository
from .state_machine import TradeStateMachine
from .types import (
    TradeStatus,
    TransactionType,
    PayoutStatus,
    SettlementOutcome,
    BatchSummary,
)


logger = logging.getLogger(__name__)


# ============================================================
# SETTLEMENT SCHEDULER
# ============================================================

class SettlementScheduler:
    """
    Finds due trades and settles them.

    run_once() is synchronous and usable from cron; start()/stop()
    drive it on a fixed cadence inside an event loop.
    """

    def __init__(
        self,
        state_machine: TradeStateMachine,
        ledger: BalanceLedger,
        positions: OpenPositionStore,
        issues: SettlementIssueStore,
        session_factory: Optional[SessionFactoryType] = None,
        clock: Optional[ClockProtocol] = None,
        config: Optional[SettlementConfig] = None,
        alerter: Optional[SettlementAlerter] = None,
    ):
        self._state_machine = state_machine
        self._ledger = ledger
        self._positions = positions
        self._issues = issues
        self._session_factory = session_factory
        self._clock = clock or state_machine.clock or ClockFactory.get_clock()
        self._config = config or SettlementConfig()
        self._alerter = alerter

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self.last_summary: Optional[BatchSummary] = None

    @property
    def is_running(self) -> bool:
        return self._running

    # --------------------------------------------------------
    # ONE TRADE
    # --------------------------------------------------------

    def settle(self, trade_id: str) -> SettlementOutcome:
        """
        Resolve one trade and apply its downstream effects.

        Never raises: every failure is recorded on the outcome.
        """
        outcome = SettlementOutcome(trade_id=trade_id, success=False)

        try:
            resolution = self._state_machine.resolve(trade_id)
        except Exception as e:
            logger.error(f"Resolve failed for trade {trade_id}: {e}")
            outcome.error = str(e)
            return outcome

        outcome.success = True
        if resolution is None:
            outcome.already_resolved = True
            return outcome

        outcome.result = resolution.result

        if resolution.result == TradeStatus.WIN:
            amount = resolution.payout_amount
            outcome.payout_amount = amount
            try:
                receipt = self._ledger.credit(
                    resolution.user_id,
                    amount,
                    TransactionType.TRADE_PAYOUT,
                    self._config.ledger.payout_description,
                    trade_id=trade_id,
                )
                outcome.payout_status = (
                    PayoutStatus.DUPLICATE if receipt.duplicate else PayoutStatus.CREDITED
                )
            except Exception as e:
                outcome.payout_status = PayoutStatus.FAILED
                outcome.error = str(e)
                self._flag_payout_failure(resolution.user_id, trade_id, amount, str(e))

        try:
            outcome.positions_retired = self._positions.retire(
                trade_id,
                resolution.profit_loss_amount,
                exit_price=resolution.current_price,
            )
        except PositionStoreError as e:
            logger.warning(f"Position cleanup failed for trade {trade_id}: {e}")
            outcome.position_error = str(e)

        return outcome

    def _flag_payout_failure(self, user_id: str, trade_id: str, amount, error: str) -> None:
        try:
            self._issues.flag_payout_failure(trade_id, user_id, amount, error)
        except Exception as e:
            # detect_unpaid_wins() picks the trade up on the next reconcile
            logger.critical(
                f"Could not record payout failure for trade {trade_id} "
                f"(amount={amount}): {e}"
            )

    # --------------------------------------------------------
    # ONE BATCH
    # --------------------------------------------------------

    def run_once(self, now: Optional[datetime] = None) -> BatchSummary:
        """
        Settle every trade due at `now` (default: the clock).

        Raises:
            DatabasePersistenceError: the due-trade query failed
        """
        now = to_naive_utc(now) if now is not None else self._clock.naive_now()
        summary = BatchSummary(started_at=now)

        with transaction_scope(self._session_factory) as session:
            due_ids = [
                trade.id
                for trade in TradeRepository(session).find_due(now, self._config.scheduler.batch_limit)
            ]

        for trade_id in due_ids:
            summary.results.append(self.settle(trade_id))

        summary.completed_at = self._clock.naive_now()
        self.last_summary = summary

        if summary.processed:
            logger.info(
                f"Settlement batch: processed={summary.processed} "
                f"succeeded={summary.succeeded} failed={summary.failed} "
                f"flagged={len(summary.flagged)}"
            )
        else:
            logger.debug("Settlement batch: no due trades")

        return summary

    # --------------------------------------------------------
    # BACKGROUND LOOP
    # --------------------------------------------------------

    async def start(self) -> None:
        """Start the recurring sweep."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(
            f"Settlement scheduler started (interval={self._config.scheduler.interval_seconds}s)"
        )

    async def stop(self) -> None:
        """Stop the sweep and wait for ticks already in flight."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

        logger.info("Settlement scheduler stopped")

    async def _run(self) -> None:
        """Main run loop."""
        while self._running:
            try:
                if len(self._inflight) < self._config.scheduler.max_concurrent_ticks:
                    task = asyncio.create_task(self._tick())
                    self._inflight.add(task)
                    task.add_done_callback(self._inflight.discard)
                else:
                    logger.warning(
                        f"Skipping settlement tick: {len(self._inflight)} tick(s) still running"
                    )

                await asyncio.sleep(self._config.scheduler.interval_seconds)

            except asyncio.CancelledError:
                break

    async def _tick(self) -> Optional[BatchSummary]:
        try:
            summary = await asyncio.to_thread(self.run_once)
        except Exception as e:
            logger.error(f"Settlement tick failed: {e}")
            return None

        if summary.flagged and self._alerter is not None:
            await self._alerter.send_payout_failures(summary.flagged)

        return summary


__all__ = ["SettlementScheduler"]
