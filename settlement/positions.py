"""
Settlement - Open Position Cleanup.

Retires the open-position rows of a resolved trade: each row is
archived to closing_orders, then deleted. Best-effort; callers log
a PositionStoreError and carry on.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import select

from core.exceptions import PositionStoreError
from database.engine import SessionFactoryType, transaction_scope
from database.models import OpenPosition, ClosingOrder


logger = logging.getLogger(__name__)


class OpenPositionStore:
    """Open position rows keyed by trade id."""

    def __init__(self, session_factory: Optional[SessionFactoryType] = None):
        self._session_factory = session_factory

    def retire(
        self,
        trade_id: str,
        realized_pnl: Decimal,
        exit_price: Optional[Decimal] = None,
    ) -> int:
        """
        Archive and delete every open position of a trade.

        Exit price falls back to the position's mark price, then its
        entry price.

        Returns:
            Number of positions retired (0 when none existed)

        Raises:
            PositionStoreError: archive or delete failed
        """
        pnl = Decimal(realized_pnl).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

        try:
            with transaction_scope(self._session_factory) as session:
                positions = list(session.scalars(
                    select(OpenPosition).where(OpenPosition.trade_id == trade_id)
                ))
                for position in positions:
                    session.add(ClosingOrder(
                        original_trade_id=trade_id,
                        user_id=position.user_id,
                        symbol=position.symbol,
                        side=position.side,
                        leverage=position.leverage,
                        entry_price=position.entry_price,
                        exit_price=exit_price or position.mark_price or position.entry_price,
                        quantity=position.quantity,
                        stake=position.stake,
                        realized_pnl=pnl,
                    ))
                    session.delete(position)
        except Exception as e:
            raise PositionStoreError(
                f"Position cleanup failed for trade {trade_id}: {e}",
                trade_id=trade_id,
                cause=e,
            ) from e

        if positions:
            logger.info(f"Retired {len(positions)} open position(s) for trade {trade_id}")
        return len(positions)


__all__ = ["OpenPositionStore"]
