"""
Decision API Service.

This service handles:
- Recording admin win/lose decisions (never moves money)
- Listing the trades an admin is allowed to see

Checks run strictly in this order:
1. Acting user is an active admin
2. Trade owner is in the admin's assignment set (regular admins)
3. SetDecision on the state machine
"""

import logging
from typing import List, Optional

from sqlalchemy import select

from admin_access.gate import AccessControl
from core.exceptions import DecisionConflictError
from database.engine import SessionFactoryType, transaction_scope
from database.models import Trade
from settlement.repository import TradeRepository
from settlement.state_machine import TradeStateMachine
from settlement.types import DecisionResult, TradeDecision

logger = logging.getLogger(__name__)


class DecisionService:
    """Admin-facing trade decisions."""

    def __init__(
        self,
        access: AccessControl,
        state_machine: TradeStateMachine,
        session_factory: Optional[SessionFactoryType] = None,
    ):
        self._access = access
        self._state_machine = state_machine
        self._session_factory = session_factory

    def set_decision(self, admin_id: str, trade_id: str, decision: TradeDecision) -> DecisionResult:
        """
        Record a decision on behalf of an admin.

        Raises:
            PermissionDeniedError: not an active admin, or not this user's admin
            DecisionConflictError: trade missing, resolved or already decided
        """
        admin = self._access.authenticate(admin_id)
        gate = self._access.gate_for(admin)

        # An unknown trade has no owner, so only a super admin gets past the gate
        owner_id = self._trade_owner(trade_id)
        gate.require(owner_id)

        if owner_id is None:
            logger.info(f"Decision rejected: trade {trade_id} not found (admin={admin_id})")
            raise DecisionConflictError(trade_id)

        return self._state_machine.set_decision(trade_id, decision, acting_admin_id=admin.admin_id)

    def list_visible_trades(
        self,
        admin_id: str,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> List[Trade]:
        """Trades of every user the admin may see, newest first."""
        admin = self._access.authenticate(admin_id)
        visible = self._access.gate_for(admin).visible_user_ids()

        with transaction_scope(self._session_factory) as session:
            return TradeRepository(session).list_for_users(visible, status=status, limit=limit)

    def _trade_owner(self, trade_id: str) -> Optional[str]:
        with transaction_scope(self._session_factory) as session:
            return session.scalar(select(Trade.user_id).where(Trade.id == trade_id))
