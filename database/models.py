"""
Database ORM Models - Settlement Tables.

============================================================
SETTLEMENT DATABASE SCHEMA
============================================================

Tables touched by the settlement core:

- trades: one row per trade, mutated only by conditional updates
- positions_orders: open positions, deleted on resolution
- closing_orders: archive of retired positions
- admin_profiles: staff identities (read-only here)
- invite_codes: invitation codes created by admins
- profiles: end users and the invite code they registered with
- user_balances / transactions: the balance ledger
- settlement_issues: payouts owed after a partial failure

All timestamps are naive UTC.

============================================================
"""

from datetime import datetime
import uuid

from sqlalchemy import (
    Column, Integer, String, Text, Numeric, Boolean,
    DateTime, ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy.orm import validates

from core.exceptions import ImmutableFieldError
from .engine import Base


# =============================================================
# HELPER FUNCTIONS
# =============================================================

def generate_uuid():
    """Generate a new UUID."""
    return str(uuid.uuid4())


def utc_now():
    """Get current UTC timestamp."""
    return datetime.utcnow()


MONEY = Numeric(20, 8)


# =============================================================
# 1. TRADES TABLE
# =============================================================

class Trade(Base):
    """
    A single speculative position awaiting or past settlement.

    Owned by the trading subsystem; the settlement core writes the
    lifecycle fields. `decision`, `execute_at` and the resolution
    fields are write-once.
    """
    __tablename__ = "trades"

    WRITE_ONCE_FIELDS = ("decision", "execute_at", "result", "profit_loss_amount", "completed_at")

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), nullable=False, index=True)

    # Position
    symbol = Column(String(50), nullable=False)
    direction = Column(String(10), nullable=False)  # up, down
    stake_amount = Column(MONEY, nullable=False)
    leverage = Column(Integer, nullable=False, default=1)
    entry_price = Column(MONEY, nullable=True)
    current_price = Column(MONEY, nullable=True)
    profit_rate = Column(Numeric(10, 4), nullable=True)  # percentage, 30 = 30%

    # Lifecycle
    status = Column(String(20), nullable=False, default="pending")
    decision = Column(String(10), nullable=True)
    previous_status = Column(String(20), nullable=True)
    execute_at = Column(DateTime, nullable=True)
    modified_by_admin = Column(Boolean, nullable=False, default=False)

    # Resolution
    result = Column(String(10), nullable=True)
    profit_loss_amount = Column(MONEY, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=True, onupdate=utc_now)

    __table_args__ = (
        Index("idx_trades_status_execute_at", "status", "execute_at"),
    )

    @validates(*WRITE_ONCE_FIELDS)
    def _guard_write_once(self, key, value):
        current = getattr(self, key)
        if current is not None and value != current:
            raise ImmutableFieldError(key, trade_id=self.id)
        return value


# =============================================================
# 2. OPEN POSITIONS TABLE
# =============================================================

class OpenPosition(Base):
    """
    Open position row backing an active trade.

    Deleted when the trade resolves.
    """
    __tablename__ = "positions_orders"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    trade_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)

    symbol = Column(String(50), nullable=False)
    side = Column(String(10), nullable=False)
    leverage = Column(Integer, nullable=False, default=1)
    entry_price = Column(MONEY, nullable=True)
    mark_price = Column(MONEY, nullable=True)
    quantity = Column(MONEY, nullable=True)
    stake = Column(MONEY, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)


# =============================================================
# 3. CLOSING ORDERS TABLE
# =============================================================

class ClosingOrder(Base):
    """Archive of an open position retired at settlement."""
    __tablename__ = "closing_orders"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    original_trade_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)

    symbol = Column(String(50), nullable=False)
    side = Column(String(10), nullable=False)
    leverage = Column(Integer, nullable=False, default=1)
    entry_price = Column(MONEY, nullable=True)
    exit_price = Column(MONEY, nullable=True)
    quantity = Column(MONEY, nullable=True)
    stake = Column(MONEY, nullable=True)
    realized_pnl = Column(MONEY, nullable=False)

    created_at = Column(DateTime, nullable=False, default=utc_now)


# =============================================================
# 4. ADMIN PROFILES TABLE
# =============================================================

class AdminProfile(Base):
    """Staff identity. Only active rows may act."""
    __tablename__ = "admin_profiles"

    user_id = Column(String(36), primary_key=True)
    role = Column(String(20), nullable=False, default="admin")  # admin, super_admin
    is_active = Column(Boolean, nullable=False, default=True)
    full_name = Column(String(255), nullable=True)
    primary_invite_code = Column(String(50), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)


# =============================================================
# 5. INVITE CODES TABLE
# =============================================================

class InviteCode(Base):
    """
    Invitation code created by an admin.

    `used_by` is the legacy redemption edge; newer redemptions are
    recorded on `profiles.registered_with_invite_code_id`.
    """
    __tablename__ = "invite_codes"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    code = Column(String(50), nullable=False, unique=True)
    created_by = Column(String(36), nullable=False, index=True)
    admin_name = Column(String(255), nullable=True)

    max_uses = Column(Integer, nullable=False, default=1)
    current_uses = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime, nullable=True)
    used_by = Column(String(36), nullable=True, index=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=True, onupdate=utc_now)


# =============================================================
# 6. PROFILES TABLE
# =============================================================

class UserProfile(Base):
    """End user and the invite code they registered with."""
    __tablename__ = "profiles"

    user_id = Column(String(36), primary_key=True)
    email = Column(String(255), nullable=True)
    registered_with_invite_code_id = Column(
        String(36), ForeignKey("invite_codes.id"), nullable=True, index=True
    )

    created_at = Column(DateTime, nullable=False, default=utc_now)


# =============================================================
# 7. BALANCE LEDGER TABLES
# =============================================================

class UserBalance(Base):
    """Current balance per user."""
    __tablename__ = "user_balances"

    user_id = Column(String(36), primary_key=True)
    balance = Column(MONEY, nullable=False, default=0)
    currency = Column(String(10), nullable=False, default="USDT")

    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)


class BalanceTransaction(Base):
    """
    Audit record of a balance mutation.

    At most one record per (trade_id, transaction_type): this is
    what makes a trade payout idempotent.
    """
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    trade_id = Column(String(36), nullable=True, index=True)

    transaction_type = Column(String(30), nullable=False)  # trade_payout, manual, ...
    direction = Column(String(10), nullable=False)  # deposit, withdrawal
    amount = Column(MONEY, nullable=False)  # always positive
    currency = Column(String(10), nullable=False, default="USDT")
    status = Column(String(20), nullable=False, default="completed")
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now, index=True)

    __table_args__ = (
        UniqueConstraint("trade_id", "transaction_type", name="uq_transactions_trade_type"),
    )


# =============================================================
# 8. SETTLEMENT ISSUES TABLE
# =============================================================

class SettlementIssue(Base):
    """
    A resolved trade whose downstream effect is missing.

    Open issues represent money owed and are worked off by the
    payout reconciler.
    """
    __tablename__ = "settlement_issues"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    trade_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=False)

    issue_type = Column(String(30), nullable=False, default="payout_failed")
    amount = Column(MONEY, nullable=False)
    status = Column(String(20), nullable=False, default="open", index=True)  # open, resolved
    last_error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    last_attempt_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("trade_id", "issue_type", name="uq_settlement_issues_trade_type"),
    )


__all__ = [
    "Trade",
    "OpenPosition",
    "ClosingOrder",
    "AdminProfile",
    "InviteCode",
    "UserProfile",
    "UserBalance",
    "BalanceTransaction",
    "SettlementIssue",
    "generate_uuid",
    "utc_now",
]
