"""
Settlement - Balance Ledger.

============================================================
PURPOSE
============================================================
Atomic balance mutation with its audit record.

CONTRACT:
    credit(user_id, amount, transaction_type, description, trade_id?)
        -> LedgerReceipt | raises LedgerError

- The balance change and the transaction row commit together
- At most one record per (trade_id, transaction_type): a repeated
  payout returns the existing receipt flagged as duplicate
- A mutation never drives a balance below zero

============================================================
"""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from database.engine import (
    SessionFactoryType,
    transaction_scope,
    DatabasePersistenceError,
)
from database.models import UserBalance, BalanceTransaction
from core.exceptions import LedgerError, InsufficientBalanceError
from .types import LedgerReceipt, TransactionType


logger = logging.getLogger(__name__)


# ============================================================
# LEDGER INTERFACE
# ============================================================

class BalanceLedger(ABC):
    """Balance mutation primitive consumed by the scheduler."""

    @abstractmethod
    def credit(
        self,
        user_id: str,
        amount: Decimal,
        transaction_type: TransactionType,
        description: str,
        trade_id: Optional[str] = None,
    ) -> LedgerReceipt:
        """
        Apply a signed amount to a user's balance.

        Raises:
            LedgerError: the mutation did not happen
        """
        pass

    @abstractmethod
    def has_transaction(self, trade_id: str, transaction_type: TransactionType) -> bool:
        """Whether a record already exists for this trade and type."""
        pass


# ============================================================
# SQL LEDGER
# ============================================================

class SqlBalanceLedger(BalanceLedger):
    """
    Ledger backed by user_balances and transactions.

    Idempotency rests on the unique constraint on
    (trade_id, transaction_type); the pre-check only avoids the
    constraint violation in the common case.
    """

    MAX_ATTEMPTS = 2

    def __init__(
        self,
        session_factory: Optional[SessionFactoryType] = None,
        currency: str = "USDT",
    ):
        self._session_factory = session_factory
        self._currency = currency

    def credit(
        self,
        user_id: str,
        amount: Union[Decimal, int, str],
        transaction_type: TransactionType,
        description: str,
        trade_id: Optional[str] = None,
    ) -> LedgerReceipt:
        amount = Decimal(amount)
        transaction_type = TransactionType(transaction_type)

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            try:
                receipt = self._apply(user_id, amount, transaction_type, description, trade_id)
                break
            except DatabasePersistenceError as e:
                if not isinstance(e.__cause__, IntegrityError):
                    raise LedgerError(
                        f"Balance update failed for user {user_id}: {e}",
                        trade_id=trade_id,
                        cause=e,
                    ) from e

                # Only a committed record for this trade makes the conflict a duplicate.
                existing = self._lookup(trade_id, transaction_type) if trade_id else None
                if existing is not None:
                    logger.info(f"Ledger credit for trade {trade_id} lost the race to a duplicate")
                    return self._duplicate_receipt(existing, transaction_type)

                if attempt == self.MAX_ATTEMPTS:
                    raise LedgerError(
                        f"Balance update for user {user_id} kept conflicting: {e}",
                        trade_id=trade_id,
                        cause=e,
                    ) from e
                logger.warning(
                    f"Ledger credit for user {user_id} hit a concurrent write, retrying "
                    f"(attempt {attempt}/{self.MAX_ATTEMPTS})"
                )

        if receipt.duplicate:
            return receipt

        logger.info(
            f"Ledger credit: user={user_id} amount={amount} type={transaction_type.value} "
            f"trade={trade_id} balance={receipt.balance_after}"
        )
        return receipt

    def _apply(
        self,
        user_id: str,
        amount: Decimal,
        transaction_type: TransactionType,
        description: str,
        trade_id: Optional[str],
    ) -> LedgerReceipt:
        """One attempt: balance change and audit row in a single transaction."""
        with transaction_scope(self._session_factory) as session:
            if trade_id:
                existing = self._find(session, trade_id, transaction_type)
                if existing is not None:
                    logger.info(
                        f"Ledger credit skipped: {transaction_type.value} for trade "
                        f"{trade_id} already recorded ({existing.id})"
                    )
                    return self._duplicate_receipt(existing, transaction_type)

            balance_row = session.get(UserBalance, user_id, with_for_update=True)
            if balance_row is None:
                balance_row = UserBalance(
                    user_id=user_id,
                    balance=Decimal("0"),
                    currency=self._currency,
                )
                session.add(balance_row)
                session.flush()

            new_balance = Decimal(balance_row.balance) + amount
            if new_balance < 0:
                raise InsufficientBalanceError(
                    "Insufficient balance",
                    trade_id=trade_id,
                    context={
                        "user_id": user_id,
                        "balance": str(balance_row.balance),
                        "amount": str(amount),
                    },
                )

            balance_row.balance = new_balance
            record = BalanceTransaction(
                user_id=user_id,
                trade_id=trade_id,
                transaction_type=transaction_type.value,
                direction="deposit" if amount >= 0 else "withdrawal",
                amount=abs(amount),
                currency=balance_row.currency,
                status="completed",
                description=description,
            )
            session.add(record)
            session.flush()

            return LedgerReceipt(
                user_id=user_id,
                amount=amount,
                transaction_type=transaction_type,
                trade_id=trade_id,
                transaction_id=record.id,
                balance_after=new_balance,
            )

    def _lookup(self, trade_id: str, transaction_type: TransactionType) -> Optional[BalanceTransaction]:
        """Committed record for (trade_id, type), read in a fresh session."""
        try:
            with transaction_scope(self._session_factory) as session:
                return self._find(session, trade_id, transaction_type)
        except DatabasePersistenceError as e:
            raise LedgerError(
                f"Could not verify payout record for trade {trade_id}: {e}",
                trade_id=trade_id,
                cause=e,
            ) from e

    def has_transaction(self, trade_id: str, transaction_type: TransactionType) -> bool:
        with transaction_scope(self._session_factory) as session:
            return self._find(session, trade_id, TransactionType(transaction_type)) is not None

    def get_balance(self, user_id: str) -> Decimal:
        with transaction_scope(self._session_factory) as session:
            row = session.get(UserBalance, user_id)
            return Decimal(row.balance) if row is not None else Decimal("0")

    @staticmethod
    def _find(session, trade_id: str, transaction_type: TransactionType) -> Optional[BalanceTransaction]:
        stmt = select(BalanceTransaction).where(
            BalanceTransaction.trade_id == trade_id,
            BalanceTransaction.transaction_type == transaction_type.value,
        )
        return session.scalars(stmt).first()

    @staticmethod
    def _duplicate_receipt(
        existing: BalanceTransaction,
        transaction_type: TransactionType,
    ) -> LedgerReceipt:
        amount = Decimal(existing.amount)
        if existing.direction == "withdrawal":
            amount = -amount
        return LedgerReceipt(
            user_id=existing.user_id,
            amount=amount,
            transaction_type=transaction_type,
            trade_id=existing.trade_id,
            transaction_id=existing.id,
            duplicate=True,
        )


__all__ = [
    "BalanceLedger",
    "SqlBalanceLedger",
]
