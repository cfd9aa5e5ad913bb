"""
Shared fixtures for settlement tests.

Every test gets a fresh in-memory SQLite database built from the
ORM metadata, a MockClock pinned at 2025-01-01 12:00 UTC and a
seeded random source.
"""

import random
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.clock import MockClock
from database.engine import Base
from database.models import (
    Trade,
    OpenPosition,
    AdminProfile,
    InviteCode,
    UserProfile,
    UserBalance,
)
from settlement.config import SettlementConfig
from settlement.service import build_settlement_services


START = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================
# DATABASE
# =============================================================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def clock():
    return MockClock(START)


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def config():
    return SettlementConfig.for_testing()


@pytest.fixture
def services(config, session_factory, clock, rng):
    return build_settlement_services(config, session_factory, clock, rng)


# =============================================================
# ROW FACTORIES
# =============================================================

@pytest.fixture
def add_trade(session_factory, clock):
    """Insert a pending trade; returns its id."""

    def _add(user_id="user-1", **overrides):
        values = dict(
            user_id=user_id,
            symbol="BTCUSDT",
            direction="up",
            stake_amount=Decimal("100"),
            leverage=10,
            entry_price=Decimal("42000"),
            profit_rate=Decimal("30"),
            status="pending",
            created_at=clock.naive_now(),
        )
        values.update(overrides)
        with session_factory() as session:
            trade = Trade(**values)
            session.add(trade)
            session.commit()
            return trade.id

    return _add


@pytest.fixture
def add_position(session_factory):
    def _add(trade_id, user_id="user-1", **overrides):
        values = dict(
            trade_id=trade_id,
            user_id=user_id,
            symbol="BTCUSDT",
            side="long",
            leverage=10,
            entry_price=Decimal("42000"),
            mark_price=Decimal("42100"),
            quantity=Decimal("0.0238"),
            stake=Decimal("100"),
        )
        values.update(overrides)
        with session_factory() as session:
            position = OpenPosition(**values)
            session.add(position)
            session.commit()
            return position.id

    return _add


@pytest.fixture
def add_admin(session_factory):
    def _add(admin_id, role="admin", is_active=True, primary_invite_code=None):
        with session_factory() as session:
            session.add(AdminProfile(
                user_id=admin_id,
                role=role,
                is_active=is_active,
                full_name=f"Admin {admin_id}",
                primary_invite_code=primary_invite_code,
            ))
            session.commit()
        return admin_id

    return _add


@pytest.fixture
def add_invite_code(session_factory):
    def _add(code, created_by, max_uses=10, current_uses=0, is_active=True,
             expires_at=None, used_by=None):
        with session_factory() as session:
            invite = InviteCode(
                code=code,
                created_by=created_by,
                max_uses=max_uses,
                current_uses=current_uses,
                is_active=is_active,
                expires_at=expires_at,
                used_by=used_by,
            )
            session.add(invite)
            session.commit()
            return invite.id

    return _add


@pytest.fixture
def add_user(session_factory):
    def _add(user_id, invite_code_id=None):
        with session_factory() as session:
            session.add(UserProfile(
                user_id=user_id,
                email=f"{user_id}@example.com",
                registered_with_invite_code_id=invite_code_id,
            ))
            session.commit()
        return user_id

    return _add


@pytest.fixture
def set_balance(session_factory):
    def _set(user_id, amount):
        with session_factory() as session:
            session.add(UserBalance(user_id=user_id, balance=Decimal(str(amount))))
            session.commit()

    return _set


@pytest.fixture
def load_trade(session_factory):
    def _load(trade_id):
        with session_factory() as session:
            return session.get(Trade, trade_id)

    return _load
