"""
Tests for database URL resolution and transaction boundaries.
"""

import pytest
from sqlalchemy import select

from database.engine import (
    DEFAULT_DATABASE_URL,
    DatabasePersistenceError,
    get_database_url,
    transaction_scope,
)
from database.models import UserBalance


class TestDatabaseUrl:

    def test_reads_database_url(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/console")
        assert get_database_url() == "postgresql://u:p@db:5432/console"

    def test_url_is_used_verbatim(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg2://u:p@db/console")
        monkeypatch.setenv("DATABASE_URL_SYNC", "postgresql://other/ignored")

        assert get_database_url() == "postgresql+psycopg2://u:p@db/console"

    def test_falls_back_to_default(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        assert get_database_url() == DEFAULT_DATABASE_URL


class TestTransactionScope:

    def test_commits_on_success(self, session_factory):
        with transaction_scope(session_factory) as session:
            session.add(UserBalance(user_id="user-1", balance=5))

        with session_factory() as session:
            assert session.get(UserBalance, "user-1") is not None

    def test_integrity_failure_rolls_back_and_wraps(self, session_factory, set_balance):
        set_balance("user-1", "5")

        with pytest.raises(DatabasePersistenceError):
            with transaction_scope(session_factory) as session:
                session.add(UserBalance(user_id="user-2", balance=1))
                session.add(UserBalance(user_id="user-1", balance=1))

        with session_factory() as session:
            assert session.scalars(select(UserBalance.user_id)).all() == ["user-1"]

    def test_other_errors_propagate_unchanged(self, session_factory):
        with pytest.raises(KeyError):
            with transaction_scope(session_factory) as session:
                session.add(UserBalance(user_id="user-1", balance=5))
                raise KeyError("boom")

        with session_factory() as session:
            assert session.get(UserBalance, "user-1") is None
