"""
Database Package Initialization.

============================================================
SETTLEMENT DATABASE PERSISTENCE LAYER
============================================================

Real PostgreSQL persistence for the settlement core.

REQUIRED:
- Every settlement write is a conditional update
- Every failure raises a hard exception
- All transactions are explicit with commit/rollback

============================================================
"""

# Core engine and session management
from .engine import (
    Base,
    create_database_engine,
    get_engine,
    get_session,
    get_session_factory,
    configure_session_factory,
    transaction_scope,
    initialize_database,
    create_all_tables,
    verify_required_tables,
    REQUIRED_TABLES,
    DatabasePersistenceError,
    DatabaseConnectionError,
    DatabaseInitializationError,
)

# ORM Models
from .models import (
    Trade,
    OpenPosition,
    ClosingOrder,
    AdminProfile,
    InviteCode,
    UserProfile,
    UserBalance,
    BalanceTransaction,
    SettlementIssue,
)

__all__ = [
    "Base",
    "create_database_engine",
    "get_engine",
    "get_session",
    "get_session_factory",
    "configure_session_factory",
    "transaction_scope",
    "initialize_database",
    "create_all_tables",
    "verify_required_tables",
    "REQUIRED_TABLES",
    "DatabasePersistenceError",
    "DatabaseConnectionError",
    "DatabaseInitializationError",
    "Trade",
    "OpenPosition",
    "ClosingOrder",
    "AdminProfile",
    "InviteCode",
    "UserProfile",
    "UserBalance",
    "BalanceTransaction",
    "SettlementIssue",
]
