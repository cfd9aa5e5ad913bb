"""
Admin Access - Assignment Resolver.

============================================================
RESPONSIBILITY
============================================================
Computes the set of end users a regular admin may act upon.

ONE-HOP RELATION:

    admin ──creates──► invite code ──redeemed by──► user

Codes counted for an admin: codes it created, plus the code
named as its primary invite code. Redemption edges: the user's
profile (registered_with_invite_code_id) and the legacy
invite_codes.used_by column. Chains are NOT followed.

CACHING:
Results are cached per admin for a short TTL. An admin with no
codes resolves to the EMPTY set, which denies everything.

============================================================
"""

import logging
import threading
from typing import Dict, FrozenSet, Optional, Tuple

from sqlalchemy import select, or_

from core.clock import ClockProtocol, ClockFactory
from database.engine import SessionFactoryType, transaction_scope
from database.models import AdminProfile, InviteCode, UserProfile


logger = logging.getLogger(__name__)


class AssignmentResolver:
    """Invitation-lineage lookup with a short-lived cache."""

    def __init__(
        self,
        session_factory: Optional[SessionFactoryType] = None,
        clock: Optional[ClockProtocol] = None,
        ttl_seconds: float = 10.0,
    ):
        self._session_factory = session_factory
        self._clock = clock or ClockFactory.get_clock()
        self._ttl_seconds = ttl_seconds
        self._cache: Dict[str, Tuple[float, FrozenSet[str]]] = {}
        self._lock = threading.Lock()

    def resolve(self, admin_id: str) -> FrozenSet[str]:
        """Assigned user ids of a regular admin."""
        now = self._clock.timestamp()

        with self._lock:
            cached = self._cache.get(admin_id)
            if cached is not None and cached[0] > now:
                return cached[1]

        users = self._load(admin_id)

        with self._lock:
            self._cache[admin_id] = (now + self._ttl_seconds, users)

        logger.debug(f"Resolved {len(users)} assigned user(s) for admin {admin_id}")
        return users

    def invalidate(self, admin_id: Optional[str] = None) -> None:
        """Drop one admin's cached set, or all of them."""
        with self._lock:
            if admin_id is None:
                self._cache.clear()
            else:
                self._cache.pop(admin_id, None)

    def _load(self, admin_id: str) -> FrozenSet[str]:
        with transaction_scope(self._session_factory) as session:
            primary_code = session.scalar(
                select(AdminProfile.primary_invite_code).where(AdminProfile.user_id == admin_id)
            )

            code_filter = InviteCode.created_by == admin_id
            if primary_code:
                code_filter = or_(code_filter, InviteCode.code == primary_code.strip().upper())

            codes = session.execute(
                select(InviteCode.id, InviteCode.used_by).where(code_filter)
            ).all()
            if not codes:
                return frozenset()

            code_ids = [code_id for code_id, _ in codes]
            users = set(
                session.scalars(
                    select(UserProfile.user_id).where(
                        UserProfile.registered_with_invite_code_id.in_(code_ids)
                    )
                )
            )
            users.update(used_by for _, used_by in codes if used_by)

        return frozenset(users)


__all__ = ["AssignmentResolver"]
