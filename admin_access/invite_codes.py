"""
Admin Access - Invite Code Redemption.

Links an end user to the invite code they registered with. This
is the edge the assignment resolver follows.
"""

import logging
from typing import Optional

from sqlalchemy import select, update, or_

from core.clock import ClockProtocol, ClockFactory
from database.engine import SessionFactoryType, transaction_scope
from database.models import InviteCode, UserProfile


logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class InviteCodeRegistry:
    """Invite code usage accounting."""

    def __init__(
        self,
        session_factory: Optional[SessionFactoryType] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or ClockFactory.get_clock()

    def redeem(self, code: str, user_id: str) -> bool:
        """
        Consume one use of a code for a user.

        The code must be active, unexpired and below its usage cap, and
        the user must not already be registered with a code: the
        registration edge is permanent.
        The counter is incremented with a conditional update so two
        concurrent redemptions cannot exceed the cap.

        Returns:
            False when the code is unknown or no longer usable, or the
            user already registered with a code
        """
        normalized = normalize_code(code)
        if not normalized:
            return False

        now = self._clock.naive_now()

        with transaction_scope(self._session_factory) as session:
            profile = session.get(UserProfile, user_id)
            if profile is not None and profile.registered_with_invite_code_id is not None:
                logger.warning(
                    f"Invite code {normalized!r} refused: user {user_id} already registered "
                    f"with invite code id {profile.registered_with_invite_code_id}"
                )
                return False

            usable = (
                InviteCode.code == normalized,
                InviteCode.is_active.is_(True),
                or_(InviteCode.expires_at.is_(None), InviteCode.expires_at > now),
                InviteCode.current_uses < InviteCode.max_uses,
            )

            code_id = session.scalar(select(InviteCode.id).where(*usable))
            if code_id is None:
                logger.info(f"Invite code {normalized!r} rejected for user {user_id}")
                return False

            affected = session.execute(
                update(InviteCode)
                .where(InviteCode.id == code_id, *usable[1:])
                .values(current_uses=InviteCode.current_uses + 1, updated_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount
            if affected == 0:
                logger.info(f"Invite code {normalized!r} exhausted concurrently")
                return False

            if profile is None:
                profile = UserProfile(user_id=user_id, created_at=now)
                session.add(profile)
            profile.registered_with_invite_code_id = code_id

        logger.info(f"Invite code {normalized} redeemed by user {user_id}")
        return True


__all__ = ["InviteCodeRegistry", "normalize_code"]
