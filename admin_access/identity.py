"""
Admin Access - Identity.

============================================================
RESPONSIBILITY
============================================================
Turns a bearer credential into an acting admin.

- JwtTokenVerifier: verifies the token, yields the subject id
- AdminDirectory: loads the admin profile; only ACTIVE admins
  are returned, an inactive admin is treated as no admin

============================================================
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from jose import jwt, JWTError

from core.exceptions import UnauthorizedError
from database.engine import SessionFactoryType, transaction_scope
from database.models import AdminProfile
from settlement.config import AccessConfig
from settlement.types import AdminRole


logger = logging.getLogger(__name__)


# ============================================================
# ADMIN IDENTITY
# ============================================================

@dataclass(frozen=True)
class AdminIdentity:
    """An active staff user."""

    admin_id: str
    role: AdminRole
    full_name: Optional[str] = None
    primary_invite_code: Optional[str] = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == AdminRole.SUPER_ADMIN


class AdminDirectory:
    """Read-only lookup of admin_profiles."""

    def __init__(self, session_factory: Optional[SessionFactoryType] = None):
        self._session_factory = session_factory

    def get_active_admin(self, admin_id: str) -> Optional[AdminIdentity]:
        """Return the admin when the profile exists and is active."""
        with transaction_scope(self._session_factory) as session:
            profile = session.get(AdminProfile, admin_id)
            if profile is None or not profile.is_active:
                return None
            try:
                role = AdminRole(profile.role)
            except ValueError:
                logger.warning(f"Admin {admin_id} has unknown role {profile.role!r}")
                return None
            return AdminIdentity(
                admin_id=profile.user_id,
                role=role,
                full_name=profile.full_name,
                primary_invite_code=profile.primary_invite_code,
            )


# ============================================================
# TOKEN VERIFIER
# ============================================================

class JwtTokenVerifier:
    """HS256 bearer tokens whose `sub` claim is the admin user id."""

    def __init__(
        self,
        secret: Optional[str],
        algorithm: str = "HS256",
        audience: Optional[str] = None,
    ):
        self._secret = secret
        self._algorithm = algorithm
        self._audience = audience

    @classmethod
    def from_config(cls, config: AccessConfig) -> "JwtTokenVerifier":
        return cls(config.jwt_secret, config.jwt_algorithm, config.jwt_audience)

    def verify(self, token: Optional[str]) -> str:
        """
        Verify a bearer token.

        Returns:
            Subject (admin user id)

        Raises:
            UnauthorizedError: missing, malformed, expired or unsigned token
        """
        if not token:
            raise UnauthorizedError("Unauthorized: missing bearer token")
        if not self._secret:
            logger.error("ADMIN_JWT_SECRET is not configured; rejecting all tokens")
            raise UnauthorizedError("Unauthorized: credential verification unavailable")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                options={"verify_aud": self._audience is not None},
            )
        except JWTError as e:
            raise UnauthorizedError(f"Unauthorized: {e}")

        subject = payload.get("sub")
        if not subject:
            raise UnauthorizedError("Unauthorized: token has no subject")
        return str(subject)

    def issue(self, admin_id: str, ttl_seconds: int = 3600) -> str:
        """Sign a token for an admin (operator tooling and tests)."""
        now = int(time.time())
        claims = {"sub": admin_id, "iat": now, "exp": now + ttl_seconds}
        if self._audience:
            claims["aud"] = self._audience
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)


__all__ = [
    "AdminIdentity",
    "AdminDirectory",
    "JwtTokenVerifier",
]
