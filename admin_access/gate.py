"""
Admin Access - Authorization Gate.

============================================================
RESPONSIBILITY
============================================================
One capability check in front of every settlement action.

    gate = access.gate_for(admin)
    gate.require(trade.user_id)

Super admins get a gate that always allows; regular admins get
one backed by their assignment set. Call sites never branch on
the role string.

============================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import FrozenSet, Optional

from core.exceptions import PermissionDeniedError
from .identity import AdminIdentity, AdminDirectory
from .resolver import AssignmentResolver


logger = logging.getLogger(__name__)


# ============================================================
# GATES
# ============================================================

class AuthorizationGate(ABC):
    """Decides whether one admin may act on a given user."""

    def __init__(self, admin: AdminIdentity):
        self.admin = admin

    @abstractmethod
    def allows(self, target_user_id: Optional[str]) -> bool:
        pass

    @abstractmethod
    def visible_user_ids(self) -> Optional[FrozenSet[str]]:
        """Users this admin may see; None means every user."""
        pass

    def require(self, target_user_id: Optional[str]) -> None:
        """
        Raises:
            PermissionDeniedError: target user is not assigned to this admin
        """
        if not self.allows(target_user_id):
            logger.warning(
                f"Authorization denied: admin={self.admin.admin_id} "
                f"target_user={target_user_id} reason={PermissionDeniedError.NOT_ASSIGNED}"
            )
            raise PermissionDeniedError.not_assigned(self.admin.admin_id, target_user_id)


class SuperAdminGate(AuthorizationGate):
    """Universal assignment set."""

    def allows(self, target_user_id: Optional[str]) -> bool:
        return True

    def visible_user_ids(self) -> Optional[FrozenSet[str]]:
        return None


class AssignedUsersGate(AuthorizationGate):
    """Membership in the admin's invitation lineage."""

    def __init__(self, admin: AdminIdentity, resolver: AssignmentResolver):
        super().__init__(admin)
        self._resolver = resolver

    def allows(self, target_user_id: Optional[str]) -> bool:
        if target_user_id is None:
            return False
        return target_user_id in self._resolver.resolve(self.admin.admin_id)

    def visible_user_ids(self) -> Optional[FrozenSet[str]]:
        return self._resolver.resolve(self.admin.admin_id)


# ============================================================
# ACCESS CONTROL
# ============================================================

class AccessControl:
    """Entry point combining the admin directory and the resolver."""

    def __init__(self, directory: AdminDirectory, resolver: AssignmentResolver):
        self.directory = directory
        self.resolver = resolver

    def authenticate(self, admin_id: str) -> AdminIdentity:
        """
        Raises:
            PermissionDeniedError: no active admin profile for this id
        """
        admin = self.directory.get_active_admin(admin_id)
        if admin is None:
            logger.warning(
                f"Authorization denied: admin={admin_id} reason={PermissionDeniedError.NOT_ADMIN}"
            )
            raise PermissionDeniedError.not_admin(admin_id)
        return admin

    def gate_for(self, admin: AdminIdentity) -> AuthorizationGate:
        if admin.is_super_admin:
            return SuperAdminGate(admin)
        return AssignedUsersGate(admin, self.resolver)

    def check(self, admin_id: str, target_user_id: str) -> bool:
        """Allow or deny without raising; unknown or inactive admins are denied."""
        admin = self.directory.get_active_admin(admin_id)
        if admin is None:
            return False
        return self.gate_for(admin).allows(target_user_id)


__all__ = [
    "AuthorizationGate",
    "SuperAdminGate",
    "AssignedUsersGate",
    "AccessControl",
]
