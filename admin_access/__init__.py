"""
Admin Access Package.

Restricts what an admin may touch to the users who registered
through that admin's invitation lineage.

Components:
- identity: bearer token verification and active-admin lookup
- resolver: one-hop assignment set with a short TTL cache
- gate: capability check used by every settlement action
- invite_codes: code redemption (the lineage edge)
"""

from .identity import AdminIdentity, AdminDirectory, JwtTokenVerifier
from .resolver import AssignmentResolver
from .gate import AuthorizationGate, SuperAdminGate, AssignedUsersGate, AccessControl
from .invite_codes import InviteCodeRegistry, normalize_code

__all__ = [
    "AdminIdentity",
    "AdminDirectory",
    "JwtTokenVerifier",
    "AssignmentResolver",
    "AuthorizationGate",
    "SuperAdminGate",
    "AssignedUsersGate",
    "AccessControl",
    "InviteCodeRegistry",
    "normalize_code",
]
