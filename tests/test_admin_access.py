"""
Tests for admin identity, assignment resolution and the authorization gate.

Tests cover:
- One-hop invitation lineage (profile edge, legacy edge, primary code)
- Default-deny for admins with no codes
- Cache TTL and invalidation
- Gate dispatch by role
- Token verification
- Invite code redemption
"""

import pytest
from datetime import timedelta

from sqlalchemy import select

from core.exceptions import PermissionDeniedError, UnauthorizedError
from admin_access.gate import AccessControl, AssignedUsersGate, SuperAdminGate
from admin_access.identity import AdminDirectory, JwtTokenVerifier
from admin_access.invite_codes import InviteCodeRegistry
from admin_access.resolver import AssignmentResolver
from database.models import InviteCode


@pytest.fixture
def resolver(session_factory, clock):
    return AssignmentResolver(session_factory, clock=clock, ttl_seconds=10)


@pytest.fixture
def access(session_factory, resolver):
    return AccessControl(AdminDirectory(session_factory), resolver)


@pytest.fixture
def lineage(add_admin, add_invite_code, add_user):
    """admin-a created CODEA, redeemed by user-u; admin-b has nothing."""
    add_admin("admin-a")
    add_admin("admin-b")
    code_id = add_invite_code("CODEA", created_by="admin-a")
    add_user("user-u", invite_code_id=code_id)
    return code_id


# =============================================================
# TEST: Assignment resolver
# =============================================================

class TestAssignmentResolver:

    def test_redeemed_user_is_assigned(self, resolver, lineage):
        assert "user-u" in resolver.resolve("admin-a")

    def test_other_admin_excludes_user(self, resolver, lineage):
        assert "user-u" not in resolver.resolve("admin-b")

    def test_admin_without_codes_resolves_empty(self, resolver, add_admin):
        add_admin("admin-empty")
        assert resolver.resolve("admin-empty") == frozenset()

    def test_legacy_used_by_edge(self, resolver, add_admin, add_invite_code):
        add_admin("admin-a")
        add_invite_code("LEGACY1", created_by="admin-a", used_by="user-legacy")

        assert resolver.resolve("admin-a") == frozenset({"user-legacy"})

    def test_primary_invite_code_counts(self, resolver, add_admin, add_invite_code, add_user):
        add_admin("admin-p", primary_invite_code="shared1")
        code_id = add_invite_code("SHARED1", created_by="someone-else")
        add_user("user-s", invite_code_id=code_id)

        assert "user-s" in resolver.resolve("admin-p")

    def test_one_hop_only(self, resolver, lineage, add_admin, add_invite_code, add_user):
        # user-u is also an admin who invited user-w; admin-a must not see user-w
        add_admin("user-u")
        code_id = add_invite_code("CODEU", created_by="user-u")
        add_user("user-w", invite_code_id=code_id)

        assert resolver.resolve("admin-a") == frozenset({"user-u"})

    def test_cached_within_ttl(self, resolver, lineage, add_user, clock):
        resolver.resolve("admin-a")
        add_user("user-late", invite_code_id=lineage)

        clock.advance(seconds=5)
        assert "user-late" not in resolver.resolve("admin-a")

        clock.advance(seconds=6)
        assert "user-late" in resolver.resolve("admin-a")

    def test_invalidate(self, resolver, lineage, add_user):
        resolver.resolve("admin-a")
        add_user("user-late", invite_code_id=lineage)

        resolver.invalidate("admin-a")

        assert "user-late" in resolver.resolve("admin-a")


# =============================================================
# TEST: Authorization gate
# =============================================================

class TestAccessControl:

    def test_super_admin_gets_universal_gate(self, access, add_admin):
        add_admin("root", role="super_admin")

        admin = access.authenticate("root")
        gate = access.gate_for(admin)

        assert isinstance(gate, SuperAdminGate)
        assert gate.allows("anyone")
        assert gate.visible_user_ids() is None

    def test_regular_admin_gets_assignment_gate(self, access, lineage):
        gate = access.gate_for(access.authenticate("admin-a"))

        assert isinstance(gate, AssignedUsersGate)
        assert gate.allows("user-u")
        assert not gate.allows("user-x")

    def test_require_names_the_cause(self, access, lineage):
        gate = access.gate_for(access.authenticate("admin-b"))

        with pytest.raises(PermissionDeniedError) as exc_info:
            gate.require("user-u")

        assert exc_info.value.reason == PermissionDeniedError.NOT_ASSIGNED
        assert "assigned users" in exc_info.value.message

    def test_unknown_admin_is_not_admin(self, access):
        with pytest.raises(PermissionDeniedError) as exc_info:
            access.authenticate("stranger")

        assert exc_info.value.reason == PermissionDeniedError.NOT_ADMIN
        assert exc_info.value.message == "Access denied: Not an admin"

    def test_inactive_admin_is_not_admin(self, access, add_admin):
        add_admin("retired", role="super_admin", is_active=False)

        with pytest.raises(PermissionDeniedError):
            access.authenticate("retired")

    def test_check(self, access, lineage, add_admin):
        add_admin("root", role="super_admin")

        assert access.check("admin-a", "user-u") is True
        assert access.check("admin-b", "user-u") is False
        assert access.check("root", "user-u") is True
        assert access.check("stranger", "user-u") is False


# =============================================================
# TEST: Token verification
# =============================================================

class TestJwtTokenVerifier:

    def test_round_trip(self):
        verifier = JwtTokenVerifier("secret")
        assert verifier.verify(verifier.issue("admin-a")) == "admin-a"

    def test_missing_token(self):
        with pytest.raises(UnauthorizedError):
            JwtTokenVerifier("secret").verify(None)

    def test_wrong_secret(self):
        token = JwtTokenVerifier("other").issue("admin-a")
        with pytest.raises(UnauthorizedError):
            JwtTokenVerifier("secret").verify(token)

    def test_expired(self):
        verifier = JwtTokenVerifier("secret")
        token = verifier.issue("admin-a", ttl_seconds=-10)
        with pytest.raises(UnauthorizedError):
            verifier.verify(token)

    def test_audience_enforced(self):
        token = JwtTokenVerifier("secret", audience="console").issue("admin-a")

        assert JwtTokenVerifier("secret", audience="console").verify(token) == "admin-a"
        with pytest.raises(UnauthorizedError):
            JwtTokenVerifier("secret", audience="mobile").verify(token)

    def test_unconfigured_secret_rejects(self):
        with pytest.raises(UnauthorizedError):
            JwtTokenVerifier(None).verify("anything")


# =============================================================
# TEST: Invite code redemption
# =============================================================

class TestInviteCodeRegistry:

    @pytest.fixture
    def registry(self, session_factory, clock):
        return InviteCodeRegistry(session_factory, clock=clock)

    def test_redeem_links_user_to_admin(self, registry, resolver, add_admin, add_invite_code):
        add_admin("admin-a")
        add_invite_code("WELCOME", created_by="admin-a")

        assert registry.redeem("  welcome ", "user-new") is True
        assert "user-new" in resolver.resolve("admin-a")

    def test_usage_cap(self, registry, add_invite_code):
        add_invite_code("ONCE", created_by="admin-a", max_uses=1)

        assert registry.redeem("ONCE", "user-1") is True
        assert registry.redeem("ONCE", "user-2") is False

    def test_expired_code(self, registry, add_invite_code, clock):
        add_invite_code("OLD", created_by="admin-a", expires_at=clock.naive_now() - timedelta(days=1))
        assert registry.redeem("OLD", "user-1") is False

    def test_inactive_code(self, registry, add_invite_code):
        add_invite_code("OFF", created_by="admin-a", is_active=False)
        assert registry.redeem("OFF", "user-1") is False

    def test_unknown_or_blank_code(self, registry):
        assert registry.redeem("NOPE", "user-1") is False
        assert registry.redeem("   ", "user-1") is False

    def test_registered_user_cannot_switch_lineage(self, registry, resolver, session_factory,
                                                   add_admin, add_invite_code):
        add_admin("admin-a")
        add_admin("admin-b")
        add_invite_code("CODEA", created_by="admin-a")
        add_invite_code("CODEB", created_by="admin-b")

        assert registry.redeem("CODEA", "user-u") is True
        assert registry.redeem("CODEB", "user-u") is False

        assert "user-u" in resolver.resolve("admin-a")
        assert "user-u" not in resolver.resolve("admin-b")
        with session_factory() as session:
            codeb = session.scalars(select(InviteCode).where(InviteCode.code == "CODEB")).one()
            assert codeb.current_uses == 0
