"""
Tests for the Decision API endpoints.

Tests cover:
- Check order: credential, admin, assignment, state
- Error mapping (401 / 403 / 400 / 500) and messages
- Decision endpoints never move money
- Visible trades listing
"""

import pytest
from datetime import datetime
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import select

from admin_access.identity import JwtTokenVerifier
from database.models import BalanceTransaction
from decision_api.main import create_app


@pytest.fixture
def app(config, session_factory, clock, rng):
    return create_app(config, session_factory, clock, rng)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth(config):
    verifier = JwtTokenVerifier.from_config(config.access)

    def _headers(admin_id):
        return {"Authorization": f"Bearer {verifier.issue(admin_id)}"}

    return _headers


@pytest.fixture
def world(add_admin, add_invite_code, add_user, add_trade):
    """admin-a owns user-u through CODEA; admin-b and admin-empty own nobody."""
    add_admin("admin-a")
    add_admin("admin-b")
    add_admin("admin-empty")
    add_admin("root", role="super_admin")
    add_invite_code("CODEB", created_by="admin-b")
    code_id = add_invite_code("CODEA", created_by="admin-a")
    add_user("user-u", invite_code_id=code_id)
    return {
        "trade": add_trade(user_id="user-u"),
        "other_trade": add_trade(user_id="user-z"),
    }


# =============================================================
# TEST: Happy path
# =============================================================

class TestSetDecisionEndpoints:

    def test_assigned_admin_sets_win(self, client, auth, world, clock):
        response = client.post(
            "/set-trade-win", json={"tradeId": world["trade"]}, headers=auth("admin-a")
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["id"] == world["trade"]
        assert body["data"]["status"] == "pending"
        assert body["data"]["decision"] == "win"

        execute_at = datetime.fromisoformat(body["data"]["execute_at"])
        delay = (execute_at - clock.naive_now()).total_seconds()
        assert 180 <= delay <= 299

    def test_super_admin_sets_loss_on_any_trade(self, client, auth, world):
        response = client.post(
            "/set-trade-loss", json={"tradeId": world["other_trade"]}, headers=auth("root")
        )

        assert response.status_code == 200
        assert response.json()["data"]["decision"] == "lose"

    def test_decision_never_moves_money(self, client, auth, world, session_factory, load_trade):
        client.post("/set-trade-win", json={"tradeId": world["trade"]}, headers=auth("admin-a"))

        with session_factory() as session:
            assert session.scalars(select(BalanceTransaction)).first() is None
        trade = load_trade(world["trade"])
        assert trade.status == "pending"
        assert trade.profit_loss_amount is None


# =============================================================
# TEST: Errors
# =============================================================

class TestErrors:

    def test_missing_credential_is_401(self, client, world):
        response = client.post("/set-trade-win", json={"tradeId": world["trade"]})

        assert response.status_code == 401
        assert response.json()["error"].startswith("Unauthorized")

    def test_bad_credential_is_401(self, client, world):
        response = client.post(
            "/set-trade-win",
            json={"tradeId": world["trade"]},
            headers={"Authorization": "Bearer not-a-token"},
        )
        assert response.status_code == 401

    def test_non_admin_is_403(self, client, auth, world):
        response = client.post(
            "/set-trade-win", json={"tradeId": world["trade"]}, headers=auth("user-u")
        )

        assert response.status_code == 403
        assert response.json() == {"error": "Access denied: Not an admin"}

    def test_unassigned_admin_is_403(self, client, auth, world, load_trade):
        response = client.post(
            "/set-trade-win", json={"tradeId": world["trade"]}, headers=auth("admin-b")
        )

        assert response.status_code == 403
        assert response.json() == {
            "error": "Access denied: You can only manage trades from your assigned users"
        }
        assert load_trade(world["trade"]).decision is None

    def test_admin_without_codes_denied_everywhere(self, client, auth, world):
        for trade_id in (world["trade"], world["other_trade"]):
            response = client.post(
                "/set-trade-loss", json={"tradeId": trade_id}, headers=auth("admin-empty")
            )
            assert response.status_code == 403

    def test_second_decision_is_400(self, client, auth, world):
        client.post("/set-trade-win", json={"tradeId": world["trade"]}, headers=auth("admin-a"))

        response = client.post(
            "/set-trade-loss", json={"tradeId": world["trade"]}, headers=auth("admin-a")
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Trade not updated. It may no longer be pending."}

    def test_unknown_trade_is_400(self, client, auth, world):
        response = client.post(
            "/set-trade-win", json={"tradeId": "no-such-trade"}, headers=auth("root")
        )
        assert response.status_code == 400

    def test_unknown_trade_looks_unassigned_to_regular_admin(self, client, auth, world):
        missing = client.post(
            "/set-trade-win", json={"tradeId": "no-such-trade"}, headers=auth("admin-b")
        )
        foreign = client.post(
            "/set-trade-win", json={"tradeId": world["trade"]}, headers=auth("admin-b")
        )

        assert missing.status_code == foreign.status_code == 403
        assert missing.json() == foreign.json()

    def test_missing_trade_id_is_400(self, client, auth, world):
        response = client.post("/set-trade-win", json={}, headers=auth("root"))

        assert response.status_code == 400
        assert response.json() == {"error": "Trade ID is required"}

    def test_unexpected_failure_is_500(self, app, auth, world):
        client = TestClient(app, raise_server_exceptions=False)

        with patch.object(
            app.state.settlement.state_machine, "set_decision", side_effect=RuntimeError("db exploded")
        ):
            response = client.post(
                "/set-trade-win", json={"tradeId": world["trade"]}, headers=auth("admin-a")
            )

        assert response.status_code == 500
        assert response.json() == {"error": "db exploded"}


# =============================================================
# TEST: Listing
# =============================================================

class TestListTrades:

    def test_super_admin_sees_everything(self, client, auth, world):
        response = client.get("/trades", headers=auth("root"))

        assert response.status_code == 200
        assert response.json()["count"] == 2

    def test_regular_admin_sees_assigned_users_only(self, client, auth, world):
        body = client.get("/trades", headers=auth("admin-a")).json()

        assert [t["id"] for t in body["trades"]] == [world["trade"]]

    def test_admin_without_assignments_sees_nothing(self, client, auth, world):
        body = client.get("/trades", headers=auth("admin-empty")).json()

        assert body == {"trades": [], "count": 0}

    def test_status_filter(self, client, auth, world, add_trade):
        add_trade(user_id="user-u", status="win", result="win")

        body = client.get("/trades?status=win", headers=auth("root")).json()

        assert body["count"] == 1
        assert body["trades"][0]["status"] == "win"
