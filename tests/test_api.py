"""
API tests for the user, group, expense and settlement routes.
"""
from decimal import Decimal

import pytest

from groupsplit.api.v1.routes import group as group_routes
from groupsplit.api.v1.routes import settlement as settlement_routes
from groupsplit.core.exceptions import StorageError, ValidationError
from groupsplit.core.jwt_config import create_access_token
from tests.conftest import auth_headers


@pytest.fixture
async def trip(client, alice, bob, carol):
    """Group 'Trip' created by Alice with Bob and Carol added through the API."""
    resp = await client.post("/api/v1/groups/", json={"name": "Trip"}, headers=auth_headers(alice))
    assert resp.status_code == 201
    group = resp.json()
    for member in (bob, carol):
        resp = await client.post(f"/api/v1/groups/{group['id']}/add/{member.id}", headers=auth_headers(alice))
        assert resp.status_code == 201
    return group


async def post_expense(client, payer, group_id, amount, shares):
    return await client.post(
        "/api/v1/expense/",
        json={
            "group_id": group_id,
            "amount": amount,
            "description": "shared",
            "splits": [{"user_id": u.id, "amount": a} for u, a in shares],
        },
        headers=auth_headers(payer),
    )


# =============================================================================
# Users
# =============================================================================

class TestUsers:

    async def test_register_login_me(self, client):
        resp = await client.post(
            "/api/v1/users/register",
            json={"name": "Dana", "email": "dana@example.com", "password": "s3cret-pass"},
        )
        assert resp.status_code == 201
        assert "password_hash" not in resp.json()

        resp = await client.post(
            "/api/v1/users/login",
            json={"email": "dana@example.com", "password": "s3cret-pass"},
        )
        assert resp.status_code == 200
        token = resp.cookies["access_token"]

        resp = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["email"] == "dana@example.com"

    async def test_duplicate_email_rejected(self, client, alice):
        resp = await client.post(
            "/api/v1/users/register",
            json={"name": "Alice", "email": "alice@example.com", "password": "another-pass"},
        )

        assert resp.status_code == 400

    async def test_wrong_password(self, client, alice):
        resp = await client.post(
            "/api/v1/users/login",
            json={"email": "alice@example.com", "password": "wrong-password"},
        )

        assert resp.status_code == 401

    async def test_requires_token(self, client):
        resp = await client.get("/api/v1/users/me")

        assert resp.status_code == 401

    async def test_rejects_garbage_token(self, client):
        resp = await client.get("/api/v1/users/me", headers={"Authorization": "Bearer not.a.token"})

        assert resp.status_code == 401

    async def login(self, client, email="dana@example.com", password="s3cret-pass"):
        await client.post(
            "/api/v1/users/register",
            json={"name": "Dana", "email": email, "password": password},
        )
        resp = await client.post("/api/v1/users/login", json={"email": email, "password": password})
        assert resp.status_code == 200
        return resp.cookies["access_token"], resp.cookies["refresh_token"]

    async def test_refresh_rotates_tokens(self, client):
        _, old_refresh = await self.login(client)
        client.cookies.clear()
        client.cookies.set("refresh_token", old_refresh)

        resp = await client.post("/api/v1/users/refresh")

        assert resp.status_code == 200
        assert resp.json()["email"] == "dana@example.com"
        new_access = resp.cookies["access_token"]
        assert resp.cookies["refresh_token"] != old_refresh

        client.cookies.clear()
        resp = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {new_access}"})
        assert resp.status_code == 200

    async def test_rotated_refresh_token_is_rejected(self, client):
        _, old_refresh = await self.login(client)
        client.cookies.clear()
        client.cookies.set("refresh_token", old_refresh)
        assert (await client.post("/api/v1/users/refresh")).status_code == 200

        client.cookies.clear()
        client.cookies.set("refresh_token", old_refresh)
        resp = await client.post("/api/v1/users/refresh")

        assert resp.status_code == 401

    async def test_refresh_needs_cookie(self, client):
        resp = await client.post("/api/v1/users/refresh")

        assert resp.status_code == 401

    async def test_access_token_cannot_refresh(self, client, alice):
        client.cookies.set("refresh_token", create_access_token({"sub": str(alice.id)}))

        resp = await client.post("/api/v1/users/refresh")

        assert resp.status_code == 401

    async def test_logout_revokes_refresh_token(self, client):
        access, old_refresh = await self.login(client)
        client.cookies.clear()

        resp = await client.post("/api/v1/users/logout", headers={"Authorization": f"Bearer {access}"})
        assert resp.status_code == 200

        client.cookies.clear()
        client.cookies.set("refresh_token", old_refresh)
        resp = await client.post("/api/v1/users/refresh")

        assert resp.status_code == 401


# =============================================================================
# Groups
# =============================================================================

class TestGroups:

    async def test_members_listed(self, client, trip, alice):
        resp = await client.get(f"/api/v1/groups/{trip['id']}/group-members", headers=auth_headers(alice))

        assert resp.status_code == 200
        assert [m["name"] for m in resp.json()] == ["Alice", "Bob", "Carol"]

    async def test_only_admin_adds_members(self, client, trip, bob, make_user):
        dana = await make_user("Dana")

        resp = await client.post(f"/api/v1/groups/{trip['id']}/add/{dana.id}", headers=auth_headers(bob))

        assert resp.status_code == 403

    async def test_add_existing_member(self, client, trip, alice, bob):
        resp = await client.post(f"/api/v1/groups/{trip['id']}/add/{bob.id}", headers=auth_headers(alice))

        assert resp.status_code == 400

    async def test_non_member_cannot_read(self, client, trip, make_user):
        outsider = await make_user("Eve")

        resp = await client.get(f"/api/v1/groups/{trip['id']}/settlements", headers=auth_headers(outsider))

        assert resp.status_code == 403

    async def test_member_exit_and_admin_cannot(self, client, trip, alice, carol):
        resp = await client.delete(f"/api/v1/groups/{trip['id']}/exit", headers=auth_headers(carol))
        assert resp.status_code == 200

        resp = await client.delete(f"/api/v1/groups/{trip['id']}/exit", headers=auth_headers(alice))
        assert resp.status_code == 400

    async def test_delete_group_with_ledger(self, client, trip, alice, bob):
        await post_expense(client, alice, trip["id"], "30.00", [(alice, "15.00"), (bob, "15.00")])

        resp = await client.delete(f"/api/v1/groups/{trip['id']}", headers=auth_headers(alice))
        assert resp.status_code == 200

        resp = await client.get(f"/api/v1/groups/{trip['id']}", headers=auth_headers(alice))
        assert resp.status_code == 404


# =============================================================================
# Expenses and settlements
# =============================================================================

class TestSettlementFlow:

    async def test_expense_creates_pending_settlements(self, client, trip, alice, bob, carol):
        resp = await post_expense(client, alice, trip["id"], "60.00", [(alice, "20.00"), (bob, "20.00"), (carol, "20.00")])
        assert resp.status_code == 201
        assert resp.json()["amount"] == "60.00"

        resp = await client.get(f"/api/v1/groups/{trip['id']}/settlements?status=PENDING", headers=auth_headers(bob))
        rows = resp.json()

        assert resp.status_code == 200
        assert sorted((r["from_user_id"], r["to_user_id"], Decimal(r["amount"])) for r in rows) == [
            (bob.id, alice.id, Decimal("20")),
            (carol.id, alice.id, Decimal("20")),
        ]

    async def test_invalid_split_sum_rejected(self, client, trip, alice, bob):
        resp = await post_expense(client, alice, trip["id"], "30.00", [(alice, "15.00"), (bob, "10.00")])

        assert resp.status_code == 400

    async def test_split_with_non_member_rejected(self, client, trip, alice, make_user):
        outsider = await make_user("Eve")

        resp = await post_expense(client, alice, trip["id"], "30.00", [(alice, "15.00"), (outsider, "15.00")])

        assert resp.status_code == 400

    async def test_float_like_amounts_need_two_decimals(self, client, trip, alice, bob):
        resp = await post_expense(client, alice, trip["id"], "30.005", [(alice, "15.005"), (bob, "15.00")])

        assert resp.status_code == 422

    async def test_summary_and_mark_paid(self, client, trip, alice, bob):
        await post_expense(client, alice, trip["id"], "30.00", [(alice, "15.00"), (bob, "15.00")])

        resp = await client.get(f"/api/v1/settlements/summary?group_id={trip['id']}", headers=auth_headers(bob))
        summary = resp.json()
        assert resp.status_code == 200
        assert Decimal(summary["total_owing"]) == Decimal("15")
        assert Decimal(summary["net_balance"]) == Decimal("-15")
        settlement_id = summary["settlements"][0]["id"]

        resp = await client.patch(f"/api/v1/settlements/{settlement_id}/paid", headers=auth_headers(alice))
        assert resp.status_code == 403

        resp = await client.patch(f"/api/v1/settlements/{settlement_id}/paid", headers=auth_headers(bob))
        assert resp.status_code == 200
        assert resp.json()["status"] == "PAID"

        resp = await client.get("/api/v1/settlements/summary", headers=auth_headers(alice))
        assert Decimal(resp.json()["net_balance"]) == Decimal("0")

        resp = await client.get(f"/api/v1/settlements/{settlement_id}", headers=auth_headers(alice))
        assert resp.json()["status"] == "PAID"

    async def test_edit_and_delete_expense(self, client, trip, alice, bob, carol):
        resp = await post_expense(client, alice, trip["id"], "30.00", [(alice, "15.00"), (bob, "15.00")])
        expense_id = resp.json()["id"]

        resp = await client.patch(
            f"/api/v1/expense/{expense_id}",
            json={"amount": "30.00", "splits": [{"user_id": alice.id, "amount": "10.00"}, {"user_id": carol.id, "amount": "20.00"}]},
            headers=auth_headers(bob),
        )
        assert resp.status_code == 403

        resp = await client.patch(
            f"/api/v1/expense/{expense_id}",
            json={"amount": "30.00", "splits": [{"user_id": alice.id, "amount": "10.00"}, {"user_id": carol.id, "amount": "20.00"}]},
            headers=auth_headers(alice),
        )
        assert resp.status_code == 200

        resp = await client.get(f"/api/v1/groups/{trip['id']}/balances", headers=auth_headers(carol))
        assert {int(k): Decimal(v) for k, v in resp.json()["net"].items()} == {alice.id: Decimal("20"), carol.id: Decimal("-20")}

        resp = await client.delete(f"/api/v1/expense/{expense_id}", headers=auth_headers(alice))
        assert resp.status_code == 200

        resp = await client.get(f"/api/v1/groups/{trip['id']}/settlements", headers=auth_headers(alice))
        assert resp.json() == []

    async def test_expense_detail_requires_membership(self, client, trip, alice, bob, make_user):
        resp = await post_expense(client, alice, trip["id"], "30.00", [(alice, "15.00"), (bob, "15.00")])
        expense_id = resp.json()["id"]
        outsider = await make_user("Eve")

        resp = await client.get(f"/api/v1/expense/{expense_id}", headers=auth_headers(bob))
        assert resp.status_code == 200
        assert resp.json()["paid_by"] == {"id": alice.id, "name": "Alice"}

        resp = await client.get(f"/api/v1/expense/{expense_id}", headers=auth_headers(outsider))
        assert resp.status_code == 403

    async def test_recorded_payment(self, client, trip, alice, bob, carol):
        await post_expense(client, alice, trip["id"], "60.00", [(alice, "20.00"), (bob, "20.00"), (carol, "20.00")])

        resp = await client.post(
            f"/api/v1/groups/{trip['id']}/settlements/payments",
            json={"to_user_id": alice.id, "amount": "20.00"},
            headers=auth_headers(carol),
        )
        assert resp.status_code == 201
        assert resp.json()["status"] == "PAID"

        resp = await client.get(f"/api/v1/groups/{trip['id']}/settlements?status=PENDING", headers=auth_headers(alice))
        assert [(r["from_user_id"], r["to_user_id"]) for r in resp.json()] == [(bob.id, alice.id)]

    async def test_manual_recompute(self, client, trip, alice, bob):
        await post_expense(client, alice, trip["id"], "30.00", [(alice, "15.00"), (bob, "15.00")])

        resp = await client.post(f"/api/v1/groups/{trip['id']}/settlements/recompute", headers=auth_headers(bob))

        assert resp.status_code == 200
        assert [(r["from_user_id"], r["to_user_id"], r["status"]) for r in resp.json()] == [(bob.id, alice.id, "PENDING")]

    async def test_manual_recompute_storage_failure(self, client, trip, alice, monkeypatch):
        async def broken(db, group_id):
            raise StorageError("connection lost", group_id)

        monkeypatch.setattr(group_routes, "recompute_settlements", broken)

        resp = await client.post(f"/api/v1/groups/{trip['id']}/settlements/recompute", headers=auth_headers(alice))

        assert resp.status_code == 503

    async def test_validation_error_maps_to_400(self, client, alice, monkeypatch):
        async def reject(db, user_id, group_id=None):
            raise ValidationError("Invalid user_id")

        monkeypatch.setattr(settlement_routes, "get_user_settlement_summary", reject)

        resp = await client.get("/api/v1/settlements/summary", headers=auth_headers(alice))

        assert resp.status_code == 400
