"""
Tests for access endpoints.
"""

import pytest
from fastapi import HTTPException
from httpx import AsyncClient

from roster_access.api.dependencies.access import require_all_capabilities, require_any_capability
from roster_access.core.access.scope import (
    BasisType,
    BooleanGrant,
    GrantsSnapshot,
    Scope,
    ScopedGrant,
    ScopedGrants,
)
from tests.conftest import auth_headers


@pytest.mark.asyncio
async def test_requires_token(client: AsyncClient):
    response = await client.get("/api/access/me")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_rejects_bad_token(client: AsyncClient):
    response = await client.get(
        "/api/access/me",
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_unknown_identity(client: AsyncClient):
    response = await client.get("/api/access/me", headers=auth_headers("ghost"))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_me_returns_grants(client: AsyncClient, org, sq12):
    manage = await org.capability("manage_roster")
    await org.capability("manage_permissions", scoped=False)
    await org.rule(manage, BasisType.UNIT, sq12.id, Scope.OWN_UNIT)
    alice = await org.person("Alice", unit=sq12, identity="alice")
    alice_id, sq12_id = str(alice.id), str(sq12.id)

    response = await client.get("/api/access/me", headers=auth_headers("alice"))

    assert response.status_code == 200
    data = response.json()
    assert data["person_id"] == alice_id
    assert data["unit_id"] == sq12_id
    assert data["grants"]["manage_permissions"] is False
    assert data["grants"]["manage_roster"] == [{"scope": "own_unit", "anchor": sq12_id}]
    assert {b["type"] for b in data["bases"]} >= {"unit", "parent_unit", "authenticated_user"}


@pytest.mark.asyncio
async def test_check_in_unit_context(client: AsyncClient, org, sq12, sq14):
    manage = await org.capability("manage_roster")
    await org.rule(manage, BasisType.UNIT, sq12.id, Scope.OWN_UNIT)
    await org.person("Alice", unit=sq12, identity="alice")
    sq12_id, sq14_id = str(sq12.id), str(sq14.id)
    headers = auth_headers("alice")

    own = await client.post(
        "/api/access/check",
        json={"capability": "manage_roster", "context": {"unit_id": sq12_id}},
        headers=headers,
    )
    other = await client.post(
        "/api/access/check",
        json={"capability": "manage_roster", "context": {"unit_id": sq14_id}},
        headers=headers,
    )
    anywhere = await client.post(
        "/api/access/check",
        json={"capability": "manage_roster"},
        headers=headers,
    )

    assert own.json() == {"capability": "manage_roster", "allowed": True}
    assert other.json()["allowed"] is False
    assert anywhere.json()["allowed"] is True


@pytest.mark.asyncio
async def test_check_many(client: AsyncClient, org, wing, sq14):
    manage = await org.capability("manage_roster")
    await org.capability("manage_permissions", scoped=False)
    await org.rule(manage, BasisType.PARENT_UNIT, wing.id, Scope.OWN_PARENT)
    await org.person("Alice", unit=sq14, identity="alice")
    wing_id = str(wing.id)

    response = await client.post(
        "/api/access/check-many",
        json={
            "capabilities": ["manage_roster", "manage_permissions", "unknown"],
            "context": {"parent_unit_id": wing_id},
        },
        headers=auth_headers("alice"),
    )

    assert response.status_code == 200
    assert response.json()["results"] == {
        "manage_roster": True,
        "manage_permissions": False,
        "unknown": False,
    }


@pytest.mark.asyncio
async def test_unlinked_identity_is_denied_everything(client: AsyncClient, org):
    manage = await org.capability("manage_roster")
    await org.rule(manage, BasisType.AUTHENTICATED_USER, None, Scope.GLOBAL)

    response = await client.post(
        "/api/access/check",
        json={"capability": "manage_roster"},
        headers=auth_headers("ghost"),
    )

    assert response.status_code == 200
    assert response.json()["allowed"] is False


@pytest.mark.asyncio
async def test_rule_admin_requires_capability(client: AsyncClient, org, sq12):
    await org.capability("manage_permissions", scoped=False)
    await org.person("Alice", unit=sq12, identity="alice")

    response = await client.get("/api/access/rules", headers=auth_headers("alice"))

    assert response.status_code == 403
    assert response.json() == {"detail": "No access"}


@pytest.mark.asyncio
async def test_rule_admin_crud(client: AsyncClient, org, sq12):
    admin = await org.capability("manage_permissions", scoped=False)
    await org.capability("manage_roster")
    alice = await org.person("Alice", unit=sq12, identity="alice")
    await org.rule(admin, BasisType.MANUAL_OVERRIDE, alice.id)
    sq12_id = str(sq12.id)
    headers = auth_headers("alice")

    created = await client.post(
        "/api/access/rules",
        json={
            "capability": "manage_roster",
            "basis_type": "unit",
            "basis_id": sq12_id,
            "scope": "own_unit",
        },
        headers=headers,
    )
    assert created.status_code == 201
    rule = created.json()
    assert rule["capability"] == "manage_roster"

    check = await client.post(
        "/api/access/check",
        json={"capability": "manage_roster", "context": {"unit_id": sq12_id}},
        headers=headers,
    )
    assert check.json()["allowed"] is True

    updated = await client.patch(
        f"/api/access/rules/{rule['id']}",
        json={"active": False},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json()["active"] is False

    listed = await client.get("/api/access/rules?basis_type=unit", headers=headers)
    assert [r["id"] for r in listed.json()] == [rule["id"]]

    deleted = await client.delete(f"/api/access/rules/{rule['id']}", headers=headers)
    assert deleted.status_code == 204

    missing = await client.delete(f"/api/access/rules/{rule['id']}", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["error"] == "not_found"

    invalid = await client.post(
        "/api/access/rules",
        json={"capability": "manage_roster", "basis_type": "role"},
        headers=headers,
    )
    assert invalid.status_code == 422


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_check_takes_parent_from_unit_record(client: AsyncClient, org, wing, sq14):
    manage = await org.capability("manage_roster")
    await org.rule(manage, BasisType.PARENT_UNIT, wing.id, Scope.OWN_PARENT)
    await org.person("Alice", unit=sq14, identity="alice")
    wing_b = await org.wing("WING-B")
    sq99 = await org.squadron(wing_b, "SQ-99")
    wing_id, sq99_id = str(wing.id), str(sq99.id)
    headers = auth_headers("alice")

    foreign = await client.post(
        "/api/access/check",
        json={
            "capability": "manage_roster",
            "context": {"unit_id": sq99_id, "parent_unit_id": wing_id},
        },
        headers=headers,
    )
    own_wing = await client.post(
        "/api/access/check",
        json={"capability": "manage_roster", "context": {"parent_unit_id": wing_id}},
        headers=headers,
    )

    assert foreign.json()["allowed"] is False
    assert own_wing.json()["allowed"] is True


@pytest.mark.asyncio
async def test_require_all_capabilities():
    grants = GrantsSnapshot({
        "manage_permissions": BooleanGrant(True),
        "manage_roster": ScopedGrants.of(ScopedGrant(Scope.NONE)),
    })

    both = require_all_capabilities("manage_permissions", "manage_roster")
    with pytest.raises(HTTPException) as exc_info:
        await both(grants=grants)
    assert exc_info.value.status_code == 403
    assert exc_info.value.detail == "No access"

    one = require_all_capabilities("manage_permissions")
    assert await one(grants=grants) is grants


@pytest.mark.asyncio
async def test_require_any_capability():
    grants = GrantsSnapshot({
        "manage_permissions": BooleanGrant(False),
        "view_roster": ScopedGrants.of(ScopedGrant(Scope.GLOBAL)),
    })

    assert await require_any_capability("manage_permissions", "view_roster")(grants=grants) is grants
    with pytest.raises(HTTPException):
        await require_any_capability("manage_permissions", "manage_roster")(grants=grants)
