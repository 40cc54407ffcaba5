"""
Tests for roster endpoints.
"""

import pytest
import pytest_asyncio
from httpx import AsyncClient

from roster_access.core.access.scope import BasisType, ExclusivityScope, Scope
from tests.conftest import auth_headers


@pytest_asyncio.fixture
async def squadron(org, sq12, sq14):
    """SQ-12 with a commanding officer, a pilot and a roster clerk; SQ-14 with Dave."""
    manage = await org.capability("manage_roster")
    await org.rule(manage, BasisType.UNIT, sq12.id, Scope.OWN_UNIT)

    co = await org.role("Commanding Officer")
    wingman = await org.role("Wingman", exclusivity=ExclusivityScope.NONE)
    alice = await org.person("Alice", unit=sq12)
    bob = await org.person("Bob", unit=sq12)
    dave = await org.person("Dave", unit=sq14)
    await org.person("Clerk", unit=sq12, identity="clerk")
    incumbent = await org.assign(alice, co, unit=sq12)

    return {
        "co": str(co.id),
        "wingman": str(wingman.id),
        "alice": str(alice.id),
        "bob": str(bob.id),
        "dave": str(dave.id),
        "incumbent": str(incumbent.id),
        "sq12": str(sq12.id),
        "sq14": str(sq14.id),
    }


@pytest.mark.asyncio
async def test_assign_without_conflict(client: AsyncClient, squadron):
    headers = auth_headers("clerk")

    response = await client.post(
        f"/api/roster/people/{squadron['bob']}/roles",
        json={"role_id": squadron["wingman"]},
        headers=headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["state"] == "idle"
    assert data["role_assignment"]["role_id"] == squadron["wingman"]
    assert data["attempt"] is None

    again = await client.post(
        f"/api/roster/people/{squadron['bob']}/roles",
        json={"role_id": squadron["wingman"]},
        headers=headers,
    )
    assert again.status_code == 200
    assert again.json()["role_assignment"]["id"] == data["role_assignment"]["id"]


@pytest.mark.asyncio
async def test_conflict_then_replace(client: AsyncClient, squadron):
    headers = auth_headers("clerk")

    detected = await client.post(
        f"/api/roster/people/{squadron['bob']}/roles",
        json={"role_id": squadron["co"]},
        headers=headers,
    )

    assert detected.status_code == 409
    body = detected.json()
    assert body["state"] == "detected"
    assert body["message"] == "Alice currently holds Commanding Officer"
    conflict = body["attempt"]["conflict"]
    assert conflict["incumbent"]["person_id"] == squadron["alice"]
    assert body["role_assignment"] is None

    resolved = await client.post(
        "/api/roster/arbitrations/resolve",
        json={"attempt": body["attempt"], "decision": "replace_incumbent"},
        headers=headers,
    )

    assert resolved.status_code == 200
    data = resolved.json()
    assert data["state"] == "incumbent_replaced"
    assert data["role_assignment"]["person_id"] == squadron["bob"]
    assert [a["id"] for a in data["ended_assignments"]] == [squadron["incumbent"]]
    assert data["ended_assignments"][0]["end_date"] is not None


@pytest.mark.asyncio
async def test_accept_duplicate(client: AsyncClient, squadron):
    headers = auth_headers("clerk")
    detected = await client.post(
        f"/api/roster/people/{squadron['bob']}/roles",
        json={"role_id": squadron["co"]},
        headers=headers,
    )

    resolved = await client.post(
        "/api/roster/arbitrations/resolve",
        json={"attempt": detected.json()["attempt"], "decision": "accept_duplicate"},
        headers=headers,
    )

    data = resolved.json()
    assert data["state"] == "duplicate_accepted"
    assert data["role_assignment"]["accepted_duplicate"] is True
    assert data["ended_assignments"] == []


@pytest.mark.asyncio
async def test_cancel_closes_attempt(client: AsyncClient, squadron):
    headers = auth_headers("clerk")
    detected = await client.post(
        f"/api/roster/people/{squadron['bob']}/roles",
        json={"role_id": squadron["co"]},
        headers=headers,
    )

    cancelled = await client.post(
        "/api/roster/arbitrations/resolve",
        json={"attempt": detected.json()["attempt"], "decision": "cancel"},
        headers=headers,
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["state"] == "cancelled"
    assert cancelled.json()["role_assignment"] is None

    closed = await client.post(
        "/api/roster/arbitrations/resolve",
        json={"attempt": cancelled.json()["attempt"], "decision": "replace_incumbent"},
        headers=headers,
    )
    assert closed.status_code == 409
    assert closed.json()["error"] == "attempt_not_pending"


@pytest.mark.asyncio
async def test_other_squadron_is_denied(client: AsyncClient, squadron):
    response = await client.post(
        f"/api/roster/people/{squadron['dave']}/roles",
        json={"role_id": squadron["wingman"]},
        headers=auth_headers("clerk"),
    )

    assert response.status_code == 403
    assert response.json() == {"detail": "No access"}


@pytest.mark.asyncio
async def test_transfer_authorized_on_destination(client: AsyncClient, squadron):
    headers = auth_headers("clerk")

    outbound = await client.post(
        f"/api/roster/people/{squadron['bob']}/transfer",
        json={"unit_id": squadron["sq14"]},
        headers=headers,
    )
    assert outbound.status_code == 403

    inbound = await client.post(
        f"/api/roster/people/{squadron['dave']}/transfer",
        json={"unit_id": squadron["sq12"]},
        headers=headers,
    )
    assert inbound.status_code == 200
    data = inbound.json()
    assert data["state"] == "idle"
    assert data["unit_assignment"]["unit_id"] == squadron["sq12"]


@pytest.mark.asyncio
async def test_end_role(client: AsyncClient, squadron):
    response = await client.delete(
        f"/api/roster/people/{squadron['alice']}/roles/{squadron['co']}",
        headers=auth_headers("clerk"),
    )

    assert response.status_code == 200
    ended = response.json()
    assert [a["id"] for a in ended] == [squadron["incumbent"]]
    assert ended[0]["end_date"] is not None


@pytest.mark.asyncio
async def test_unknown_role(client: AsyncClient, squadron):
    response = await client.post(
        f"/api/roster/people/{squadron['bob']}/roles",
        json={"role_id": squadron["sq12"]},
        headers=auth_headers("clerk"),
    )

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_requires_token(client: AsyncClient, squadron):
    response = await client.delete(
        f"/api/roster/people/{squadron['alice']}/roles/{squadron['co']}",
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_list_holders_accepts_either_capability(client: AsyncClient, org, sq12, squadron):
    view = await org.capability("view_roster")
    viewer = await org.person("Viewer", unit=sq12, identity="viewer")
    await org.rule(view, BasisType.MANUAL_OVERRIDE, viewer.id, Scope.OWN_UNIT)
    await org.person("Outsider", identity="outsider")
    url = f"/api/roster/roles/{squadron['co']}/holders"

    by_clerk = await client.get(url, params={"unit_id": squadron["sq12"]}, headers=auth_headers("clerk"))
    by_viewer = await client.get(url, params={"unit_id": squadron["sq12"]}, headers=auth_headers("viewer"))
    elsewhere = await client.get(url, params={"unit_id": squadron["sq14"]}, headers=auth_headers("viewer"))
    outsider = await client.get(url, params={"unit_id": squadron["sq12"]}, headers=auth_headers("outsider"))

    assert by_clerk.status_code == 200
    assert [h["person_id"] for h in by_clerk.json()] == [squadron["alice"]]
    assert by_viewer.status_code == 200
    assert by_viewer.json() == by_clerk.json()
    assert elsewhere.status_code == 403
    assert outsider.status_code == 403


@pytest.mark.asyncio
async def test_list_holders_requires_unit(client: AsyncClient, squadron):
    response = await client.get(
        f"/api/roster/roles/{squadron['co']}/holders",
        headers=auth_headers("clerk"),
    )
    assert response.status_code == 422
