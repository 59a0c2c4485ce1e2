"""Integration tests for API endpoints."""

from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from equiptrack.api.app import create_app
from equiptrack.config import Settings
from equiptrack.container import build_container
from equiptrack.models import Priority

from tests.conftest import seed_network


_ACTOR = str(uuid4())
_HEADERS = {"X-Actor-Id": _ACTOR}


@pytest_asyncio.fixture
async def client(container, network):
    app = create_app(container)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", headers=_HEADERS) as ac:
        yield ac
    await container.publisher.drain()


async def _open(client, network, **body):
    resp = await client.post("/tickets", json={"equipment_id": str(network.mri.id), **body})
    assert resp.status_code == 201
    return resp.json()


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


async def test_open_and_get_ticket(client, network):
    created = await _open(client, network, priority="high", description="Coil fault")
    assert created["status"] == "new"
    assert created["manufacturer_id"] == str(network.manufacturer.id)
    assert created["created_by"] == _ACTOR

    resp = await client.get(f"/tickets/{created['id']}")
    assert resp.status_code == 200
    assert resp.json()["ticket_number"] == created["ticket_number"]

    resp = await client.get(f"/tickets/by-number/{created['ticket_number']}")
    assert resp.json()["id"] == created["id"]


async def test_missing_actor_header_rejected(client, network):
    resp = await client.post(
        "/tickets",
        json={"equipment_id": str(network.mri.id)},
        headers={"X-Actor-Id": ""},
    )
    assert resp.status_code == 422


async def test_unknown_ticket_is_404(client):
    resp = await client.get(f"/tickets/{uuid4()}")
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


async def test_eligible_engineers(client, network):
    ticket = await _open(client, network)
    resp = await client.get(f"/tickets/{ticket['id']}/eligible-engineers")
    assert resp.status_code == 200
    tiers = resp.json()
    assert [t["tier"] for t in tiers] == ["tier_1", "tier_2", "tier_3", "tier_4"]
    assert tiers[0]["engineers"][0]["engineer_id"] == str(network.oem_senior.id)
    assert tiers[0]["organization_id"] == str(network.manufacturer.id)
    assert set(tiers[1]["organization_ids"]) == {str(network.distributor.id), str(network.dealer.id)}
    assert tiers[1]["organization_id"] == tiers[1]["organization_ids"][0]


async def test_assign_reassign_and_history(client, network):
    ticket = await _open(client, network)
    url = f"/tickets/{ticket['id']}"

    resp = await client.post(f"{url}/assignments", json={
        "engineer_id": str(network.distributor_eng.id), "tier": "tier_2",
    })
    assert resp.status_code == 201

    resp = await client.post(f"{url}/assignments", json={
        "engineer_id": str(network.oem_senior.id), "tier": "tier_1",
    })
    assert resp.status_code == 409
    assert resp.json()["error"] == "conflict"
    assert resp.json()["retryable"] is True

    resp = await client.post(f"{url}/reassignments", json={
        "engineer_id": str(network.provider_eng.id), "tier": "tier_3", "reason": "",
    })
    assert resp.status_code == 422

    resp = await client.post(f"{url}/reassignments", json={
        "engineer_id": str(network.provider_eng.id), "tier": "tier_3", "reason": "Needs MRI specialist",
    })
    assert resp.status_code == 201

    history = (await client.get(f"{url}/assignments")).json()
    assert [a["status"] for a in history] == ["active", "reassigned"]
    assert history[1]["reason"] == "Needs MRI specialist"


async def test_transitions_and_status_history(client, network):
    ticket = await _open(client, network)
    url = f"/tickets/{ticket['id']}"

    resp = await client.post(f"{url}/transitions", json={"target": "resolved"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "invalid_transition"

    resp = await client.post(f"{url}/transitions", json={"target": "assigned"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "missing_assignment"

    resp = await client.post(f"{url}/auto-assign")
    assert resp.status_code == 201

    for target in ("in_progress", "resolved", "closed"):
        resp = await client.post(f"{url}/transitions", json={"target": target})
        assert resp.status_code == 200
        assert resp.json()["status"] == target

    changes = (await client.get(f"{url}/status-history")).json()
    assert [c["to_status"] for c in changes] == ["assigned", "in_progress", "resolved", "closed"]


async def test_stale_version_conflicts(client, network):
    ticket = await _open(client, network)
    resp = await client.post(
        f"/tickets/{ticket['id']}/transitions",
        json={"target": "cancelled", "expected_version": ticket["version"] + 5},
    )
    assert resp.status_code == 409


async def test_change_priority(client, network):
    ticket = await _open(client, network)
    resp = await client.post(f"/tickets/{ticket['id']}/priority", json={"priority": "critical"})
    assert resp.status_code == 200
    assert resp.json()["priority"] == "critical"


async def test_partner_management(client, network):
    url = f"/organizations/{network.manufacturer.id}/partners"

    resp = await client.put(url, json={
        "partner_org_id": str(network.pinned_partner.id),
        "association_type": "equipment_specific",
        "equipment_id": str(network.mri.id),
    })
    assert resp.status_code == 200

    resp = await client.get(url, params={"equipment_id": str(network.mri.id)})
    assert resp.json()[0]["partner_org_id"] == str(network.pinned_partner.id)

    resp = await client.put(url, json={"partner_org_id": str(network.hospital.id)})
    assert resp.status_code == 422

    delete_url = f"{url}/{network.distributor.id}"
    first = await client.delete(delete_url)
    second = await client.delete(delete_url)
    assert first.json() == {"removed": True}
    assert second.status_code == 200
    assert second.json() == {"removed": False}


async def test_acknowledge(client, network):
    ticket = await _open(client, network)
    resp = await client.post(f"/tickets/{ticket['id']}/acknowledge")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "new"
    assert body["acknowledged_at"] is not None
    assert body["sla_response_due"] is not None


async def test_sla_breaches_route(client, network):
    await _open(client, network, priority="critical")
    resp = await client.get("/tickets/sla-breaches")
    assert resp.status_code == 200
    assert resp.json() == []


async def test_sla_breaches_lists_overdue_ticket():
    settings = Settings(sla_response_hours={Priority.LOW: 0.000001})
    container = build_container(settings)
    network = await seed_network(container.graph)
    app = create_app(container)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", headers=_HEADERS) as ac:
        ticket = await _open(ac, network, priority="low")
        await asyncio.sleep(0.05)
        resp = await ac.get("/tickets/sla-breaches")
        assert resp.status_code == 200
        assert [t["id"] for t in resp.json()] == [ticket["id"]]
        assert resp.json()[0]["sla_breached"] is True
    await container.publisher.drain()
