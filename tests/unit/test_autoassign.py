import pytest

from equiptrack.errors import NoEligibleEngineerError
from equiptrack.models import (
    SYSTEM_ACTOR_ID,
    AssignmentTier,
    Equipment,
    Organization,
    OrgType,
    Priority,
    TicketStatus,
)
from equiptrack.services.autoassign import (
    AutoAssigner,
    FirstEligiblePolicy,
    LeastLoadedPolicy,
    build_policy,
)


def _assigner(container, policy):
    return AutoAssigner(container.tickets_store, container.eligibility, container.ledger, policy)


async def test_medium_ticket_goes_to_first_oem_engineer(container, network, ticket):
    assignment = await container.auto_assigner.auto_assign(ticket.id)

    assert assignment.assignment_tier == AssignmentTier.TIER_1
    assert assignment.engineer_id == network.oem_senior.id
    assert assignment.assigned_by == SYSTEM_ACTOR_ID
    assert "first_eligible" in assignment.reason
    assert (await container.tickets.get_ticket(ticket.id)).status == TicketStatus.ASSIGNED


async def test_high_ticket_escalates_past_junior_oem(container, network, actor_id):
    await container.graph.deactivate_engineer(network.oem_senior.id)
    ticket = await container.tickets.open_ticket(network.mri.id, actor_id, priority=Priority.HIGH)

    assignment = await container.auto_assigner.auto_assign(ticket.id, actor_id)

    assert assignment.assignment_tier == AssignmentTier.TIER_2
    assert assignment.engineer_id == network.distributor_eng.id


async def test_critical_ticket_without_senior_engineer(container, network, actor_id):
    await container.graph.deactivate_engineer(network.oem_senior.id)
    ticket = await container.tickets.open_ticket(network.mri.id, actor_id, priority=Priority.CRITICAL)

    with pytest.raises(NoEligibleEngineerError):
        await container.auto_assigner.auto_assign(ticket.id, actor_id)
    assert await container.ledger.current(ticket.id) is None


async def test_least_loaded_prefers_idle_engineer(container, network, actor_id):
    busy = await container.tickets.open_ticket(network.mri.id, actor_id)
    await container.ledger.assign(busy.id, network.oem_senior.id, AssignmentTier.TIER_1, actor_id)

    ticket = await container.tickets.open_ticket(network.mri.id, actor_id)
    assigner = _assigner(container, LeastLoadedPolicy(container.tickets_store))
    assignment = await assigner.auto_assign(ticket.id, actor_id)

    assert assignment.engineer_id == network.oem_junior.id
    assert "least_loaded" in assignment.reason


async def test_least_loaded_ties_go_to_pool_order(container, network, ticket, actor_id):
    assigner = _assigner(container, LeastLoadedPolicy(container.tickets_store))
    assignment = await assigner.auto_assign(ticket.id, actor_id)
    assert assignment.engineer_id == network.oem_senior.id


async def test_empty_network_has_no_candidates(container, actor_id):
    oem = await container.graph.add_organization(
        Organization(name="Lonely OEM", org_type=OrgType.MANUFACTURER)
    )
    hospital = await container.graph.add_organization(
        Organization(name="Lonely Hospital", org_type=OrgType.HOSPITAL)
    )
    equipment = await container.graph.add_equipment(
        Equipment(name="Ultrasound", manufacturer_id=oem.id, customer_org_id=hospital.id)
    )
    ticket = await container.tickets.open_ticket(equipment.id, actor_id)

    with pytest.raises(NoEligibleEngineerError):
        await _assigner(container, FirstEligiblePolicy()).auto_assign(ticket.id, actor_id)


def test_build_policy(container):
    assert isinstance(build_policy("first_eligible", container.tickets_store), FirstEligiblePolicy)
    assert isinstance(build_policy("least_loaded", container.tickets_store), LeastLoadedPolicy)
    with pytest.raises(ValueError):
        build_policy("round_robin", container.tickets_store)
