import asyncio
import pytest

from equiptrack.errors import GraphUnavailableError, ValidationError
from equiptrack.models import (
    AssignmentTier,
    AssociationType,
    Equipment,
    Organization,
    OrgType,
    Engineer,
    Ticket,
)
from equiptrack.models.roles import can_partner, home_tier
from equiptrack.services.resolver import EligibilityService, admits, resolve
from equiptrack.stores import InMemoryOrganizationGraph, InMemoryTicketStore


def _engineer_ids(candidates, tier):
    pool = next(c for c in candidates if c.tier == tier)
    return {e.engineer_id for e in pool.engineers}


async def test_four_tiers_in_escalation_order(container, network, ticket):
    candidates = await container.eligibility.eligible_engineers(ticket.id)
    assert [c.tier for c in candidates] == list(AssignmentTier)

    assert _engineer_ids(candidates, AssignmentTier.TIER_1) == {
        network.oem_senior.id, network.oem_junior.id,
    }
    assert _engineer_ids(candidates, AssignmentTier.TIER_2) == {
        network.distributor_eng.id, network.dealer_eng.id,
    }
    assert _engineer_ids(candidates, AssignmentTier.TIER_3) == {network.provider_eng.id}
    assert _engineer_ids(candidates, AssignmentTier.TIER_4) == {network.hospital_eng.id}


async def test_general_partners_form_one_pool(container, network, ticket):
    candidates = await container.eligibility.eligible_engineers(ticket.id)
    tier_2 = candidates[1]
    assert set(tier_2.organization_ids) == {network.distributor.id, network.dealer.id}


async def test_equipment_specific_partner_overrides_general(container, network, ticket):
    await container.graph.upsert_association(
        network.manufacturer.id, network.pinned_partner.id,
        AssociationType.EQUIPMENT_SPECIFIC, equipment_id=network.mri.id,
    )
    candidates = await container.eligibility.eligible_engineers(ticket.id)
    tier_2 = candidates[1]
    assert tier_2.organization_ids == (network.pinned_partner.id,)
    assert [e.engineer_id for e in tier_2.engineers] == [network.pinned_eng.id]


async def test_override_for_other_equipment_is_ignored(container, network, ticket):
    other = await container.graph.add_equipment(Equipment(
        name="MRI 1.5T", manufacturer_id=network.manufacturer.id,
        customer_org_id=network.hospital.id, category="MRI",
    ))
    await container.graph.upsert_association(
        network.manufacturer.id, network.pinned_partner.id,
        AssociationType.EQUIPMENT_SPECIFIC, equipment_id=other.id,
    )
    candidates = await container.eligibility.eligible_engineers(ticket.id)
    assert network.pinned_eng.id not in _engineer_ids(candidates, AssignmentTier.TIER_2)


async def test_no_partners_and_no_matching_provider(actor_id):
    graph = InMemoryOrganizationGraph()
    store = InMemoryTicketStore()
    oem = await graph.add_organization(Organization(name="Solo OEM", org_type=OrgType.MANUFACTURER))
    hospital = await graph.add_organization(Organization(name="General", org_type=OrgType.HOSPITAL))
    provider = await graph.add_organization(
        Organization(name="Ultrasound Co", org_type=OrgType.SERVICE_PROVIDER, specializations={"US"})
    )
    oem_eng = await graph.add_engineer(Engineer(name="O", organization_id=oem.id))
    await graph.add_engineer(Engineer(name="P", organization_id=provider.id))
    hosp_eng = await graph.add_engineer(Engineer(name="H", organization_id=hospital.id))
    equipment = await graph.add_equipment(Equipment(
        name="CT 64", manufacturer_id=oem.id, customer_org_id=hospital.id, category="CT",
    ))

    ticket = await store.create_ticket(Ticket(
        ticket_number="TKT-20240101-0001",
        equipment_id=equipment.id,
        manufacturer_id=oem.id,
        customer_org_id=hospital.id,
    ))
    candidates = await EligibilityService(store, graph).eligible_engineers(ticket.id)

    assert _engineer_ids(candidates, AssignmentTier.TIER_1) == {oem_eng.id}
    assert candidates[1].is_empty
    assert candidates[2].is_empty
    assert _engineer_ids(candidates, AssignmentTier.TIER_4) == {hosp_eng.id}


async def test_inactive_partner_contributes_nothing(container, network, ticket):
    await container.graph.deactivate_organization(network.distributor.id)
    candidates = await container.eligibility.eligible_engineers(ticket.id)
    assert _engineer_ids(candidates, AssignmentTier.TIER_2) == {network.dealer_eng.id}


async def test_provider_matched_by_engineer_specialization(container, network, actor_id):
    ct = await container.graph.add_equipment(Equipment(
        name="CT 128", manufacturer_id=network.manufacturer.id,
        customer_org_id=network.hospital.id, category="ct",
    ))
    ticket = await container.tickets.open_ticket(ct.id, actor_id)
    candidates = await container.eligibility.eligible_engineers(ticket.id)
    assert _engineer_ids(candidates, AssignmentTier.TIER_3) == {network.ct_eng.id}


async def test_partner_provider_stays_in_earliest_tier(container, network, ticket):
    await container.graph.upsert_association(network.manufacturer.id, network.provider.id)
    candidates = await container.eligibility.eligible_engineers(ticket.id)
    assert network.provider_eng.id in _engineer_ids(candidates, AssignmentTier.TIER_2)
    assert _engineer_ids(candidates, AssignmentTier.TIER_3) == set()


async def test_all_empty_gives_empty_list(actor_id):
    graph = InMemoryOrganizationGraph()
    oem = await graph.add_organization(Organization(name="Empty OEM", org_type=OrgType.MANUFACTURER))
    hospital = await graph.add_organization(Organization(name="Empty H", org_type=OrgType.HOSPITAL))
    equipment = await graph.add_equipment(Equipment(
        name="X-Ray", manufacturer_id=oem.id, customer_org_id=hospital.id,
    ))
    ticket = Ticket(
        ticket_number="TKT-20240101-0002",
        equipment_id=equipment.id,
        manufacturer_id=oem.id,
        customer_org_id=hospital.id,
    )
    assert resolve(ticket, equipment, await graph.snapshot()) == []


async def test_resolution_is_deterministic(container, network, ticket):
    first = await container.eligibility.eligible_engineers(ticket.id)
    second = await container.eligibility.eligible_engineers(ticket.id)
    assert first == second


async def test_mismatched_equipment_rejected(container, network, ticket):
    other = Equipment(
        name="Other", manufacturer_id=network.manufacturer.id, customer_org_id=network.hospital.id,
    )
    with pytest.raises(ValidationError):
        resolve(ticket, other, await container.graph.snapshot())


class SlowGraph(InMemoryOrganizationGraph):
    async def snapshot(self):
        await asyncio.sleep(0.5)
        return await super().snapshot()


async def test_slow_graph_raises_graph_unavailable(network, ticket, container):
    slow = SlowGraph()
    slow.__dict__.update(container.graph.__dict__)
    eligibility = EligibilityService(container.tickets_store, slow, timeout_seconds=0.05)
    with pytest.raises(GraphUnavailableError) as err:
        await eligibility.eligible_engineers(ticket.id)
    assert err.value.retryable


@pytest.mark.parametrize("org_type", list(OrgType))
def test_tier_admission_follows_role_tables(org_type):
    org = Organization(name="Any", org_type=org_type)
    assert admits(AssignmentTier.TIER_2, org) is can_partner(org_type)
    for tier in (AssignmentTier.TIER_1, AssignmentTier.TIER_3, AssignmentTier.TIER_4):
        assert admits(tier, org) is (home_tier(org_type) is tier)


async def test_customer_that_is_not_a_hospital_has_no_in_house_tier(container, network, actor_id):
    leased = await container.graph.add_equipment(Equipment(
        name="MRI on loan", manufacturer_id=network.manufacturer.id,
        customer_org_id=network.pinned_partner.id, category="MRI",
    ))
    ticket = await container.tickets.open_ticket(leased.id, actor_id)
    candidates = await container.eligibility.eligible_engineers(ticket.id)
    tier_4 = candidates[3]
    assert tier_4.is_empty
    assert tier_4.organization_ids == ()

