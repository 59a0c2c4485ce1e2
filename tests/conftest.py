"""Shared fixtures: a small service network around one MRI scanner."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4

import pytest
import pytest_asyncio

from equiptrack.config import Settings
from equiptrack.container import build_container
from equiptrack.models import (
    AssociationType,
    Engineer,
    EngineerLevel,
    Equipment,
    Organization,
    OrgType,
)
from equiptrack.stores import InMemoryOrganizationGraph


@dataclass
class Network:
    manufacturer: Organization
    distributor: Organization
    dealer: Organization
    pinned_partner: Organization
    provider: Organization
    ct_provider: Organization
    hospital: Organization
    oem_senior: Engineer
    oem_junior: Engineer
    distributor_eng: Engineer
    dealer_eng: Engineer
    pinned_eng: Engineer
    provider_eng: Engineer
    ct_eng: Engineer
    hospital_eng: Engineer
    mri: Equipment


async def seed_network(graph: InMemoryOrganizationGraph) -> Network:
    """
    Manufacturer with two general partners, one spare distributor (for
    equipment-specific tests), two multi-brand providers (one covers MRI)
    and a hospital with an in-house engineer.
    """
    async def org(name, org_type, **kw):
        return await graph.add_organization(Organization(name=name, org_type=org_type, **kw))

    async def eng(name, o, level=EngineerLevel.MID, **kw):
        return await graph.add_engineer(
            Engineer(name=name, organization_id=o.id, engineer_level=level, **kw)
        )

    manufacturer = await org("Magnetix Medical", OrgType.MANUFACTURER)
    distributor = await org("North Distribution", OrgType.DISTRIBUTOR)
    dealer = await org("City Dealer", OrgType.DEALER)
    pinned_partner = await org("Pinned Imaging Services", OrgType.DISTRIBUTOR)
    provider = await org("MultiCare Services", OrgType.SERVICE_PROVIDER, specializations={"MRI"})
    ct_provider = await org("CT Only Ltd", OrgType.SERVICE_PROVIDER)
    hospital = await org("St. Mary Hospital", OrgType.HOSPITAL)

    net = Network(
        manufacturer=manufacturer,
        distributor=distributor,
        dealer=dealer,
        pinned_partner=pinned_partner,
        provider=provider,
        ct_provider=ct_provider,
        hospital=hospital,
        oem_senior=await eng("Ada Senior", manufacturer, EngineerLevel.SENIOR),
        oem_junior=await eng("Ben Junior", manufacturer, EngineerLevel.JUNIOR),
        distributor_eng=await eng("Dora Distributor", distributor, EngineerLevel.MID),
        dealer_eng=await eng("Dev Dealer", dealer, EngineerLevel.JUNIOR),
        pinned_eng=await eng("Pia Pinned", pinned_partner, EngineerLevel.MID),
        provider_eng=await eng("Paul Provider", provider, EngineerLevel.MID),
        ct_eng=await eng("Cara CT", ct_provider, EngineerLevel.SENIOR, specializations={"CT"}),
        hospital_eng=await eng("Hana Biomed", hospital, EngineerLevel.JUNIOR),
        mri=await graph.add_equipment(Equipment(
            name="MRI Scanner 3T",
            serial_number="MX-3T-0001",
            manufacturer_id=manufacturer.id,
            customer_org_id=hospital.id,
            category="MRI",
        )),
    )

    await graph.upsert_association(manufacturer.id, distributor.id)
    await graph.upsert_association(manufacturer.id, dealer.id, AssociationType.GENERAL)
    return net


@pytest.fixture
def settings():
    return Settings(graph_timeout_seconds=1.0, notifier_timeout_seconds=1.0)


@pytest.fixture
def container(settings):
    return build_container(settings)


@pytest_asyncio.fixture
async def network(container):
    return await seed_network(container.graph)


@pytest.fixture
def actor_id():
    return uuid4()


@pytest_asyncio.fixture
async def ticket(container, network, actor_id):
    return await container.tickets.open_ticket(network.mri.id, actor_id)
