"""
equiptrack Tier Resolver

Who can service this ticket? Walks the manufacturer's service network and
returns one engineer pool per tier, in escalation order:

- Tier 1 (OEM): the manufacturer's own engineers
- Tier 2 (Partner): equipment-specific partner if one exists, otherwise
  every general partner combined into one pool
- Tier 3 (Multi-brand): service providers covering the equipment category
- Tier 4 (Hospital): the customer's in-house engineers

The resolver never picks an engineer. A human or an auto-assign policy
chooses one engineer from one tier.
"""

import asyncio
import logging
from typing import Awaitable, Iterable, List, Optional, Set, Tuple, TypeVar
from uuid import UUID

from ..errors import GraphUnavailableError, ValidationError
from ..models import (
    AssignmentTier,
    AssociationType,
    EligibleEngineer,
    Engineer,
    Equipment,
    Organization,
    Ticket,
    TierCandidate,
)
from ..models.roles import can_partner, home_tier
from ..stores.graph import GraphSnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# PURE RESOLUTION
# =============================================================================

def resolve(ticket: Ticket, equipment: Equipment, graph: GraphSnapshot) -> List[TierCandidate]:
    """
    Resolve tier pools for a ticket against one graph snapshot.

    Deterministic and side-effect free. Returns tier_1..tier_4 in order
    (pools may be empty), or an empty list when every pool is empty.
    An organization only ever appears in the earliest tier it qualifies for.
    """
    if equipment.id != ticket.equipment_id:
        raise ValidationError(
            "Equipment does not match the ticket.",
            ticket_id=ticket.id,
            equipment_id=equipment.id,
        )

    captured: Set[UUID] = set()
    tiers = [
        _build_tier(AssignmentTier.TIER_1, [ticket.manufacturer_id], graph, captured),
        _build_tier(
            AssignmentTier.TIER_2,
            partner_pool_orgs(ticket.manufacturer_id, ticket.equipment_id, graph),
            graph,
            captured,
        ),
        _build_tier(
            AssignmentTier.TIER_3,
            [o.id for o in graph.organizations_by_name()],
            graph,
            captured,
            category=equipment.category,
        ),
        _build_tier(AssignmentTier.TIER_4, [ticket.customer_org_id], graph, captured),
    ]

    if all(t.is_empty for t in tiers):
        return []
    return tiers


def partner_pool_orgs(
    manufacturer_id: UUID,
    equipment_id: UUID,
    graph: GraphSnapshot,
) -> List[UUID]:
    """
    Partner organizations forming the tier 2 pool.

    An equipment-specific association overrides every general one. Without
    it, all general partners contribute, in association order.
    """
    specific = graph.partners_of(
        manufacturer_id,
        association_type=AssociationType.EQUIPMENT_SPECIFIC,
        equipment_id=equipment_id,
    )
    if specific:
        return [specific[0].partner_org_id]

    general = graph.partners_of(manufacturer_id, association_type=AssociationType.GENERAL)
    return _unique(a.partner_org_id for a in general)


def admits(tier: AssignmentTier, org: Organization) -> bool:
    """
    Whether an organization of this type may serve in the tier.

    Tier 2 takes anyone allowed to partner; every other tier is the home
    tier of exactly the types that map to it.
    """
    if tier is AssignmentTier.TIER_2:
        return can_partner(org.org_type)
    if tier in (AssignmentTier.TIER_1, AssignmentTier.TIER_3, AssignmentTier.TIER_4):
        return home_tier(org.org_type) is tier
    raise ValueError(f"Unhandled assignment tier: {tier!r}")


def _build_tier(
    tier: AssignmentTier,
    org_ids: Iterable[UUID],
    graph: GraphSnapshot,
    captured: Set[UUID],
    category: Optional[str] = None,
) -> TierCandidate:
    contributing: List[UUID] = []
    engineers: List[EligibleEngineer] = []

    for org_id in _unique(org_ids):
        if org_id in captured:
            continue
        org = graph.organization(org_id)
        if org is None or not org.is_active:
            continue

        if not admits(tier, org):
            continue

        roster = list(graph.engineers_of(org_id))
        if tier is AssignmentTier.TIER_3:
            roster = _covering_category(roster, org.specializations, category)
            if not roster:
                continue

        captured.add(org_id)
        contributing.append(org_id)
        engineers.extend(
            EligibleEngineer(
                engineer_id=e.id,
                name=e.name,
                organization_id=org.id,
                organization_name=org.name,
                engineer_level=e.engineer_level,
                tier=tier,
            )
            for e in roster
        )

    return TierCandidate(tier=tier, organization_ids=tuple(contributing), engineers=engineers)


def _covering_category(
    roster: List[Engineer],
    org_specializations: Set[str],
    category: Optional[str],
) -> List[Engineer]:
    """Engineers covering the category. No category means nobody."""
    if not category:
        return []
    wanted = category.casefold()
    if wanted in {s.casefold() for s in org_specializations}:
        return roster
    return [e for e in roster if wanted in {s.casefold() for s in e.specializations}]


def _unique(ids: Iterable[UUID]) -> List[UUID]:
    seen: Set[UUID] = set()
    ordered = []
    for i in ids:
        if i not in seen:
            seen.add(i)
            ordered.append(i)
    return ordered


# =============================================================================
# SERVICE
# =============================================================================

class EligibilityService:
    """
    Runs the resolver for stored tickets.

    Graph reads are bounded by a timeout so a slow roster source surfaces
    as a retryable GraphUnavailableError instead of holding up a ticket.
    """

    def __init__(
        self,
        ticket_store,
        graph_store,
        timeout_seconds: float = 2.0,
        enforce_tier_eligibility: bool = True,
    ):
        self.ticket_store = ticket_store
        self.graph_store = graph_store
        self.timeout_seconds = timeout_seconds
        self.enforce_tier_eligibility = enforce_tier_eligibility

    async def eligible_engineers(self, ticket_id: UUID) -> List[TierCandidate]:
        ticket = await self.ticket_store.get_ticket(ticket_id)
        return await self.candidates_for(ticket)

    async def candidates_for(self, ticket: Ticket) -> List[TierCandidate]:
        equipment = await self.bounded(
            self.graph_store.get_equipment(ticket.equipment_id), "equipment lookup"
        )
        snapshot = await self.bounded(self.graph_store.snapshot(), "graph snapshot")
        candidates = resolve(ticket, equipment, snapshot)
        logger.debug(
            "Resolved %s: %s",
            ticket.ticket_number,
            {c.tier.value: len(c.engineers) for c in candidates},
        )
        return candidates

    async def is_eligible(
        self,
        ticket: Ticket,
        engineer_id: UUID,
        tier: AssignmentTier,
    ) -> bool:
        for candidate in await self.candidates_for(ticket):
            if candidate.tier == tier:
                return candidate.contains(engineer_id)
        return False

    async def checked_engineer(
        self,
        ticket: Ticket,
        engineer_id: UUID,
        tier: AssignmentTier,
    ) -> Tuple[Engineer, Organization]:
        """
        Engineer and owning organization, if they may work the ticket at tier.

        Raises NotFoundError for an unknown engineer and ValidationError when
        the engineer or organization is inactive or (with tier enforcement
        on) outside the tier pool.
        """
        engineer = await self.bounded(self.graph_store.get_engineer(engineer_id), "engineer lookup")
        if not engineer.is_active:
            raise ValidationError(
                f"Engineer {engineer.name} is inactive.", engineer_id=engineer_id
            )
        org = await self.bounded(
            self.graph_store.get_organization(engineer.organization_id), "organization lookup"
        )
        if not org.is_active:
            raise ValidationError(
                f"Engineer's organization {org.name} is inactive.",
                engineer_id=engineer_id,
                organization_id=org.id,
            )
        if self.enforce_tier_eligibility and not await self.is_eligible(ticket, engineer_id, tier):
            raise ValidationError(
                f"Engineer {engineer.name} is not in the {tier.label} pool for "
                f"ticket {ticket.ticket_number}.",
                engineer_id=engineer_id,
                tier=tier.value,
            )
        return engineer, org

    async def bounded(self, awaitable: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Organization graph %s timed out after %.1fs", what, self.timeout_seconds)
            raise GraphUnavailableError(
                f"Organization graph {what} timed out; retry later.",
                timeout_seconds=self.timeout_seconds,
            )
