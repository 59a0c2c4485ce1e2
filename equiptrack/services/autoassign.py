"""
equiptrack Auto-Assignment

The resolver lists who CAN take a ticket. A policy decides who DOES.

Minimum engineer level by priority:
- Critical: 3 (senior)
- High: 2
- Medium / Low: 1

Both policies take the earliest tier holding a qualified engineer, so
escalation order is always respected. They differ inside that tier.
"""

import logging
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from ..errors import NoEligibleEngineerError
from ..models import (
    SYSTEM_ACTOR_ID,
    Assignment,
    AssignmentTier,
    EligibleEngineer,
    Priority,
    Ticket,
    TierCandidate,
)

logger = logging.getLogger(__name__)


MIN_LEVEL: Dict[Priority, int] = {
    Priority.CRITICAL: 3,
    Priority.HIGH: 2,
    Priority.MEDIUM: 1,
    Priority.LOW: 1,
}

Choice = Tuple[AssignmentTier, EligibleEngineer]


def qualified_tier(
    candidates: List[TierCandidate],
    min_level: int,
) -> Optional[Tuple[AssignmentTier, List[EligibleEngineer]]]:
    """Earliest tier with at least one engineer at min_level or above."""
    for candidate in candidates:
        pool = [e for e in candidate.engineers if e.engineer_level >= min_level]
        if pool:
            return candidate.tier, pool
    return None


class AutoAssignPolicy:
    """Base policy. Subclasses pick one engineer out of the resolved tiers."""

    name = "base"

    async def choose(self, ticket: Ticket, candidates: List[TierCandidate]) -> Optional[Choice]:
        raise NotImplementedError


class FirstEligiblePolicy(AutoAssignPolicy):
    """First qualified engineer of the earliest qualified tier, in pool order."""

    name = "first_eligible"

    async def choose(self, ticket: Ticket, candidates: List[TierCandidate]) -> Optional[Choice]:
        found = qualified_tier(candidates, MIN_LEVEL[ticket.priority])
        if found is None:
            return None
        tier, pool = found
        return tier, pool[0]


class LeastLoadedPolicy(AutoAssignPolicy):
    """
    Qualified engineer with the fewest active assignments, earliest tier.

    Ties go to pool order.
    """

    name = "least_loaded"

    def __init__(self, ticket_store):
        self.ticket_store = ticket_store

    async def choose(self, ticket: Ticket, candidates: List[TierCandidate]) -> Optional[Choice]:
        found = qualified_tier(candidates, MIN_LEVEL[ticket.priority])
        if found is None:
            return None
        tier, pool = found

        best = None
        best_load = None
        for engineer in pool:
            load = await self.ticket_store.count_active_for_engineer(engineer.engineer_id)
            if best_load is None or load < best_load:
                best, best_load = engineer, load
        logger.debug("Least loaded in %s: %s (%d active)", tier.value, best.name, best_load)
        return tier, best


class AutoAssigner:
    """Resolves, asks the policy, records through the ledger."""

    def __init__(self, ticket_store, eligibility, ledger, policy: AutoAssignPolicy):
        self.ticket_store = ticket_store
        self.eligibility = eligibility
        self.ledger = ledger
        self.policy = policy

    async def auto_assign(self, ticket_id: UUID, actor_id: UUID = SYSTEM_ACTOR_ID) -> Assignment:
        ticket = await self.ticket_store.get_ticket(ticket_id)
        candidates = await self.eligibility.candidates_for(ticket)
        if not candidates:
            raise NoEligibleEngineerError(
                f"No engineers in any tier for ticket {ticket.ticket_number}.",
                ticket_id=ticket_id,
            )

        choice = await self.policy.choose(ticket, candidates)
        if choice is None:
            raise NoEligibleEngineerError(
                f"No engineer meets level {MIN_LEVEL[ticket.priority]} for "
                f"{ticket.priority.value} ticket {ticket.ticket_number}.",
                ticket_id=ticket_id,
                priority=ticket.priority.value,
            )

        tier, engineer = choice
        logger.info(
            "Auto-assigning %s to %s (%s) via %s",
            ticket.ticket_number, engineer.name, tier.label, self.policy.name,
        )
        return await self.ledger.assign(
            ticket_id,
            engineer.engineer_id,
            tier,
            actor_id,
            reason=f"Auto-assigned ({self.policy.name})",
        )


def build_policy(name: str, ticket_store) -> AutoAssignPolicy:
    if name == FirstEligiblePolicy.name:
        return FirstEligiblePolicy()
    if name == LeastLoadedPolicy.name:
        return LeastLoadedPolicy(ticket_store)
    raise ValueError(f"Unknown auto-assign policy: {name}")
