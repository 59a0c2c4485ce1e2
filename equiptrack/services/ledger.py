"""
equiptrack Assignment Ledger

Who is (and was) working a ticket.

Rules:
1. At most one ACTIVE assignment per ticket
2. assign() refuses when one is active; use reassign()
3. reassign() needs a reason, stored on the outgoing record
4. Records are appended, never edited away or deleted
"""

import logging
from typing import List, Optional
from uuid import UUID

from ..errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from ..models import (
    Assignment,
    AssignmentStatus,
    AssignmentTier,
    EventType,
    Ticket,
    TicketStatus,
    utcnow,
)
from ..stores.tickets import TicketCommit
from .events import build_event

logger = logging.getLogger(__name__)


# Statuses in which an engineer can be put on (or swapped on) a ticket
ASSIGNABLE_STATUSES = frozenset({
    TicketStatus.NEW,
    TicketStatus.ASSIGNED,
    TicketStatus.IN_PROGRESS,
    TicketStatus.ON_HOLD,
})


class AssignmentLedger:
    """
    Records engineer assignments.

    Each write reads the ticket version first, validates against the
    organization graph, then commits with that version. Whoever commits
    second loses with ConflictError.
    """

    def __init__(
        self,
        ticket_store,
        workflow,
        eligibility,
        publisher,
    ):
        self.ticket_store = ticket_store
        self.workflow = workflow
        self.eligibility = eligibility
        self.publisher = publisher

    async def assign(
        self,
        ticket_id: UUID,
        engineer_id: UUID,
        tier: AssignmentTier,
        actor_id: UUID,
        reason: Optional[str] = None,
    ) -> Assignment:
        """
        Put an engineer on a ticket that has nobody active.

        A NEW ticket moves to ASSIGNED in the same commit.
        """
        tier = _coerce_tier(tier)
        ticket = await self.ticket_store.get_ticket(ticket_id)
        assignments = await self.ticket_store.list_assignments(ticket_id)

        active = _active_of(assignments)
        if active is not None:
            raise ConflictError(
                f"Ticket {ticket.ticket_number} already has an active assignment; "
                "use reassign.",
                ticket_id=ticket_id,
                assignment_id=active.id,
            )
        self._require_assignable(ticket)

        engineer, org = await self.eligibility.checked_engineer(ticket, engineer_id, tier)
        assignment = Assignment(
            ticket_id=ticket.id,
            engineer_id=engineer.id,
            engineer_name=engineer.name,
            organization_id=org.id,
            assignment_tier=tier,
            sequence=len(assignments) + 1,
            assigned_by=actor_id,
            reason=reason,
        )

        if ticket.status == TicketStatus.NEW:
            change, _ = self.workflow.plan(
                ticket, TicketStatus.ASSIGNED, actor_id, assignments,
                reason=reason, assignment=assignment,
            )
        else:
            change = TicketCommit(
                ticket=ticket.model_copy(update={
                    "assigned_engineer_name": engineer.name,
                    "assigned_at": utcnow(),
                }),
                expected_version=ticket.version,
                assignments=[assignment],
            )
        committed = await self.ticket_store.commit(change)

        logger.info(
            "Ticket %s assigned to %s (%s, %s)",
            committed.ticket_number, engineer.name, org.name, tier.label,
        )
        self.publisher.publish(build_event(
            EventType.ASSIGNED, committed, actor_id,
            from_status=ticket.status, assignment=assignment,
        ))
        return assignment

    async def reassign(
        self,
        ticket_id: UUID,
        new_engineer_id: UUID,
        tier: AssignmentTier,
        actor_id: UUID,
        reason: str,
    ) -> Assignment:
        """
        Hand the ticket to another engineer.

        The ticket keeps its status. The outgoing record becomes REASSIGNED
        and carries the reason; the incoming one points back at it.
        """
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to reassign a ticket.", ticket_id=ticket_id)
        tier = _coerce_tier(tier)

        ticket = await self.ticket_store.get_ticket(ticket_id)
        assignments = await self.ticket_store.list_assignments(ticket_id)
        active = _active_of(assignments)
        if active is None:
            raise NotFoundError(
                f"Ticket {ticket.ticket_number} has no active assignment to reassign.",
                ticket_id=ticket_id,
            )
        self._require_assignable(ticket)
        if active.engineer_id == new_engineer_id and active.assignment_tier == tier:
            raise ValidationError(
                "Engineer is already assigned to this ticket at that tier.",
                ticket_id=ticket_id,
                engineer_id=new_engineer_id,
            )

        engineer, org = await self.eligibility.checked_engineer(ticket, new_engineer_id, tier)
        outgoing = active.ended(AssignmentStatus.REASSIGNED, actor_id, reason=reason.strip())
        incoming = Assignment(
            ticket_id=ticket.id,
            engineer_id=engineer.id,
            engineer_name=engineer.name,
            organization_id=org.id,
            assignment_tier=tier,
            sequence=len(assignments) + 1,
            assigned_by=actor_id,
            supersedes_id=active.id,
        )
        committed = await self.ticket_store.commit(TicketCommit(
            ticket=ticket.model_copy(update={
                "assigned_engineer_name": engineer.name,
                "assigned_at": utcnow(),
            }),
            expected_version=ticket.version,
            assignments=[outgoing, incoming],
        ))

        logger.info(
            "Ticket %s reassigned %s -> %s (%s): %s",
            committed.ticket_number, active.engineer_name, engineer.name, tier.label, reason,
        )
        self.publisher.publish(build_event(
            EventType.REASSIGNED, committed, actor_id, assignment=incoming,
        ))
        return incoming

    async def history(self, ticket_id: UUID) -> List[Assignment]:
        """Every assignment record, most recent first."""
        records = await self.ticket_store.list_assignments(ticket_id)
        return sorted(records, key=lambda a: a.sequence, reverse=True)

    async def current(self, ticket_id: UUID) -> Optional[Assignment]:
        return await self.ticket_store.get_active_assignment(ticket_id)

    async def complete(self, ticket_id: UUID, actor_id: UUID) -> Assignment:
        """
        Mark the active record completed without touching ticket status.

        Resolve and close transitions do this themselves; this is for
        callers that end an engineer's stint out of band.
        """
        ticket = await self.ticket_store.get_ticket(ticket_id)
        active = await self.ticket_store.get_active_assignment(ticket_id)
        if active is None:
            raise NotFoundError(
                f"Ticket {ticket.ticket_number} has no active assignment.",
                ticket_id=ticket_id,
            )
        completed = active.ended(AssignmentStatus.COMPLETED, actor_id)
        await self.ticket_store.commit(TicketCommit(
            ticket=ticket,
            expected_version=ticket.version,
            assignments=[completed],
        ))
        logger.info("Ticket %s: assignment %s completed", ticket.ticket_number, active.id)
        return completed

    # =========================================================================
    # Private helpers
    # =========================================================================

    def _require_assignable(self, ticket: Ticket) -> None:
        if ticket.status not in ASSIGNABLE_STATUSES:
            raise InvalidTransitionError(
                f"Ticket {ticket.ticket_number} is {ticket.status.value}; "
                "engineers cannot be assigned.",
                ticket_id=ticket.id,
                status=ticket.status.value,
            )



def _active_of(assignments: List[Assignment]) -> Optional[Assignment]:
    return next((a for a in assignments if a.is_active), None)


def _coerce_tier(value) -> AssignmentTier:
    try:
        return AssignmentTier(value)
    except ValueError:
        raise ValidationError(f"Unknown assignment tier: {value!r}.")
