"""
equiptrack Status Workflow Engine

new -> assigned -> in_progress <-> on_hold
                   in_progress -> resolved -> closed
                                  resolved -> in_progress (reopen)
Any non-terminal status -> cancelled. closed and cancelled are terminal.

Ledger side effects travel in the same commit as the status change:
- entering assigned needs an active assignment (existing or supplied)
- entering resolved/closed completes the active assignment
- entering cancelled cancels it
- reopening reinstates the last engineer as a fresh assignment record,
  provided that engineer may still work the ticket

Lifecycle timestamps (assigned_at, started_at, resolved_at, closed_at)
are stamped here, as is the resolution note.
"""

import logging
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Tuple
from uuid import UUID

from ..errors import (
    ConflictError,
    InvalidTransitionError,
    MissingAssignmentError,
    NotFoundError,
    ValidationError,
)
from ..models import (
    Assignment,
    AssignmentStatus,
    EventType,
    StatusChange,
    Ticket,
    TicketStatus,
    utcnow,
)
from ..stores.tickets import TicketCommit
from .events import build_event

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: Dict[TicketStatus, FrozenSet[TicketStatus]] = {
    TicketStatus.NEW: frozenset({TicketStatus.ASSIGNED, TicketStatus.CANCELLED}),
    TicketStatus.ASSIGNED: frozenset({TicketStatus.IN_PROGRESS, TicketStatus.CANCELLED}),
    TicketStatus.IN_PROGRESS: frozenset({
        TicketStatus.ON_HOLD, TicketStatus.RESOLVED, TicketStatus.CANCELLED,
    }),
    TicketStatus.ON_HOLD: frozenset({TicketStatus.IN_PROGRESS, TicketStatus.CANCELLED}),
    TicketStatus.RESOLVED: frozenset({
        TicketStatus.CLOSED, TicketStatus.IN_PROGRESS, TicketStatus.CANCELLED,
    }),
    TicketStatus.CLOSED: frozenset(),
    TicketStatus.CANCELLED: frozenset(),
}


def allowed_transitions(status: TicketStatus) -> FrozenSet[TicketStatus]:
    return ALLOWED_TRANSITIONS[TicketStatus(status)]


def event_type_for(from_status: TicketStatus, to_status: TicketStatus) -> EventType:
    if to_status == TicketStatus.IN_PROGRESS:
        if from_status == TicketStatus.ON_HOLD:
            return EventType.RESUMED
        if from_status == TicketStatus.RESOLVED:
            return EventType.REOPENED
        return EventType.STARTED
    return {
        TicketStatus.ASSIGNED: EventType.ASSIGNED,
        TicketStatus.ON_HOLD: EventType.ON_HOLD,
        TicketStatus.RESOLVED: EventType.RESOLVED,
        TicketStatus.CLOSED: EventType.CLOSED,
        TicketStatus.CANCELLED: EventType.CANCELLED,
    }[to_status]


class StatusWorkflowEngine:
    """
    Validates and applies ticket status transitions.

    plan() builds the commit without writing anything, so the assignment
    ledger can fold a transition into its own write. Engineer checks that
    need the organization graph happen in transition() before planning.
    """

    def __init__(self, ticket_store, eligibility, publisher):
        self.ticket_store = ticket_store
        self.eligibility = eligibility
        self.publisher = publisher

    async def transition(
        self,
        ticket_id: UUID,
        target: TicketStatus,
        actor_id: UUID,
        reason: Optional[str] = None,
        assignment: Optional[Assignment] = None,
        expected_version: Optional[int] = None,
    ) -> Ticket:
        """
        Move a ticket to target status.

        Args:
            ticket_id: Ticket to move
            target: Desired status
            actor_id: Who is asking (recorded in status history)
            reason: Optional note (hold reason, resolution note, cancel reason)
            assignment: New active assignment to record with new -> assigned
            expected_version: Fail with ConflictError if the ticket changed
        """
        target = self._coerce_status(target)
        ticket = await self.ticket_store.get_ticket(ticket_id)
        if expected_version is not None and ticket.version != expected_version:
            raise ConflictError(
                f"Ticket {ticket.ticket_number} is at version {ticket.version}, "
                f"not {expected_version}.",
                ticket_id=ticket_id,
            )
        self._require_allowed(ticket, target)

        assignments = await self.ticket_store.list_assignments(ticket_id)
        if assignment is not None:
            assignment = await self._vetted(ticket, assignment)

        reinstate_from = None
        if ticket.status == TicketStatus.RESOLVED and target == TicketStatus.IN_PROGRESS:
            reinstate_from = await self._reinstatable(ticket, assignments)

        change, event_assignment = self.plan(
            ticket, target, actor_id, assignments,
            reason=reason, assignment=assignment, reinstate_from=reinstate_from,
        )
        committed = await self.ticket_store.commit(change)

        logger.info(
            "Ticket %s: %s -> %s by %s",
            committed.ticket_number, ticket.status.value, committed.status.value, actor_id,
        )
        self.publisher.publish(build_event(
            event_type_for(ticket.status, committed.status),
            committed,
            actor_id,
            from_status=ticket.status,
            assignment=event_assignment,
        ))
        return committed

    async def status_history(self, ticket_id: UUID) -> List[StatusChange]:
        return await self.ticket_store.status_history(ticket_id)

    def plan(
        self,
        ticket: Ticket,
        target: TicketStatus,
        actor_id: UUID,
        assignments: List[Assignment],
        reason: Optional[str] = None,
        assignment: Optional[Assignment] = None,
        reinstate_from: Optional[Assignment] = None,
    ) -> Tuple[TicketCommit, Optional[Assignment]]:
        """
        Validate a transition and build its commit.

        A supplied assignment must already be vetted against the graph.
        On reopen, reinstate_from names the record to reinstate; without it
        the ticket reopens with nobody active.

        Returns the commit and the assignment the resulting event should
        carry (if any). Raises before anything is written.
        """
        target = self._coerce_status(target)
        current = ticket.status
        self._require_allowed(ticket, target)
        if assignment is not None and target != TicketStatus.ASSIGNED:
            raise ValidationError(
                "An assignment can only be supplied with a transition to assigned.",
                ticket_id=ticket.id,
            )

        now = utcnow()
        active = next((a for a in assignments if a.is_active), None)
        writes: List[Assignment] = []
        event_assignment: Optional[Assignment] = None
        updates = {"status": target}

        if target == TicketStatus.ASSIGNED:
            if assignment is not None:
                if not assignment.is_active or assignment.ticket_id != ticket.id:
                    raise ValidationError(
                        "Supplied assignment must be an active record for this ticket.",
                        ticket_id=ticket.id,
                    )
                if active is not None:
                    raise ConflictError(
                        f"Ticket {ticket.ticket_number} already has an active assignment.",
                        ticket_id=ticket.id,
                        assignment_id=active.id,
                    )
                writes.append(assignment)
                active = assignment
            elif active is None:
                raise MissingAssignmentError(
                    f"Ticket {ticket.ticket_number} has no active assignment; "
                    "assign an engineer first.",
                    ticket_id=ticket.id,
                )
            updates["assigned_engineer_name"] = active.engineer_name
            updates["assigned_at"] = now
            event_assignment = active

        elif target == TicketStatus.IN_PROGRESS and current == TicketStatus.RESOLVED:
            updates["resolved_at"] = None
            if reinstate_from is not None:
                reinstated = self._reinstate(ticket, reinstate_from, assignments, actor_id)
                writes.append(reinstated)
                updates["assigned_engineer_name"] = reinstated.engineer_name
                updates["assigned_at"] = now
                event_assignment = reinstated
            else:
                updates["assigned_engineer_name"] = None

        elif target == TicketStatus.IN_PROGRESS and active is None:
            raise MissingAssignmentError(
                f"Ticket {ticket.ticket_number} has no active assignment; cannot start work.",
                ticket_id=ticket.id,
            )

        elif target in (TicketStatus.RESOLVED, TicketStatus.CLOSED) and active is not None:
            writes.append(active.ended(AssignmentStatus.COMPLETED, actor_id))

        elif target == TicketStatus.CANCELLED and active is not None:
            writes.append(active.ended(AssignmentStatus.CANCELLED, actor_id, reason=reason))

        updates.update(self._lifecycle_stamps(ticket, target, reason, now))
        updated = ticket.model_copy(update=updates)
        status_change = StatusChange(
            ticket_id=ticket.id,
            from_status=current,
            to_status=target,
            changed_by=actor_id,
            changed_at=now,
            reason=reason,
        )
        commit = TicketCommit(
            ticket=updated,
            expected_version=ticket.version,
            assignments=writes,
            status_change=status_change,
        )
        return commit, event_assignment

    # =========================================================================
    # Private helpers
    # =========================================================================

    @staticmethod
    def _lifecycle_stamps(
        ticket: Ticket,
        target: TicketStatus,
        reason: Optional[str],
        now: datetime,
    ) -> dict:
        if target == TicketStatus.IN_PROGRESS and ticket.started_at is None:
            return {"started_at": now}
        if target == TicketStatus.RESOLVED:
            return {"resolved_at": now, "resolution_notes": reason}
        if target == TicketStatus.CLOSED:
            return {"closed_at": now}
        if target == TicketStatus.CANCELLED and reason:
            return {"resolution_notes": f"Cancelled: {reason}"}
        return {}

    async def _vetted(self, ticket: Ticket, assignment: Assignment) -> Assignment:
        """Supplied assignment, checked against the graph like ledger writes."""
        if assignment.ticket_id != ticket.id:
            raise ValidationError(
                "Supplied assignment belongs to a different ticket.",
                ticket_id=ticket.id,
                assignment_id=assignment.id,
            )
        engineer, org = await self.eligibility.checked_engineer(
            ticket, assignment.engineer_id, assignment.assignment_tier
        )
        if assignment.organization_id != org.id:
            raise ValidationError(
                f"Engineer {engineer.name} belongs to {org.name}, "
                "not the organization on the assignment.",
                engineer_id=engineer.id,
                organization_id=assignment.organization_id,
            )
        return assignment.model_copy(update={"engineer_name": engineer.name})

    async def _reinstatable(
        self,
        ticket: Ticket,
        assignments: List[Assignment],
    ) -> Optional[Assignment]:
        """
        The completed record to reinstate on reopen, if its engineer may
        still work the ticket at the same tier.
        """
        last = next(
            (a for a in reversed(assignments) if a.status == AssignmentStatus.COMPLETED),
            None,
        )
        if last is None:
            return None
        try:
            await self.eligibility.checked_engineer(ticket, last.engineer_id, last.assignment_tier)
        except (NotFoundError, ValidationError) as exc:
            logger.warning(
                "Ticket %s reopens without an engineer: %s", ticket.ticket_number, exc.message
            )
            return None
        return last

    @staticmethod
    def _reinstate(
        ticket: Ticket,
        last: Assignment,
        assignments: List[Assignment],
        actor_id: UUID,
    ) -> Assignment:
        return Assignment(
            ticket_id=ticket.id,
            engineer_id=last.engineer_id,
            engineer_name=last.engineer_name,
            organization_id=last.organization_id,
            assignment_tier=last.assignment_tier,
            sequence=len(assignments) + 1,
            assigned_by=actor_id,
            reason="Reopened",
            supersedes_id=last.id,
        )

    @staticmethod
    def _require_allowed(ticket: Ticket, target: TicketStatus) -> None:
        current = ticket.status
        if target not in ALLOWED_TRANSITIONS[current]:
            allowed = sorted(s.value for s in ALLOWED_TRANSITIONS[current])
            raise InvalidTransitionError(
                f"Cannot move ticket {ticket.ticket_number} from {current.value} "
                f"to {target.value}. Allowed: {allowed or 'none (terminal)'}.",
                ticket_id=ticket.id,
                from_status=current.value,
                to_status=target.value,
            )

    @staticmethod
    def _coerce_status(value) -> TicketStatus:
        try:
            return TicketStatus(value)
        except ValueError:
            raise ValidationError(f"Unknown ticket status: {value!r}.")
