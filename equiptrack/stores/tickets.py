"""
equiptrack Ticket Store

Tickets, their status history and the assignment records that make up
the ledger. They live together because a status change and its ledger
write must land in one commit.

Concurrency model: optimistic. Writers read a ticket, remember its
version, do their checks, then call commit() with that version. commit()
takes a lock scoped to the one ticket, re-checks the version and the
single-active-assignment invariant, and applies everything or nothing.
Tickets never share a lock.
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional
from uuid import UUID

from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Assignment, StatusChange, Ticket, utcnow

logger = logging.getLogger(__name__)


@dataclass
class TicketCommit:
    """Everything one ticket mutation writes."""
    ticket: Ticket
    expected_version: int
    assignments: List[Assignment] = field(default_factory=list)  # Inserts and updates
    status_change: Optional[StatusChange] = None


class InMemoryTicketStore:
    """Process-local ticket store. Returns copies only."""

    def __init__(self):
        self._guard = threading.Lock()
        self._ticket_locks: Dict[UUID, threading.Lock] = {}
        self._tickets: Dict[UUID, Ticket] = {}
        self._numbers: Dict[str, UUID] = {}
        self._daily_counters: Dict[date, int] = defaultdict(int)
        self._assignments: Dict[UUID, Assignment] = {}
        self._assignment_ids: Dict[UUID, List[UUID]] = defaultdict(list)  # ticket_id -> ids, oldest first
        self._active: Dict[UUID, UUID] = {}  # ticket_id -> active assignment id
        self._history: Dict[UUID, List[StatusChange]] = defaultdict(list)

    # =========================================================================
    # Tickets
    # =========================================================================

    async def next_ticket_number(self, prefix: str = "TKT") -> str:
        """TKT-YYYYMMDD-NNNN, counting per calendar day (UTC)."""
        today = utcnow().date()
        with self._guard:
            self._daily_counters[today] += 1
            seq = self._daily_counters[today]
        return f"{prefix}-{today:%Y%m%d}-{seq:04d}"

    async def create_ticket(self, ticket: Ticket) -> Ticket:
        with self._guard:
            if ticket.id in self._tickets:
                raise ConflictError(f"Ticket {ticket.id} already exists.", ticket_id=ticket.id)
            if ticket.ticket_number in self._numbers:
                raise ConflictError(
                    f"Ticket number {ticket.ticket_number} already in use.",
                    ticket_number=ticket.ticket_number,
                )
            self._ticket_locks[ticket.id] = threading.Lock()
            self._tickets[ticket.id] = ticket.model_copy(deep=True)
            self._numbers[ticket.ticket_number] = ticket.id
        return ticket.model_copy(deep=True)

    async def get_ticket(self, ticket_id: UUID) -> Ticket:
        with self._lock_for(ticket_id):
            return self._tickets[ticket_id].model_copy(deep=True)

    async def get_ticket_by_number(self, ticket_number: str) -> Ticket:
        with self._guard:
            ticket_id = self._numbers.get(ticket_number)
        if ticket_id is None:
            raise NotFoundError(
                f"Ticket {ticket_number} not found.", ticket_number=ticket_number
            )
        return await self.get_ticket(ticket_id)

    async def list_tickets(self) -> List[Ticket]:
        """Every ticket, oldest first."""
        with self._guard:
            tickets = list(self._tickets.values())
        return sorted((t.model_copy(deep=True) for t in tickets), key=lambda t: t.created_at)

    # =========================================================================
    # Ledger reads
    # =========================================================================

    async def list_assignments(self, ticket_id: UUID) -> List[Assignment]:
        """All assignment records for a ticket, oldest first."""
        with self._lock_for(ticket_id):
            return [
                self._assignments[a_id].model_copy(deep=True)
                for a_id in self._assignment_ids[ticket_id]
            ]

    async def get_active_assignment(self, ticket_id: UUID) -> Optional[Assignment]:
        with self._lock_for(ticket_id):
            active_id = self._active.get(ticket_id)
            if active_id is None:
                return None
            return self._assignments[active_id].model_copy(deep=True)

    async def count_active_for_engineer(self, engineer_id: UUID) -> int:
        return sum(
            1 for a_id in list(self._active.values())
            if self._assignments[a_id].engineer_id == engineer_id
        )

    async def status_history(self, ticket_id: UUID) -> List[StatusChange]:
        """Status changes, oldest first."""
        with self._lock_for(ticket_id):
            return [c.model_copy(deep=True) for c in self._history[ticket_id]]

    # =========================================================================
    # Commit
    # =========================================================================

    async def commit(self, change: TicketCommit) -> Ticket:
        """
        Apply a ticket update, its assignment writes and its status history
        entry atomically.

        Raises ConflictError when the ticket moved on since expected_version
        or when the result would leave two active assignments.
        """
        ticket_id = change.ticket.id
        with self._lock_for(ticket_id):
            current = self._tickets[ticket_id]
            if current.version != change.expected_version:
                raise ConflictError(
                    f"Ticket {current.ticket_number} was modified concurrently; "
                    "re-fetch and retry.",
                    ticket_id=ticket_id,
                    expected_version=change.expected_version,
                    actual_version=current.version,
                )

            staged = self._stage_assignments(ticket_id, change.assignments)
            active_ids = [a_id for a_id, a in staged.items() if a.is_active]
            if len(active_ids) > 1:
                raise ConflictError(
                    f"Ticket {current.ticket_number} already has an active assignment.",
                    ticket_id=ticket_id,
                )

            now = utcnow()
            updated = change.ticket.model_copy(
                deep=True,
                update={"version": current.version + 1, "updated_at": now},
            )
            self._tickets[ticket_id] = updated

            for assignment in change.assignments:
                if assignment.id not in self._assignments:
                    self._assignment_ids[ticket_id].append(assignment.id)
                self._assignments[assignment.id] = assignment.model_copy(deep=True)
            if active_ids:
                self._active[ticket_id] = active_ids[0]
            else:
                self._active.pop(ticket_id, None)

            if change.status_change is not None:
                self._history[ticket_id].append(change.status_change.model_copy(deep=True))

            logger.debug(
                "Committed ticket %s v%d (%d assignment writes)",
                updated.ticket_number, updated.version, len(change.assignments),
            )
            return updated.model_copy(deep=True)

    # =========================================================================
    # Private helpers
    # =========================================================================

    def _lock_for(self, ticket_id: UUID) -> threading.Lock:
        with self._guard:
            lock = self._ticket_locks.get(ticket_id)
        if lock is None:
            raise NotFoundError(f"Ticket {ticket_id} not found.", ticket_id=ticket_id)
        return lock

    def _stage_assignments(
        self,
        ticket_id: UUID,
        writes: List[Assignment],
    ) -> Dict[UUID, Assignment]:
        """
        The ticket's assignment records as they would look after the writes.

        Existing records may only leave ACTIVE; nothing else about them
        changes.
        """
        staged = {a_id: self._assignments[a_id] for a_id in self._assignment_ids[ticket_id]}
        for write in writes:
            if write.ticket_id != ticket_id:
                raise ValidationError(
                    "Assignment belongs to a different ticket.",
                    assignment_id=write.id,
                )
            existing = staged.get(write.id)
            if existing is not None:
                if not existing.is_active:
                    raise ConflictError(
                        f"Assignment {write.id} is already {existing.status.value}.",
                        assignment_id=write.id,
                    )
                if (
                    write.engineer_id != existing.engineer_id
                    or write.assignment_tier != existing.assignment_tier
                    or write.sequence != existing.sequence
                ):
                    raise ValidationError(
                        "Assignment records are append-only; only status may change.",
                        assignment_id=write.id,
                    )
            staged[write.id] = write
        return staged
