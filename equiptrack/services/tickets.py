"""
equiptrack Ticket Intake

Opening a ticket pins its creation facts: the equipment, and through it
the manufacturer and the customer hospital. Those never change again.

SLA:
- Response and resolution deadlines come from per-priority hour tables,
  counted from created_at, and move when the priority changes
- Response is met once the ticket is acknowledged or has an engineer
- Resolution is met once the ticket is resolved
- A breach is recorded once and stays recorded
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from uuid import UUID

from ..config import DEFAULT_SLA_RESOLUTION_HOURS, DEFAULT_SLA_RESPONSE_HOURS
from ..errors import ConflictError, InvalidTransitionError, ValidationError
from ..models import (
    SYSTEM_ACTOR_ID,
    EventType,
    Priority,
    Ticket,
    TicketStatus,
    utcnow,
)
from ..stores.tickets import TicketCommit
from .events import build_event

logger = logging.getLogger(__name__)


class TicketService:
    def __init__(
        self,
        ticket_store,
        graph_store,
        eligibility,
        publisher,
        number_prefix: str = "TKT",
        sla_response_hours: Optional[Dict[Priority, float]] = None,
        sla_resolution_hours: Optional[Dict[Priority, float]] = None,
    ):
        self.ticket_store = ticket_store
        self.graph_store = graph_store
        self.eligibility = eligibility
        self.publisher = publisher
        self.number_prefix = number_prefix
        self.sla_response_hours = sla_response_hours or DEFAULT_SLA_RESPONSE_HOURS
        self.sla_resolution_hours = sla_resolution_hours or DEFAULT_SLA_RESOLUTION_HOURS

    async def open_ticket(
        self,
        equipment_id: UUID,
        actor_id: UUID,
        priority: Priority = Priority.MEDIUM,
        description: Optional[str] = None,
    ) -> Ticket:
        """
        Open a ticket in NEW against one piece of installed equipment.

        Manufacturer and customer are copied from the equipment record.
        SLA deadlines are set from the priority.
        """
        priority = _coerce_priority(priority)
        equipment = await self.eligibility.bounded(
            self.graph_store.get_equipment(equipment_id), "equipment lookup"
        )

        ticket = Ticket(
            ticket_number=await self.ticket_store.next_ticket_number(self.number_prefix),
            equipment_id=equipment.id,
            manufacturer_id=equipment.manufacturer_id,
            customer_org_id=equipment.customer_org_id,
            description=description,
            created_by=actor_id,
            priority=priority,
        )
        ticket = ticket.model_copy(update=self._sla_deadlines(priority, ticket.created_at))
        created = await self.ticket_store.create_ticket(ticket)

        logger.info(
            "Ticket %s opened for %s (%s)",
            created.ticket_number, equipment.name, priority.value,
        )
        self.publisher.publish(build_event(EventType.CREATED, created, actor_id))
        return created

    async def get_ticket(self, ticket_id: UUID) -> Ticket:
        return await self.ticket_store.get_ticket(ticket_id)

    async def get_by_number(self, ticket_number: str) -> Ticket:
        return await self.ticket_store.get_ticket_by_number(ticket_number)

    async def change_priority(
        self,
        ticket_id: UUID,
        priority: Priority,
        actor_id: UUID,
        expected_version: Optional[int] = None,
    ) -> Ticket:
        """Change priority; SLA deadlines are recomputed from created_at."""
        priority = _coerce_priority(priority)
        ticket = await self.ticket_store.get_ticket(ticket_id)
        _require_version(ticket, expected_version)
        if ticket.is_terminal:
            raise InvalidTransitionError(
                f"Ticket {ticket.ticket_number} is {ticket.status.value}; "
                "priority can no longer change.",
                ticket_id=ticket_id,
            )
        if ticket.priority == priority:
            return ticket

        updates = {"priority": priority}
        updates.update(self._sla_deadlines(priority, ticket.created_at))
        committed = await self.ticket_store.commit(TicketCommit(
            ticket=ticket.model_copy(update=updates),
            expected_version=ticket.version,
        ))
        logger.info(
            "Ticket %s priority %s -> %s",
            committed.ticket_number, ticket.priority.value, priority.value,
        )
        self.publisher.publish(build_event(EventType.PRIORITY_CHANGED, committed, actor_id))
        return committed

    async def acknowledge(
        self,
        ticket_id: UUID,
        actor_id: UUID,
        expected_version: Optional[int] = None,
    ) -> Ticket:
        """
        Record that someone has seen a NEW ticket.

        Status does not change. Acknowledging meets the response SLA.
        """
        ticket = await self.ticket_store.get_ticket(ticket_id)
        _require_version(ticket, expected_version)
        if ticket.status != TicketStatus.NEW:
            raise InvalidTransitionError(
                f"Ticket {ticket.ticket_number} is {ticket.status.value}; "
                "only new tickets can be acknowledged.",
                ticket_id=ticket_id,
                status=ticket.status.value,
            )
        if ticket.acknowledged_at is not None:
            return ticket

        committed = await self.ticket_store.commit(TicketCommit(
            ticket=ticket.model_copy(update={"acknowledged_at": utcnow()}),
            expected_version=ticket.version,
        ))
        logger.info("Ticket %s acknowledged by %s", committed.ticket_number, actor_id)
        self.publisher.publish(build_event(EventType.ACKNOWLEDGED, committed, actor_id))
        return committed

    async def check_sla(self, ticket_id: UUID, now: Optional[datetime] = None) -> Ticket:
        """
        Mark the ticket breached if a deadline has passed unmet.

        Returns the ticket as stored afterwards.
        """
        ticket = await self.ticket_store.get_ticket(ticket_id)
        return await self._check(ticket, now or utcnow())

    async def sla_breaches(self, now: Optional[datetime] = None) -> List[Ticket]:
        """
        Check every open ticket and return the breached ones, by deadline.

        A ticket changed by someone else mid-scan is judged as it was read;
        the next scan records its breach.
        """
        now = now or utcnow()
        breached = []
        for ticket in await self.ticket_store.list_tickets():
            if ticket.is_terminal:
                continue
            try:
                checked = await self._check(ticket, now)
            except ConflictError:
                logger.info("Ticket %s changed during SLA scan", ticket.ticket_number)
                if _is_breached(ticket, now):
                    breached.append(ticket)
                continue
            if checked.sla_breached:
                breached.append(checked)
        return sorted(breached, key=lambda t: t.sla_resolution_due or t.created_at)

    # =========================================================================
    # Private helpers
    # =========================================================================

    async def _check(self, ticket: Ticket, now: datetime) -> Ticket:
        if ticket.sla_breached or ticket.is_terminal or not _is_breached(ticket, now):
            return ticket

        committed = await self.ticket_store.commit(TicketCommit(
            ticket=ticket.model_copy(update={"sla_breached": True}),
            expected_version=ticket.version,
        ))
        logger.warning(
            "Ticket %s breached its SLA (%s priority)",
            committed.ticket_number, committed.priority.value,
        )
        self.publisher.publish(
            build_event(EventType.SLA_BREACHED, committed, SYSTEM_ACTOR_ID)
        )
        return committed

    def _sla_deadlines(self, priority: Priority, start: datetime) -> dict:
        return {
            "sla_response_due": start + timedelta(hours=self.sla_response_hours[priority]),
            "sla_resolution_due": start + timedelta(hours=self.sla_resolution_hours[priority]),
        }


def _is_breached(ticket: Ticket, now: datetime) -> bool:
    responded = ticket.acknowledged_at is not None or ticket.assigned_at is not None
    if ticket.sla_response_due and now > ticket.sla_response_due and not responded:
        return True
    if ticket.sla_resolution_due and now > ticket.sla_resolution_due and ticket.resolved_at is None:
        return True
    return False


def _require_version(ticket: Ticket, expected_version: Optional[int]) -> None:
    if expected_version is not None and ticket.version != expected_version:
        raise ConflictError(
            f"Ticket {ticket.ticket_number} is at version {ticket.version}, "
            f"not {expected_version}.",
            ticket_id=ticket.id,
        )


def _coerce_priority(value) -> Priority:
    try:
        return Priority(value)
    except ValueError:
        raise ValidationError(f"Unknown priority: {value!r}.")
