"""
equiptrack Event Publisher

Committed outcomes go out as TicketEvents to whatever notifiers are
subscribed (email, WhatsApp, webhooks live outside this package).

Delivery is fire-and-forget: each notifier call runs as its own task,
bounded by a timeout. A failing or slow notifier is logged and dropped;
it never reaches back into the commit that produced the event.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Set

from ..models import Assignment, EventType, Ticket, TicketEvent, TicketStatus

logger = logging.getLogger(__name__)

Notifier = Callable[[TicketEvent], Awaitable[None]]


class EventPublisher:
    """Fans TicketEvents out to subscribed notifiers."""

    def __init__(self, timeout_seconds: float = 5.0):
        self.timeout_seconds = timeout_seconds
        self._notifiers: List[Notifier] = []
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, notifier: Notifier) -> None:
        self._notifiers.append(notifier)

    def publish(self, event: TicketEvent) -> None:
        """Schedule delivery and return immediately."""
        logger.info(
            "%s %s -> %s by %s",
            event.event_type.value, event.ticket_number, event.status.value, event.actor_id,
        )
        for notifier in self._notifiers:
            task = asyncio.get_running_loop().create_task(self._deliver(notifier, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown, tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, notifier: Notifier, event: TicketEvent) -> None:
        try:
            await asyncio.wait_for(notifier(event), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Notifier %r timed out for %s on %s",
                notifier, event.event_type.value, event.ticket_number,
            )
        except Exception:
            logger.exception(
                "Notifier %r failed for %s on %s",
                notifier, event.event_type.value, event.ticket_number,
            )


def build_event(
    event_type: EventType,
    ticket: Ticket,
    actor_id,
    from_status: Optional[TicketStatus] = None,
    assignment: Optional[Assignment] = None,
) -> TicketEvent:
    return TicketEvent(
        event_type=event_type,
        ticket_id=ticket.id,
        ticket_number=ticket.ticket_number,
        from_status=from_status,
        status=ticket.status,
        assignment=assignment,
        actor_id=actor_id,
    )
