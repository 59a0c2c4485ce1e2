"""
equiptrack Ticket Model

Core principles:
1. Ticket = Service request against one piece of equipment
2. Creation facts (equipment, manufacturer, customer) are IMMUTABLE
3. Status moves only along the workflow graph
4. Every status change is appended to the status history
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4
from pydantic import BaseModel, Field

from .base import utcnow
from .assignment import Assignment


# =============================================================================
# ENUMS
# =============================================================================

class TicketStatus(str, Enum):
    NEW = "new"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    RESOLVED = "resolved"
    CLOSED = "closed"        # Terminal
    CANCELLED = "cancelled"  # Terminal


class Priority(str, Enum):
    CRITICAL = "critical"  # Needs a senior (L3) engineer
    HIGH = "high"          # Needs L2+
    MEDIUM = "medium"
    LOW = "low"


class EventType(str, Enum):
    CREATED = "ticket.created"
    ASSIGNED = "ticket.assigned"
    REASSIGNED = "ticket.reassigned"
    STARTED = "ticket.started"
    ON_HOLD = "ticket.on_hold"
    RESUMED = "ticket.resumed"
    RESOLVED = "ticket.resolved"
    REOPENED = "ticket.reopened"
    CLOSED = "ticket.closed"
    CANCELLED = "ticket.cancelled"
    PRIORITY_CHANGED = "ticket.priority_changed"
    ACKNOWLEDGED = "ticket.acknowledged"
    SLA_BREACHED = "ticket.sla_breached"


# =============================================================================
# CORE MODELS
# =============================================================================

class Ticket(BaseModel):
    """
    The service ticket.

    Creation facts never change. Status, assignee, priority, the
    lifecycle stamps and SLA fields move with the workflow; updated_at
    and version are bumped by the store on every commit.
    """
    id: UUID = Field(default_factory=uuid4)
    ticket_number: str = Field(..., description="Human-readable ID, e.g. TKT-20240131-0001")

    # Creation facts
    equipment_id: UUID
    manufacturer_id: UUID  # Denormalized from equipment
    customer_org_id: UUID  # Hospital that raised it
    description: Optional[str] = None
    created_by: Optional[UUID] = None

    priority: Priority = Priority.MEDIUM
    status: TicketStatus = TicketStatus.NEW
    assigned_engineer_name: Optional[str] = None
    resolution_notes: Optional[str] = None

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    assigned_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None  # Cleared on reopen
    closed_at: Optional[datetime] = None

    # SLA, derived from priority at open and on priority change
    sla_response_due: Optional[datetime] = None
    sla_resolution_due: Optional[datetime] = None
    sla_breached: bool = False  # Sticky once set

    # Bumped on every commit; writers compare-and-swap on it
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in (TicketStatus.CLOSED, TicketStatus.CANCELLED)


class StatusChange(BaseModel):
    """One entry in the ticket's audit trail of status changes."""
    id: UUID = Field(default_factory=uuid4)
    ticket_id: UUID
    from_status: TicketStatus
    to_status: TicketStatus
    changed_by: UUID
    changed_at: datetime = Field(default_factory=utcnow)
    reason: Optional[str] = None


class TicketEvent(BaseModel):
    """
    Outcome of a committed change, handed to notifiers.

    Published after commit; delivery is best effort.
    """
    id: UUID = Field(default_factory=uuid4)
    event_type: EventType
    ticket_id: UUID
    ticket_number: str
    from_status: Optional[TicketStatus] = None
    status: TicketStatus
    assignment: Optional[Assignment] = None
    actor_id: UUID
    occurred_at: datetime = Field(default_factory=utcnow)
