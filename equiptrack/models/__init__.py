"""
equiptrack Models

Organization graph + Tickets + Assignment ledger
"""

from .base import SYSTEM_ACTOR_ID, utcnow
from .organization import (
    # Enums
    OrgType,
    OrgStatus,
    AssociationType,
    EngineerStatus,
    EngineerLevel,

    # Graph models
    Organization,
    PartnerAssociation,
    Engineer,
    Equipment,
)
from .assignment import (
    AssignmentTier,
    AssignmentStatus,
    Assignment,
    EligibleEngineer,
    TierCandidate,
)
from .ticket import (
    TicketStatus,
    Priority,
    EventType,
    Ticket,
    StatusChange,
    TicketEvent,
)

__all__ = [
    "SYSTEM_ACTOR_ID", "utcnow",
    "OrgType", "OrgStatus", "AssociationType", "EngineerStatus", "EngineerLevel",
    "Organization", "PartnerAssociation", "Engineer", "Equipment",
    "AssignmentTier", "AssignmentStatus", "Assignment", "EligibleEngineer", "TierCandidate",
    "TicketStatus", "Priority", "EventType", "Ticket", "StatusChange", "TicketEvent",
]
