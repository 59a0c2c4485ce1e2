"""
equiptrack Services

Core business logic for service tickets.
"""

from .events import EventPublisher, Notifier, build_event
from .resolver import EligibilityService, resolve, partner_pool_orgs
from .workflow import StatusWorkflowEngine, ALLOWED_TRANSITIONS, allowed_transitions
from .ledger import AssignmentLedger
from .tickets import TicketService
from .autoassign import (
    AutoAssigner,
    AutoAssignPolicy,
    FirstEligiblePolicy,
    LeastLoadedPolicy,
    MIN_LEVEL,
)
from .partners import PartnerService

__all__ = [
    # Outcome events
    "EventPublisher", "Notifier", "build_event",

    # Tier resolution
    "EligibilityService", "resolve", "partner_pool_orgs",

    # Status workflow
    "StatusWorkflowEngine", "ALLOWED_TRANSITIONS", "allowed_transitions",

    # Assignment ledger
    "AssignmentLedger",

    # Intake
    "TicketService",

    # Auto-assignment
    "AutoAssigner", "AutoAssignPolicy", "FirstEligiblePolicy", "LeastLoadedPolicy", "MIN_LEVEL",

    # Partner network
    "PartnerService",
]
