"""Wiring: one set of stores and services per process (or per test)."""

from dataclasses import dataclass
from typing import Optional

from .config import Settings, get_settings
from .services.autoassign import AutoAssigner, build_policy
from .services.events import EventPublisher
from .services.ledger import AssignmentLedger
from .services.partners import PartnerService
from .services.resolver import EligibilityService
from .services.tickets import TicketService
from .services.workflow import StatusWorkflowEngine
from .stores import InMemoryOrganizationGraph, InMemoryTicketStore


@dataclass
class Container:
    settings: Settings
    graph: InMemoryOrganizationGraph
    tickets_store: InMemoryTicketStore
    publisher: EventPublisher
    eligibility: EligibilityService
    workflow: StatusWorkflowEngine
    ledger: AssignmentLedger
    tickets: TicketService
    auto_assigner: AutoAssigner
    partners: PartnerService


def build_container(
    settings: Optional[Settings] = None,
    graph: Optional[InMemoryOrganizationGraph] = None,
    ticket_store: Optional[InMemoryTicketStore] = None,
) -> Container:
    settings = settings or get_settings()
    graph = graph if graph is not None else InMemoryOrganizationGraph()
    ticket_store = ticket_store if ticket_store is not None else InMemoryTicketStore()

    publisher = EventPublisher(timeout_seconds=settings.notifier_timeout_seconds)
    eligibility = EligibilityService(
        ticket_store,
        graph,
        timeout_seconds=settings.graph_timeout_seconds,
        enforce_tier_eligibility=settings.enforce_tier_eligibility,
    )
    workflow = StatusWorkflowEngine(ticket_store, eligibility, publisher)
    ledger = AssignmentLedger(ticket_store, workflow, eligibility, publisher)
    return Container(
        settings=settings,
        graph=graph,
        tickets_store=ticket_store,
        publisher=publisher,
        eligibility=eligibility,
        workflow=workflow,
        ledger=ledger,
        tickets=TicketService(
            ticket_store, graph, eligibility, publisher,
            number_prefix=settings.ticket_number_prefix,
            sla_response_hours=settings.sla_response_hours,
            sla_resolution_hours=settings.sla_resolution_hours,
        ),
        auto_assigner=AutoAssigner(
            ticket_store, eligibility, ledger,
            build_policy(settings.auto_assign_policy, ticket_store),
        ),
        partners=PartnerService(graph, eligibility),
    )
