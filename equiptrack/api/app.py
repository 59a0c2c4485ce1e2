"""
equiptrack API

FastAPI application with:
- Ticket intake and lookup
- Status workflow transitions
- Tier resolution (who can take this ticket?)
- Assignment, reassignment and auto-assignment
- Manufacturer partner network management

Authentication happens upstream; the caller's id arrives in X-Actor-Id.
"""

from contextlib import asynccontextmanager
from typing import List, Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Header, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..container import Container, build_container
from ..errors import TicketingError
from ..log import configure_logging
from ..models import (
    Assignment,
    AssignmentTier,
    AssociationType,
    PartnerAssociation,
    Priority,
    StatusChange,
    Ticket,
    TicketStatus,
    TierCandidate,
)


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class OpenTicketRequest(BaseModel):
    equipment_id: UUID
    priority: Priority = Priority.MEDIUM
    description: Optional[str] = None


class ChangePriorityRequest(BaseModel):
    priority: Priority
    expected_version: Optional[int] = None


class TransitionRequest(BaseModel):
    target: TicketStatus
    reason: Optional[str] = None
    expected_version: Optional[int] = None


class AssignRequest(BaseModel):
    engineer_id: UUID
    tier: AssignmentTier
    reason: Optional[str] = None


class ReassignRequest(BaseModel):
    engineer_id: UUID
    tier: AssignmentTier
    reason: str


class UpsertPartnerRequest(BaseModel):
    partner_org_id: UUID
    association_type: AssociationType = AssociationType.GENERAL
    equipment_id: Optional[UUID] = None
    rel_type: str = "services_for"


class RemovePartnerResponse(BaseModel):
    removed: bool


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_container(request: Request) -> Container:
    return request.app.state.container


def get_actor_id(x_actor_id: UUID = Header(...)) -> UUID:
    return x_actor_id


# =============================================================================
# APP FACTORY
# =============================================================================

def create_app(container: Optional[Container] = None) -> FastAPI:
    container = container or build_container()
    configure_logging(container.settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await container.publisher.drain()

    app = FastAPI(
        title="equiptrack",
        description="Service tickets for medical equipment across a manufacturer's service network",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(TicketingError)
    async def ticketing_error_handler(request: Request, exc: TicketingError):
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:

    # =========================================================================
    # HEALTH CHECK
    # =========================================================================

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": "equiptrack",
            "version": __version__,
        }

    # =========================================================================
    # TICKET ENDPOINTS
    # =========================================================================

    @app.post("/tickets", status_code=status.HTTP_201_CREATED, response_model=Ticket)
    async def open_ticket(
        request: OpenTicketRequest,
        actor_id: UUID = Depends(get_actor_id),
        c: Container = Depends(get_container),
    ):
        """
        Open a ticket against installed equipment.

        Manufacturer and customer come from the equipment record.
        """
        return await c.tickets.open_ticket(
            request.equipment_id,
            actor_id,
            priority=request.priority,
            description=request.description,
        )

    @app.get("/tickets/by-number/{ticket_number}", response_model=Ticket)
    async def get_ticket_by_number(ticket_number: str, c: Container = Depends(get_container)):
        return await c.tickets.get_by_number(ticket_number)

    @app.get("/tickets/sla-breaches", response_model=List[Ticket])
    async def list_sla_breaches(c: Container = Depends(get_container)):
        """Open tickets past an unmet SLA deadline. Newly found breaches are recorded."""
        return await c.tickets.sla_breaches()

    @app.get("/tickets/{ticket_id}", response_model=Ticket)
    async def get_ticket(ticket_id: UUID, c: Container = Depends(get_container)):
        return await c.tickets.get_ticket(ticket_id)

    @app.post("/tickets/{ticket_id}/priority", response_model=Ticket)
    async def change_priority(
        ticket_id: UUID,
        request: ChangePriorityRequest,
        actor_id: UUID = Depends(get_actor_id),
        c: Container = Depends(get_container),
    ):
        return await c.tickets.change_priority(
            ticket_id, request.priority, actor_id, expected_version=request.expected_version
        )

    @app.post("/tickets/{ticket_id}/acknowledge", response_model=Ticket)
    async def acknowledge_ticket(
        ticket_id: UUID,
        actor_id: UUID = Depends(get_actor_id),
        c: Container = Depends(get_container),
    ):
        return await c.tickets.acknowledge(ticket_id, actor_id)

    @app.post("/tickets/{ticket_id}/transitions", response_model=Ticket)
    async def transition_ticket(
        ticket_id: UUID,
        request: TransitionRequest,
        actor_id: UUID = Depends(get_actor_id),
        c: Container = Depends(get_container),
    ):
        """
        Move a ticket along the workflow.

        Resolving or closing completes the active assignment; cancelling
        cancels it.
        """
        return await c.workflow.transition(
            ticket_id,
            request.target,
            actor_id,
            reason=request.reason,
            expected_version=request.expected_version,
        )

    @app.get("/tickets/{ticket_id}/status-history", response_model=List[StatusChange])
    async def get_status_history(ticket_id: UUID, c: Container = Depends(get_container)):
        return await c.workflow.status_history(ticket_id)

    # =========================================================================
    # ASSIGNMENT ENDPOINTS
    # =========================================================================

    @app.get("/tickets/{ticket_id}/eligible-engineers", response_model=List[TierCandidate])
    async def get_eligible_engineers(ticket_id: UUID, c: Container = Depends(get_container)):
        """Tier pools in escalation order. Empty list when nobody qualifies."""
        return await c.eligibility.eligible_engineers(ticket_id)

    @app.post(
        "/tickets/{ticket_id}/assignments",
        status_code=status.HTTP_201_CREATED,
        response_model=Assignment,
    )
    async def assign_engineer(
        ticket_id: UUID,
        request: AssignRequest,
        actor_id: UUID = Depends(get_actor_id),
        c: Container = Depends(get_container),
    ):
        return await c.ledger.assign(
            ticket_id, request.engineer_id, request.tier, actor_id, reason=request.reason
        )

    @app.post(
        "/tickets/{ticket_id}/reassignments",
        status_code=status.HTTP_201_CREATED,
        response_model=Assignment,
    )
    async def reassign_engineer(
        ticket_id: UUID,
        request: ReassignRequest,
        actor_id: UUID = Depends(get_actor_id),
        c: Container = Depends(get_container),
    ):
        return await c.ledger.reassign(
            ticket_id, request.engineer_id, request.tier, actor_id, request.reason
        )

    @app.post(
        "/tickets/{ticket_id}/auto-assign",
        status_code=status.HTTP_201_CREATED,
        response_model=Assignment,
    )
    async def auto_assign(
        ticket_id: UUID,
        actor_id: UUID = Depends(get_actor_id),
        c: Container = Depends(get_container),
    ):
        return await c.auto_assigner.auto_assign(ticket_id, actor_id)

    @app.get("/tickets/{ticket_id}/assignments", response_model=List[Assignment])
    async def get_assignment_history(ticket_id: UUID, c: Container = Depends(get_container)):
        """Most recent first."""
        return await c.ledger.history(ticket_id)

    # =========================================================================
    # PARTNER NETWORK ENDPOINTS
    # =========================================================================

    @app.get("/organizations/{org_id}/partners", response_model=List[PartnerAssociation])
    async def list_partners(
        org_id: UUID,
        association_type: Optional[AssociationType] = None,
        equipment_id: Optional[UUID] = None,
        c: Container = Depends(get_container),
    ):
        return await c.partners.list_partners(org_id, association_type, equipment_id)

    @app.put("/organizations/{org_id}/partners", response_model=PartnerAssociation)
    async def upsert_partner(
        org_id: UUID,
        request: UpsertPartnerRequest,
        actor_id: UUID = Depends(get_actor_id),
        c: Container = Depends(get_container),
    ):
        return await c.partners.upsert_partner(
            org_id,
            request.partner_org_id,
            actor_id,
            association_type=request.association_type,
            equipment_id=request.equipment_id,
            rel_type=request.rel_type,
        )

    @app.delete(
        "/organizations/{org_id}/partners/{partner_org_id}",
        response_model=RemovePartnerResponse,
    )
    async def remove_partner(
        org_id: UUID,
        partner_org_id: UUID,
        equipment_id: Optional[UUID] = None,
        actor_id: UUID = Depends(get_actor_id),
        c: Container = Depends(get_container),
    ):
        """Idempotent: removing a missing association is not an error."""
        removed = await c.partners.remove_partner(
            org_id, partner_org_id, actor_id, equipment_id=equipment_id
        )
        return RemovePartnerResponse(removed=removed)


# =============================================================================
# RUN
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
