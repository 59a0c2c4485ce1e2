"""
equiptrack Assignment Models

The ledger is append-only:
- A ticket has at most one ACTIVE assignment
- Reassignment flips the old record to REASSIGNED and inserts a new ACTIVE one
- Records are never deleted
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple
from uuid import UUID, uuid4
from pydantic import BaseModel, Field, computed_field

from .base import utcnow
from .organization import EngineerLevel


class AssignmentTier(str, Enum):
    TIER_1 = "tier_1"  # OEM engineers
    TIER_2 = "tier_2"  # Channel partner engineers
    TIER_3 = "tier_3"  # Multi-brand service provider
    TIER_4 = "tier_4"  # Hospital in-house engineers

    @property
    def rank(self) -> int:
        return int(self.value.rsplit("_", 1)[1])

    @property
    def label(self) -> str:
        return TIER_LABELS[self]


TIER_LABELS = {
    AssignmentTier.TIER_1: "OEM",
    AssignmentTier.TIER_2: "Partner",
    AssignmentTier.TIER_3: "Multi-brand service provider",
    AssignmentTier.TIER_4: "Hospital internal",
}


class AssignmentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    REASSIGNED = "reassigned"
    CANCELLED = "cancelled"


class Assignment(BaseModel):
    """One engineer's stint on a ticket."""
    id: UUID = Field(default_factory=uuid4)
    ticket_id: UUID
    engineer_id: UUID
    engineer_name: Optional[str] = None
    organization_id: UUID  # Engineer's owning org at assignment time

    assignment_tier: AssignmentTier
    sequence: int = 1  # 1, 2, 3... per ticket

    assigned_at: datetime = Field(default_factory=utcnow)
    assigned_by: UUID

    # Required on the outgoing record when it is reassigned
    reason: Optional[str] = None
    status: AssignmentStatus = AssignmentStatus.ACTIVE

    ended_at: Optional[datetime] = None
    ended_by: Optional[UUID] = None
    supersedes_id: Optional[UUID] = None

    @property
    def is_active(self) -> bool:
        return self.status == AssignmentStatus.ACTIVE

    def ended(
        self,
        status: AssignmentStatus,
        ended_by: UUID,
        reason: Optional[str] = None,
    ) -> "Assignment":
        """Copy of this record moved out of ACTIVE. The original is untouched."""
        return self.model_copy(update={
            "status": status,
            "ended_at": utcnow(),
            "ended_by": ended_by,
            "reason": reason if reason is not None else self.reason,
        })


class EligibleEngineer(BaseModel):
    """An engineer in a tier pool, as the resolver presents it."""
    engineer_id: UUID
    name: str
    organization_id: UUID
    organization_name: str
    engineer_level: EngineerLevel
    tier: AssignmentTier


class TierCandidate(BaseModel):
    """
    One tier of the resolver output.

    Tier 2 may combine several general partners, hence organization_ids.
    """
    tier: AssignmentTier
    organization_ids: Tuple[UUID, ...] = ()
    engineers: List[EligibleEngineer] = Field(default_factory=list)

    @computed_field
    @property
    def organization_id(self) -> Optional[UUID]:
        return self.organization_ids[0] if self.organization_ids else None

    @property
    def is_empty(self) -> bool:
        return not self.engineers

    def contains(self, engineer_id: UUID) -> bool:
        return any(e.engineer_id == engineer_id for e in self.engineers)
