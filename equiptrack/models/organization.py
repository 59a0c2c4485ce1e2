"""
equiptrack Organization Graph Models

Manufacturers sit at the root of a service network:
1. Manufacturer (OEM) employs its own field engineers
2. Channel partners (distributors, dealers) service on its behalf
3. Multi-brand service providers cover categories across brands
4. Hospitals may keep in-house biomedical engineers

Partner associations are directed edges parent -> partner, either general
or pinned to one piece of equipment.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Set
from uuid import UUID, uuid4
from pydantic import BaseModel, Field

from .base import utcnow


# =============================================================================
# ENUMS
# =============================================================================

class OrgType(str, Enum):
    MANUFACTURER = "manufacturer"
    DISTRIBUTOR = "distributor"          # Channel partner
    DEALER = "dealer"                    # Sub-dealer
    HOSPITAL = "hospital"
    SERVICE_PROVIDER = "service_provider"  # Multi-brand service company


class OrgStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class AssociationType(str, Enum):
    GENERAL = "general"
    EQUIPMENT_SPECIFIC = "equipment_specific"


class EngineerStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class EngineerLevel(int, Enum):
    JUNIOR = 1
    MID = 2
    SENIOR = 3


# =============================================================================
# MODELS
# =============================================================================

class Organization(BaseModel):
    """
    A node in the service network.

    Never deleted. Deactivation removes it from every tier pool.
    """
    id: UUID = Field(default_factory=uuid4)
    name: str
    org_type: OrgType
    status: OrgStatus = OrgStatus.ACTIVE

    # Equipment categories a multi-brand provider covers (e.g. "MRI", "CT")
    specializations: Set[str] = Field(default_factory=set)

    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == OrgStatus.ACTIVE


class PartnerAssociation(BaseModel):
    """
    Directed edge: partner services equipment on behalf of parent.

    equipment_id is set iff association_type is EQUIPMENT_SPECIFIC.
    """
    id: UUID = Field(default_factory=uuid4)
    parent_org_id: UUID
    partner_org_id: UUID
    association_type: AssociationType = AssociationType.GENERAL
    equipment_id: Optional[UUID] = None
    rel_type: str = "services_for"
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_equipment_specific(self) -> bool:
        return self.association_type == AssociationType.EQUIPMENT_SPECIFIC


class Engineer(BaseModel):
    """Field engineer, owned by exactly one organization."""
    id: UUID = Field(default_factory=uuid4)
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    organization_id: UUID
    specializations: Set[str] = Field(default_factory=set)
    engineer_level: EngineerLevel = EngineerLevel.JUNIOR
    status: EngineerStatus = EngineerStatus.ACTIVE

    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == EngineerStatus.ACTIVE


class Equipment(BaseModel):
    """Installed unit. Manufacturer linkage is fixed at creation."""
    id: UUID = Field(default_factory=uuid4)
    name: str
    serial_number: Optional[str] = None

    manufacturer_id: UUID
    customer_org_id: UUID  # Hospital where it is installed
    category: Optional[str] = None  # "MRI", "CT", "X-Ray", ...

    created_at: datetime = Field(default_factory=utcnow)
