"""
equiptrack Organization Graph Store

Organizations, their engineer rosters, installed equipment and the
directed partner associations between them.

Writers hold the store lock for the whole mutation. Readers that need a
consistent view across several lookups (the tier resolver) take a
snapshot(), which is copied under the same lock.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import (
    AssociationType,
    Engineer,
    EngineerStatus,
    Equipment,
    Organization,
    OrgStatus,
    PartnerAssociation,
)
from ..models.roles import can_partner

logger = logging.getLogger(__name__)


def _engineer_order(engineer: Engineer):
    return (engineer.name.casefold(), str(engineer.id))


def order_partners(
    associations: Iterable[PartnerAssociation],
    parent_org_id: UUID,
    association_type: Optional[AssociationType] = None,
    equipment_id: Optional[UUID] = None,
) -> List[PartnerAssociation]:
    """
    Filter a parent's associations and order them.

    Equipment-specific associations come before general ones; inside each
    group the order is (created_at, id). When equipment_id is given,
    equipment-specific associations for other equipment are dropped.
    """
    specific = []
    general = []
    for assoc in associations:
        if assoc.parent_org_id != parent_org_id:
            continue
        if association_type is not None and assoc.association_type != association_type:
            continue
        if assoc.is_equipment_specific:
            if equipment_id is not None and assoc.equipment_id != equipment_id:
                continue
            specific.append(assoc)
        else:
            general.append(assoc)

    key = lambda a: (a.created_at, str(a.id))
    return sorted(specific, key=key) + sorted(general, key=key)


@dataclass(frozen=True)
class GraphSnapshot:
    """Immutable point-in-time copy of the organization graph."""
    organizations: Dict[UUID, Organization]
    engineers: Dict[UUID, Tuple[Engineer, ...]]  # org_id -> active roster
    associations: Tuple[PartnerAssociation, ...]

    def organization(self, org_id: UUID) -> Optional[Organization]:
        return self.organizations.get(org_id)

    def engineers_of(self, org_id: UUID) -> Tuple[Engineer, ...]:
        return self.engineers.get(org_id, ())

    def partners_of(
        self,
        parent_org_id: UUID,
        association_type: Optional[AssociationType] = None,
        equipment_id: Optional[UUID] = None,
    ) -> List[PartnerAssociation]:
        return order_partners(self.associations, parent_org_id, association_type, equipment_id)

    def organizations_by_name(self) -> List[Organization]:
        return sorted(
            self.organizations.values(), key=lambda o: (o.name.casefold(), str(o.id))
        )


class InMemoryOrganizationGraph:
    """
    Process-local organization graph.

    Every method returns copies; callers never hold a reference into
    the store's own records.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._organizations: Dict[UUID, Organization] = {}
        self._engineers: Dict[UUID, Engineer] = {}
        self._equipment: Dict[UUID, Equipment] = {}
        self._associations: Dict[UUID, PartnerAssociation] = {}

    # =========================================================================
    # Organizations
    # =========================================================================

    async def add_organization(self, organization: Organization) -> Organization:
        with self._lock:
            if organization.id in self._organizations:
                raise ConflictError(
                    f"Organization {organization.id} already exists.",
                    organization_id=organization.id,
                )
            self._organizations[organization.id] = organization.model_copy(deep=True)
        logger.info("Organization added: %s (%s)", organization.name, organization.org_type.value)
        return organization.model_copy(deep=True)

    async def get_organization(self, org_id: UUID) -> Organization:
        with self._lock:
            return self._require_org(org_id).model_copy(deep=True)

    async def deactivate_organization(self, org_id: UUID) -> Organization:
        with self._lock:
            org = self._require_org(org_id)
            org.status = OrgStatus.INACTIVE
            logger.info("Organization deactivated: %s", org_id)
            return org.model_copy(deep=True)

    # =========================================================================
    # Engineers
    # =========================================================================

    async def add_engineer(self, engineer: Engineer) -> Engineer:
        with self._lock:
            self._require_org(engineer.organization_id)
            if engineer.id in self._engineers:
                raise ConflictError(
                    f"Engineer {engineer.id} already exists.",
                    engineer_id=engineer.id,
                )
            self._engineers[engineer.id] = engineer.model_copy(deep=True)
        return engineer.model_copy(deep=True)

    async def get_engineer(self, engineer_id: UUID) -> Engineer:
        with self._lock:
            engineer = self._engineers.get(engineer_id)
            if engineer is None:
                raise NotFoundError(f"Engineer {engineer_id} not found.", engineer_id=engineer_id)
            return engineer.model_copy(deep=True)

    async def get_engineers(self, org_id: UUID) -> List[Engineer]:
        """Active engineers owned by org_id."""
        with self._lock:
            self._require_org(org_id)
            return [e.model_copy(deep=True) for e in self._active_roster(org_id)]

    async def deactivate_engineer(self, engineer_id: UUID) -> Engineer:
        with self._lock:
            engineer = self._engineers.get(engineer_id)
            if engineer is None:
                raise NotFoundError(f"Engineer {engineer_id} not found.", engineer_id=engineer_id)
            engineer.status = EngineerStatus.INACTIVE
            return engineer.model_copy(deep=True)

    # =========================================================================
    # Equipment
    # =========================================================================

    async def add_equipment(self, equipment: Equipment) -> Equipment:
        with self._lock:
            self._require_org(equipment.manufacturer_id)
            self._require_org(equipment.customer_org_id)
            if equipment.id in self._equipment:
                raise ConflictError(
                    f"Equipment {equipment.id} already exists.",
                    equipment_id=equipment.id,
                )
            self._equipment[equipment.id] = equipment.model_copy(deep=True)
        return equipment.model_copy(deep=True)

    async def get_equipment(self, equipment_id: UUID) -> Equipment:
        with self._lock:
            return self._require_equipment(equipment_id).model_copy(deep=True)

    # =========================================================================
    # Partner associations
    # =========================================================================

    async def get_partners(
        self,
        org_id: UUID,
        association_type: Optional[AssociationType] = None,
        equipment_id: Optional[UUID] = None,
    ) -> List[PartnerAssociation]:
        with self._lock:
            ordered = order_partners(
                self._associations.values(), org_id, association_type, equipment_id
            )
            return [a.model_copy(deep=True) for a in ordered]

    async def upsert_association(
        self,
        parent_org_id: UUID,
        partner_org_id: UUID,
        association_type: AssociationType = AssociationType.GENERAL,
        equipment_id: Optional[UUID] = None,
        rel_type: str = "services_for",
    ) -> PartnerAssociation:
        """
        Create or refresh a partner association.

        An identical (parent, partner, equipment) association is returned
        as-is with rel_type refreshed. A second equipment-specific partner
        for the same (parent, equipment) pair is a conflict.
        """
        association_type = AssociationType(association_type)
        if association_type == AssociationType.EQUIPMENT_SPECIFIC and equipment_id is None:
            raise ValidationError("equipment_specific associations require equipment_id.")
        if association_type == AssociationType.GENERAL and equipment_id is not None:
            raise ValidationError(
                "equipment_id is only allowed on equipment_specific associations.",
                equipment_id=equipment_id,
            )
        if parent_org_id == partner_org_id:
            raise ValidationError("An organization cannot partner with itself.")
        if not rel_type or not rel_type.strip():
            raise ValidationError("rel_type must not be empty.")

        with self._lock:
            self._require_org(parent_org_id)
            partner = self._require_org(partner_org_id)
            if not can_partner(partner.org_type):
                raise ValidationError(
                    f"Organization type {partner.org_type.value} cannot act as a service partner.",
                    partner_org_id=partner_org_id,
                )
            if equipment_id is not None:
                equipment = self._require_equipment(equipment_id)
                if equipment.manufacturer_id != parent_org_id:
                    raise ValidationError(
                        "Equipment does not belong to the parent manufacturer.",
                        equipment_id=equipment_id,
                        parent_org_id=parent_org_id,
                    )

            for existing in self._associations.values():
                if existing.parent_org_id != parent_org_id:
                    continue
                if existing.association_type != association_type:
                    continue
                if existing.equipment_id != equipment_id:
                    continue
                if existing.partner_org_id == partner_org_id:
                    existing.rel_type = rel_type
                    return existing.model_copy(deep=True)
                if association_type == AssociationType.EQUIPMENT_SPECIFIC:
                    raise ConflictError(
                        "Equipment already has a specific partner for this manufacturer.",
                        parent_org_id=parent_org_id,
                        equipment_id=equipment_id,
                        existing_partner_org_id=existing.partner_org_id,
                    )

            association = PartnerAssociation(
                parent_org_id=parent_org_id,
                partner_org_id=partner_org_id,
                association_type=association_type,
                equipment_id=equipment_id,
                rel_type=rel_type,
            )
            self._associations[association.id] = association

        logger.info(
            "Partner association created: %s -> %s (%s, equipment=%s)",
            parent_org_id, partner_org_id, association_type.value, equipment_id,
        )
        return association.model_copy(deep=True)

    async def remove_association(
        self,
        parent_org_id: UUID,
        partner_org_id: UUID,
        equipment_id: Optional[UUID] = None,
    ) -> bool:
        """
        Remove the (parent, partner, equipment) association.

        Idempotent: returns False when nothing matched, never raises for a
        missing association.
        """
        with self._lock:
            for assoc_id, assoc in list(self._associations.items()):
                if (
                    assoc.parent_org_id == parent_org_id
                    and assoc.partner_org_id == partner_org_id
                    and assoc.equipment_id == equipment_id
                ):
                    del self._associations[assoc_id]
                    logger.info(
                        "Partner association removed: %s -> %s (equipment=%s)",
                        parent_org_id, partner_org_id, equipment_id,
                    )
                    return True
        return False

    # =========================================================================
    # Snapshot
    # =========================================================================

    async def snapshot(self) -> GraphSnapshot:
        with self._lock:
            organizations = {
                org_id: org.model_copy(deep=True)
                for org_id, org in self._organizations.items()
            }
            engineers = {
                org_id: tuple(e.model_copy(deep=True) for e in self._active_roster(org_id))
                for org_id in self._organizations
            }
            associations = tuple(a.model_copy(deep=True) for a in self._associations.values())
        return GraphSnapshot(
            organizations=organizations,
            engineers=engineers,
            associations=associations,
        )

    # =========================================================================
    # Private helpers (caller holds the lock)
    # =========================================================================

    def _require_org(self, org_id: UUID) -> Organization:
        org = self._organizations.get(org_id)
        if org is None:
            raise NotFoundError(f"Organization {org_id} not found.", organization_id=org_id)
        return org

    def _require_equipment(self, equipment_id: UUID) -> Equipment:
        equipment = self._equipment.get(equipment_id)
        if equipment is None:
            raise NotFoundError(f"Equipment {equipment_id} not found.", equipment_id=equipment_id)
        return equipment

    def _active_roster(self, org_id: UUID) -> List[Engineer]:
        roster = [
            e for e in self._engineers.values()
            if e.organization_id == org_id and e.is_active
        ]
        return sorted(roster, key=_engineer_order)
