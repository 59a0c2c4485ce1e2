"""
equiptrack Partner Management

Manufacturers maintain their service network here: which channel
partners and service providers work on their equipment, generally or
for one specific unit.
"""

import logging
from typing import List, Optional
from uuid import UUID

from ..models import AssociationType, PartnerAssociation

logger = logging.getLogger(__name__)


class PartnerService:
    def __init__(self, graph_store, eligibility):
        self.graph_store = graph_store
        self.eligibility = eligibility

    async def list_partners(
        self,
        org_id: UUID,
        association_type: Optional[AssociationType] = None,
        equipment_id: Optional[UUID] = None,
    ) -> List[PartnerAssociation]:
        """Equipment-specific partners first, then general, each oldest first."""
        await self.eligibility.bounded(
            self.graph_store.get_organization(org_id), "organization lookup"
        )
        return await self.eligibility.bounded(
            self.graph_store.get_partners(org_id, association_type, equipment_id),
            "partner lookup",
        )

    async def upsert_partner(
        self,
        parent_org_id: UUID,
        partner_org_id: UUID,
        actor_id: UUID,
        association_type: AssociationType = AssociationType.GENERAL,
        equipment_id: Optional[UUID] = None,
        rel_type: str = "services_for",
    ) -> PartnerAssociation:
        association = await self.graph_store.upsert_association(
            parent_org_id,
            partner_org_id,
            association_type=association_type,
            equipment_id=equipment_id,
            rel_type=rel_type,
        )
        logger.info(
            "Partner %s linked to %s by %s (%s)",
            partner_org_id, parent_org_id, actor_id, association.association_type.value,
        )
        return association

    async def remove_partner(
        self,
        parent_org_id: UUID,
        partner_org_id: UUID,
        actor_id: UUID,
        equipment_id: Optional[UUID] = None,
    ) -> bool:
        """Idempotent. Returns whether anything was removed."""
        removed = await self.graph_store.remove_association(
            parent_org_id, partner_org_id, equipment_id=equipment_id
        )
        if not removed:
            logger.info(
                "No association %s -> %s (equipment=%s) to remove",
                parent_org_id, partner_org_id, equipment_id,
            )
        else:
            logger.info("Partner %s unlinked from %s by %s", partner_org_id, parent_org_id, actor_id)
        return removed
