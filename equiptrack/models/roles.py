"""
What each organization type may do in the service network.

OrgType is closed: every function here handles each member explicitly and
raises on anything else, so a new type cannot silently land in a tier.
"""

from .assignment import AssignmentTier
from .organization import OrgType


def home_tier(org_type: OrgType) -> AssignmentTier:
    """The tier an organization serves in when it is not a partner of the OEM."""
    if org_type is OrgType.MANUFACTURER:
        return AssignmentTier.TIER_1
    if org_type is OrgType.DISTRIBUTOR:
        return AssignmentTier.TIER_2
    if org_type is OrgType.DEALER:
        return AssignmentTier.TIER_2
    if org_type is OrgType.SERVICE_PROVIDER:
        return AssignmentTier.TIER_3
    if org_type is OrgType.HOSPITAL:
        return AssignmentTier.TIER_4
    raise ValueError(f"Unhandled organization type: {org_type!r}")


def can_partner(org_type: OrgType) -> bool:
    """Whether an organization of this type may be the partner end of an association."""
    if org_type is OrgType.DISTRIBUTOR:
        return True
    if org_type is OrgType.DEALER:
        return True
    if org_type is OrgType.SERVICE_PROVIDER:
        return True
    if org_type is OrgType.MANUFACTURER:
        return False
    if org_type is OrgType.HOSPITAL:
        return False
    raise ValueError(f"Unhandled organization type: {org_type!r}")
