from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class OrganizationType(str, Enum):
    REFERRING_PRACTICE = "referring_practice"
    RADIOLOGY_GROUP = "radiology_group"


class Organization(BaseModel):
    id: UUID
    name: str
    type: OrganizationType
    npi: Optional[str] = None
    address_line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    phone_number: Optional[str] = None
    created_at: datetime


class RelationshipStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"
    TERMINATED = "terminated"


class OrganizationRelationship(BaseModel):
    """A link between two organizations, requested by one and approved by the other.

    Orders may only be routed across an ``active`` relationship.
    """

    id: UUID
    organization_id: UUID
    related_organization_id: UUID
    status: RelationshipStatus = RelationshipStatus.PENDING
    initiated_by_user_id: UUID
    approved_by_user_id: Optional[UUID] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    def involves(self, organization_id: UUID) -> bool:
        return organization_id in (self.organization_id, self.related_organization_id)

    def other_party(self, organization_id: UUID) -> UUID:
        if organization_id == self.organization_id:
            return self.related_organization_id
        return self.organization_id
