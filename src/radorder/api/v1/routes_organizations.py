from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from src.radorder.domain.models.organization import Organization, OrganizationRelationship, RelationshipStatus
from src.radorder.domain.models.user import User, UserRole
from src.radorder.security import get_current_user, require_roles
from src.radorder.services.organizations.service import organization_service

router = APIRouter(
    prefix="/organizations",
    tags=["organizations"],
    dependencies=[Depends(get_current_user)],
)


class RelationshipRequest(BaseModel):
    related_organization_id: UUID
    notes: Optional[str] = None


class RelationshipStatusUpdate(BaseModel):
    status: RelationshipStatus


class RelationshipView(BaseModel):
    relationship: OrganizationRelationship
    # The organization on the other side, from the caller's point of view.
    other_organization: Optional[Organization] = None


def _view(rel: OrganizationRelationship, organization_id: UUID) -> RelationshipView:
    other = organization_service.get_organization(rel.other_party(organization_id))
    return RelationshipView(relationship=rel, other_organization=other)


@router.get("/current", response_model=Organization)
async def get_current_organization(current_user: User = Depends(get_current_user)) -> Organization:
    return organization_service.require_organization(current_user.organization_id)


@router.get("/search", response_model=List[Organization])
async def search_organizations(
    q: str = Query(..., min_length=1),
    current_user: User = Depends(get_current_user),
) -> List[Organization]:
    return [org for org in organization_service.search(q) if org.id != current_user.organization_id]


@router.post("/relationships", response_model=OrganizationRelationship, status_code=status.HTTP_201_CREATED)
async def request_relationship(
    payload: RelationshipRequest,
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
) -> OrganizationRelationship:
    return organization_service.request_relationship(
        organization_id=current_user.organization_id,
        related_organization_id=payload.related_organization_id,
        initiated_by_user_id=current_user.id,
        notes=payload.notes,
    )


@router.get("/relationships", response_model=List[RelationshipView])
async def list_relationships(current_user: User = Depends(get_current_user)) -> List[RelationshipView]:
    org_id = current_user.organization_id
    return [_view(rel, org_id) for rel in organization_service.list_relationships(org_id)]


@router.get("/relationships/incoming", response_model=List[RelationshipView])
async def list_incoming_requests(current_user: User = Depends(get_current_user)) -> List[RelationshipView]:
    org_id = current_user.organization_id
    return [_view(rel, org_id) for rel in organization_service.list_incoming_requests(org_id)]


@router.patch("/relationships/{relationship_id}", response_model=OrganizationRelationship)
async def update_relationship(
    relationship_id: UUID,
    payload: RelationshipStatusUpdate,
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
) -> OrganizationRelationship:
    return organization_service.update_relationship_status(
        relationship_id,
        organization_id=current_user.organization_id,
        user_id=current_user.id,
        status=payload.status,
    )
