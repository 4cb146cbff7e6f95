from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field

from src.radorder.api.v1.schemas import UserOut
from src.radorder.domain.models.invitation import InvitationStatus
from src.radorder.domain.models.user import User, UserRole
from src.radorder.security import get_current_user, require_roles
from src.radorder.services.organizations.service import organization_service
from src.radorder.services.users.service import user_service

router = APIRouter(prefix="/users", tags=["users"])
invitations_router = APIRouter(prefix="/invitations", tags=["invitations"])


class InvitationCreateRequest(BaseModel):
    email: EmailStr
    role: UserRole


class InvitationOut(BaseModel):
    id: UUID
    organization_id: UUID
    organization_name: Optional[str] = None
    email: str
    role: UserRole
    status: InvitationStatus
    expires_at: datetime


class InvitationCreated(InvitationOut):
    # Delivered out of band by the inviting admin.
    token: str


class InvitationAcceptRequest(BaseModel):
    token: str
    password: str = Field(..., min_length=8)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    specialty: Optional[str] = None
    npi: Optional[str] = None


def _organization_name(organization_id: UUID) -> Optional[str]:
    org = organization_service.get_organization(organization_id)
    return org.name if org else None


@router.get("/me", response_model=UserOut)
async def get_me(current_user: User = Depends(get_current_user)) -> UserOut:
    return UserOut.from_user(current_user)


@router.get("", response_model=List[UserOut])
async def list_users(current_user: User = Depends(require_roles(UserRole.ADMIN))) -> List[UserOut]:
    return [UserOut.from_user(user) for user in user_service.list_users(current_user.organization_id)]


@invitations_router.post("", response_model=InvitationCreated, status_code=status.HTTP_201_CREATED)
async def create_invitation(
    payload: InvitationCreateRequest,
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
) -> InvitationCreated:
    invitation = user_service.create_invitation(
        organization_id=current_user.organization_id,
        email=payload.email,
        role=payload.role,
        invited_by_user_id=current_user.id,
    )
    return InvitationCreated(
        **invitation.model_dump(include=set(InvitationCreated.model_fields) - {"organization_name"}),
        organization_name=_organization_name(invitation.organization_id),
    )


@invitations_router.get("/{token}", response_model=InvitationOut)
async def get_invitation(token: str) -> InvitationOut:
    """Look up an invitation by token; no authentication required."""

    invitation = user_service.get_invitation(token)
    return InvitationOut(
        **invitation.model_dump(include=set(InvitationOut.model_fields) - {"organization_name"}),
        organization_name=_organization_name(invitation.organization_id),
    )


@invitations_router.post("/accept", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def accept_invitation(payload: InvitationAcceptRequest) -> UserOut:
    user = user_service.accept_invitation(
        payload.token,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        specialty=payload.specialty,
        npi=payload.npi,
    )
    return UserOut.from_user(user)
