from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, EmailStr, Field

from src.radorder.api.v1.schemas import UserOut
from src.radorder.domain.models.organization import Organization, OrganizationType
from src.radorder.domain.models.user import UserRole
from src.radorder.security import (
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    resolve_token_user,
)
from src.radorder.services.audit.service import audit_service
from src.radorder.services.organizations.service import organization_service
from src.radorder.services.users.service import user_service

router = APIRouter(prefix="/auth", tags=["auth"])


class OrganizationRegistration(BaseModel):
    name: str = Field(..., min_length=1)
    type: OrganizationType
    npi: Optional[str] = None
    address_line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    phone_number: Optional[str] = None


class AdminRegistration(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    specialty: Optional[str] = None
    npi: Optional[str] = None


class RegisterRequest(BaseModel):
    organization: OrganizationRegistration
    admin: AdminRegistration


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    user: UserOut


class RegisterResponse(TokenResponse):
    organization: Organization


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest) -> RegisterResponse:
    """Create an organization together with its first admin user."""

    if user_service.get_user_by_email(payload.admin.email) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A user with this email already exists")

    org_details = payload.organization.model_dump(exclude={"name", "type"})
    org = organization_service.create_organization(
        name=payload.organization.name,
        type=payload.organization.type,
        **org_details,
    )
    user = user_service.create_user(
        organization_id=org.id,
        email=payload.admin.email,
        password=payload.admin.password,
        first_name=payload.admin.first_name,
        last_name=payload.admin.last_name,
        role=UserRole.ADMIN,
        specialty=payload.admin.specialty,
        npi=payload.admin.npi,
    )

    audit_service.log_event(
        action="register",
        resource_type="organization",
        resource_id=str(org.id),
        subject=f"user:{user.id}",
        organization_id=str(org.id),
        extra={"organization_type": org.type.value},
    )

    return RegisterResponse(
        access_token=create_access_token(user),
        refresh_token=create_refresh_token(user),
        user=UserOut.from_user(user),
        organization=org,
    )


@router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest) -> TokenResponse:
    user = user_service.authenticate(payload.email, payload.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive.")

    audit_service.log_event(
        action="login",
        resource_type="user",
        resource_id=str(user.id),
        subject=f"user:{user.id}",
        organization_id=str(user.organization_id),
    )
    return TokenResponse(
        access_token=create_access_token(user),
        refresh_token=create_refresh_token(user),
        user=UserOut.from_user(user),
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh(payload: RefreshRequest) -> TokenResponse:
    """Exchange a refresh token for a new access token."""

    claims = decode_token(payload.refresh_token, token_type=REFRESH_TOKEN_TYPE)
    user = resolve_token_user(claims)
    return TokenResponse(access_token=create_access_token(user), user=UserOut.from_user(user))
