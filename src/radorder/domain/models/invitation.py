from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr

from src.radorder.domain.models.user import UserRole


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class Invitation(BaseModel):
    id: UUID
    organization_id: UUID
    email: EmailStr
    role: UserRole
    token: str
    invited_by_user_id: UUID
    status: InvitationStatus = InvitationStatus.PENDING
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    created_at: datetime
