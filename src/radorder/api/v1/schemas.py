from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from src.radorder.domain.models.user import User, UserRole


class UserOut(BaseModel):
    """Public view of a user; the password hash is never returned."""

    id: UUID
    organization_id: UUID
    email: str
    first_name: str
    last_name: str
    role: UserRole
    npi: Optional[str] = None
    specialty: Optional[str] = None
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(**user.model_dump(exclude={"password_hash"}))
