from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr


class UserRole(str, Enum):
    ADMIN = "admin"
    PHYSICIAN = "physician"
    MEDICAL_ASSISTANT = "medical_assistant"
    SCHEDULER = "scheduler"
    RADIOLOGIST = "radiologist"


class User(BaseModel):
    id: UUID
    organization_id: UUID
    email: EmailStr
    first_name: str
    last_name: str
    role: UserRole
    npi: Optional[str] = None
    # Drives the feedback word count for this physician's dictations.
    specialty: Optional[str] = None
    is_active: bool = True
    # Never serialized in API responses; see UserOut in the users routes.
    password_hash: str
    last_login_at: Optional[datetime] = None
    created_at: datetime
