from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNKNOWN = "unknown"


class Patient(BaseModel):
    """Patient record owned by a referring organization.

    Orders for patients created from dictation start with only a name and a
    date of birth; demographics are completed before the order is final.
    """

    id: UUID
    organization_id: UUID
    pidn: str
    first_name: str
    last_name: str
    date_of_birth: str
    gender: Gender = Gender.UNKNOWN
    mrn: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    def is_complete(self) -> bool:
        required = (self.address_line1, self.city, self.state, self.zip_code, self.phone_number)
        return all(value and value.strip() for value in required)
