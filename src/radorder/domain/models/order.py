from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    DRAFT = "draft"
    PENDING_PATIENT_INFO = "pending_patient_info"
    PENDING_MA_REVIEW = "pending_ma_review"
    PENDING_SIGNATURE = "pending_signature"
    COMPLETE = "complete"
    DELIVERED = "delivered"
    SCHEDULED = "scheduled"
    PERFORMED = "performed"
    REJECTED = "rejected"
    CANCELED = "canceled"


class OrderPriority(str, Enum):
    ROUTINE = "routine"
    URGENT = "urgent"
    STAT = "stat"


class OrderValidationState(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    PENDING = "pending"
    # Physician accepted an order the validator did not pass.
    OVERRIDE = "override"


class OrderEventType(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"
    SIGNED = "signed"


class OrderEvent(BaseModel):
    event_type: OrderEventType
    user_id: UUID
    previous_status: Optional[OrderStatus] = None
    new_status: Optional[OrderStatus] = None
    details: Optional[Dict[str, Any]] = None
    created_at: datetime


class OrderNote(BaseModel):
    user_id: UUID
    note: str
    created_at: datetime


class Order(BaseModel):
    """A radiology order routed from a referring to a radiology organization.

    ICD-10 codes and their descriptions are stored as comma-joined strings,
    the shape consumed by downstream exports. Orders are never deleted; each
    status change appends an ``OrderEvent`` to ``history``.
    """

    id: UUID
    order_number: str
    patient_id: UUID
    referring_organization_id: UUID
    radiology_organization_id: UUID
    created_by_user_id: UUID
    updated_by_user_id: Optional[UUID] = None
    signed_by_user_id: Optional[UUID] = None

    status: OrderStatus = OrderStatus.PENDING_SIGNATURE
    priority: OrderPriority = OrderPriority.ROUTINE

    original_dictation: Optional[str] = None
    clinical_indication: Optional[str] = None
    modality: Optional[str] = None
    body_part: Optional[str] = None
    laterality: Optional[str] = None

    cpt_code: Optional[str] = None
    cpt_code_description: Optional[str] = None
    icd10_codes: Optional[str] = None
    icd10_code_descriptions: Optional[str] = None

    validation_status: OrderValidationState = OrderValidationState.PENDING
    compliance_score: Optional[int] = Field(None, ge=1, le=9)
    validation_notes: Optional[str] = None
    override_justification: Optional[str] = None

    insurance_provider: Optional[str] = None
    insurance_policy_number: Optional[str] = None
    special_instructions: Optional[str] = None

    signature_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    notes: List[OrderNote] = Field(default_factory=list)
    history: List[OrderEvent] = Field(default_factory=list)

    @property
    def icd10_code_list(self) -> List[str]:
        if not self.icd10_codes:
            return []
        return [code.strip() for code in self.icd10_codes.split(",") if code.strip()]
