from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from src.radorder.domain.models.order import Order, OrderPriority, OrderStatus, OrderValidationState
from src.radorder.domain.models.patient import Gender
from src.radorder.domain.models.user import User, UserRole
from src.radorder.domain.validation.models import ValidationOutcome
from src.radorder.security import get_current_user, require_roles
from src.radorder.services.audit.service import audit_service
from src.radorder.services.orders.service import order_service
from src.radorder.services.patients.service import patient_service
from src.radorder.services.validation.service import validation_service

router = APIRouter(
    prefix="/orders",
    tags=["orders"],
    dependencies=[Depends(get_current_user)],
)

_ordering_roles = require_roles(UserRole.PHYSICIAN, UserRole.ADMIN)
_patient_info_roles = require_roles(UserRole.ADMIN, UserRole.MEDICAL_ASSISTANT)


class ProcessDictationRequest(BaseModel):
    dictation_text: str = Field(..., min_length=20)
    patient_id: Optional[UUID] = None
    specialty: Optional[str] = None
    patient_age: Optional[int] = Field(None, ge=0, le=130)
    patient_gender: Optional[str] = None


class CodeSelection(BaseModel):
    code: str = Field(..., min_length=1)
    description: str = ""


class OrderCreateRequest(BaseModel):
    radiology_organization_id: UUID
    patient_id: Optional[UUID] = None
    patient_first_name: Optional[str] = None
    patient_last_name: Optional[str] = None
    patient_date_of_birth: Optional[str] = None
    patient_gender: Optional[Gender] = None

    original_dictation: Optional[str] = None
    clinical_indication: Optional[str] = None
    modality: Optional[str] = None
    body_part: Optional[str] = None
    laterality: Optional[str] = None

    icd10_codes: List[CodeSelection] = Field(..., min_length=1)
    cpt_code: CodeSelection
    priority: OrderPriority = OrderPriority.ROUTINE

    validation_status: OrderValidationState = OrderValidationState.PENDING
    compliance_score: Optional[int] = Field(None, ge=1, le=9)
    validation_notes: Optional[str] = None
    override_justification: Optional[str] = None
    special_instructions: Optional[str] = None


class OrderUpdateRequest(BaseModel):
    icd10_codes: Optional[List[CodeSelection]] = None
    cpt_code: Optional[CodeSelection] = None
    priority: Optional[OrderPriority] = None
    clinical_indication: Optional[str] = None
    special_instructions: Optional[str] = None
    note: Optional[str] = None


class PatientInfoRequest(BaseModel):
    mrn: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    gender: Optional[Gender] = None
    insurance_provider: Optional[str] = None
    insurance_policy_number: Optional[str] = None
    note: Optional[str] = None


def _pairs(codes: Optional[List[CodeSelection]]):
    if codes is None:
        return None
    return [(c.code.strip(), c.description) for c in codes]


@router.post("/process-dictation", response_model=ValidationOutcome)
async def process_dictation(
    payload: ProcessDictationRequest,
    current_user: User = Depends(get_current_user),
) -> ValidationOutcome:
    """Run a dictation through the validation pipeline.

    The text is PHI-scrubbed inside the pipeline; only its length and the
    specialty are audited.
    """

    if payload.patient_id is not None:
        patient_service.require_patient(payload.patient_id, organization_id=current_user.organization_id)

    specialty = payload.specialty or current_user.specialty
    outcome = await run_in_threadpool(
        validation_service.validate,
        payload.dictation_text,
        specialty=specialty,
        patient_age=payload.patient_age,
        patient_gender=payload.patient_gender,
    )

    audit_service.log_event(
        action="process_dictation",
        resource_type="dictation",
        resource_id=str(payload.patient_id) if payload.patient_id else None,
        organization_id=str(current_user.organization_id),
        extra={
            "dictation_length": len(payload.dictation_text),
            "specialty": outcome.specialty,
            "source": outcome.source.value,
            "validation_status": outcome.result.validation_status.value,
        },
    )
    return outcome


@router.post("", response_model=Order, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreateRequest,
    current_user: User = Depends(_ordering_roles),
) -> Order:
    return order_service.create_order(
        current_user,
        radiology_organization_id=payload.radiology_organization_id,
        icd10_codes=_pairs(payload.icd10_codes),
        cpt_code=(payload.cpt_code.code.strip(), payload.cpt_code.description),
        patient_id=payload.patient_id,
        patient_first_name=payload.patient_first_name,
        patient_last_name=payload.patient_last_name,
        patient_date_of_birth=payload.patient_date_of_birth,
        patient_gender=payload.patient_gender,
        original_dictation=payload.original_dictation,
        clinical_indication=payload.clinical_indication,
        modality=payload.modality,
        body_part=payload.body_part,
        laterality=payload.laterality,
        priority=payload.priority,
        validation_status=payload.validation_status,
        compliance_score=payload.compliance_score,
        validation_notes=payload.validation_notes,
        override_justification=payload.override_justification,
        special_instructions=payload.special_instructions,
    )


@router.get("", response_model=List[Order])
async def list_orders(
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
) -> List[Order]:
    return order_service.list_orders(current_user, status=order_status)


@router.get("/pending-patient-info", response_model=List[Order])
async def list_pending_patient_info(current_user: User = Depends(_patient_info_roles)) -> List[Order]:
    return order_service.list_pending_patient_info(current_user)


@router.get("/{order_id}", response_model=Order)
async def get_order(order_id: UUID, current_user: User = Depends(get_current_user)) -> Order:
    return order_service.get_order(current_user, order_id)


@router.patch("/{order_id}", response_model=Order)
async def update_order(
    order_id: UUID,
    payload: OrderUpdateRequest,
    current_user: User = Depends(get_current_user),
) -> Order:
    cpt = payload.cpt_code
    return order_service.update_order(
        current_user,
        order_id,
        icd10_codes=_pairs(payload.icd10_codes),
        cpt_code=(cpt.code.strip(), cpt.description) if cpt else None,
        priority=payload.priority,
        clinical_indication=payload.clinical_indication,
        special_instructions=payload.special_instructions,
        note=payload.note,
    )


@router.post("/{order_id}/sign", response_model=Order)
async def sign_order(order_id: UUID, current_user: User = Depends(get_current_user)) -> Order:
    return order_service.sign_order(current_user, order_id)


@router.post("/{order_id}/complete-patient-info", response_model=Order)
async def complete_patient_info(
    order_id: UUID,
    payload: PatientInfoRequest,
    current_user: User = Depends(_patient_info_roles),
) -> Order:
    changes = payload.model_dump(exclude={"insurance_provider", "insurance_policy_number", "note"})
    if payload.gender is not None:
        changes["gender"] = payload.gender.value
    return order_service.complete_patient_info(
        current_user,
        order_id,
        patient_changes=changes,
        insurance_provider=payload.insurance_provider,
        insurance_policy_number=payload.insurance_policy_number,
        note=payload.note,
    )
