from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from src.radorder.domain.models.order import (
    Order,
    OrderEvent,
    OrderEventType,
    OrderNote,
    OrderPriority,
    OrderStatus,
    OrderValidationState,
)
from src.radorder.domain.models.organization import OrganizationType
from src.radorder.domain.models.patient import Gender
from src.radorder.domain.models.user import User, UserRole
from src.radorder.errors import (
    CodeDatabaseError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
    WorkflowError,
)
from src.radorder.infra.codes.repository import MedicalCodeRepository, medical_code_repository
from src.radorder.infra.db import inmemory as inmemory_repos
from src.radorder.infra.db.repositories import OrderRepository
from src.radorder.services.audit.service import audit_service
from src.radorder.services.organizations.service import InMemoryOrganizationService, organization_service
from src.radorder.services.patients.service import InMemoryPatientService, patient_service

logger = logging.getLogger("orders")

# Code pairs as (code, description); description may be empty.
CodeEntry = Tuple[str, str]

PATIENT_INFO_ROLES = {UserRole.ADMIN, UserRole.MEDICAL_ASSISTANT}
EDITABLE_STATUSES = {OrderStatus.DRAFT, OrderStatus.PENDING_SIGNATURE}
SIGNABLE_VALIDATION = {OrderValidationState.VALID, OrderValidationState.OVERRIDE}
# Radiology groups only see an order once the referring side has finished it.
HIDDEN_FROM_RADIOLOGY = {OrderStatus.PENDING_PATIENT_INFO}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_order_number() -> str:
    return f"ROP-{secrets.token_hex(4).upper()}"


class OrderWorkflowService:
    """Order creation, signing and patient-info completion.

    All reads and writes go through the order repository currently installed
    in ``infra.db.inmemory`` unless one is passed explicitly.
    """

    def __init__(
        self,
        *,
        repository: Optional[OrderRepository] = None,
        organizations: Optional[InMemoryOrganizationService] = None,
        patients: Optional[InMemoryPatientService] = None,
        codes: Optional[MedicalCodeRepository] = None,
    ) -> None:
        self._repository = repository
        self._organizations = organizations or organization_service
        self._patients = patients or patient_service
        self._codes = codes or medical_code_repository

    @property
    def repository(self) -> OrderRepository:
        return self._repository or inmemory_repos.order_repository

    # Helpers ---------------------------------------------------------------

    def _describe_icd10(self, codes: Sequence[CodeEntry]) -> Tuple[str, str]:
        """Return comma-joined codes and "code: description" descriptions."""

        wanted = [code for code, _ in codes]
        try:
            known = self._codes.describe_icd10_codes(wanted)
        except CodeDatabaseError:
            logger.warning("Code database unavailable; keeping submitted ICD-10 descriptions")
            known = {}
        descriptions = [f"{code}: {known.get(code) or description}".rstrip(": ") for code, description in codes]
        return ",".join(wanted), ",".join(descriptions)

    def _describe_cpt(self, code: str, description: str) -> str:
        try:
            row = self._codes.get_cpt(code)
        except CodeDatabaseError:
            logger.warning("Code database unavailable; keeping submitted CPT description")
            row = None
        return (row or {}).get("description") or description

    def _record(
        self,
        order: Order,
        event_type: OrderEventType,
        user: User,
        previous: Optional[OrderStatus] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        order.history.append(
            OrderEvent(
                event_type=event_type,
                user_id=user.id,
                previous_status=previous,
                new_status=order.status,
                details=details,
                created_at=_now(),
            )
        )

    def _audit(self, action: str, order: Order, user: User, extra: Optional[Dict[str, Any]] = None) -> None:
        audit_service.log_event(
            action=action,
            resource_type="order",
            resource_id=str(order.id),
            organization_id=str(user.organization_id),
            extra={"status": order.status.value, **(extra or {})},
        )

    def _load_for_referring_user(self, user: User, order_id: UUID) -> Order:
        order = self.repository.get(order_id)
        if order is None or order.referring_organization_id != user.organization_id:
            raise NotFoundError("Order not found")
        return order

    # Operations ------------------------------------------------------------

    def create_order(
        self,
        user: User,
        *,
        radiology_organization_id: UUID,
        icd10_codes: Sequence[CodeEntry],
        cpt_code: CodeEntry,
        patient_id: Optional[UUID] = None,
        patient_first_name: Optional[str] = None,
        patient_last_name: Optional[str] = None,
        patient_date_of_birth: Optional[str] = None,
        patient_gender: Optional[Gender] = None,
        original_dictation: Optional[str] = None,
        clinical_indication: Optional[str] = None,
        modality: Optional[str] = None,
        body_part: Optional[str] = None,
        laterality: Optional[str] = None,
        priority: OrderPriority = OrderPriority.ROUTINE,
        validation_status: OrderValidationState = OrderValidationState.PENDING,
        compliance_score: Optional[int] = None,
        validation_notes: Optional[str] = None,
        override_justification: Optional[str] = None,
        special_instructions: Optional[str] = None,
    ) -> Order:
        referring = self._organizations.require_organization(user.organization_id)
        if referring.type != OrganizationType.REFERRING_PRACTICE:
            raise PermissionDeniedError("Only referring practices can create orders")

        radiology = self._organizations.get_organization(radiology_organization_id)
        if radiology is None or radiology.type != OrganizationType.RADIOLOGY_GROUP:
            raise NotFoundError("Radiology organization not found")
        if not self._organizations.has_active_relationship(referring.id, radiology.id):
            raise WorkflowError(
                "No active relationship with this radiology organization",
                code="NO_ACTIVE_RELATIONSHIP",
            )

        if not icd10_codes:
            raise InvalidInputError("At least one ICD-10 code is required")

        if override_justification and override_justification.strip():
            validation_status = OrderValidationState.OVERRIDE
        elif validation_status == OrderValidationState.OVERRIDE:
            raise InvalidInputError("An override requires a justification")

        if patient_id is None and not (patient_first_name and patient_last_name and patient_date_of_birth):
            raise InvalidInputError("Either patient_id or patient name and date of birth are required")

        if patient_id is not None:
            patient = self._patients.require_patient(patient_id, organization_id=referring.id)
        else:
            patient = self._patients.create_patient(
                organization_id=referring.id,
                first_name=patient_first_name,
                last_name=patient_last_name,
                date_of_birth=patient_date_of_birth,
                gender=patient_gender or Gender.UNKNOWN,
            )

        codes, descriptions = self._describe_icd10(icd10_codes)
        now = _now()
        order = Order(
            id=uuid4(),
            order_number=_new_order_number(),
            patient_id=patient.id,
            referring_organization_id=referring.id,
            radiology_organization_id=radiology.id,
            created_by_user_id=user.id,
            status=OrderStatus.PENDING_SIGNATURE,
            priority=priority,
            original_dictation=original_dictation,
            clinical_indication=clinical_indication,
            modality=modality,
            body_part=body_part,
            laterality=laterality,
            cpt_code=cpt_code[0],
            cpt_code_description=self._describe_cpt(*cpt_code),
            icd10_codes=codes,
            icd10_code_descriptions=descriptions,
            validation_status=validation_status,
            compliance_score=compliance_score,
            validation_notes=validation_notes,
            override_justification=override_justification,
            special_instructions=special_instructions,
            created_at=now,
            updated_at=now,
        )
        self._record(order, OrderEventType.CREATED, user)
        self.repository.save(order)
        self._audit(
            "create",
            order,
            user,
            {"icd10_count": len(icd10_codes), "cpt_code": order.cpt_code, "validation": validation_status.value},
        )
        logger.info("Order %s created", order.order_number)
        return order

    def list_orders(self, user: User, *, status: Optional[OrderStatus] = None) -> List[Order]:
        org = self._organizations.require_organization(user.organization_id)
        statuses = [status] if status is not None else None
        if org.type == OrganizationType.RADIOLOGY_GROUP:
            orders = self.repository.list_by_filters(
                radiology_organization_id=org.id,
                statuses=statuses,
                exclude_statuses=HIDDEN_FROM_RADIOLOGY,
            )
        else:
            orders = self.repository.list_by_filters(referring_organization_id=org.id, statuses=statuses)
        return list(orders)

    def list_pending_patient_info(self, user: User) -> List[Order]:
        if user.role not in PATIENT_INFO_ROLES:
            raise PermissionDeniedError("Only admins and medical assistants can complete patient information")
        return list(
            self.repository.list_by_filters(
                referring_organization_id=user.organization_id,
                statuses=[OrderStatus.PENDING_PATIENT_INFO],
            )
        )

    def get_order(self, user: User, order_id: UUID) -> Order:
        order = self.repository.get(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if user.organization_id == order.referring_organization_id:
            return order
        if user.organization_id == order.radiology_organization_id:
            if order.status in HIDDEN_FROM_RADIOLOGY:
                raise PermissionDeniedError("Order is awaiting patient information from the referring practice")
            return order
        raise NotFoundError("Order not found")

    def update_order(
        self,
        user: User,
        order_id: UUID,
        *,
        icd10_codes: Optional[Sequence[CodeEntry]] = None,
        cpt_code: Optional[CodeEntry] = None,
        priority: Optional[OrderPriority] = None,
        clinical_indication: Optional[str] = None,
        special_instructions: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Order:
        order = self._load_for_referring_user(user, order_id)
        if user.id != order.created_by_user_id and user.role != UserRole.ADMIN:
            raise PermissionDeniedError("Only the ordering physician or an admin can edit this order")
        if order.status not in EDITABLE_STATUSES:
            raise WorkflowError("Signed orders cannot be edited", code="ORDER_LOCKED")

        changed: List[str] = []
        if icd10_codes is not None:
            if not icd10_codes:
                raise InvalidInputError("At least one ICD-10 code is required")
            order.icd10_codes, order.icd10_code_descriptions = self._describe_icd10(icd10_codes)
            changed.append("icd10_codes")
        if cpt_code is not None:
            order.cpt_code = cpt_code[0]
            order.cpt_code_description = self._describe_cpt(*cpt_code)
            changed.append("cpt_code")
        if priority is not None:
            order.priority = priority
            changed.append("priority")
        if clinical_indication is not None:
            order.clinical_indication = clinical_indication
            changed.append("clinical_indication")
        if special_instructions is not None:
            order.special_instructions = special_instructions
            changed.append("special_instructions")
        if note:
            order.notes.append(OrderNote(user_id=user.id, note=note, created_at=_now()))
            changed.append("notes")

        if not changed:
            return order

        order.updated_by_user_id = user.id
        order.updated_at = _now()
        self._record(order, OrderEventType.UPDATED, user, order.status, {"fields": changed})
        self.repository.save(order)
        self._audit("update", order, user, {"fields": changed})
        return order

    def sign_order(self, user: User, order_id: UUID) -> Order:
        """Sign an order as its creator.

        The order moves to ``complete`` when the patient record already has
        full demographics, otherwise to ``pending_patient_info``.
        """

        order = self._load_for_referring_user(user, order_id)
        if user.id != order.created_by_user_id:
            raise PermissionDeniedError("Only the ordering physician can sign this order")
        if order.status != OrderStatus.PENDING_SIGNATURE:
            raise WorkflowError(f"Order is {order.status.value}, not pending signature")
        if order.validation_status not in SIGNABLE_VALIDATION:
            raise WorkflowError(
                "Order must pass validation or carry an override justification before signing",
                code="VALIDATION_REQUIRED",
            )

        patient = self._patients.require_patient(order.patient_id)
        previous = order.status
        order.status = OrderStatus.COMPLETE if patient.is_complete() else OrderStatus.PENDING_PATIENT_INFO
        order.signed_by_user_id = user.id
        order.signature_date = _now()
        order.updated_by_user_id = user.id
        order.updated_at = order.signature_date
        self._record(order, OrderEventType.SIGNED, user, previous)
        self.repository.save(order)
        self._audit("sign", order, user)
        logger.info("Order %s signed; status %s", order.order_number, order.status.value)
        return order

    def complete_patient_info(
        self,
        user: User,
        order_id: UUID,
        *,
        patient_changes: Dict[str, Optional[str]],
        insurance_provider: Optional[str] = None,
        insurance_policy_number: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Order:
        if user.role not in PATIENT_INFO_ROLES:
            raise PermissionDeniedError("Only admins and medical assistants can complete patient information")

        order = self._load_for_referring_user(user, order_id)
        if order.status != OrderStatus.PENDING_PATIENT_INFO:
            raise WorkflowError(f"Order is {order.status.value}, not pending patient information")

        if not self._patients.preview_demographics(order.patient_id, **patient_changes).is_complete():
            raise InvalidInputError(
                "Patient address, city, state, zip code and phone number are required",
                code="PATIENT_INFO_INCOMPLETE",
            )
        self._patients.update_demographics(order.patient_id, **patient_changes)

        if insurance_provider is not None:
            order.insurance_provider = insurance_provider
        if insurance_policy_number is not None:
            order.insurance_policy_number = insurance_policy_number
        if note:
            order.notes.append(OrderNote(user_id=user.id, note=note, created_at=_now()))

        previous = order.status
        order.status = OrderStatus.COMPLETE
        order.updated_by_user_id = user.id
        order.updated_at = _now()
        self._record(order, OrderEventType.STATUS_CHANGED, user, previous)
        self.repository.save(order)
        self._audit("complete_patient_info", order, user)
        return order


order_service = OrderWorkflowService()
