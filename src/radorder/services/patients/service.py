from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from src.radorder.domain.models.patient import Gender, Patient
from src.radorder.errors import NotFoundError

# Fields that staff may fill in after the order is signed.
DEMOGRAPHIC_FIELDS = (
    "mrn",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "zip_code",
    "phone_number",
    "email",
    "gender",
)


class InMemoryPatientService:
    def __init__(self) -> None:
        self._patients: Dict[UUID, Patient] = {}

    def reset(self) -> None:
        self._patients.clear()

    def create_patient(
        self,
        *,
        organization_id: UUID,
        first_name: str,
        last_name: str,
        date_of_birth: str,
        gender: Gender = Gender.UNKNOWN,
        **demographics: Optional[str],
    ) -> Patient:
        now = datetime.now(timezone.utc)
        patient = Patient(
            id=uuid4(),
            organization_id=organization_id,
            pidn=f"P{secrets.token_hex(4).upper()}",
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            date_of_birth=date_of_birth,
            gender=gender,
            created_at=now,
            updated_at=now,
            **demographics,
        )
        self._patients[patient.id] = patient
        return patient

    def get_patient(self, patient_id: UUID, *, organization_id: Optional[UUID] = None) -> Optional[Patient]:
        patient = self._patients.get(patient_id)
        if patient is None:
            return None
        if organization_id is not None and patient.organization_id != organization_id:
            return None
        return patient

    def require_patient(self, patient_id: UUID, *, organization_id: Optional[UUID] = None) -> Patient:
        patient = self.get_patient(patient_id, organization_id=organization_id)
        if patient is None:
            raise NotFoundError("Patient not found")
        return patient

    def list_patients(self, organization_id: UUID) -> List[Patient]:
        patients = [p for p in self._patients.values() if p.organization_id == organization_id]
        return sorted(patients, key=lambda p: (p.last_name.lower(), p.first_name.lower()))

    def preview_demographics(self, patient_id: UUID, **changes: Optional[str]) -> Patient:
        """Return a copy of the patient with non-None demographic changes applied.

        Unknown field names are ignored. The stored record is left untouched.
        """

        patient = self.require_patient(patient_id).model_copy()
        for name in DEMOGRAPHIC_FIELDS:
            value = changes.get(name)
            if value is not None:
                setattr(patient, name, Gender(value) if name == "gender" else value)
        patient.updated_at = datetime.now(timezone.utc)
        return patient

    def update_demographics(self, patient_id: UUID, **changes: Optional[str]) -> Patient:
        patient = self.preview_demographics(patient_id, **changes)
        self._patients[patient.id] = patient
        return patient


patient_service = InMemoryPatientService()
