from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from src.radorder.domain.models.patient import Patient
from src.radorder.domain.models.user import User
from src.radorder.security import get_current_user
from src.radorder.services.patients.service import patient_service

router = APIRouter(
    prefix="/patients",
    tags=["patients"],
    dependencies=[Depends(get_current_user)],
)


@router.get("", response_model=List[Patient])
async def list_patients(current_user: User = Depends(get_current_user)) -> List[Patient]:
    return patient_service.list_patients(current_user.organization_id)


@router.get("/{patient_id}", response_model=Patient)
async def get_patient(patient_id: UUID, current_user: User = Depends(get_current_user)) -> Patient:
    patient = patient_service.get_patient(patient_id, organization_id=current_user.organization_id)
    if patient is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Patient not found")
    return patient
