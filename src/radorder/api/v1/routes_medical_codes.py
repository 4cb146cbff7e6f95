from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel

from src.radorder.infra.codes.repository import medical_code_repository

# Reference data only; no authentication required.
router = APIRouter(prefix="/medical-codes", tags=["medical-codes"])


class CodeOut(BaseModel):
    code: str
    description: str
    modality: Optional[str] = None


class MappingOut(BaseModel):
    icd10_code: str
    cpt_code: str
    score: Optional[int] = None
    evidence: Optional[str] = None
    justification: Optional[str] = None


@router.get("/icd10/{code}", response_model=CodeOut)
async def get_icd10_code(code: str) -> CodeOut:
    row = medical_code_repository.get_icd10(code.upper())
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="ICD-10 code not found")
    return CodeOut(**row)


@router.get("/cpt/{code}", response_model=CodeOut)
async def get_cpt_code(code: str) -> CodeOut:
    row = medical_code_repository.get_cpt(code)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="CPT code not found")
    return CodeOut(**row)


@router.get("/mappings/{icd10_code}/{cpt_code}", response_model=MappingOut)
async def get_mapping(icd10_code: str, cpt_code: str) -> MappingOut:
    row = medical_code_repository.get_mapping(icd10_code.upper(), cpt_code)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mapping not found")
    return MappingOut(**row)


@router.get("/search/icd10", response_model=List[CodeOut])
async def search_icd10(q: str = Query(..., min_length=2)) -> List[CodeOut]:
    return [CodeOut(**row) for row in medical_code_repository.search_icd10(q)]


@router.get("/search/cpt", response_model=List[CodeOut])
async def search_cpt(q: str = Query(..., min_length=2)) -> List[CodeOut]:
    return [CodeOut(**row) for row in medical_code_repository.search_cpt(q)]
