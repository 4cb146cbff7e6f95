from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from src.radorder.security import get_current_user
from src.radorder.services.validation.service import validation_service
from src.radorder.services.validation.specialties import all_specialties, optimal_word_count

router = APIRouter(
    prefix="/validation",
    tags=["validation"],
    dependencies=[Depends(get_current_user)],
)


class DatabaseContextRequest(BaseModel):
    dictation_text: str = Field(..., min_length=1)


class DatabaseContextResponse(BaseModel):
    diagnosis_count: int
    procedure_count: int
    mapping_count: int
    document_count: int
    formatted_context: str


class SpecialtyInfo(BaseModel):
    name: str
    word_count: int


@router.post("/database-context", response_model=DatabaseContextResponse)
async def database_context(payload: DatabaseContextRequest) -> DatabaseContextResponse:
    """Show what the code reference database contributes for a dictation."""

    report = await run_in_threadpool(validation_service.database_context_report, payload.dictation_text)
    return DatabaseContextResponse(**report)


@router.get("/specialties", response_model=List[SpecialtyInfo])
async def list_specialties() -> List[SpecialtyInfo]:
    return [SpecialtyInfo(name=name, word_count=optimal_word_count(name)) for name in all_specialties()]
