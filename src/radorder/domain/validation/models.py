from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Laterality(str, Enum):
    RIGHT = "right"
    LEFT = "left"
    BILATERAL = "bilateral"
    UNSPECIFIED = "unspecified"


class PatientAttributes(BaseModel):
    approximate_age: Optional[int] = None
    is_athlete: bool = False


class ClinicalContext(BaseModel):
    """Structured view of a dictation derived by regular-expression matching.

    Modality and anatomy keep the fixed table order of the extractor, so two
    extractions of the same text compare equal.
    """

    modality: List[str] = []
    anatomy: List[str] = []
    laterality: Laterality = Laterality.UNSPECIFIED
    clinical_conditions: List[str] = []
    patient_info: PatientAttributes = Field(default_factory=PatientAttributes)


class CandidateDiagnosisCode(BaseModel):
    code: str
    description: str
    confidence: float = Field(ge=0.0, le=1.0)


class CandidateProcedureCode(BaseModel):
    code: str
    description: str
    modality: Optional[str] = None
    confidence: float = Field(ge=0.0, le=1.0)


class AppropriatenessLevel(str, Enum):
    USUALLY_APPROPRIATE = "Usually Appropriate"
    MAY_BE_APPROPRIATE = "May Be Appropriate"
    RARELY_APPROPRIATE = "Rarely Appropriate"


def appropriateness_level(score: int) -> AppropriatenessLevel:
    """Bucket a 1-9 ACR score at the 7 and 4 thresholds."""

    if score >= 7:
        return AppropriatenessLevel.USUALLY_APPROPRIATE
    if score >= 4:
        return AppropriatenessLevel.MAY_BE_APPROPRIATE
    return AppropriatenessLevel.RARELY_APPROPRIATE


class AppropriatenessMapping(BaseModel):
    diagnosis_code: str
    diagnosis_description: Optional[str] = None
    procedure_code: str
    procedure_description: Optional[str] = None
    modality: Optional[str] = None
    score: int = Field(ge=1, le=9)
    evidence: Optional[str] = None
    justification: Optional[str] = None

    @property
    def level(self) -> AppropriatenessLevel:
        return appropriateness_level(self.score)


class GuidelineDocument(BaseModel):
    icd10_code: str
    content: str


class DatabaseContext(BaseModel):
    """Everything the code reference database contributes to one prompt."""

    possible_diagnoses: List[CandidateDiagnosisCode] = []
    possible_procedures: List[CandidateProcedureCode] = []
    appropriateness_mappings: List[AppropriatenessMapping] = []
    guideline_documents: List[GuidelineDocument] = []

    def stats(self) -> Dict[str, int]:
        return {
            "diagnosis_count": len(self.possible_diagnoses),
            "procedure_count": len(self.possible_procedures),
            "mapping_count": len(self.appropriateness_mappings),
            "document_count": len(self.guideline_documents),
        }


class ValidationStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    NEEDS_CLARIFICATION = "needs_clarification"


class SuggestedCode(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str
    description: str = ""
    is_primary: bool = Field(False, alias="isPrimary")


class ValidationResult(BaseModel):
    """Validation result in the camelCase shape requested from the LLM.

    ``compliance_score`` is on the ACR 1-9 scale regardless of source.
    """

    model_config = ConfigDict(populate_by_name=True)

    validation_status: ValidationStatus = Field(alias="validationStatus")
    compliance_score: Optional[int] = Field(None, alias="complianceScore", ge=1, le=9)
    feedback: str = ""
    diagnosis_codes: List[SuggestedCode] = Field(default_factory=list, alias="diagnosisCodes")
    procedure_codes: List[SuggestedCode] = Field(default_factory=list, alias="procedureCodes")
    internal_reasoning: Optional[str] = Field(None, alias="internalReasoning")

    @property
    def primary_diagnosis(self) -> Optional[SuggestedCode]:
        for code in self.diagnosis_codes:
            if code.is_primary:
                return code
        return None


class ResultSource(str, Enum):
    LLM = "llm"
    FALLBACK = "fallback"


class FallbackReason(str, Enum):
    MISSING_CREDENTIALS = "missing_credentials"
    INVALID_RESPONSE = "invalid_response"
    SERVICE_UNAVAILABLE = "service_unavailable"


class ValidationOutcome(BaseModel):
    result: ValidationResult
    source: ResultSource
    fallback_reason: Optional[FallbackReason] = None
    specialty: str
    target_word_count: int
