from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from src.radorder.domain.validation.models import SuggestedCode, ValidationResult, ValidationStatus
from src.radorder.services.validation.specialties import enforce_word_count, optimal_word_count

# Dictations at or below this length are reported as insufficient.
MIN_SUFFICIENT_LENGTH = 100
INSUFFICIENT_SCORE = 3

INSUFFICIENT_FEEDBACK = (
    "Insufficient clinical information to establish medical necessity. Document symptom duration, relevant "
    "examination findings, prior imaging and conservative treatment. Imaging is generally not indicated "
    "without red flag symptoms or failed conservative management per ACR Appropriateness Criteria."
)

Code = Tuple[str, str]


@dataclass(frozen=True)
class FallbackRule:
    """Canned validation result used when no LLM result is available.

    ``procedures`` pairs a modality term with the procedure to suggest; the
    first term found in the dictation wins and an empty term always matches.
    ``feedback`` holds the base text followed by additions used when the
    specialty allows more than 30 and more than 35 words.
    """

    name: str
    triggers: Tuple[str, ...]
    diagnoses: Tuple[Code, ...]
    procedures: Tuple[Tuple[str, Code], ...]
    feedback: Tuple[str, str, str]
    score: int

    def matches(self, lowered: str) -> bool:
        return not self.triggers or any(trigger in lowered for trigger in self.triggers)

    def procedure_for(self, lowered: str) -> Code:
        for term, code in self.procedures:
            if not term or re.search(rf"\b{re.escape(term)}\b", lowered):
                return code
        return self.procedures[-1][1]

    def feedback_for(self, specialty: str) -> str:
        base, medium, long = self.feedback
        text = base
        target = optimal_word_count(specialty)
        if target > 30:
            text = f"{text} {medium}"
        if target > 35:
            text = f"{text} {long}"
        return enforce_word_count(text, specialty)


FALLBACK_RULES: Tuple[FallbackRule, ...] = (
    FallbackRule(
        name="gallbladder",
        triggers=("gallbladder", "cholecystitis"),
        diagnoses=(
            ("R10.11", "Right upper quadrant pain"),
            ("K80.00", "Calculus of gallbladder with acute cholecystitis without obstruction"),
        ),
        procedures=(("", ("74176", "CT Abdomen & Pelvis without contrast")),),
        feedback=(
            "Verify gallbladder wall thickness measurement. Document any Murphy's sign findings. Confirm fever "
            "and leukocytosis documentation. Assess risk factors for complicated cholecystitis.",
            "Consider sonographic findings correlation. Verify documented symptom duration for accurate "
            "treatment planning.",
            "Evaluate for any percutaneous intervention planning requirements. Document antibiotic history if "
            "relevant.",
        ),
        score=8,
    ),
    FallbackRule(
        name="headache",
        triggers=("headache", "migraine"),
        diagnoses=(
            ("G43.909", "Migraine, unspecified, not intractable, without status migrainosus"),
            ("H53.8", "Other visual disturbances"),
            ("R42", "Dizziness and giddiness"),
        ),
        procedures=(("", ("70551", "MRI Brain without contrast")),),
        feedback=(
            "Verify headache chronicity and severity documentation. Check for documented red flags. Confirm "
            "prior imaging results. Note any neurological deficit documentation.",
            "Validate consideration of less radiation-intensive options. Document failure of conservative "
            "management approaches.",
            "Evaluate for vestibular or ocular symptom documentation. Consider specialized sequence "
            "requirements based on clinical suspicion.",
        ),
        score=8,
    ),
    FallbackRule(
        name="low-back-pain",
        triggers=("back pain", "lumbar", "sciatica", "radiculopathy"),
        diagnoses=(
            ("M54.5", "Low back pain"),
            ("M51.26", "Intervertebral disc displacement, lumbar region"),
        ),
        procedures=(
            ("mri", ("72148", "MRI lumbar spine without contrast")),
            ("ct", ("72131", "CT lumbar spine without contrast")),
            ("", ("72100", "X-ray lumbar spine, 2 or 3 views")),
        ),
        feedback=(
            "MRI is the appropriate first-line imaging for suspected disc pathology with radicular symptoms "
            "after a trial of conservative therapy. No contrast is necessary for initial evaluation.",
            "Document red flag symptoms and duration of conservative treatment.",
            "Confirm neurological examination findings supporting radiculopathy.",
        ),
        score=7,
    ),
    FallbackRule(
        name="general",
        triggers=(),
        diagnoses=(
            ("R53.83", "Other fatigue"),
            ("R50.9", "Fever, unspecified"),
        ),
        procedures=(("", ("71045", "Chest X-ray, single view")),),
        feedback=(
            "Verify specific symptom duration documentation. Confirm acute vs. chronic presentation. Document "
            "any fever pattern. Assess prior antibiotic use if infection suspected.",
            "Validate presence of required laboratory findings. Consider documentation of relevant exposure "
            "history.",
            "Evaluate need for dedicated protocol adjustments. Document any immunocompromised status that may "
            "affect interpretation.",
        ),
        score=7,
    ),
)


def select_fallback_rule(dictation_text: str) -> FallbackRule:
    lowered = dictation_text.lower()
    for rule in FALLBACK_RULES:
        if rule.matches(lowered):
            return rule
    return FALLBACK_RULES[-1]


def generate_fallback_result(dictation_text: str, specialty: str, rule: Optional[FallbackRule] = None) -> ValidationResult:
    """Deterministic result for a dictation, independent of any provider.

    The same text and specialty always give the same status, score and codes.
    """

    lowered = dictation_text.lower()
    rule = rule or select_fallback_rule(dictation_text)
    sufficient = len(dictation_text.strip()) > MIN_SUFFICIENT_LENGTH

    procedure_code, procedure_description = rule.procedure_for(lowered)
    diagnoses = [
        SuggestedCode(code=code, description=description, is_primary=index == 0)
        for index, (code, description) in enumerate(rule.diagnoses)
    ]

    if sufficient:
        status = ValidationStatus.VALID
        score = rule.score
        feedback = rule.feedback_for(specialty)
    else:
        status = ValidationStatus.INVALID
        score = INSUFFICIENT_SCORE
        feedback = enforce_word_count(INSUFFICIENT_FEEDBACK, specialty)

    return ValidationResult(
        validation_status=status,
        compliance_score=score,
        feedback=feedback,
        diagnosis_codes=diagnoses,
        procedure_codes=[SuggestedCode(code=procedure_code, description=procedure_description)],
        internal_reasoning=f"Rule-based fallback result ({rule.name}).",
    )
