from __future__ import annotations

from typing import List, Optional

from src.radorder.domain.validation.models import DatabaseContext
from src.radorder.services.validation.specialties import optimal_word_count, specialty_validation_section

ROLE_STATEMENT = """You are RadOrderValidator, an expert system that analyzes radiology order dictations to:
1. Extract ICD-10 diagnosis codes and CPT procedure codes
2. Validate the appropriateness of the ordered imaging based on evidence-based guidelines
3. Provide feedback to help ensure appropriate imaging utilization"""

VALIDATION_RULES = """=== IMAGING ORDER VALIDATION FRAMEWORK ===

PRIMARY VALIDATION GATES:
- Modality-indication alignment: imaging matches the clinical question per ACR Appropriateness Criteria
- Clinical information sufficiency: the dictation contains the minimum required clinical elements
- Safety verification: contraindications (contrast allergy, renal function, implants, pregnancy) are addressed
- Laterality specification: a side is stated for paired structures

AUC COMPLIANCE:
- CDSM consultation documented
- Appropriate use score or rating documented
- Priority Clinical Areas coverage verified

ICD-10 CODING RULES:
- Code to the highest degree of certainty; do not code "rule out", "suspected" or "probable" conditions, code the presenting signs and symptoms instead
- Include laterality in the code whenever the classification supports it
- Use the most specific code available; avoid unspecified codes when the dictation supports a more specific one
- Mark exactly one diagnosis code as primary (isPrimary: true); it must be the condition chiefly responsible for the order
- List secondary diagnoses only when they affect the imaging decision

CPT CODING RULES:
- Select a single procedure that matches the modality, body region and contrast usage stated or implied
- Prefer codes from the database context when they fit the dictation

OUTPUT FORMAT:
Respond with ONLY a JSON object, with no text before or after it, using this structure:
{
  "validationStatus": "valid" | "invalid" | "needs_clarification",
  "complianceScore": integer from 1 to 9 (ACR appropriateness scale, 9 is most appropriate),
  "feedback": "string",
  "diagnosisCodes": [{"code": "string", "description": "string", "isPrimary": boolean}],
  "procedureCodes": [{"code": "string", "description": "string"}],
  "internalReasoning": "string (optional)"
}"""


def _percent(confidence: float) -> int:
    return int(confidence * 100 + 0.5)


def format_database_context(context: DatabaseContext) -> str:
    """Render the database context as the prompt's reference section."""

    if context.possible_diagnoses:
        lines = [
            f"- {d.code}: {d.description} (confidence: {_percent(d.confidence)}%)" for d in context.possible_diagnoses
        ]
        diagnoses = "POSSIBLE DIAGNOSES (from database):\n" + "\n".join(lines)
    else:
        diagnoses = "No relevant diagnoses found in database."

    if context.possible_procedures:
        lines = [
            f"- {p.code}: {p.description} ({p.modality or 'modality unknown'}) (confidence: {_percent(p.confidence)}%)"
            for p in context.possible_procedures
        ]
        procedures = "POSSIBLE PROCEDURES (from database):\n" + "\n".join(lines)
    else:
        procedures = "No relevant procedures found in database."

    if context.appropriateness_mappings:
        blocks = [
            f"- {m.diagnosis_code} ({m.diagnosis_description}) + {m.procedure_code} ({m.procedure_description}):\n"
            f"  * Score: {m.score}/9 ({m.level.value})\n"
            f"  * Evidence: {m.evidence or 'Not specified'}\n"
            f"  * Justification: {m.justification or 'Not specified'}"
            for m in context.appropriateness_mappings
        ]
        mappings = "APPROPRIATENESS MAPPINGS (from ACR guidelines):\n" + "\n\n".join(blocks)
    else:
        mappings = "No appropriateness mappings found in database."

    if context.guideline_documents:
        docs = [f"--- DOCUMENTATION FOR {doc.icd10_code} ---\n{doc.content}" for doc in context.guideline_documents]
        documentation = "MEDICAL DOCUMENTATION (from guidelines):\n" + "\n\n".join(docs)
    else:
        documentation = "No medical documentation found in database."

    return f"\nDATABASE CONTEXT:\n{diagnoses}\n\n{procedures}\n\n{mappings}\n\n{documentation}\n"


def build_system_prompt(
    specialty: str,
    database_context: DatabaseContext,
    patient_age: Optional[int] = None,
    patient_gender: Optional[str] = None,
) -> str:
    """Assemble the full system prompt sent alongside the scrubbed dictation."""

    target = optimal_word_count(specialty)
    patient_lines: List[str] = []
    if patient_age:
        patient_lines.append(f"The patient is {patient_age} years old.")
    if patient_gender:
        patient_lines.append(f"The patient's gender is {patient_gender}.")

    sections = [
        ROLE_STATEMENT,
        f"You're evaluating a dictation in the field of {specialty}.\n" + "\n".join(patient_lines),
        (
            "Your goal is to holistically evaluate the clinical appropriateness of the ordered imaging and provide "
            "educational feedback. Ensure your feedback is:\n"
            "- Evidence-based and aligned with ACR guidelines\n"
            "- Educational rather than prescriptive\n"
            "- Focused on appropriate imaging (right scan, right patient, right time)\n"
            f"- Concise and targeted to physicians in the {specialty} specialty"
        ),
        (
            f"IMPORTANT: For {specialty}, feedback should be at most {target} words. Structure it as:\n"
            "1. Issue identification (what is inappropriate about the order, if applicable)\n"
            "2. Specific recommendation (what would be more appropriate)\n"
            "3. Clinical justification (based on guidelines)\n"
            "4. Educational component (to help improve future orders)"
        ),
        specialty_validation_section(specialty),
        format_database_context(database_context).strip(),
        VALIDATION_RULES,
    ]
    return "\n\n".join(section.strip() for section in sections if section.strip())
