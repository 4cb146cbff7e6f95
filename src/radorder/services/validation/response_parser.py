"""Untrusted LLM output -> ``ValidationResult``.

Every check on the model's JSON lives here: field presence, status
vocabulary, code entry shape, the single-primary-diagnosis rule and the
compliance score scale. Anything that cannot be repaired raises
``LLMResponseError``.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Dict, List

from pydantic import ValidationError

from src.radorder.domain.validation.models import ValidationResult, ValidationStatus
from src.radorder.errors import LLMResponseError

REQUIRED_FIELDS = ("validationStatus", "diagnosisCodes", "procedureCodes")

STATUS_SYNONYMS: Dict[str, ValidationStatus] = {
    "valid": ValidationStatus.VALID,
    "appropriate": ValidationStatus.VALID,
    "invalid": ValidationStatus.INVALID,
    "inappropriate": ValidationStatus.INVALID,
    "needs_clarification": ValidationStatus.NEEDS_CLARIFICATION,
}

_FENCE_PATTERN = re.compile(r"```json\s*([\s\S]*?)\s*```")
_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")


def extract_json_object(text: str) -> Dict[str, Any]:
    """Return the JSON object embedded in an LLM response.

    A ```json fence wins when present; otherwise the span from the first "{"
    to the last "}" is parsed.
    """

    if not text:
        raise LLMResponseError("Empty response from AI service")

    fence = _FENCE_PATTERN.search(text)
    if fence:
        candidate = fence.group(1)
    else:
        match = _OBJECT_PATTERN.search(text)
        if not match:
            raise LLMResponseError("Could not find a JSON object in AI response")
        candidate = match.group(0)

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise LLMResponseError("AI response is not valid JSON") from exc

    if not isinstance(data, dict):
        raise LLMResponseError("AI response JSON is not an object")
    return data


def normalize_status(value: Any) -> ValidationStatus:
    if not isinstance(value, str):
        raise LLMResponseError("validationStatus must be a string")
    key = re.sub(r"[\s-]+", "_", value.strip().lower())
    if key not in STATUS_SYNONYMS:
        raise LLMResponseError(f"Unknown validationStatus {value!r}")
    return STATUS_SYNONYMS[key]


def normalize_compliance_score(value: Any) -> Any:
    """Map a model-supplied score onto the 1-9 scale.

    Scores on a percentage scale are rescaled; negative scores, scores above
    100, NaN, infinities and non-numbers are rejected.
    """

    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise LLMResponseError("complianceScore must be a number")
    if not math.isfinite(value):
        raise LLMResponseError(f"complianceScore {value} is not finite")
    if value < 0 or value > 100:
        raise LLMResponseError(f"complianceScore {value} is out of range")
    scaled = value if value < 10 else value * 9 / 100
    return min(9, max(1, int(round(scaled))))


def _normalize_codes(value: Any, field: str) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        raise LLMResponseError(f"{field} must be a list")

    codes: List[Dict[str, Any]] = []
    for entry in value:
        if isinstance(entry, str):
            codes.append({"code": entry.strip(), "description": "", "isPrimary": False})
        elif isinstance(entry, dict) and isinstance(entry.get("code"), str):
            codes.append(
                {
                    "code": entry["code"].strip(),
                    "description": str(entry.get("description") or ""),
                    "isPrimary": bool(entry.get("isPrimary", False)),
                }
            )
        else:
            raise LLMResponseError(f"Unrecognised entry in {field}")
    return [code for code in codes if code["code"]]


def _enforce_single_primary(codes: List[Dict[str, Any]]) -> None:
    if not codes:
        return
    flagged = [i for i, code in enumerate(codes) if code["isPrimary"]]
    keep = flagged[0] if flagged else 0
    for i, code in enumerate(codes):
        code["isPrimary"] = i == keep


def validate_llm_payload(data: Dict[str, Any]) -> ValidationResult:
    """Convert a parsed LLM JSON object into a ``ValidationResult``."""

    missing = [key for key in REQUIRED_FIELDS if key not in data]
    if missing:
        raise LLMResponseError("AI response missing required fields", detail=missing)

    diagnosis_codes = _normalize_codes(data["diagnosisCodes"], "diagnosisCodes")
    _enforce_single_primary(diagnosis_codes)
    procedure_codes = _normalize_codes(data["procedureCodes"], "procedureCodes")

    feedback = data.get("feedback")
    reasoning = data.get("internalReasoning")

    try:
        return ValidationResult(
            validationStatus=normalize_status(data["validationStatus"]),
            complianceScore=normalize_compliance_score(data.get("complianceScore")),
            feedback=feedback if isinstance(feedback, str) else "",
            diagnosisCodes=diagnosis_codes,
            procedureCodes=procedure_codes,
            internalReasoning=reasoning if isinstance(reasoning, str) else None,
        )
    except ValidationError as exc:
        raise LLMResponseError("AI response failed schema validation") from exc


def parse_validation_response(text: str) -> ValidationResult:
    return validate_llm_payload(extract_json_object(text))
