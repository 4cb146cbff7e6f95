import json

import pytest

from src.radorder.domain.validation.models import ValidationStatus
from src.radorder.errors import LLMResponseError
from src.radorder.services.validation.response_parser import (
    extract_json_object,
    normalize_compliance_score,
    normalize_status,
    parse_validation_response,
    validate_llm_payload,
)


def _payload(**overrides):
    data = {
        "validationStatus": "valid",
        "complianceScore": 7,
        "feedback": "Appropriate study.",
        "diagnosisCodes": [{"code": "M25.511", "description": "Pain in right shoulder", "isPrimary": True}],
        "procedureCodes": [{"code": "73221", "description": "MRI upper extremity joint without contrast"}],
    }
    data.update(overrides)
    return data


def test_fenced_json_wins_over_surrounding_braces():
    text = 'Note {not json}\n```json\n{"validationStatus": "valid"}\n```\ntrailing }'
    assert extract_json_object(text) == {"validationStatus": "valid"}


def test_bare_object_is_extracted():
    text = f"Result follows: {json.dumps(_payload())} Thanks."
    result = parse_validation_response(text)

    assert result.validation_status == ValidationStatus.VALID
    assert result.compliance_score == 7
    assert result.primary_diagnosis.code == "M25.511"


@pytest.mark.parametrize("text", ["", "no json here", "{broken", "```json\n[1, 2]\n```"])
def test_unusable_text_is_rejected(text):
    with pytest.raises(LLMResponseError):
        extract_json_object(text)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("valid", ValidationStatus.VALID),
        ("Appropriate", ValidationStatus.VALID),
        ("inappropriate", ValidationStatus.INVALID),
        ("needs-clarification", ValidationStatus.NEEDS_CLARIFICATION),
        ("Needs Clarification", ValidationStatus.NEEDS_CLARIFICATION),
    ],
)
def test_status_synonyms(value, expected):
    assert normalize_status(value) == expected


def test_unknown_status_is_rejected():
    with pytest.raises(LLMResponseError):
        normalize_status("maybe")


@pytest.mark.parametrize(
    "value, expected",
    [(None, None), (0, 1), (7, 7), (9, 9), (85, 8), (100, 9), (10, 1), (6.6, 7)],
)
def test_compliance_score_scale(value, expected):
    assert normalize_compliance_score(value) == expected


@pytest.mark.parametrize("value", [-1, 101, "high", True, float("nan"), float("inf")])
def test_compliance_score_rejections(value):
    with pytest.raises(LLMResponseError):
        normalize_compliance_score(value)


def test_missing_required_fields():
    data = _payload()
    del data["procedureCodes"]
    with pytest.raises(LLMResponseError) as excinfo:
        validate_llm_payload(data)
    assert excinfo.value.detail == ["procedureCodes"]


def test_string_codes_and_primary_promotion():
    result = validate_llm_payload(_payload(diagnosisCodes=["M25.511", "S43.431A"], procedureCodes=["73221"]))

    assert [c.code for c in result.diagnosis_codes] == ["M25.511", "S43.431A"]
    assert [c.is_primary for c in result.diagnosis_codes] == [True, False]
    assert result.procedure_codes[0].code == "73221"


def test_only_first_flagged_primary_is_kept():
    codes = [
        {"code": "M25.511", "isPrimary": False},
        {"code": "S43.431A", "isPrimary": True},
        {"code": "M75.101", "isPrimary": True},
    ]
    result = validate_llm_payload(_payload(diagnosisCodes=codes))

    assert [c.is_primary for c in result.diagnosis_codes] == [False, True, False]


def test_no_diagnosis_codes_means_no_primary():
    result = validate_llm_payload(_payload(diagnosisCodes=[]))
    assert result.primary_diagnosis is None


def test_malformed_code_entries_are_rejected():
    with pytest.raises(LLMResponseError):
        validate_llm_payload(_payload(diagnosisCodes=[42]))
    with pytest.raises(LLMResponseError):
        validate_llm_payload(_payload(procedureCodes="73221"))


def test_result_serializes_with_camel_case_aliases():
    result = validate_llm_payload(_payload())
    dumped = result.model_dump(by_alias=True)

    assert dumped["validationStatus"] == "valid"
    assert dumped["diagnosisCodes"][0]["isPrimary"] is True
