import pytest
from sqlalchemy.exc import OperationalError

from src.radorder.infra.codes.database import CodeDatabase, create_code_database
from src.radorder.infra.codes.repository import MedicalCodeRepository
from src.radorder.services.validation.code_lookup import (
    MODALITY_ONLY_CONFIDENCE,
    TARGETED_CONFIDENCE,
    UNSCORED_CONFIDENCE,
    QuerySpec,
    _run_targeted,
    find_diagnosis_candidates,
    find_procedure_candidates,
)
from src.radorder.services.validation.context_extractor import extract_medical_keywords


def test_shoulder_targeted_diagnoses(code_database, shoulder_dictation):
    with code_database.connect() as conn:
        candidates = find_diagnosis_candidates(conn, extract_medical_keywords(shoulder_dictation))

    codes = [c.code for c in candidates]
    assert codes == ["M25.511", "M75.101", "S43.431", "S43.431A"]
    assert all(c.confidence == TARGETED_CONFIDENCE for c in candidates)


def test_labral_dictation_prefers_contrast_procedure(code_database, shoulder_dictation):
    with code_database.connect() as conn:
        candidates = find_procedure_candidates(conn, extract_medical_keywords(shoulder_dictation))

    assert [c.code for c in candidates] == ["73222"]
    assert candidates[0].modality == "MRI"
    assert candidates[0].confidence == TARGETED_CONFIDENCE


def test_knee_diagnoses_filtered_by_laterality(code_database):
    with code_database.connect() as conn:
        candidates = find_diagnosis_candidates(conn, extract_medical_keywords("right knee pain, rule out meniscus tear"))

    assert {c.code for c in candidates} == {"M17.11", "M23.211"}


def test_modality_only_procedure_lookup(code_database):
    with code_database.connect() as conn:
        candidates = find_procedure_candidates(conn, extract_medical_keywords("Severe headache, MRI brain please"))

    assert [c.code for c in candidates] == ["70551", "73221", "73222", "73721"]
    assert all(c.confidence == TARGETED_CONFIDENCE for c in candidates)


def test_scored_diagnosis_fallback(code_database):
    with code_database.connect() as conn:
        candidates = find_diagnosis_candidates(conn, ["migraine"])

    assert [c.code for c in candidates] == ["G43.909"]
    # One matching keyword: 0.5 + 1 * 0.1
    assert candidates[0].confidence == pytest.approx(0.6)


def test_exact_procedure_matches_are_merged_first(code_database):
    with code_database.connect() as conn:
        candidates = find_procedure_candidates(conn, ["mammography", "screening"])

    assert [c.code for c in candidates] == ["77067"]
    assert candidates[0].confidence == UNSCORED_CONFIDENCE


def test_empty_keywords_return_nothing(code_database):
    with code_database.connect() as conn:
        assert find_diagnosis_candidates(conn, []) == []
        assert find_procedure_candidates(conn, []) == []


def test_failing_targeted_query_is_skipped(code_database):
    queries = [
        QuerySpec(sql="SELECT code, description FROM missing_table", label="broken"),
        QuerySpec(
            sql="SELECT ICD10_Code AS code, Description AS description FROM icd10_codes WHERE ICD10_Code = :c",
            params={"c": "R51.9"},
            label="headache",
        ),
    ]
    with code_database.connect() as conn:
        rows = _run_targeted(conn, queries)

    assert [row["code"] for row in rows] == ["R51.9"]


def test_generic_search_errors_propagate(tmp_path):
    empty = tmp_path / "empty.db"
    empty.write_bytes(b"")

    with CodeDatabase(empty).connect() as conn:
        with pytest.raises(OperationalError):
            find_diagnosis_candidates(conn, ["migraine"])


def test_modality_only_confidence_constant():
    assert MODALITY_ONLY_CONFIDENCE < TARGETED_CONFIDENCE


def test_seeded_rows_keep_columns_missing_from_the_first_row(tmp_path):
    database = create_code_database(
        tmp_path / "seed.db",
        mappings=[
            {"ICD10_Code": "M25.511", "CPT_Code": "73030", "Appropriateness": 9},
            {"ICD10_Code": "M25.511", "CPT_Code": "73221", "Appropriateness": 7, "Enhanced_Notes": "After radiographs"},
        ],
    )
    repository = MedicalCodeRepository(database)

    assert repository.get_mapping("M25.511", "73221")["justification"] == "After radiographs"
    assert repository.get_mapping("M25.511", "73030")["justification"] is None
