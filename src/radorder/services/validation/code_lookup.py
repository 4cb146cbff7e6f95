from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from src.radorder.domain.validation.models import (
    CandidateDiagnosisCode,
    CandidateProcedureCode,
    ClinicalContext,
    Laterality,
)
from src.radorder.services.validation.context_extractor import extract_clinical_context

logger = logging.getLogger("codes")

TARGETED_CONFIDENCE = 0.9
MODALITY_ONLY_CONFIDENCE = 0.6
UNSCORED_CONFIDENCE = 0.7
FALLBACK_LIMIT = 12

# Generic words ignored by the scored fallback search.
FALLBACK_COMMON_WORDS = frozenset(
    {"with", "without", "patient", "year", "requesting", "ordering", "male", "female", "body", "screen"}
)

# CT lookups: detected anatomy -> (description term, CPT prefix pattern).
CT_ANATOMY_PATTERNS: Dict[str, tuple] = {
    "shoulder": ("upper extremity", "732%"),
    "knee": ("lower extremity", "737%"),
    "spine": ("spine", "721%"),
    "brain": ("head", "70%"),
    "abdomen": ("abdomen", "741%"),
    "pelvis": ("pelvis", "721%"),
    "chest": ("chest", "71%"),
}

MODALITY_FILTERS: Dict[str, str] = {
    "mri": "%MRI%",
    "ct": "%CT%",
    "xray": "%X-ray%",
    "ultrasound": "%Ultrasound%",
}

FALLBACK_MODALITY_KEYWORDS = ("mri", "ct", "xray", "x-ray", "ultrasound", "mammogram")

_MRI_SHOULDER_WHERE = (
    "(Description LIKE '%MRI%' OR Description LIKE '%magnetic resonance%') "
    "AND (Description LIKE '%shoulder%' OR Description LIKE '%joint%' "
    "OR Description LIKE '%upper extremity%')"
)
_CONTRAST_OR_ARTHROGRAM = "(Description LIKE '%with contrast%' OR Description LIKE '%arthrogram%')"


@dataclass
class QuerySpec:
    """A parameterised SELECT returning ``code``, ``description`` and optionally ``modality``."""

    sql: str
    params: Dict[str, Any] = field(default_factory=dict)
    label: str = ""


def _has_labral_terms(normalized: str) -> bool:
    return "labral" in normalized or "labrum" in normalized


def _has_lesion_terms(normalized: str) -> bool:
    return "tear" in normalized or "lesion" in normalized


def _run_targeted(conn: Connection, queries: Sequence[QuerySpec]) -> List[Dict[str, Any]]:
    """Execute targeted queries, dropping any that fail, and dedupe by code."""

    rows: List[Dict[str, Any]] = []
    for spec in queries:
        try:
            result = conn.execute(text(spec.sql), spec.params).mappings().all()
        except SQLAlchemyError:
            logger.exception("Targeted query %s failed; skipping", spec.label or "<unnamed>")
            continue
        logger.debug("Targeted query %s returned %d rows", spec.label, len(result))
        rows.extend(dict(row) for row in result)
    return _dedupe_by_code(rows)


def _dedupe_by_code(rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        seen.setdefault(row["code"], row)
    return list(seen.values())


def _score_confidence(score: Any) -> float:
    if not score:
        return UNSCORED_CONFIDENCE
    return min(0.9, 0.5 + float(score) * 0.1)


def _filter_fallback_keywords(keywords: Sequence[str]) -> List[str]:
    filtered = [word for word in keywords if word.lower() not in FALLBACK_COMMON_WORDS and len(word) > 2]
    if not filtered:
        filtered = [word for word in keywords if len(word) > 4][:3]
    return filtered


def _like_params(prefix: str, words: Sequence[str]) -> Dict[str, str]:
    return {f"{prefix}{i}": f"%{word}%" for i, word in enumerate(words)}


# Diagnosis codes ------------------------------------------------------------


def build_diagnosis_queries(context: ClinicalContext, normalized: str) -> List[QuerySpec]:
    queries: List[QuerySpec] = []

    if context.anatomy and context.laterality != Laterality.UNSPECIFIED:
        for anatomy in context.anatomy:
            terms = [anatomy, context.laterality.value, *context.clinical_conditions]
            params = _like_params("t", terms)
            where = " AND ".join(f"Description LIKE :{name}" for name in params)
            queries.append(
                QuerySpec(
                    sql=(
                        "SELECT ICD10_Code AS code, Description AS description FROM icd10_codes "
                        f"WHERE {where} ORDER BY ICD10_Code ASC LIMIT 5"
                    ),
                    params=params,
                    label=f"dx:{anatomy}:{context.laterality.value}",
                )
            )

    if "shoulder" in context.anatomy and context.laterality in (Laterality.RIGHT, Laterality.LEFT):
        pain_code = "M25.511" if context.laterality == Laterality.RIGHT else "M25.512"
        queries.append(
            QuerySpec(
                sql=(
                    "SELECT ICD10_Code AS code, Description AS description FROM icd10_codes "
                    "WHERE ICD10_Code = :pain_code OR ICD10_Code LIKE 'S43.4%' OR ICD10_Code LIKE 'M75.1%' "
                    "ORDER BY ICD10_Code ASC"
                ),
                params={"pain_code": pain_code},
                label=f"dx:shoulder-codes:{context.laterality.value}",
            )
        )

    if _has_labral_terms(normalized) and _has_lesion_terms(normalized):
        queries.append(
            QuerySpec(
                sql=(
                    "SELECT ICD10_Code AS code, Description AS description FROM icd10_codes "
                    "WHERE ICD10_Code LIKE 'S43.43%' ORDER BY ICD10_Code ASC"
                ),
                label="dx:labral-lesion",
            )
        )

    if "knee" in context.anatomy:
        laterality_clause = ""
        if context.laterality == Laterality.RIGHT:
            laterality_clause = "AND (Description LIKE '%right%' OR ICD10_Code LIKE '%1') "
        elif context.laterality == Laterality.LEFT:
            laterality_clause = "AND (Description LIKE '%left%' OR ICD10_Code LIKE '%2') "
        queries.append(
            QuerySpec(
                sql=(
                    "SELECT ICD10_Code AS code, Description AS description FROM icd10_codes "
                    "WHERE (ICD10_Code LIKE 'M23%' OR ICD10_Code LIKE 'M17%' OR ICD10_Code LIKE 'S83%') "
                    f"{laterality_clause}ORDER BY ICD10_Code ASC LIMIT 10"
                ),
                label="dx:knee",
            )
        )

    return queries


def find_diagnosis_candidates(conn: Connection, keywords: Sequence[str]) -> List[CandidateDiagnosisCode]:
    """Rank ICD-10 candidates for the keyword set.

    Any targeted hit short-circuits the generic search and every candidate is
    then reported at confidence 0.9. Errors in the generic search propagate.
    """

    if not keywords:
        return []

    normalized = " ".join(keywords).lower()
    context = extract_clinical_context(normalized)

    targeted = _run_targeted(conn, build_diagnosis_queries(context, normalized))
    if targeted:
        logger.info("Diagnosis lookup: %d targeted candidates", len(targeted))
        return [
            CandidateDiagnosisCode(code=row["code"], description=row["description"], confidence=TARGETED_CONFIDENCE)
            for row in targeted
        ]

    words = _filter_fallback_keywords(keywords)
    if not words:
        return []

    params = _like_params("k", words)
    score_sql = " + ".join(f"(CASE WHEN Description LIKE :{name} THEN 1 ELSE 0 END)" for name in params)
    where_sql = " OR ".join(f"Description LIKE :{name}" for name in params)
    sql = (
        "SELECT ICD10_Code AS code, Description AS description, "
        f"({score_sql}) AS match_score FROM icd10_codes "
        f"WHERE {where_sql} ORDER BY match_score DESC LIMIT {FALLBACK_LIMIT}"
    )
    rows = conn.execute(text(sql), params).mappings().all()
    logger.info("Diagnosis lookup: %d scored candidates", len(rows))
    return [
        CandidateDiagnosisCode(
            code=row["code"],
            description=row["description"],
            confidence=_score_confidence(row["match_score"]),
        )
        for row in rows
    ]


# Procedure codes ------------------------------------------------------------


def build_procedure_queries(context: ClinicalContext, normalized: str) -> List[QuerySpec]:
    queries: List[QuerySpec] = []
    select = "SELECT CPT_Code AS code, Description AS description, Modality AS modality FROM cpt_codes"

    if "mri" in context.modality and "shoulder" in context.anatomy:
        contrast_clause = f"AND {_CONTRAST_OR_ARTHROGRAM} " if _has_labral_terms(normalized) else ""
        queries.append(
            QuerySpec(
                sql=(
                    f"{select} WHERE {_MRI_SHOULDER_WHERE} AND CPT_Code LIKE :prefix "
                    f"{contrast_clause}ORDER BY CPT_Code LIMIT 10"
                ),
                params={"prefix": "73%"},
                label="cpt:mri-shoulder",
            )
        )
        if _has_labral_terms(normalized) and _has_lesion_terms(normalized):
            queries.append(
                QuerySpec(
                    sql=(
                        f"{select} WHERE {_MRI_SHOULDER_WHERE} AND {_CONTRAST_OR_ARTHROGRAM} "
                        "AND CPT_Code LIKE :prefix ORDER BY CPT_Code LIMIT 5"
                    ),
                    params={"prefix": "73222%"},
                    label="cpt:mri-shoulder-labral",
                )
            )

    if "ct" in context.modality:
        for anatomy in context.anatomy:
            if anatomy not in CT_ANATOMY_PATTERNS:
                continue
            term, prefix = CT_ANATOMY_PATTERNS[anatomy]
            queries.append(
                QuerySpec(
                    sql=(
                        f"{select} WHERE Modality LIKE '%CT%' AND Description LIKE :term "
                        "AND CPT_Code LIKE :prefix ORDER BY CPT_Code LIMIT 5"
                    ),
                    params={"term": f"%{term}%", "prefix": prefix},
                    label=f"cpt:ct-{anatomy}",
                )
            )

    if not queries:
        for modality in context.modality:
            if modality not in MODALITY_FILTERS:
                continue
            queries.append(
                QuerySpec(
                    sql=f"{select} WHERE Modality LIKE :modality ORDER BY CPT_Code LIMIT 10",
                    params={"modality": MODALITY_FILTERS[modality]},
                    label=f"cpt:modality-{modality}",
                )
            )

    return queries


def _modality_clause(modalities: Sequence[str]) -> tuple:
    params = {f"m{i}": f"%{modality}%" for i, modality in enumerate(modalities)}
    clause = " OR ".join(f"Modality LIKE :{name}" for name in params)
    return clause, params


def find_procedure_candidates(conn: Connection, keywords: Sequence[str]) -> List[CandidateProcedureCode]:
    """Rank CPT candidates for the keyword set.

    Mirrors the diagnosis lookup. The generic search also merges per-keyword
    exact matches and gives a +3 bonus to rows whose modality matches one
    named in the dictation.
    """

    if not keywords:
        return []

    normalized = " ".join(keywords).lower()
    context = extract_clinical_context(normalized)

    targeted = _run_targeted(conn, build_procedure_queries(context, normalized))
    if targeted:
        logger.info("Procedure lookup: %d targeted candidates", len(targeted))
        return [
            CandidateProcedureCode(
                code=row["code"],
                description=row["description"],
                modality=row.get("modality"),
                confidence=TARGETED_CONFIDENCE,
            )
            for row in targeted
        ]

    lowered = [word.lower() for word in keywords]
    matched_modalities = [m for m in FALLBACK_MODALITY_KEYWORDS if any(m in word for word in lowered)]
    words = _filter_fallback_keywords(keywords)

    if not words:
        fallback_terms = [term for term in ("mri", "ct", "xray") if any(term in word for word in lowered)]
        if not fallback_terms:
            return []
        clause, params = _modality_clause(fallback_terms)
        rows = conn.execute(
            text(
                "SELECT CPT_Code AS code, Description AS description, Modality AS modality "
                f"FROM cpt_codes WHERE {clause} LIMIT {FALLBACK_LIMIT}"
            ),
            params,
        ).mappings().all()
        return [
            CandidateProcedureCode(
                code=row["code"],
                description=row["description"],
                modality=row["modality"],
                confidence=MODALITY_ONLY_CONFIDENCE,
            )
            for row in rows
        ]

    modality_clause, modality_params = _modality_clause(matched_modalities)

    exact_rows: List[Dict[str, Any]] = []
    for word in (w for w in words if len(w) > 4):
        params: Dict[str, Any] = {"term": f"%{word}%", **modality_params}
        extra = f" AND ({modality_clause})" if modality_clause else ""
        exact_rows.extend(
            dict(row)
            for row in conn.execute(
                text(
                    "SELECT CPT_Code AS code, Description AS description, Modality AS modality "
                    f"FROM cpt_codes WHERE Description LIKE :term{extra} LIMIT 5"
                ),
                params,
            ).mappings()
        )

    like_params = _like_params("k", words)
    score_sql = " + ".join(f"(CASE WHEN Description LIKE :{name} THEN 1 ELSE 0 END)" for name in like_params)
    if modality_clause:
        score_sql += f" + (CASE WHEN {modality_clause} THEN 3 ELSE 0 END)"
    where_sql = " OR ".join(f"Description LIKE :{name}" for name in like_params)
    scored_rows = conn.execute(
        text(
            "SELECT CPT_Code AS code, Description AS description, Modality AS modality, "
            f"({score_sql}) AS match_score FROM cpt_codes "
            f"WHERE {where_sql} ORDER BY match_score DESC LIMIT {FALLBACK_LIMIT}"
        ),
        {**like_params, **modality_params},
    ).mappings().all()

    merged = _dedupe_by_code([*exact_rows, *(dict(row) for row in scored_rows)])
    logger.info("Procedure lookup: %d scored candidates", len(merged))
    return [
        CandidateProcedureCode(
            code=row["code"],
            description=row["description"],
            modality=row.get("modality"),
            confidence=_score_confidence(row.get("match_score")),
        )
        for row in merged
    ]
