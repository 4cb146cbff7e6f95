from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import bindparam, select, text
from sqlalchemy.engine import Connection

from src.radorder.domain.validation.models import AppropriatenessMapping, ClinicalContext
from src.radorder.infra.codes.database import cpt_codes, icd10_codes
from src.radorder.services.validation.context_extractor import extract_clinical_context

logger = logging.getLogger("codes")

ACR_EVIDENCE = "ACR Appropriateness Criteria"


@dataclass(frozen=True)
class AppropriatenessRule:
    """A mapping synthesized from fixed knowledge rather than the mapping table.

    The rule fires when the dictation mentions ``anatomy``, one of
    ``text_terms`` appears in the text, one of ``diagnosis_codes`` is among
    the candidates and a candidate procedure code contains
    ``procedure_fragment``. The first of ``diagnosis_codes`` present among the
    candidates is used for the mapping.
    """

    name: str
    anatomy: str
    text_terms: Tuple[str, ...]
    diagnosis_codes: Tuple[str, ...]
    procedure_fragment: str
    score: int
    justification: str
    evidence: str = ACR_EVIDENCE

    def diagnosis_for(
        self, context: ClinicalContext, normalized: str, diagnosis_codes: Sequence[str]
    ) -> Optional[str]:
        if self.anatomy not in context.anatomy:
            return None
        if not any(term in normalized for term in self.text_terms):
            return None
        for code in self.diagnosis_codes:
            if code in diagnosis_codes:
                return code
        return None

    def procedure_for(self, procedure_codes: Sequence[str]) -> Optional[str]:
        for code in procedure_codes:
            if self.procedure_fragment in code:
                return code
        return None


# Diagnosis codes are listed in preference order.
APPROPRIATENESS_RULES: Tuple[AppropriatenessRule, ...] = (
    AppropriatenessRule(
        name="shoulder-labral-mri-with-contrast",
        anatomy="shoulder",
        text_terms=("labral", "labrum"),
        diagnosis_codes=("S43.431", "M25.511"),
        procedure_fragment="73222",
        score=7,
        justification="Superior for evaluation of labral tears, subtle rotator cuff tears, and adhesive capsulitis",
    ),
    AppropriatenessRule(
        name="shoulder-labral-mri-without-contrast",
        anatomy="shoulder",
        text_terms=("labral", "labrum"),
        diagnosis_codes=("S43.431", "M25.511"),
        procedure_fragment="73221",
        score=8,
        justification=(
            "Indicated when X-rays are normal or inconclusive and there is suspicion for rotator cuff tear, "
            "labral pathology, or other soft tissue abnormalities"
        ),
    ),
)


@dataclass(frozen=True)
class AnatomyExclusion:
    """Procedure description terms that contradict a detected anatomy group."""

    name: str
    applies: Callable[[ClinicalContext, str], bool]
    excluded_terms: Tuple[str, ...]

    def rejects(self, context: ClinicalContext, normalized: str, procedure_description: str) -> bool:
        if not self.applies(context, normalized):
            return False
        return any(term in procedure_description for term in self.excluded_terms)


def _any_anatomy(*names: str) -> Callable[[ClinicalContext, str], bool]:
    def _check(context: ClinicalContext, normalized: str) -> bool:
        return any(name in context.anatomy for name in names)

    return _check


def _lower_extremity(context: ClinicalContext, normalized: str) -> bool:
    if any(name in context.anatomy for name in ("knee", "ankle", "foot")):
        return True
    return "extremity" in context.anatomy and "lower" in normalized


def _ulnar_wrist(context: ClinicalContext, normalized: str) -> bool:
    return "tfcc" in normalized or ("ulnar" in normalized and "wrist" in normalized)


# Leading spaces keep " head" from matching "forehead" and similar.
ANATOMY_EXCLUSIONS: Tuple[AnatomyExclusion, ...] = (
    AnatomyExclusion(
        name="upper-extremity",
        applies=_any_anatomy("shoulder", "elbow", "wrist", "extremity"),
        excluded_terms=(
            "lower extremity", " knee", " foot", " ankle", " hip", "breast", "temporomandibular", " head", " neck",
        ),
    ),
    AnatomyExclusion(
        name="wrist",
        applies=_any_anatomy("wrist"),
        excluded_terms=(
            "breast", "brain", "temporomandibular", " head", " neck", " ankle", " foot", " knee", " hip",
        ),
    ),
    AnatomyExclusion(
        name="lower-extremity",
        applies=_lower_extremity,
        excluded_terms=(
            "upper extremity", "shoulder", "wrist", "elbow", "breast", "temporomandibular", " head", " neck",
        ),
    ),
    AnatomyExclusion(
        name="head-neck",
        applies=_any_anatomy("brain", "head", "neck"),
        excluded_terms=("shoulder", "extremity", "foot", "knee", "breast", "pelvis", "abdomen"),
    ),
    AnatomyExclusion(
        name="ulnar-wrist",
        applies=_ulnar_wrist,
        excluded_terms=("breast", "temporomandibular", " head", " neck"),
    ),
)


def is_anatomically_consistent(context: ClinicalContext, normalized: str, mapping: AppropriatenessMapping) -> bool:
    description = (mapping.procedure_description or "").lower()
    return not any(rule.rejects(context, normalized, description) for rule in ANATOMY_EXCLUSIONS)


def _synthesize(
    conn: Connection,
    rule: AppropriatenessRule,
    diagnosis_code: str,
    procedure_code: str,
) -> AppropriatenessMapping:
    diagnosis_description = conn.execute(
        select(icd10_codes.c.Description).where(icd10_codes.c.ICD10_Code == diagnosis_code)
    ).scalar_one_or_none()
    procedure_row = conn.execute(
        select(cpt_codes.c.Description, cpt_codes.c.Modality).where(cpt_codes.c.CPT_Code == procedure_code)
    ).first()

    return AppropriatenessMapping(
        diagnosis_code=diagnosis_code,
        diagnosis_description=diagnosis_description,
        procedure_code=procedure_code,
        procedure_description=procedure_row.Description if procedure_row else None,
        modality=procedure_row.Modality if procedure_row else None,
        score=rule.score,
        evidence=rule.evidence,
        justification=rule.justification,
    )


_MAPPING_QUERY = text(
    """
    SELECT
        m.ICD10_Code AS diagnosis_code,
        i.Description AS diagnosis_description,
        m.CPT_Code AS procedure_code,
        c.Description AS procedure_description,
        c.Modality AS modality,
        m.Appropriateness AS score,
        m.Citation AS evidence,
        m.Enhanced_Notes AS justification
    FROM icd10_cpt_mappings m
    JOIN icd10_codes i ON m.ICD10_Code = i.ICD10_Code
    JOIN cpt_codes c ON m.CPT_Code = c.CPT_Code
    WHERE m.ICD10_Code IN :diagnosis_codes
    AND m.CPT_Code IN :procedure_codes
    ORDER BY m.Appropriateness DESC
    """
).bindparams(
    bindparam("diagnosis_codes", expanding=True),
    bindparam("procedure_codes", expanding=True),
)


def _mapping_score(value: object) -> Optional[int]:
    """Return a stored score as an int on the 1-9 scale, or None if unusable."""

    if value is None or isinstance(value, bool):
        return None
    try:
        score = int(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return score if 1 <= score <= 9 else None


def find_appropriateness_mappings(
    conn: Connection,
    diagnosis_codes: Sequence[str],
    procedure_codes: Sequence[str],
    dictation_text: str = "",
) -> List[AppropriatenessMapping]:
    """Return rule-synthesized mappings followed by persisted ones.

    Persisted mappings keep the database's score ordering and are dropped when
    they duplicate a synthesized (diagnosis, procedure) pair or when their
    procedure names anatomy inconsistent with the dictation.
    """

    if not diagnosis_codes or not procedure_codes:
        return []

    context = extract_clinical_context(dictation_text) if dictation_text else None
    normalized = dictation_text.lower()

    synthesized: List[AppropriatenessMapping] = []
    if context is not None:
        for rule in APPROPRIATENESS_RULES:
            diagnosis_code = rule.diagnosis_for(context, normalized, diagnosis_codes)
            procedure_code = rule.procedure_for(procedure_codes) if diagnosis_code else None
            if diagnosis_code and procedure_code:
                synthesized.append(_synthesize(conn, rule, diagnosis_code, procedure_code))
                logger.info("Appropriateness rule %s applied", rule.name)

    seen: Set[Tuple[str, str]] = {(m.diagnosis_code, m.procedure_code) for m in synthesized}

    rows = conn.execute(
        _MAPPING_QUERY,
        {"diagnosis_codes": list(diagnosis_codes), "procedure_codes": list(procedure_codes)},
    ).mappings()

    persisted: List[AppropriatenessMapping] = []
    for row in rows:
        pair = (row["diagnosis_code"], row["procedure_code"])
        if pair in seen:
            continue
        score = _mapping_score(row["score"])
        if score is None:
            logger.warning("Ignoring mapping %s/%s with score %r", pair[0], pair[1], row["score"])
            continue
        seen.add(pair)
        persisted.append(AppropriatenessMapping(**{**dict(row), "score": score}))

    if context is not None and context.anatomy:
        consistent = [m for m in persisted if is_anatomically_consistent(context, normalized, m)]
        if len(consistent) != len(persisted):
            logger.info("Dropped %d anatomically inconsistent mappings", len(persisted) - len(consistent))
        persisted = consistent

    return synthesized + persisted
