from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from src.radorder.domain.validation.models import DatabaseContext, GuidelineDocument
from src.radorder.errors import CodeDatabaseError
from src.radorder.infra.codes.database import CodeDatabase
from src.radorder.services.validation.appropriateness import find_appropriateness_mappings
from src.radorder.services.validation.code_lookup import find_diagnosis_candidates, find_procedure_candidates
from src.radorder.services.validation.context_extractor import extract_medical_keywords

logger = logging.getLogger("codes")

MAX_GUIDELINE_DOCUMENTS = 5

_DOCUMENT_QUERY = text(
    "SELECT icd10_code, content FROM icd10_markdown_docs WHERE icd10_code IN :codes LIMIT :limit"
).bindparams(bindparam("codes", expanding=True))


def _guideline_documents(conn: Connection, diagnosis_codes: Sequence[str]) -> List[GuidelineDocument]:
    if not diagnosis_codes:
        return []
    try:
        rows = conn.execute(
            _DOCUMENT_QUERY, {"codes": list(diagnosis_codes), "limit": MAX_GUIDELINE_DOCUMENTS}
        ).mappings()
        return [GuidelineDocument(icd10_code=row["icd10_code"], content=row["content"]) for row in rows]
    except SQLAlchemyError:
        # Guideline text is supplementary; the rest of the context stands.
        logger.exception("Guideline document lookup failed")
        return []


def generate_database_context(dictation_text: str, database: Optional[CodeDatabase] = None) -> DatabaseContext:
    """Collect candidate codes, mappings and guideline text for a dictation.

    Opens the code database once for the whole lookup. Failures of the
    database as a whole raise ``CodeDatabaseError``.
    """

    database = database or CodeDatabase()
    keywords = extract_medical_keywords(dictation_text)

    with database.connect() as conn:
        try:
            diagnoses = find_diagnosis_candidates(conn, keywords)
            procedures = find_procedure_candidates(conn, keywords)
            diagnosis_codes = [candidate.code for candidate in diagnoses]
            procedure_codes = [candidate.code for candidate in procedures]
            documents = _guideline_documents(conn, diagnosis_codes)
            mappings = find_appropriateness_mappings(conn, diagnosis_codes, procedure_codes, dictation_text)
        except SQLAlchemyError as exc:
            raise CodeDatabaseError("Code reference lookup failed") from exc

    context = DatabaseContext(
        possible_diagnoses=diagnoses,
        possible_procedures=procedures,
        appropriateness_mappings=mappings,
        guideline_documents=documents,
    )
    logger.info("Database context built: %s", context.stats())
    return context
