from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError

from src.radorder.errors import CodeDatabaseError
from src.radorder.infra.codes.database import CodeDatabase, cpt_codes, icd10_codes, icd10_cpt_mappings

SEARCH_LIMIT = 25


class MedicalCodeRepository:
    """Read-only lookups against the code reference database."""

    def __init__(self, database: Optional[CodeDatabase] = None) -> None:
        self._database = database

    @property
    def database(self) -> CodeDatabase:
        return self._database or CodeDatabase()

    def _all(self, query) -> List[Dict[str, Any]]:
        try:
            with self.database.connect() as conn:
                return [dict(row) for row in conn.execute(query).mappings()]
        except SQLAlchemyError as exc:
            raise CodeDatabaseError("Code reference lookup failed") from exc

    def get_icd10(self, code: str) -> Optional[Dict[str, Any]]:
        rows = self._all(
            select(icd10_codes.c.ICD10_Code.label("code"), icd10_codes.c.Description.label("description")).where(
                icd10_codes.c.ICD10_Code == code
            )
        )
        return rows[0] if rows else None

    def get_cpt(self, code: str) -> Optional[Dict[str, Any]]:
        rows = self._all(
            select(
                cpt_codes.c.CPT_Code.label("code"),
                cpt_codes.c.Description.label("description"),
                cpt_codes.c.Modality.label("modality"),
            ).where(cpt_codes.c.CPT_Code == code)
        )
        return rows[0] if rows else None

    def get_mapping(self, icd10_code: str, cpt_code: str) -> Optional[Dict[str, Any]]:
        rows = self._all(
            select(
                icd10_cpt_mappings.c.ICD10_Code.label("icd10_code"),
                icd10_cpt_mappings.c.CPT_Code.label("cpt_code"),
                icd10_cpt_mappings.c.Appropriateness.label("score"),
                icd10_cpt_mappings.c.Citation.label("evidence"),
                icd10_cpt_mappings.c.Enhanced_Notes.label("justification"),
            )
            .where(icd10_cpt_mappings.c.ICD10_Code == icd10_code, icd10_cpt_mappings.c.CPT_Code == cpt_code)
            .order_by(icd10_cpt_mappings.c.Appropriateness.desc())
        )
        return rows[0] if rows else None

    def search_icd10(self, term: str, limit: int = SEARCH_LIMIT) -> List[Dict[str, Any]]:
        pattern = f"%{term}%"
        return self._all(
            select(icd10_codes.c.ICD10_Code.label("code"), icd10_codes.c.Description.label("description"))
            .where(or_(icd10_codes.c.ICD10_Code.like(pattern), icd10_codes.c.Description.like(pattern)))
            .order_by(icd10_codes.c.ICD10_Code)
            .limit(limit)
        )

    def search_cpt(self, term: str, limit: int = SEARCH_LIMIT) -> List[Dict[str, Any]]:
        pattern = f"%{term}%"
        return self._all(
            select(
                cpt_codes.c.CPT_Code.label("code"),
                cpt_codes.c.Description.label("description"),
                cpt_codes.c.Modality.label("modality"),
            )
            .where(or_(cpt_codes.c.CPT_Code.like(pattern), cpt_codes.c.Description.like(pattern)))
            .order_by(cpt_codes.c.CPT_Code)
            .limit(limit)
        )

    def describe_icd10_codes(self, codes: Sequence[str]) -> Dict[str, str]:
        """Return descriptions for the codes found; unknown codes are omitted."""

        if not codes:
            return {}
        rows = self._all(
            select(icd10_codes.c.ICD10_Code, icd10_codes.c.Description).where(
                icd10_codes.c.ICD10_Code.in_(list(codes))
            )
        )
        return {row["ICD10_Code"]: row["Description"] for row in rows}


medical_code_repository = MedicalCodeRepository()
