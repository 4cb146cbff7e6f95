from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Optional, Union

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, insert
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from src.radorder.config import settings
from src.radorder.errors import CodeDatabaseError

logger = logging.getLogger("codes")

# Column names follow the reference database as distributed, which uses
# mixed-case identifiers.
metadata = MetaData()

icd10_codes = Table(
    "icd10_codes",
    metadata,
    Column("ICD10_Code", String(16), primary_key=True),
    Column("Description", Text, nullable=False),
)

cpt_codes = Table(
    "cpt_codes",
    metadata,
    Column("CPT_Code", String(16), primary_key=True),
    Column("Description", Text, nullable=False),
    Column("Modality", String(64)),
)

icd10_cpt_mappings = Table(
    "icd10_cpt_mappings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("ICD10_Code", String(16), nullable=False),
    Column("CPT_Code", String(16), nullable=False),
    Column("Appropriateness", Integer),
    Column("Citation", Text),
    Column("Enhanced_Notes", Text),
)

icd10_markdown_docs = Table(
    "icd10_markdown_docs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("icd10_code", String(16), nullable=False),
    Column("content", Text, nullable=False),
)


class CodeDatabase:
    """Read access to the SQLite code reference database.

    A new engine without pooling is created for each ``connect`` call, so every
    top-level lookup opens one handle and closes it when done. Concurrent
    requests never share a connection.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None) -> None:
        self.path = Path(path) if path is not None else settings.code_database_path

    def _engine(self) -> Engine:
        return create_engine(f"sqlite:///{self.path}", poolclass=NullPool)

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        if not self.path.exists():
            raise CodeDatabaseError(f"Code reference database not found at {self.path}")

        engine = self._engine()
        try:
            connection = engine.connect()
        except SQLAlchemyError as exc:
            engine.dispose()
            raise CodeDatabaseError("Could not open code reference database") from exc

        try:
            yield connection
        finally:
            connection.close()
            engine.dispose()


def create_code_database(
    path: Union[str, Path],
    *,
    icd10: Iterable[Dict[str, Any]] = (),
    cpt: Iterable[Dict[str, Any]] = (),
    mappings: Iterable[Dict[str, Any]] = (),
    documents: Iterable[Dict[str, Any]] = (),
) -> CodeDatabase:
    """Create the reference schema at ``path`` and load the given rows.

    Used for seeding local environments and for test fixtures. Rows use the
    database column names, e.g. ``{"ICD10_Code": "M25.511", "Description": ...}``.
    """

    engine = create_engine(f"sqlite:///{path}", poolclass=NullPool)
    try:
        metadata.create_all(engine)
        with engine.begin() as conn:
            for table, rows in (
                (icd10_codes, list(icd10)),
                (cpt_codes, list(cpt)),
                (icd10_cpt_mappings, list(mappings)),
                (icd10_markdown_docs, list(documents)),
            ):
                if rows:
                    # executemany takes its column set from the first row, so
                    # every row carries every column.
                    columns = [c.name for c in table.columns if c.name != "id"]
                    conn.execute(insert(table), [{name: row.get(name) for name in columns} for row in rows])
    finally:
        engine.dispose()

    logger.info("Created code reference database at %s", path)
    return CodeDatabase(path)
