from __future__ import annotations

import logging
from typing import Optional

from src.radorder.config import settings
from src.radorder.infra.db import inmemory as inmemory_repos
from src.radorder.infra.db.models import Base
from src.radorder.infra.db.session import create_sqlalchemy_engine, create_sqlalchemy_session_factory
from src.radorder.infra.db.sql_orders import SqlOrderRepository

logger = logging.getLogger("orders")


def init_sql_repositories(database_url: Optional[str] = None, *, force: bool = False) -> bool:
    """Switch the order repository to the SQL-backed implementation.

    A no-op unless USE_SQL_REPOS is enabled (or ``force`` is given) and a
    database URL is available. Tables are created if they do not exist.
    Returns True when the swap happened.
    """

    if not (settings.use_sql_repos or force):
        return False

    db_url = database_url or settings.database_url
    if not db_url:
        logger.warning("USE_SQL_REPOS is enabled but DATABASE_URL is not set; keeping in-memory orders")
        return False

    engine = create_sqlalchemy_engine(db_url)
    Base.metadata.create_all(engine)

    inmemory_repos.order_repository = SqlOrderRepository(create_sqlalchemy_session_factory(engine))
    logger.info("Order repository switched to SQL backend")
    return True
