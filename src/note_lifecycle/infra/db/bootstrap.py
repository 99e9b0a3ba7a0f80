from __future__ import annotations

import logging
from typing import Optional

from src.note_lifecycle.config import settings
from src.note_lifecycle.infra.db.models import Base
from src.note_lifecycle.infra.db.repositories import KeyValueStore
from src.note_lifecycle.infra.db.session import create_db_engine, create_sqlalchemy_session_factory
from src.note_lifecycle.infra.db.sql_store import SqlKeyValueStore

logger = logging.getLogger(__name__)


def init_sql_store(database_url: Optional[str] = None) -> Optional[KeyValueStore]:
    """Build the SQL-backed note store when USE_SQL_REPOS is enabled.

    Returns None when SQL persistence is not requested or DATABASE_URL is not
    configured, in which case the caller keeps the in-memory store.
    """

    if not settings.use_sql_repos and database_url is None:
        return None

    db_url = database_url or settings.database_url
    if not db_url:
        logger.warning("USE_SQL_REPOS is enabled but DATABASE_URL is not set; keeping in-memory store")
        return None

    engine = create_db_engine(db_url)

    # Create tables if they do not exist. In a real deployment this should be
    # handled by migrations.
    Base.metadata.create_all(engine)

    return SqlKeyValueStore(create_sqlalchemy_session_factory(engine))
