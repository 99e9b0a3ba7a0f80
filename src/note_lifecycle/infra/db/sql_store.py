from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from src.note_lifecycle.infra.db.models import NoteRecordORM
from src.note_lifecycle.infra.db.repositories import KeyValueStore
from src.note_lifecycle.infra.db.session import SessionFactory


class SqlKeyValueStore(KeyValueStore):
    """SQL-backed store keeping one row per note record.

    Sessions are short-lived: each call opens a session from the factory,
    commits if it wrote anything, and closes it.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[bytes]:
        session = self._session_factory()
        try:
            orm = session.get(NoteRecordORM, key)
            if orm is None:
                return None
            return bytes(orm.value)
        finally:
            session.close()

    def put(self, key: str, value: bytes) -> None:
        session = self._session_factory()
        try:
            now = datetime.now(timezone.utc)
            existing = session.get(NoteRecordORM, key)
            if existing is None:
                session.add(NoteRecordORM(key=key, value=value, updated_at=now))
            else:
                existing.value = value
                existing.updated_at = now
            session.commit()
        finally:
            session.close()

    def keys(self, prefix: str = "") -> Iterable[str]:
        session = self._session_factory()
        try:
            query = session.query(NoteRecordORM.key)
            if prefix:
                query = query.filter(NoteRecordORM.key.startswith(prefix, autoescape=True))
            found: List[str] = [row[0] for row in query.order_by(NoteRecordORM.key).all()]
        finally:
            session.close()
        return found
