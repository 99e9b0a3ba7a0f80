from __future__ import annotations

from threading import Lock
from typing import Dict, Iterable, List, Optional

from src.note_lifecycle.infra.db.repositories import KeyValueStore


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store used for tests and local development."""

    def __init__(self) -> None:
        self._records: Dict[str, bytes] = {}
        self._lock = Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._records.get(key)

    def put(self, key: str, value: bytes) -> None:
        with self._lock:
            self._records[key] = bytes(value)

    def keys(self, prefix: str = "") -> Iterable[str]:
        with self._lock:
            matched: List[str] = [key for key in self._records if key.startswith(prefix)]
        return sorted(matched)
