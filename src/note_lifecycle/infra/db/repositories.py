from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional


class KeyValueStore(ABC):
    """Durable storage the note engine reads and writes through.

    Each engine component keeps one record per note under its own key prefix
    (``history:``, ``ledger:``, ``autosave:``, ``note:``), so no two components
    ever write the same record.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    @abstractmethod
    def put(self, key: str, value: bytes) -> None:
        raise NotImplementedError

    @abstractmethod
    def keys(self, prefix: str = "") -> Iterable[str]:
        raise NotImplementedError
