from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class NoteVersion(BaseModel):
    """A full snapshot of a note body at one point in its history.

    Versions are never edited once written. Reverting to an older version
    appends a copy of it instead of moving the current pointer backwards.
    """

    version_id: str
    note_id: str
    # 1-based position in the note's history.
    sequence: int
    content: str
    timestamp: datetime
    author_id: str
    author_name: str
    reason: Optional[str] = None
    is_pristine: bool = False


class NoteHistory(BaseModel):
    note_id: str
    versions: List[NoteVersion] = Field(default_factory=list)
    current_version_id: str

    @property
    def revision(self) -> int:
        return len(self.versions)


class VersionDiff(BaseModel):
    added: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)
