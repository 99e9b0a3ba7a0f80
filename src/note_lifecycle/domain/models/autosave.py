from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class AutoSaveSnapshot(BaseModel):
    """Latest in-progress edit of a note that is being tracked for auto-save.

    There is at most one snapshot per note; each registered change replaces
    it. It only becomes part of the permanent history when the tracker
    promotes it into a version.
    """

    note_id: str
    content: str
    title: str
    saved_at: datetime
    author_id: str
    last_promoted_version_id: Optional[str] = None
