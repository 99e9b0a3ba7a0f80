from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class NoteStatus(str, Enum):
    DRAFT = "draft"
    SIGNED = "signed"
    CO_SIGNED = "co-signed"
    REOPENED = "reopened"


class NoteRecord(BaseModel):
    """Stored part of a note. Status and version pointer are not stored here."""

    id: str
    title: str
    created_at: datetime
    created_by: str


class ClinicalNote(BaseModel):
    """Read view of a note.

    ``status``, ``locked``, ``current_version_id`` and ``revision`` are derived
    from the signature ledger and the version history every time the view is
    built, so they cannot drift from the state they describe.
    """

    id: str
    title: str
    created_at: datetime
    created_by: str
    status: NoteStatus
    locked: bool
    current_version_id: Optional[str] = None
    revision: int = 0
    content: Optional[str] = None
