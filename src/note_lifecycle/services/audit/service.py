from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger("audit")


@dataclass
class AuditEvent:
    """One lifecycle action, as written to the audit log.

    Carries identifiers only. Note content and titles never appear here.
    """

    timestamp: str
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    user_id: Optional[str] = None
    subject: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


class AuditService:
    """Writes one JSON line per note lifecycle action to the ``audit`` logger."""

    def log_event(
        self,
        *,
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        user_id: Optional[str] = None,
        subject: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record ``action`` (e.g. "sign_note") on a note, signature or request.

        ``user_id`` is the acting clinician. ``subject`` identifies the API
        caller and defaults to the hashed key of the current request.
        """

        if subject is None:
            from src.note_lifecycle.security import get_current_subject

            subject = get_current_subject()

        event = AuditEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            user_id=user_id,
            subject=subject,
            extra=extra,
        )
        logger.info(self._serialize(event))

    @staticmethod
    def _serialize(event: AuditEvent) -> str:
        payload = asdict(event)
        try:
            return json.dumps(payload)
        except TypeError:
            # Extras must stay JSON-friendly; drop them rather than lose the event.
            payload["extra"] = None
            return json.dumps(payload)


audit_service = AuditService()
