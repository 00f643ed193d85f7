# propdesk/services/audit_log.py
from __future__ import annotations

from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from ..db import transaction
from ..domain.audit import audit_write
from ..models import AuditLogEntry
from ..schemas import AuditLogCreate
from .registry import coerce


def add_audit_log(
    db: Session,
    *,
    actor: Any,
    payload: Any,
    related: Optional[Iterable[tuple[str, Any]]] = None,
) -> AuditLogEntry:
    """Collaborator-facing append (login, export and import events recorded outside the gateway)."""
    data = coerce(AuditLogCreate, payload)
    with transaction(db):
        row = audit_write(
            db,
            actor=actor,
            action=data.action,
            entity=data.entity,
            entity_id=data.entity_id,
            details=data.details,
            related=list(related or ()),
        )
    return row
