# propdesk/routers/audit.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Principal, require
from ..db import get_db
from ..domain.audit import activity_for, list_audit
from ..schemas import AuditLogCreate, AuditLogOut
from ..services.audit_log import add_audit_log

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=list[AuditLogOut])
def list_entries(
    entity: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    action: str | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=1000),
    db: Session = Depends(get_db),
    p: Principal = Depends(require("audit", "view")),
):
    return list_audit(db, entity=entity, entity_id=entity_id, action=action, limit=limit)


@router.post("", response_model=AuditLogOut)
def add_entry(payload: AuditLogCreate, db: Session = Depends(get_db), p: Principal = Depends(require("audit", "create"))):
    return add_audit_log(db, actor=p, payload=payload)


@router.get("/activity/{entity_type}/{entity_id}", response_model=list[AuditLogOut])
def activity(
    entity_type: str,
    entity_id: str,
    include_details_match: bool = Query(default=False),
    db: Session = Depends(get_db),
    p: Principal = Depends(require("audit", "view")),
):
    return activity_for(db, entity_type, entity_id, include_details_match=include_details_match)
