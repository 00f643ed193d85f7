# propdesk/services/publicity.py
from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from ..db import transaction
from ..domain.audit import audit_write, describe_changes, snapshot
from ..models import Advertisement, utcnow
from ..schemas import AdvertisementCreate
from .registry import coerce, must_get


def add_advertisement(db: Session, *, actor: Any, payload: Any) -> Advertisement:
    data = coerce(AdvertisementCreate, payload)
    with transaction(db):
        row = Advertisement(**data.model_dump(), created_at=utcnow())
        db.add(row)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="create",
            entity="Advertisement",
            entity_id=row.id,
            details=f"Advertisement created: {row.title} by {row.advertiser} ({row.placement})",
        )
    return row


def update_advertisement(db: Session, *, actor: Any, advertisement_id: int, payload: Any) -> Advertisement:
    data = coerce(AdvertisementCreate, payload)
    with transaction(db):
        row = must_get(db, Advertisement, advertisement_id)
        before = snapshot(row)
        for k, v in data.model_dump().items():
            setattr(row, k, v)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="update",
            entity="Advertisement",
            entity_id=row.id,
            details=f"Advertisement {row.title} updated: {describe_changes(before, snapshot(row))}",
        )
    return row


def delete_advertisement(db: Session, *, actor: Any, advertisement_id: int) -> None:
    with transaction(db):
        row = must_get(db, Advertisement, advertisement_id)
        title = row.title
        db.delete(row)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="delete",
            entity="Advertisement",
            entity_id=advertisement_id,
            details=f"Advertisement deleted: {title}",
        )
