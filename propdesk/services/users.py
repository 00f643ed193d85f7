# propdesk/services/users.py
from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..db import transaction
from ..domain.audit import audit_write, describe_changes, snapshot
from ..errors import ValidationError
from ..models import User, utcnow
from ..permissions import dump_permissions
from ..schemas import UserCreate
from .registry import coerce, must_get

log = logging.getLogger(__name__)


def _check_email(db: Session, email: str, *, exclude_id: Optional[int] = None) -> None:
    q = select(User.id).where(func.lower(User.email) == email.strip().lower())
    if exclude_id is not None:
        q = q.where(User.id != exclude_id)
    if db.scalar(q) is not None:
        raise ValidationError(f"a user with email {email} already exists", entity="User")


def _user_fields(data: UserCreate) -> dict[str, Any]:
    out = data.model_dump(exclude={"permissions"})
    out["permissions_json"] = dump_permissions(p.model_dump() for p in data.permissions)
    return out


def add_user(db: Session, *, actor: Any, payload: Any) -> User:
    data = coerce(UserCreate, payload)
    with transaction(db):
        _check_email(db, data.email)
        row = User(**_user_fields(data), created_at=utcnow())
        db.add(row)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="create",
            entity="User",
            entity_id=row.id,
            details=f"User created: {row.name} <{row.email}> as {row.role} ({row.status})",
        )
    log.info("user_created", extra={"entity": "User", "entity_id": row.id, "actor": actor.ref})
    return row


def update_user(db: Session, *, actor: Any, user_id: int, payload: Any) -> User:
    data = coerce(UserCreate, payload)
    with transaction(db):
        row = must_get(db, User, user_id)
        _check_email(db, data.email, exclude_id=row.id)
        before = snapshot(row)
        for k, v in _user_fields(data).items():
            setattr(row, k, v)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="update",
            entity="User",
            entity_id=row.id,
            details=f"User {row.name} updated: {describe_changes(before, snapshot(row))}",
        )
    return row


def delete_user(db: Session, *, actor: Any, user_id: int) -> None:
    if getattr(actor, "kind", None) == "user" and int(getattr(actor, "id", -1)) == int(user_id):
        raise ValidationError("users cannot delete themselves", entity="User", entity_id=user_id)
    with transaction(db):
        row = must_get(db, User, user_id)
        label = f"{row.name} <{row.email}>"
        db.delete(row)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="delete",
            entity="User",
            entity_id=user_id,
            details=f"User deleted: {label}",
        )


def _set_status(db: Session, *, actor: Any, user_id: int, status: str, verb: str) -> User:
    with transaction(db):
        row = must_get(db, User, user_id)
        prev = row.status
        row.status = status
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="update",
            entity="User",
            entity_id=row.id,
            details=f"User {row.name} {verb} ({prev} -> {status})",
        )
    return row


def approve_user(db: Session, *, actor: Any, user_id: int) -> User:
    return _set_status(db, actor=actor, user_id=user_id, status="active", verb="approved")


def block_user(db: Session, *, actor: Any, user_id: int) -> User:
    return _set_status(db, actor=actor, user_id=user_id, status="blocked", verb="blocked")
