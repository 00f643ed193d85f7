# propdesk/services/notifications.py
"""
Notifications are communication records, not registry mutations: they are
not audited, and outbound delivery never fails the write that asked for it.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..clients.notifier import WebhookNotifier, get_notifier
from ..db import transaction
from ..models import Notification, Owner, Partner, Tenant, User, utcnow
from ..schemas import NotificationCreate
from .registry import coerce, must_get, must_ref

log = logging.getLogger(__name__)

RECIPIENT_MODELS = {"user": User, "owner": Owner, "partner": Partner, "tenant": Tenant}


def _payload_for(row: Notification) -> dict[str, Any]:
    return {
        "notification_id": int(row.id),
        "recipient": f"{row.recipient_kind}:{row.recipient_id}",
        "title": row.title,
        "message": row.message,
        "payload": json.loads(row.payload_json) if row.payload_json else {},
    }


def deliver(db: Session, row: Notification, notifier: Optional[WebhookNotifier]) -> Notification:
    """
    Try outbound delivery and record the outcome on the notification.
    Never raises for delivery problems.
    """
    if notifier is None or not notifier.enabled():
        return row

    result = notifier.deliver(_payload_for(row))
    if result.delivered:
        row.delivery_status = "sent"
        log.info("notification_delivered", extra={"entity": "Notification", "entity_id": row.id, "status": "sent"})
    else:
        row.delivery_status = "failed"
        log.warning(
            "notification_delivery_failed: %s",
            result.error,
            extra={"entity": "Notification", "entity_id": row.id, "status": "failed"},
        )
    with transaction(db):
        db.add(row)
    return row


def add_notification(
    db: Session,
    *,
    payload: Any,
    notifier: Optional[WebhookNotifier] = None,
    send: bool = True,
) -> Notification:
    data = coerce(NotificationCreate, payload)
    with transaction(db):
        must_ref(
            db,
            RECIPIENT_MODELS[data.recipient_kind],
            data.recipient_id,
            field="recipient_id",
            entity="Notification",
        )
        row = Notification(
            recipient_kind=data.recipient_kind,
            recipient_id=data.recipient_id,
            title=data.title,
            message=data.message,
            payload_json=json.dumps(data.payload, sort_keys=True, default=str) if data.payload else None,
            read=False,
            delivery_status="in_app",
            created_at=utcnow(),
        )
        db.add(row)
        db.flush()

    if send:
        deliver(db, row, notifier if notifier is not None else get_notifier())
    return row


def mark_as_read(db: Session, *, notification_id: int) -> Notification:
    with transaction(db):
        row = must_get(db, Notification, notification_id)
        row.read = True
    return row


def list_notifications(
    db: Session,
    *,
    recipient_kind: Optional[str] = None,
    recipient_id: Optional[int] = None,
    unread_only: bool = False,
) -> list[Notification]:
    q = select(Notification).order_by(Notification.created_at.desc(), Notification.id.desc())
    if recipient_kind:
        q = q.where(Notification.recipient_kind == recipient_kind)
    if recipient_id is not None:
        q = q.where(Notification.recipient_id == recipient_id)
    if unread_only:
        q = q.where(Notification.read.is_(False))
    return list(db.scalars(q).all())
