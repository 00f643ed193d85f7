# propdesk/routers/notifications.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth import Principal, get_principal, require
from ..db import get_db
from ..models import Notification
from ..permissions import STAFF_ROLES
from ..schemas import ChatMessageOut, MessageIn, NotificationCreate, NotificationOut, StartChatIn, ThreadOut
from ..services import messages as msg
from ..services import notifications as svc
from ..services.registry import must_get

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationOut])
def list_mine(
    unread_only: bool = Query(default=False),
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return svc.list_notifications(db, recipient_kind=p.kind, recipient_id=p.id, unread_only=unread_only)


@router.post("", response_model=NotificationOut)
def add_notification(payload: NotificationCreate, db: Session = Depends(get_db), p: Principal = Depends(require("messages", "create"))):
    return svc.add_notification(db, payload=payload)


@router.post("/{notification_id}/read", response_model=NotificationOut)
def mark_as_read(notification_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    row = must_get(db, Notification, notification_id)
    mine = row.recipient_kind == p.kind and row.recipient_id == p.id
    if not mine and p.role not in STAFF_ROLES:
        raise HTTPException(status_code=403, detail="not your notification")
    return svc.mark_as_read(db, notification_id=notification_id)


# ---- direct messages ----
@router.get("/threads", response_model=list[ThreadOut])
def list_threads(db: Session = Depends(get_db), p: Principal = Depends(require("messages", "view"))):
    return msg.list_threads(db, actor=p)


@router.post("/threads", response_model=ThreadOut)
def start_chat(payload: StartChatIn, db: Session = Depends(get_db), p: Principal = Depends(require("messages", "view"))):
    return msg.start_chat(db, actor=p, contact_ref=payload.contact_ref)


@router.get("/threads/{thread_id}/messages", response_model=list[ChatMessageOut])
def list_messages(thread_id: int, db: Session = Depends(get_db), p: Principal = Depends(require("messages", "view"))):
    return msg.list_messages(db, actor=p, thread_id=thread_id)


@router.post("/threads/{thread_id}/messages", response_model=ChatMessageOut)
def send_message(thread_id: int, payload: MessageIn, db: Session = Depends(get_db), p: Principal = Depends(require("messages", "view"))):
    return msg.send_message(db, actor=p, thread_id=thread_id, payload=payload)


@router.post("/threads/{thread_id}/read", response_model=ThreadOut)
def mark_thread_read(thread_id: int, db: Session = Depends(get_db), p: Principal = Depends(require("messages", "view"))):
    return msg.mark_thread_read(db, actor=p, thread_id=thread_id)
