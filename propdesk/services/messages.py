# propdesk/services/messages.py
"""
Direct messages between principals. Each participant owns a thread row for
the conversation (owner_ref -> contact_ref), so unread counters are per
participant. Messages are communication records and are not audited.
"""
from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import Principal, resolve_principal
from ..db import transaction
from ..errors import AuthorizationError, ValidationError
from ..models import ChatMessage, MessageThread, utcnow
from ..permissions import can_chat
from ..schemas import MessageIn
from .registry import coerce, must_get

log = logging.getLogger(__name__)


def _thread_for(db: Session, owner: Principal, contact: Principal) -> MessageThread:
    row = db.scalar(
        select(MessageThread).where(MessageThread.owner_ref == owner.ref, MessageThread.contact_ref == contact.ref)
    )
    if row is None:
        row = MessageThread(
            owner_ref=owner.ref,
            contact_ref=contact.ref,
            contact_name=contact.name,
            last_message_at=utcnow(),
            unread=0,
        )
        db.add(row)
        db.flush()
    return row


def _own_thread(db: Session, actor: Principal, thread_id: int) -> MessageThread:
    row = must_get(db, MessageThread, thread_id)
    if row.owner_ref != actor.ref:
        raise AuthorizationError(f"thread {thread_id} does not belong to {actor.ref}", entity="MessageThread", entity_id=thread_id)
    return row


def start_chat(db: Session, *, actor: Principal, contact_ref: str) -> MessageThread:
    contact = resolve_principal(db, contact_ref)
    if contact.ref == actor.ref:
        raise ValidationError("cannot start a chat with yourself", entity="MessageThread")
    if not can_chat(actor.role, contact.role):
        raise AuthorizationError(f"{actor.role} cannot start a chat with {contact.role}", entity="MessageThread")

    with transaction(db):
        mine = _thread_for(db, actor, contact)
        _thread_for(db, contact, actor)
    return mine


def send_message(db: Session, *, actor: Principal, thread_id: int, payload: Any) -> ChatMessage:
    data = coerce(MessageIn, payload)
    with transaction(db):
        mine = _own_thread(db, actor, thread_id)
        contact = resolve_principal(db, mine.contact_ref)
        theirs = _thread_for(db, contact, actor)

        now = utcnow()
        attachments = json.dumps(list(data.attachments)) if data.attachments else None
        sent = ChatMessage(thread_id=mine.id, sender_ref=actor.ref, text=data.text, attachments_json=attachments, read=True, created_at=now)
        db.add(sent)
        db.add(ChatMessage(thread_id=theirs.id, sender_ref=actor.ref, text=data.text, attachments_json=attachments, read=False, created_at=now))

        for t in (mine, theirs):
            t.last_message = data.text
            t.last_message_at = now
        theirs.unread = int(theirs.unread or 0) + 1
        db.flush()
    log.info("message_sent", extra={"entity": "MessageThread", "entity_id": mine.id, "actor": actor.ref})
    return sent


def mark_thread_read(db: Session, *, actor: Principal, thread_id: int) -> MessageThread:
    with transaction(db):
        row = _own_thread(db, actor, thread_id)
        for m in row.messages:
            m.read = True
        row.unread = 0
    return row


def list_threads(db: Session, *, actor: Principal) -> list[MessageThread]:
    q = (
        select(MessageThread)
        .where(MessageThread.owner_ref == actor.ref)
        .order_by(MessageThread.last_message_at.desc(), MessageThread.id.desc())
    )
    return list(db.scalars(q).all())


def list_messages(db: Session, *, actor: Principal, thread_id: int) -> list[ChatMessage]:
    return list(_own_thread(db, actor, thread_id).messages)
