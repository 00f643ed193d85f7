from __future__ import annotations

import json
import logging

import httpx
import pytest
from sqlalchemy import func, select

from propdesk.auth import resolve_principal
from propdesk.clients.notifier import WebhookNotifier
from propdesk.errors import AuthorizationError, ReferentialIntegrityError, ValidationError
from propdesk.models import AuditLogEntry, Task
from propdesk.services import messages, notifications, partners, properties, tasks, tenants


def _audit_count(db) -> int:
    return int(db.scalar(select(func.count(AuditLogEntry.id))) or 0)


def _notifier(status_code: int, seen: list | None = None) -> WebhookNotifier:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(json.loads(request.content))
        return httpx.Response(status_code, json={"ok": status_code < 400})

    return WebhookNotifier("https://hooks.test/notify", client=httpx.Client(transport=httpx.MockTransport(handler)))


def _mk_assigned_task(db, actor):
    owner = properties.add_owner(db, actor=actor, payload={"name": "Owner"})
    prop = properties.add_property(db, actor=actor, payload={"owner_id": owner.id, "name": "Dune 3", "address": "3 Dune Rd"})
    partner = partners.add_partner(db, actor=actor, payload={"name": "Gardeners", "email": "g@garden.test"})
    t = tasks.add_task(
        db,
        actor=actor,
        payload={"property_id": prop.id, "title": "Trim hedges", "assignee_kind": "partner", "assignee_id": partner.id},
    )
    return partner, t


def test_notify_supplier_delivered(db, admin):
    partner, t = _mk_assigned_task(db, admin)
    seen: list = []
    note = tasks.notify_supplier(db, actor=admin, task_id=t.id, notifier=_notifier(200, seen))

    assert note.delivery_status == "sent"
    assert (note.recipient_kind, note.recipient_id) == ("partner", partner.id)
    assert seen[0]["payload"]["task_id"] == t.id
    assert "Trim hedges" in seen[0]["message"]


def test_failed_delivery_is_recorded_and_task_untouched(db, admin, caplog):
    _, t = _mk_assigned_task(db, admin)
    before = (t.status, t.updated_at)
    n = _audit_count(db)

    with caplog.at_level(logging.WARNING, logger="propdesk.services.notifications"):
        note = tasks.notify_supplier(db, actor=admin, task_id=t.id, message="Please come Tuesday", notifier=_notifier(500))

    assert note.delivery_status == "failed"
    assert note.message == "Please come Tuesday"
    assert any("notification_delivery_failed" in r.getMessage() for r in caplog.records)

    db.expire_all()
    row = db.get(Task, t.id)
    assert (row.status, row.updated_at) == before
    assert _audit_count(db) == n


def test_notify_supplier_needs_partner(db, admin):
    owner = properties.add_owner(db, actor=admin, payload={"name": "Owner"})
    prop = properties.add_property(db, actor=admin, payload={"owner_id": owner.id, "name": "X", "address": "X"})
    t = tasks.add_task(db, actor=admin, payload={"property_id": prop.id, "title": "Unassigned"})
    with pytest.raises(ValidationError):
        tasks.notify_supplier(db, actor=admin, task_id=t.id)


def test_in_app_notification_without_webhook(db, admin):
    note = notifications.add_notification(
        db, payload={"recipient_kind": "user", "recipient_id": admin.id, "title": "Hello"}
    )
    assert note.delivery_status == "in_app"
    notifications.mark_as_read(db, notification_id=note.id)

    assert notifications.list_notifications(db, recipient_kind="user", recipient_id=admin.id, unread_only=True) == []
    with pytest.raises(ReferentialIntegrityError):
        notifications.add_notification(db, payload={"recipient_kind": "tenant", "recipient_id": 9, "title": "x"})


def test_chat_threads_are_mirrored(db, admin):
    tenant = tenants.add_tenant(db, actor=admin, payload={"name": "Tess", "email": "tess@mail.test"})
    tess = resolve_principal(db, f"tenant:{tenant.id}")

    mine = messages.start_chat(db, actor=admin, contact_ref=tess.ref)
    messages.send_message(db, actor=admin, thread_id=mine.id, payload={"text": "Your lease is ready"})

    theirs = messages.list_threads(db, actor=tess)
    assert len(theirs) == 1
    assert theirs[0].unread == 1
    assert theirs[0].last_message == "Your lease is ready"

    messages.mark_thread_read(db, actor=tess, thread_id=theirs[0].id)
    assert messages.list_threads(db, actor=tess)[0].unread == 0

    with pytest.raises(AuthorizationError):
        messages.list_messages(db, actor=tess, thread_id=mine.id)
    with pytest.raises(ValidationError):
        messages.start_chat(db, actor=admin, contact_ref=admin.ref)


def test_portal_users_only_chat_with_staff(db, admin):
    a = tenants.add_tenant(db, actor=admin, payload={"name": "A"})
    b = tenants.add_tenant(db, actor=admin, payload={"name": "B"})
    with pytest.raises(AuthorizationError):
        messages.start_chat(db, actor=resolve_principal(db, f"tenant:{a.id}"), contact_ref=f"tenant:{b.id}")
