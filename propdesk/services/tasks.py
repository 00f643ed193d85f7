# propdesk/services/tasks.py
from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import require_permission
from ..clients.notifier import WebhookNotifier
from ..db import transaction
from ..domain.audit import audit_write, describe_changes, snapshot
from ..domain.property_scope import check_assignment
from ..domain.task_lifecycle import Transition, plan_transition
from ..errors import ValidationError
from ..models import Notification, Partner, Property, Task, TaskAttachment, User, utcnow
from ..schemas import EvidenceIn, TaskCreate, TaskImageIn, TaskUpdate
from .notifications import add_notification
from .postings import post_task_cost
from .registry import coerce, must_get, must_ref

log = logging.getLogger(__name__)


def _check_assignee(db: Session, data: TaskCreate, *, enforce_scope: bool) -> Optional[Any]:
    if data.assignee_kind is None:
        return None
    if data.assignee_kind == "partner":
        partner = must_ref(db, Partner, data.assignee_id, field="assignee_id", entity="Task")
        if enforce_scope:
            check_assignment(partner, data.property_id)
        return partner
    return must_ref(db, User, data.assignee_id, field="assignee_id", entity="Task")


def _related(task: Task, extra: Optional[list[tuple[str, Any]]] = None) -> list[tuple[str, Any]]:
    out: list[tuple[str, Any]] = [("Property", task.property_id)]
    if task.assignee_kind == "partner":
        out.append(("Partner", task.assignee_id))
    elif task.assignee_kind == "user":
        out.append(("User", task.assignee_id))
    out.extend(extra or [])
    return out


def _authorize(actor: Any, transition: Transition) -> None:
    if transition.capability is not None:
        require_permission(actor, *transition.capability)


def _apply_transition(db: Session, task: Task, transition: Transition) -> tuple[str, list[tuple[str, Any]]]:
    """Set the new status and run completion side effects; returns (summary, related)."""
    if not transition.changes_status:
        return f"status unchanged ({task.status})", []

    task.status = transition.target
    summary = f"status {transition.current} -> {transition.target}"
    if transition.direction == "backward":
        summary += " (override)"

    related: list[tuple[str, Any]] = []
    if transition.completes:
        db.flush()
        entry = post_task_cost(db, task)
        if entry is not None:
            related.append(("LedgerEntry", entry.id))
            summary += f"; {entry.category} expense {entry.amount:.2f} posted (ledger entry {entry.id})"
    return summary, related


def add_task(db: Session, *, actor: Any, payload: Any) -> Task:
    """
    New tasks start at `pending` and may be created directly in a later
    state; the same lifecycle rules apply as for an update from `pending`.
    """
    data = coerce(TaskCreate, payload)
    with transaction(db):
        must_ref(db, Property, data.property_id, field="property_id", entity="Task")
        _check_assignee(db, data, enforce_scope=True)
        transition = plan_transition("pending", data.status)
        _authorize(actor, transition)

        now = utcnow()
        fields = data.model_dump()
        fields["status"] = "pending"
        row = Task(**fields, created_at=now, updated_at=now)
        db.add(row)
        db.flush()

        details = f"Task created: {row.title} ({row.task_type}, {row.priority}) on property {row.property_id}"
        summary, extra = _apply_transition(db, row, transition)
        if transition.changes_status:
            details += f"; {summary}"
        db.flush()

        audit_write(
            db,
            actor=actor,
            action="create",
            entity="Task",
            entity_id=row.id,
            details=details,
            related=_related(row, extra),
        )
    log.info("task_created", extra={"entity": "Task", "entity_id": row.id, "actor": actor.ref, "status": row.status})
    return row


def update_task(db: Session, *, actor: Any, task_id: int, payload: Any) -> Task:
    """Full replace. A status change in the payload goes through the lifecycle rules."""
    data = coerce(TaskUpdate, payload)
    with transaction(db):
        row = must_get(db, Task, task_id)
        must_ref(db, Property, data.property_id, field="property_id", entity="Task")

        reassigned = (
            data.assignee_kind != row.assignee_kind
            or data.assignee_id != row.assignee_id
            or data.property_id != row.property_id
        )
        _check_assignee(db, data, enforce_scope=reassigned)

        transition = plan_transition(row.status, data.status, override=data.override, task_id=row.id)
        _authorize(actor, transition)

        before = snapshot(row)
        old_related = _related(row)
        for k, v in data.model_dump(exclude={"status", "override"}).items():
            setattr(row, k, v)
        summary, extra = _apply_transition(db, row, transition)
        row.updated_at = utcnow()
        db.flush()

        changes = describe_changes(before, snapshot(row))
        audit_write(
            db,
            actor=actor,
            action="update",
            entity="Task",
            entity_id=row.id,
            details=f"Task {row.title} updated: {changes}" + (f"; {summary}" if transition.changes_status else ""),
            related=old_related + _related(row, extra),
        )
    return row


def update_task_status(db: Session, *, actor: Any, task_id: int, status: str, override: bool = False) -> Task:
    with transaction(db):
        row = must_get(db, Task, task_id)
        transition = plan_transition(row.status, status, override=override, task_id=row.id)
        _authorize(actor, transition)

        summary, extra = _apply_transition(db, row, transition)
        row.updated_at = utcnow()
        db.flush()

        audit_write(
            db,
            actor=actor,
            action="update",
            entity="Task",
            entity_id=row.id,
            details=f"Task {row.title}: {summary}",
            related=_related(row, extra),
        )
    log.info(
        "task_status_changed",
        extra={"entity": "Task", "entity_id": row.id, "actor": actor.ref, "status": row.status},
    )
    return row


def delete_task(db: Session, *, actor: Any, task_id: int) -> None:
    with transaction(db):
        row = must_get(db, Task, task_id)
        related = _related(row)
        title = row.title
        db.delete(row)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="delete",
            entity="Task",
            entity_id=task_id,
            details=f"Task deleted: {title}",
            related=related,
        )


# -------------------------
# Attachments
# -------------------------
def _existing_attachment(db: Session, task_id: int, kind: str, ref: str) -> Optional[TaskAttachment]:
    return db.scalar(
        select(TaskAttachment).where(
            TaskAttachment.task_id == task_id,
            TaskAttachment.kind == kind,
            TaskAttachment.ref == ref,
        )
    )


def _next_position(task: Task, kind: str) -> int:
    positions = [a.position for a in task.attachments if a.kind == kind]
    return (max(positions) + 1) if positions else 0


def add_task_image(db: Session, *, actor: Any, task_id: int, ref: Any) -> Task:
    """
    Append an image reference. Re-adding a reference already on the task
    keeps the list unchanged; status is never touched.
    """
    data = coerce(TaskImageIn, ref if isinstance(ref, (dict, TaskImageIn)) else {"ref": ref})
    with transaction(db):
        row = must_get(db, Task, task_id)
        existing = _existing_attachment(db, row.id, "image", data.ref)
        if existing is None:
            row.attachments.append(TaskAttachment(kind="image", ref=data.ref, position=_next_position(row, "image"), created_at=utcnow()))
            row.updated_at = utcnow()
            details = f"Task {row.title}: image added ({data.ref})"
        else:
            details = f"Task {row.title}: image already attached ({data.ref})"
        db.flush()

        audit_write(db, actor=actor, action="update", entity="Task", entity_id=row.id, details=details, related=_related(row))
    return row


def add_task_evidence(db: Session, *, actor: Any, task_id: int, payload: Any) -> Task:
    data = coerce(EvidenceIn, payload)
    with transaction(db):
        row = must_get(db, Task, task_id)
        existing = _existing_attachment(db, row.id, "evidence", data.ref)
        if existing is None:
            row.attachments.append(
                TaskAttachment(
                    kind="evidence",
                    position=_next_position(row, "evidence"),
                    created_at=utcnow(),
                    **data.model_dump(),
                )
            )
            row.updated_at = utcnow()
            where = f" at {data.location_address}" if data.location_address else ""
            details = f"Task {row.title}: {data.evidence_type} evidence added ({data.ref}){where}"
        else:
            details = f"Task {row.title}: evidence already attached ({data.ref})"
        db.flush()

        audit_write(db, actor=actor, action="update", entity="Task", entity_id=row.id, details=details, related=_related(row))
    return row


# -------------------------
# Supplier notification
# -------------------------
def notify_supplier(
    db: Session,
    *,
    actor: Any,
    task_id: int,
    message: Optional[str] = None,
    notifier: Optional[WebhookNotifier] = None,
) -> Notification:
    """
    Notify the partner assigned to a task. The task itself is not modified;
    delivery problems end up on the notification's delivery_status.
    """
    task = must_get(db, Task, task_id)
    if task.assignee_kind != "partner" or task.assignee_id is None:
        raise ValidationError(f"task {task.id} has no partner assigned", entity="Task", entity_id=task.id)

    prop = db.get(Property, task.property_id)
    text = message or (
        f"You have been assigned '{task.title}' at {prop.name if prop else task.property_id}"
        + (f" on {task.scheduled_date.isoformat()}" if task.scheduled_date else "")
    )
    note = add_notification(
        db,
        payload={
            "recipient_kind": "partner",
            "recipient_id": task.assignee_id,
            "title": f"Task: {task.title}",
            "message": text,
            "payload": {"task_id": task.id, "property_id": task.property_id, "sent_by": actor.ref},
        },
        notifier=notifier,
    )
    log.info(
        "supplier_notified",
        extra={"entity": "Task", "entity_id": task.id, "actor": actor.ref, "status": note.delivery_status},
    )
    return note
