from __future__ import annotations

import pytest
from sqlalchemy import func, select

from propdesk.auth import resolve_principal
from propdesk.config import settings
from propdesk.domain.task_lifecycle import plan_transition
from propdesk.errors import AuthorizationError, InvalidTransitionError, ValidationError
from propdesk.models import AuditLogEntry, LedgerEntry, Task
from propdesk.services import partners, properties, tasks, users


def _audit_count(db) -> int:
    return int(db.scalar(select(func.count(AuditLogEntry.id))) or 0)


def _mk_task(db, actor, **kw):
    owner = properties.add_owner(db, actor=actor, payload={"name": "Owner"})
    prop = properties.add_property(db, actor=actor, payload={"owner_id": owner.id, "name": "Loft", "address": "9 Pier"})
    payload = {"property_id": prop.id, "title": "Fix AC", "price": 120.0}
    payload.update(kw)
    return tasks.add_task(db, actor=actor, payload=payload)


def _mk_staff(db, admin, *, email, permissions):
    u = users.add_user(
        db,
        actor=admin,
        payload={"name": email.split("@")[0], "email": email, "role": "internal_user", "permissions": permissions},
    )
    return resolve_principal(db, f"user:{u.id}")


def test_plan_transition_rules():
    assert plan_transition("pending", "completed").direction == "forward"
    assert plan_transition("completed", "approved").capability == ("tasks", "approve")
    assert plan_transition("in_progress", "in_progress").changes_status is False
    assert plan_transition("completed", "pending", override=True).capability == ("tasks", "override")

    with pytest.raises(InvalidTransitionError):
        plan_transition("in_progress", "approved")
    with pytest.raises(InvalidTransitionError):
        plan_transition("completed", "in_progress")
    with pytest.raises(ValidationError):
        plan_transition("pending", "archived")


def test_forward_path_to_approved(db, admin):
    t = _mk_task(db, admin)
    for status in ("in_progress", "completed", "approved"):
        t = tasks.update_task_status(db, actor=admin, task_id=t.id, status=status)
        assert t.status == status


def test_approve_requires_completed(db, admin):
    t = _mk_task(db, admin)
    tasks.update_task_status(db, actor=admin, task_id=t.id, status="in_progress")
    n = _audit_count(db)

    with pytest.raises(InvalidTransitionError) as ei:
        tasks.update_task_status(db, actor=admin, task_id=t.id, status="approved")
    assert ei.value.current == "in_progress"
    assert ei.value.target == "approved"

    db.expire_all()
    assert db.get(Task, t.id).status == "in_progress"
    assert _audit_count(db) == n


def test_backward_move_needs_override(db, admin):
    t = _mk_task(db, admin)
    tasks.update_task_status(db, actor=admin, task_id=t.id, status="completed")

    with pytest.raises(InvalidTransitionError):
        tasks.update_task_status(db, actor=admin, task_id=t.id, status="in_progress")

    t = tasks.update_task_status(db, actor=admin, task_id=t.id, status="in_progress", override=True)
    assert t.status == "in_progress"


def test_partner_cannot_approve(db, admin):
    p = partners.add_partner(db, actor=admin, payload={"name": "Cool Air LLC", "email": "ops@coolair.test"})
    t = _mk_task(db, admin, assignee_kind="partner", assignee_id=p.id)
    partner_principal = resolve_principal(db, f"partner:{p.id}")

    t = tasks.update_task_status(db, actor=partner_principal, task_id=t.id, status="completed")
    assert t.status == "completed"

    with pytest.raises(AuthorizationError):
        tasks.update_task_status(db, actor=partner_principal, task_id=t.id, status="approved")
    db.expire_all()
    assert db.get(Task, t.id).status == "completed"


def test_explicit_permissions_gate_override(db, admin):
    staff = _mk_staff(db, admin, email="sam@desk.test", permissions=[{"resource": "tasks", "actions": ["view", "edit", "approve"]}])
    t = _mk_task(db, admin)
    tasks.update_task_status(db, actor=staff, task_id=t.id, status="completed")
    tasks.update_task_status(db, actor=staff, task_id=t.id, status="approved")

    with pytest.raises(AuthorizationError):
        tasks.update_task_status(db, actor=staff, task_id=t.id, status="pending", override=True)


def test_same_status_update_is_audited(db, admin):
    t = _mk_task(db, admin)
    n = _audit_count(db)
    t = tasks.update_task_status(db, actor=admin, task_id=t.id, status="pending")
    assert t.status == "pending"
    assert _audit_count(db) == n + 1


def test_completion_posts_cost_once(db, admin):
    t = _mk_task(db, admin, task_type="cleaning")
    tasks.update_task_status(db, actor=admin, task_id=t.id, status="completed")
    tasks.update_task_status(db, actor=admin, task_id=t.id, status="in_progress", override=True)
    tasks.update_task_status(db, actor=admin, task_id=t.id, status="completed")

    entries = db.scalars(select(LedgerEntry).where(LedgerEntry.reference == f"task:{t.id}")).all()
    assert len(entries) == 1
    assert entries[0].category == "Cleaning"
    assert entries[0].entry_type == "expense"
    assert entries[0].amount == pytest.approx(120.0)


def test_cost_posting_can_be_switched_off(db, admin, monkeypatch):
    monkeypatch.setattr(settings, "auto_post_task_costs", False)
    t = _mk_task(db, admin)
    tasks.update_task_status(db, actor=admin, task_id=t.id, status="completed")
    assert db.scalar(select(func.count(LedgerEntry.id))) == 0


def test_task_created_completed_posts_in_same_entry(db, admin):
    n_before = _audit_count(db)
    t = _mk_task(db, admin, status="completed")
    assert t.status == "completed"
    # owner, property, task
    assert _audit_count(db) == n_before + 3
    assert db.scalar(select(func.count(LedgerEntry.id))) == 1


def test_update_task_routes_status_through_lifecycle(db, admin):
    t = _mk_task(db, admin)
    payload = {"property_id": t.property_id, "title": "Fix AC unit", "price": 120.0, "status": "approved"}
    with pytest.raises(InvalidTransitionError):
        tasks.update_task(db, actor=admin, task_id=t.id, payload=payload)

    payload["status"] = "in_progress"
    t = tasks.update_task(db, actor=admin, task_id=t.id, payload=payload)
    assert (t.title, t.status) == ("Fix AC unit", "in_progress")


def test_delete_task(db, admin):
    t = _mk_task(db, admin)
    tasks.delete_task(db, actor=admin, task_id=t.id)
    assert db.get(Task, t.id) is None
