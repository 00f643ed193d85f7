from __future__ import annotations

import pytest
from sqlalchemy import delete, func, select, update

from propdesk.domain.audit import activity_for, audit_write, list_audit
from propdesk.errors import AuditImmutableError, ReferentialIntegrityError
from propdesk.models import AuditLink, AuditLogEntry
from propdesk.services import audit_log, properties, tasks


def _audit_count(db) -> int:
    return int(db.scalar(select(func.count(AuditLogEntry.id))) or 0)


def _mk_property(db, actor, **kw):
    owner = properties.add_owner(db, actor=actor, payload={"name": "Owner One"})
    payload = {"owner_id": owner.id, "name": "Bayview 1", "address": "1 Bay Rd"}
    payload.update(kw)
    return owner, properties.add_property(db, actor=actor, payload=payload)


def test_owner_property_task_timeline(db, admin):
    owner, p1 = _mk_property(db, admin)
    t1 = tasks.add_task(db, actor=admin, payload={"property_id": p1.id, "title": "Deep clean", "status": "pending"})
    assert _audit_count(db) == 3

    t1 = tasks.update_task_status(db, actor=admin, task_id=t1.id, status="in_progress")
    assert t1.status == "in_progress"
    assert _audit_count(db) == 4

    # the task-create entry also correlates to p1 through the related-entity
    # index, so it sits between the property create and the task update
    timeline = activity_for(db, "Property", p1.id)
    summary = [(e.entity, e.action) for e in timeline]
    assert summary == [("Task", "update"), ("Task", "create"), ("Property", "create")]
    assert all(e.entity != "Owner" for e in timeline)


def test_every_successful_write_appends_exactly_one_entry(db, admin):
    owner, p1 = _mk_property(db, admin, hoa_value=250.0)
    assert _audit_count(db) == 2  # the HOA posting folds into the property entry

    n = _audit_count(db)
    t = tasks.add_task(db, actor=admin, payload={"property_id": p1.id, "title": "Paint", "price": 90.0})
    assert _audit_count(db) == n + 1

    tasks.update_task_status(db, actor=admin, task_id=t.id, status="completed")
    assert _audit_count(db) == n + 2

    entry = list_audit(db, entity="Task", entity_id=t.id, limit=1)[0]
    assert "ledger entry" in entry.details
    assert entry.user_id == admin.ref
    assert entry.user_name == admin.name


def test_failed_write_appends_nothing(db, admin):
    n = _audit_count(db)
    with pytest.raises(ReferentialIntegrityError):
        properties.add_property(db, actor=admin, payload={"owner_id": 42, "name": "x", "address": "y"})
    assert _audit_count(db) == n


def test_entries_cannot_be_modified_or_deleted(db, admin):
    _mk_property(db, admin)
    entry = db.scalars(select(AuditLogEntry).order_by(AuditLogEntry.id)).first()

    entry.details = "rewritten"
    with pytest.raises(AuditImmutableError):
        db.flush()
    db.rollback()

    entry = db.get(AuditLogEntry, entry.id)
    assert entry.details != "rewritten"

    db.delete(entry)
    with pytest.raises(AuditImmutableError):
        db.flush()
    db.rollback()
    assert db.get(AuditLogEntry, entry.id) is not None


def test_bulk_statements_on_the_log_are_refused(db, admin):
    _mk_property(db, admin)
    with pytest.raises(AuditImmutableError):
        db.execute(update(AuditLogEntry).values(details="x"))
    db.rollback()
    with pytest.raises(AuditImmutableError):
        db.execute(delete(AuditLink))
    db.rollback()
    assert _audit_count(db) == 2


def test_correlation_is_deterministic(db, admin):
    _, p1 = _mk_property(db, admin)
    for title in ("a", "b", "c"):
        tasks.add_task(db, actor=admin, payload={"property_id": p1.id, "title": title})

    first = [e.id for e in activity_for(db, "Property", p1.id)]
    second = [e.id for e in activity_for(db, "Property", p1.id)]
    assert first == second
    assert first == sorted(first, reverse=True)


def test_index_does_not_over_match_similar_ids(db, admin):
    owner = properties.add_owner(db, actor=admin, payload={"name": "Owner"})
    props = [
        properties.add_property(db, actor=admin, payload={"owner_id": owner.id, "name": f"P{i}", "address": f"{i} Main"})
        for i in range(12)
    ]
    p1, p11 = props[0], props[10]
    assert (p1.id, p11.id) == (1, 11)
    tasks.add_task(db, actor=admin, payload={"property_id": p11.id, "title": "Only on eleven"})

    indexed = activity_for(db, "Property", p1.id)
    assert [(e.entity, e.entity_id) for e in indexed] == [("Property", "1")]

    # the legacy substring match picks up entries mentioning "11"
    loose = activity_for(db, "Property", p1.id, include_details_match=True)
    assert len(loose) > len(indexed)


def test_manual_entry_with_related_links(db, admin):
    _, p1 = _mk_property(db, admin)
    row = audit_log.add_audit_log(
        db,
        actor=admin,
        payload={"action": "export", "entity": "Report", "entity_id": "r-9", "details": "Quarterly export"},
        related=[("Property", p1.id)],
    )
    assert row.id is not None
    assert activity_for(db, "Property", p1.id)[0].id == row.id
    assert activity_for(db, "Report", "r-9")[0].id == row.id


def test_audit_write_dedupes_links(db, admin):
    row = audit_write(
        db,
        actor=admin,
        action="update",
        entity="Property",
        entity_id=5,
        details="x",
        related=[("Property", 5), ("Owner", 2), ("Owner", 2), ("Owner", None)],
    )
    db.commit()
    links = db.scalars(select(AuditLink).where(AuditLink.audit_id == row.id)).all()
    assert sorted((lk.entity_type, lk.entity_id) for lk in links) == [("Owner", "2"), ("Property", "5")]
