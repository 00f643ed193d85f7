from __future__ import annotations

import pytest
from sqlalchemy import func, select

from propdesk.errors import NotFoundError, ValidationError
from propdesk.models import AuditLogEntry
from propdesk.schemas import TaskOut
from propdesk.services import properties, tasks


def _audit_count(db) -> int:
    return int(db.scalar(select(func.count(AuditLogEntry.id))) or 0)


def _mk_task(db, actor):
    owner = properties.add_owner(db, actor=actor, payload={"name": "Owner"})
    prop = properties.add_property(db, actor=actor, payload={"owner_id": owner.id, "name": "Loft", "address": "9 Pier"})
    return tasks.add_task(db, actor=actor, payload={"property_id": prop.id, "title": "Inspect roof", "task_type": "inspection"})


def test_images_append_in_order_without_touching_status(db, admin):
    t = _mk_task(db, admin)
    tasks.update_task_status(db, actor=admin, task_id=t.id, status="in_progress")

    tasks.add_task_image(db, actor=admin, task_id=t.id, ref="s3://photos/roof-1.jpg")
    t = tasks.add_task_image(db, actor=admin, task_id=t.id, ref={"ref": "s3://photos/roof-2.jpg"})

    assert t.images == ["s3://photos/roof-1.jpg", "s3://photos/roof-2.jpg"]
    assert t.status == "in_progress"


def test_task_exposes_attachment_lists_and_property(db, admin):
    t = _mk_task(db, admin)
    assert t.images == []
    assert t.evidence == []
    assert t.prop.name == "Loft"
    assert t in t.prop.tasks


def test_attachments_still_accepted_after_completion_and_approval(db, admin):
    t = _mk_task(db, admin)
    tasks.add_task_evidence(db, actor=admin, task_id=t.id, payload={"ref": "ev-before.jpg", "evidence_type": "arrival"})
    tasks.update_task_status(db, actor=admin, task_id=t.id, status="in_progress")
    tasks.update_task_status(db, actor=admin, task_id=t.id, status="completed")

    t = tasks.add_task_evidence(db, actor=admin, task_id=t.id, payload={"ref": "ev-after.jpg", "evidence_type": "completion"})
    t = tasks.add_task_image(db, actor=admin, task_id=t.id, ref="roof-done.jpg")
    assert t.status == "completed"
    assert [e.ref for e in t.evidence] == ["ev-before.jpg", "ev-after.jpg"]
    assert t.images == ["roof-done.jpg"]

    tasks.update_task_status(db, actor=admin, task_id=t.id, status="approved")
    t = tasks.add_task_image(db, actor=admin, task_id=t.id, ref="roof-final.jpg")
    assert t.status == "approved"
    assert t.images == ["roof-done.jpg", "roof-final.jpg"]


def test_re_adding_an_image_is_idempotent_but_audited(db, admin):
    t = _mk_task(db, admin)
    tasks.add_task_image(db, actor=admin, task_id=t.id, ref="img-1")
    n = _audit_count(db)

    t = tasks.add_task_image(db, actor=admin, task_id=t.id, ref="img-1")
    assert t.images == ["img-1"]
    assert _audit_count(db) == n + 1

    last = db.scalars(select(AuditLogEntry).order_by(AuditLogEntry.id.desc())).first()
    assert "already attached" in last.details


def test_evidence_keeps_location_and_type(db, admin):
    t = _mk_task(db, admin)
    t = tasks.add_task_evidence(
        db,
        actor=admin,
        task_id=t.id,
        payload={
            "ref": "ev-arrival.jpg",
            "evidence_type": "arrival",
            "latitude": 27.95,
            "longitude": -82.46,
            "location_address": "9 Pier",
        },
    )
    assert len(t.evidence) == 1
    ev = t.evidence[0]
    assert (ev.evidence_type, ev.latitude, ev.longitude) == ("arrival", 27.95, -82.46)
    assert t.images == []

    out = TaskOut.model_validate(t)
    assert out.evidence[0].ref == "ev-arrival.jpg"


def test_evidence_with_bad_coordinates_is_rejected(db, admin):
    t = _mk_task(db, admin)
    with pytest.raises(ValidationError):
        tasks.add_task_evidence(db, actor=admin, task_id=t.id, payload={"ref": "x", "latitude": 123.0})


def test_image_on_missing_task(db, admin):
    with pytest.raises(NotFoundError):
        tasks.add_task_image(db, actor=admin, task_id=999, ref="img")
