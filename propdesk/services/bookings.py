# propdesk/services/bookings.py
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from ..db import transaction
from ..domain.audit import audit_write, describe_changes, snapshot
from ..models import Booking, Property, Visit, utcnow
from ..schemas import BookingCreate, VisitCreate
from .postings import post_booking_income
from .registry import coerce, must_get, must_ref

log = logging.getLogger(__name__)


# -------------------------
# Short-term bookings
# -------------------------
def add_booking(db: Session, *, actor: Any, payload: Any) -> Booking:
    """A booking created already paid posts its income to the ledger in the same write."""
    data = coerce(BookingCreate, payload)
    with transaction(db):
        must_ref(db, Property, data.property_id, field="property_id", entity="Booking")
        row = Booking(**data.model_dump(), created_at=utcnow())
        db.add(row)
        db.flush()

        related: list[tuple[str, Any]] = [("Property", row.property_id)]
        details = f"Booking created: {row.guest_name} {row.check_in} -> {row.check_out} ({row.total_amount:.2f}, {row.channel})"
        income = post_booking_income(db, row)
        if income is not None:
            related.append(("LedgerEntry", income.id))
            details += f"; income {income.amount:.2f} posted (ledger entry {income.id})"

        audit_write(
            db,
            actor=actor,
            action="create",
            entity="Booking",
            entity_id=row.id,
            details=details,
            related=related,
        )
    log.info("booking_created", extra={"entity": "Booking", "entity_id": row.id, "actor": actor.ref})
    return row


def update_booking(db: Session, *, actor: Any, booking_id: int, payload: Any) -> Booking:
    data = coerce(BookingCreate, payload)
    with transaction(db):
        row = must_get(db, Booking, booking_id)
        must_ref(db, Property, data.property_id, field="property_id", entity="Booking")
        before = snapshot(row)
        old_property = row.property_id
        for k, v in data.model_dump().items():
            setattr(row, k, v)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="update",
            entity="Booking",
            entity_id=row.id,
            details=f"Booking {row.guest_name} updated: {describe_changes(before, snapshot(row))}",
            related=[("Property", old_property), ("Property", row.property_id)],
        )
    return row


def delete_booking(db: Session, *, actor: Any, booking_id: int) -> None:
    with transaction(db):
        row = must_get(db, Booking, booking_id)
        property_id, guest = row.property_id, row.guest_name
        db.delete(row)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="delete",
            entity="Booking",
            entity_id=booking_id,
            details=f"Booking deleted: {guest}",
            related=[("Property", property_id)],
        )


# -------------------------
# Property visits
# -------------------------
def add_visit(db: Session, *, actor: Any, payload: Any) -> Visit:
    data = coerce(VisitCreate, payload)
    with transaction(db):
        must_ref(db, Property, data.property_id, field="property_id", entity="Visit")
        row = Visit(**data.model_dump(), created_at=utcnow())
        db.add(row)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="create",
            entity="Visit",
            entity_id=row.id,
            details=f"Visit scheduled: {row.visitor_name} at {row.scheduled_at.isoformat()}",
            related=[("Property", row.property_id)],
        )
    return row


def update_visit(db: Session, *, actor: Any, visit_id: int, payload: Any) -> Visit:
    data = coerce(VisitCreate, payload)
    with transaction(db):
        row = must_get(db, Visit, visit_id)
        must_ref(db, Property, data.property_id, field="property_id", entity="Visit")
        before = snapshot(row)
        for k, v in data.model_dump().items():
            setattr(row, k, v)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="update",
            entity="Visit",
            entity_id=row.id,
            details=f"Visit {row.visitor_name} updated: {describe_changes(before, snapshot(row))}",
            related=[("Property", row.property_id)],
        )
    return row


def delete_visit(db: Session, *, actor: Any, visit_id: int) -> None:
    with transaction(db):
        row = must_get(db, Visit, visit_id)
        property_id, name = row.property_id, row.visitor_name
        db.delete(row)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="delete",
            entity="Visit",
            entity_id=visit_id,
            details=f"Visit deleted: {name}",
            related=[("Property", property_id)],
        )
