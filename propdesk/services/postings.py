# propdesk/services/postings.py
"""
Ledger postings derived from other mutations (task costs, HOA fees, paid
bookings). These run inside the caller's transaction and are summarised in
the caller's single audit entry; they never write audit rows of their own.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..models import Booking, LedgerEntry, Partner, Property, Task, User

log = logging.getLogger(__name__)


def _already_posted(db: Session, reference: str, category: str) -> bool:
    hit = db.scalar(
        select(LedgerEntry.id).where(LedgerEntry.reference == reference, LedgerEntry.category == category).limit(1)
    )
    return hit is not None


def _assignee_name(db: Session, task: Task) -> Optional[str]:
    if task.assignee_kind == "partner" and task.assignee_id is not None:
        p = db.get(Partner, task.assignee_id)
        return p.name if p else None
    if task.assignee_kind == "user" and task.assignee_id is not None:
        u = db.get(User, task.assignee_id)
        return u.name if u else None
    return None


def post_task_cost(db: Session, task: Task) -> Optional[LedgerEntry]:
    """Expense for a completed task with a price. At most one per task."""
    if not settings.auto_post_task_costs or not task.price:
        return None
    category = "Cleaning" if task.task_type == "cleaning" else "Maintenance"
    reference = f"task:{task.id}"
    if _already_posted(db, reference, category):
        return None

    row = LedgerEntry(
        property_id=task.property_id,
        entry_type="expense",
        category=category,
        amount=float(task.price),
        description=f"{category}: {task.title}",
        entry_date=task.scheduled_date or date.today(),
        status="pending",
        reference=reference,
        payee=_assignee_name(db, task),
    )
    db.add(row)
    db.flush()
    log.info("ledger_auto_posted", extra={"entity": "LedgerEntry", "entity_id": row.id, "action": "task_cost"})
    return row


def post_hoa_fee(db: Session, prop: Property) -> Optional[LedgerEntry]:
    if not settings.auto_post_hoa_fees or not prop.hoa_value:
        return None
    row = LedgerEntry(
        property_id=prop.id,
        entry_type="expense",
        category="HOA",
        amount=float(prop.hoa_value),
        description=f"HOA fee: {prop.name}",
        entry_date=date.today(),
        status="pending",
        reference=f"property:{prop.id}",
    )
    db.add(row)
    db.flush()
    log.info("ledger_auto_posted", extra={"entity": "LedgerEntry", "entity_id": row.id, "action": "hoa_fee"})
    return row


def post_booking_income(db: Session, booking: Booking) -> Optional[LedgerEntry]:
    if not settings.auto_post_paid_bookings or not booking.paid or not booking.total_amount:
        return None
    row = LedgerEntry(
        property_id=booking.property_id,
        entry_type="income",
        category="Rent (Short Term)",
        amount=float(booking.total_amount),
        description=f"Booking: {booking.guest_name} ({booking.check_in} - {booking.check_out})",
        entry_date=booking.check_in,
        payment_date=date.today(),
        status="cleared",
        reference=f"booking:{booking.id}",
    )
    db.add(row)
    db.flush()
    log.info("ledger_auto_posted", extra={"entity": "LedgerEntry", "entity_id": row.id, "action": "booking_income"})
    return row
