# propdesk/cli/seed_demo.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import SYSTEM, resolve_principal
from ..db import SessionLocal, init_db
from ..models import User
from ..services import bookings, financial, partners, properties, tasks, users


@dataclass(frozen=True)
class SeedResult:
    admin_email: str
    admin_ref: str
    property_id: Optional[int]
    task_id: Optional[int]


def _get_or_create_admin(db: Session, email: str, name: str) -> User:
    row = db.scalar(select(User).where(User.email == email))
    if row:
        return row
    return users.add_user(
        db,
        actor=SYSTEM,
        payload={"name": name, "email": email, "role": "platform_owner", "status": "active"},
    )


def seed_demo(*, admin_email: str, admin_name: str, create_sample_data: bool = True) -> SeedResult:
    init_db()
    db = SessionLocal()
    try:
        admin = _get_or_create_admin(db, admin_email, admin_name)
        actor = resolve_principal(db, f"user:{admin.id}")

        if not create_sample_data:
            return SeedResult(admin.email, actor.ref, None, None)

        owner = properties.add_owner(db, actor=actor, payload={"name": "Dana Whitfield", "email": "dana@owners.local"})
        prop = properties.add_property(
            db,
            actor=actor,
            payload={
                "owner_id": owner.id,
                "name": "Lakeview 12B",
                "address": "12 Lakeview Dr",
                "city": "Orlando",
                "state": "FL",
                "zip": "32801",
                "property_type": "condo",
                "bedrooms": 2,
                "bathrooms": 2,
                "guests": 6,
                "hoa_value": 320.0,
            },
        )
        cleaner = partners.add_partner(
            db,
            actor=actor,
            payload={
                "name": "Sparkle Cleaning",
                "service_type": "cleaning",
                "property_scope": "restricted",
                "linked_property_ids": [prop.id],
            },
        )
        partners.add_generic_service_rate(db, actor=actor, payload={"service_name": "Turnover cleaning", "price": 95.0})

        task = tasks.add_task(
            db,
            actor=actor,
            payload={
                "property_id": prop.id,
                "title": "Turnover cleaning",
                "task_type": "cleaning",
                "assignee_kind": "partner",
                "assignee_id": cleaner.id,
                "scheduled_date": date.today() + timedelta(days=1),
                "price": 95.0,
            },
        )
        bookings.add_booking(
            db,
            actor=actor,
            payload={
                "property_id": prop.id,
                "guest_name": "Sam Rivera",
                "check_in": date.today() + timedelta(days=2),
                "check_out": date.today() + timedelta(days=5),
                "total_amount": 540.0,
                "paid": True,
                "channel": "airbnb",
            },
        )
        financial.add_invoice(
            db,
            actor=actor,
            payload={
                "description": "Turnover cleaning",
                "amount": 95.0,
                "issue_date": date.today(),
                "payable_type": "task",
                "payable_id": task.id,
            },
        )
        return SeedResult(admin.email, actor.ref, prop.id, task.id)
    finally:
        db.close()
