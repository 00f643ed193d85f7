# propdesk/services/properties.py
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import transaction
from ..domain.audit import audit_write, describe_changes, snapshot
from ..errors import ValidationError
from ..models import Condominium, Owner, Property, utcnow
from ..schemas import CondominiumCreate, OwnerCreate, PropertyCreate
from .postings import post_hoa_fee
from .registry import apply_fields, coerce, must_get, must_ref, opt_ref

log = logging.getLogger(__name__)


# -------------------------
# Owners
# -------------------------
def add_owner(db: Session, *, actor: Any, payload: Any) -> Owner:
    data = coerce(OwnerCreate, payload)
    with transaction(db):
        row = Owner(**data.model_dump(), created_at=utcnow())
        db.add(row)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="create",
            entity="Owner",
            entity_id=row.id,
            details=f"Owner created: {row.name}",
        )
    log.info("owner_created", extra={"entity": "Owner", "entity_id": row.id, "actor": actor.ref})
    return row


def update_owner(db: Session, *, actor: Any, owner_id: int, payload: Any) -> Owner:
    data = coerce(OwnerCreate, payload)
    with transaction(db):
        row = must_get(db, Owner, owner_id)
        before = snapshot(row)
        apply_fields(row, data.model_dump())
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="update",
            entity="Owner",
            entity_id=row.id,
            details=f"Owner {row.name} updated: {describe_changes(before, snapshot(row))}",
        )
    return row


# -------------------------
# Condominiums
# -------------------------
def add_condominium(db: Session, *, actor: Any, payload: Any) -> Condominium:
    data = coerce(CondominiumCreate, payload)
    with transaction(db):
        row = Condominium(**data.model_dump(), created_at=utcnow())
        db.add(row)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="create",
            entity="Condominium",
            entity_id=row.id,
            details=f"Condominium created: {row.name}",
        )
    return row


def update_condominium(db: Session, *, actor: Any, condominium_id: int, payload: Any) -> Condominium:
    data = coerce(CondominiumCreate, payload)
    with transaction(db):
        row = must_get(db, Condominium, condominium_id)
        before = snapshot(row)
        apply_fields(row, data.model_dump())
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="update",
            entity="Condominium",
            entity_id=row.id,
            details=f"Condominium {row.name} updated: {describe_changes(before, snapshot(row))}",
        )
    return row


def delete_condominium(db: Session, *, actor: Any, condominium_id: int) -> None:
    with transaction(db):
        row = must_get(db, Condominium, condominium_id)
        in_use = db.scalars(select(Property.id).where(Property.condominium_id == row.id)).all()
        if in_use:
            raise ValidationError(
                f"condominium {row.id} is still referenced by properties {sorted(in_use)}",
                entity="Condominium",
                entity_id=row.id,
            )
        name = row.name
        db.delete(row)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="delete",
            entity="Condominium",
            entity_id=condominium_id,
            details=f"Condominium deleted: {name}",
        )


# -------------------------
# Properties
# -------------------------
def _validate_refs(db: Session, data: PropertyCreate) -> tuple[Owner, Any]:
    owner = must_ref(db, Owner, data.owner_id, field="owner_id", entity="Property")
    condo = opt_ref(db, Condominium, data.condominium_id, field="condominium_id", entity="Property")
    return owner, condo


def add_property(db: Session, *, actor: Any, payload: Any) -> Property:
    """
    Create a property for an existing owner. A property created with an HOA
    fee also gets its first HOA expense posted in the same write.
    """
    data = coerce(PropertyCreate, payload)
    with transaction(db):
        owner, condo = _validate_refs(db, data)
        now = utcnow()
        row = Property(**data.model_dump(), created_at=now, updated_at=now)
        db.add(row)
        db.flush()

        related: list[tuple[str, Any]] = [("Owner", owner.id)]
        details = f"Property created: {row.name} ({row.address}) for owner {owner.name}"
        if condo is not None:
            related.append(("Condominium", condo.id))

        hoa = post_hoa_fee(db, row)
        if hoa is not None:
            related.append(("LedgerEntry", hoa.id))
            details += f"; HOA expense {hoa.amount:.2f} posted (ledger entry {hoa.id})"

        audit_write(
            db,
            actor=actor,
            action="create",
            entity="Property",
            entity_id=row.id,
            details=details,
            related=related,
        )
    log.info("property_created", extra={"entity": "Property", "entity_id": row.id, "actor": actor.ref})
    return row


def update_property(db: Session, *, actor: Any, property_id: int, payload: Any) -> Property:
    data = coerce(PropertyCreate, payload)
    with transaction(db):
        row = must_get(db, Property, property_id)
        owner, condo = _validate_refs(db, data)

        before = snapshot(row)
        related: list[tuple[str, Any]] = [("Owner", owner.id), ("Owner", before["owner_id"])]
        if condo is not None:
            related.append(("Condominium", condo.id))

        apply_fields(row, data.model_dump())
        row.updated_at = utcnow()
        db.flush()

        audit_write(
            db,
            actor=actor,
            action="update",
            entity="Property",
            entity_id=row.id,
            details=f"Property {row.name} updated: {describe_changes(before, snapshot(row))}",
            related=related,
        )
    log.info("property_updated", extra={"entity": "Property", "entity_id": row.id, "actor": actor.ref})
    return row
