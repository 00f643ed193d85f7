# propdesk/services/registry.py
"""
Read side of the entity registry plus the lookup helpers every gateway write
uses to validate references.

- must_get(...)  : the write target itself; missing -> NotFoundError
- must_ref(...)  : a foreign-key field on the payload; missing -> ReferentialIntegrityError
"""
from __future__ import annotations

from typing import Any, Optional, Type, TypeVar

import pydantic
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import NotFoundError, ReferentialIntegrityError, ValidationError
from ..models import (
    Advertisement,
    Booking,
    Condominium,
    Invoice,
    LedgerEntry,
    Owner,
    Partner,
    Payment,
    Property,
    ServiceCategory,
    ServiceRate,
    Task,
    Tenant,
    User,
    Visit,
)

M = TypeVar("M")
S = TypeVar("S", bound=pydantic.BaseModel)

# payable_type -> model an invoice may point at
PAYABLE_MODELS: dict[str, Any] = {"task": Task, "booking": Booking, "property": Property}

# assignee_kind -> model a task may be assigned to
ASSIGNEE_MODELS: dict[str, Any] = {"partner": Partner, "user": User}


def coerce(schema: Type[S], payload: Any) -> S:
    """Accept a schema instance or a plain dict; pydantic errors become ValidationError."""
    if isinstance(payload, schema):
        return payload
    if isinstance(payload, pydantic.BaseModel):
        payload = payload.model_dump()
    try:
        return schema.model_validate(payload)
    except pydantic.ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ()))
        msg = first.get("msg", str(e))
        raise ValidationError(f"{schema.__name__}: {loc + ': ' if loc else ''}{msg}")


def must_get(db: Session, model: Type[M], entity_id: Any) -> M:
    row = db.get(model, int(entity_id)) if entity_id is not None else None
    if row is None:
        raise NotFoundError(f"{model.__name__} {entity_id} not found", entity=model.__name__, entity_id=entity_id)
    return row


def must_ref(db: Session, model: Type[M], entity_id: Any, *, field: str, entity: str) -> M:
    row = db.get(model, int(entity_id)) if entity_id is not None else None
    if row is None:
        raise ReferentialIntegrityError(
            f"{entity}.{field}={entity_id!r} does not reference an existing {model.__name__}",
            entity=entity,
            entity_id=entity_id,
            field=field,
        )
    return row


def opt_ref(db: Session, model: Type[M], entity_id: Any, *, field: str, entity: str) -> Optional[M]:
    if entity_id is None:
        return None
    return must_ref(db, model, entity_id, field=field, entity=entity)


def apply_fields(row: Any, data: dict[str, Any]) -> None:
    for k, v in data.items():
        setattr(row, k, v)


# -------------------------
# Read accessors
# -------------------------
def list_all(db: Session, model: Type[M]) -> list[M]:
    return list(db.scalars(select(model).order_by(model.id)).all())


def find_by(db: Session, model: Type[M], **filters: Any) -> list[M]:
    q = select(model)
    for k, v in filters.items():
        q = q.where(getattr(model, k) == v)
    return list(db.scalars(q.order_by(model.id)).all())


def list_owners(db: Session) -> list[Owner]:
    return list_all(db, Owner)


def list_condominiums(db: Session) -> list[Condominium]:
    return list_all(db, Condominium)


def list_properties(db: Session, *, owner_id: Optional[int] = None, status: Optional[str] = None) -> list[Property]:
    q = select(Property).order_by(Property.id)
    if owner_id is not None:
        q = q.where(Property.owner_id == owner_id)
    if status:
        q = q.where(Property.status == status)
    return list(db.scalars(q).all())


def list_partners(db: Session, *, include_inactive: bool = True) -> list[Partner]:
    q = select(Partner).order_by(Partner.id)
    if not include_inactive:
        q = q.where(Partner.status == "active")
    return list(db.scalars(q).all())


def list_generic_service_rates(db: Session) -> list[ServiceRate]:
    return list(db.scalars(select(ServiceRate).where(ServiceRate.partner_id.is_(None)).order_by(ServiceRate.id)).all())


def list_service_categories(db: Session) -> list[ServiceCategory]:
    return list(db.scalars(select(ServiceCategory).order_by(ServiceCategory.name)).all())


def list_tenants(db: Session, *, property_id: Optional[int] = None) -> list[Tenant]:
    if property_id is not None:
        return find_by(db, Tenant, property_id=property_id)
    return list_all(db, Tenant)


def list_tasks(
    db: Session,
    *,
    property_id: Optional[int] = None,
    status: Optional[str] = None,
    assignee_kind: Optional[str] = None,
    assignee_id: Optional[int] = None,
) -> list[Task]:
    q = select(Task).order_by(Task.id)
    if property_id is not None:
        q = q.where(Task.property_id == property_id)
    if status:
        q = q.where(Task.status == status)
    if assignee_kind:
        q = q.where(Task.assignee_kind == assignee_kind)
    if assignee_id is not None:
        q = q.where(Task.assignee_id == assignee_id)
    return list(db.scalars(q).all())


def list_bookings(db: Session, *, property_id: Optional[int] = None) -> list[Booking]:
    if property_id is not None:
        return find_by(db, Booking, property_id=property_id)
    return list_all(db, Booking)


def list_visits(db: Session, *, property_id: Optional[int] = None) -> list[Visit]:
    if property_id is not None:
        return find_by(db, Visit, property_id=property_id)
    return list_all(db, Visit)


def list_invoices(db: Session, *, property_id: Optional[int] = None, status: Optional[str] = None) -> list[Invoice]:
    q = select(Invoice).order_by(Invoice.id)
    if property_id is not None:
        q = q.where(Invoice.property_id == property_id)
    if status:
        q = q.where(Invoice.status == status)
    return list(db.scalars(q).all())


def list_payments(db: Session, *, invoice_id: Optional[int] = None) -> list[Payment]:
    if invoice_id is not None:
        return find_by(db, Payment, invoice_id=invoice_id)
    return list_all(db, Payment)


def list_ledger_entries(db: Session, *, property_id: Optional[int] = None) -> list[LedgerEntry]:
    q = select(LedgerEntry).order_by(LedgerEntry.entry_date, LedgerEntry.id)
    if property_id is not None:
        q = q.where(LedgerEntry.property_id == property_id)
    return list(db.scalars(q).all())


def list_advertisements(db: Session) -> list[Advertisement]:
    return list_all(db, Advertisement)


def list_users(db: Session) -> list[User]:
    return list_all(db, User)
