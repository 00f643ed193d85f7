# propdesk/services/partners.py
from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..db import transaction
from ..domain.audit import audit_write, describe_changes, snapshot
from ..domain.property_scope import normalize_scope
from ..errors import NotFoundError, ValidationError
from ..models import Partner, PartnerDocument, PartnerPropertyLink, Property, ServiceCategory, ServiceRate, utcnow
from ..schemas import PartnerCreate, ServiceCategoryCreate, ServiceRateCreate
from .registry import coerce, must_get, must_ref, opt_ref

log = logging.getLogger(__name__)


def _partner_fields(data: PartnerCreate) -> dict[str, Any]:
    return data.model_dump(exclude={"property_scope", "linked_property_ids", "documents"})


def _resolve_scope(db: Session, data: PartnerCreate) -> tuple[str, list[int]]:
    scope, ids = normalize_scope(data.property_scope, data.linked_property_ids)
    for pid in ids:
        must_ref(db, Property, pid, field="linked_property_ids", entity="Partner")
    return scope, ids


def _sync_links(db: Session, partner: Partner, ids: list[int]) -> None:
    wanted = set(ids)
    for link in list(partner.property_links):
        if link.property_id not in wanted:
            partner.property_links.remove(link)
    have = {link.property_id for link in partner.property_links}
    for pid in ids:
        if pid not in have:
            partner.property_links.append(PartnerPropertyLink(property_id=pid))


def _replace_documents(db: Session, partner: Partner, docs: list[Any]) -> None:
    partner.documents.clear()
    db.flush()
    for pos, d in enumerate(docs):
        partner.documents.append(PartnerDocument(position=pos, ref=d.ref, name=d.name))


def _scope_summary(scope: str, ids: list[int]) -> str:
    if scope == "unrestricted":
        return "unrestricted"
    return f"restricted to {ids}" if ids else "restricted to no properties"


def add_partner(db: Session, *, actor: Any, payload: Any) -> Partner:
    data = coerce(PartnerCreate, payload)
    with transaction(db):
        scope, ids = _resolve_scope(db, data)
        now = utcnow()
        row = Partner(**_partner_fields(data), property_scope=scope, created_at=now, updated_at=now)
        db.add(row)
        db.flush()
        _sync_links(db, row, ids)
        _replace_documents(db, row, data.documents)
        db.flush()

        audit_write(
            db,
            actor=actor,
            action="create",
            entity="Partner",
            entity_id=row.id,
            details=f"Partner created: {row.name} ({row.service_type}), {_scope_summary(scope, ids)}",
            related=[("Property", pid) for pid in ids],
        )
    log.info("partner_created", extra={"entity": "Partner", "entity_id": row.id, "actor": actor.ref})
    return row


def update_partner(db: Session, *, actor: Any, partner_id: int, payload: Any) -> Partner:
    data = coerce(PartnerCreate, payload)
    with transaction(db):
        row = must_get(db, Partner, partner_id)
        scope, ids = _resolve_scope(db, data)

        before = snapshot(row)
        before_ids = row.linked_property_ids

        for k, v in _partner_fields(data).items():
            setattr(row, k, v)
        row.property_scope = scope
        row.updated_at = utcnow()
        _sync_links(db, row, ids)
        _replace_documents(db, row, data.documents)
        db.flush()

        details = f"Partner {row.name} updated: {describe_changes(before, snapshot(row))}"
        if before_ids != ids:
            details += f"; linked properties {before_ids} -> {ids}"

        audit_write(
            db,
            actor=actor,
            action="update",
            entity="Partner",
            entity_id=row.id,
            details=details,
            related=[("Property", pid) for pid in sorted(set(ids) | set(before_ids))],
        )
    return row


def deactivate_partner(db: Session, *, actor: Any, partner_id: int) -> Partner:
    """Partners are never hard-deleted; deleting one marks it inactive."""
    with transaction(db):
        row = must_get(db, Partner, partner_id)
        row.status = "inactive"
        row.updated_at = utcnow()
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="delete",
            entity="Partner",
            entity_id=row.id,
            details=f"Partner deactivated: {row.name}",
        )
    return row


# -------------------------
# Service rates
# -------------------------
def _rate_details(verb: str, rate: ServiceRate) -> str:
    owner = "generic" if rate.partner_id is None else f"partner {rate.partner_id}"
    return f"Service rate {verb} ({owner}): {rate.service_name} = {rate.price:.2f} [{rate.rate_type}]"


def _get_rate(db: Session, rate_id: int, *, partner_id: Optional[int]) -> ServiceRate:
    row = db.get(ServiceRate, int(rate_id))
    if row is None or row.partner_id != partner_id:
        scope = "generic" if partner_id is None else f"partner {partner_id}"
        raise NotFoundError(f"{scope} service rate {rate_id} not found", entity="ServiceRate", entity_id=rate_id)
    return row


def _add_rate(db: Session, *, actor: Any, partner_id: Optional[int], payload: Any) -> ServiceRate:
    data = coerce(ServiceRateCreate, payload)
    with transaction(db):
        if partner_id is not None:
            must_get(db, Partner, partner_id)
        opt_ref(db, ServiceCategory, data.category_id, field="category_id", entity="ServiceRate")

        row = ServiceRate(**data.model_dump(), partner_id=partner_id, last_updated=utcnow())
        db.add(row)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="create",
            entity="ServiceRate",
            entity_id=row.id,
            details=_rate_details("created", row),
            related=[("Partner", partner_id)],
        )
    return row


def _update_rate(db: Session, *, actor: Any, partner_id: Optional[int], rate_id: int, payload: Any) -> ServiceRate:
    data = coerce(ServiceRateCreate, payload)
    with transaction(db):
        row = _get_rate(db, rate_id, partner_id=partner_id)
        opt_ref(db, ServiceCategory, data.category_id, field="category_id", entity="ServiceRate")

        before = snapshot(row)
        for k, v in data.model_dump().items():
            setattr(row, k, v)
        row.last_updated = utcnow()
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="update",
            entity="ServiceRate",
            entity_id=row.id,
            details=f"{_rate_details('updated', row)}; {describe_changes(before, snapshot(row))}",
            related=[("Partner", partner_id)],
        )
    return row


def _delete_rate(db: Session, *, actor: Any, partner_id: Optional[int], rate_id: int) -> None:
    with transaction(db):
        row = _get_rate(db, rate_id, partner_id=partner_id)
        details = _rate_details("deleted", row)
        db.delete(row)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="delete",
            entity="ServiceRate",
            entity_id=rate_id,
            details=details,
            related=[("Partner", partner_id)],
        )


def add_generic_service_rate(db: Session, *, actor: Any, payload: Any) -> ServiceRate:
    return _add_rate(db, actor=actor, partner_id=None, payload=payload)


def update_generic_service_rate(db: Session, *, actor: Any, rate_id: int, payload: Any) -> ServiceRate:
    return _update_rate(db, actor=actor, partner_id=None, rate_id=rate_id, payload=payload)


def delete_generic_service_rate(db: Session, *, actor: Any, rate_id: int) -> None:
    _delete_rate(db, actor=actor, partner_id=None, rate_id=rate_id)


def add_partner_service_rate(db: Session, *, actor: Any, partner_id: int, payload: Any) -> ServiceRate:
    return _add_rate(db, actor=actor, partner_id=int(partner_id), payload=payload)


def update_partner_service_rate(db: Session, *, actor: Any, partner_id: int, rate_id: int, payload: Any) -> ServiceRate:
    return _update_rate(db, actor=actor, partner_id=int(partner_id), rate_id=rate_id, payload=payload)


def delete_partner_service_rate(db: Session, *, actor: Any, partner_id: int, rate_id: int) -> None:
    _delete_rate(db, actor=actor, partner_id=int(partner_id), rate_id=rate_id)


# -------------------------
# Service categories
# -------------------------
def _check_category_name(db: Session, name: str, *, exclude_id: Optional[int] = None) -> None:
    q = select(ServiceCategory.id).where(func.lower(ServiceCategory.name) == name.strip().lower())
    if exclude_id is not None:
        q = q.where(ServiceCategory.id != exclude_id)
    if db.scalar(q) is not None:
        raise ValidationError(f"service category {name!r} already exists", entity="ServiceCategory")


def add_service_category(db: Session, *, actor: Any, payload: Any) -> ServiceCategory:
    data = coerce(ServiceCategoryCreate, payload)
    with transaction(db):
        _check_category_name(db, data.name)
        row = ServiceCategory(name=data.name.strip(), description=data.description)
        db.add(row)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="create",
            entity="ServiceCategory",
            entity_id=row.id,
            details=f"Service category created: {row.name}",
        )
    return row


def update_service_category(db: Session, *, actor: Any, category_id: int, payload: Any) -> ServiceCategory:
    data = coerce(ServiceCategoryCreate, payload)
    with transaction(db):
        row = must_get(db, ServiceCategory, category_id)
        _check_category_name(db, data.name, exclude_id=row.id)
        before = snapshot(row)
        row.name = data.name.strip()
        row.description = data.description
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="update",
            entity="ServiceCategory",
            entity_id=row.id,
            details=f"Service category updated: {describe_changes(before, snapshot(row))}",
        )
    return row


def delete_service_category(db: Session, *, actor: Any, category_id: int) -> None:
    with transaction(db):
        row = must_get(db, ServiceCategory, category_id)
        used = db.scalar(select(func.count(ServiceRate.id)).where(ServiceRate.category_id == row.id)) or 0
        if used:
            raise ValidationError(
                f"service category {row.name!r} is used by {used} rate(s)",
                entity="ServiceCategory",
                entity_id=row.id,
            )
        name = row.name
        db.delete(row)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="delete",
            entity="ServiceCategory",
            entity_id=category_id,
            details=f"Service category deleted: {name}",
        )
