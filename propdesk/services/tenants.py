# propdesk/services/tenants.py
from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy.orm import Session

from ..db import transaction
from ..domain.audit import audit_write, describe_changes, snapshot
from ..errors import ValidationError
from ..models import Property, Tenant, utcnow
from ..schemas import NegotiationUpdate, RenewContractIn, TenantCreate
from .registry import coerce, must_get, opt_ref

log = logging.getLogger(__name__)


def _loads_log(raw: Any) -> list[dict]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError:
        return []
    return data if isinstance(data, list) else []


def _tenant_fields(data: TenantCreate) -> dict[str, Any]:
    out = data.model_dump(exclude={"documents"})
    out["documents_json"] = json.dumps(list(data.documents)) if data.documents else None
    return out


def _related(t: Tenant) -> list[tuple[str, Any]]:
    return [("Property", t.property_id)]


def add_tenant(db: Session, *, actor: Any, payload: Any) -> Tenant:
    data = coerce(TenantCreate, payload)
    with transaction(db):
        opt_ref(db, Property, data.property_id, field="property_id", entity="Tenant")
        now = utcnow()
        row = Tenant(**_tenant_fields(data), created_at=now, updated_at=now)
        db.add(row)
        db.flush()
        where = f" at property {row.property_id}" if row.property_id else ""
        audit_write(
            db,
            actor=actor,
            action="create",
            entity="Tenant",
            entity_id=row.id,
            details=f"Tenant created: {row.name}{where}",
            related=_related(row),
        )
    return row


def update_tenant(db: Session, *, actor: Any, tenant_id: int, payload: Any) -> Tenant:
    data = coerce(TenantCreate, payload)
    with transaction(db):
        row = must_get(db, Tenant, tenant_id)
        opt_ref(db, Property, data.property_id, field="property_id", entity="Tenant")
        before = snapshot(row)
        old_related = _related(row)
        for k, v in _tenant_fields(data).items():
            setattr(row, k, v)
        row.updated_at = utcnow()
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="update",
            entity="Tenant",
            entity_id=row.id,
            details=f"Tenant {row.name} updated: {describe_changes(before, snapshot(row))}",
            related=old_related + _related(row),
        )
    return row


def renew_contract(db: Session, *, actor: Any, tenant_id: int, payload: Any) -> Tenant:
    """Extend the lease (and optionally reprice it); closes any open negotiation."""
    data = coerce(RenewContractIn, payload)
    with transaction(db):
        row = must_get(db, Tenant, tenant_id)
        if row.lease_end is not None and data.new_lease_end <= row.lease_end:
            raise ValidationError(
                f"new lease end {data.new_lease_end} must be after current end {row.lease_end}",
                entity="Tenant",
                entity_id=row.id,
            )
        if row.lease_start is not None and data.new_lease_end <= row.lease_start:
            raise ValidationError("new lease end must be after lease start", entity="Tenant", entity_id=row.id)

        old_end, old_rent = row.lease_end, row.rent_value
        row.lease_end = data.new_lease_end
        if data.new_rent_value is not None:
            row.rent_value = data.new_rent_value

        entries = _loads_log(row.negotiation_log_json)
        entries.append(
            {
                "at": utcnow().isoformat(),
                "by": actor.ref,
                "event": "renewed",
                "lease_end": data.new_lease_end.isoformat(),
                "rent_value": row.rent_value,
            }
        )
        row.negotiation_log_json = json.dumps(entries)
        if row.negotiation_status is not None:
            row.negotiation_status = "closed"
        row.updated_at = utcnow()
        db.flush()

        audit_write(
            db,
            actor=actor,
            action="update",
            entity="Tenant",
            entity_id=row.id,
            details=(
                f"Contract renewed for {row.name}: lease end {old_end} -> {row.lease_end}, "
                f"rent {old_rent} -> {row.rent_value}"
            ),
            related=_related(row),
        )
    return row


def update_negotiation(db: Session, *, actor: Any, tenant_id: int, payload: Any) -> Tenant:
    data = coerce(NegotiationUpdate, payload)
    with transaction(db):
        row = must_get(db, Tenant, tenant_id)
        prev = row.negotiation_status
        row.negotiation_status = data.status
        if data.suggested_renewal_price is not None:
            row.suggested_renewal_price = data.suggested_renewal_price

        entries = _loads_log(row.negotiation_log_json)
        entries.append(
            {
                "at": utcnow().isoformat(),
                "by": actor.ref,
                "event": "status",
                "from": prev,
                "to": data.status,
                "suggested_renewal_price": row.suggested_renewal_price,
                "note": data.note,
            }
        )
        row.negotiation_log_json = json.dumps(entries)
        row.updated_at = utcnow()
        db.flush()

        audit_write(
            db,
            actor=actor,
            action="update",
            entity="Tenant",
            entity_id=row.id,
            details=f"Negotiation for {row.name}: {prev} -> {data.status}",
            related=_related(row),
        )
    return row
