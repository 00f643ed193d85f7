# propdesk/domain/audit.py
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Iterable, Optional

from sqlalchemy import event, inspect, or_, select
from sqlalchemy.orm import Session

from ..errors import AuditImmutableError
from ..models import AuditLink, AuditLogEntry, utcnow

log = logging.getLogger(__name__)

Related = Iterable[tuple[str, Any]]


def snapshot(row: Any) -> dict[str, Any]:
    """Column values of an ORM row, keyed by attribute name."""
    mapper = inspect(row).mapper
    out: dict[str, Any] = {}
    for attr in mapper.column_attrs:
        v = getattr(row, attr.key)
        if isinstance(v, (datetime, date)):
            v = v.isoformat()
        out[attr.key] = v
    return out


def changed_fields(before: dict[str, Any], after: dict[str, Any], *, ignore: Iterable[str] = ("updated_at", "last_updated")) -> list[str]:
    skip = set(ignore)
    return sorted(k for k in after if k not in skip and before.get(k) != after.get(k))


def describe_changes(before: dict[str, Any], after: dict[str, Any]) -> str:
    keys = changed_fields(before, after)
    if not keys:
        return "no field changes"
    parts = []
    for k in keys:
        parts.append(f"{k}: {before.get(k)!r} -> {after.get(k)!r}")
    return "; ".join(parts)


def audit_write(
    db: Session,
    *,
    actor: Any,
    action: str,
    entity: str,
    entity_id: Any,
    details: str,
    related: Optional[Related] = None,
) -> AuditLogEntry:
    """
    Append one audit entry and index it.

    - Flush only; the caller's transaction decides when it becomes visible.
    - The entry is linked under (entity, entity_id) and under every
      (entity_type, id) pair in `related`, so activity timelines are
      answered from the index instead of by scanning `details`.
    """
    row = AuditLogEntry(
        user_id=getattr(actor, "ref", None),
        user_name=getattr(actor, "name", None),
        action=str(action),
        entity=str(entity),
        entity_id=str(entity_id) if entity_id is not None else None,
        details=details,
        created_at=utcnow(),
    )
    db.add(row)
    db.flush()

    seen: set[tuple[str, str]] = set()
    pairs: list[tuple[str, Any]] = []
    if entity_id is not None:
        pairs.append((entity, entity_id))
    pairs.extend(related or ())
    for etype, eid in pairs:
        if eid is None:
            continue
        key = (str(etype), str(eid))
        if key in seen:
            continue
        seen.add(key)
        db.add(AuditLink(audit_id=row.id, entity_type=key[0], entity_id=key[1]))
    db.flush()

    log.info(
        "audit_appended",
        extra={
            "audit_id": row.id,
            "action": row.action,
            "entity": row.entity,
            "entity_id": row.entity_id,
            "actor": row.user_id,
        },
    )
    return row


def list_audit(
    db: Session,
    *,
    entity: Optional[str] = None,
    entity_id: Optional[Any] = None,
    action: Optional[str] = None,
    limit: int = 200,
) -> list[AuditLogEntry]:
    q = select(AuditLogEntry).order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
    if entity:
        q = q.where(AuditLogEntry.entity == entity)
    if entity_id is not None:
        q = q.where(AuditLogEntry.entity_id == str(entity_id))
    if action:
        q = q.where(AuditLogEntry.action == action)
    return list(db.scalars(q.limit(int(limit))).all())


def activity_for(
    db: Session,
    entity_type: str,
    entity_id: Any,
    *,
    include_details_match: bool = False,
) -> list[AuditLogEntry]:
    """
    Activity timeline for one entity, newest first (ties: higher id first).

    Matches entries indexed under (entity_type, entity_id) and entries whose
    own (entity, entity_id) is the target. `include_details_match` adds the
    legacy heuristic of finding the id as a substring of `details`; it can
    over-match when one id is a substring of another.
    """
    eid = str(entity_id)
    linked = select(AuditLink.audit_id).where(AuditLink.entity_type == entity_type, AuditLink.entity_id == eid)

    conds = [
        AuditLogEntry.id.in_(linked),
        (AuditLogEntry.entity == entity_type) & (AuditLogEntry.entity_id == eid),
    ]
    if include_details_match:
        conds.append(AuditLogEntry.details.contains(eid))

    q = (
        select(AuditLogEntry)
        .where(or_(*conds))
        .order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
    )
    return list(db.scalars(q).all())


# -----------------------------------------------------------------------------
# Append-only enforcement: no UPDATE or DELETE ever reaches audit rows.
# -----------------------------------------------------------------------------
def _block_audit_update(mapper, connection, target) -> None:
    log.error("audit_immutability_violation", extra={"entity": "AuditLogEntry", "entity_id": target.id, "action": "update"})
    raise AuditImmutableError("audit log entries cannot be modified", entity="AuditLogEntry", entity_id=target.id)


def _block_audit_delete(mapper, connection, target) -> None:
    log.error("audit_immutability_violation", extra={"entity": "AuditLogEntry", "entity_id": target.id, "action": "delete"})
    raise AuditImmutableError("audit log entries cannot be deleted", entity="AuditLogEntry", entity_id=target.id)


def _block_link_change(mapper, connection, target) -> None:
    raise AuditImmutableError("audit index rows cannot be modified", entity="AuditLink", entity_id=target.id)


event.listen(AuditLogEntry, "before_update", _block_audit_update)
event.listen(AuditLogEntry, "before_delete", _block_audit_delete)
event.listen(AuditLink, "before_update", _block_link_change)
event.listen(AuditLink, "before_delete", _block_link_change)


@event.listens_for(Session, "do_orm_execute")
def _block_bulk_audit_writes(orm_execute_state) -> None:
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    mapper = orm_execute_state.bind_mapper
    if mapper is not None and mapper.class_ in (AuditLogEntry, AuditLink):
        raise AuditImmutableError("bulk UPDATE/DELETE on the audit log is not allowed", entity=mapper.class_.__name__)
