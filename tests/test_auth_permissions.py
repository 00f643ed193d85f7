from __future__ import annotations

import pytest
from sqlalchemy import select

from propdesk.auth import (
    Principal,
    create_access_token,
    decode_access_token,
    login,
    require_permission,
    resolve_principal,
)
from propdesk.errors import AuthorizationError, NotFoundError, ValidationError
from propdesk.models import AuditLogEntry
from propdesk.permissions import Permission, can_chat, has_permission
from propdesk.services import partners, users


def _p(role, *, perms=(), mirror_admin=False):
    return Principal(kind="user", id=7, name="x", email=None, role=role, mirror_admin=mirror_admin, permissions=tuple(perms))


def test_role_defaults():
    assert has_permission(_p("platform_owner"), "settings", "edit")
    assert has_permission(_p("software_tenant"), "tasks", "override")
    assert not has_permission(_p("software_tenant"), "market_analysis", "delete")
    assert not has_permission(_p("internal_user"), "tasks", "view")
    assert has_permission(_p("internal_user", mirror_admin=True), "tasks", "view")
    assert has_permission(_p("partner"), "tasks", "edit")
    assert not has_permission(_p("partner"), "tasks", "approve")
    assert not has_permission(_p("tenant"), "financial", "view")


def test_explicit_permissions_decide_for_their_resource():
    perms = [Permission(resource="tasks", actions=("view", "approve"))]
    staff = _p("internal_user", perms=perms)
    assert has_permission(staff, "tasks", "approve")
    assert not has_permission(staff, "tasks", "override")
    assert not has_permission(staff, "properties", "view")

    mirrored = _p("internal_user", perms=perms, mirror_admin=True)
    assert has_permission(mirrored, "properties", "view")
    assert not has_permission(mirrored, "tasks", "override")


def test_chat_rules():
    assert can_chat("internal_user", "tenant")
    assert can_chat("tenant", "platform_owner")
    assert not can_chat("tenant", "partner")


def test_require_permission_raises_typed_error():
    with pytest.raises(AuthorizationError):
        require_permission(_p("tenant"), "tasks", "edit")
    require_permission(_p("platform_owner"), "tasks", "edit")


def test_resolve_principal_kinds(db, admin):
    partner = partners.add_partner(db, actor=admin, payload={"name": "Volt", "email": "volt@p.test"})
    p = resolve_principal(db, f"partner:{partner.id}")
    assert (p.kind, p.role, p.ref) == ("partner", "partner", f"partner:{partner.id}")

    with pytest.raises(ValidationError):
        resolve_principal(db, "nonsense")
    with pytest.raises(ValidationError):
        resolve_principal(db, "robot:1")
    with pytest.raises(NotFoundError):
        resolve_principal(db, "user:999")


def test_login_is_case_insensitive_and_audited(db, admin):
    p = login(db, "ADA@propdesk.local")
    assert p.ref == admin.ref
    last = db.scalars(select(AuditLogEntry).order_by(AuditLogEntry.id.desc())).first()
    assert (last.action, last.user_id) == ("login", admin.ref)


def test_blocked_user_cannot_log_in(db, admin):
    u = users.add_user(db, actor=admin, payload={"name": "Bo", "email": "bo@desk.test"})
    users.block_user(db, actor=admin, user_id=u.id)
    with pytest.raises(AuthorizationError):
        login(db, "bo@desk.test")
    users.approve_user(db, actor=admin, user_id=u.id)
    assert login(db, "bo@desk.test").status == "active"


def test_user_email_unique_and_no_self_delete(db, admin):
    with pytest.raises(ValidationError):
        users.add_user(db, actor=admin, payload={"name": "Dup", "email": "Ada@PropDesk.local"})
    with pytest.raises(ValidationError):
        users.add_user(db, actor=admin, payload={"name": "Bad", "email": "x@y.z", "role": "wizard"})
    with pytest.raises(ValidationError):
        users.delete_user(db, actor=admin, user_id=admin.id)


def test_token_round_trip(admin):
    claims = decode_access_token(create_access_token(admin, minutes=5))
    assert claims["sub"] == admin.ref
    assert claims["role"] == "platform_owner"
