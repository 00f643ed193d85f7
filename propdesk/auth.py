# propdesk/auth.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt  # PyJWT
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .config import settings
from .db import get_db, transaction
from .domain.audit import audit_write
from .errors import AuthorizationError, NotFoundError, ValidationError
from .models import Owner, Partner, Tenant, User
from .permissions import Permission, has_permission, parse_permissions

# principal kind -> role used when the record itself carries no role
KIND_ROLES = {
    "owner": "property_owner",
    "partner": "partner",
    "tenant": "tenant",
}


@dataclass(frozen=True)
class Principal:
    kind: str  # user|owner|partner|tenant|system
    id: int
    name: str
    email: Optional[str]
    role: str
    status: str = "active"
    mirror_admin: bool = False
    permissions: tuple[Permission, ...] = field(default_factory=tuple)

    @property
    def ref(self) -> str:
        return f"{self.kind}:{self.id}"


# Actor used by seeding / maintenance code paths that have no logged-in user.
SYSTEM = Principal(kind="system", id=0, name="system", email=None, role="platform_owner")


def _from_user(u: User) -> Principal:
    return Principal(
        kind="user",
        id=int(u.id),
        name=u.name,
        email=u.email,
        role=u.role,
        status=u.status,
        mirror_admin=bool(u.mirror_admin),
        permissions=parse_permissions(u.permissions_json),
    )


def _from_profile(kind: str, row: Any) -> Principal:
    status = getattr(row, "status", "active") or "active"
    if status == "inactive":
        status = "blocked"
    return Principal(
        kind=kind,
        id=int(row.id),
        name=row.name,
        email=getattr(row, "email", None),
        role=KIND_ROLES[kind],
        status=status,
    )


_KIND_MODELS = {"user": User, "owner": Owner, "partner": Partner, "tenant": Tenant}


def parse_ref(ref: str) -> tuple[str, int]:
    try:
        kind, raw_id = str(ref).split(":", 1)
        return kind.strip().lower(), int(raw_id)
    except (ValueError, AttributeError):
        raise ValidationError(f"malformed principal reference {ref!r} (expected kind:id)")


def resolve_principal(db: Session, ref: str) -> Principal:
    kind, pid = parse_ref(ref)
    model = _KIND_MODELS.get(kind)
    if model is None:
        raise ValidationError(f"unknown principal kind {kind!r}")

    row = db.get(model, pid)
    if row is None:
        raise NotFoundError(f"{kind} {pid} not found", entity=kind, entity_id=pid)
    if kind == "user":
        return _from_user(row)
    return _from_profile(kind, row)


def all_users(db: Session) -> list[Principal]:
    """Every identity that can act in the desk: staff users plus owners, partners and tenants."""
    out: list[Principal] = [_from_user(u) for u in db.scalars(select(User).order_by(User.id)).all()]
    for kind in ("owner", "partner", "tenant"):
        model = _KIND_MODELS[kind]
        out.extend(_from_profile(kind, r) for r in db.scalars(select(model).order_by(model.id)).all())
    return out


def set_current_user(db: Session, ref: str) -> Principal:
    return resolve_principal(db, ref)


def login(db: Session, email: str) -> Principal:
    """
    Resolve a principal by e-mail (case-insensitive). Staff users win over
    profile records sharing the same address. Records a `login` audit entry.
    """
    needle = (email or "").strip().lower()
    if not needle:
        raise ValidationError("email is required")

    principal: Optional[Principal] = None
    user = db.scalar(select(User).where(func.lower(User.email) == needle))
    if user is not None:
        principal = _from_user(user)
    else:
        for kind in ("owner", "partner", "tenant"):
            model = _KIND_MODELS[kind]
            row = db.scalar(select(model).where(func.lower(model.email) == needle).order_by(model.id))
            if row is not None:
                principal = _from_profile(kind, row)
                break

    if principal is None:
        raise NotFoundError(f"no account for {needle}", entity="User")
    if principal.status != "active":
        raise AuthorizationError(f"account is {principal.status}", entity=principal.kind, entity_id=principal.id)

    with transaction(db):
        audit_write(
            db,
            actor=principal,
            action="login",
            entity="User" if principal.kind == "user" else principal.kind.title(),
            entity_id=principal.id,
            details=f"Login: {principal.name} ({principal.email})",
        )
    return principal


def require_permission(principal: Principal, resource: str, action: str) -> None:
    if not has_permission(principal, resource, action):
        raise AuthorizationError(
            f"{principal.name} ({principal.role}) may not {action} {resource}",
            entity=resource,
        )


# -------------------------
# Tokens (PyJWT)
# -------------------------
def create_access_token(principal: Principal, *, minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    exp_minutes = int(minutes if minutes is not None else settings.jwt_exp_minutes)
    payload: dict[str, Any] = {
        "sub": principal.ref,
        "name": principal.name,
        "role": principal.role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=exp_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def decode_access_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])


# -------------------------
# get_principal (FastAPI dependency)
# -------------------------
def get_principal(
    request: Request,
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> Principal:
    """
    Auth modes supported (in priority order):
      1) JWT cookie OR Authorization: Bearer <token>
      2) dev header (X-User-Ref: user:1) ONLY if settings.auth_mode == "dev"
    """
    token = request.cookies.get(settings.jwt_cookie_name) if settings.jwt_cookie_name else None
    if not token and authorization and str(authorization).lower().startswith("bearer "):
        token = str(authorization).split(" ", 1)[1].strip()

    ref: Optional[str] = None
    if token:
        try:
            claims = decode_access_token(token)
        except jwt.ExpiredSignatureError:
            raise HTTPException(status_code=401, detail="Token expired")
        except jwt.InvalidTokenError:
            raise HTTPException(status_code=401, detail="Invalid token")
        ref = str(claims.get("sub") or "")
        if not ref:
            raise HTTPException(status_code=401, detail="Token missing sub")
    elif settings.auth_mode == "dev":
        ref = (request.headers.get(settings.dev_header_user_ref) or "").strip()
        if not ref:
            raise HTTPException(status_code=401, detail=f"Missing {settings.dev_header_user_ref} for dev auth")

    if not ref:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        principal = resolve_principal(db, ref)
    except (NotFoundError, ValidationError):
        raise HTTPException(status_code=401, detail="Unknown principal")

    if principal.status != "active":
        raise HTTPException(status_code=403, detail=f"Account is {principal.status}")
    return principal


def require(resource: str, action: str):
    """Route dependency: the authenticated principal, provided it may `action` on `resource`."""

    def _dep(p: Principal = Depends(get_principal)) -> Principal:
        if not has_permission(p, resource, action):
            raise HTTPException(status_code=403, detail=f"{p.role} may not {action} {resource}")
        return p

    return _dep
