# propdesk/permissions.py
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, Optional

ROLES = (
    "platform_owner",
    "software_tenant",
    "internal_user",
    "property_owner",
    "partner",
    "partner_employee",
    "tenant",
)

# Resources and actions the store checks itself. Collaborators may check more.
RESOURCES = (
    "dashboard",
    "properties",
    "owners",
    "partners",
    "tenants",
    "tasks",
    "financial",
    "audit",
    "users",
    "messages",
    "portal",
    "short_term",
    "publicity",
    "market_analysis",
    "settings",
)
ACTIONS = ("view", "create", "edit", "delete", "approve", "override", "impersonate")

# Portal roles: the fixed subset each one gets when no explicit list covers the resource.
_PORTAL_GRANTS: dict[str, frozenset[tuple[str, str]]] = {
    "property_owner": frozenset(
        {
            ("portal", "view"),
            ("messages", "view"),
            ("short_term", "view"),
            ("financial", "view"),
        }
    ),
    "partner": frozenset(
        {
            ("portal", "view"),
            ("messages", "view"),
            ("tasks", "view"),
            ("tasks", "edit"),
            ("financial", "view"),
        }
    ),
    "partner_employee": frozenset(
        {
            ("portal", "view"),
            ("tasks", "view"),
            ("tasks", "edit"),
            ("messages", "view"),
        }
    ),
    "tenant": frozenset({("portal", "view"), ("messages", "view")}),
}

STAFF_ROLES = frozenset({"platform_owner", "software_tenant", "internal_user"})


@dataclass(frozen=True)
class Permission:
    resource: str
    actions: tuple[str, ...]


def parse_permissions(raw: Optional[str]) -> tuple[Permission, ...]:
    """Decode User.permissions_json ([{"resource": ..., "actions": [...]}, ...])."""
    if not raw:
        return ()
    try:
        data = json.loads(raw)
    except ValueError:
        return ()
    if not isinstance(data, list):
        return ()

    out: list[Permission] = []
    for item in data:
        if not isinstance(item, dict) or not item.get("resource"):
            continue
        actions = item.get("actions") or []
        out.append(Permission(resource=str(item["resource"]), actions=tuple(str(a) for a in actions)))
    return tuple(out)


def dump_permissions(perms: Iterable[Any]) -> Optional[str]:
    rows = []
    for p in perms:
        if isinstance(p, Permission):
            rows.append({"resource": p.resource, "actions": list(p.actions)})
        else:
            rows.append({"resource": p["resource"], "actions": list(p.get("actions") or [])})
    return json.dumps(rows) if rows else None


def has_permission(principal: Any, resource: str, action: str) -> bool:
    """
    Role model:
      1. platform_owner can do everything.
      2. An explicit permission entry for the resource decides on its own.
         internal_user with explicit permissions and no mirror_admin is denied
         anything not listed.
      3. Role defaults otherwise.
    """
    role = getattr(principal, "role", None)
    if role == "platform_owner":
        return True

    perms: tuple[Permission, ...] = tuple(getattr(principal, "permissions", ()) or ())
    mirror_admin = bool(getattr(principal, "mirror_admin", False))

    if perms:
        match = next((p for p in perms if p.resource == resource), None)
        if match is not None:
            return action in match.actions
        if role == "internal_user" and not mirror_admin:
            return False

    if role == "software_tenant":
        if resource == "market_analysis" and action == "delete":
            return False
        return True

    if role == "internal_user":
        return mirror_admin

    grants = _PORTAL_GRANTS.get(role or "")
    if grants is None:
        return False
    return (resource, action) in grants


def can_chat(initiator_role: str, target_role: str) -> bool:
    if initiator_role in STAFF_ROLES:
        return True
    # portal users may only talk to staff
    return target_role in STAFF_ROLES
