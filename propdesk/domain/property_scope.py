# propdesk/domain/property_scope.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from ..errors import ValidationError

UNRESTRICTED = "unrestricted"
RESTRICTED = "restricted"
SCOPES = (UNRESTRICTED, RESTRICTED)


@dataclass(frozen=True)
class PropertyScope:
    """
    Which properties a partner may be assigned work on.

    Unrestricted and "restricted to nothing" are distinct states; an empty id
    set never means "everything".
    """

    restricted: bool
    property_ids: frozenset[int] = field(default_factory=frozenset)

    @classmethod
    def unrestricted(cls) -> "PropertyScope":
        return cls(restricted=False)

    @classmethod
    def restricted_to(cls, ids: Iterable[int]) -> "PropertyScope":
        return cls(restricted=True, property_ids=frozenset(int(i) for i in ids))

    @classmethod
    def of(cls, partner: Any) -> "PropertyScope":
        if getattr(partner, "property_scope", UNRESTRICTED) == RESTRICTED:
            return cls.restricted_to(partner.linked_property_ids)
        return cls.unrestricted()

    @property
    def label(self) -> str:
        return RESTRICTED if self.restricted else UNRESTRICTED

    def allows(self, property_id: int) -> bool:
        if not self.restricted:
            return True
        return int(property_id) in self.property_ids


def normalize_scope(scope: Optional[str], ids: Optional[Iterable[int]]) -> tuple[str, list[int]]:
    """
    Resolve the (scope, ids) pair a caller sent.

    A missing scope falls back to the legacy reading of the list: ids present
    means restricted, no ids means unrestricted. An explicit unrestricted
    scope with ids is contradictory and rejected.
    """
    id_list = sorted({int(i) for i in (ids or [])})
    if scope is None:
        return (RESTRICTED if id_list else UNRESTRICTED), id_list

    s = str(scope).strip().lower()
    if s not in SCOPES:
        raise ValidationError(f"property_scope must be one of {SCOPES}, got {scope!r}", entity="Partner")
    if s == UNRESTRICTED and id_list:
        raise ValidationError("unrestricted partners cannot carry linked_property_ids", entity="Partner")
    return s, id_list


def check_assignment(partner: Any, property_id: int) -> None:
    """Raise ValidationError unless `partner` may take a task on `property_id`."""
    if (getattr(partner, "status", "active") or "active") != "active":
        raise ValidationError(
            f"partner {partner.id} is {partner.status} and cannot receive assignments",
            entity="Partner",
            entity_id=partner.id,
        )
    if not PropertyScope.of(partner).allows(property_id):
        raise ValidationError(
            f"partner {partner.id} is restricted to properties {sorted(partner.linked_property_ids)}; "
            f"property {property_id} is not among them",
            entity="Partner",
            entity_id=partner.id,
        )
