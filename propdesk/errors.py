# propdesk/errors.py
"""
Typed errors raised by the store.

Every failed write raises one of these and leaves the registry exactly as it
was before the call. Callers catch by type and read the structured fields;
the HTTP layer maps ``code``/``http_status`` onto responses.
"""
from __future__ import annotations

from typing import Optional


class StoreError(Exception):
    code: str = "STORE_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        *,
        entity: Optional[str] = None,
        entity_id: Optional[object] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.entity = entity
        self.entity_id = str(entity_id) if entity_id is not None else None

    def as_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "entity": self.entity,
            "entity_id": self.entity_id,
        }


class ReferentialIntegrityError(StoreError):
    """A foreign-key field does not resolve to an existing entity of the expected type."""

    code = "REFERENTIAL_INTEGRITY"
    http_status = 409

    def __init__(self, message: str, *, entity: Optional[str] = None, entity_id: Optional[object] = None, field: Optional[str] = None) -> None:
        super().__init__(message, entity=entity, entity_id=entity_id)
        self.field = field

    def as_dict(self) -> dict:
        d = super().as_dict()
        d["field"] = self.field
        return d


class NotFoundError(StoreError):
    code = "NOT_FOUND"
    http_status = 404


class ValidationError(StoreError):
    code = "VALIDATION"
    http_status = 422


class InvalidTransitionError(ValidationError):
    code = "INVALID_TRANSITION"

    def __init__(self, message: str, *, entity: Optional[str] = None, entity_id: Optional[object] = None, current: Optional[str] = None, target: Optional[str] = None) -> None:
        super().__init__(message, entity=entity, entity_id=entity_id)
        self.current = current
        self.target = target

    def as_dict(self) -> dict:
        d = super().as_dict()
        d.update({"current": self.current, "target": self.target})
        return d


class AuthorizationError(StoreError):
    code = "FORBIDDEN"
    http_status = 403


class ExternalOperationError(StoreError):
    """An outbound call (payment gateway, delivery webhook) failed; store state is unchanged."""

    code = "EXTERNAL_OPERATION_FAILED"
    http_status = 502


class AuditImmutableError(StoreError):
    code = "AUDIT_IMMUTABLE"
    http_status = 409
