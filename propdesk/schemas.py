# propdesk/schemas.py
from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .permissions import ROLES


def _loads_list(raw: Any) -> list:
    if raw is None:
        return []
    if isinstance(raw, list):
        return raw
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return []
    return parsed if isinstance(parsed, list) else []


def _loads_dict(raw: Any) -> dict:
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _row_dict(data: Any, keys: list[str]) -> dict[str, Any]:
    return {k: getattr(data, k, None) for k in keys}


# -------------------- Owners / Condominiums / Properties --------------------

class OwnerCreate(BaseModel):
    name: str = Field(min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    tax_id: Optional[str] = None
    notes: Optional[str] = None


class OwnerOut(OwnerCreate):
    id: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class CondominiumCreate(BaseModel):
    name: str = Field(min_length=1)
    address: Optional[str] = None
    manager_name: Optional[str] = None
    manager_phone: Optional[str] = None
    notes: Optional[str] = None


class CondominiumOut(CondominiumCreate):
    id: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class PropertyCreate(BaseModel):
    owner_id: int
    condominium_id: Optional[int] = None

    name: str = Field(min_length=1)
    address: str = Field(min_length=1)
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    property_type: str = "apartment"
    community: Optional[str] = None

    status: Literal["active", "inactive", "maintenance"] = "active"

    bedrooms: int = Field(default=0, ge=0)
    bathrooms: float = Field(default=0.0, ge=0)
    guests: int = Field(default=0, ge=0)
    access_code: Optional[str] = None
    wifi_ssid: Optional[str] = None
    wifi_password: Optional[str] = None
    hoa_value: Optional[float] = Field(default=None, ge=0)


class PropertyOut(PropertyCreate):
    id: int
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


# -------------------- Partners / Rates --------------------

class PartnerDocumentIn(BaseModel):
    ref: str = Field(min_length=1)
    name: Optional[str] = None


class PartnerDocumentOut(PartnerDocumentIn):
    id: int
    position: int
    model_config = ConfigDict(from_attributes=True)


class PartnerCreate(BaseModel):
    """
    property_scope:
      - "unrestricted": may be assigned tasks on any property
      - "restricted": only on linked_property_ids (possibly none)
      - omitted: derived from linked_property_ids (non-empty => restricted)
    """

    name: str = Field(min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    service_type: str = "maintenance"
    status: Literal["active", "inactive"] = "active"

    property_scope: Optional[Literal["unrestricted", "restricted"]] = None
    linked_property_ids: List[int] = Field(default_factory=list)
    documents: List[PartnerDocumentIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def _scope_consistent(self) -> "PartnerCreate":
        if self.property_scope == "unrestricted" and self.linked_property_ids:
            raise ValueError("unrestricted partners cannot carry linked_property_ids")
        return self


class PartnerOut(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    service_type: str
    status: str
    property_scope: str
    linked_property_ids: List[int] = Field(default_factory=list)
    documents: List[PartnerDocumentOut] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ServiceCategoryCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class ServiceCategoryOut(ServiceCategoryCreate):
    id: int
    model_config = ConfigDict(from_attributes=True)


class ServiceRateCreate(BaseModel):
    service_name: str
    price: float = Field(ge=0)
    valid_from: Optional[date] = None
    rate_type: Literal["fixed", "hourly", "per_unit"] = "fixed"
    category_id: Optional[int] = None

    @field_validator("service_name")
    @classmethod
    def _name_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("service_name is required")
        return v


class ServiceRateOut(ServiceRateCreate):
    id: int
    partner_id: Optional[int] = None
    last_updated: datetime
    model_config = ConfigDict(from_attributes=True)


# -------------------- Tenants / Bookings / Visits --------------------

class TenantCreate(BaseModel):
    property_id: Optional[int] = None
    name: str = Field(min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    lease_start: Optional[date] = None
    lease_end: Optional[date] = None
    rent_value: Optional[float] = Field(default=None, ge=0)
    negotiation_status: Optional[Literal["open", "proposal_sent", "closed"]] = None
    suggested_renewal_price: Optional[float] = Field(default=None, ge=0)
    documents: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _lease_order(self) -> "TenantCreate":
        if self.lease_start and self.lease_end and self.lease_end < self.lease_start:
            raise ValueError("lease_end must not be before lease_start")
        return self


class TenantOut(BaseModel):
    id: int
    property_id: Optional[int] = None
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    lease_start: Optional[date] = None
    lease_end: Optional[date] = None
    rent_value: Optional[float] = None
    negotiation_status: Optional[str] = None
    suggested_renewal_price: Optional[float] = None
    negotiation_log: List[dict] = Field(default_factory=list)
    documents: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="before")
    @classmethod
    def _coerce_json(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return data
        out = _row_dict(
            data,
            [
                "id", "property_id", "name", "email", "phone", "lease_start", "lease_end",
                "rent_value", "negotiation_status", "suggested_renewal_price", "created_at", "updated_at",
            ],
        )
        out["negotiation_log"] = _loads_list(getattr(data, "negotiation_log_json", None))
        out["documents"] = _loads_list(getattr(data, "documents_json", None))
        return out


class RenewContractIn(BaseModel):
    new_lease_end: date
    new_rent_value: Optional[float] = Field(default=None, ge=0)


class NegotiationUpdate(BaseModel):
    status: Literal["open", "proposal_sent", "closed"]
    suggested_renewal_price: Optional[float] = Field(default=None, ge=0)
    note: Optional[str] = None


class BookingCreate(BaseModel):
    property_id: int
    guest_name: str = Field(min_length=1)
    guest_email: Optional[str] = None
    check_in: date
    check_out: date
    total_amount: float = Field(default=0.0, ge=0)
    paid: bool = False
    channel: str = "direct"
    status: Literal["confirmed", "cancelled", "completed"] = "confirmed"

    @model_validator(mode="after")
    def _dates(self) -> "BookingCreate":
        if self.check_out <= self.check_in:
            raise ValueError("check_out must be after check_in")
        return self


class BookingOut(BookingCreate):
    id: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class VisitCreate(BaseModel):
    property_id: int
    visitor_name: str = Field(min_length=1)
    visitor_phone: Optional[str] = None
    scheduled_at: datetime
    status: Literal["scheduled", "done", "cancelled"] = "scheduled"
    notes: Optional[str] = None


class VisitOut(VisitCreate):
    id: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# -------------------- Tasks --------------------

TaskStatus = Literal["pending", "in_progress", "completed", "approved"]


class TaskCreate(BaseModel):
    property_id: int
    title: str = Field(min_length=1)
    task_type: Literal["cleaning", "maintenance", "inspection"] = "maintenance"
    priority: Literal["low", "medium", "high", "critical"] = "medium"
    status: TaskStatus = "pending"

    assignee_kind: Optional[Literal["partner", "user"]] = None
    assignee_id: Optional[int] = None

    scheduled_date: Optional[date] = None
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _assignee_pair(self) -> "TaskCreate":
        if (self.assignee_kind is None) != (self.assignee_id is None):
            raise ValueError("assignee_kind and assignee_id must be given together")
        return self


class TaskUpdate(TaskCreate):
    override: bool = False


class TaskStatusUpdate(BaseModel):
    status: TaskStatus
    override: bool = False


class TaskImageIn(BaseModel):
    ref: str = Field(min_length=1)


class EvidenceIn(BaseModel):
    ref: str = Field(min_length=1)
    evidence_type: Literal["arrival", "completion", "other"] = "other"
    notes: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    location_address: Optional[str] = None


class EvidenceOut(EvidenceIn):
    id: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class TaskOut(BaseModel):
    id: int
    property_id: int
    title: str
    task_type: str
    priority: str
    status: str
    assignee_kind: Optional[str] = None
    assignee_id: Optional[int] = None
    scheduled_date: Optional[date] = None
    description: Optional[str] = None
    price: Optional[float] = None
    images: List[str] = Field(default_factory=list)
    evidence: List[EvidenceOut] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class NotifySupplierIn(BaseModel):
    message: Optional[str] = None


# -------------------- Financial --------------------

PayableType = Literal["task", "booking", "property"]


class InvoiceCreate(BaseModel):
    property_id: Optional[int] = None
    description: str = Field(min_length=1)
    amount: float = Field(gt=0)
    issue_date: date
    due_date: Optional[date] = None
    payable_type: Optional[PayableType] = None
    payable_id: Optional[int] = None

    @model_validator(mode="after")
    def _payable_pair(self) -> "InvoiceCreate":
        if (self.payable_type is None) != (self.payable_id is None):
            raise ValueError("payable_type and payable_id must be given together")
        return self


class InvoiceUpdate(InvoiceCreate):
    status: Literal["open", "paid"] = "open"


class InvoiceOut(InvoiceUpdate):
    id: int
    paid_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


PaymentStatus = Literal["pending", "paid", "failed", "refunded"]


class PaymentCreate(BaseModel):
    invoice_id: Optional[int] = None
    amount: float = Field(gt=0)
    status: PaymentStatus = "pending"
    method: Optional[str] = None
    reference: Optional[str] = None


class PaymentOut(PaymentCreate):
    id: int
    paid_at: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class PaymentStatusIn(BaseModel):
    status: PaymentStatus


class PayInvoiceIn(BaseModel):
    method: str = "card"
    source_token: Optional[str] = None


class LedgerEntryCreate(BaseModel):
    property_id: Optional[int] = None
    invoice_id: Optional[int] = None
    entry_type: Literal["income", "expense"]
    category: str = Field(min_length=1)
    amount: float = Field(gt=0)
    description: Optional[str] = None
    entry_date: date
    due_date: Optional[date] = None
    payment_date: Optional[date] = None
    status: Literal["pending", "cleared"] = "pending"
    reference: Optional[str] = None
    payee: Optional[str] = None


class LedgerEntryOut(LedgerEntryCreate):
    id: int
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class FinancialSettingsIn(BaseModel):
    currency: str = Field(default="USD", min_length=3, max_length=3)
    late_fee_pct: float = Field(default=0.0, ge=0, le=100)
    management_fee_pct: float = Field(default=0.0, ge=0, le=100)
    invoice_due_day: int = Field(default=10, ge=1, le=28)


class FinancialSettingsOut(FinancialSettingsIn):
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class BankStatementLineIn(BaseModel):
    line_date: date
    description: str = Field(min_length=1)
    amount: float


class BankStatementLineOut(BankStatementLineIn):
    id: int
    statement_id: int
    matched_ledger_entry_id: Optional[int] = None
    matched_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class BankStatementCreate(BaseModel):
    bank_name: str = Field(min_length=1)
    filename: Optional[str] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    lines: List[BankStatementLineIn] = Field(default_factory=list)


class BankStatementOut(BaseModel):
    id: int
    bank_name: str
    filename: Optional[str] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    uploaded_at: datetime
    lines: List[BankStatementLineOut] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class ReconcileIn(BaseModel):
    ledger_entry_id: Optional[int] = None


class LedgerSummaryOut(BaseModel):
    property_id: Optional[int] = None
    income: float
    expense: float
    net: float
    entries: int


class BillingStatusOut(BaseModel):
    payable_type: str
    payable_id: int
    status: Optional[str] = None


# -------------------- Audit --------------------

class AuditLogCreate(BaseModel):
    action: str = Field(min_length=1)
    entity: str = Field(min_length=1)
    entity_id: Optional[str] = None
    details: str = ""


class AuditLogOut(BaseModel):
    id: int
    created_at: datetime
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    action: str
    entity: str
    entity_id: Optional[str] = None
    details: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


# -------------------- Users / Auth --------------------

class PermissionIn(BaseModel):
    resource: str
    actions: List[str] = Field(default_factory=list)


class UserCreate(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    role: str = "internal_user"
    status: Literal["pending", "active", "blocked"] = "active"
    mirror_admin: bool = False
    permissions: List[PermissionIn] = Field(default_factory=list)

    @field_validator("role")
    @classmethod
    def _known_role(cls, v: str) -> str:
        if v not in ROLES:
            raise ValueError(f"role must be one of {ROLES}")
        return v

    @field_validator("email")
    @classmethod
    def _email_shape(cls, v: str) -> str:
        v = v.strip()
        if "@" not in v:
            raise ValueError("email must contain @")
        return v


class UserOut(BaseModel):
    id: int
    name: str
    email: str
    role: str
    status: str
    mirror_admin: bool
    permissions: List[PermissionIn] = Field(default_factory=list)
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="before")
    @classmethod
    def _coerce_permissions(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return data
        out = _row_dict(data, ["id", "name", "email", "role", "status", "mirror_admin", "created_at"])
        out["permissions"] = _loads_list(getattr(data, "permissions_json", None))
        return out


class PrincipalOut(BaseModel):
    ref: str
    kind: str
    id: int
    name: str
    email: Optional[str] = None
    role: str
    status: str
    mirror_admin: bool = False


class LoginIn(BaseModel):
    email: str


class LoginOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    principal: PrincipalOut


# -------------------- Notifications / Messages --------------------

class NotificationCreate(BaseModel):
    recipient_kind: Literal["user", "owner", "partner", "tenant"]
    recipient_id: int
    title: str = Field(min_length=1)
    message: Optional[str] = None
    payload: dict = Field(default_factory=dict)


class NotificationOut(BaseModel):
    id: int
    recipient_kind: str
    recipient_id: int
    title: str
    message: Optional[str] = None
    payload: dict = Field(default_factory=dict)
    read: bool
    delivery_status: str
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="before")
    @classmethod
    def _coerce_payload(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return data
        out = _row_dict(
            data,
            ["id", "recipient_kind", "recipient_id", "title", "message", "read", "delivery_status", "created_at"],
        )
        out["payload"] = _loads_dict(getattr(data, "payload_json", None))
        return out


class StartChatIn(BaseModel):
    contact_ref: str


class MessageIn(BaseModel):
    text: str = Field(min_length=1)
    attachments: List[str] = Field(default_factory=list)


class ChatMessageOut(BaseModel):
    id: int
    thread_id: int
    sender_ref: str
    text: str
    attachments: List[str] = Field(default_factory=list)
    read: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="before")
    @classmethod
    def _coerce_attachments(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return data
        out = _row_dict(data, ["id", "thread_id", "sender_ref", "text", "read", "created_at"])
        out["attachments"] = _loads_list(getattr(data, "attachments_json", None))
        return out


class ThreadOut(BaseModel):
    id: int
    owner_ref: str
    contact_ref: str
    contact_name: str
    last_message: Optional[str] = None
    last_message_at: datetime
    unread: int
    model_config = ConfigDict(from_attributes=True)


# -------------------- Publicity --------------------

class AdvertisementCreate(BaseModel):
    title: str = Field(min_length=1)
    advertiser: str = Field(min_length=1)
    placement: str = "footer"
    image_ref: Optional[str] = None
    link_url: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    price: float = Field(default=0.0, ge=0)
    status: Literal["active", "paused", "expired"] = "active"

    @model_validator(mode="after")
    def _period(self) -> "AdvertisementCreate":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class AdvertisementOut(AdvertisementCreate):
    id: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)
