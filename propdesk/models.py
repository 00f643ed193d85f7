# propdesk/models.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def utcnow() -> datetime:
    # naive UTC; SQLite drops tzinfo anyway and comparisons must stay consistent
    return datetime.now(timezone.utc).replace(tzinfo=None)


# -----------------------------
# People: users, owners, tenants
# -----------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)

    # platform_owner|software_tenant|internal_user|property_owner|partner|partner_employee|tenant
    role: Mapped[str] = mapped_column(String(40), nullable=False, default="internal_user")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")  # pending|active|blocked
    mirror_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    permissions_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class Owner(Base):
    __tablename__ = "owners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    tax_id: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    properties: Mapped[List["Property"]] = relationship(back_populates="owner")


class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("properties.id"), nullable=True, index=True)

    name: Mapped[str] = mapped_column(String(160), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    lease_start: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    lease_end: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    rent_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    negotiation_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)  # open|proposal_sent|closed
    suggested_renewal_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    negotiation_log_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    documents_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


# -----------------------------
# Properties
# -----------------------------
class Condominium(Base):
    __tablename__ = "condominiums"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    manager_name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)
    manager_phone: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("owners.id"), nullable=False, index=True)
    condominium_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("condominiums.id"), nullable=True, index=True
    )

    name: Mapped[str] = mapped_column(String(160), nullable=False)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    zip: Mapped[Optional[str]] = mapped_column(String(12), nullable=True)
    property_type: Mapped[str] = mapped_column(String(60), nullable=False, default="apartment")
    community: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")  # active|inactive|maintenance

    bedrooms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bathrooms: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    guests: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    access_code: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)
    wifi_ssid: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    wifi_password: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    hoa_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    owner: Mapped["Owner"] = relationship(back_populates="properties")
    tasks: Mapped[List["Task"]] = relationship(back_populates="prop")


# -----------------------------
# Partners (suppliers) and pricing
# -----------------------------
class Partner(Base):
    __tablename__ = "partners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    company: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)
    service_type: Mapped[str] = mapped_column(String(60), nullable=False, default="maintenance")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")  # active|inactive

    property_scope: Mapped[str] = mapped_column(String(20), nullable=False, default="unrestricted")  # unrestricted|restricted

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    documents: Mapped[List["PartnerDocument"]] = relationship(
        back_populates="partner", cascade="all, delete-orphan", order_by="PartnerDocument.position"
    )
    property_links: Mapped[List["PartnerPropertyLink"]] = relationship(
        back_populates="partner", cascade="all, delete-orphan"
    )
    service_rates: Mapped[List["ServiceRate"]] = relationship(back_populates="partner", cascade="all, delete-orphan")

    @property
    def linked_property_ids(self) -> list[int]:
        return sorted(int(link.property_id) for link in self.property_links)


class PartnerDocument(Base):
    __tablename__ = "partner_documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    partner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("partners.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ref: Mapped[str] = mapped_column(String(500), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    partner: Mapped["Partner"] = relationship(back_populates="documents")


class PartnerPropertyLink(Base):
    __tablename__ = "partner_property_links"
    __table_args__ = (UniqueConstraint("partner_id", "property_id", name="uq_partner_property_links"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    partner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("partners.id", ondelete="CASCADE"), nullable=False, index=True
    )
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id"), nullable=False, index=True)

    partner: Mapped["Partner"] = relationship(back_populates="property_links")


class ServiceCategory(Base):
    __tablename__ = "service_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class ServiceRate(Base):
    """Price for a service. partner_id NULL means a generic (catalogue) rate."""

    __tablename__ = "service_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    partner_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("partners.id", ondelete="CASCADE"), nullable=True, index=True
    )
    category_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("service_categories.id"), nullable=True)

    service_name: Mapped[str] = mapped_column(String(160), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    valid_from: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    rate_type: Mapped[str] = mapped_column(String(20), nullable=False, default="fixed")  # fixed|hourly|per_unit

    last_updated: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    partner: Mapped[Optional["Partner"]] = relationship(back_populates="service_rates")


# -----------------------------
# Tasks
# -----------------------------
class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id"), nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    task_type: Mapped[str] = mapped_column(String(30), nullable=False, default="maintenance")  # cleaning|maintenance|inspection
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")  # low|medium|high|critical
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    assignee_kind: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # partner|user
    assignee_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)

    scheduled_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    prop: Mapped["Property"] = relationship(back_populates="tasks")
    attachments: Mapped[List["TaskAttachment"]] = relationship(
        back_populates="task", cascade="all, delete-orphan", order_by="TaskAttachment.position"
    )

    @property
    def images(self) -> list[str]:
        return [a.ref for a in self.attachments if a.kind == "image"]

    @property
    def evidence(self) -> list["TaskAttachment"]:
        return [a for a in self.attachments if a.kind == "evidence"]


class TaskAttachment(Base):
    __tablename__ = "task_attachments"
    __table_args__ = (UniqueConstraint("task_id", "kind", "ref", name="uq_task_attachments_task_kind_ref"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    task_id: Mapped[int] = mapped_column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)

    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # image|evidence
    ref: Mapped[str] = mapped_column(String(500), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    evidence_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # arrival|completion|other
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    location_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    task: Mapped["Task"] = relationship(back_populates="attachments")


# -----------------------------
# Short-term rentals
# -----------------------------
class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id"), nullable=False, index=True)

    guest_name: Mapped[str] = mapped_column(String(160), nullable=False)
    guest_email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    check_in: Mapped[date] = mapped_column(Date, nullable=False)
    check_out: Mapped[date] = mapped_column(Date, nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    channel: Mapped[str] = mapped_column(String(40), nullable=False, default="direct")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="confirmed")

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class Visit(Base):
    __tablename__ = "visits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id"), nullable=False, index=True)

    visitor_name: Mapped[str] = mapped_column(String(160), nullable=False)
    visitor_phone: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="scheduled")  # scheduled|done|cancelled
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class Advertisement(Base):
    __tablename__ = "advertisements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    advertiser: Mapped[str] = mapped_column(String(160), nullable=False)
    placement: Mapped[str] = mapped_column(String(40), nullable=False, default="footer")
    image_ref: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    link_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")  # active|paused|expired

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


# -----------------------------
# Financial ledger
# -----------------------------
class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("properties.id"), nullable=True, index=True)

    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open")  # open|paid
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    payable_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # task|booking|property
    payable_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    payments: Mapped[List["Payment"]] = relationship(back_populates="invoice", order_by="Payment.id")

    __table_args__ = (Index("ix_invoices_payable", "payable_type", "payable_id"),)


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("invoices.id"), nullable=True, index=True)

    amount: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending|paid|failed|refunded
    method: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    reference: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    invoice: Mapped[Optional["Invoice"]] = relationship(back_populates="payments")


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("properties.id"), nullable=True, index=True)
    invoice_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("invoices.id"), nullable=True, index=True)

    entry_type: Mapped[str] = mapped_column(String(10), nullable=False)  # income|expense
    category: Mapped[str] = mapped_column(String(80), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending|cleared

    reference: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    payee: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class FinancialSettings(Base):
    __tablename__ = "financial_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    late_fee_pct: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    management_fee_pct: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    invoice_due_day: Mapped[int] = mapped_column(Integer, nullable=False, default=10)

    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class BankStatement(Base):
    __tablename__ = "bank_statements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    bank_name: Mapped[str] = mapped_column(String(120), nullable=False)
    filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    period_start: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    period_end: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    uploaded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    lines: Mapped[List["BankStatementLine"]] = relationship(
        back_populates="statement", cascade="all, delete-orphan", order_by="BankStatementLine.id"
    )


class BankStatementLine(Base):
    __tablename__ = "bank_statement_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    statement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("bank_statements.id", ondelete="CASCADE"), nullable=False, index=True
    )

    line_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)

    matched_ledger_entry_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("ledger_entries.id", ondelete="SET NULL"), nullable=True, index=True
    )
    matched_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    statement: Mapped["BankStatement"] = relationship(back_populates="lines")


# -----------------------------
# Audit log (append-only) + secondary index
# -----------------------------
class AuditLogEntry(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)

    user_id: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    user_name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)

    action: Mapped[str] = mapped_column(String(40), nullable=False)  # create|update|delete|login|import|...
    entity: Mapped[str] = mapped_column(String(40), nullable=False)
    entity_id: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("ix_audit_log_entity", "entity", "entity_id"),)


class AuditLink(Base):
    __tablename__ = "audit_links"
    __table_args__ = (
        UniqueConstraint("audit_id", "entity_type", "entity_id", name="uq_audit_links_audit_entity"),
        Index("ix_audit_links_entity", "entity_type", "entity_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    audit_id: Mapped[int] = mapped_column(Integer, ForeignKey("audit_log.id"), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(40), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(40), nullable=False)


# -----------------------------
# Communication
# -----------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    recipient_kind: Mapped[str] = mapped_column(String(20), nullable=False)  # user|owner|partner|tenant
    recipient_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payload_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    delivery_status: Mapped[str] = mapped_column(String(20), nullable=False, default="in_app")  # in_app|sent|failed

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class MessageThread(Base):
    __tablename__ = "message_threads"
    __table_args__ = (UniqueConstraint("owner_ref", "contact_ref", name="uq_message_threads_owner_contact"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_ref: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    contact_ref: Mapped[str] = mapped_column(String(40), nullable=False)
    contact_name: Mapped[str] = mapped_column(String(160), nullable=False)

    last_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_message_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    unread: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    messages: Mapped[List["ChatMessage"]] = relationship(
        back_populates="thread", cascade="all, delete-orphan", order_by="ChatMessage.id"
    )


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    thread_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("message_threads.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_ref: Mapped[str] = mapped_column(String(40), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    attachments_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    thread: Mapped["MessageThread"] = relationship(back_populates="messages")
