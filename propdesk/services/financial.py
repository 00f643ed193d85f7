# propdesk/services/financial.py
"""
Financial ledger: invoices and payments (one consistent paid/open state),
free-standing ledger entries, settings, and bank-statement staging with
manual reconciliation.

Invoice status and payment status are owned here together:
  - an invoice is `paid` iff it was marked paid directly or one of its
    payments is `paid`
  - marking an invoice paid settles its pending payments
  - marking its last paid payment as anything else reopens it
"""
from __future__ import annotations

import csv
import io
import logging
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..clients.payment_gateway import PaymentGateway, get_payment_gateway
from ..config import settings
from ..db import transaction
from ..domain.audit import audit_write, describe_changes, snapshot
from ..errors import ExternalOperationError, NotFoundError, ValidationError
from ..models import (
    BankStatement,
    BankStatementLine,
    FinancialSettings,
    Invoice,
    LedgerEntry,
    Payment,
    Property,
    utcnow,
)
from ..schemas import (
    BankStatementCreate,
    BankStatementLineIn,
    FinancialSettingsIn,
    InvoiceCreate,
    InvoiceUpdate,
    LedgerEntryCreate,
    PaymentCreate,
)
from .registry import PAYABLE_MODELS, coerce, must_get, must_ref, opt_ref

log = logging.getLogger(__name__)

_PAYABLE_TAGS = {"task": "Task", "booking": "Booking", "property": "Property"}


# -------------------------
# Invoices
# -------------------------
def _resolve_payable(db: Session, data: InvoiceCreate) -> Optional[int]:
    """Validate invoice references; returns the property id the invoice belongs to."""
    prop = opt_ref(db, Property, data.property_id, field="property_id", entity="Invoice")
    property_id = prop.id if prop is not None else None
    if data.payable_type is not None:
        target = must_ref(db, PAYABLE_MODELS[data.payable_type], data.payable_id, field="payable_id", entity="Invoice")
        if property_id is None:
            property_id = target.id if data.payable_type == "property" else getattr(target, "property_id", None)
    return property_id


def _invoice_related(inv: Invoice, extra: Optional[list[tuple[str, Any]]] = None) -> list[tuple[str, Any]]:
    out: list[tuple[str, Any]] = [("Property", inv.property_id)]
    if inv.payable_type:
        out.append((_PAYABLE_TAGS[inv.payable_type], inv.payable_id))
    out.extend(extra or [])
    return out


def _settle_pending_payments(inv: Invoice, when: datetime) -> list[Payment]:
    settled = []
    for p in inv.payments:
        if p.status == "pending":
            p.status = "paid"
            p.paid_at = when
            settled.append(p)
    return settled


def _sync_invoice_from_payments(inv: Invoice, *, reopen: bool = False) -> Optional[str]:
    """
    Bring invoice status in line with its payments; returns the new status if
    it changed. A paid invoice is only reopened when `reopen` is set, i.e. the
    caller just took away its last paid payment.
    """
    paid = [p for p in inv.payments if p.status == "paid"]
    if paid and inv.status != "paid":
        inv.status = "paid"
        inv.paid_at = max(p.paid_at or utcnow() for p in paid)
        inv.updated_at = utcnow()
        return "paid"
    if reopen and not paid and inv.status == "paid":
        inv.status = "open"
        inv.paid_at = None
        inv.updated_at = utcnow()
        return "open"
    return None


def add_invoice(db: Session, *, actor: Any, payload: Any) -> Invoice:
    data = coerce(InvoiceCreate, payload)
    with transaction(db):
        property_id = _resolve_payable(db, data)
        now = utcnow()
        fields = data.model_dump()
        fields["property_id"] = property_id
        row = Invoice(**fields, status="open", created_at=now, updated_at=now)
        db.add(row)
        db.flush()

        target = f" for {row.payable_type} {row.payable_id}" if row.payable_type else ""
        audit_write(
            db,
            actor=actor,
            action="create",
            entity="Invoice",
            entity_id=row.id,
            details=f"Invoice created: {row.description} {row.amount:.2f}{target}",
            related=_invoice_related(row),
        )
    log.info("invoice_created", extra={"entity": "Invoice", "entity_id": row.id, "actor": actor.ref})
    return row


def update_invoice(db: Session, *, actor: Any, invoice_id: int, payload: Any) -> Invoice:
    """
    Full replace. Moving to `paid` stamps paid_at and settles pending
    payments; moving back to `open` clears paid_at.
    """
    data = coerce(InvoiceUpdate, payload)
    with transaction(db):
        row = must_get(db, Invoice, invoice_id)
        property_id = _resolve_payable(db, data)

        before = snapshot(row)
        old_related = _invoice_related(row)
        old_status = row.status

        fields = data.model_dump()
        fields["property_id"] = property_id
        for k, v in fields.items():
            setattr(row, k, v)

        now = utcnow()
        extra: list[tuple[str, Any]] = []
        note = ""
        if old_status != "paid" and row.status == "paid":
            row.paid_at = now
            settled = _settle_pending_payments(row, now)
            extra = [("Payment", p.id) for p in settled]
            if settled:
                note = f"; settled payments {[p.id for p in settled]}"
        elif old_status == "paid" and row.status == "open":
            paid_ids = [p.id for p in row.payments if p.status == "paid"]
            if paid_ids:
                raise ValidationError(
                    f"invoice {row.id} has paid payments {paid_ids}; mark them refunded or failed first",
                    entity="Invoice",
                    entity_id=row.id,
                )
            row.paid_at = None
        row.updated_at = now
        db.flush()

        audit_write(
            db,
            actor=actor,
            action="update",
            entity="Invoice",
            entity_id=row.id,
            details=f"Invoice {row.description} updated: {describe_changes(before, snapshot(row))}{note}",
            related=old_related + _invoice_related(row, extra),
        )
    log.info("invoice_updated", extra={"entity": "Invoice", "entity_id": row.id, "actor": actor.ref, "status": row.status})
    return row


# -------------------------
# Payments
# -------------------------
def record_payment(db: Session, *, actor: Any, payload: Any) -> Payment:
    data = coerce(PaymentCreate, payload)
    with transaction(db):
        inv = opt_ref(db, Invoice, data.invoice_id, field="invoice_id", entity="Payment")
        now = utcnow()
        row = Payment(**data.model_dump(), paid_at=now if data.status == "paid" else None, created_at=now)
        db.add(row)
        db.flush()

        details = f"Payment recorded: {row.amount:.2f} ({row.status})"
        related: list[tuple[str, Any]] = []
        if inv is not None:
            db.refresh(inv, ["payments"])
            related = _invoice_related(inv, [("Invoice", inv.id)])
            changed = _sync_invoice_from_payments(inv)
            if changed:
                details += f"; invoice {inv.id} -> {changed}"
            db.flush()

        audit_write(
            db,
            actor=actor,
            action="create",
            entity="Payment",
            entity_id=row.id,
            details=details,
            related=related,
        )
    return row


def mark_payment_as(db: Session, *, actor: Any, payment_id: int, status: str) -> Payment:
    """Set a payment's status and keep its invoice consistent in the same write."""
    if status not in ("pending", "paid", "failed", "refunded"):
        raise ValidationError(f"unknown payment status {status!r}", entity="Payment", entity_id=payment_id)

    with transaction(db):
        row = must_get(db, Payment, payment_id)
        prev = row.status
        row.status = status
        row.paid_at = (row.paid_at or utcnow()) if status == "paid" else None
        db.flush()

        details = f"Payment {row.id} marked {status} (was {prev})"
        related: list[tuple[str, Any]] = []
        if row.invoice_id is not None:
            inv = db.get(Invoice, row.invoice_id)
            db.refresh(inv, ["payments"])
            changed = _sync_invoice_from_payments(inv, reopen=(prev == "paid" and status != "paid"))
            if changed:
                details += f"; invoice {inv.id} -> {changed}"
            related = _invoice_related(inv, [("Invoice", inv.id)])
            db.flush()

        audit_write(
            db,
            actor=actor,
            action="update",
            entity="Payment",
            entity_id=row.id,
            details=details,
            related=related,
        )
    return row


def pay_invoice(
    db: Session,
    *,
    actor: Any,
    invoice_id: int,
    method: str = "card",
    source_token: Optional[str] = None,
    gateway: Optional[PaymentGateway] = None,
) -> Invoice:
    """
    Charge an open invoice through the payment gateway. On success a paid
    Payment is recorded and the invoice is marked paid in one write; on
    failure ExternalOperationError propagates and nothing changes.
    """
    inv = must_get(db, Invoice, invoice_id)
    if inv.status == "paid":
        raise ValidationError(f"invoice {inv.id} is already paid", entity="Invoice", entity_id=inv.id)

    gw = gateway if gateway is not None else get_payment_gateway()
    currency = _currency(db)
    try:
        result = gw.charge(
            amount=float(inv.amount),
            currency=currency,
            description=f"Invoice {inv.id}: {inv.description}",
            method=method,
            source_token=source_token,
        )
    except ExternalOperationError as e:
        log.warning(
            "payment_failed: %s",
            e.message,
            extra={"entity": "Invoice", "entity_id": inv.id, "actor": actor.ref, "status": "failed"},
        )
        raise

    with transaction(db):
        now = utcnow()
        payment = Payment(
            invoice_id=inv.id,
            amount=float(result.amount),
            status="paid",
            method=method,
            reference=result.reference,
            paid_at=now,
            created_at=now,
        )
        db.add(payment)
        inv.status = "paid"
        inv.paid_at = now
        inv.updated_at = now
        db.flush()
        _settle_pending_payments(inv, now)
        db.flush()

        audit_write(
            db,
            actor=actor,
            action="update",
            entity="Invoice",
            entity_id=inv.id,
            details=f"Invoice {inv.description} paid via {method}: {result.amount:.2f} (ref {result.reference}, payment {payment.id})",
            related=_invoice_related(inv, [("Payment", payment.id)]),
        )
    log.info("invoice_paid", extra={"entity": "Invoice", "entity_id": inv.id, "actor": actor.ref, "status": "paid"})
    return inv


def billing_status(db: Session, *, payable_type: str, payable_id: int) -> Optional[str]:
    """
    Derived view for task/booking/property displays: None when nothing was
    billed, "paid" when every linked invoice is paid, "open" otherwise.
    """
    if payable_type not in PAYABLE_MODELS:
        raise ValidationError(f"unknown payable_type {payable_type!r}")
    statuses = db.scalars(
        select(Invoice.status).where(Invoice.payable_type == payable_type, Invoice.payable_id == int(payable_id))
    ).all()
    if not statuses:
        return None
    return "paid" if all(s == "paid" for s in statuses) else "open"


# -------------------------
# Settings
# -------------------------
def _currency(db: Session) -> str:
    row = db.scalar(select(FinancialSettings).order_by(FinancialSettings.id).limit(1))
    return row.currency if row is not None else settings.default_currency


def get_settings(db: Session) -> FinancialSettings:
    row = db.scalar(select(FinancialSettings).order_by(FinancialSettings.id).limit(1))
    if row is None:
        with transaction(db):
            row = FinancialSettings(currency=settings.default_currency, updated_at=utcnow())
            db.add(row)
    return row


def update_settings(db: Session, *, actor: Any, payload: Any) -> FinancialSettings:
    data = coerce(FinancialSettingsIn, payload)
    row = get_settings(db)
    with transaction(db):
        before = snapshot(row)
        for k, v in data.model_dump().items():
            setattr(row, k, v)
        row.currency = row.currency.upper()
        row.updated_at = utcnow()
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="update",
            entity="FinancialSettings",
            entity_id=row.id,
            details=f"Financial settings updated: {describe_changes(before, snapshot(row))}",
        )
    return row


# -------------------------
# Ledger entries
# -------------------------
def _ledger_refs(db: Session, data: LedgerEntryCreate) -> None:
    opt_ref(db, Property, data.property_id, field="property_id", entity="LedgerEntry")
    opt_ref(db, Invoice, data.invoice_id, field="invoice_id", entity="LedgerEntry")


def _ledger_related(e: LedgerEntry) -> list[tuple[str, Any]]:
    return [("Property", e.property_id), ("Invoice", e.invoice_id)]


def add_ledger_entry(db: Session, *, actor: Any, payload: Any) -> LedgerEntry:
    data = coerce(LedgerEntryCreate, payload)
    with transaction(db):
        _ledger_refs(db, data)
        now = utcnow()
        row = LedgerEntry(**data.model_dump(), created_at=now, updated_at=now)
        db.add(row)
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="create",
            entity="LedgerEntry",
            entity_id=row.id,
            details=f"Ledger {row.entry_type} posted: {row.category} {row.amount:.2f} on {row.entry_date}",
            related=_ledger_related(row),
        )
    return row


def update_ledger_entry(db: Session, *, actor: Any, entry_id: int, payload: Any) -> LedgerEntry:
    data = coerce(LedgerEntryCreate, payload)
    with transaction(db):
        row = must_get(db, LedgerEntry, entry_id)
        _ledger_refs(db, data)
        before = snapshot(row)
        old_related = _ledger_related(row)
        for k, v in data.model_dump().items():
            setattr(row, k, v)
        row.updated_at = utcnow()
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="update",
            entity="LedgerEntry",
            entity_id=row.id,
            details=f"Ledger entry {row.category} updated: {describe_changes(before, snapshot(row))}",
            related=old_related + _ledger_related(row),
        )
    return row


def delete_ledger_entry(db: Session, *, actor: Any, entry_id: int) -> None:
    """Removes the entry and any statement match pointing at it. Invoices are left as they are."""
    with transaction(db):
        row = must_get(db, LedgerEntry, entry_id)
        related = _ledger_related(row)
        summary = f"{row.entry_type} {row.category} {row.amount:.2f}"

        matched = db.scalars(select(BankStatementLine).where(BankStatementLine.matched_ledger_entry_id == row.id)).all()
        for line in matched:
            line.matched_ledger_entry_id = None
            line.matched_at = None
            related.append(("BankStatement", line.statement_id))

        db.delete(row)
        db.flush()
        note = f"; unmatched statement lines {[ln.id for ln in matched]}" if matched else ""
        audit_write(
            db,
            actor=actor,
            action="delete",
            entity="LedgerEntry",
            entity_id=entry_id,
            details=f"Ledger entry deleted: {summary}{note}",
            related=related,
        )


def ledger_summary(db: Session, *, property_id: Optional[int] = None) -> dict[str, Any]:
    q = select(LedgerEntry.entry_type, func.coalesce(func.sum(LedgerEntry.amount), 0.0), func.count(LedgerEntry.id))
    if property_id is not None:
        q = q.where(LedgerEntry.property_id == property_id)
    q = q.group_by(LedgerEntry.entry_type)

    totals = {"income": 0.0, "expense": 0.0}
    count = 0
    for entry_type, total, n in db.execute(q).all():
        totals[entry_type] = float(total or 0.0)
        count += int(n)
    return {
        "property_id": property_id,
        "income": round(totals["income"], 2),
        "expense": round(totals["expense"], 2),
        "net": round(totals["income"] - totals["expense"], 2),
        "entries": count,
    }


# -------------------------
# Bank statements
# -------------------------
_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%d.%m.%Y")
_HEADER_ALIASES = {
    "date": "line_date",
    "line_date": "line_date",
    "posted": "line_date",
    "description": "description",
    "memo": "description",
    "amount": "amount",
    "value": "amount",
}


def _parse_date(raw: str, *, row_no: int) -> date:
    s = (raw or "").strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    raise ValidationError(f"row {row_no}: unrecognised date {raw!r}", entity="BankStatement")


def _parse_amount(raw: str, *, row_no: int) -> float:
    s = (raw or "").strip().replace("$", "").replace(",", "").replace(" ", "")
    negative = s.startswith("(") and s.endswith(")")
    s = s.strip("()")
    try:
        v = float(s)
    except ValueError:
        raise ValidationError(f"row {row_no}: unrecognised amount {raw!r}", entity="BankStatement")
    return -v if negative else v


def parse_bank_statement_csv(text: str) -> list[BankStatementLineIn]:
    """
    Parse a bank CSV export with a header row naming date, description and
    amount columns (common aliases accepted). Blank rows are skipped.
    """
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise ValidationError("bank statement CSV has no header row", entity="BankStatement")

    columns = {}
    for name in reader.fieldnames:
        key = _HEADER_ALIASES.get((name or "").strip().lower())
        if key and key not in columns:
            columns[key] = name
    missing = [k for k in ("line_date", "description", "amount") if k not in columns]
    if missing:
        raise ValidationError(f"bank statement CSV is missing columns {missing}", entity="BankStatement")

    out: list[BankStatementLineIn] = []
    for i, rec in enumerate(reader, start=2):
        if not any((v or "").strip() for v in rec.values() if isinstance(v, str)):
            continue
        out.append(
            BankStatementLineIn(
                line_date=_parse_date(rec.get(columns["line_date"]), row_no=i),
                description=(rec.get(columns["description"]) or "").strip() or "(no description)",
                amount=_parse_amount(rec.get(columns["amount"]), row_no=i),
            )
        )
    return out


def upload_bank_statement(db: Session, *, actor: Any, payload: Any) -> BankStatement:
    """Stage statement lines for manual reconciliation. Nothing is posted to the ledger."""
    data = coerce(BankStatementCreate, payload)
    if data.period_start and data.period_end and data.period_end < data.period_start:
        raise ValidationError("period_end must not be before period_start", entity="BankStatement")

    with transaction(db):
        row = BankStatement(
            bank_name=data.bank_name,
            filename=data.filename,
            period_start=data.period_start,
            period_end=data.period_end,
            uploaded_at=utcnow(),
        )
        for ln in data.lines:
            row.lines.append(BankStatementLine(**ln.model_dump()))
        db.add(row)
        db.flush()

        total = sum(ln.amount for ln in data.lines)
        audit_write(
            db,
            actor=actor,
            action="import",
            entity="BankStatement",
            entity_id=row.id,
            details=f"Bank statement imported: {row.bank_name} {row.filename or ''}".rstrip()
            + f", {len(data.lines)} lines, net {total:.2f}",
        )
    log.info("bank_statement_imported", extra={"entity": "BankStatement", "entity_id": row.id, "actor": actor.ref})
    return row


def reconcile_statement_line(
    db: Session,
    *,
    actor: Any,
    line_id: int,
    ledger_entry_id: Optional[int],
) -> BankStatementLine:
    """Match a statement line to a ledger entry, or clear the match with ledger_entry_id=None."""
    with transaction(db):
        line = must_get(db, BankStatementLine, line_id)
        prev = line.matched_ledger_entry_id
        related: list[tuple[str, Any]] = [("BankStatement", line.statement_id), ("LedgerEntry", prev)]

        if ledger_entry_id is None:
            line.matched_ledger_entry_id = None
            line.matched_at = None
            details = f"Statement line {line.id} unmatched (was ledger entry {prev})"
        else:
            entry = must_ref(db, LedgerEntry, ledger_entry_id, field="matched_ledger_entry_id", entity="BankStatementLine")
            other = db.scalar(
                select(BankStatementLine.id).where(
                    BankStatementLine.matched_ledger_entry_id == entry.id,
                    BankStatementLine.id != line.id,
                )
            )
            if other is not None:
                raise ValidationError(
                    f"ledger entry {entry.id} is already matched to statement line {other}",
                    entity="BankStatementLine",
                    entity_id=line.id,
                )
            line.matched_ledger_entry_id = entry.id
            line.matched_at = utcnow()
            related.append(("LedgerEntry", entry.id))
            details = (
                f"Statement line {line.id} ({line.description} {line.amount:.2f}) "
                f"matched to ledger entry {entry.id} ({entry.category} {entry.amount:.2f})"
            )
        db.flush()
        audit_write(
            db,
            actor=actor,
            action="update",
            entity="BankStatementLine",
            entity_id=line.id,
            details=details,
            related=related,
        )
    return line


def unreconciled_lines(db: Session, *, statement_id: Optional[int] = None) -> list[BankStatementLine]:
    q = select(BankStatementLine).where(BankStatementLine.matched_ledger_entry_id.is_(None))
    if statement_id is not None:
        if db.get(BankStatement, int(statement_id)) is None:
            raise NotFoundError(f"BankStatement {statement_id} not found", entity="BankStatement", entity_id=statement_id)
        q = q.where(BankStatementLine.statement_id == statement_id)
    return list(db.scalars(q.order_by(BankStatementLine.line_date, BankStatementLine.id)).all())


def list_bank_statements(db: Session) -> list[BankStatement]:
    return list(db.scalars(select(BankStatement).order_by(BankStatement.uploaded_at.desc(), BankStatement.id.desc())).all())
