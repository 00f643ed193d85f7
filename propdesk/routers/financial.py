# propdesk/routers/financial.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Principal, require
from ..db import get_db
from ..schemas import (
    BankStatementCreate,
    BankStatementLineOut,
    BankStatementOut,
    BillingStatusOut,
    FinancialSettingsIn,
    FinancialSettingsOut,
    InvoiceCreate,
    InvoiceOut,
    InvoiceUpdate,
    LedgerEntryCreate,
    LedgerEntryOut,
    LedgerSummaryOut,
    PayInvoiceIn,
    PaymentCreate,
    PaymentOut,
    PaymentStatusIn,
    ReconcileIn,
)
from ..services import financial as svc
from ..services import registry

router = APIRouter(prefix="/financial", tags=["financial"])


# ---- invoices ----
@router.get("/invoices", response_model=list[InvoiceOut])
def list_invoices(
    property_id: Optional[int] = Query(default=None),
    status: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    p: Principal = Depends(require("financial", "view")),
):
    return registry.list_invoices(db, property_id=property_id, status=status)


@router.post("/invoices", response_model=InvoiceOut)
def add_invoice(payload: InvoiceCreate, db: Session = Depends(get_db), p: Principal = Depends(require("financial", "create"))):
    return svc.add_invoice(db, actor=p, payload=payload)


@router.put("/invoices/{invoice_id}", response_model=InvoiceOut)
def update_invoice(
    invoice_id: int,
    payload: InvoiceUpdate,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("financial", "edit")),
):
    return svc.update_invoice(db, actor=p, invoice_id=invoice_id, payload=payload)


@router.post("/invoices/{invoice_id}/pay", response_model=InvoiceOut)
def pay_invoice(
    invoice_id: int,
    payload: PayInvoiceIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("financial", "edit")),
):
    return svc.pay_invoice(db, actor=p, invoice_id=invoice_id, method=payload.method, source_token=payload.source_token)


@router.get("/billing-status", response_model=BillingStatusOut)
def billing_status(
    payable_type: str = Query(...),
    payable_id: int = Query(...),
    db: Session = Depends(get_db),
    p: Principal = Depends(require("financial", "view")),
):
    status = svc.billing_status(db, payable_type=payable_type, payable_id=payable_id)
    return BillingStatusOut(payable_type=payable_type, payable_id=payable_id, status=status)


# ---- payments ----
@router.get("/payments", response_model=list[PaymentOut])
def list_payments(
    invoice_id: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    p: Principal = Depends(require("financial", "view")),
):
    return registry.list_payments(db, invoice_id=invoice_id)


@router.post("/payments", response_model=PaymentOut)
def record_payment(payload: PaymentCreate, db: Session = Depends(get_db), p: Principal = Depends(require("financial", "create"))):
    return svc.record_payment(db, actor=p, payload=payload)


@router.post("/payments/{payment_id}/status", response_model=PaymentOut)
def mark_payment_as(
    payment_id: int,
    payload: PaymentStatusIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("financial", "edit")),
):
    return svc.mark_payment_as(db, actor=p, payment_id=payment_id, status=payload.status)


# ---- settings ----
@router.get("/settings", response_model=FinancialSettingsOut)
def get_settings(db: Session = Depends(get_db), p: Principal = Depends(require("financial", "view"))):
    return svc.get_settings(db)


@router.put("/settings", response_model=FinancialSettingsOut)
def update_settings(payload: FinancialSettingsIn, db: Session = Depends(get_db), p: Principal = Depends(require("settings", "edit"))):
    return svc.update_settings(db, actor=p, payload=payload)


# ---- ledger ----
@router.get("/ledger", response_model=list[LedgerEntryOut])
def list_ledger(
    property_id: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    p: Principal = Depends(require("financial", "view")),
):
    return registry.list_ledger_entries(db, property_id=property_id)


@router.get("/ledger/summary", response_model=LedgerSummaryOut)
def ledger_summary(
    property_id: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    p: Principal = Depends(require("financial", "view")),
):
    return svc.ledger_summary(db, property_id=property_id)


@router.post("/ledger", response_model=LedgerEntryOut)
def add_ledger_entry(payload: LedgerEntryCreate, db: Session = Depends(get_db), p: Principal = Depends(require("financial", "create"))):
    return svc.add_ledger_entry(db, actor=p, payload=payload)


@router.put("/ledger/{entry_id}", response_model=LedgerEntryOut)
def update_ledger_entry(
    entry_id: int,
    payload: LedgerEntryCreate,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("financial", "edit")),
):
    return svc.update_ledger_entry(db, actor=p, entry_id=entry_id, payload=payload)


@router.delete("/ledger/{entry_id}")
def delete_ledger_entry(entry_id: int, db: Session = Depends(get_db), p: Principal = Depends(require("financial", "delete"))):
    svc.delete_ledger_entry(db, actor=p, entry_id=entry_id)
    return {"ok": True, "deleted": entry_id}


# ---- bank statements ----
@router.get("/bank-statements", response_model=list[BankStatementOut])
def list_bank_statements(db: Session = Depends(get_db), p: Principal = Depends(require("financial", "view"))):
    return svc.list_bank_statements(db)


@router.post("/bank-statements", response_model=BankStatementOut)
def upload_bank_statement(
    payload: BankStatementCreate,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("financial", "create")),
):
    return svc.upload_bank_statement(db, actor=p, payload=payload)


@router.post("/bank-statements/csv", response_model=BankStatementOut)
def upload_bank_statement_csv(
    bank_name: str = Query(...),
    filename: Optional[str] = Query(default=None),
    csv_text: str = Body(..., media_type="text/csv"),
    db: Session = Depends(get_db),
    p: Principal = Depends(require("financial", "create")),
):
    lines = svc.parse_bank_statement_csv(csv_text)
    return svc.upload_bank_statement(
        db,
        actor=p,
        payload=BankStatementCreate(bank_name=bank_name, filename=filename, lines=lines),
    )


@router.get("/bank-statements/unreconciled", response_model=list[BankStatementLineOut])
def unreconciled_lines(
    statement_id: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    p: Principal = Depends(require("financial", "view")),
):
    return svc.unreconciled_lines(db, statement_id=statement_id)


@router.post("/bank-statements/lines/{line_id}/reconcile", response_model=BankStatementLineOut)
def reconcile_line(
    line_id: int,
    payload: ReconcileIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("financial", "edit")),
):
    return svc.reconcile_statement_line(db, actor=p, line_id=line_id, ledger_entry_id=payload.ledger_entry_id)
