# propdesk/routers/tenants.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Principal, require
from ..db import get_db
from ..schemas import (
    BookingCreate,
    BookingOut,
    NegotiationUpdate,
    RenewContractIn,
    TenantCreate,
    TenantOut,
    VisitCreate,
    VisitOut,
)
from ..services import bookings as bsvc
from ..services import registry
from ..services import tenants as svc

router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.get("", response_model=list[TenantOut])
def list_tenants(
    property_id: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    p: Principal = Depends(require("tenants", "view")),
):
    return registry.list_tenants(db, property_id=property_id)


@router.post("", response_model=TenantOut)
def add_tenant(payload: TenantCreate, db: Session = Depends(get_db), p: Principal = Depends(require("tenants", "create"))):
    return svc.add_tenant(db, actor=p, payload=payload)


# ---- short-term bookings ----
@router.get("/bookings", response_model=list[BookingOut])
def list_bookings(
    property_id: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    p: Principal = Depends(require("short_term", "view")),
):
    return registry.list_bookings(db, property_id=property_id)


@router.post("/bookings", response_model=BookingOut)
def add_booking(payload: BookingCreate, db: Session = Depends(get_db), p: Principal = Depends(require("short_term", "create"))):
    return bsvc.add_booking(db, actor=p, payload=payload)


@router.put("/bookings/{booking_id}", response_model=BookingOut)
def update_booking(
    booking_id: int,
    payload: BookingCreate,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("short_term", "edit")),
):
    return bsvc.update_booking(db, actor=p, booking_id=booking_id, payload=payload)


@router.delete("/bookings/{booking_id}")
def delete_booking(booking_id: int, db: Session = Depends(get_db), p: Principal = Depends(require("short_term", "delete"))):
    bsvc.delete_booking(db, actor=p, booking_id=booking_id)
    return {"ok": True, "deleted": booking_id}


# ---- visits ----
@router.get("/visits", response_model=list[VisitOut])
def list_visits(
    property_id: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    p: Principal = Depends(require("tenants", "view")),
):
    return registry.list_visits(db, property_id=property_id)


@router.post("/visits", response_model=VisitOut)
def add_visit(payload: VisitCreate, db: Session = Depends(get_db), p: Principal = Depends(require("tenants", "create"))):
    return bsvc.add_visit(db, actor=p, payload=payload)


@router.put("/visits/{visit_id}", response_model=VisitOut)
def update_visit(visit_id: int, payload: VisitCreate, db: Session = Depends(get_db), p: Principal = Depends(require("tenants", "edit"))):
    return bsvc.update_visit(db, actor=p, visit_id=visit_id, payload=payload)


@router.delete("/visits/{visit_id}")
def delete_visit(visit_id: int, db: Session = Depends(get_db), p: Principal = Depends(require("tenants", "delete"))):
    bsvc.delete_visit(db, actor=p, visit_id=visit_id)
    return {"ok": True, "deleted": visit_id}


# ---- single tenant ----
@router.put("/{tenant_id}", response_model=TenantOut)
def update_tenant(tenant_id: int, payload: TenantCreate, db: Session = Depends(get_db), p: Principal = Depends(require("tenants", "edit"))):
    return svc.update_tenant(db, actor=p, tenant_id=tenant_id, payload=payload)


@router.post("/{tenant_id}/renew", response_model=TenantOut)
def renew_contract(tenant_id: int, payload: RenewContractIn, db: Session = Depends(get_db), p: Principal = Depends(require("tenants", "edit"))):
    return svc.renew_contract(db, actor=p, tenant_id=tenant_id, payload=payload)


@router.post("/{tenant_id}/negotiation", response_model=TenantOut)
def update_negotiation(
    tenant_id: int,
    payload: NegotiationUpdate,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("tenants", "edit")),
):
    return svc.update_negotiation(db, actor=p, tenant_id=tenant_id, payload=payload)
