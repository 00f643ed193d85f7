# propdesk/routers/partners.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Principal, require
from ..db import get_db
from ..models import Partner
from ..schemas import (
    PartnerCreate,
    PartnerOut,
    ServiceCategoryCreate,
    ServiceCategoryOut,
    ServiceRateCreate,
    ServiceRateOut,
)
from ..services import partners as svc
from ..services import registry

router = APIRouter(prefix="/partners", tags=["partners"])


@router.get("", response_model=list[PartnerOut])
def list_partners(
    include_inactive: bool = Query(default=True),
    db: Session = Depends(get_db),
    p: Principal = Depends(require("partners", "view")),
):
    return registry.list_partners(db, include_inactive=include_inactive)


@router.post("", response_model=PartnerOut)
def add_partner(payload: PartnerCreate, db: Session = Depends(get_db), p: Principal = Depends(require("partners", "create"))):
    return svc.add_partner(db, actor=p, payload=payload)


# ---- generic service rates ----
@router.get("/rates", response_model=list[ServiceRateOut])
def list_generic_rates(db: Session = Depends(get_db), p: Principal = Depends(require("partners", "view"))):
    return registry.list_generic_service_rates(db)


@router.post("/rates", response_model=ServiceRateOut)
def add_generic_rate(payload: ServiceRateCreate, db: Session = Depends(get_db), p: Principal = Depends(require("partners", "create"))):
    return svc.add_generic_service_rate(db, actor=p, payload=payload)


@router.put("/rates/{rate_id}", response_model=ServiceRateOut)
def update_generic_rate(
    rate_id: int,
    payload: ServiceRateCreate,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("partners", "edit")),
):
    return svc.update_generic_service_rate(db, actor=p, rate_id=rate_id, payload=payload)


@router.delete("/rates/{rate_id}")
def delete_generic_rate(rate_id: int, db: Session = Depends(get_db), p: Principal = Depends(require("partners", "delete"))):
    svc.delete_generic_service_rate(db, actor=p, rate_id=rate_id)
    return {"ok": True, "deleted": rate_id}


# ---- service categories ----
@router.get("/categories", response_model=list[ServiceCategoryOut])
def list_categories(db: Session = Depends(get_db), p: Principal = Depends(require("partners", "view"))):
    return registry.list_service_categories(db)


@router.post("/categories", response_model=ServiceCategoryOut)
def add_category(payload: ServiceCategoryCreate, db: Session = Depends(get_db), p: Principal = Depends(require("partners", "create"))):
    return svc.add_service_category(db, actor=p, payload=payload)


@router.put("/categories/{category_id}", response_model=ServiceCategoryOut)
def update_category(
    category_id: int,
    payload: ServiceCategoryCreate,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("partners", "edit")),
):
    return svc.update_service_category(db, actor=p, category_id=category_id, payload=payload)


@router.delete("/categories/{category_id}")
def delete_category(category_id: int, db: Session = Depends(get_db), p: Principal = Depends(require("partners", "delete"))):
    svc.delete_service_category(db, actor=p, category_id=category_id)
    return {"ok": True, "deleted": category_id}


# ---- single partner ----
@router.get("/{partner_id}", response_model=PartnerOut)
def get_partner(partner_id: int, db: Session = Depends(get_db), p: Principal = Depends(require("partners", "view"))):
    return registry.must_get(db, Partner, partner_id)


@router.put("/{partner_id}", response_model=PartnerOut)
def update_partner(
    partner_id: int,
    payload: PartnerCreate,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("partners", "edit")),
):
    return svc.update_partner(db, actor=p, partner_id=partner_id, payload=payload)


@router.delete("/{partner_id}", response_model=PartnerOut)
def deactivate_partner(partner_id: int, db: Session = Depends(get_db), p: Principal = Depends(require("partners", "delete"))):
    return svc.deactivate_partner(db, actor=p, partner_id=partner_id)


@router.get("/{partner_id}/rates", response_model=list[ServiceRateOut])
def list_partner_rates(partner_id: int, db: Session = Depends(get_db), p: Principal = Depends(require("partners", "view"))):
    return list(registry.must_get(db, Partner, partner_id).service_rates)


@router.post("/{partner_id}/rates", response_model=ServiceRateOut)
def add_partner_rate(
    partner_id: int,
    payload: ServiceRateCreate,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("partners", "edit")),
):
    return svc.add_partner_service_rate(db, actor=p, partner_id=partner_id, payload=payload)


@router.put("/{partner_id}/rates/{rate_id}", response_model=ServiceRateOut)
def update_partner_rate(
    partner_id: int,
    rate_id: int,
    payload: ServiceRateCreate,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("partners", "edit")),
):
    return svc.update_partner_service_rate(db, actor=p, partner_id=partner_id, rate_id=rate_id, payload=payload)


@router.delete("/{partner_id}/rates/{rate_id}")
def delete_partner_rate(
    partner_id: int,
    rate_id: int,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("partners", "edit")),
):
    svc.delete_partner_service_rate(db, actor=p, partner_id=partner_id, rate_id=rate_id)
    return {"ok": True, "deleted": rate_id}
