# propdesk/routers/properties.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Principal, require
from ..db import get_db
from ..domain.audit import activity_for
from ..models import Property
from ..schemas import (
    AuditLogOut,
    CondominiumCreate,
    CondominiumOut,
    OwnerCreate,
    OwnerOut,
    PropertyCreate,
    PropertyOut,
)
from ..services import properties as svc
from ..services import registry

router = APIRouter(prefix="/properties", tags=["properties"])


@router.get("", response_model=list[PropertyOut])
def list_properties(
    owner_id: Optional[int] = Query(default=None),
    status: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    p: Principal = Depends(require("properties", "view")),
):
    return registry.list_properties(db, owner_id=owner_id, status=status)


@router.post("", response_model=PropertyOut)
def add_property(payload: PropertyCreate, db: Session = Depends(get_db), p: Principal = Depends(require("properties", "create"))):
    return svc.add_property(db, actor=p, payload=payload)


# owners/condominiums are declared before /{property_id} so they are matched first
@router.get("/owners", response_model=list[OwnerOut])
def list_owners(db: Session = Depends(get_db), p: Principal = Depends(require("owners", "view"))):
    return registry.list_owners(db)


@router.post("/owners", response_model=OwnerOut)
def add_owner(payload: OwnerCreate, db: Session = Depends(get_db), p: Principal = Depends(require("owners", "create"))):
    return svc.add_owner(db, actor=p, payload=payload)


@router.put("/owners/{owner_id}", response_model=OwnerOut)
def update_owner(owner_id: int, payload: OwnerCreate, db: Session = Depends(get_db), p: Principal = Depends(require("owners", "edit"))):
    return svc.update_owner(db, actor=p, owner_id=owner_id, payload=payload)


@router.get("/condominiums", response_model=list[CondominiumOut])
def list_condominiums(db: Session = Depends(get_db), p: Principal = Depends(require("properties", "view"))):
    return registry.list_condominiums(db)


@router.post("/condominiums", response_model=CondominiumOut)
def add_condominium(payload: CondominiumCreate, db: Session = Depends(get_db), p: Principal = Depends(require("properties", "create"))):
    return svc.add_condominium(db, actor=p, payload=payload)


@router.put("/condominiums/{condominium_id}", response_model=CondominiumOut)
def update_condominium(
    condominium_id: int,
    payload: CondominiumCreate,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("properties", "edit")),
):
    return svc.update_condominium(db, actor=p, condominium_id=condominium_id, payload=payload)


@router.delete("/condominiums/{condominium_id}")
def delete_condominium(condominium_id: int, db: Session = Depends(get_db), p: Principal = Depends(require("properties", "delete"))):
    svc.delete_condominium(db, actor=p, condominium_id=condominium_id)
    return {"ok": True, "deleted": condominium_id}


@router.get("/{property_id}", response_model=PropertyOut)
def get_property(property_id: int, db: Session = Depends(get_db), p: Principal = Depends(require("properties", "view"))):
    return registry.must_get(db, Property, property_id)


@router.put("/{property_id}", response_model=PropertyOut)
def update_property(
    property_id: int,
    payload: PropertyCreate,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("properties", "edit")),
):
    return svc.update_property(db, actor=p, property_id=property_id, payload=payload)


@router.get("/{property_id}/activity", response_model=list[AuditLogOut])
def property_activity(
    property_id: int,
    include_details_match: bool = Query(default=False),
    db: Session = Depends(get_db),
    p: Principal = Depends(require("audit", "view")),
):
    registry.must_get(db, Property, property_id)
    return activity_for(db, "Property", property_id, include_details_match=include_details_match)
