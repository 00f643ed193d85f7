# propdesk/routers/publicity.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import Principal, require
from ..db import get_db
from ..schemas import AdvertisementCreate, AdvertisementOut
from ..services import publicity as svc
from ..services import registry

router = APIRouter(prefix="/publicity", tags=["publicity"])


@router.get("/ads", response_model=list[AdvertisementOut])
def list_ads(db: Session = Depends(get_db), p: Principal = Depends(require("publicity", "view"))):
    return registry.list_advertisements(db)


@router.post("/ads", response_model=AdvertisementOut)
def add_ad(payload: AdvertisementCreate, db: Session = Depends(get_db), p: Principal = Depends(require("publicity", "create"))):
    return svc.add_advertisement(db, actor=p, payload=payload)


@router.put("/ads/{advertisement_id}", response_model=AdvertisementOut)
def update_ad(
    advertisement_id: int,
    payload: AdvertisementCreate,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("publicity", "edit")),
):
    return svc.update_advertisement(db, actor=p, advertisement_id=advertisement_id, payload=payload)


@router.delete("/ads/{advertisement_id}")
def delete_ad(advertisement_id: int, db: Session = Depends(get_db), p: Principal = Depends(require("publicity", "delete"))):
    svc.delete_advertisement(db, actor=p, advertisement_id=advertisement_id)
    return {"ok": True, "deleted": advertisement_id}
