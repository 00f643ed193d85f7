# propdesk/routers/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ..auth import Principal, all_users, create_access_token, get_principal, login, require, set_current_user
from ..config import settings
from ..db import get_db
from ..schemas import LoginIn, LoginOut, PrincipalOut, UserCreate, UserOut
from ..services import registry
from ..services import users as svc

router = APIRouter(prefix="/auth", tags=["auth"])


def _principal_out(p: Principal) -> PrincipalOut:
    return PrincipalOut(
        ref=p.ref,
        kind=p.kind,
        id=p.id,
        name=p.name,
        email=p.email,
        role=p.role,
        status=p.status,
        mirror_admin=p.mirror_admin,
    )


def _issue(p: Principal, response: Response) -> LoginOut:
    token = create_access_token(p)
    response.set_cookie(
        key=settings.jwt_cookie_name,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.app_env in ("prod", "production"),
        max_age=settings.jwt_exp_minutes * 60,
    )
    return LoginOut(access_token=token, principal=_principal_out(p))


@router.post("/login", response_model=LoginOut)
def do_login(payload: LoginIn, response: Response, db: Session = Depends(get_db)):
    return _issue(login(db, payload.email), response)


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(settings.jwt_cookie_name)
    return {"ok": True}


@router.get("/me", response_model=PrincipalOut)
def me(p: Principal = Depends(get_principal)):
    return _principal_out(p)


@router.get("/principals", response_model=list[PrincipalOut])
def list_principals(db: Session = Depends(get_db), p: Principal = Depends(require("users", "view"))):
    return [_principal_out(x) for x in all_users(db)]


@router.post("/impersonate/{ref}", response_model=LoginOut)
def impersonate(ref: str, response: Response, db: Session = Depends(get_db), p: Principal = Depends(require("users", "impersonate"))):
    return _issue(set_current_user(db, ref), response)


# ---- staff users ----
@router.get("/users", response_model=list[UserOut])
def list_users(db: Session = Depends(get_db), p: Principal = Depends(require("users", "view"))):
    return registry.list_users(db)


@router.post("/users", response_model=UserOut)
def add_user(payload: UserCreate, db: Session = Depends(get_db), p: Principal = Depends(require("users", "create"))):
    return svc.add_user(db, actor=p, payload=payload)


@router.put("/users/{user_id}", response_model=UserOut)
def update_user(user_id: int, payload: UserCreate, db: Session = Depends(get_db), p: Principal = Depends(require("users", "edit"))):
    return svc.update_user(db, actor=p, user_id=user_id, payload=payload)


@router.delete("/users/{user_id}")
def delete_user(user_id: int, db: Session = Depends(get_db), p: Principal = Depends(require("users", "delete"))):
    svc.delete_user(db, actor=p, user_id=user_id)
    return {"ok": True, "deleted": user_id}


@router.post("/users/{user_id}/approve", response_model=UserOut)
def approve_user(user_id: int, db: Session = Depends(get_db), p: Principal = Depends(require("users", "edit"))):
    return svc.approve_user(db, actor=p, user_id=user_id)


@router.post("/users/{user_id}/block", response_model=UserOut)
def block_user(user_id: int, db: Session = Depends(get_db), p: Principal = Depends(require("users", "edit"))):
    return svc.block_user(db, actor=p, user_id=user_id)
