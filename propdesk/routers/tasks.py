# propdesk/routers/tasks.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Principal, require
from ..db import get_db
from ..models import Task
from ..schemas import (
    EvidenceIn,
    NotificationOut,
    NotifySupplierIn,
    TaskCreate,
    TaskImageIn,
    TaskOut,
    TaskStatusUpdate,
    TaskUpdate,
)
from ..services import registry
from ..services import tasks as svc

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=list[TaskOut])
def list_tasks(
    property_id: Optional[int] = Query(default=None),
    status: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    p: Principal = Depends(require("tasks", "view")),
):
    # portal partners only see their own work
    if p.kind == "partner":
        return registry.list_tasks(db, property_id=property_id, status=status, assignee_kind="partner", assignee_id=p.id)
    return registry.list_tasks(db, property_id=property_id, status=status)


@router.post("", response_model=TaskOut)
def add_task(payload: TaskCreate, db: Session = Depends(get_db), p: Principal = Depends(require("tasks", "create"))):
    return svc.add_task(db, actor=p, payload=payload)


@router.get("/{task_id}", response_model=TaskOut)
def get_task(task_id: int, db: Session = Depends(get_db), p: Principal = Depends(require("tasks", "view"))):
    return registry.must_get(db, Task, task_id)


@router.put("/{task_id}", response_model=TaskOut)
def update_task(task_id: int, payload: TaskUpdate, db: Session = Depends(get_db), p: Principal = Depends(require("tasks", "edit"))):
    return svc.update_task(db, actor=p, task_id=task_id, payload=payload)


@router.post("/{task_id}/status", response_model=TaskOut)
def update_task_status(
    task_id: int,
    payload: TaskStatusUpdate,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("tasks", "edit")),
):
    return svc.update_task_status(db, actor=p, task_id=task_id, status=payload.status, override=payload.override)


@router.delete("/{task_id}")
def delete_task(task_id: int, db: Session = Depends(get_db), p: Principal = Depends(require("tasks", "delete"))):
    svc.delete_task(db, actor=p, task_id=task_id)
    return {"ok": True, "deleted": task_id}


@router.post("/{task_id}/images", response_model=TaskOut)
def add_task_image(task_id: int, payload: TaskImageIn, db: Session = Depends(get_db), p: Principal = Depends(require("tasks", "edit"))):
    return svc.add_task_image(db, actor=p, task_id=task_id, ref=payload)


@router.post("/{task_id}/evidence", response_model=TaskOut)
def add_task_evidence(task_id: int, payload: EvidenceIn, db: Session = Depends(get_db), p: Principal = Depends(require("tasks", "edit"))):
    return svc.add_task_evidence(db, actor=p, task_id=task_id, payload=payload)


@router.post("/{task_id}/notify", response_model=NotificationOut)
def notify_supplier(
    task_id: int,
    payload: Optional[NotifySupplierIn] = None,
    db: Session = Depends(get_db),
    p: Principal = Depends(require("tasks", "edit")),
):
    return svc.notify_supplier(db, actor=p, task_id=task_id, message=payload.message if payload else None)
