from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from platform_console.deps import get_task_engine, require_platform_admin
from platform_console.models.admin_user import AdminUser
from platform_console.schemas.tasks import TaskCreate, TaskUpdate
from platform_console.services.task_fanout import TaskFanoutEngine

router = APIRouter(prefix="/api/admin/tasks", tags=["admin-tasks"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_task(
    payload: TaskCreate,
    user: AdminUser = Depends(require_platform_admin),
    engine: TaskFanoutEngine = Depends(get_task_engine),
):
    return engine.create(payload, actor_id=user.id)


@router.get("/groups")
def list_task_groups(
    company_id: Optional[int] = Query(None, ge=1),
    _user: AdminUser = Depends(require_platform_admin),
    engine: TaskFanoutEngine = Depends(get_task_engine),
):
    return {"groups": engine.list_groups(company_id=company_id)}


@router.get("/{task_id}")
def get_task(
    task_id: int,
    _user: AdminUser = Depends(require_platform_admin),
    engine: TaskFanoutEngine = Depends(get_task_engine),
):
    return {"task": engine.get(task_id)}


@router.patch("/{task_id}")
def update_task(
    task_id: int,
    payload: TaskUpdate,
    apply_to_group_query: Optional[bool] = Query(None, alias="applyToGroup"),
    user: AdminUser = Depends(require_platform_admin),
    engine: TaskFanoutEngine = Depends(get_task_engine),
):
    fields = payload.model_dump(exclude_unset=True)
    apply_to_group = fields.pop("apply_to_group", None)
    if apply_to_group is None:
        apply_to_group = bool(apply_to_group_query)
    return engine.update(task_id, fields, apply_to_group=apply_to_group, actor_id=user.id)


@router.delete("/{task_id}")
def delete_task(
    task_id: int,
    apply_to_group: bool = Query(False, alias="applyToGroup"),
    user: AdminUser = Depends(require_platform_admin),
    engine: TaskFanoutEngine = Depends(get_task_engine),
):
    return engine.delete(task_id, apply_to_group=apply_to_group, actor_id=user.id)
