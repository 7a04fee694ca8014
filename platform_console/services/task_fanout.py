"""Platform tasks, either for one restaurant or fanned out across a company.

A company-scope create writes one sibling task per active restaurant of the
company. Siblings share a ``parent_task_group_id`` so later edits and deletes
can target one task or the whole group.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from platform_console.core.database import atomic
from platform_console.core.errors import NotFoundError, ValidationError
from platform_console.core.timeutils import isoformat, utcnow
from platform_console.models.demo_booking import DemoBooking
from platform_console.models.task import TASK_PRIORITIES, TASK_SCOPES, TASK_STATUSES, TASK_TYPES, Task
from platform_console.models.tenant import Company, Tenant
from platform_console.models.user import User
from platform_console.schemas.audit_payloads import TaskCreated, TaskDeleted, TaskGroupCreated, TaskUpdated
from platform_console.schemas.tasks import TaskCreate
from platform_console.services.audit_trail import AuditTrail

logger = logging.getLogger(__name__)
TASKS_PREFIX = "[TASKS]"

TITLE_MAX_LENGTH = 255
UPDATABLE_FIELDS = ("title", "description", "status", "priority", "type", "assigned_to", "due_date")


def task_to_dict(task: Task) -> Dict[str, Any]:
    return {
        "id": task.id,
        "scope": task.scope,
        "tenant_id": task.tenant_id,
        "company_id": task.company_id,
        "parent_task_group_id": task.parent_task_group_id,
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "priority": task.priority,
        "type": task.type,
        "assigned_to": task.assigned_to,
        "due_date": isoformat(task.due_date),
        "completed_at": isoformat(task.completed_at),
        "created_by": task.created_by,
        "created_at": isoformat(task.created_at),
        "updated_at": isoformat(task.updated_at),
    }


def clean_title(title: Optional[str]) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError("title is required")
    if len(cleaned) > TITLE_MAX_LENGTH:
        raise ValidationError(f"title must be at most {TITLE_MAX_LENGTH} characters")
    return cleaned


def check_choice(value: Optional[str], allowed: Iterable[str], field: str) -> str:
    normalized = (value or "").strip().lower()
    options = tuple(allowed)
    if normalized not in options:
        raise ValidationError(f"{field} must be one of: {', '.join(options)}")
    return normalized


def _audit_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return isoformat(value)
    return value


class TaskFanoutEngine:
    def __init__(self, db: Session, audit: AuditTrail) -> None:
        self.db = db
        self.audit = audit

    def _get_task(self, task_id: int) -> Task:
        task = self.db.query(Task).filter(Task.id == task_id).first()
        if not task:
            raise NotFoundError("Task not found")
        return task

    def _targets(self, task: Task, apply_to_group: bool) -> List[Task]:
        if not apply_to_group:
            return [task]
        if not task.parent_task_group_id:
            raise ValidationError("Task is not part of a group; apply_to_group is not allowed")
        return (
            self.db.query(Task)
            .filter(Task.parent_task_group_id == task.parent_task_group_id)
            .order_by(Task.id.asc())
            .with_for_update()
            .all()
        )

    def require_active_assignee(self, user_id: int, tenant_id: Optional[int]) -> User:
        assignee = (
            self.db.query(User)
            .filter(User.id == user_id, User.tenant_id == tenant_id, User.is_active.is_(True))
            .first()
        )
        if not assignee:
            raise ValidationError("Assigned user must be an active user of this restaurant")
        return assignee

    def build_restaurant_task(
        self,
        tenant: Tenant,
        *,
        title: str,
        description: Optional[str] = None,
        status: str = "pending",
        priority: str = "medium",
        task_type: str = "one_time",
        assigned_to: Optional[int] = None,
        due_date: Optional[datetime] = None,
        actor_id: Optional[int] = None,
    ) -> Task:
        """Add one validated restaurant task to the session; the caller owns the transaction."""
        status = check_choice(status, TASK_STATUSES, "status")
        if assigned_to is not None:
            self.require_active_assignee(assigned_to, tenant.id)
        task = Task(
            scope="restaurant",
            tenant_id=tenant.id,
            company_id=tenant.company_id,
            title=clean_title(title),
            description=description,
            status=status,
            priority=check_choice(priority, TASK_PRIORITIES, "priority"),
            type=check_choice(task_type, TASK_TYPES, "type"),
            assigned_to=assigned_to,
            due_date=due_date,
            completed_at=utcnow() if status == "completed" else None,
            created_by=actor_id,
        )
        self.db.add(task)
        self.db.flush()
        return task

    def create(self, payload: TaskCreate, *, actor_id: Optional[int] = None) -> Dict[str, Any]:
        scope = check_choice(payload.scope, TASK_SCOPES, "scope")
        title = clean_title(payload.title)
        status = check_choice(payload.status, TASK_STATUSES, "status")
        priority = check_choice(payload.priority, TASK_PRIORITIES, "priority")
        task_type = check_choice(payload.type, TASK_TYPES, "type")

        if scope == "company":
            return self._create_group(payload, title, status, priority, task_type, actor_id)

        if payload.restaurant_id is None:
            raise ValidationError("restaurant_id is required for restaurant tasks")
        with atomic(self.db):
            tenant = self.db.query(Tenant).filter(Tenant.id == payload.restaurant_id).first()
            if not tenant:
                raise NotFoundError("Restaurant not found")
            task = self.build_restaurant_task(
                tenant,
                title=title,
                description=payload.description,
                status=status,
                priority=priority,
                task_type=task_type,
                assigned_to=payload.assigned_to,
                due_date=payload.due_date,
                actor_id=actor_id,
            )
            self.audit.append(
                tenant_id=tenant.id,
                actor_id=actor_id,
                action="task.created",
                entity_type="task",
                entity_id=task.id,
                details=TaskCreated(
                    task_id=task.id,
                    scope="restaurant",
                    title=task.title,
                    tenant_id=tenant.id,
                    type=task.type,
                ),
            )
            result = {
                "scope": "restaurant",
                "created_count": 1,
                "task_ids": [task.id],
                "task": task_to_dict(task),
            }

        logger.info("%s created task_id=%s tenant_id=%s", TASKS_PREFIX, result["task_ids"][0], payload.restaurant_id)
        return result

    def _create_group(
        self,
        payload: TaskCreate,
        title: str,
        status: str,
        priority: str,
        task_type: str,
        actor_id: Optional[int],
    ) -> Dict[str, Any]:
        if payload.company_id is None:
            raise ValidationError("company_id is required for company tasks")
        if payload.assigned_to is not None:
            raise ValidationError("assigned_to is not allowed for company-wide tasks")

        with atomic(self.db):
            company = self.db.query(Company).filter(Company.id == payload.company_id).first()
            if not company:
                raise NotFoundError("Company not found")
            tenants = (
                self.db.query(Tenant)
                .filter(Tenant.company_id == company.id, Tenant.is_active.is_(True))
                .order_by(Tenant.id.asc())
                .all()
            )
            if not tenants:
                raise NotFoundError("No active restaurants found for this company")

            group_id = str(uuid.uuid4())
            completed_at = utcnow() if status == "completed" else None
            tasks = [
                Task(
                    scope="company",
                    tenant_id=tenant.id,
                    company_id=company.id,
                    parent_task_group_id=group_id,
                    title=title,
                    description=payload.description,
                    status=status,
                    priority=priority,
                    type=task_type,
                    due_date=payload.due_date,
                    completed_at=completed_at,
                    created_by=actor_id,
                )
                for tenant in tenants
            ]
            self.db.add_all(tasks)
            self.db.flush()
            task_ids = [task.id for task in tasks]

            self.audit.append(
                tenant_id=None,
                actor_id=actor_id,
                action="task.group_created",
                entity_type="task_group",
                entity_id=group_id,
                details=TaskGroupCreated(
                    parent_task_group_id=group_id,
                    company_id=company.id,
                    title=title,
                    created_count=len(task_ids),
                    task_ids=task_ids,
                ),
            )

        logger.info(
            "%s fanned out group=%s company_id=%s created=%s",
            TASKS_PREFIX,
            group_id,
            payload.company_id,
            len(task_ids),
        )
        return {
            "scope": "company",
            "parent_task_group_id": group_id,
            "created_count": len(task_ids),
            "task_ids": task_ids,
        }

    def _validate_changes(self, fields: Dict[str, Any], targets: List[Task]) -> Dict[str, Any]:
        unknown = sorted(set(fields) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown task fields: {', '.join(unknown)}")
        if not fields:
            raise ValidationError("No fields to update")

        changes: Dict[str, Any] = {}
        if "title" in fields:
            changes["title"] = clean_title(fields["title"])
        if "description" in fields:
            changes["description"] = fields["description"]
        if "status" in fields:
            changes["status"] = check_choice(fields["status"], TASK_STATUSES, "status")
        if "priority" in fields:
            changes["priority"] = check_choice(fields["priority"], TASK_PRIORITIES, "priority")
        if "type" in fields:
            changes["type"] = check_choice(fields["type"], TASK_TYPES, "type")
        if "due_date" in fields:
            changes["due_date"] = fields["due_date"]
        if "assigned_to" in fields:
            assigned_to = fields["assigned_to"]
            if assigned_to is not None:
                for target in targets:
                    self.require_active_assignee(assigned_to, target.tenant_id)
            changes["assigned_to"] = assigned_to
        return changes

    def update(
        self,
        task_id: int,
        fields: Dict[str, Any],
        *,
        apply_to_group: bool = False,
        actor_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        with atomic(self.db):
            task = self._get_task(task_id)
            targets = self._targets(task, apply_to_group)
            changes = self._validate_changes(fields, targets)

            now = utcnow()
            for target in targets:
                if "status" in changes:
                    if changes["status"] == "completed" and target.status != "completed":
                        target.completed_at = now
                    elif changes["status"] != "completed":
                        target.completed_at = None
                for field, value in changes.items():
                    setattr(target, field, value)
            self.db.flush()

            self.audit.append(
                tenant_id=task.tenant_id,
                actor_id=actor_id,
                action="task.updated",
                entity_type="task",
                entity_id=task.id,
                details=TaskUpdated(
                    task_id=task.id,
                    parent_task_group_id=task.parent_task_group_id,
                    applied_to_group=apply_to_group,
                    updated_count=len(targets),
                    changes={field: _audit_value(value) for field, value in changes.items()},
                ),
            )
            result = {
                "task": task_to_dict(task),
                "applied_to_group": apply_to_group,
                "updated_count": len(targets),
            }

        logger.info(
            "%s updated task_id=%s fields=%s count=%s",
            TASKS_PREFIX,
            task_id,
            ",".join(sorted(changes)),
            result["updated_count"],
        )
        return result

    def delete(
        self,
        task_id: int,
        *,
        apply_to_group: bool = False,
        actor_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        with atomic(self.db):
            task = self._get_task(task_id)
            targets = self._targets(task, apply_to_group)
            task_ids = [target.id for target in targets]
            tenant_id = task.tenant_id
            group_id = task.parent_task_group_id

            self.db.query(DemoBooking).filter(DemoBooking.converted_task_id.in_(task_ids)).update(
                {DemoBooking.converted_task_id: None},
                synchronize_session=False,
            )
            for target in targets:
                self.db.delete(target)
            self.db.flush()

            self.audit.append(
                tenant_id=tenant_id,
                actor_id=actor_id,
                action="task.deleted",
                entity_type="task",
                entity_id=task_id,
                details=TaskDeleted(
                    task_id=task_id,
                    parent_task_group_id=group_id,
                    applied_to_group=apply_to_group,
                    deleted_count=len(task_ids),
                    task_ids=task_ids,
                ),
            )

        logger.info("%s deleted task_id=%s count=%s", TASKS_PREFIX, task_id, len(task_ids))
        return {"success": True, "deleted_count": len(task_ids), "applied_to_group": apply_to_group}

    def get(self, task_id: int) -> Dict[str, Any]:
        return task_to_dict(self._get_task(task_id))

    def list_groups(self, company_id: Optional[int] = None) -> List[Dict[str, Any]]:
        def status_count(status: str):
            return func.sum(case((Task.status == status, 1), else_=0))

        query = self.db.query(
            Task.parent_task_group_id,
            func.min(Task.company_id),
            func.min(Task.title),
            func.count(Task.id),
            status_count("pending"),
            status_count("in_progress"),
            status_count("completed"),
            func.min(Task.created_at),
        ).filter(Task.parent_task_group_id.isnot(None))
        if company_id is not None:
            query = query.filter(Task.company_id == company_id)
        rows = query.group_by(Task.parent_task_group_id).order_by(func.min(Task.created_at).desc()).all()

        return [
            {
                "parent_task_group_id": group_id,
                "company_id": group_company_id,
                "title": title,
                "total": int(total or 0),
                "pending": int(pending or 0),
                "in_progress": int(in_progress or 0),
                "completed": int(completed or 0),
                "created_at": isoformat(created_at),
            }
            for group_id, group_company_id, title, total, pending, in_progress, completed, created_at in rows
        ]
