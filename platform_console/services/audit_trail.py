from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PayloadValidationError
from sqlalchemy import exists, func
from sqlalchemy.orm import Session

from platform_console.core.config import AUDIT_QUERY_MAX_LIMIT
from platform_console.core.errors import ValidationError
from platform_console.core.timeutils import isoformat
from platform_console.models.audit_log import AuditLog
from platform_console.models.idempotency_record import IdempotencyRecord
from platform_console.schemas.audit_payloads import AUDIT_PAYLOADS, AuditPayload

logger = logging.getLogger(__name__)
AUDIT_PREFIX = "[AUDIT]"

Details = Union[AuditPayload, Mapping[str, Any], None]


@dataclass
class AuditQuery:
    tenant_id: Optional[int] = None
    actor_id: Optional[int] = None
    action: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    limit: int = 100
    offset: int = 0


@dataclass
class AuditPage:
    entries: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    limit: int = 100
    offset: int = 0

    @property
    def has_more(self) -> bool:
        return self.total > self.offset + len(self.entries)


def parse_details(raw: Optional[str]) -> Dict[str, Any]:
    """Decode a stored payload without ever failing the read path."""
    if raw is None or raw == "":
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return {"raw": raw}
    if not isinstance(parsed, dict):
        return {"raw": raw}
    return parsed


def read_payload(action: str, raw: Optional[str]) -> Optional[AuditPayload]:
    """Typed view of an entry's details, or ``None`` for legacy/untyped rows."""
    model = AUDIT_PAYLOADS.get(action)
    if model is None:
        return None
    data = parse_details(raw)
    data.pop("v", None)
    try:
        return model.model_validate(data)
    except PayloadValidationError:
        return None


def entry_to_dict(entry: AuditLog) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "tenant_id": entry.tenant_id,
        "actor_id": entry.actor_id,
        "action": entry.action,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "details": parse_details(entry.details_json),
        "created_at": isoformat(entry.created_at),
    }


class AuditTrail:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _serialize(self, action: str, details: Details) -> Optional[str]:
        if details is None:
            return None
        model = AUDIT_PAYLOADS.get(action)
        if isinstance(details, AuditPayload):
            if model is not None and not isinstance(details, model):
                raise ValidationError(f"Payload {type(details).__name__} does not match action {action}")
            payload = details
        elif model is not None:
            try:
                payload = model.model_validate(dict(details))
            except PayloadValidationError as exc:
                raise ValidationError(f"Invalid audit payload for {action}: {exc.errors()}") from exc
        else:
            return json.dumps(dict(details), ensure_ascii=False, default=str)
        return json.dumps({"v": payload.version, **payload.model_dump(mode="json")}, ensure_ascii=False)

    def append(
        self,
        *,
        tenant_id: Optional[int],
        actor_id: Optional[int],
        action: str,
        entity_type: Optional[str] = None,
        entity_id: Union[int, str, None] = None,
        details: Details = None,
    ) -> AuditLog:
        entry = AuditLog(
            tenant_id=tenant_id,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            details_json=self._serialize(action, details),
        )
        self.db.add(entry)
        self.db.flush()
        logger.info(
            "%s appended action=%s entity=%s:%s actor=%s",
            AUDIT_PREFIX,
            action,
            entity_type,
            entry.entity_id,
            actor_id,
        )
        return entry

    def find_by_idempotency_key(
        self,
        *,
        entity_type: str,
        entity_id: Union[int, str],
        action: str,
        idempotency_key: str,
    ) -> Optional[AuditLog]:
        """Find a legacy entry written before its key had a marker row.

        Entries already tracked by ``admin_idempotency_keys`` are skipped, and
        the key's JSON form narrows candidates in SQL before the parsed
        comparison decides.
        """
        query = self.db.query(AuditLog).filter(
            AuditLog.entity_type == entity_type,
            AuditLog.entity_id == str(entity_id),
            AuditLog.action == action,
            ~exists().where(IdempotencyRecord.audit_log_id == AuditLog.id),
        )
        encoded_key = json.dumps(idempotency_key)
        if encoded_key == f'"{idempotency_key}"':
            query = query.filter(AuditLog.details_json.contains(encoded_key, autoescape=True))

        for entry in query.order_by(AuditLog.id.desc()).all():
            if parse_details(entry.details_json).get("idempotency_key") == idempotency_key:
                return entry
        return None

    def query(self, filters: AuditQuery) -> AuditPage:
        limit = max(1, min(int(filters.limit), AUDIT_QUERY_MAX_LIMIT))
        offset = max(0, int(filters.offset))

        query = self.db.query(AuditLog)
        if filters.tenant_id is not None:
            query = query.filter(AuditLog.tenant_id == filters.tenant_id)
        if filters.actor_id is not None:
            query = query.filter(AuditLog.actor_id == filters.actor_id)
        if filters.action:
            query = query.filter(AuditLog.action == filters.action)
        if filters.entity_type:
            query = query.filter(AuditLog.entity_type == filters.entity_type)
        if filters.entity_id is not None:
            query = query.filter(AuditLog.entity_id == str(filters.entity_id))
        if filters.created_from:
            query = query.filter(AuditLog.created_at >= filters.created_from)
        if filters.created_to:
            query = query.filter(AuditLog.created_at <= filters.created_to)

        total = query.count()
        rows = (
            query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return AuditPage(entries=[entry_to_dict(row) for row in rows], total=total, limit=limit, offset=offset)

    def distinct_actions(self) -> List[Dict[str, Any]]:
        rows = (
            self.db.query(AuditLog.action, func.count(AuditLog.id))
            .group_by(AuditLog.action)
            .order_by(AuditLog.action.asc())
            .all()
        )
        return [{"action": action, "count": int(count)} for action, count in rows]
