"""Request-level replay detection for destructive admin actions.

A guarded call goes through three lookups before anything runs:

1. the ``admin_idempotency_keys`` row for (entity, action, key);
2. legacy audit entries for the same triple that predate that table;
3. an insert of a fresh marker row, which collides on the unique constraint
   when a concurrent request already claimed the key.

Only when all three come back empty-handed is ``execute`` invoked. A legacy
hit goes through the caller's ``replay`` builder, which must rebuild the same
response shape ``execute`` returns. The marker
must be the first write of the surrounding transaction: a collision rolls the
session back before re-reading the winner.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from platform_console.core.config import IDEMPOTENCY_KEY_MAX_LENGTH
from platform_console.core.errors import ConflictError, ValidationError
from platform_console.models.audit_log import AuditLog
from platform_console.models.idempotency_record import IdempotencyRecord
from platform_console.services.audit_trail import AuditTrail

logger = logging.getLogger(__name__)
IDEMPOTENCY_PREFIX = "[IDEMPOTENCY]"

Execute = Callable[[str], Tuple[Dict[str, Any], AuditLog]]
Replay = Callable[[AuditLog], Dict[str, Any]]


@dataclass
class IdempotentOutcome:
    result: Dict[str, Any]
    replayed: bool = False

    def to_response(self) -> Dict[str, Any]:
        return {**self.result, "idempotent_replay": self.replayed}


def normalize_idempotency_key(raw: Optional[str]) -> str:
    key = (raw or "").strip()
    if not key:
        raise ValidationError("Idempotency key is required for this action")
    if len(key) > IDEMPOTENCY_KEY_MAX_LENGTH:
        raise ValidationError(f"Idempotency key must be at most {IDEMPOTENCY_KEY_MAX_LENGTH} characters")
    return key


class IdempotencyGuard:
    def __init__(self, db: Session, audit: AuditTrail) -> None:
        self.db = db
        self.audit = audit

    def _find_record(self, entity_type: str, entity_id: str, action: str, key: str) -> Optional[IdempotencyRecord]:
        return (
            self.db.query(IdempotencyRecord)
            .filter(
                IdempotencyRecord.entity_type == entity_type,
                IdempotencyRecord.entity_id == entity_id,
                IdempotencyRecord.action == action,
                IdempotencyRecord.idempotency_key == key,
            )
            .first()
        )

    def _replay_record(self, record: IdempotencyRecord) -> IdempotentOutcome:
        if record.result_json is None:
            raise ConflictError("A request with this idempotency key is already in progress")
        logger.info(
            "%s replay action=%s entity=%s:%s",
            IDEMPOTENCY_PREFIX,
            record.action,
            record.entity_type,
            record.entity_id,
        )
        return IdempotentOutcome(result=json.loads(record.result_json), replayed=True)

    def _claim(self, entity_type: str, entity_id: str, action: str, key: str) -> Optional[IdempotencyRecord]:
        record = IdempotencyRecord(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            idempotency_key=key,
        )
        self.db.add(record)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            logger.info(
                "%s lost claim race action=%s entity=%s:%s",
                IDEMPOTENCY_PREFIX,
                action,
                entity_type,
                entity_id,
            )
            return None
        return record

    def check_or_execute(
        self,
        *,
        entity_type: str,
        entity_id: Union[int, str],
        action: str,
        idempotency_key: Optional[str],
        execute: Execute,
        replay: Replay,
    ) -> IdempotentOutcome:
        key = normalize_idempotency_key(idempotency_key)
        entity_ref = str(entity_id)

        existing = self._find_record(entity_type, entity_ref, action, key)
        if existing is not None:
            return self._replay_record(existing)

        legacy = self.audit.find_by_idempotency_key(
            entity_type=entity_type,
            entity_id=entity_ref,
            action=action,
            idempotency_key=key,
        )
        if legacy is not None:
            logger.info("%s replay from audit entry id=%s", IDEMPOTENCY_PREFIX, legacy.id)
            result = replay(legacy)
            return IdempotentOutcome(result=result, replayed=True)

        record = self._claim(entity_type, entity_ref, action, key)
        if record is None:
            winner = self._find_record(entity_type, entity_ref, action, key)
            if winner is None:
                raise ConflictError("Idempotency key collision could not be resolved; retry the request")
            return self._replay_record(winner)

        result, entry = execute(key)
        record.result_json = json.dumps(result, ensure_ascii=False, default=str)
        record.audit_log_id = entry.id
        self.db.flush()
        return IdempotentOutcome(result=result, replayed=False)
