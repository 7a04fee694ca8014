from __future__ import annotations

import time
from typing import Any, Dict, Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from platform_console.core.config import ADMIN_SESSION_MAX_AGE_SECONDS, ADMIN_SESSION_SECRET

ADMIN_SESSION_COOKIE = "admin_session"
ADMIN_SESSION_SALT = "admin-session"


def _serializer(secret: Optional[str] = None) -> URLSafeTimedSerializer:
    secret = secret or ADMIN_SESSION_SECRET
    if not secret:
        raise RuntimeError("ADMIN_SESSION_SECRET is not configured.")
    return URLSafeTimedSerializer(secret, salt=ADMIN_SESSION_SALT)


def create_admin_session(payload: Dict[str, Any], *, secret: Optional[str] = None) -> str:
    if "exp" not in payload:
        payload = {
            **payload,
            "exp": int(time.time()) + ADMIN_SESSION_MAX_AGE_SECONDS,
        }
    return _serializer(secret).dumps(payload)


def decode_admin_session(token: str, *, secret: Optional[str] = None) -> Optional[Dict[str, Any]]:
    try:
        payload = _serializer(secret).loads(token, max_age=ADMIN_SESSION_MAX_AGE_SECONDS)
    except (BadSignature, SignatureExpired, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    exp = payload.get("exp")
    if exp is not None:
        try:
            if int(exp) < int(time.time()):
                return None
        except (TypeError, ValueError):
            return None
    return payload
