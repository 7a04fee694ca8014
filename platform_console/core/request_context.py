from __future__ import annotations

from contextvars import ContextVar
from typing import Dict, Optional

_REQUEST_ID_CTX: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_TENANT_ID_CTX: ContextVar[Optional[str]] = ContextVar("tenant_id", default=None)
# Platform operator issuing the request, taken from the admin session.
_ACTOR_ID_CTX: ContextVar[Optional[str]] = ContextVar("actor_id", default=None)


def set_request_context(
    *, request_id: str | None = None, tenant_id: str | None = None, actor_id: str | None = None
) -> None:
    if request_id is not None:
        _REQUEST_ID_CTX.set(request_id)
    if tenant_id is not None:
        _TENANT_ID_CTX.set(tenant_id)
    if actor_id is not None:
        _ACTOR_ID_CTX.set(actor_id)


def current_context() -> Dict[str, Optional[str]]:
    return {
        "request_id": _REQUEST_ID_CTX.get(),
        "tenant_id": _TENANT_ID_CTX.get(),
        "actor_id": _ACTOR_ID_CTX.get(),
    }


def clear_request_context() -> None:
    for var in (_REQUEST_ID_CTX, _TENANT_ID_CTX, _ACTOR_ID_CTX):
        var.set(None)
