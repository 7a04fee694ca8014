"""Domain error taxonomy shared by every admin intervention.

Services raise these; routers never translate them by hand. The handlers
registered by :func:`register_exception_handlers` turn them into the same
``{"detail": ...}`` body FastAPI uses for ``HTTPException`` plus a stable
``code``.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class DomainError(Exception):
    code: str = "domain_error"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message or self.__class__.__name__)
        if code is not None:
            self.code = code
        self.message = message or self.__class__.__name__
        self.details = details


class ValidationError(DomainError):
    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(DomainError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(DomainError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT


class AuthorizationError(DomainError):
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "", *, authenticated: bool = True, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        if not authenticated:
            self.code = "unauthorized"
            self.status_code = status.HTTP_401_UNAUTHORIZED


class InternalError(DomainError):
    code = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def _error_body(exc: DomainError) -> Dict[str, Any]:
    body: Dict[str, Any] = {"detail": exc.message, "code": exc.code}
    if exc.details:
        body["details"] = exc.details
    return body


async def _domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info(
            "%s %s rejected (%s): %s",
            request.method,
            request.url.path,
            exc.code,
            exc.message,
        )
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc))


async def _storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("storage failure on %s %s", request.method, request.url.path, exc_info=exc)
    error = InternalError("Storage failure; retry with the same idempotency key")
    return JSONResponse(status_code=error.status_code, content=_error_body(error))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, _domain_error_handler)
    app.add_exception_handler(SQLAlchemyError, _storage_error_handler)
