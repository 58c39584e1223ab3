"""Error normalization and handlers."""

import enum
import logging
import builtins
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.requests import Request

from sentient.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id

    def payload_extra(self) -> dict:
        return {}


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class AuthenticationError(AppError):
    code = "unauthorized"
    status_code = 401


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class PermissionError(AppError, builtins.PermissionError):
    code = "forbidden"
    status_code = 403


class BackendErrorKind(str, enum.Enum):
    """What went wrong talking to a managed backend (database, auth, storage)."""

    NETWORK = "network"
    PERMISSION = "permission"
    SCHEMA = "schema"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"


_KIND_STATUS = {
    BackendErrorKind.NETWORK: 503,
    BackendErrorKind.PERMISSION: 403,
    BackendErrorKind.SCHEMA: 500,
    BackendErrorKind.NOT_FOUND: 404,
    BackendErrorKind.UNKNOWN: 502,
}

USER_MESSAGES = {
    BackendErrorKind.NETWORK: "Network connection issue - please try again",
    BackendErrorKind.PERMISSION: "Permission denied - please check your account status",
    BackendErrorKind.SCHEMA: "Database configuration issue - please contact support",
    BackendErrorKind.NOT_FOUND: "The requested record was not found",
    BackendErrorKind.UNKNOWN: "The request could not be completed - please try again",
}


class BackendError(AppError):
    """A failed round trip to the record store, identity provider or object store.

    Every such failure is scoped to one user action and can be retried by
    repeating that action.
    """

    code = "backend_error"

    def __init__(self, message: str, *, kind: BackendErrorKind = BackendErrorKind.UNKNOWN, operation: Optional[str] = None, **kwargs):
        kwargs.setdefault("status_code", _KIND_STATUS[kind])
        kwargs.setdefault("code", f"backend_{kind.value}")
        super().__init__(message, **kwargs)
        self.kind = kind
        self.operation = operation

    @property
    def user_message(self) -> str:
        return USER_MESSAGES[self.kind]

    @property
    def retryable(self) -> bool:
        return self.kind is not BackendErrorKind.SCHEMA

    def payload_extra(self) -> dict:
        return {"kind": self.kind.value, "retryable": self.retryable}


class AdminRedirect(Exception):
    """Raised when a non-admin reaches an admin route; answered with a redirect."""

    def __init__(self, location: str = "/dashboard"):
        super().__init__(location)
        self.location = location


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def error_payload(code: str, message: str, request_id: str, extra: Optional[dict] = None) -> dict:
    error = {"code": code, "message": message, "request_id": request_id}
    if extra:
        error.update(extra)
    return {
        "error": error,
        "detail": message,
    }


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    message = exc.user_message if isinstance(exc, BackendError) else exc.message
    payload = error_payload(exc.code, message, rid, exc.payload_extra())
    logger = logging.getLogger("sentient")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def admin_redirect_handler(request: Request, exc: AdminRedirect):
    rid = _extract_request_id(request)
    logging.getLogger("sentient").info(
        "admin.redirect",
        extra={"request_id": rid, "path": request.url.path, "status": 303},
    )
    response = RedirectResponse(url=exc.location, status_code=303)
    response.headers["x-request-id"] = rid
    return response


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    payload = error_payload(code, message, rid)
    logger = logging.getLogger("sentient")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("sentient")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    payload = error_payload("internal_error", "Unexpected error", rid)
    response = JSONResponse(status_code=500, content=payload)
    response.headers["x-request-id"] = rid
    return response
