"""
Shared plumbing for calls to the hosted Supabase REST APIs (auth, storage).

Transport failures and non-2xx responses become BackendError with a kind,
so callers never inspect raw messages.
"""
import logging
from contextlib import contextmanager
from typing import Optional

import httpx

from sentient.core.errors import BackendError, BackendErrorKind

logger = logging.getLogger("sentient.backend_http")

DEFAULT_TIMEOUT = 10.0


def kind_for_status(status_code: int) -> BackendErrorKind:
    if status_code in (401, 403):
        return BackendErrorKind.PERMISSION
    if status_code == 404:
        return BackendErrorKind.NOT_FOUND
    if status_code in (408, 429) or status_code >= 500:
        return BackendErrorKind.NETWORK
    return BackendErrorKind.UNKNOWN


def error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return response.text[:200]


def ensure_ok(response: httpx.Response, operation: str, *, kind: Optional[BackendErrorKind] = None) -> httpx.Response:
    """Raise BackendError for a non-2xx response."""
    if response.is_success:
        return response
    resolved = kind or kind_for_status(response.status_code)
    detail = error_text(response)
    logger.warning(
        f"[supabase] {operation} returned {response.status_code}: {detail}",
        extra={"error_kind": resolved.value},
    )
    raise BackendError(f"{operation} failed: {detail}", kind=resolved, operation=operation)


@contextmanager
def backend_call(operation: str):
    """Translate httpx transport failures into BackendError(kind=network)."""
    try:
        yield
    except httpx.TransportError as exc:
        logger.warning(
            f"[supabase] {operation} transport error: {exc.__class__.__name__}",
            extra={"error_kind": BackendErrorKind.NETWORK.value},
        )
        raise BackendError(f"{operation} failed: {exc}", kind=BackendErrorKind.NETWORK, operation=operation) from exc
