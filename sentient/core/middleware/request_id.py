import logging
import time
from typing import Optional
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from sentient.core.errors import error_payload
from sentient.core.logging import request_id_ctx_var, latency_bucket_ms

logger = logging.getLogger("sentient")


def declared_length(request) -> Optional[int]:
    value = request.headers.get("content-length")
    if value is None or not value.isdigit():
        return None
    return int(value)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Attach a request_id to each request and log completion.

    With max_body_bytes set, requests declaring a larger Content-Length
    (oversized proof uploads) are answered with 413 before the body is read.
    """

    def __init__(self, app, header_name: str = "x-request-id", max_body_bytes: Optional[int] = None):
        super().__init__(app)
        self.header_name = header_name
        self.max_body_bytes = max_body_bytes

    def _too_large(self, rid: str, length: int) -> JSONResponse:
        message = f"Request body of {length} bytes exceeds the {self.max_body_bytes} byte limit."
        logger.warning(
            "request.too_large",
            extra={"request_id": rid, "error_code": "request_too_large", "status": 413},
        )
        return JSONResponse(status_code=413, content=error_payload("request_too_large", message, rid))

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)

        start = time.perf_counter()
        try:
            length = declared_length(request)
            if self.max_body_bytes is not None and length is not None and length > self.max_body_bytes:
                response = self._too_large(rid, length)
            else:
                response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)
        duration_ms = (time.perf_counter() - start) * 1000

        response.headers[self.header_name] = rid
        logger.info(
            "request.complete",
            extra={
                "request_id": rid,
                "path": request.url.path,
                "method": request.method,
                "status": response.status_code,
                "latency_bucket": latency_bucket_ms(duration_ms),
            },
        )
        return response
