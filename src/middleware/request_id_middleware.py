"""
Request ID Middleware

Assigns every API request an ID that is echoed in the X-Request-ID response
header and attached to each log line written while the request is handled,
including lines logged from worker threads running billing services.

Usage:
    from src.middleware.request_id_middleware import RequestIDMiddleware

    app.add_middleware(RequestIDMiddleware)
"""

import logging
import re
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from src.config.logging_config import request_id_var

logger = logging.getLogger(__name__)

_MAX_REQUEST_ID_LENGTH = 128

# Client-supplied IDs must survive this allowlist to reach the logs
_VALID_REQUEST_ID_RE = re.compile(r"\A[a-zA-Z0-9._-]{1,128}\Z")


def _new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def resolve_request_id(raw_request_id: str | None) -> str:
    """Accept a well-formed client request ID, otherwise generate one"""
    if not raw_request_id or not _VALID_REQUEST_ID_RE.match(raw_request_id):
        return _new_request_id()
    candidate = raw_request_id
    if not candidate.startswith("req_"):
        candidate = f"req_{candidate}"
    # The prefix must not push an accepted ID past the header limit
    if len(candidate) > _MAX_REQUEST_ID_LENGTH:
        return _new_request_id()
    return candidate


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = resolve_request_id(
            request.headers.get("X-Request-ID") or request.headers.get("X-Correlation-ID")
        )
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request ID: {request_id} | Error during request processing: {e}",
                exc_info=True,
            )
            raise
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = request_id
        return response


def get_request_id(request: Request) -> str:
    """Request ID assigned by the middleware, or a fresh one outside it"""
    return getattr(request.state, "request_id", None) or _new_request_id()
