"""
Request ID Middleware

Every request gets a correlation id: the caller's ``X-Request-ID`` header if
present, a fresh UUID otherwise. The id is bound to the logging contextvar for
the lifetime of the request (so every log line carries it) and echoed back on
the response.
"""

import uuid
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from driveindex.core.config.constants import HEADER_REQUEST_ID
from driveindex.core.logging.logger import clear_request_id, set_request_id


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Bind and echo the request correlation id."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(HEADER_REQUEST_ID) or str(uuid.uuid4())
        set_request_id(request_id)
        request.state.request_id = request_id

        try:
            response = await call_next(request)
            response.headers[HEADER_REQUEST_ID] = request_id
            return response
        finally:
            clear_request_id()
