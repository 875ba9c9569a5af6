"""HTTP middleware for request correlation and per-request throttle state.

The middleware:
- Accepts incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for log correlation
- Gives every request a fresh ``ThrottleContext`` on ``request.state``
- Injects request_id and total duration into response headers
- Clears context after request completion to prevent context leaks

Usage:
    app.middleware("http")(request_context_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from bruteguard.core.config import settings
from bruteguard.core.logging import clear_request_id, set_request_id
from bruteguard.throttle.context import ThrottleContext


async def request_context_middleware(request: Request, call_next) -> Response:
    """Attach correlation id and throttle context to the request.

    If the client provides the configured request id header (default
    X-Request-ID), that value is reused; otherwise a UUID is generated. The
    id is echoed back on the response together with X-Request-Duration-ms.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response with correlation headers added.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    request.state.throttle = ThrottleContext(request=request)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
