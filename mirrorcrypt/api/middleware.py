from __future__ import annotations

import logging
import time
from typing import Callable, Optional
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from mirrorcrypt.core.protocol.framing import Framing

log = logging.getLogger("mirrorcrypt.api")

_FRAMING_BY_PATH = {f.path: f.value for f in Framing}


class MirrorAccessMiddleware(BaseHTTPMiddleware):
    """Request correlation and structured access logging for the mirror.

    Header:
      - X-Request-ID (echoed if short enough, generated otherwise)

    Each access record names the request framing (`encrypted-body`,
    `signed-envelope`, or None for other routes) and the response size.

    Security notes:
    - Never logs bodies: encrypted payloads and signatures stay out of logs.
    - Client-supplied ids longer than `max_len` are replaced to limit log injection.

    """

    def __init__(self, app, *, header_name: str = "X-Request-ID", max_len: int = 128):
        super().__init__(app)
        self._header_name = header_name
        self._max_len = max_len

    async def dispatch(self, request: Request, call_next: Callable):
        rid = request.headers.get(self._header_name)
        if not rid or len(rid) > self._max_len:
            rid = uuid4().hex
        request.state.request_id = rid

        start = time.monotonic()
        response: Optional[Response] = None
        try:
            response = await call_next(request)
            response.headers[self._header_name] = rid
            return response
        finally:
            log.info(
                "mirror_access",
                extra={
                    "request_id": rid,
                    "method": request.method,
                    "path": request.url.path,
                    "framing": _FRAMING_BY_PATH.get(request.url.path),
                    "content_length": request.headers.get("content-length"),
                    "status_code": getattr(response, "status_code", None),
                    "response_length": response.headers.get("content-length") if response else None,
                    "duration_ms": int((time.monotonic() - start) * 1000),
                },
            )
