from __future__ import annotations

import asyncio
import json
import logging
import socket
import ssl
from dataclasses import dataclass
from typing import Any, Mapping, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import urljoin
from urllib.request import Request, urlopen

from mirrorcrypt.core.crypto.exceptions import ConnectionFailure, TransportTimeout

log = logging.getLogger("mirrorcrypt.client")

# Timeout used by the reference clients for a full request/response cycle.
DEFAULT_TIMEOUT_SEC = 120.0


@dataclass(frozen=True, slots=True)
class HttpResponse:
    """HTTP response wrapper.

    Security notes:
    - Treat `body_bytes` as untrusted.

    """

    status: int
    headers: Mapping[str, str]
    body_bytes: bytes

    @property
    def ok(self) -> bool:
        return self.status == 200

    def json(self) -> Any:
        """Decode body as JSON."""

        return json.loads(self.body_bytes.decode("utf-8", errors="strict"))

    def text(self) -> str:
        return self.body_bytes.decode("utf-8", errors="replace")


class MirrorHttpClient:
    """Minimal stdlib-only HTTP client for the mirror.

    Every call ends in exactly one of three ways:
    - an HttpResponse (any status; non-200 is left to the caller to judge),
    - ConnectionFailure (the mirror could not be reached),
    - TransportTimeout (no answer within `timeout_sec`).

    Security notes:
    - Does NOT disable TLS verification.
    - Bodies are never logged, only their sizes.

    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        max_response_bytes: int = 64 * 1024 * 1024,
    ):
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout_sec = float(timeout_sec)
        self.max_response_bytes = int(max_response_bytes)

    @classmethod
    def for_host(cls, host: str, port: int, **kwargs: Any) -> "MirrorHttpClient":
        """Build a client for a plain-HTTP mirror at host:port."""

        return cls(f"http://{host}:{int(port)}", **kwargs)

    def post(self, path: str, body: bytes, content_type: str) -> HttpResponse:
        """HTTP POST `body` to `path` under the base URL."""

        return self.post_url(urljoin(self.base_url, path.lstrip("/")), body, content_type)

    def post_url(self, url: str, body: bytes, content_type: str) -> HttpResponse:
        """HTTP POST `body` to `url` exactly as given."""

        req = Request(url=url, data=body, method="POST")
        req.add_header("Content-Type", content_type)
        req.add_header("Content-Length", str(len(body)))
        log.debug("mirror_post", extra={"url": url, "body_len": len(body)})
        resp = _do_request(req, timeout_sec=self.timeout_sec, max_bytes=self.max_response_bytes)
        log.debug("mirror_response", extra={"status": resp.status, "body_len": len(resp.body_bytes)})
        return resp

    async def post_async(self, path: str, body: bytes, content_type: str) -> HttpResponse:
        """Awaitable POST; the blocking exchange runs in a worker thread."""

        return await asyncio.to_thread(self.post, path, body, content_type)


def _read_bounded(resp: Any, max_bytes: int) -> bytes:
    """Read a response body up to a maximum."""

    data = resp.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise ConnectionFailure(f"response too large: more than {max_bytes} bytes")
    return data


def _is_timeout(exc: BaseException) -> bool:
    return isinstance(exc, (socket.timeout, TimeoutError))


def _do_request(req: Request, *, timeout_sec: float, max_bytes: int) -> HttpResponse:
    """Execute a request.


    Security notes:
    - Uses default SSL context (verification ON).
    """

    try:
        ctx = ssl.create_default_context()
        with urlopen(req, timeout=timeout_sec, context=ctx) as resp:
            body = _read_bounded(resp, max_bytes)
            headers = {k: v for k, v in resp.headers.items()}
            return HttpResponse(status=int(resp.status), headers=headers, body_bytes=body)
    except HTTPError as e:
        body = _read_bounded(e, max_bytes) if hasattr(e, "read") else b""
        headers = dict(getattr(e, "headers", {}) or {})
        return HttpResponse(
            status=int(getattr(e, "code", 0) or 0), headers=headers, body_bytes=body or b""
        )
    except URLError as e:
        if _is_timeout(e.reason):
            raise TransportTimeout(f"timed out after {timeout_sec:g}s: {req.full_url}") from e
        raise ConnectionFailure(f"network error: {e.reason}") from e
    except (socket.timeout, TimeoutError) as e:
        raise TransportTimeout(f"timed out after {timeout_sec:g}s: {req.full_url}") from e
    except OSError as e:
        raise ConnectionFailure(f"network error: {e}") from e
