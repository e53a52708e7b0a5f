from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Protocol

from mirrorcrypt.client.http import DEFAULT_TIMEOUT_SEC, MirrorHttpClient
from mirrorcrypt.core.crypto.exceptions import MirrorCryptError, TransportError

log = logging.getLogger("mirrorcrypt.api")


class HandlerError(MirrorCryptError):
    """Raised when a decoded request cannot be served by the backend."""


class RequestHandler(Protocol):
    """Serves one decoded JSON-RPC request and returns a JSON-serializable result."""

    def __call__(self, request: Dict[str, Any]) -> Any: ...


class EchoHandler:
    """Returns the request wrapped in a JSON-RPC result. Useful for local testing."""

    def __call__(self, request: Dict[str, Any]) -> Any:
        return {"jsonrpc": "2.0", "id": request.get("id"), "result": {"echo": request}}


class ForwardingHandler:
    """Forwards the JSON-RPC request text to a wallet service and relays its JSON reply.

    Security notes:
    - The wallet service is trusted configuration; its reply is still parsed strictly.
    - Non-200 replies surface as HandlerError (502), never as a success.

    """

    def __init__(
        self,
        wallet_service_uri: str,
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        client: Optional[MirrorHttpClient] = None,
    ):
        self.wallet_service_uri = wallet_service_uri
        self._client = client or MirrorHttpClient(wallet_service_uri, timeout_sec=timeout_sec)

    def __call__(self, request: Dict[str, Any]) -> Any:
        body = json.dumps(request, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        try:
            resp = self._client.post_url(self.wallet_service_uri, body, "application/json")
        except TransportError as exc:
            raise HandlerError(f"wallet service unreachable: {exc}") from exc
        if not resp.ok:
            raise HandlerError(f"wallet service returned status {resp.status}")
        try:
            return resp.json()
        except ValueError as exc:
            raise HandlerError("wallet service returned invalid JSON") from exc
