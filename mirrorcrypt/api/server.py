from __future__ import annotations

import json
import logging
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Response
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request

from mirrorcrypt.api.handlers import ForwardingHandler, HandlerError, RequestHandler
from mirrorcrypt.api.middleware import MirrorAccessMiddleware
from mirrorcrypt.api.models import HealthOut, SignedRequestIn
from mirrorcrypt.config import ServiceConfig, log_level
from mirrorcrypt.core.crypto import codec
from mirrorcrypt.core.crypto.exceptions import (
    DecryptionFailure,
    MalformedCiphertext,
    UnsupportedScheme,
)
from mirrorcrypt.core.crypto.keys import AsymmetricKey, load_private_key_pem, load_public_key_pem
from mirrorcrypt.core.crypto.padding import PaddingScheme
from mirrorcrypt.core.crypto.signer import verify_raw
from mirrorcrypt.core.protocol.framing import (
    CONTENT_TYPE_BINARY,
    ENCRYPTED_REQUEST_PATH,
    SIGNED_REQUEST_PATH,
    ResponseDecoding,
)

log = logging.getLogger("mirrorcrypt.api")


def create_app(
    config: Optional[ServiceConfig] = None,
    *,
    mirror_key: Optional[AsymmetricKey] = None,
    client_key: Optional[AsymmetricKey] = None,
    handler: Optional[RequestHandler] = None,
) -> FastAPI:
    """Create the mirror FastAPI app.

    Keys not passed explicitly are loaded once from the configured PEM paths.

    Security notes:
    - Both keys are size-checked (self-test) before the app is returned.
    - Without a client public key, /signed-request is disabled (404).
    - Responses are always encrypted; plaintext replies are never sent.

    """

    cfg = config or ServiceConfig.from_env()

    if mirror_key is None:
        if not cfg.mirror_private_key_path:
            raise ValueError("a mirror private key is required (MIRRORCRYPT_MIRROR_PRIVATE_KEY)")
        mirror_key = load_private_key_pem(cfg.mirror_private_key_path)
    if client_key is None and cfg.client_public_key_path:
        client_key = load_public_key_pem(cfg.client_public_key_path)

    if not mirror_key.has_private:
        raise ValueError("the mirror key must hold private material")
    if (
        cfg.response_decoding is ResponseDecoding.PUBLIC_RECOVER
        and cfg.scheme is not PaddingScheme.PKCS1V15
    ):
        raise UnsupportedScheme(
            f"{cfg.response_decoding.value} responses require {PaddingScheme.PKCS1V15.value}"
        )
    if cfg.response_decoding is ResponseDecoding.PRIVATE_DECRYPT and client_key is None:
        raise ValueError("a client public key is required to encrypt responses")

    # Fail fast on wrong key sizes, before serving anything.
    codec.self_test(mirror_key, cfg.scheme, cfg.key_size)
    if client_key is not None:
        codec.self_test(client_key, cfg.scheme, cfg.key_size)

    serve = handler or ForwardingHandler(cfg.wallet_service_uri, timeout_sec=cfg.timeout_sec)

    log.setLevel(log_level())

    app = FastAPI(title="mirrorcrypt mirror", version="0.1")
    app.state.cfg = cfg
    app.add_middleware(MirrorAccessMiddleware)

    def _encrypt_response(payload: bytes) -> bytes:
        if cfg.response_decoding is ResponseDecoding.PUBLIC_RECOVER:
            return codec.private_encrypt(payload, mirror_key, cfg.scheme)
        return codec.encrypt(payload, client_key, cfg.scheme)

    def _serve_text(request_text: str) -> Response:
        """Parse, authorize and serve one JSON-RPC request; encrypt the reply."""

        try:
            obj: Any = json.loads(request_text)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Error parsing JSON request: {exc}")
        if not isinstance(obj, dict):
            raise HTTPException(
                status_code=400, detail="Error parsing JSON request: expected an object"
            )
        if cfg.allowed_methods and obj.get("method") not in cfg.allowed_methods:
            raise HTTPException(status_code=403, detail="Unsupported request")

        try:
            result = serve(obj)
        except HandlerError as exc:
            log.warning("mirror_handler_failed", extra={"error": str(exc)})
            raise HTTPException(status_code=502, detail=str(exc))

        payload = json.dumps(result, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        return Response(content=_encrypt_response(payload), media_type=CONTENT_TYPE_BINARY)

    def _serve_encrypted(body: bytes) -> Response:
        try:
            plaintext = codec.decrypt(body, mirror_key, cfg.scheme)
        except (MalformedCiphertext, DecryptionFailure) as exc:
            log.warning("mirror_decrypt_failed", extra={"error": str(exc)})
            raise HTTPException(status_code=400, detail="Decryption failed")
        try:
            text = plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise HTTPException(status_code=400, detail="Error parsing JSON request: not UTF-8")
        return _serve_text(text)

    @app.get("/health", response_model=HealthOut)
    def health() -> HealthOut:
        return HealthOut(
            ok=True,
            scheme=cfg.scheme.value,
            key_size=cfg.key_size,
            response_decoding=cfg.response_decoding.value,
            signed_requests=client_key is not None,
            allowed_methods=sorted(cfg.allowed_methods),
        )

    @app.post(ENCRYPTED_REQUEST_PATH)
    async def encrypted_request(request: Request) -> Response:
        body = await request.body()
        if len(body) > cfg.max_body_bytes:
            raise HTTPException(status_code=413, detail="request_too_large")
        return await run_in_threadpool(_serve_encrypted, body)

    def _serve_signed(envelope: SignedRequestIn) -> Response:
        if client_key is None:
            raise HTTPException(status_code=404, detail="signed_requests_disabled")
        if not verify_raw(envelope.request.encode("utf-8"), envelope.signature_bytes(), client_key):
            raise HTTPException(status_code=403, detail="Signature verification failed")
        return _serve_text(envelope.request)

    @app.post(SIGNED_REQUEST_PATH)
    async def signed_request(request: Request) -> Response:
        body = await request.body()
        if len(body) > cfg.max_body_bytes:
            raise HTTPException(status_code=413, detail="request_too_large")
        try:
            envelope = SignedRequestIn.model_validate_json(body)
        except ValidationError as exc:
            raise RequestValidationError(exc.errors())
        return await run_in_threadpool(_serve_signed, envelope)

    return app
