"""Request framings for the mirror transport.

Two mutually exclusive framings, selected per deployment:

- ENCRYPTED_BODY: the JSON request is chunk-encrypted with the mirror's public
  key and POSTed to ``/encrypted-request`` as ``application/octet-stream``.
- SIGNED_ENVELOPE: the JSON request is signed (raw, no digest) with the
  client's private key and POSTed to ``/signed-request`` as
  ``{"request": "<json text>", "signature": [<byte>, ...]}``.

For both, an HTTP 200 body is an encrypted message decoded with the response
key under the same padding scheme; any other status is a failure carrying the
raw body as diagnostic text.

Key roles per call site:
- request_key: mirror public key (ENCRYPTED_BODY) or client private key
  (SIGNED_ENVELOPE).
- response_key: client private key (PRIVATE_DECRYPT) or mirror public key
  (PUBLIC_RECOVER, PKCS#1 v1.5 deployments only).
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, Union

from mirrorcrypt.client.http import HttpResponse
from mirrorcrypt.core.crypto import codec
from mirrorcrypt.core.crypto.exceptions import (
    DecryptionFailure,
    HttpStatusError,
    InvalidRequest,
    SigningFailure,
    UnsupportedScheme,
)
from mirrorcrypt.core.crypto.keys import AsymmetricKey
from mirrorcrypt.core.crypto.padding import PaddingScheme
from mirrorcrypt.core.crypto.signer import sign_raw

from .lifecycle import RequestCycle, RequestState

log = logging.getLogger("mirrorcrypt.protocol")

ENCRYPTED_REQUEST_PATH = "/encrypted-request"
SIGNED_REQUEST_PATH = "/signed-request"

CONTENT_TYPE_BINARY = "application/octet-stream"
CONTENT_TYPE_JSON = "application/json"

JsonRequest = Union[str, bytes, Mapping[str, Any], List[Any]]


class Framing(str, Enum):
    """Wire framing for requests."""

    ENCRYPTED_BODY = "encrypted-body"
    SIGNED_ENVELOPE = "signed-envelope"

    @property
    def path(self) -> str:
        if self is Framing.ENCRYPTED_BODY:
            return ENCRYPTED_REQUEST_PATH
        return SIGNED_REQUEST_PATH

    @property
    def content_type(self) -> str:
        if self is Framing.ENCRYPTED_BODY:
            return CONTENT_TYPE_BINARY
        return CONTENT_TYPE_JSON


class ResponseDecoding(str, Enum):
    """How a 200 response body is turned back into plaintext."""

    PRIVATE_DECRYPT = "private-decrypt"
    PUBLIC_RECOVER = "public-recover"


class Transport(Protocol):
    """The HTTP collaborator: one POST, one response."""

    def post(self, path: str, body: bytes, content_type: str) -> HttpResponse: ...


@dataclass(frozen=True, slots=True)
class EncodedRequest:
    """A request ready to hand to the transport."""

    path: str
    content_type: str
    body: bytes


@dataclass(frozen=True, slots=True)
class SignedRequest:
    """Plaintext request text plus its raw signature."""

    request: str
    signature: bytes

    def to_json(self) -> Dict[str, Any]:
        return {"request": self.request, "signature": list(self.signature)}

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_json(), separators=(",", ":"), ensure_ascii=False).encode(
            "utf-8"
        )

    @classmethod
    def from_json(cls, obj: Mapping[str, Any]) -> "SignedRequest":
        """Parse an envelope, validating field types.

        Raises
        - InvalidRequest: if the envelope is malformed.
        """

        request = obj.get("request")
        signature = obj.get("signature")
        if not isinstance(request, str):
            raise InvalidRequest("envelope field 'request' must be a string")
        if not isinstance(signature, list) or not all(
            isinstance(b, int) and not isinstance(b, bool) and 0 <= b <= 255 for b in signature
        ):
            raise InvalidRequest("envelope field 'signature' must be a list of bytes")
        return cls(request=request, signature=bytes(signature))


def request_text(json_request: JsonRequest) -> str:
    """Return the JSON text of a request.

    Text is passed through as-is; mappings and lists are serialized compactly.
    """

    if isinstance(json_request, str):
        return json_request
    if isinstance(json_request, (bytes, bytearray)):
        try:
            return bytes(json_request).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidRequest("request bytes are not valid UTF-8") from exc
    try:
        return json.dumps(json_request, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise InvalidRequest(f"request is not JSON-serializable: {exc}") from exc


def build_signed_request(json_request: JsonRequest, key: AsymmetricKey) -> SignedRequest:
    """Sign the request text (raw, no digest) with the client's private key."""

    text = request_text(json_request)
    return SignedRequest(request=text, signature=sign_raw(text.encode("utf-8"), key))


class RequestProtocol:
    """
    Client side of one mirror deployment.

    Responsibilities
    - Validate key sizes (self-test) before the first network call
    - Encode requests under the configured framing
    - Drive one request/response cycle per call, with no retries
    - Decode 200 responses; surface everything else as an error

    Keys are immutable and may be shared with other protocol instances and
    threads; no state besides `last_cycle` is kept between calls.
    """

    def __init__(
        self,
        framing: Framing,
        scheme: PaddingScheme,
        transport: Transport,
        *,
        request_key: AsymmetricKey,
        response_key: AsymmetricKey,
        expected_key_size: int = codec.DEFAULT_KEY_SIZE,
        response_decoding: ResponseDecoding = ResponseDecoding.PRIVATE_DECRYPT,
        max_workers: Optional[int] = None,
    ):
        self.framing = Framing(framing)
        self.scheme = PaddingScheme(scheme)
        self.response_decoding = ResponseDecoding(response_decoding)
        if (
            self.response_decoding is ResponseDecoding.PUBLIC_RECOVER
            and self.scheme is not PaddingScheme.PKCS1V15
        ):
            raise UnsupportedScheme(
                f"{self.response_decoding.value} responses require {PaddingScheme.PKCS1V15.value}"
            )
        self.transport = transport
        self.request_key = request_key
        self.response_key = response_key
        self.expected_key_size = int(expected_key_size)
        self.max_workers = max_workers
        self.last_cycle: Optional[RequestCycle] = None
        self._validated = False

    def validate(self) -> None:
        """Check both keys before any network activity.

        Raises
        - UnexpectedKeySize: if either key is not `expected_key_size` bytes.
        - SigningFailure: if SIGNED_ENVELOPE is configured without a private request key.
        - DecryptionFailure: if PRIVATE_DECRYPT is configured without a private response key.
        """

        codec.self_test(self.request_key, self.scheme, self.expected_key_size)
        codec.self_test(self.response_key, self.scheme, self.expected_key_size)
        if self.framing is Framing.SIGNED_ENVELOPE and not self.request_key.has_private:
            raise SigningFailure("signed-envelope framing requires the client private key")
        if (
            self.response_decoding is ResponseDecoding.PRIVATE_DECRYPT
            and not self.response_key.has_private
        ):
            raise DecryptionFailure("response decryption requires the client private key")
        self._validated = True

    def encode_request(self, json_request: JsonRequest) -> EncodedRequest:
        """Frame a request for the wire."""

        if self.framing is Framing.ENCRYPTED_BODY:
            plaintext = request_text(json_request).encode("utf-8")
            body = codec.encrypt(
                plaintext, self.request_key, self.scheme, max_workers=self.max_workers
            )
        else:
            body = build_signed_request(json_request, self.request_key).to_bytes()
        return EncodedRequest(
            path=self.framing.path, content_type=self.framing.content_type, body=body
        )

    def decode_response(self, status: int, body: bytes) -> bytes:
        """Turn a mirror response into plaintext bytes.

        Raises
        - HttpStatusError: for any non-200 status (body kept for diagnostics).
        - MalformedCiphertext / DecryptionFailure: if the body does not decode.
        """

        if status != 200:
            raise HttpStatusError(status, body)
        if self.response_decoding is ResponseDecoding.PUBLIC_RECOVER:
            return codec.public_decrypt(body, self.response_key, self.scheme)
        return codec.decrypt(body, self.response_key, self.scheme, max_workers=self.max_workers)

    def call(self, json_request: JsonRequest) -> bytes:
        """Run one request/response cycle and return the decrypted response."""

        cycle, encoded = self._begin(json_request)
        try:
            resp = self.transport.post(encoded.path, encoded.body, encoded.content_type)
        except Exception as exc:
            self._fail(cycle, exc)
            raise
        return self._finish(cycle, resp)

    async def call_async(self, json_request: JsonRequest) -> bytes:
        """Awaitable variant of :meth:`call`.

        The network exchange is the only suspension point.
        """

        cycle, encoded = self._begin(json_request)
        try:
            post_async = getattr(self.transport, "post_async", None)
            if post_async is not None:
                resp = await post_async(encoded.path, encoded.body, encoded.content_type)
            else:
                resp = await asyncio.to_thread(
                    self.transport.post, encoded.path, encoded.body, encoded.content_type
                )
        except Exception as exc:
            self._fail(cycle, exc)
            raise
        return self._finish(cycle, resp)

    def call_json(self, json_request: JsonRequest) -> Any:
        """Like :meth:`call`, parsing the decrypted response as JSON."""

        return json.loads(self.call(json_request).decode("utf-8"))

    def _begin(self, json_request: JsonRequest) -> Tuple[RequestCycle, EncodedRequest]:
        cycle = RequestCycle()
        self.last_cycle = cycle
        try:
            if not self._validated:
                self.validate()
            cycle.advance(RequestState.ENCODING)
            encoded = self.encode_request(json_request)
            # The transport sends and awaits in a single call.
            cycle.advance(RequestState.SENT)
            cycle.advance(RequestState.AWAITING_RESPONSE)
        except Exception as exc:
            self._fail(cycle, exc)
            raise
        log.debug(
            "mirror_request_encoded",
            extra={
                "framing": self.framing.value,
                "scheme": self.scheme.value,
                "path": encoded.path,
                "body_len": len(encoded.body),
            },
        )
        return cycle, encoded

    def _finish(self, cycle: RequestCycle, resp: HttpResponse) -> bytes:
        try:
            plaintext = self.decode_response(resp.status, resp.body_bytes)
        except Exception as exc:
            self._fail(cycle, exc)
            raise
        cycle.advance(RequestState.DECODED)
        log.info(
            "mirror_request",
            extra={
                "framing": self.framing.value,
                "status_code": resp.status,
                "response_len": len(resp.body_bytes),
                "state": cycle.state.value,
            },
        )
        return plaintext

    def _fail(self, cycle: RequestCycle, exc: Exception) -> None:
        cycle.fail(exc)
        log.warning(
            "mirror_request_failed",
            extra={
                "framing": self.framing.value,
                "error_type": type(exc).__name__,
                "state": cycle.state.value,
            },
        )
