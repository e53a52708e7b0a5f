from __future__ import annotations

import asyncio
import json
from typing import List, Optional, Tuple

import pytest

from mirrorcrypt.client.http import HttpResponse
from mirrorcrypt.core.crypto import codec
from mirrorcrypt.core.crypto.exceptions import (
    ConnectionFailure,
    DecryptionFailure,
    HttpStatusError,
    InvalidRequest,
    SigningFailure,
    UnexpectedKeySize,
    UnsupportedScheme,
)
from mirrorcrypt.core.crypto.padding import PaddingScheme
from mirrorcrypt.core.crypto.signer import verify_raw
from mirrorcrypt.core.protocol.framing import (
    Framing,
    RequestProtocol,
    ResponseDecoding,
    SignedRequest,
    build_signed_request,
    request_text,
)
from mirrorcrypt.core.protocol.lifecycle import RequestState

REQUEST = {"method": "get_block", "params": {"block_index": "0"}, "jsonrpc": "2.0", "id": 1}


class FakeTransport:
    """Records posts and answers with a fixed response (or raises)."""

    def __init__(self, response: Optional[HttpResponse] = None, error: Optional[Exception] = None):
        self.response = response
        self.error = error
        self.posts: List[Tuple[str, bytes, str]] = []

    def post(self, path: str, body: bytes, content_type: str) -> HttpResponse:
        self.posts.append((path, body, content_type))
        if self.error is not None:
            raise self.error
        return self.response


def _ok(body: bytes) -> HttpResponse:
    return HttpResponse(status=200, headers={}, body_bytes=body)


def test_request_text() -> None:
    assert request_text('{"id": 1}') == '{"id": 1}'
    assert request_text(b'{"id":1}') == '{"id":1}'
    assert request_text({"id": 1, "method": "x"}) == '{"id":1,"method":"x"}'
    with pytest.raises(InvalidRequest):
        request_text(b"\xff\xfe")
    with pytest.raises(InvalidRequest):
        request_text({"id": object()})


def test_signed_request_json_shape(client_key) -> None:
    signed = build_signed_request(REQUEST, client_key)
    obj = json.loads(signed.to_bytes())

    assert obj["request"] == json.dumps(REQUEST, separators=(",", ":"))
    assert len(obj["signature"]) == 512
    assert all(isinstance(b, int) and 0 <= b <= 255 for b in obj["signature"])
    assert verify_raw(obj["request"].encode("utf-8"), bytes(obj["signature"]), client_key)

    assert SignedRequest.from_json(obj) == signed


@pytest.mark.parametrize(
    "obj",
    [
        {"signature": [1, 2]},
        {"request": 1, "signature": [1]},
        {"request": "{}", "signature": [256]},
        {"request": "{}", "signature": "abc"},
        {"request": "{}", "signature": [True]},
    ],
)
def test_signed_request_from_json_rejects_malformed(obj) -> None:
    with pytest.raises(InvalidRequest):
        SignedRequest.from_json(obj)


def test_encrypted_body_call(client_key, mirror_key) -> None:
    scheme = PaddingScheme.OAEP_SHA256
    reply = b'{"jsonrpc":"2.0","id":1,"result":{"block":0}}'
    transport = FakeTransport(_ok(codec.encrypt(reply, client_key.public_only(), scheme)))

    protocol = RequestProtocol(
        Framing.ENCRYPTED_BODY,
        scheme,
        transport,
        request_key=mirror_key.public_only(),
        response_key=client_key,
    )
    assert protocol.call(REQUEST) == reply

    (path, body, content_type), = transport.posts
    assert path == "/encrypted-request"
    assert content_type == "application/octet-stream"
    assert len(body) % 512 == 0
    assert json.loads(codec.decrypt(body, mirror_key, scheme)) == REQUEST
    assert protocol.last_cycle.states() == [
        RequestState.IDLE,
        RequestState.ENCODING,
        RequestState.SENT,
        RequestState.AWAITING_RESPONSE,
        RequestState.DECODED,
    ]


def test_signed_envelope_call(client_key, mirror_key) -> None:
    scheme = PaddingScheme.PKCS1V15
    reply = b'{"result":"ok"}'
    transport = FakeTransport(_ok(codec.encrypt(reply, client_key.public_only(), scheme)))

    protocol = RequestProtocol(
        Framing.SIGNED_ENVELOPE,
        scheme,
        transport,
        request_key=client_key,
        response_key=client_key,
    )
    assert protocol.call_json('{"GetBlock": {"block": 0}}') == {"result": "ok"}

    (path, body, content_type), = transport.posts
    assert path == "/signed-request"
    assert content_type == "application/json"
    envelope = json.loads(body)
    assert envelope["request"] == '{"GetBlock": {"block": 0}}'
    assert verify_raw(envelope["request"].encode(), bytes(envelope["signature"]), client_key)


def test_public_recover_call(mirror_key) -> None:
    scheme = PaddingScheme.PKCS1V15
    reply = b'{"result":"recovered"}'
    transport = FakeTransport(_ok(codec.private_encrypt(reply, mirror_key, scheme)))
    public = mirror_key.public_only()

    protocol = RequestProtocol(
        Framing.ENCRYPTED_BODY,
        scheme,
        transport,
        request_key=public,
        response_key=public,
        response_decoding=ResponseDecoding.PUBLIC_RECOVER,
    )
    assert protocol.call(REQUEST) == reply


def test_public_recover_requires_pkcs1(mirror_key) -> None:
    with pytest.raises(UnsupportedScheme):
        RequestProtocol(
            Framing.ENCRYPTED_BODY,
            PaddingScheme.OAEP_SHA256,
            FakeTransport(),
            request_key=mirror_key,
            response_key=mirror_key,
            response_decoding=ResponseDecoding.PUBLIC_RECOVER,
        )


def test_non_200_is_http_status_error(client_key, mirror_key) -> None:
    transport = FakeTransport(
        HttpResponse(status=403, headers={}, body_bytes=b'{"detail":"Unsupported request"}')
    )
    protocol = RequestProtocol(
        Framing.ENCRYPTED_BODY,
        PaddingScheme.OAEP_SHA256,
        transport,
        request_key=mirror_key,
        response_key=client_key,
    )

    with pytest.raises(HttpStatusError) as ei:
        protocol.call(REQUEST)
    assert ei.value.status == 403
    assert ei.value.body == b'{"detail":"Unsupported request"}'
    assert "Http error, status: 403" in str(ei.value)
    assert protocol.last_cycle.state is RequestState.FAILED
    assert protocol.last_cycle.error is ei.value


def test_transport_failure_fails_cycle(client_key, mirror_key) -> None:
    transport = FakeTransport(error=ConnectionFailure("network error: refused"))
    protocol = RequestProtocol(
        Framing.ENCRYPTED_BODY,
        PaddingScheme.OAEP_SHA256,
        transport,
        request_key=mirror_key,
        response_key=client_key,
    )

    with pytest.raises(ConnectionFailure):
        protocol.call(REQUEST)
    assert protocol.last_cycle.states()[-2:] == [
        RequestState.AWAITING_RESPONSE,
        RequestState.FAILED,
    ]


def test_garbage_response_is_decryption_failure(client_key, mirror_key) -> None:
    protocol = RequestProtocol(
        Framing.ENCRYPTED_BODY,
        PaddingScheme.OAEP_SHA256,
        FakeTransport(_ok(b"\x01" * 512)),
        request_key=mirror_key,
        response_key=client_key,
    )
    with pytest.raises(DecryptionFailure):
        protocol.call(REQUEST)


def test_wrong_key_size_fails_before_network(client_key, small_key) -> None:
    transport = FakeTransport(_ok(b""))
    protocol = RequestProtocol(
        Framing.ENCRYPTED_BODY,
        PaddingScheme.OAEP_SHA256,
        transport,
        request_key=small_key,
        response_key=client_key,
    )

    with pytest.raises(UnexpectedKeySize):
        protocol.call(REQUEST)
    assert transport.posts == []
    assert protocol.last_cycle.states() == [RequestState.IDLE, RequestState.FAILED]


def test_validate_requires_private_keys_where_used(client_key) -> None:
    public = client_key.public_only()
    signed = RequestProtocol(
        Framing.SIGNED_ENVELOPE,
        PaddingScheme.OAEP_SHA256,
        FakeTransport(),
        request_key=public,
        response_key=client_key,
    )
    with pytest.raises(SigningFailure):
        signed.validate()

    encrypted = RequestProtocol(
        Framing.ENCRYPTED_BODY,
        PaddingScheme.OAEP_SHA256,
        FakeTransport(),
        request_key=public,
        response_key=public,
    )
    with pytest.raises(DecryptionFailure):
        encrypted.validate()


def test_call_async_uses_worker_thread(client_key, mirror_key) -> None:
    scheme = PaddingScheme.OAEP_SHA256
    reply = b'{"result":"async"}'
    transport = FakeTransport(_ok(codec.encrypt(reply, client_key, scheme)))
    protocol = RequestProtocol(
        Framing.ENCRYPTED_BODY,
        scheme,
        transport,
        request_key=mirror_key,
        response_key=client_key,
    )

    assert asyncio.run(protocol.call_async(REQUEST)) == reply
    assert len(transport.posts) == 1
    assert protocol.last_cycle.state is RequestState.DECODED


def test_call_async_prefers_post_async(client_key, mirror_key) -> None:
    scheme = PaddingScheme.OAEP_SHA256
    reply = b'{"result":"native"}'
    calls = []

    class AsyncTransport(FakeTransport):
        async def post_async(self, path, body, content_type):
            calls.append(path)
            return _ok(codec.encrypt(reply, client_key, scheme))

    protocol = RequestProtocol(
        Framing.SIGNED_ENVELOPE,
        scheme,
        AsyncTransport(),
        request_key=client_key,
        response_key=client_key,
    )
    assert asyncio.run(protocol.call_async(REQUEST)) == reply
    assert calls == ["/signed-request"]
