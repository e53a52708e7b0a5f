from __future__ import annotations

import json

from fastapi.testclient import TestClient

from mirrorcrypt.api.handlers import EchoHandler
from mirrorcrypt.api.server import create_app
from mirrorcrypt.cli.main import build_parser, cmd_serve, main
from mirrorcrypt.client.http import HttpResponse, MirrorHttpClient
from mirrorcrypt.config import ServiceConfig
from mirrorcrypt.core.crypto.padding import PaddingScheme
from mirrorcrypt.core.protocol.framing import ResponseDecoding

REQUEST = '{"method": "get_block", "params": {"block_index": "0"}, "jsonrpc": "2.0", "id": 1}'


def _route_to(monkeypatch, app) -> None:
    client = TestClient(app)

    def post(self, path, body, content_type):
        r = client.post(path, content=body, headers={"Content-Type": content_type})
        return HttpResponse(status=r.status_code, headers=dict(r.headers), body_bytes=r.content)

    monkeypatch.setattr(MirrorHttpClient, "post", post)


def test_parser_wiring() -> None:
    args = build_parser().parse_args(["serve"])
    assert args.func is cmd_serve
    assert (args.host, args.port) == ("127.0.0.1", 9091)

    args = build_parser().parse_args(
        ["encrypted-request", "mirror", "9091", "k.pem", "{}", "--scheme", "pkcs1v15"]
    )
    assert args.port == 9091
    assert args.key_file == "k.pem"
    assert args.scheme == "pkcs1v15"


def test_self_test(pem_files, capsys) -> None:
    assert main(["self-test", pem_files["client_public"]]) == 0
    assert "512-byte blocks" in capsys.readouterr().out

    assert main(["self-test", pem_files["small_private"]]) == 2
    assert "not 4096-bit" in capsys.readouterr().err


def test_missing_key_file(tmp_path, capsys) -> None:
    assert main(["self-test", str(tmp_path / "nope.pem")]) == 2
    assert "failed loading key" in capsys.readouterr().err


def test_encrypted_request(monkeypatch, pem_files, mirror_key, client_key, capsys) -> None:
    monkeypatch.delenv("MIRRORCRYPT_SCHEME", raising=False)
    _route_to(
        monkeypatch,
        create_app(ServiceConfig(), mirror_key=mirror_key, client_key=client_key, handler=EchoHandler()),
    )

    rc = main(
        [
            "encrypted-request",
            "127.0.0.1",
            "9091",
            pem_files["mirror_public"],
            REQUEST,
            "--client-key",
            pem_files["client_private"],
        ]
    )
    assert rc == 0
    out = json.loads(capsys.readouterr().out)
    assert out["result"]["echo"] == json.loads(REQUEST)


def test_encrypted_request_public_recover(monkeypatch, pem_files, mirror_key, capsys) -> None:
    _route_to(
        monkeypatch,
        create_app(
            ServiceConfig(
                scheme=PaddingScheme.PKCS1V15,
                response_decoding=ResponseDecoding.PUBLIC_RECOVER,
            ),
            mirror_key=mirror_key,
            handler=EchoHandler(),
        ),
    )

    rc = main(
        [
            "encrypted-request",
            "127.0.0.1",
            "9091",
            pem_files["mirror_public"],
            REQUEST,
            "--scheme",
            "pkcs1v15",
        ]
    )
    assert rc == 0
    assert json.loads(capsys.readouterr().out)["id"] == 1


def test_public_recover_needs_pkcs1(monkeypatch, pem_files, capsys) -> None:
    monkeypatch.delenv("MIRRORCRYPT_SCHEME", raising=False)
    rc = main(["encrypted-request", "h", "1", pem_files["mirror_public"], REQUEST])
    assert rc == 2
    assert "public-recover" in capsys.readouterr().err


def test_signed_request_http_error(monkeypatch, pem_files, mirror_key, client_key, capsys) -> None:
    monkeypatch.delenv("MIRRORCRYPT_SCHEME", raising=False)
    _route_to(
        monkeypatch,
        create_app(
            ServiceConfig(allowed_methods=frozenset({"get_balance"})),
            mirror_key=mirror_key,
            client_key=client_key.public_only(),
            handler=EchoHandler(),
        ),
    )

    rc = main(["signed-request", "127.0.0.1", "9091", pem_files["client_private"], REQUEST])
    assert rc == 2
    assert "Http error, status: 403" in capsys.readouterr().err

    rc = main(
        [
            "signed-request",
            "127.0.0.1",
            "9091",
            pem_files["client_private"],
            '{"method": "get_balance", "id": 2}',
        ]
    )
    assert rc == 0
    assert json.loads(capsys.readouterr().out)["id"] == 2
