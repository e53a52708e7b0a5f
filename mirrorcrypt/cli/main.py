from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from mirrorcrypt.client.http import MirrorHttpClient
from mirrorcrypt.config import ClientConfig
from mirrorcrypt.core.crypto import codec
from mirrorcrypt.core.crypto.exceptions import MirrorCryptError
from mirrorcrypt.core.crypto.keys import AsymmetricKey, load_key_pem, load_private_key_pem
from mirrorcrypt.core.crypto.padding import PaddingScheme
from mirrorcrypt.core.protocol.framing import Framing, RequestProtocol, ResponseDecoding

log = logging.getLogger("mirrorcrypt.cli")

USAGE_EXAMPLE = (
    "example: mirrorcrypt encrypted-request 127.0.0.1 9091 mirror-client.pem "
    '\'{"method": "get_block", "params": {"block_index": "0"}, "jsonrpc": "2.0", "id": 1}\''
)


def _client_config(args: argparse.Namespace) -> ClientConfig:
    """Environment defaults, overridden by explicit flags."""

    env = ClientConfig.from_env()
    return ClientConfig(
        scheme=PaddingScheme.parse(args.scheme) if args.scheme else env.scheme,
        key_size=args.key_size if args.key_size is not None else env.key_size,
        timeout_sec=args.timeout if args.timeout is not None else env.timeout_sec,
        response_decoding=env.response_decoding,
    )


def _run(protocol: RequestProtocol, request: str) -> int:
    try:
        plaintext = protocol.call(request)
    except MirrorCryptError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    print(plaintext.decode("utf-8", errors="replace"))
    return 0


def _load(path: str, loader) -> Optional[AsymmetricKey]:
    try:
        return loader(path)
    except (OSError, ValueError, TypeError) as e:
        print(f"error: failed loading key {path}: {e}", file=sys.stderr)
        return None


def cmd_encrypted_request(args: argparse.Namespace) -> int:
    """Encrypt a request with the mirror public key and POST /encrypted-request.

    With --client-key, the response is decrypted with the client private key.
    Without it, the response is recovered with the mirror public key, which
    only works for pkcs1v15 deployments.
    """

    try:
        cfg = _client_config(args)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    mirror_key = _load(args.key_file, load_key_pem)
    if mirror_key is None:
        return 2
    if args.client_key:
        client_key = _load(args.client_key, load_private_key_pem)
        if client_key is None:
            return 2
        response_key, decoding = client_key, ResponseDecoding.PRIVATE_DECRYPT
    else:
        response_key, decoding = mirror_key, ResponseDecoding.PUBLIC_RECOVER

    transport = MirrorHttpClient.for_host(args.host, args.port, timeout_sec=cfg.timeout_sec)
    try:
        protocol = RequestProtocol(
            Framing.ENCRYPTED_BODY,
            cfg.scheme,
            transport,
            request_key=mirror_key.public_only(),
            response_key=response_key,
            expected_key_size=cfg.key_size,
            response_decoding=decoding,
        )
    except MirrorCryptError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    return _run(protocol, args.request)


def cmd_signed_request(args: argparse.Namespace) -> int:
    """Sign a request with the client private key and POST /signed-request."""

    try:
        cfg = _client_config(args)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    client_key = _load(args.key_file, load_private_key_pem)
    if client_key is None:
        return 2

    transport = MirrorHttpClient.for_host(args.host, args.port, timeout_sec=cfg.timeout_sec)
    protocol = RequestProtocol(
        Framing.SIGNED_ENVELOPE,
        cfg.scheme,
        transport,
        request_key=client_key,
        response_key=client_key,
        expected_key_size=cfg.key_size,
    )
    return _run(protocol, args.request)


def cmd_self_test(args: argparse.Namespace) -> int:
    """Check that a key produces ciphertext blocks of the expected size."""

    try:
        cfg = _client_config(args)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    key = _load(args.key_file, load_key_pem)
    if key is None:
        return 2
    try:
        codec.self_test(key, cfg.scheme, cfg.key_size)
    except MirrorCryptError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    kind = "private" if key.has_private else "public"
    print(f"ok: {kind} key, {key.key_size}-byte blocks ({cfg.scheme.value})")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the mirror service.

    Security notes:
    - Keys and policy come from MIRRORCRYPT_* environment variables.
    - Bind to 127.0.0.1 by default (safer than 0.0.0.0).

    """

    try:
        import uvicorn
    except Exception as e:
        print(f"error: uvicorn is required to serve the mirror: {e}", file=sys.stderr)
        return 2

    from mirrorcrypt.api.server import create_app

    try:
        app = create_app()
    except (MirrorCryptError, OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    uvicorn.run(app, host=args.host, port=int(args.port), log_level=args.log_level.lower())
    return 0


def _add_client_options(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--scheme", default=None, help="Padding scheme: pkcs1v15 or oaep-sha256 (default: env)"
    )
    p.add_argument(
        "--key-size", type=int, default=None, help="Expected key size in bytes (default: 512)"
    )
    p.add_argument("--timeout", type=float, default=None, help="Request timeout in seconds")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="mirrorcrypt",
        description="Encrypted / signed JSON-RPC requests over an RSA mirror transport",
        epilog=USAGE_EXAMPLE,
    )
    p.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING)")
    sub = p.add_subparsers(dest="cmd", required=True)

    er = sub.add_parser("encrypted-request", help="Send an encrypted request")
    er.add_argument("host", help="Mirror host")
    er.add_argument("port", type=int, help="Mirror port")
    er.add_argument("key_file", help="Mirror public key (PEM)")
    er.add_argument("request", help="JSON request text")
    er.add_argument(
        "--client-key",
        default=None,
        help="Client private key (PEM) for decrypting the response",
    )
    _add_client_options(er)
    er.set_defaults(func=cmd_encrypted_request)

    sr = sub.add_parser("signed-request", help="Send a signed request")
    sr.add_argument("host", help="Mirror host")
    sr.add_argument("port", type=int, help="Mirror port")
    sr.add_argument("key_file", help="Client private key (PEM)")
    sr.add_argument("request", help="JSON request text")
    _add_client_options(sr)
    sr.set_defaults(func=cmd_signed_request)

    st = sub.add_parser("self-test", help="Check a key's ciphertext block size")
    st.add_argument("key_file", help="Private or public key (PEM)")
    _add_client_options(st)
    st.set_defaults(func=cmd_self_test)

    sv = sub.add_parser("serve", help="Run the mirror FastAPI service")
    sv.add_argument("--host", default="127.0.0.1", help="Bind host (default: 127.0.0.1)")
    sv.add_argument("--port", type=int, default=9091, help="Bind port (default: 9091)")
    sv.set_defaults(func=cmd_serve)

    return p


def main(argv: List[str] | None = None) -> int:
    """CLI entry."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper())
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
