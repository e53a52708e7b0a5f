"""Environment-driven configuration.

Security notes:
- Env vars are treated as trusted configuration.
- Only key *paths* live in configuration; key material is loaded once at startup.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from mirrorcrypt.client.http import DEFAULT_TIMEOUT_SEC
from mirrorcrypt.core.crypto.codec import DEFAULT_KEY_SIZE
from mirrorcrypt.core.crypto.padding import PaddingScheme
from mirrorcrypt.core.protocol.framing import ResponseDecoding

ENV_PREFIX = "MIRRORCRYPT_"


def _env(name: str, default: str = "") -> str:
    return os.environ.get(ENV_PREFIX + name, default).strip()


def _env_int(name: str, default: int) -> int:
    """Read an integer environment variable, falling back to `default`."""

    raw = _env(name)
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        return int(default)


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if not raw:
        return float(default)
    try:
        return float(raw)
    except ValueError:
        return float(default)


def _env_set(name: str) -> FrozenSet[str]:
    """Read a comma-separated list into a set (empty entries dropped)."""

    return frozenset(p.strip() for p in _env(name).split(",") if p.strip())


def _env_scheme(default: PaddingScheme) -> PaddingScheme:
    raw = _env("SCHEME")
    return PaddingScheme.parse(raw) if raw else default


def _env_decoding(default: ResponseDecoding) -> ResponseDecoding:
    raw = _env("RESPONSE_DECODING")
    return ResponseDecoding(raw.lower()) if raw else default


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Client-side settings shared by every request of a deployment."""

    scheme: PaddingScheme = PaddingScheme.OAEP_SHA256
    key_size: int = DEFAULT_KEY_SIZE
    timeout_sec: float = DEFAULT_TIMEOUT_SEC
    response_decoding: ResponseDecoding = ResponseDecoding.PRIVATE_DECRYPT

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """
        - MIRRORCRYPT_SCHEME (default oaep-sha256)
        - MIRRORCRYPT_KEY_SIZE (bytes, default 512)
        - MIRRORCRYPT_TIMEOUT_SEC (default 120)
        - MIRRORCRYPT_RESPONSE_DECODING (default private-decrypt)
        """

        return cls(
            scheme=_env_scheme(PaddingScheme.OAEP_SHA256),
            key_size=_env_int("KEY_SIZE", DEFAULT_KEY_SIZE),
            timeout_sec=_env_float("TIMEOUT_SEC", DEFAULT_TIMEOUT_SEC),
            response_decoding=_env_decoding(ResponseDecoding.PRIVATE_DECRYPT),
        )


@dataclass(frozen=True, slots=True)
class ServiceConfig:
    """Configuration for the mirror service.

    Security notes:
    - client_public_key_path is optional. If not provided, /signed-request is disabled.
    - An empty allowed_methods set accepts every JSON-RPC method.

    """

    mirror_private_key_path: Optional[str] = None
    client_public_key_path: Optional[str] = None
    scheme: PaddingScheme = PaddingScheme.OAEP_SHA256
    key_size: int = DEFAULT_KEY_SIZE
    response_decoding: ResponseDecoding = ResponseDecoding.PRIVATE_DECRYPT
    wallet_service_uri: str = "http://127.0.0.1:9090/"
    allowed_methods: FrozenSet[str] = field(default_factory=frozenset)
    max_body_bytes: int = 4 * 1024 * 1024
    timeout_sec: float = DEFAULT_TIMEOUT_SEC

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """Build from MIRRORCRYPT_* environment variables."""

        return cls(
            mirror_private_key_path=_env("MIRROR_PRIVATE_KEY") or None,
            client_public_key_path=_env("CLIENT_PUBLIC_KEY") or None,
            scheme=_env_scheme(PaddingScheme.OAEP_SHA256),
            key_size=_env_int("KEY_SIZE", DEFAULT_KEY_SIZE),
            response_decoding=_env_decoding(ResponseDecoding.PRIVATE_DECRYPT),
            wallet_service_uri=_env("WALLET_SERVICE_URI", "http://127.0.0.1:9090/"),
            allowed_methods=_env_set("ALLOWED_METHODS"),
            max_body_bytes=_env_int("MAX_BODY_BYTES", 4 * 1024 * 1024),
            timeout_sec=_env_float("TIMEOUT_SEC", DEFAULT_TIMEOUT_SEC),
        )


def log_level() -> str:
    """Service log level (MIRRORCRYPT_LOG_LEVEL, default INFO)."""

    return _env("LOG_LEVEL", "INFO").upper() or "INFO"
