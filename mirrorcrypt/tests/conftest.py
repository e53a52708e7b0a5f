from __future__ import annotations

from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from mirrorcrypt.core.crypto.keys import AsymmetricKey


def _generate(bits: int) -> AsymmetricKey:
    return AsymmetricKey.from_private(rsa.generate_private_key(public_exponent=65537, key_size=bits))


@pytest.fixture(scope="session")
def client_key() -> AsymmetricKey:
    """4096-bit client keypair (512-byte blocks)."""
    return _generate(4096)


@pytest.fixture(scope="session")
def mirror_key() -> AsymmetricKey:
    """4096-bit mirror keypair (512-byte blocks)."""
    return _generate(4096)


@pytest.fixture(scope="session")
def small_key() -> AsymmetricKey:
    """2048-bit keypair, for wrong-size checks."""
    return _generate(2048)


def write_private_pem(key: AsymmetricKey, path: Path) -> str:
    path.write_bytes(
        key.private_view().private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    return str(path)


def write_public_pem(key: AsymmetricKey, path: Path) -> str:
    path.write_bytes(
        key.public_view().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )
    return str(path)


@pytest.fixture
def pem_files(tmp_path, client_key, mirror_key, small_key):
    """PEM files for every session key, keyed by role."""
    return {
        "client_private": write_private_pem(client_key, tmp_path / "client-private.pem"),
        "client_public": write_public_pem(client_key, tmp_path / "client-public.pem"),
        "mirror_private": write_private_pem(mirror_key, tmp_path / "mirror-private.pem"),
        "mirror_public": write_public_pem(mirror_key, tmp_path / "mirror-public.pem"),
        "small_private": write_private_pem(small_key, tmp_path / "small-private.pem"),
    }
