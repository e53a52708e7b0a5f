from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import FrozenSet, Optional, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey


class KeyCapability(str, Enum):
    """Operations a key handle can perform."""

    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"
    SIGN = "sign"
    VERIFY = "verify"


_PUBLIC_CAPABILITIES: FrozenSet[KeyCapability] = frozenset(
    {KeyCapability.ENCRYPT, KeyCapability.VERIFY}
)
_PRIVATE_CAPABILITIES: FrozenSet[KeyCapability] = frozenset(KeyCapability)


@dataclass(frozen=True, slots=True)
class AsymmetricKey:
    """
    Immutable handle around RSA key material.

    A handle built from private material exposes both views (public and
    private); a handle built from public material exposes the public view only.

    Security invariants
    - Frozen: loaded once, shared read-only across any number of calls
    - Never serialized or logged by this package
    """

    material: Union[RSAPrivateKey, RSAPublicKey]

    def __post_init__(self) -> None:
        if not isinstance(self.material, (RSAPrivateKey, RSAPublicKey)):
            raise TypeError("AsymmetricKey requires an RSA private or public key")

    @classmethod
    def from_private(cls, key: RSAPrivateKey) -> "AsymmetricKey":
        return cls(material=key)

    @classmethod
    def from_public(cls, key: RSAPublicKey) -> "AsymmetricKey":
        return cls(material=key)

    @property
    def key_size(self) -> int:
        """Modulus length in bytes."""

        return (self.material.key_size + 7) // 8

    @property
    def capabilities(self) -> FrozenSet[KeyCapability]:
        if self.has_private:
            return _PRIVATE_CAPABILITIES
        return _PUBLIC_CAPABILITIES

    @property
    def has_private(self) -> bool:
        return isinstance(self.material, RSAPrivateKey)

    def can(self, capability: KeyCapability) -> bool:
        return capability in self.capabilities

    def public_view(self) -> RSAPublicKey:
        """Return the public key (derived from private material if needed)."""

        if isinstance(self.material, RSAPrivateKey):
            return self.material.public_key()
        return self.material

    def private_view(self) -> Optional[RSAPrivateKey]:
        """Return the private key, or None for public-only handles."""

        if isinstance(self.material, RSAPrivateKey):
            return self.material
        return None

    def public_only(self) -> "AsymmetricKey":
        """Return a handle that holds only the public view."""

        return AsymmetricKey(material=self.public_view())

    def __repr__(self) -> str:
        kind = "private" if self.has_private else "public"
        return f"AsymmetricKey({kind}, key_size={self.key_size})"


def load_private_key_pem(path: str, *, passphrase: str = "") -> AsymmetricKey:
    """Load an RSA private key from PEM.

    An empty passphrase means the PEM is not encrypted.
    """

    data = Path(path).read_bytes()
    pwd = passphrase.encode("utf-8") if passphrase else None
    key = serialization.load_pem_private_key(data, password=pwd)
    if not isinstance(key, RSAPrivateKey):
        raise TypeError("not an RSA private key")
    return AsymmetricKey.from_private(key)


def load_public_key_pem(path: str) -> AsymmetricKey:
    """Load an RSA public key from PEM."""

    data = Path(path).read_bytes()
    key = serialization.load_pem_public_key(data)
    if not isinstance(key, RSAPublicKey):
        raise TypeError("not an RSA public key")
    return AsymmetricKey.from_public(key)


def load_key_pem(path: str, *, passphrase: str = "") -> AsymmetricKey:
    """Load either a private or a public RSA key from PEM.

    Private material is tried first, matching key files that may hold either.
    """

    data = Path(path).read_bytes()
    if b"PRIVATE KEY" in data:
        return load_private_key_pem(path, passphrase=passphrase)
    return load_public_key_pem(path)
