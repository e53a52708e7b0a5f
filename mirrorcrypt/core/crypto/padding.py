from __future__ import annotations

from enum import Enum

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding as asym_padding

from .exceptions import InvalidKeySize

# SHA-256 digest length, used by OAEP twice plus two marker bytes.
_SHA256_SIZE = 32


class PaddingScheme(str, Enum):
    """
    RSA padding policy agreed between client and mirror.

    The scheme is a protocol-level agreement and is never inferred from data.
    Using str Enum keeps configuration values stable and comparable.
    """

    PKCS1V15 = "pkcs1v15"
    OAEP_SHA256 = "oaep-sha256"

    @property
    def overhead_bytes(self) -> int:
        """Bytes of every modulus-sized block consumed by padding."""

        if self is PaddingScheme.PKCS1V15:
            return 11
        return 2 + 2 * _SHA256_SIZE

    def max_plaintext_chunk_size(self, key_size: int) -> int:
        """Largest plaintext chunk that fits one block of a `key_size`-byte modulus.

        Raises
        - InvalidKeySize: if the modulus is not larger than the padding overhead.
        """

        if key_size <= self.overhead_bytes:
            raise InvalidKeySize(key_size, self.overhead_bytes)
        return key_size - self.overhead_bytes

    def padding(self) -> asym_padding.AsymmetricPadding:
        """Return the `cryptography` padding object for this scheme."""

        if self is PaddingScheme.PKCS1V15:
            return asym_padding.PKCS1v15()
        return asym_padding.OAEP(
            mgf=asym_padding.MGF1(algorithm=hashes.SHA256()),
            algorithm=hashes.SHA256(),
            label=None,
        )

    @classmethod
    def parse(cls, name: str) -> "PaddingScheme":
        """Parse a scheme from configuration text (case-insensitive)."""

        normalized = (name or "").strip().lower().replace("_", "-")
        aliases = {
            "pkcs1": cls.PKCS1V15,
            "pkcs1v15": cls.PKCS1V15,
            "pkcs1-v1.5": cls.PKCS1V15,
            "oaep": cls.OAEP_SHA256,
            "oaep-sha256": cls.OAEP_SHA256,
        }
        try:
            return aliases[normalized]
        except KeyError:
            raise ValueError(f"unknown padding scheme: {name!r}") from None
