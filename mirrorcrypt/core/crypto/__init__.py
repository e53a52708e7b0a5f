"""Asymmetric primitives for the mirror transport.

Security notes:
- Keys are immutable handles passed explicitly to every call.
- The padding scheme is a protocol agreement; never mix schemes within one message.
"""

from .codec import (
    DEFAULT_KEY_SIZE,
    decrypt,
    encrypt,
    private_encrypt,
    public_decrypt,
    self_test,
    split_chunks,
)
from .exceptions import (
    CodecError,
    ConnectionFailure,
    DecryptionFailure,
    EncryptionFailure,
    HttpStatusError,
    InvalidKeySize,
    InvalidRequest,
    MalformedCiphertext,
    MirrorCryptError,
    ProtocolError,
    SigningFailure,
    TransportError,
    TransportTimeout,
    UnexpectedKeySize,
    UnsupportedScheme,
)
from .keys import AsymmetricKey, KeyCapability, load_key_pem, load_private_key_pem, load_public_key_pem
from .padding import PaddingScheme
from .signer import max_raw_sign_size, sign_raw, verify_raw

__all__ = [
    "DEFAULT_KEY_SIZE",
    "encrypt",
    "decrypt",
    "private_encrypt",
    "public_decrypt",
    "self_test",
    "split_chunks",
    "MirrorCryptError",
    "CodecError",
    "InvalidKeySize",
    "UnexpectedKeySize",
    "EncryptionFailure",
    "DecryptionFailure",
    "MalformedCiphertext",
    "SigningFailure",
    "UnsupportedScheme",
    "ProtocolError",
    "InvalidRequest",
    "TransportError",
    "ConnectionFailure",
    "TransportTimeout",
    "HttpStatusError",
    "AsymmetricKey",
    "KeyCapability",
    "load_key_pem",
    "load_private_key_pem",
    "load_public_key_pem",
    "PaddingScheme",
    "sign_raw",
    "verify_raw",
    "max_raw_sign_size",
]
