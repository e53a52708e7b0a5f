"""Chunked RSA codec.

Public-key ciphers bound a single operation to the modulus size, so arbitrary
plaintext is split into chunks of at most ``key_size - overhead_bytes`` bytes,
each chunk is padded and encrypted independently, and the resulting
``key_size``-byte blocks are concatenated in input order.

Layout of an encrypted message::

    [block 0: key_size bytes][block 1: key_size bytes]...[block n-1]

Empty plaintext encrypts to an empty message.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from .exceptions import (
    DecryptionFailure,
    EncryptionFailure,
    MalformedCiphertext,
    SigningFailure,
    UnexpectedKeySize,
    UnsupportedScheme,
)
from .keys import AsymmetricKey
from .padding import PaddingScheme
from .signer import rsa_private_op, sign_raw

# Known buffer encrypted by the startup self-test.
SELF_TEST_PLAINTEXT = bytes([1, 2, 3])

# 4096-bit keys produce 512-byte blocks.
DEFAULT_KEY_SIZE = 512

# PKCS#1 v1.5 type-2 blocks carry at least 8 nonzero random bytes.
PKCS1_MIN_PADDING_STRING = 8


def split_chunks(data: bytes, size: int) -> List[bytes]:
    """Split `data` into consecutive slices of at most `size` bytes."""

    if size <= 0:
        raise ValueError("chunk size must be > 0")
    return [data[i : i + size] for i in range(0, len(data), size)]


def _map_ordered(
    fn: Callable[[int, bytes], bytes], chunks: List[bytes], max_workers: Optional[int]
) -> List[bytes]:
    """Apply fn(index, chunk) to every chunk, returning results in input order."""

    if not max_workers or max_workers <= 1 or len(chunks) <= 1:
        return [fn(i, c) for i, c in enumerate(chunks)]
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        # Executor.map yields in submission order regardless of completion order.
        return list(pool.map(fn, range(len(chunks)), chunks))


def encrypt(
    plaintext: bytes,
    key: AsymmetricKey,
    scheme: PaddingScheme,
    *,
    max_workers: Optional[int] = None,
) -> bytes:
    """Encrypt `plaintext` chunk by chunk with the public view of `key`.

    Raises
    - InvalidKeySize: if the key cannot hold any plaintext under `scheme`.
    - EncryptionFailure: if the cipher rejects a chunk.
    """

    chunk_size = scheme.max_plaintext_chunk_size(key.key_size)
    public_key = key.public_view()
    pad = scheme.padding()

    def _encrypt_chunk(index: int, chunk: bytes) -> bytes:
        try:
            block = public_key.encrypt(chunk, pad)
        except ValueError as exc:
            raise EncryptionFailure(str(exc), chunk_index=index) from exc
        if len(block) != key.key_size:
            raise EncryptionFailure(
                f"expected a {key.key_size}-byte block, got {len(block)}", chunk_index=index
            )
        return block

    chunks = split_chunks(bytes(plaintext), chunk_size)
    return b"".join(_map_ordered(_encrypt_chunk, chunks, max_workers))


def _split_blocks(ciphertext: bytes, key_size: int) -> List[bytes]:
    if len(ciphertext) % key_size != 0:
        raise MalformedCiphertext(key_size, len(ciphertext))
    return split_chunks(bytes(ciphertext), key_size)


def decrypt(
    ciphertext: bytes,
    key: AsymmetricKey,
    scheme: PaddingScheme,
    *,
    max_workers: Optional[int] = None,
) -> bytes:
    """Decrypt an encrypted message with the private view of `key`.

    The length check runs before any block is decrypted.

    Raises
    - MalformedCiphertext: if the length is not a multiple of the key size.
    - DecryptionFailure: if a block fails padding validation, or the key has
      no private material.
    """

    blocks = _split_blocks(ciphertext, key.key_size)
    private_key = key.private_view()
    if private_key is None:
        raise DecryptionFailure("key has no private material")
    pad = scheme.padding()

    def _decrypt_chunk(index: int, block: bytes) -> bytes:
        try:
            if scheme is PaddingScheme.PKCS1V15:
                return _pkcs1_decrypt_strict(block, private_key)
            return private_key.decrypt(block, pad)
        except ValueError as exc:
            raise DecryptionFailure(
                f"padding validation failed ({scheme.value})", chunk_index=index
            ) from exc

    return b"".join(_map_ordered(_decrypt_chunk, blocks, max_workers))


def _pkcs1_decrypt_strict(block: bytes, private_key: RSAPrivateKey) -> bytes:
    """PKCS#1 v1.5 type-2 decryption that raises on bad padding.

    OpenSSL's implicit rejection returns synthetic plaintext for a bad block
    instead of failing, so the unpadding is done here. Expected layout::

        0x00 || 0x02 || PS (>= 8 nonzero bytes) || 0x00 || message

    Raises
    - ValueError: on any layout violation.
    """

    k = len(block)
    em = rsa_private_op(int.from_bytes(block, "big"), private_key).to_bytes(k, "big")
    if em[0] != 0 or em[1] != 2:
        raise ValueError("bad PKCS#1 v1.5 block type")
    sep = em.find(b"\x00", 2)
    if sep < 2 + PKCS1_MIN_PADDING_STRING:
        raise ValueError("bad PKCS#1 v1.5 padding string")
    return em[sep + 1 :]


def private_encrypt(plaintext: bytes, key: AsymmetricKey, scheme: PaddingScheme) -> bytes:
    """Encrypt chunk by chunk with the private view of `key` (PKCS#1 v1.5 only).

    Each block is the raw PKCS#1 v1.5 private-key operation over the chunk,
    which the holder of the public key reverses with :func:`public_decrypt`.
    """

    if scheme is not PaddingScheme.PKCS1V15:
        raise UnsupportedScheme(f"{scheme.value} has no private-key encryption mode")
    chunk_size = scheme.max_plaintext_chunk_size(key.key_size)

    out: List[bytes] = []
    for index, chunk in enumerate(split_chunks(bytes(plaintext), chunk_size)):
        try:
            out.append(sign_raw(chunk, key))
        except SigningFailure as exc:
            raise EncryptionFailure(str(exc), chunk_index=index) from exc
    return b"".join(out)


def public_decrypt(ciphertext: bytes, key: AsymmetricKey, scheme: PaddingScheme) -> bytes:
    """Reverse :func:`private_encrypt` with the public view of `key`."""

    if scheme is not PaddingScheme.PKCS1V15:
        raise UnsupportedScheme(f"{scheme.value} has no public-key decryption mode")
    blocks = _split_blocks(ciphertext, key.key_size)
    public_key = key.public_view()
    pad = scheme.padding()

    out: List[bytes] = []
    for index, block in enumerate(blocks):
        try:
            out.append(public_key.recover_data_from_signature(block, pad, None))
        except (InvalidSignature, ValueError) as exc:
            raise DecryptionFailure(
                f"padding validation failed ({scheme.value})", chunk_index=index
            ) from exc
    return b"".join(out)


def self_test(
    key: AsymmetricKey,
    scheme: PaddingScheme,
    expected_key_size: int = DEFAULT_KEY_SIZE,
) -> None:
    """Encrypt a known buffer and require exactly one `expected_key_size` block.

    Run before any network activity so a wrong key fails fast.

    Raises
    - UnexpectedKeySize: on any size mismatch.
    """

    if key.key_size != expected_key_size:
        raise UnexpectedKeySize(expected_key_size, key.key_size)
    out = encrypt(SELF_TEST_PLAINTEXT, key, scheme)
    if len(out) != expected_key_size:
        raise UnexpectedKeySize(expected_key_size, len(out))
