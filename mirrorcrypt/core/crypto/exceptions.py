from __future__ import annotations

from typing import Optional


class MirrorCryptError(Exception):
    """
    Base exception for all mirrorcrypt failures.
    """

    pass


class CodecError(MirrorCryptError):
    """
    Base exception for chunked codec and signer failures.
    """

    pass


class InvalidKeySize(CodecError):
    """
    Raised when a key modulus cannot hold even one byte under a padding scheme.
    """

    def __init__(self, key_size: int, overhead_bytes: int) -> None:
        super().__init__(
            f"key size {key_size} bytes does not exceed padding overhead of {overhead_bytes} bytes"
        )
        self.key_size = key_size
        self.overhead_bytes = overhead_bytes


class UnexpectedKeySize(CodecError):
    """
    Raised by the startup self-test when the loaded key has the wrong modulus size.
    """

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"key is not {expected * 8}-bit, encrypted output chunk size returned was {actual}"
        )
        self.expected = expected
        self.actual = actual


class ChunkError(CodecError):
    """
    A codec failure attributable to a single chunk.
    """

    def __init__(self, message: str, *, chunk_index: Optional[int] = None) -> None:
        if chunk_index is not None:
            message = f"chunk {chunk_index}: {message}"
        super().__init__(message)
        self.chunk_index = chunk_index


class EncryptionFailure(ChunkError):
    """
    Raised when the cipher rejects a plaintext chunk.
    """

    pass


class DecryptionFailure(ChunkError):
    """
    Raised when a ciphertext chunk fails padding validation (wrong key,
    corrupted chunk or scheme mismatch) or no private key is available.
    """

    pass


class SigningFailure(CodecError):
    """
    Raised when a buffer cannot be signed with the given key.
    """

    pass


class UnsupportedScheme(CodecError):
    """
    Raised when an operation is not defined for the requested padding scheme.
    """

    pass


class MalformedCiphertext(CodecError):
    """
    Raised when a ciphertext is not a whole number of modulus-sized chunks.
    """

    def __init__(self, key_size: int, actual: int) -> None:
        super().__init__(
            f"ciphertext length {actual} is not a multiple of the key size {key_size}"
        )
        self.key_size = key_size
        self.actual = actual


class ProtocolError(MirrorCryptError):
    """
    Base exception for request framing failures.
    """

    pass


class InvalidRequest(ProtocolError):
    """
    Raised when a request cannot be turned into JSON text.
    """

    pass


class TransportError(MirrorCryptError):
    """
    Raised when the HTTP exchange with the mirror does not complete successfully.

    `body` carries the raw response bytes (if any) for diagnostics.
    """

    def __init__(self, message: str, *, body: bytes = b"") -> None:
        super().__init__(message)
        self.body = body


class ConnectionFailure(TransportError):
    """
    Raised when the mirror cannot be reached.
    """

    pass


class TransportTimeout(TransportError):
    """
    Raised when the mirror does not answer within the configured timeout.
    """

    pass


class HttpStatusError(TransportError):
    """
    Raised when the mirror answers with a non-200 status.
    """

    def __init__(self, status: int, body: bytes = b"") -> None:
        text = body.decode("utf-8", errors="replace")
        super().__init__(f"Http error, status: {status}: {text}", body=body)
        self.status = status
