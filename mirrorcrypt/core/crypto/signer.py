"""Raw RSA signatures with no digest.

The mirror verifies the exact request bytes, so the PKCS#1 v1.5 signature
primitive is applied to the buffer itself: no hashing and no DigestInfo
wrapper. Callers must not pre-hash. The encoded block is::

    0x00 || 0x01 || 0xFF * (key_size - len(buffer) - 3) || 0x00 || buffer

`cryptography` only signs digests, so the block is built here and the private
exponent is applied with the key's own CRT parameters. Verification uses
`cryptography`'s signature recovery with no hash algorithm.

Security notes:
- The private-key operation runs on Python integers, which are not
  constant-time. Every input is blinded with a fresh random factor
  (``m * r^e``, unblinded by ``r^-1``) so timing does not track the input.
"""

from __future__ import annotations

import hmac
import secrets
from math import gcd

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric import padding as asym_padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from .exceptions import SigningFailure
from .keys import AsymmetricKey, KeyCapability

# 0x00 0x01 prefix, 0x00 separator and at least 8 bytes of 0xFF filler.
PKCS1_RAW_OVERHEAD = 11


def max_raw_sign_size(key: AsymmetricKey) -> int:
    """Largest buffer :func:`sign_raw` accepts for `key`."""

    return key.key_size - PKCS1_RAW_OVERHEAD


def rsa_private_op(value: int, private_key: RSAPrivateKey) -> int:
    """Blinded CRT private-key operation ``value^d mod n``.

    Raises
    - ValueError: if `value` is not in ``[0, n)``.
    """

    numbers = private_key.private_numbers()
    public = numbers.public_numbers
    n, e = public.n, public.e
    if not 0 <= value < n:
        raise ValueError("value out of range for modulus")

    while True:
        r = secrets.randbelow(n - 2) + 2
        if gcd(r, n) == 1:
            break
    blinded = (value * pow(r, e, n)) % n

    m1 = pow(blinded, numbers.dmp1, numbers.p)
    m2 = pow(blinded, numbers.dmq1, numbers.q)
    h = (numbers.iqmp * (m1 - m2)) % numbers.p
    s = m2 + h * numbers.q

    return (s * pow(r, -1, n)) % n


def sign_raw(buffer: bytes, key: AsymmetricKey) -> bytes:
    """Sign `buffer` directly (no digest) and return exactly `key.key_size` bytes.

    Raises
    - SigningFailure: if `key` holds no private material or `buffer` does not
      fit in a single block.
    """

    private_key = key.private_view()
    if private_key is None or not key.can(KeyCapability.SIGN):
        raise SigningFailure("key has no private material; cannot sign")

    k = key.key_size
    data = bytes(buffer)
    if len(data) > k - PKCS1_RAW_OVERHEAD:
        raise SigningFailure(
            f"buffer of {len(data)} bytes exceeds the {k - PKCS1_RAW_OVERHEAD}-byte raw signing limit"
        )

    encoded = b"\x00\x01" + b"\xff" * (k - len(data) - 3) + b"\x00" + data
    m = int.from_bytes(encoded, "big")
    s = rsa_private_op(m, private_key)

    # Reject a faulty CRT result instead of releasing it.
    public = private_key.public_key().public_numbers()
    if pow(s, public.e, public.n) != m:
        raise SigningFailure("signature self-check failed")
    return s.to_bytes(k, "big")


def verify_raw(buffer: bytes, signature: bytes, key: AsymmetricKey) -> bool:
    """Return True if `signature` is a raw (no digest) signature of `buffer`."""

    if len(signature) != key.key_size:
        return False
    try:
        recovered = key.public_view().recover_data_from_signature(
            bytes(signature), asym_padding.PKCS1v15(), None
        )
    except (InvalidSignature, ValueError):
        return False
    return hmac.compare_digest(recovered, bytes(buffer))
