from __future__ import annotations

from typing import Annotated, List

from pydantic import BaseModel, Field

Byte = Annotated[int, Field(ge=0, le=255)]

# One raw signature block of an 8192-bit key.
MAX_SIGNATURE_BYTES = 1024


class SignedRequestIn(BaseModel):
    """Envelope accepted by POST /signed-request.

    `request` is the JSON-RPC request text exactly as signed; `signature` is the
    raw signature as a list of byte values.
    """

    request: str
    signature: List[Byte] = Field(default_factory=list, max_length=MAX_SIGNATURE_BYTES)

    def signature_bytes(self) -> bytes:
        return bytes(self.signature)


class HealthOut(BaseModel):
    """Service status."""

    ok: bool
    scheme: str
    key_size: int
    response_decoding: str
    signed_requests: bool
    allowed_methods: List[str] = Field(default_factory=list)
