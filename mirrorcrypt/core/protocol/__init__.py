"""Request framing and per-request lifecycle."""

from .framing import (  # noqa: F401
    CONTENT_TYPE_BINARY,
    CONTENT_TYPE_JSON,
    ENCRYPTED_REQUEST_PATH,
    SIGNED_REQUEST_PATH,
    EncodedRequest,
    Framing,
    RequestProtocol,
    ResponseDecoding,
    SignedRequest,
    Transport,
    build_signed_request,
    request_text,
)
from .lifecycle import InvalidTransition, RequestCycle, RequestState  # noqa: F401
