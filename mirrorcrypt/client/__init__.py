"""HTTP transport for talking to a mirror.

Security notes:
- Treat mirror responses as untrusted input until decrypted.
- Never print or log request/response bodies.
"""

from .http import DEFAULT_TIMEOUT_SEC, HttpResponse, MirrorHttpClient  # noqa: F401
