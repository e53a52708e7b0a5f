"""Mirror service.

This module provides a FastAPI service that accepts encrypted or signed
JSON-RPC requests, serves them through a pluggable handler and returns
encrypted responses.
"""

from .server import create_app  # noqa: F401
