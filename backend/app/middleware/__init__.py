"""FastAPI middleware for request/response processing."""

from .error_handler import ErrorHandlerMiddleware, format_error_response

__all__ = [
    "ErrorHandlerMiddleware",
    "format_error_response",
]
