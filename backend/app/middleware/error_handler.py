"""
Centralized error handling middleware for FastAPI.

Maps wallet exceptions to JSON error responses and logs them.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ledger_engine.exceptions import WalletError

logger = logging.getLogger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Middleware that catches exceptions raised by routes and returns consistent error responses.

    WalletError subclasses carry their own status code (400 for bad input,
    502 for mint failures, 503 when no mint is configured). Anything else is
    a 500.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            response = await call_next(request)
            return response

        except WalletError as e:
            log = logger.warning if e.status_code < 500 else logger.error
            log(
                f"{type(e).__name__}: {e.message}",
                extra={"status_code": e.status_code, "details": e.details},
            )
            return JSONResponse(
                status_code=e.status_code,
                content=format_error_response(e.status_code, e.message, e.details),
            )

        except Exception as e:
            logger.exception(f"Unhandled exception: {str(e)}")
            return JSONResponse(
                status_code=500,
                content=format_error_response(
                    500,
                    "Internal server error",
                    str(e) if logger.isEnabledFor(logging.DEBUG) else None,
                ),
            )


def format_error_response(
    status_code: int,
    message: str,
    details=None,
) -> dict:
    """
    Format a consistent error response.

    Args:
        status_code: HTTP status code
        message: Human-readable error message
        details: Additional error details (optional)

    Returns:
        dict: Formatted error response
    """
    response = {
        "error": True,
        "status_code": status_code,
        "message": message,
    }
    if details:
        response["details"] = details
    return response
