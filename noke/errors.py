# noke/errors.py
import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .settings import settings
from .storage import DocumentStoreError
from .utils import CipherError

logger = logging.getLogger(__name__)


class NokeError(HTTPException):
    """Base exception class for NoKe API errors.

    Inherits from FastAPI's HTTPException so it can be raised from services and
    dependencies alike. ``require_reauth`` tells plugin clients to drop their
    rolling key and restart pairing instead of retrying.
    """

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        require_reauth: bool = False,
        details: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None
    ):
        self.error = error
        self.message = message
        self.require_reauth = require_reauth
        self.details = details
        super().__init__(status_code=status_code, detail=message, headers=headers)


class InvalidRequestError(NokeError):
    """A required field is missing or malformed."""

    def __init__(self, message: str = "Invalid request."):
        super().__init__(status.HTTP_400_BAD_REQUEST, "invalid_request", message)


class UnauthenticatedError(NokeError):
    """Bad plugin secret, auth-request token, API token or password."""

    def __init__(self, message: str = "Authentication failed."):
        super().__init__(status.HTTP_401_UNAUTHORIZED, "unauthenticated", message)


class UnauthorizedError(NokeError):
    """A credential that is well-formed but stale, rotated or not (or no longer) authorized."""

    def __init__(self, message: str = "Not authorized.", require_reauth: bool = False):
        super().__init__(
            status.HTTP_401_UNAUTHORIZED, "unauthorized", message, require_reauth=require_reauth
        )


class ExpiredError(NokeError):
    """An auth-request token was presented after its window closed."""

    def __init__(self, message: str = "Authorization request expired."):
        super().__init__(status.HTTP_401_UNAUTHORIZED, "expired", message)


class NotFoundError(NokeError):
    """Unknown identifier or ownership mismatch."""

    def __init__(self, message: str = "Not found."):
        super().__init__(status.HTTP_404_NOT_FOUND, "not_found", message)


class ConflictError(NokeError):
    """Duplicate registration, id collision or a lost concurrent update."""

    def __init__(self, message: str = "Conflict."):
        super().__init__(status.HTTP_409_CONFLICT, "conflict", message)


class InternalError(NokeError):
    """Store or cipher failure. The message sent to clients stays generic."""

    def __init__(self, message: str = "Internal error.", cause: Optional[BaseException] = None):
        details = str(cause) if cause is not None and settings.expose_error_details else None
        super().__init__(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", message, details=details)


def error_body(error: str, message: str, require_reauth: bool = False, details: Any = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "success": False,
        "error": error,
        "message": message,
        "requireReauth": require_reauth,
    }
    if details is not None:
        body["details"] = details
    return body


async def noke_error_handler(request: Request, exc: NokeError) -> JSONResponse:
    """Render domain errors in the shared JSON shape."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(f"{request.method} {request.url.path} -> {exc.status_code} {exc.error}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.error, exc.message, exc.require_reauth, exc.details),
        headers=exc.headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle plain HTTP exceptions (404 routes, 405 methods, ...)."""
    error_codes = {
        400: "invalid_request",
        401: "unauthenticated",
        404: "not_found",
        405: "method_not_allowed",
        409: "conflict",
        500: "internal_error",
    }
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(
            error_codes.get(exc.status_code, "error"),
            str(exc.detail) if exc.detail else f"HTTP {exc.status_code}"
        ),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Missing or empty required fields are reported as 400 invalid_request."""
    fields = [".".join(str(part) for part in error.get("loc", []) if part != "body") for error in exc.errors()]
    logger.info(f"Validation error on {request.url.path}: {fields}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(
            "invalid_request",
            "Missing or invalid fields: " + ", ".join(f for f in fields if f),
        ),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unexpected exceptions never leak their text unless explicitly enabled."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(
            "internal_error",
            "Internal error.",
            details=str(exc) if settings.expose_error_details else None
        ),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(NokeError, noke_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)


@contextmanager
def internal_errors(operation: str) -> Iterator[None]:
    """Translate store and cipher failures raised inside the block into InternalError."""
    try:
        yield
    except (DocumentStoreError, sqlite3.Error, CipherError) as e:
        logger.error(f"{operation} failed: {e}", exc_info=True)
        raise InternalError(f"{operation} failed.", cause=e) from e
