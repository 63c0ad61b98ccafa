# noke/client/errors.py
from typing import Any, Dict, Optional


class NokeClientError(Exception):
    """Base exception for errors returned by, or raised while talking to, a NoKe server."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data or {}
        super().__init__(message)


class NotAuthenticatedError(NokeClientError):
    """The client holds neither a rolling key nor a legacy token."""


class ReauthRequiredError(NokeClientError):
    """The server rejected the rolling key for good; the plugin must be authorized again."""


class AuthorizationTimeoutError(NokeClientError):
    """No approval arrived within the auth-request window."""
