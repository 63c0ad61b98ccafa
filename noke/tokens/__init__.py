# noke/tokens/__init__.py
"""Opaque token generation plus static API tokens."""

from .token_manager import TokenManagerProtocol, DefaultTokenManager
from .models import ApiToken, TokenExpiry
from .service import ApiTokenService

__all__ = ["TokenManagerProtocol", "DefaultTokenManager", "ApiToken", "TokenExpiry", "ApiTokenService"]
