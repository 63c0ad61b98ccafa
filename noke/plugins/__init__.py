# noke/plugins/__init__.py
"""
Plugin pairing and request authentication.

Covers registration of extension instances, the authorize/check-auth
handshake that delivers the first rolling key, and the validator that
rotates the key on every data-plane request.
"""

from .constants import AUTH_REQUEST_TTL_SECONDS, DEFAULT_POLL_INTERVAL_SECONDS, UNOWNED_PARTITION
from .models import PluginAuthAction, PluginInstance
from .repository import PluginInstanceRepository
from .service import PluginAuthService
from .validator import AuthContext, RequestAuthenticator

__all__ = [
    "AUTH_REQUEST_TTL_SECONDS",
    "DEFAULT_POLL_INTERVAL_SECONDS",
    "UNOWNED_PARTITION",
    "PluginAuthAction",
    "PluginInstance",
    "PluginInstanceRepository",
    "PluginAuthService",
    "AuthContext",
    "RequestAuthenticator",
]
