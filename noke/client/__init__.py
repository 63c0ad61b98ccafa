# noke/client/__init__.py
"""
Plugin-side client: pairing, polling for the first rolling key and
authenticated data requests.
"""

from .api_client import NokePluginClient
from .credentials import (
    AbstractCredentialStore,
    InMemoryCredentialStore,
    JsonFileCredentialStore,
    PluginCredentials,
)
from .errors import (
    AuthorizationTimeoutError,
    NokeClientError,
    NotAuthenticatedError,
    ReauthRequiredError,
)

__all__ = [
    "NokePluginClient",
    "AbstractCredentialStore",
    "InMemoryCredentialStore",
    "JsonFileCredentialStore",
    "PluginCredentials",
    "AuthorizationTimeoutError",
    "NokeClientError",
    "NotAuthenticatedError",
    "ReauthRequiredError",
]
