# noke/plugins/models.py
from enum import Enum
from datetime import datetime
from pydantic import Field
from typing import List, Optional

from ..schemas import CamelModel
from ..storage.models import StoredDocument
from .constants import AUTH_REQUEST_TTL_SECONDS, PLUGIN_INSTANCE_DOC_TYPE, UNOWNED_PARTITION


class PluginAuthAction(str, Enum):
    """Operations of the plugin pairing protocol. Values double as route paths."""
    REGISTER = "register"
    REQUEST_AUTH = "request-auth"
    AUTHORIZE = "authorize"
    CHECK_AUTH = "check-auth"
    REVOKE = "revoke"
    LIST = "list"


class PluginInstance(StoredDocument):
    """Stored record for one installed extension instance."""
    type: str = PLUGIN_INSTANCE_DOC_TYPE
    partition_key: str = UNOWNED_PARTITION

    plugin_secret_hash: str
    owner_username: Optional[str] = None
    authorized: bool = False

    rolling_key_hash: Optional[str] = None
    rolling_key_version: int = 0
    rolling_key_created_at: Optional[datetime] = None
    pending_rolling_key: Optional[str] = None  # Fernet ciphertext, one-time

    auth_request_token_hash: Optional[str] = None
    auth_request_expiry: Optional[datetime] = None

    created_at: datetime
    updated_at: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    authorized_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None


class PluginCredentialsRequest(CamelModel):
    plugin_id: str = Field(min_length=1)
    plugin_secret: str = Field(min_length=1)


class AuthorizeRequest(CamelModel):
    plugin_id: str = Field(min_length=1)
    auth_token: str = Field(min_length=1)
    username: str = Field(min_length=1)


class RevokeRequest(CamelModel):
    plugin_id: str = Field(min_length=1)
    username: str = Field(min_length=1)


class ListPluginsRequest(CamelModel):
    username: str = Field(min_length=1)


class RegisterResponse(CamelModel):
    success: bool = True
    plugin_id: str
    plugin_secret: str
    message: str = "Plugin registered. Store the secret, it is not shown again."


class RequestAuthResponse(CamelModel):
    success: bool = True
    auth_url: str
    auth_token: str
    expires_in: int = AUTH_REQUEST_TTL_SECONDS


class AuthorizeResponse(CamelModel):
    success: bool = True
    username: str
    message: str = "Plugin authorized."


class CheckAuthResponse(CamelModel):
    """Result of a check-auth poll.

    ``rolling_key`` is only ever set on the single poll that claims the
    pending key; ``require_reauth`` marks an authorized instance whose key was
    already claimed.
    """
    success: bool = True
    authorized: bool
    username: Optional[str] = None
    rolling_key: Optional[str] = None
    require_reauth: Optional[bool] = None
    message: Optional[str] = None


class RevokeResponse(CamelModel):
    success: bool = True
    message: str = "Plugin revoked."


class PluginSummary(CamelModel):
    id: str
    authorized: bool
    authorized_at: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    rolling_key_version: int = 0


class ListPluginsResponse(CamelModel):
    success: bool = True
    plugins: List[PluginSummary]
