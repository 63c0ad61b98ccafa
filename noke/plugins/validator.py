# noke/plugins/validator.py
import logging
from datetime import datetime
from pydantic import BaseModel, Field
from typing import Any, Callable, Dict, List, Optional

from ..errors import UnauthenticatedError, UnauthorizedError, internal_errors
from ..storage import AbstractDocumentStore, PreconditionFailedError
from ..tokens.service import ApiTokenService
from ..tokens.token_manager import DefaultTokenManager, TokenManagerProtocol
from .constants import MAX_WRITE_ATTEMPTS
from .repository import PluginInstanceRepository
from .service import utcnow

logger = logging.getLogger(__name__)


class AuthContext(BaseModel):
    """Who a data-plane request acts for, and the next rolling key if one was issued."""
    username: str
    permissions: List[str] = Field(default_factory=lambda: ["read"])
    is_rolling_key: bool = False
    plugin_id: Optional[str] = None
    new_rolling_key: Optional[str] = None
    key_version: Optional[int] = None
    token_name: Optional[str] = None

    def wrap_response(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Attach the next rolling key to a successful response body."""
        if not self.is_rolling_key:
            return body
        return {**body, "newRollingKey": self.new_rolling_key, "keyVersion": self.key_version}


class RequestAuthenticator:
    """
    Authenticates data-plane requests.

    With a plugin id the credential must be the instance's current rolling
    key, which is spent by the request and replaced by a new one. Without a
    plugin id the credential is looked up as a static API token.
    """

    def __init__(
        self,
        store: AbstractDocumentStore,
        token_manager: Optional[TokenManagerProtocol] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = PluginInstanceRepository(store)
        self.token_manager = token_manager or DefaultTokenManager()
        self.token_service = ApiTokenService(store, self.token_manager, clock)
        self.clock = clock

    async def authenticate(self, plugin_id: Optional[str], credential: Optional[str]) -> AuthContext:
        if not credential:
            raise UnauthenticatedError("API key missing. Send it in the x-api-key header.")
        if plugin_id:
            return await self._rotate_rolling_key(plugin_id, credential)
        token = await self.token_service.validate_token(credential)
        return AuthContext(username=token.username, permissions=token.permissions, token_name=token.name)

    async def _rotate_rolling_key(self, plugin_id: str, rolling_key: str) -> AuthContext:
        with internal_errors("Rolling key validation"):
            for _ in range(MAX_WRITE_ATTEMPTS):
                instance = await self.repository.resolve(plugin_id)
                if instance is None or not instance.authorized or not instance.owner_username:
                    logger.warning(f"Rolling key presented for unauthorized plugin '{plugin_id}'.")
                    raise UnauthorizedError("Plugin is not authorized.")
                if not self.token_manager.token_matches(rolling_key, instance.rolling_key_hash):
                    logger.warning(
                        f"Stale or invalid rolling key for plugin '{plugin_id}' "
                        f"(current version {instance.rolling_key_version})."
                    )
                    raise UnauthorizedError("Rolling key invalid. Re-authorize the plugin.", require_reauth=True)

                new_key, new_hash = self.token_manager.generate_token_and_hash()
                now = self.clock()
                rotated = instance.model_copy(update={
                    "rolling_key_hash": new_hash,
                    "rolling_key_version": instance.rolling_key_version + 1,
                    "rolling_key_created_at": now,
                    "last_seen": now,
                    "updated_at": now,
                })
                try:
                    await self.repository.replace(rotated, instance.etag)
                except PreconditionFailedError:
                    # Re-read: if the key was spent meanwhile the hash check above fails
                    logger.warning(f"Plugin '{plugin_id}' changed during key rotation. Re-reading.")
                    continue
                logger.debug(f"Rotated rolling key of plugin '{plugin_id}' to version {rotated.rolling_key_version}.")
                return AuthContext(
                    username=instance.owner_username,
                    is_rolling_key=True,
                    plugin_id=plugin_id,
                    new_rolling_key=new_key,
                    key_version=rotated.rolling_key_version,
                )

        raise UnauthorizedError("Rolling key could not be rotated. Re-authorize the plugin.", require_reauth=True)
