# noke/plugins/service.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional
from urllib.parse import urlencode

from ..errors import (
    ConflictError,
    ExpiredError,
    InvalidRequestError,
    NotFoundError,
    UnauthenticatedError,
    internal_errors,
)
from ..settings import settings
from ..storage import AbstractDocumentStore, DocumentConflictError, PreconditionFailedError
from ..tokens.token_manager import DefaultTokenManager, TokenManagerProtocol
from ..utils import FernetEncryptor
from .constants import (
    AUTH_REQUEST_TTL_SECONDS,
    MAX_REGISTRATION_ATTEMPTS,
    MAX_WRITE_ATTEMPTS,
    UNOWNED_PARTITION,
)
from .models import (
    AuthorizeResponse,
    CheckAuthResponse,
    ListPluginsResponse,
    PluginInstance,
    PluginSummary,
    RegisterResponse,
    RequestAuthResponse,
    RevokeResponse,
)
from .repository import PluginInstanceRepository

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PluginAuthService:
    """
    Server side of the plugin pairing protocol.

    An instance registers anonymously, asks for authorization, gets approved
    by a signed-in user from the web client, and then picks up its first
    rolling key exactly once through ``check_auth``. All state lives in the
    document store; writes that hand out or spend a key are conditional on
    the record etag.
    """

    def __init__(
        self,
        store: AbstractDocumentStore,
        token_manager: Optional[TokenManagerProtocol] = None,
        encryptor: Optional[FernetEncryptor] = None,
        clock: Callable[[], datetime] = utcnow,
        web_app_base_url: Optional[str] = None,
    ):
        self.repository = PluginInstanceRepository(store)
        self.token_manager = token_manager or DefaultTokenManager()
        self.encryptor = encryptor or FernetEncryptor(settings.noke_encryption_key)
        self.clock = clock
        self.web_app_base_url = (web_app_base_url or settings.web_app_base_url).rstrip("/")

    async def register(self) -> RegisterResponse:
        """Create an unowned instance and return its id and secret (shown only once)."""
        with internal_errors("Plugin registration"):
            for attempt in range(1, MAX_REGISTRATION_ATTEMPTS + 1):
                plugin_id = self.token_manager.generate_plugin_id()
                if await self.repository.exists(plugin_id):
                    logger.warning(f"Generated plugin id '{plugin_id}' already in use (attempt {attempt}).")
                    continue
                plugin_secret, secret_hash = self.token_manager.generate_token_and_hash()
                now = self.clock()
                instance = PluginInstance(
                    id=plugin_id,
                    plugin_secret_hash=secret_hash,
                    created_at=now,
                    updated_at=now,
                    last_seen=now,
                )
                try:
                    await self.repository.create(instance)
                except DocumentConflictError:
                    logger.warning(f"Plugin id '{plugin_id}' collided on insert (attempt {attempt}).")
                    continue
                logger.info(f"Registered plugin '{plugin_id}'.")
                return RegisterResponse(plugin_id=plugin_id, plugin_secret=plugin_secret)

        logger.error(f"Could not allocate a unique plugin id after {MAX_REGISTRATION_ATTEMPTS} attempts.")
        raise ConflictError("Could not allocate a unique plugin id. Try again.")

    async def _authenticate_instance(
        self, plugin_id: str, plugin_secret: str, missing_error: Exception
    ) -> PluginInstance:
        instance = await self.repository.resolve(plugin_id)
        if instance is None:
            logger.warning(f"Unknown plugin '{plugin_id}'.")
            raise missing_error
        if not self.token_manager.token_matches(plugin_secret, instance.plugin_secret_hash):
            logger.warning(f"Plugin secret mismatch for '{plugin_id}'.")
            raise UnauthenticatedError("Invalid plugin credentials.")
        return instance

    def build_auth_url(self, plugin_id: str, auth_token: str) -> str:
        query = urlencode({"pluginId": plugin_id, "authToken": auth_token})
        return f"{self.web_app_base_url}/#/plugin-auth?{query}"

    async def request_auth(self, plugin_id: str, plugin_secret: str) -> RequestAuthResponse:
        """Mint a short-lived auth-request token, replacing any earlier one."""
        with internal_errors("Authorization request"):
            for _ in range(MAX_WRITE_ATTEMPTS):
                instance = await self._authenticate_instance(
                    plugin_id, plugin_secret, UnauthenticatedError("Plugin is not registered.")
                )
                auth_token, token_hash = self.token_manager.generate_token_and_hash()
                now = self.clock()
                pending = instance.model_copy(update={
                    "auth_request_token_hash": token_hash,
                    "auth_request_expiry": now + timedelta(seconds=AUTH_REQUEST_TTL_SECONDS),
                    "last_seen": now,
                    "updated_at": now,
                })
                try:
                    await self.repository.replace(pending, instance.etag)
                except PreconditionFailedError:
                    logger.warning(f"Plugin '{plugin_id}' changed while requesting authorization. Retrying.")
                    continue
                logger.info(f"Authorization requested for plugin '{plugin_id}'.")
                return RequestAuthResponse(
                    auth_url=self.build_auth_url(plugin_id, auth_token),
                    auth_token=auth_token,
                )
        raise ConflictError("Plugin is being modified concurrently. Try again.")

    async def authorize(self, plugin_id: str, auth_token: str, username: str) -> AuthorizeResponse:
        """
        Approve a pending authorization request on behalf of ``username``.

        The instance must be unowned or already owned by ``username``. A fresh
        rolling key is stored encrypted as the pending key; it is handed to
        the extension by ``check_auth`` and never to the web caller.
        """
        _check_username(username)
        with internal_errors("Plugin authorization"):
            instance = await self.repository.resolve(plugin_id)
            if instance is None or instance.partition_key not in (UNOWNED_PARTITION, username):
                logger.warning(f"Authorize: plugin '{plugin_id}' not found for user '{username}'.")
                raise NotFoundError("Plugin not found.")
            if not self.token_manager.token_matches(auth_token, instance.auth_request_token_hash):
                logger.warning(f"Authorize: invalid auth token for plugin '{plugin_id}'.")
                raise UnauthenticatedError("Invalid authorization token.")
            now = self.clock()
            if instance.auth_request_expiry is None or now > instance.auth_request_expiry:
                logger.warning(f"Authorize: auth token for plugin '{plugin_id}' expired.")
                raise ExpiredError("Authorization request expired. Request a new one from the extension.")

            rolling_key, rolling_key_hash = self.token_manager.generate_token_and_hash()
            authorized = instance.model_copy(update={
                "partition_key": username,
                "owner_username": username,
                "authorized": True,
                "rolling_key_hash": rolling_key_hash,
                "rolling_key_version": 1,
                "rolling_key_created_at": now,
                "pending_rolling_key": self.encryptor.encrypt(rolling_key),
                "auth_request_token_hash": None,
                "auth_request_expiry": None,
                "authorized_at": now,
                "last_seen": now,
                "updated_at": now,
            })

            if instance.partition_key == username:
                try:
                    await self.repository.replace(authorized, instance.etag)
                except PreconditionFailedError:
                    raise ConflictError("Plugin changed during authorization. Request a new authorization.")
            else:
                consumed = instance.model_copy(update={
                    "auth_request_token_hash": None,
                    "auth_request_expiry": None,
                    "updated_at": now,
                })
                await self._relocate(instance, consumed, authorized)

        logger.info(f"Plugin '{plugin_id}' authorized for user '{username}'.")
        return AuthorizeResponse(username=username)

    async def _relocate(self, current: PluginInstance, retired: PluginInstance, target: PluginInstance) -> None:
        """
        Move an instance to ``target.partition_key``.

        The old copy is first rewritten as ``retired`` conditionally on its
        etag; whoever wins that write owns the move. The new copy is then
        written and the old one removed best-effort. A leftover old copy is
        older than the new one, so ``resolve`` ignores it.
        """
        try:
            await self.repository.replace(retired, current.etag)
        except PreconditionFailedError:
            logger.warning(f"Plugin '{current.id}' changed before it could be moved.")
            raise ConflictError("Plugin was modified concurrently. Try again.")
        await self.repository.upsert(target)
        await self.repository.discard(current.id, current.partition_key)
        logger.debug(f"Moved plugin '{current.id}' from '{current.partition_key}' to '{target.partition_key}'.")

    def _reauth_result(self, username: Optional[str]) -> CheckAuthResponse:
        return CheckAuthResponse(
            authorized=True,
            username=username,
            require_reauth=True,
            message="Rolling key already delivered. Re-authorize the plugin.",
        )

    async def check_auth(self, plugin_id: str, plugin_secret: str) -> CheckAuthResponse:
        """
        Poll for authorization; delivers the pending rolling key at most once.

        Clearing the pending key is conditional on the etag read, so two
        concurrent polls can never both receive it.
        """
        with internal_errors("Authorization check"):
            for _ in range(MAX_WRITE_ATTEMPTS):
                instance = await self._authenticate_instance(
                    plugin_id, plugin_secret, NotFoundError("Plugin not found.")
                )
                if not instance.authorized or not instance.owner_username:
                    return CheckAuthResponse(authorized=False, message="Waiting for authorization.")
                if not instance.pending_rolling_key:
                    logger.warning(f"Check-auth: pending key for plugin '{plugin_id}' already claimed.")
                    return self._reauth_result(instance.owner_username)

                rolling_key = self.encryptor.decrypt(instance.pending_rolling_key)
                now = self.clock()
                claimed = instance.model_copy(update={
                    "pending_rolling_key": None,
                    "last_seen": now,
                    "updated_at": now,
                })
                try:
                    await self.repository.replace(claimed, instance.etag)
                except PreconditionFailedError:
                    logger.warning(f"Check-auth: plugin '{plugin_id}' changed concurrently. Re-reading.")
                    continue
                logger.info(f"Plugin '{plugin_id}' claimed its rolling key.")
                return CheckAuthResponse(
                    authorized=True,
                    username=instance.owner_username,
                    rolling_key=rolling_key,
                )

        logger.warning(f"Check-auth: gave up claiming key for plugin '{plugin_id}'.")
        return self._reauth_result(None)

    async def revoke(self, plugin_id: str, username: str) -> RevokeResponse:
        """Withdraw ``username``'s authorization; the instance returns to the unowned pool."""
        _check_username(username)
        with internal_errors("Plugin revocation"):
            for _ in range(MAX_WRITE_ATTEMPTS):
                instance = await self.repository.resolve(plugin_id)
                if instance is None or instance.partition_key != username or instance.owner_username != username:
                    logger.warning(f"Revoke: plugin '{plugin_id}' not found for user '{username}'.")
                    raise NotFoundError("Plugin not found.")
                now = self.clock()
                revoked = instance.model_copy(update={
                    "authorized": False,
                    "owner_username": None,
                    "rolling_key_hash": None,
                    "rolling_key_version": 0,
                    "rolling_key_created_at": None,
                    "pending_rolling_key": None,
                    "auth_request_token_hash": None,
                    "auth_request_expiry": None,
                    "revoked_at": now,
                    "updated_at": now,
                })
                unowned = revoked.model_copy(update={"partition_key": UNOWNED_PARTITION})
                try:
                    await self._relocate(instance, revoked, unowned)
                except ConflictError:
                    continue
                logger.info(f"Plugin '{plugin_id}' revoked by user '{username}'.")
                return RevokeResponse()
        raise ConflictError("Plugin is being modified concurrently. Try again.")

    async def list_plugins(self, username: str) -> ListPluginsResponse:
        _check_username(username)
        with internal_errors("Plugin listing"):
            instances = await self.repository.list_owned(username)
        summaries: List[PluginSummary] = [
            PluginSummary(
                id=i.id,
                authorized=i.authorized,
                authorized_at=i.authorized_at,
                last_seen=i.last_seen,
                rolling_key_version=i.rolling_key_version,
            )
            for i in instances
        ]
        return ListPluginsResponse(plugins=summaries)


def _check_username(username: str) -> None:
    if not username or username == UNOWNED_PARTITION:
        raise InvalidRequestError("A valid username is required.")
