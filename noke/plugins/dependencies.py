# noke/plugins/dependencies.py
import logging
from typing import Annotated, Optional

from fastapi import Depends, Header

from ..dependencies import DocumentStoreDep, EncryptorDep, TokenManagerDep
from ..errors import UnauthenticatedError
from .service import PluginAuthService
from .validator import AuthContext, RequestAuthenticator

logger = logging.getLogger(__name__)


def get_plugin_auth_service(
    store: DocumentStoreDep,
    token_manager: TokenManagerDep,
    encryptor: EncryptorDep,
) -> PluginAuthService:
    return PluginAuthService(store, token_manager=token_manager, encryptor=encryptor)


def get_request_authenticator(store: DocumentStoreDep, token_manager: TokenManagerDep) -> RequestAuthenticator:
    return RequestAuthenticator(store, token_manager=token_manager)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


async def get_plugin_auth_context(
    authenticator: Annotated[RequestAuthenticator, Depends(get_request_authenticator)],
    x_plugin_id: Annotated[Optional[str], Header(alias="x-plugin-id")] = None,
    x_api_key: Annotated[Optional[str], Header(alias="x-api-key")] = None,
    authorization: Annotated[Optional[str], Header()] = None,
) -> AuthContext:
    """
    Authenticates a data-plane request.

    ``x-plugin-id`` selects rolling-key mode, in which the key must come in
    ``x-api-key``. Otherwise the credential is a static API token from
    ``x-api-key`` or ``Authorization: Bearer``.
    """
    if x_plugin_id:
        if not x_api_key:
            logger.warning(f"Rolling-key request for plugin '{x_plugin_id}' without x-api-key header.")
            raise UnauthenticatedError("Rolling key missing. Send it in the x-api-key header.")
        return await authenticator.authenticate(x_plugin_id, x_api_key)
    return await authenticator.authenticate(None, x_api_key or bearer_token(authorization))
