# noke/plugins/endpoints.py
import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from .dependencies import get_plugin_auth_service
from .models import (
    AuthorizeRequest,
    AuthorizeResponse,
    CheckAuthResponse,
    ListPluginsRequest,
    ListPluginsResponse,
    PluginAuthAction,
    PluginCredentialsRequest,
    RegisterResponse,
    RequestAuthResponse,
    RevokeRequest,
    RevokeResponse,
)
from .service import PluginAuthService

logger = logging.getLogger(__name__)
plugin_auth_router = APIRouter()

PluginAuthServiceDep = Annotated[PluginAuthService, Depends(get_plugin_auth_service)]


@plugin_auth_router.post(
    f"/{PluginAuthAction.REGISTER.value}",
    response_model=RegisterResponse,
    summary="Register a new plugin instance",
    tags=["Plugin Authorization"]
)
async def register_plugin(service: PluginAuthServiceDep):
    logger.info(f"Plugin auth action '{PluginAuthAction.REGISTER.value}'.")
    return await service.register()


@plugin_auth_router.post(
    f"/{PluginAuthAction.REQUEST_AUTH.value}",
    response_model=RequestAuthResponse,
    summary="Start authorization of a plugin instance",
    tags=["Plugin Authorization"]
)
async def request_plugin_auth(request_data: PluginCredentialsRequest, service: PluginAuthServiceDep):
    """Returns the URL the user must open in the web client to approve this instance."""
    logger.info(f"Plugin auth action '{PluginAuthAction.REQUEST_AUTH.value}' for '{request_data.plugin_id}'.")
    return await service.request_auth(request_data.plugin_id, request_data.plugin_secret)


@plugin_auth_router.post(
    f"/{PluginAuthAction.AUTHORIZE.value}",
    response_model=AuthorizeResponse,
    summary="Approve a pending plugin authorization (called by the web client)",
    tags=["Plugin Authorization"]
)
async def authorize_plugin(request_data: AuthorizeRequest, service: PluginAuthServiceDep):
    logger.info(
        f"Plugin auth action '{PluginAuthAction.AUTHORIZE.value}' for '{request_data.plugin_id}' "
        f"by user '{request_data.username}'."
    )
    return await service.authorize(request_data.plugin_id, request_data.auth_token, request_data.username)


@plugin_auth_router.post(
    f"/{PluginAuthAction.CHECK_AUTH.value}",
    response_model=CheckAuthResponse,
    response_model_exclude_none=True,
    summary="Poll authorization status and collect the first rolling key",
    tags=["Plugin Authorization"]
)
async def check_plugin_auth(request_data: PluginCredentialsRequest, service: PluginAuthServiceDep):
    logger.debug(f"Plugin auth action '{PluginAuthAction.CHECK_AUTH.value}' for '{request_data.plugin_id}'.")
    return await service.check_auth(request_data.plugin_id, request_data.plugin_secret)


@plugin_auth_router.post(
    f"/{PluginAuthAction.REVOKE.value}",
    response_model=RevokeResponse,
    summary="Revoke a plugin instance's authorization",
    tags=["Plugin Authorization"]
)
async def revoke_plugin(request_data: RevokeRequest, service: PluginAuthServiceDep):
    logger.info(
        f"Plugin auth action '{PluginAuthAction.REVOKE.value}' for '{request_data.plugin_id}' "
        f"by user '{request_data.username}'."
    )
    return await service.revoke(request_data.plugin_id, request_data.username)


@plugin_auth_router.post(
    f"/{PluginAuthAction.LIST.value}",
    response_model=ListPluginsResponse,
    summary="List a user's authorized plugin instances",
    tags=["Plugin Authorization"]
)
async def list_plugins(request_data: ListPluginsRequest, service: PluginAuthServiceDep):
    return await service.list_plugins(request_data.username)
