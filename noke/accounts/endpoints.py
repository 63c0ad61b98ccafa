# noke/accounts/endpoints.py
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status

from ..dependencies import DocumentStoreDep, EncryptorDep
from .models import AccountResponse, CodeRequest, CredentialsRequest, TotpSetupResponse
from .service import AccountService

logger = logging.getLogger(__name__)
accounts_router = APIRouter()


def get_account_service(store: DocumentStoreDep, encryptor: EncryptorDep) -> AccountService:
    return AccountService(store, encryptor)


AccountServiceDep = Annotated[AccountService, Depends(get_account_service)]


@accounts_router.post(
    "/register",
    response_model=AccountResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user account",
    tags=["Accounts"]
)
async def register_account(request_data: CredentialsRequest, service: AccountServiceDep):
    return await service.register_user(request_data.username, request_data.password)


@accounts_router.post(
    "/login",
    response_model=AccountResponse,
    response_model_exclude_none=True,
    summary="Log in with username and password",
    tags=["Accounts"]
)
async def login(request_data: CredentialsRequest, service: AccountServiceDep):
    """Accounts with two-factor login enabled get ``mfaRequired`` instead of a session."""
    return await service.login(request_data.username, request_data.password)


@accounts_router.post(
    "/verify-mfa",
    response_model=AccountResponse,
    response_model_exclude_none=True,
    summary="Complete a two-factor login",
    tags=["Accounts"]
)
async def verify_mfa(request_data: CodeRequest, service: AccountServiceDep):
    return await service.verify_mfa(request_data.username, request_data.password, request_data.code)


@accounts_router.post(
    "/totp/setup",
    response_model=TotpSetupResponse,
    summary="Generate a pending TOTP secret",
    tags=["Accounts"]
)
async def setup_totp(request_data: CredentialsRequest, service: AccountServiceDep):
    return await service.setup_totp(request_data.username, request_data.password)


@accounts_router.post(
    "/totp/enable",
    response_model=AccountResponse,
    response_model_exclude_none=True,
    summary="Confirm the pending TOTP secret with a code",
    tags=["Accounts"]
)
async def enable_totp(request_data: CodeRequest, service: AccountServiceDep):
    return await service.enable_totp(request_data.username, request_data.password, request_data.code)


@accounts_router.post(
    "/totp/disable",
    response_model=AccountResponse,
    response_model_exclude_none=True,
    summary="Turn off two-factor login",
    tags=["Accounts"]
)
async def disable_totp(request_data: CredentialsRequest, service: AccountServiceDep):
    return await service.disable_totp(request_data.username, request_data.password)
