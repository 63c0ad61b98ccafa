# noke/tokens/endpoints.py
import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, Path, Query

from ..dependencies import DocumentStoreDep, TokenManagerDep
from ..errors import UnauthenticatedError
from ..plugins.dependencies import bearer_token
from .models import (
    CreateTokenRequest,
    CreateTokenResponse,
    ListTokensResponse,
    RevokeTokenResponse,
    TokenSummary,
    ValidateTokenResponse,
)
from .service import ApiTokenService

logger = logging.getLogger(__name__)
tokens_router = APIRouter()


def get_api_token_service(store: DocumentStoreDep, token_manager: TokenManagerDep) -> ApiTokenService:
    return ApiTokenService(store, token_manager=token_manager)


ApiTokenServiceDep = Annotated[ApiTokenService, Depends(get_api_token_service)]


@tokens_router.post(
    "/tokens",
    response_model=CreateTokenResponse,
    summary="Create a static API token",
    tags=["API Tokens"]
)
async def create_token(request_data: CreateTokenRequest, service: ApiTokenServiceDep):
    """The raw token is only ever part of this response."""
    raw_token, token = await service.create_token(
        request_data.username,
        name=request_data.name,
        expires_in=request_data.expires_in,
        permissions=request_data.permissions,
    )
    return CreateTokenResponse(token=raw_token, token_id=token.id, name=token.name, expires_at=token.expires_at)


@tokens_router.get(
    "/tokens",
    response_model=ListTokensResponse,
    summary="List a user's API tokens (metadata only)",
    tags=["API Tokens"]
)
async def list_tokens(
    username: Annotated[str, Query(min_length=1)],
    service: ApiTokenServiceDep,
):
    tokens = await service.list_tokens(username)
    return ListTokensResponse(tokens=[
        TokenSummary(
            id=t.id,
            name=t.name,
            created_at=t.created_at,
            last_used=t.last_used,
            expires_at=t.expires_at,
            permissions=t.permissions,
        )
        for t in tokens
    ])


@tokens_router.delete(
    "/tokens/{token_id}",
    response_model=RevokeTokenResponse,
    summary="Revoke an API token",
    tags=["API Tokens"]
)
async def revoke_token(
    token_id: Annotated[str, Path(description="Identifier of the token to revoke.")],
    username: Annotated[str, Query(min_length=1)],
    service: ApiTokenServiceDep,
):
    await service.revoke_token(token_id, username)
    return RevokeTokenResponse()


@tokens_router.post(
    "/validate-token",
    response_model=ValidateTokenResponse,
    summary="Check a static API token and return its owner",
    tags=["API Tokens"]
)
async def validate_token(
    service: ApiTokenServiceDep,
    x_api_key: Annotated[Optional[str], Header(alias="x-api-key")] = None,
    authorization: Annotated[Optional[str], Header()] = None,
):
    token = x_api_key or bearer_token(authorization)
    if not token:
        raise UnauthenticatedError("API key missing. Send it in the x-api-key header.")
    api_token = await service.validate_token(token)
    return ValidateTokenResponse(username=api_token.username, token_name=api_token.name)
