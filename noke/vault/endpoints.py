# noke/vault/endpoints.py
import json
import logging
from typing import Annotated, Awaitable, Callable, Optional, Type, TypeVar

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..dependencies import DocumentStoreDep, EncryptorDep
from ..errors import InvalidRequestError, NokeError, error_body
from ..plugins.dependencies import get_plugin_auth_context
from ..plugins.validator import AuthContext
from ..schemas import CamelModel
from .models import (
    EntriesResponse,
    GeneratePasswordRequest,
    GeneratePasswordResponse,
    SearchRequest,
    SearchResponse,
)
from .service import VaultService

logger = logging.getLogger(__name__)
plugin_data_router = APIRouter()

BodyModel = TypeVar("BodyModel", bound=CamelModel)


def get_vault_service(store: DocumentStoreDep, encryptor: EncryptorDep) -> VaultService:
    return VaultService(store, encryptor)


AuthContextDep = Annotated[AuthContext, Depends(get_plugin_auth_context)]
VaultServiceDep = Annotated[VaultService, Depends(get_vault_service)]


async def _read_body(request: Request, model: Type[BodyModel]) -> Optional[BodyModel]:
    """
    Parse an optional JSON body into ``model``.

    Parsed here rather than by FastAPI so that a malformed body surfaces
    inside ``_respond``, after the rolling key has been rotated.
    """
    raw = await request.body()
    if not raw.strip():
        return None
    try:
        return model.model_validate(json.loads(raw))
    except ValidationError as e:
        fields = [".".join(str(part) for part in error.get("loc", ())) for error in e.errors()]
        fields = [f for f in fields if f]
        if not fields:
            raise InvalidRequestError("Request body must be a JSON object.") from e
        raise InvalidRequestError("Missing or invalid fields: " + ", ".join(fields)) from e
    except ValueError as e:
        raise InvalidRequestError("Request body is not valid JSON.") from e


async def _respond(auth: AuthContext, produce: Callable[[], Awaitable[CamelModel]]) -> JSONResponse:
    """
    Run a data-plane action for an authenticated caller.

    In rolling-key mode the presented key is already spent at this point, so
    error responses carry the next key just like successful ones.
    """
    try:
        result = await produce()
    except NokeError as exc:
        logger.info(f"Plugin data request by '{auth.username}' failed: {exc.status_code} {exc.error}.")
        return JSONResponse(
            status_code=exc.status_code,
            content=auth.wrap_response(error_body(exc.error, exc.message, exc.require_reauth, exc.details)),
        )
    except Exception as exc:
        logger.error(f"Unexpected error in plugin data request by '{auth.username}': {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=auth.wrap_response(error_body("internal_error", "Internal error.")),
        )
    return JSONResponse(content=auth.wrap_response(result.model_dump(mode="json", by_alias=True)))


@plugin_data_router.api_route(
    "/entries",
    methods=["GET", "POST"],
    summary="List the caller's entries with decrypted passwords",
    tags=["Plugin Data"]
)
async def plugin_entries(auth: AuthContextDep, service: VaultServiceDep):
    async def produce():
        return EntriesResponse(entries=await service.list_entries(auth.username))
    return await _respond(auth, produce)


@plugin_data_router.api_route(
    "/search",
    methods=["GET", "POST"],
    summary="Find entries matching the domain of a URL",
    tags=["Plugin Data"]
)
async def plugin_search(
    request: Request,
    auth: AuthContextDep,
    service: VaultServiceDep,
    url: Annotated[Optional[str], Query()] = None,
):
    """The URL comes from the ``url`` query parameter or a ``{"url": ...}`` body."""
    async def produce():
        search_url = url
        if not search_url:
            request_data = await _read_body(request, SearchRequest)
            search_url = request_data.url if request_data else None
        domain, entries = await service.search_entries(auth.username, search_url)
        return SearchResponse(entries=entries, matched_domain=domain)
    return await _respond(auth, produce)


@plugin_data_router.post(
    "/generate",
    summary="Generate a random password",
    tags=["Plugin Data"],
    openapi_extra={"requestBody": {"content": {"application/json": {
        "schema": GeneratePasswordRequest.model_json_schema(by_alias=True)
    }}}},
)
async def plugin_generate(request: Request, auth: AuthContextDep, service: VaultServiceDep):
    async def produce():
        options = await _read_body(request, GeneratePasswordRequest) or GeneratePasswordRequest()
        return GeneratePasswordResponse(password=service.generate_password(
            length=options.length,
            uppercase=options.uppercase,
            lowercase=options.lowercase,
            numbers=options.numbers,
            symbols=options.symbols,
        ))
    return await _respond(auth, produce)
