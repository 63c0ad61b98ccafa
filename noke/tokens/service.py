# noke/tokens/service.py
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from ..errors import NotFoundError, UnauthorizedError, internal_errors
from ..storage import AbstractDocumentStore, DocumentNotFoundError
from .models import API_TOKEN_DOC_TYPE, ApiToken, TokenExpiry
from .token_manager import DefaultTokenManager, TokenManagerProtocol

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApiTokenService:
    """Static API tokens: long-lived, never rotated, revoked by deletion."""

    def __init__(
        self,
        store: AbstractDocumentStore,
        token_manager: Optional[TokenManagerProtocol] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.token_manager = token_manager or DefaultTokenManager()
        self.clock = clock

    async def create_token(
        self,
        username: str,
        name: Optional[str] = None,
        expires_in: TokenExpiry = TokenExpiry.NEVER,
        permissions: Optional[List[str]] = None,
    ) -> Tuple[str, ApiToken]:
        """
        Create a token for ``username``.

        Returns:
            The raw token (shown to the user once) and the stored record.
        """
        raw_token, token_hash = self.token_manager.generate_token_and_hash()
        now = self.clock()
        lifetime = expires_in.to_timedelta()
        token = ApiToken(
            id=self.token_manager.generate_api_token_id(),
            partition_key=username,
            username=username,
            name=name or "API Token",
            token_hash=token_hash,
            created_at=now,
            expires_at=now + lifetime if lifetime else None,
        )
        if permissions:
            token.permissions = list(permissions)
        with internal_errors("Token creation"):
            stored = ApiToken.from_document(await self.store.create(token.to_document()))
        logger.info(f"Created API token '{stored.id}' ({stored.name}) for user '{username}'.")
        return raw_token, stored

    async def list_tokens(self, username: str) -> List[ApiToken]:
        with internal_errors("Token listing"):
            docs = await self.store.query_partition(API_TOKEN_DOC_TYPE, username)
        return [ApiToken.from_document(doc) for doc in docs]

    async def revoke_token(self, token_id: str, username: str) -> None:
        with internal_errors("Token revocation"):
            try:
                await self.store.delete(token_id, username)
            except DocumentNotFoundError:
                logger.warning(f"Token '{token_id}' not found for user '{username}'.")
                raise NotFoundError("Token not found.")
        logger.info(f"Revoked API token '{token_id}' of user '{username}'.")

    async def validate_token(self, raw_token: str) -> ApiToken:
        """
        Look up a presented static token.

        Raises:
            UnauthorizedError: Unknown or expired token.
        """
        token_hash = self.token_manager.hash_token(raw_token)
        with internal_errors("Token validation"):
            docs = await self.store.query_by_field(API_TOKEN_DOC_TYPE, "token_hash", token_hash)
            if not docs:
                logger.warning(f"Unknown API token presented (hash {token_hash[:10]}...).")
                raise UnauthorizedError("Invalid API token.")
            token = ApiToken.from_document(docs[0])
            now = self.clock()
            if token.expires_at and token.expires_at < now:
                logger.warning(f"Expired API token '{token.id}' presented for user '{token.username}'.")
                raise UnauthorizedError("API token expired.")
            # Losing a concurrent last_used update is harmless
            token.last_used = now
            await self.store.upsert(token.to_document())
        return token
