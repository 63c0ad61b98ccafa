# noke/dependencies.py
import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from .settings import settings
from .storage import AbstractDocumentStore, get_sqlite_document_store
from .tokens.token_manager import DefaultTokenManager, TokenManagerProtocol
from .utils import FernetEncryptor

logger = logging.getLogger(__name__)


async def get_document_store() -> AbstractDocumentStore:
    """Dependency provider for the document store. Currently always SQLite."""
    return await get_sqlite_document_store()


def get_token_manager() -> TokenManagerProtocol:
    """Dependency provider for the token manager."""
    return DefaultTokenManager()


@lru_cache(maxsize=1)
def _encryptor_for_key(encryption_key: str) -> FernetEncryptor:
    return FernetEncryptor(encryption_key)


def get_encryptor() -> FernetEncryptor:
    """Dependency provider for the field encryptor, rebuilt only when the key changes."""
    return _encryptor_for_key(settings.noke_encryption_key or "")


DocumentStoreDep = Annotated[AbstractDocumentStore, Depends(get_document_store)]
TokenManagerDep = Annotated[TokenManagerProtocol, Depends(get_token_manager)]
EncryptorDep = Annotated[FernetEncryptor, Depends(get_encryptor)]
