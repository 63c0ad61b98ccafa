# noke/vault/service.py
import logging
import secrets
import string
from typing import List, Optional, Tuple
from urllib.parse import urlsplit
from uuid import uuid4

from ..errors import InvalidRequestError, internal_errors
from ..storage import AbstractDocumentStore
from ..utils import FernetEncryptor
from .models import ENTRY_DOC_TYPE, SYMBOL_CHARACTERS, EntryView, VaultEntry

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 4
MAX_PASSWORD_LENGTH = 256


def extract_domain(url: str) -> str:
    """Host part of ``url`` without a leading ``www.``; bare hosts are accepted as-is."""
    value = url.strip().lower()
    host = urlsplit(value).hostname or value.split("/")[0]
    return host[4:] if host.startswith("www.") else host


def domains_match(entry_url: str, domain: str) -> bool:
    if not entry_url or not domain:
        return False
    entry_domain = extract_domain(entry_url)
    if not entry_domain:
        return domain in entry_url.lower()
    return entry_domain in domain or domain in entry_domain


class VaultService:
    """Read side of the vault used by the plugin data plane."""

    def __init__(self, store: AbstractDocumentStore, encryptor: FernetEncryptor):
        self.store = store
        self.encryptor = encryptor

    async def add_entry(
        self,
        username: str,
        name: str,
        login_username: str = "",
        password: str = "",
        url: str = "",
        notes: str = "",
        folder: Optional[str] = None,
    ) -> VaultEntry:
        entry = VaultEntry(
            id=f"entry_{uuid4()}",
            partition_key=username,
            username=username,
            name=name,
            login_username=login_username,
            url=url,
            notes=notes,
            folder=folder,
        )
        with internal_errors("Entry creation"):
            entry.password = self.encryptor.encrypt(password)
            stored = VaultEntry.from_document(await self.store.create(entry.to_document()))
        logger.info(f"Stored entry '{stored.id}' for user '{username}'.")
        return stored

    async def _load_entries(self, username: str) -> List[VaultEntry]:
        docs = await self.store.query_partition(ENTRY_DOC_TYPE, username)
        return [VaultEntry.from_document(doc) for doc in docs]

    def _to_view(self, entry: VaultEntry) -> EntryView:
        return EntryView(
            id=entry.id,
            name=entry.name,
            login_username=entry.login_username,
            password=self.encryptor.decrypt(entry.password) if entry.password else "",
            url=entry.url,
            notes=entry.notes,
            folder=entry.folder,
        )

    async def list_entries(self, username: str) -> List[EntryView]:
        with internal_errors("Entry listing"):
            return [self._to_view(e) for e in await self._load_entries(username)]

    async def search_entries(self, username: str, url: Optional[str]) -> Tuple[str, List[EntryView]]:
        """Entries whose URL domain contains, or is contained in, the domain of ``url``."""
        if not url or not url.strip():
            raise InvalidRequestError("The url parameter is required.")
        domain = extract_domain(url)
        with internal_errors("Entry search"):
            entries = await self._load_entries(username)
            matches = [self._to_view(e) for e in entries if domains_match(e.url, domain)]
        logger.debug(f"Search for '{domain}' by '{username}' matched {len(matches)} entries.")
        return domain, matches

    def generate_password(
        self,
        length: int = 16,
        uppercase: bool = True,
        lowercase: bool = True,
        numbers: bool = True,
        symbols: bool = True,
    ) -> str:
        alphabet = ""
        if lowercase:
            alphabet += string.ascii_lowercase
        if uppercase:
            alphabet += string.ascii_uppercase
        if numbers:
            alphabet += string.digits
        if symbols:
            alphabet += SYMBOL_CHARACTERS
        if not alphabet:
            raise InvalidRequestError("At least one character class must be enabled.")
        if not MIN_PASSWORD_LENGTH <= length <= MAX_PASSWORD_LENGTH:
            raise InvalidRequestError(
                f"Password length must be between {MIN_PASSWORD_LENGTH} and {MAX_PASSWORD_LENGTH}."
            )
        return "".join(secrets.choice(alphabet) for _ in range(length))
