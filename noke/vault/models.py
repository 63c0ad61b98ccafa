# noke/vault/models.py
from typing import List, Optional

from ..schemas import CamelModel
from ..storage.models import StoredDocument

ENTRY_DOC_TYPE = "entry"

SYMBOL_CHARACTERS = "!@#$%^&*()_+-=[]{}|;:,.<>?"


class VaultEntry(StoredDocument):
    """A stored credential. ``password`` holds Fernet ciphertext (or legacy plaintext)."""
    type: str = ENTRY_DOC_TYPE
    username: str  # owner, equal to partition_key
    name: str = "Untitled"
    login_username: str = ""
    password: str = ""
    url: str = ""
    notes: str = ""
    folder: Optional[str] = None


class EntryView(CamelModel):
    """Entry as handed to the extension, password decrypted."""
    id: str
    name: str
    login_username: str
    password: str
    url: str
    notes: str
    folder: Optional[str] = None


class EntriesResponse(CamelModel):
    success: bool = True
    entries: List[EntryView]


class SearchResponse(EntriesResponse):
    matched_domain: str


class SearchRequest(CamelModel):
    url: Optional[str] = None


class GeneratePasswordRequest(CamelModel):
    length: int = 16
    uppercase: bool = True
    lowercase: bool = True
    numbers: bool = True
    symbols: bool = True


class GeneratePasswordResponse(CamelModel):
    success: bool = True
    password: str
