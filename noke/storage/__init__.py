# noke/storage/__init__.py

"""Storage module initialization.

Provides the keyed document store used by every other module, plus the
shared SQLite connection management behind it.
"""

from .sqlite_base import (
    get_sqlite_db_connection,
    init_sqlite_db,
    close_sqlite_db_connection
)
from .storage_interfaces import AbstractDocumentStore, ETAG_KEY, PARTITION_KEY
from .errors import (
    DocumentStoreError,
    DocumentConflictError,
    DocumentNotFoundError,
    PreconditionFailedError
)
from .sqlite_document_store import SQLiteDocumentStore, get_sqlite_document_store

__all__ = [
    "get_sqlite_db_connection",
    "init_sqlite_db",
    "close_sqlite_db_connection",
    "AbstractDocumentStore",
    "ETAG_KEY",
    "PARTITION_KEY",
    "DocumentStoreError",
    "DocumentConflictError",
    "DocumentNotFoundError",
    "PreconditionFailedError",
    "SQLiteDocumentStore",
    "get_sqlite_document_store",
]
