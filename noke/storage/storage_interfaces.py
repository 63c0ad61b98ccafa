# noke/storage/storage_interfaces.py
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

# Reserved keys managed by the store itself
ETAG_KEY = "_etag"
PARTITION_KEY = "partition_key"


class AbstractDocumentStore(ABC):
    """
    Abstract base class defining the interface for keyed document storage.

    Documents are JSON objects carrying at least ``id``, ``type`` and
    ``partition_key``. A document is addressed by (id, partition_key); the
    partition key of a stored document cannot be changed in place, moving a
    document means writing it to the new partition and deleting the old copy.

    Every read returns the document with a store-assigned ``_etag`` which
    changes on each write. ``replace_if_match`` uses it for optimistic
    concurrency.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the storage backend and prepare it for operations."""
        pass

    @abstractmethod
    async def teardown(self) -> None:
        """Clean up resources and properly close the storage backend."""
        pass

    @abstractmethod
    async def create(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a new document.

        Raises:
            DocumentConflictError: If (id, partition_key) is already taken.
        """
        pass

    @abstractmethod
    async def get(self, doc_id: str, partition_key: str) -> Optional[Dict[str, Any]]:
        """Point read by id and partition key."""
        pass

    @abstractmethod
    async def query_by_field(self, doc_type: str, field: str, value: Any) -> List[Dict[str, Any]]:
        """
        Cross-partition query for documents of ``doc_type`` whose top-level
        ``field`` equals ``value``. Newest writes first.
        """
        pass

    @abstractmethod
    async def query_partition(self, doc_type: str, partition_key: str) -> List[Dict[str, Any]]:
        """All documents of ``doc_type`` in one partition. Newest writes first."""
        pass

    @abstractmethod
    async def upsert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        """Unconditionally insert or overwrite a document."""
        pass

    @abstractmethod
    async def replace_if_match(self, doc: Dict[str, Any], etag: str) -> Dict[str, Any]:
        """
        Overwrite an existing document only if its stored etag equals ``etag``.

        Raises:
            PreconditionFailedError: If the document changed or disappeared.
        """
        pass

    @abstractmethod
    async def delete(self, doc_id: str, partition_key: str) -> None:
        """
        Remove a document.

        Raises:
            DocumentNotFoundError: If there is nothing to delete.
        """
        pass
