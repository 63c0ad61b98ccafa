# noke/plugins/repository.py
import logging
import sqlite3
from typing import List, Optional

from ..storage import (
    AbstractDocumentStore,
    DocumentNotFoundError,
    DocumentStoreError,
)
from .constants import PLUGIN_INSTANCE_DOC_TYPE
from .models import PluginInstance

logger = logging.getLogger(__name__)


class PluginInstanceRepository:
    """
    Typed access to plugin instance records in the document store.

    A plugin id can briefly exist in two partitions while an instance is being
    moved between owners. ``resolve`` treats the most recently written copy as
    the live one and cleans up the others.
    """

    def __init__(self, store: AbstractDocumentStore):
        self.store = store

    async def resolve(self, plugin_id: str) -> Optional[PluginInstance]:
        docs = await self.store.query_by_field(PLUGIN_INSTANCE_DOC_TYPE, "id", plugin_id)
        if not docs:
            return None
        # query_by_field returns newest first
        current, *stale = docs
        for orphan in stale:
            logger.warning(
                f"Plugin '{plugin_id}' has a stale copy in partition '{orphan['partition_key']}'. Removing it."
            )
            await self.discard(plugin_id, orphan["partition_key"])
        return PluginInstance.from_document(current)

    async def exists(self, plugin_id: str) -> bool:
        docs = await self.store.query_by_field(PLUGIN_INSTANCE_DOC_TYPE, "id", plugin_id)
        return bool(docs)

    async def create(self, instance: PluginInstance) -> PluginInstance:
        return PluginInstance.from_document(await self.store.create(instance.to_document()))

    async def replace(self, instance: PluginInstance, etag: str) -> PluginInstance:
        """Conditional write; raises PreconditionFailedError if ``etag`` is stale."""
        return PluginInstance.from_document(await self.store.replace_if_match(instance.to_document(), etag))

    async def upsert(self, instance: PluginInstance) -> PluginInstance:
        return PluginInstance.from_document(await self.store.upsert(instance.to_document()))

    async def list_owned(self, username: str) -> List[PluginInstance]:
        docs = await self.store.query_partition(PLUGIN_INSTANCE_DOC_TYPE, username)
        instances = [PluginInstance.from_document(doc) for doc in docs]
        return [i for i in instances if i.owner_username == username]

    async def discard(self, plugin_id: str, partition_key: str) -> None:
        """Best-effort delete of one copy. Failures are logged, never raised."""
        try:
            await self.store.delete(plugin_id, partition_key)
        except DocumentNotFoundError:
            logger.debug(f"Copy of plugin '{plugin_id}' in partition '{partition_key}' already gone.")
        except (DocumentStoreError, sqlite3.Error) as e:
            logger.error(
                f"Failed to delete copy of plugin '{plugin_id}' in partition '{partition_key}': {e}",
                exc_info=True
            )
