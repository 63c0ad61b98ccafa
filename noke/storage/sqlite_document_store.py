# noke/storage/sqlite_document_store.py
import sqlite3
import logging
import json
from uuid import uuid4
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone

from .storage_interfaces import AbstractDocumentStore, ETAG_KEY, PARTITION_KEY
from .errors import DocumentConflictError, DocumentNotFoundError, PreconditionFailedError
from .sqlite_base import get_sqlite_db_connection

logger = logging.getLogger(__name__)


def _write_timestamp() -> str:
    # Fixed-width so that lexical order equals chronological order
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class SQLiteDocumentStore(AbstractDocumentStore):
    """SQLite implementation of the document store (table ``documents``)."""

    async def initialize(self) -> None:
        """Initialize the store by ensuring database connection."""
        await get_sqlite_db_connection()
        logger.info("SQLiteDocumentStore initialized (tables ensured by sqlite_base).")

    async def teardown(self) -> None:
        """Clean up resources - connection is managed globally."""
        logger.info("SQLiteDocumentStore teardown (connection managed globally).")

    async def _execute_query(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        """Execute a write query with proper error handling and transaction management."""
        conn = await get_sqlite_db_connection()
        cursor = conn.cursor()
        try:
            cursor.execute(query, params)
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            raise
        except sqlite3.Error as e:
            logger.error(f"SQLite error executing query '{query}': {e}", exc_info=True)
            conn.rollback()
            raise
        return cursor

    async def _fetchall(self, query: str, params: tuple = ()) -> List[sqlite3.Row]:
        """Execute a SELECT query and return all matching rows."""
        conn = await get_sqlite_db_connection()
        cursor = conn.cursor()
        try:
            cursor.execute(query, params)
            return cursor.fetchall()
        except sqlite3.Error as e:
            logger.error(f"SQLite error during fetchall for query '{query}': {e}", exc_info=True)
            raise

    def _row_to_document(self, row: sqlite3.Row) -> Dict[str, Any]:
        doc = json.loads(row["body"])
        doc[ETAG_KEY] = row["etag"]
        return doc

    def _split(self, doc: Dict[str, Any]) -> tuple:
        """Validate addressing fields and return (id, partition_key, doc_type, body_json)."""
        doc_id = doc.get("id")
        partition_key = doc.get(PARTITION_KEY)
        doc_type = doc.get("type")
        if not doc_id or not partition_key or not doc_type:
            raise ValueError("Documents require non-empty 'id', 'partition_key' and 'type'.")
        body = {k: v for k, v in doc.items() if k != ETAG_KEY}
        return doc_id, partition_key, doc_type, json.dumps(body)

    async def create(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        doc_id, partition_key, doc_type, body = self._split(doc)
        etag = uuid4().hex
        query = '''
            INSERT INTO documents (id, partition_key, doc_type, body, etag, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
        '''
        try:
            await self._execute_query(query, (doc_id, partition_key, doc_type, body, etag, _write_timestamp()))
        except sqlite3.IntegrityError:
            raise DocumentConflictError(doc_id, partition_key)
        logger.debug(f"Created {doc_type} document '{doc_id}' in partition '{partition_key}'.")
        return {**json.loads(body), ETAG_KEY: etag}

    async def get(self, doc_id: str, partition_key: str) -> Optional[Dict[str, Any]]:
        rows = await self._fetchall(
            "SELECT body, etag FROM documents WHERE id = ? AND partition_key = ?",
            (doc_id, partition_key)
        )
        return self._row_to_document(rows[0]) if rows else None

    async def query_by_field(self, doc_type: str, field: str, value: Any) -> List[Dict[str, Any]]:
        # json_extract yields 1/0 for JSON booleans
        if isinstance(value, bool):
            value = int(value)
        query = '''
            SELECT body, etag FROM documents
            WHERE doc_type = ? AND json_extract(body, ?) = ?
            ORDER BY updated_at DESC, rowid DESC
        '''
        rows = await self._fetchall(query, (doc_type, f"$.{field}", value))
        return [self._row_to_document(row) for row in rows]

    async def query_partition(self, doc_type: str, partition_key: str) -> List[Dict[str, Any]]:
        query = '''
            SELECT body, etag FROM documents
            WHERE doc_type = ? AND partition_key = ?
            ORDER BY updated_at DESC, rowid DESC
        '''
        rows = await self._fetchall(query, (doc_type, partition_key))
        return [self._row_to_document(row) for row in rows]

    async def upsert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        doc_id, partition_key, doc_type, body = self._split(doc)
        etag = uuid4().hex
        query = '''
            INSERT INTO documents (id, partition_key, doc_type, body, etag, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id, partition_key) DO UPDATE SET
                doc_type=excluded.doc_type,
                body=excluded.body,
                etag=excluded.etag,
                updated_at=excluded.updated_at
        '''
        await self._execute_query(query, (doc_id, partition_key, doc_type, body, etag, _write_timestamp()))
        logger.debug(f"Upserted {doc_type} document '{doc_id}' in partition '{partition_key}'.")
        return {**json.loads(body), ETAG_KEY: etag}

    async def replace_if_match(self, doc: Dict[str, Any], etag: str) -> Dict[str, Any]:
        doc_id, partition_key, doc_type, body = self._split(doc)
        new_etag = uuid4().hex
        query = '''
            UPDATE documents SET doc_type = ?, body = ?, etag = ?, updated_at = ?
            WHERE id = ? AND partition_key = ? AND etag = ?
        '''
        cursor = await self._execute_query(
            query, (doc_type, body, new_etag, _write_timestamp(), doc_id, partition_key, etag)
        )
        if cursor.rowcount == 0:
            logger.debug(f"Conditional replace of '{doc_id}' in partition '{partition_key}' lost (etag {etag[:10]}).")
            raise PreconditionFailedError(doc_id, partition_key)
        return {**json.loads(body), ETAG_KEY: new_etag}

    async def delete(self, doc_id: str, partition_key: str) -> None:
        cursor = await self._execute_query(
            "DELETE FROM documents WHERE id = ? AND partition_key = ?", (doc_id, partition_key)
        )
        if cursor.rowcount == 0:
            raise DocumentNotFoundError(doc_id, partition_key)
        logger.debug(f"Deleted document '{doc_id}' from partition '{partition_key}'.")


# Global singleton instance management
_sqlite_document_store_instance: Optional[SQLiteDocumentStore] = None


async def get_sqlite_document_store() -> SQLiteDocumentStore:
    """Get or create the singleton SQLite document store instance."""
    global _sqlite_document_store_instance
    if _sqlite_document_store_instance is None:
        _sqlite_document_store_instance = SQLiteDocumentStore()
        await _sqlite_document_store_instance.initialize()
    return _sqlite_document_store_instance
