# noke/storage/sqlite_base.py
import sqlite3
import logging
from pathlib import Path
from typing import Optional

from ..settings import settings

logger = logging.getLogger(__name__)

# Process-wide connection shared by every document store instance
_db_connection: Optional[sqlite3.Connection] = None

DOCUMENTS_SCHEMA = (
    '''
    CREATE TABLE IF NOT EXISTS documents (
        id TEXT NOT NULL,
        partition_key TEXT NOT NULL,
        doc_type TEXT NOT NULL,
        body TEXT NOT NULL,
        etag TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (id, partition_key)
    )
    ''',
    "CREATE INDEX IF NOT EXISTS idx_documents_type_partition ON documents (doc_type, partition_key)",
)


def _open(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    # Shared across worker threads
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


async def get_sqlite_db_connection() -> sqlite3.Connection:
    """
    Return the shared connection, opening it and creating the schema on first use.

    The path comes from ``settings.sqlite_db_path`` at the time of the first
    call; tests close the connection to switch files.

    Raises:
        sqlite3.Error: The database file cannot be opened.
    """
    global _db_connection
    if _db_connection is None:
        db_path = Path(settings.sqlite_db_path).resolve()
        try:
            conn = _open(db_path)
            await init_sqlite_db(conn)
        except sqlite3.Error as e:
            logger.error(f"Could not open document database at {db_path}: {e}", exc_info=True)
            raise
        _db_connection = conn
        logger.info(f"Document database opened at {db_path}.")
    return _db_connection


async def init_sqlite_db(conn: Optional[sqlite3.Connection] = None):
    """
    Create the ``documents`` table if missing.

    Plugin instances, API tokens, user accounts and vault entries all share
    it, keyed by (id, partition_key). ``etag`` changes on every write and
    backs conditional replaces; ``updated_at`` orders copies of the same id.
    """
    db_conn = conn or await get_sqlite_db_connection()
    for statement in DOCUMENTS_SCHEMA:
        db_conn.execute(statement)
    db_conn.commit()
    logger.debug("Document schema verified.")


async def close_sqlite_db_connection():
    """Close the shared connection; the next getter call reopens it."""
    global _db_connection
    if _db_connection is not None:
        _db_connection.close()
        _db_connection = None
        logger.info("Document database connection closed.")
