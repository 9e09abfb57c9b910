"""SQLite database connection, schema initialization and transactions."""

import asyncio
import logging
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from ivrflow.errors import ConflictError, PersistenceError

logger = logging.getLogger(__name__)

# Global connection holder
_db_connection: aiosqlite.Connection | None = None

# Serializes writers on the shared connection
_write_lock: asyncio.Lock | None = None


async def init_database(db_path: str) -> None:
    """Initialize the database connection and create schema."""
    global _db_connection, _write_lock

    # Ensure the data directory exists
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    # Autocommit mode: transaction() issues BEGIN/COMMIT explicitly
    _db_connection = await aiosqlite.connect(db_path, isolation_level=None)
    _db_connection.row_factory = aiosqlite.Row
    _write_lock = asyncio.Lock()

    await _db_connection.execute("PRAGMA foreign_keys = ON")

    await _create_schema(_db_connection)


async def close_database() -> None:
    """Close the database connection."""
    global _db_connection, _write_lock
    if _db_connection:
        await _db_connection.close()
        _db_connection = None
        _write_lock = None


async def get_db() -> aiosqlite.Connection:
    """Get the database connection."""
    if _db_connection is None:
        raise RuntimeError("Database not initialized. Call init_database first.")
    return _db_connection


@asynccontextmanager
async def transaction(timeout: float | None = None) -> AsyncIterator[aiosqlite.Connection]:
    """Run the body as one write transaction.

    Commits when the body returns and rolls back on any exception, so a
    multi-step write is either fully applied or not applied at all. Writers
    are serialized; transactions do not nest.

    Args:
        timeout: Ceiling in seconds for the body, ``None`` for no ceiling

    Raises:
        ConflictError: A uniqueness constraint rejected a write
        PersistenceError: The database rejected the transaction or the
            timeout expired
    """
    db = await get_db()
    if _write_lock is None:
        raise RuntimeError("Database not initialized. Call init_database first.")

    async with _write_lock:
        await db.execute("BEGIN IMMEDIATE")
        try:
            async with asyncio.timeout(timeout):
                yield db
        except BaseException as exc:
            if db.in_transaction:
                await db.execute("ROLLBACK")
            logger.warning("Transaction rolled back: %s", exc.__class__.__name__)
            if isinstance(exc, sqlite3.IntegrityError):
                raise ConflictError(f"Constraint violation: {exc}") from exc
            if isinstance(exc, sqlite3.Error):
                raise PersistenceError(f"Database error: {exc}") from exc
            if isinstance(exc, TimeoutError):
                raise PersistenceError(
                    f"Transaction exceeded its {timeout:g}s ceiling"
                ) from exc
            raise
        else:
            await db.execute("COMMIT")


async def _create_schema(db: aiosqlite.Connection) -> None:
    """Create database tables and indexes."""
    # =========================================================================
    # Routing directory
    # =========================================================================
    await db.execute("""
        CREATE TABLE IF NOT EXISTS routing_entries (
            routing_entry_id TEXT PRIMARY KEY,
            source_id TEXT NOT NULL,
            routing_id TEXT NOT NULL,
            init_segment TEXT NOT NULL DEFAULT 'init',
            language_code TEXT,
            message_store_id INTEGER,
            scheduler_id INTEGER,
            feature_flags_json TEXT NOT NULL DEFAULT '{}',
            config_json TEXT NOT NULL DEFAULT '{}',
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            created_by TEXT,
            updated_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_by TEXT
        )
    """)

    # Source ids are unique among live entries only; rollback recreates them
    await db.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS idx_routing_entries_source_active
        ON routing_entries(source_id) WHERE is_active = 1
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_routing_entries_routing
        ON routing_entries(routing_id, is_active)
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS routing_versions (
            version_id TEXT PRIMARY KEY,
            routing_id TEXT NOT NULL,
            version_number INTEGER NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 0,
            snapshot_json TEXT NOT NULL,
            comment TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            created_by TEXT,
            UNIQUE(routing_id, version_number)
        )
    """)

    # =========================================================================
    # Segment type dictionary
    # =========================================================================
    await db.execute("""
        CREATE TABLE IF NOT EXISTS segment_types (
            segment_type_name TEXT PRIMARY KEY,
            display_name TEXT,
            category TEXT,
            is_terminal INTEGER NOT NULL DEFAULT 0,
            hooks_json TEXT NOT NULL DEFAULT '{}',
            hooks_schema_json TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS segment_type_keys (
            segment_type_name TEXT NOT NULL,
            key_name TEXT NOT NULL,
            key_type TEXT NOT NULL DEFAULT 'string',
            display_name TEXT,
            is_required INTEGER NOT NULL DEFAULT 0,
            default_value TEXT,
            is_displayed INTEGER NOT NULL DEFAULT 1,
            is_editable INTEGER NOT NULL DEFAULT 1,
            key_order INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (segment_type_name, key_name),
            FOREIGN KEY (segment_type_name) REFERENCES segment_types(segment_type_name)
                ON DELETE CASCADE
        )
    """)

    # =========================================================================
    # Change sets (draft scopes)
    # =========================================================================
    await db.execute("""
        CREATE TABLE IF NOT EXISTS change_sets (
            change_set_id TEXT PRIMARY KEY,
            routing_id TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'draft',
            version_name TEXT NOT NULL,
            description TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            revision INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            created_by TEXT,
            updated_at TEXT NOT NULL DEFAULT (datetime('now')),
            published_at TEXT,
            published_by TEXT
        )
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_change_sets_routing_status
        ON change_sets(routing_id, status)
    """)

    # =========================================================================
    # Segments, configs and transitions
    # =========================================================================
    await db.execute("""
        CREATE TABLE IF NOT EXISTS segments (
            segment_id TEXT PRIMARY KEY,
            routing_id TEXT NOT NULL,
            segment_name TEXT NOT NULL,
            segment_type TEXT NOT NULL,
            display_name TEXT,
            change_set_id TEXT,
            segment_order INTEGER,
            hooks_json TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            created_by TEXT,
            updated_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_by TEXT,
            FOREIGN KEY (change_set_id) REFERENCES change_sets(change_set_id)
        )
    """)

    # One live segment per name and scope; NULL change_set_id is the published scope
    await db.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS idx_segments_name_scope_active
        ON segments(routing_id, segment_name, IFNULL(change_set_id, ''))
        WHERE is_active = 1
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_segments_routing_scope
        ON segments(routing_id, change_set_id, is_active, segment_order)
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS segment_configs (
            segment_id TEXT NOT NULL,
            config_key TEXT NOT NULL,
            config_value TEXT,
            value_type TEXT NOT NULL DEFAULT 'json',
            is_displayed INTEGER NOT NULL DEFAULT 1,
            is_editable INTEGER NOT NULL DEFAULT 1,
            config_order INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (segment_id, config_key),
            FOREIGN KEY (segment_id) REFERENCES segments(segment_id) ON DELETE CASCADE
        )
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS segment_transitions (
            transition_id TEXT PRIMARY KEY,
            segment_id TEXT NOT NULL,
            result_name TEXT NOT NULL,
            context_key TEXT,
            next_segment_name TEXT,
            params_json TEXT,
            transition_order INTEGER NOT NULL DEFAULT 0,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            FOREIGN KEY (segment_id) REFERENCES segments(segment_id) ON DELETE CASCADE
        )
    """)

    # (result_name, context_key) is unique per segment among live rows
    await db.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS idx_transitions_key_active
        ON segment_transitions(segment_id, result_name, IFNULL(context_key, ''))
        WHERE is_active = 1
    """)
