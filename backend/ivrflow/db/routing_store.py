"""RoutingStore - routing directory entries and their version snapshots."""

import json
import uuid
from datetime import datetime, timezone
from typing import Any

import aiosqlite

from ivrflow.db.database import get_db
from ivrflow.errors import ConflictError
from ivrflow.models import RoutingEntry, RoutingEntryCreate, RoutingEntryUpdate, VersionSnapshot


def _generate_id() -> str:
    """Generate a unique ID."""
    return str(uuid.uuid4())


def _now() -> str:
    """Get current timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


class RoutingStore:
    """Storage for routing entries and routing version rows.

    Methods never commit; writes run inside ``transaction()``.
    """

    # ==================== Routing entries ====================

    async def create_entry(self, entry: RoutingEntryCreate) -> RoutingEntry:
        """Create a routing entry. The source id must be unused among active entries."""
        existing = await self.lookup_by_source_id(entry.source_id)
        if existing is not None:
            raise ConflictError(
                f"Source id '{entry.source_id}' is already routed to '{existing.routing_id}'"
            )

        db = await get_db()
        entry_id = _generate_id()
        now = _now()
        await db.execute(
            """
            INSERT INTO routing_entries (routing_entry_id, source_id, routing_id, init_segment,
                                         language_code, message_store_id, scheduler_id,
                                         feature_flags_json, config_json, is_active,
                                         created_at, created_by, updated_at, updated_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?, ?, ?)
            """,
            (
                entry_id,
                entry.source_id,
                entry.routing_id,
                entry.init_segment,
                entry.language_code,
                entry.message_store_id,
                entry.scheduler_id,
                json.dumps(entry.feature_flags),
                json.dumps(entry.config),
                now,
                entry.created_by,
                now,
                entry.created_by,
            ),
        )

        return RoutingEntry(
            routing_entry_id=entry_id,
            source_id=entry.source_id,
            routing_id=entry.routing_id,
            init_segment=entry.init_segment,
            language_code=entry.language_code,
            message_store_id=entry.message_store_id,
            scheduler_id=entry.scheduler_id,
            feature_flags=entry.feature_flags,
            config=entry.config,
            is_active=True,
            created_at=now,
            created_by=entry.created_by,
            updated_at=now,
            updated_by=entry.created_by,
        )

    async def get_entry(self, routing_entry_id: str) -> RoutingEntry | None:
        db = await get_db()
        cursor = await db.execute(
            "SELECT * FROM routing_entries WHERE routing_entry_id = ?",
            (routing_entry_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_entry(row) if row else None

    async def lookup_by_source_id(self, source_id: str) -> RoutingEntry | None:
        """Find the active entry for a source id."""
        db = await get_db()
        cursor = await db.execute(
            "SELECT * FROM routing_entries WHERE source_id = ? AND is_active = 1",
            (source_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_entry(row) if row else None

    async def list_entries(
        self, routing_id: str | None = None, include_inactive: bool = False
    ) -> list[RoutingEntry]:
        db = await get_db()
        query = "SELECT * FROM routing_entries WHERE 1 = 1"
        params: list[Any] = []
        if routing_id is not None:
            query += " AND routing_id = ?"
            params.append(routing_id)
        if not include_inactive:
            query += " AND is_active = 1"
        query += " ORDER BY created_at, source_id"

        cursor = await db.execute(query, params)
        return [self._row_to_entry(row) for row in await cursor.fetchall()]

    async def primary_entry(self, routing_id: str) -> RoutingEntry | None:
        """The oldest active entry of a routing; its init segment is the flow's entry point."""
        entries = await self.list_entries(routing_id)
        return entries[0] if entries else None

    async def routing_exists(self, routing_id: str) -> bool:
        db = await get_db()
        cursor = await db.execute(
            "SELECT 1 FROM routing_entries WHERE routing_id = ? AND is_active = 1 LIMIT 1",
            (routing_id,),
        )
        return await cursor.fetchone() is not None

    async def update_entry(
        self, routing_entry_id: str, update: RoutingEntryUpdate
    ) -> RoutingEntry | None:
        """Apply the non-null fields of ``update`` to an active entry."""
        current = await self.get_entry(routing_entry_id)
        if current is None or not current.is_active:
            return None

        changes = update.model_dump(exclude_none=True, exclude={"updated_by"})
        merged = current.model_copy(update=changes)

        db = await get_db()
        now = _now()
        await db.execute(
            """
            UPDATE routing_entries
            SET init_segment = ?, language_code = ?, message_store_id = ?, scheduler_id = ?,
                feature_flags_json = ?, config_json = ?, updated_at = ?, updated_by = ?
            WHERE routing_entry_id = ?
            """,
            (
                merged.init_segment,
                merged.language_code,
                merged.message_store_id,
                merged.scheduler_id,
                json.dumps(merged.feature_flags),
                json.dumps(merged.config),
                now,
                update.updated_by,
                routing_entry_id,
            ),
        )
        return merged.model_copy(update={"updated_at": now, "updated_by": update.updated_by})

    async def deactivate_entry(self, routing_entry_id: str, updated_by: str | None = None) -> bool:
        db = await get_db()
        cursor = await db.execute(
            """
            UPDATE routing_entries SET is_active = 0, updated_at = ?, updated_by = ?
            WHERE routing_entry_id = ? AND is_active = 1
            """,
            (_now(), updated_by, routing_entry_id),
        )
        return cursor.rowcount > 0

    async def deactivate_routing(self, routing_id: str, updated_by: str | None = None) -> int:
        """Deactivate every active entry of a routing. Returns the count."""
        db = await get_db()
        cursor = await db.execute(
            """
            UPDATE routing_entries SET is_active = 0, updated_at = ?, updated_by = ?
            WHERE routing_id = ? AND is_active = 1
            """,
            (_now(), updated_by, routing_id),
        )
        return cursor.rowcount

    # ==================== Versions ====================

    async def next_version_number(self, routing_id: str) -> int:
        db = await get_db()
        cursor = await db.execute(
            "SELECT MAX(version_number) AS latest FROM routing_versions WHERE routing_id = ?",
            (routing_id,),
        )
        row = await cursor.fetchone()
        return (row["latest"] or 0) + 1

    async def insert_version(
        self,
        routing_id: str,
        version_number: int,
        snapshot: list[dict[str, Any]],
        comment: str | None,
        created_by: str | None,
    ) -> VersionSnapshot:
        db = await get_db()
        version_id = _generate_id()
        now = _now()
        await db.execute(
            """
            INSERT INTO routing_versions (version_id, routing_id, version_number, is_active,
                                          snapshot_json, comment, created_at, created_by)
            VALUES (?, ?, ?, 0, ?, ?, ?, ?)
            """,
            (version_id, routing_id, version_number, json.dumps(snapshot), comment, now, created_by),
        )
        return VersionSnapshot(
            version_id=version_id,
            routing_id=routing_id,
            version_number=version_number,
            is_active=False,
            snapshot=snapshot,
            comment=comment,
            created_at=now,
            created_by=created_by,
        )

    async def get_version(self, version_id: str) -> VersionSnapshot | None:
        db = await get_db()
        cursor = await db.execute(
            "SELECT * FROM routing_versions WHERE version_id = ?",
            (version_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_version(row) if row else None

    async def list_versions(self, routing_id: str) -> list[VersionSnapshot]:
        """Versions of a routing, newest first."""
        db = await get_db()
        cursor = await db.execute(
            "SELECT * FROM routing_versions WHERE routing_id = ? ORDER BY version_number DESC",
            (routing_id,),
        )
        return [self._row_to_version(row) for row in await cursor.fetchall()]

    async def set_active_version(self, routing_id: str, version_id: str) -> None:
        """Mark ``version_id`` as the live version; every other version is cleared."""
        db = await get_db()
        await db.execute(
            "UPDATE routing_versions SET is_active = (version_id = ?) WHERE routing_id = ?",
            (version_id, routing_id),
        )

    async def delete_versions(self, version_ids: list[str]) -> int:
        if not version_ids:
            return 0
        db = await get_db()
        placeholders = ", ".join("?" for _ in version_ids)
        cursor = await db.execute(
            f"DELETE FROM routing_versions WHERE version_id IN ({placeholders})",
            version_ids,
        )
        return cursor.rowcount

    # ==================== Row mapping ====================

    @staticmethod
    def _row_to_entry(row: aiosqlite.Row) -> RoutingEntry:
        return RoutingEntry(
            routing_entry_id=row["routing_entry_id"],
            source_id=row["source_id"],
            routing_id=row["routing_id"],
            init_segment=row["init_segment"],
            language_code=row["language_code"],
            message_store_id=row["message_store_id"],
            scheduler_id=row["scheduler_id"],
            feature_flags=json.loads(row["feature_flags_json"] or "{}"),
            config=json.loads(row["config_json"] or "{}"),
            is_active=bool(row["is_active"]),
            created_at=row["created_at"],
            created_by=row["created_by"],
            updated_at=row["updated_at"],
            updated_by=row["updated_by"],
        )

    @staticmethod
    def _row_to_version(row: aiosqlite.Row) -> VersionSnapshot:
        return VersionSnapshot(
            version_id=row["version_id"],
            routing_id=row["routing_id"],
            version_number=row["version_number"],
            is_active=bool(row["is_active"]),
            snapshot=json.loads(row["snapshot_json"]),
            comment=row["comment"],
            created_at=row["created_at"],
            created_by=row["created_by"],
        )
