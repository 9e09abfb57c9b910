"""ChangeSetStore - rows of the change_sets table."""

import uuid
from datetime import datetime, timezone

import aiosqlite

from ivrflow.db.database import get_db
from ivrflow.errors import ConcurrentModificationError
from ivrflow.models import OPEN_STATUSES, ChangeSet, ChangeSetStatus


def _generate_id() -> str:
    """Generate a unique ID."""
    return str(uuid.uuid4())


def _now() -> str:
    """Get current timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


class ChangeSetStore:
    """Storage for change sets. Status rules live in the lifecycle manager."""

    async def create(
        self,
        routing_id: str,
        version_name: str,
        description: str | None = None,
        created_by: str | None = None,
    ) -> ChangeSet:
        db = await get_db()
        change_set_id = _generate_id()
        now = _now()
        await db.execute(
            """
            INSERT INTO change_sets (change_set_id, routing_id, status, version_name, description,
                                     is_active, revision, created_at, created_by, updated_at)
            VALUES (?, ?, ?, ?, ?, 1, 0, ?, ?, ?)
            """,
            (
                change_set_id,
                routing_id,
                ChangeSetStatus.DRAFT.value,
                version_name,
                description,
                now,
                created_by,
                now,
            ),
        )
        return ChangeSet(
            change_set_id=change_set_id,
            routing_id=routing_id,
            status=ChangeSetStatus.DRAFT,
            version_name=version_name,
            description=description,
            is_active=True,
            revision=0,
            created_at=now,
            created_by=created_by,
            updated_at=now,
        )

    async def get(self, change_set_id: str) -> ChangeSet | None:
        db = await get_db()
        cursor = await db.execute(
            "SELECT * FROM change_sets WHERE change_set_id = ?",
            (change_set_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_change_set(row) if row else None

    async def list_for_routing(
        self, routing_id: str, status: ChangeSetStatus | None = None
    ) -> list[ChangeSet]:
        """Change sets of a routing, newest first."""
        db = await get_db()
        if status is None:
            cursor = await db.execute(
                "SELECT * FROM change_sets WHERE routing_id = ? ORDER BY created_at DESC",
                (routing_id,),
            )
        else:
            cursor = await db.execute(
                """
                SELECT * FROM change_sets WHERE routing_id = ? AND status = ?
                ORDER BY created_at DESC
                """,
                (routing_id, status.value),
            )
        return [self._row_to_change_set(row) for row in await cursor.fetchall()]

    async def find_open(self, routing_id: str) -> ChangeSet | None:
        """The active draft-like change set of a routing, if any."""
        db = await get_db()
        placeholders = ", ".join("?" for _ in OPEN_STATUSES)
        cursor = await db.execute(
            f"""
            SELECT * FROM change_sets
            WHERE routing_id = ? AND is_active = 1 AND status IN ({placeholders})
            ORDER BY created_at DESC LIMIT 1
            """,
            (routing_id, *(s.value for s in OPEN_STATUSES)),
        )
        row = await cursor.fetchone()
        return self._row_to_change_set(row) if row else None

    async def count_for_routing(self, routing_id: str) -> int:
        db = await get_db()
        cursor = await db.execute(
            "SELECT COUNT(*) AS n FROM change_sets WHERE routing_id = ?",
            (routing_id,),
        )
        row = await cursor.fetchone()
        return row["n"]

    async def set_status(
        self,
        change_set: ChangeSet,
        target: ChangeSetStatus,
        published_by: str | None = None,
    ) -> ChangeSet:
        """Compare-and-set the status of ``change_set``.

        The write only lands if the row still has the status and revision
        the caller read; otherwise another writer got there first.

        Raises:
            ConcurrentModificationError: The row changed since it was read
        """
        db = await get_db()
        now = _now()
        terminal = target in (ChangeSetStatus.PUBLISHED, ChangeSetStatus.DISCARDED)
        published = target == ChangeSetStatus.PUBLISHED

        cursor = await db.execute(
            """
            UPDATE change_sets
            SET status = ?, revision = revision + 1, updated_at = ?,
                is_active = CASE WHEN ? THEN 0 ELSE is_active END,
                published_at = CASE WHEN ? THEN ? ELSE published_at END,
                published_by = CASE WHEN ? THEN ? ELSE published_by END
            WHERE change_set_id = ? AND status = ? AND revision = ?
            """,
            (
                target.value,
                now,
                terminal,
                published,
                now,
                published,
                published_by,
                change_set.change_set_id,
                change_set.status.value,
                change_set.revision,
            ),
        )
        if cursor.rowcount != 1:
            raise ConcurrentModificationError(
                f"Change set {change_set.change_set_id} was modified concurrently "
                f"(expected status '{change_set.status.value}' at revision {change_set.revision})"
            )

        changes: dict = {
            "status": target,
            "revision": change_set.revision + 1,
            "updated_at": now,
        }
        if terminal:
            changes["is_active"] = False
        if published:
            changes["published_at"] = now
            changes["published_by"] = published_by
        return change_set.model_copy(update=changes)

    @staticmethod
    def _row_to_change_set(row: aiosqlite.Row) -> ChangeSet:
        return ChangeSet(
            change_set_id=row["change_set_id"],
            routing_id=row["routing_id"],
            status=ChangeSetStatus(row["status"]),
            version_name=row["version_name"],
            description=row["description"],
            is_active=bool(row["is_active"]),
            revision=row["revision"],
            created_at=row["created_at"],
            created_by=row["created_by"],
            updated_at=row["updated_at"],
            published_at=row["published_at"],
            published_by=row["published_by"],
        )
