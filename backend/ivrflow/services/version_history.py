"""Routing entries and their version history.

Unlike segment change sets, which cannot be undone once published, routing
entries can be rolled back: a snapshot captures the active entries of a
routing and ``rollback`` recreates them.
"""

import logging

from ivrflow import config
from ivrflow.db import RoutingStore, transaction
from ivrflow.errors import NotFoundError
from ivrflow.models import (
    RoutingEntry,
    RoutingEntryCreate,
    RoutingEntryUpdate,
    VersionSnapshot,
)

logger = logging.getLogger(__name__)


class RoutingVersionHistory:
    """Routing entry CRUD plus snapshot / rollback / cleanup."""

    def __init__(self, routing: RoutingStore) -> None:
        self._routing = routing

    # ==================== Entries ====================

    async def create_entry(self, data: RoutingEntryCreate) -> RoutingEntry:
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            entry = await self._routing.create_entry(data)
        logger.info("Routed source %s to %s", entry.source_id, entry.routing_id)
        return entry

    async def get_entry(self, routing_entry_id: str) -> RoutingEntry:
        entry = await self._routing.get_entry(routing_entry_id)
        if entry is None:
            raise NotFoundError(f"Routing entry {routing_entry_id} not found")
        return entry

    async def list_entries(
        self, routing_id: str | None = None, include_inactive: bool = False
    ) -> list[RoutingEntry]:
        return await self._routing.list_entries(routing_id, include_inactive)

    async def lookup_by_source_id(self, source_id: str) -> RoutingEntry:
        entry = await self._routing.lookup_by_source_id(source_id)
        if entry is None:
            raise NotFoundError(f"No active routing for source '{source_id}'")
        return entry

    async def update_entry(
        self, routing_entry_id: str, update: RoutingEntryUpdate
    ) -> RoutingEntry:
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            entry = await self._routing.update_entry(routing_entry_id, update)
        if entry is None:
            raise NotFoundError(f"Routing entry {routing_entry_id} not found")
        return entry

    async def soft_delete_entry(
        self, routing_entry_id: str, deleted_by: str | None = None
    ) -> None:
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            deleted = await self._routing.deactivate_entry(routing_entry_id, deleted_by)
        if not deleted:
            raise NotFoundError(f"Routing entry {routing_entry_id} not found")

    # ==================== Versions ====================

    async def snapshot(
        self, routing_id: str, comment: str | None = None, created_by: str | None = None
    ) -> VersionSnapshot:
        """Capture the active entries of a routing as a new, active version.

        Raises:
            NotFoundError: The routing has no active entries
        """
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            entries = await self._routing.list_entries(routing_id)
            if not entries:
                raise NotFoundError(f"Routing '{routing_id}' has no active entries")

            version_number = await self._routing.next_version_number(routing_id)
            version = await self._routing.insert_version(
                routing_id,
                version_number,
                [e.model_dump(mode="json", by_alias=True) for e in entries],
                comment,
                created_by,
            )
            await self._routing.set_active_version(routing_id, version.version_id)

        logger.info("Captured version %d of %s", version_number, routing_id)
        return version.model_copy(update={"is_active": True})

    async def list_versions(self, routing_id: str) -> list[VersionSnapshot]:
        return await self._routing.list_versions(routing_id)

    async def get_version(self, version_id: str) -> VersionSnapshot:
        version = await self._routing.get_version(version_id)
        if version is None:
            raise NotFoundError(f"Version {version_id} not found")
        return version

    async def rollback(
        self, version_id: str, rolled_back_by: str | None = None
    ) -> list[RoutingEntry]:
        """Replace the active entries of a routing with those of a version.

        Entries are recreated with fresh ids; the version becomes the active one.
        """
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            version = await self._routing.get_version(version_id)
            if version is None:
                raise NotFoundError(f"Version {version_id} not found")

            deactivated = await self._routing.deactivate_routing(
                version.routing_id, rolled_back_by
            )
            restored = []
            for item in version.snapshot:
                data = RoutingEntryCreate.model_validate(item)
                data = data.model_copy(update={"created_by": rolled_back_by})
                restored.append(await self._routing.create_entry(data))
            await self._routing.set_active_version(version.routing_id, version_id)

        logger.info(
            "Rolled %s back to version %d (%d entries replaced, %d restored)",
            version.routing_id,
            version.version_number,
            deactivated,
            len(restored),
        )
        return restored

    async def cleanup(self, routing_id: str, keep: int | None = None) -> int:
        """Delete versions beyond the ``keep`` most recent. The active version is kept."""
        keep = config.VERSION_HISTORY_KEEP if keep is None else keep
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            versions = await self._routing.list_versions(routing_id)
            stale = [v.version_id for v in versions[keep:] if not v.is_active]
            deleted = await self._routing.delete_versions(stale)

        if deleted:
            logger.info("Deleted %d old versions of %s", deleted, routing_id)
        return deleted
