"""Segment type dictionary - the capability table consulted by the store and validator."""

import json
import logging
from typing import Any

import jsonschema

from ivrflow.db.database import get_db
from ivrflow.errors import InvalidHooksError
from ivrflow.models import ConfigKeyDefinition, KeyType, SegmentTypeCapability

logger = logging.getLogger(__name__)


def serialize_config_value(value: Any, key_type: KeyType) -> str | None:
    """Serialize a config value to its text column form."""
    if value is None:
        return None
    if key_type == KeyType.JSON:
        return json.dumps(value)
    if key_type == KeyType.BOOL:
        if isinstance(value, str):
            return "true" if value.lower() in ("true", "1") else "false"
        return "true" if value else "false"
    return str(value)


def parse_config_value(value: str | None, key_type: KeyType) -> Any:
    """Parse a stored config value back to its typed form."""
    if value is None:
        return None
    try:
        if key_type == KeyType.INT:
            return int(value)
        if key_type == KeyType.DECIMAL:
            return float(value)
    except ValueError:
        logger.warning("Stored value %r is not a valid %s", value, key_type.value)
        return value
    if key_type == KeyType.BOOL:
        return value in ("true", "1")
    if key_type == KeyType.JSON:
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return None
    return value


def validate_hooks(
    capability: SegmentTypeCapability, hooks: dict[str, str] | None, segment_name: str
) -> None:
    """Check instance hooks against the type's hooks schema.

    Raises:
        InvalidHooksError: The hooks do not satisfy the schema
    """
    if not hooks or not capability.hooks_schema:
        return
    validator = jsonschema.Draft7Validator(capability.hooks_schema)
    errors = sorted(validator.iter_errors(hooks), key=lambda e: list(e.absolute_path))
    if errors:
        first = errors[0]
        path = ".".join(str(p) for p in first.absolute_path) or "root"
        raise InvalidHooksError(
            f"Invalid hooks for segment '{segment_name}' at {path}: {first.message}",
            segment_name=segment_name,
        )


class SegmentTypeRegistry:
    """Storage for segment types and their config key definitions."""

    async def register_type(self, capability: SegmentTypeCapability) -> SegmentTypeCapability:
        """Create or replace a segment type. Caller owns the transaction."""
        if capability.hooks_schema is not None:
            try:
                jsonschema.Draft7Validator.check_schema(capability.hooks_schema)
            except jsonschema.SchemaError as e:
                raise InvalidHooksError(
                    f"Invalid hooks schema for type '{capability.segment_type_name}': "
                    f"{e.message}",
                    segment_name=capability.segment_type_name,
                ) from e

        db = await get_db()
        await db.execute(
            """
            INSERT INTO segment_types (segment_type_name, display_name, category, is_terminal,
                                       hooks_json, hooks_schema_json, is_active)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(segment_type_name) DO UPDATE SET
                display_name = excluded.display_name,
                category = excluded.category,
                is_terminal = excluded.is_terminal,
                hooks_json = excluded.hooks_json,
                hooks_schema_json = excluded.hooks_schema_json,
                is_active = excluded.is_active
            """,
            (
                capability.segment_type_name,
                capability.display_name,
                capability.category,
                1 if capability.is_terminal else 0,
                json.dumps(capability.hooks),
                json.dumps(capability.hooks_schema) if capability.hooks_schema else None,
                1 if capability.is_active else 0,
            ),
        )

        await db.execute(
            "DELETE FROM segment_type_keys WHERE segment_type_name = ?",
            (capability.segment_type_name,),
        )
        for order, key in enumerate(capability.keys):
            await db.execute(
                """
                INSERT INTO segment_type_keys (segment_type_name, key_name, key_type, display_name,
                                               is_required, default_value, is_displayed,
                                               is_editable, key_order)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    capability.segment_type_name,
                    key.key_name,
                    key.key_type.value,
                    key.display_name,
                    1 if key.is_required else 0,
                    key.default_value,
                    1 if key.is_displayed else 0,
                    1 if key.is_editable else 0,
                    order,
                ),
            )

        logger.info("Registered segment type %s", capability.segment_type_name)
        return capability

    async def resolve_type(self, name: str) -> SegmentTypeCapability | None:
        """Look up an active segment type by name."""
        db = await get_db()
        cursor = await db.execute(
            "SELECT * FROM segment_types WHERE segment_type_name = ? AND is_active = 1",
            (name,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        keys = await self._get_keys(name)
        return self._row_to_capability(row, keys)

    async def list_types(self) -> list[SegmentTypeCapability]:
        """List active segment types ordered by name."""
        db = await get_db()
        cursor = await db.execute(
            "SELECT * FROM segment_types WHERE is_active = 1 ORDER BY segment_type_name"
        )
        rows = await cursor.fetchall()

        cursor = await db.execute(
            "SELECT * FROM segment_type_keys ORDER BY segment_type_name, key_order"
        )
        keys_by_type: dict[str, list[ConfigKeyDefinition]] = {}
        for key_row in await cursor.fetchall():
            keys_by_type.setdefault(key_row["segment_type_name"], []).append(
                self._row_to_key(key_row)
            )

        return [
            self._row_to_capability(row, keys_by_type.get(row["segment_type_name"], []))
            for row in rows
        ]

    async def capability_table(self) -> dict[str, SegmentTypeCapability]:
        """All active types keyed by name, as consumed by FlowValidator."""
        return {t.segment_type_name: t for t in await self.list_types()}

    async def deactivate_type(self, name: str) -> bool:
        db = await get_db()
        cursor = await db.execute(
            "UPDATE segment_types SET is_active = 0 WHERE segment_type_name = ? AND is_active = 1",
            (name,),
        )
        return cursor.rowcount > 0

    async def _get_keys(self, name: str) -> list[ConfigKeyDefinition]:
        db = await get_db()
        cursor = await db.execute(
            "SELECT * FROM segment_type_keys WHERE segment_type_name = ? ORDER BY key_order",
            (name,),
        )
        return [self._row_to_key(row) for row in await cursor.fetchall()]

    @staticmethod
    def _row_to_key(row) -> ConfigKeyDefinition:
        return ConfigKeyDefinition(
            key_name=row["key_name"],
            key_type=KeyType(row["key_type"]),
            display_name=row["display_name"],
            is_required=bool(row["is_required"]),
            default_value=row["default_value"],
            is_displayed=bool(row["is_displayed"]),
            is_editable=bool(row["is_editable"]),
        )

    @staticmethod
    def _row_to_capability(row, keys: list[ConfigKeyDefinition]) -> SegmentTypeCapability:
        return SegmentTypeCapability(
            segment_type_name=row["segment_type_name"],
            display_name=row["display_name"],
            category=row["category"],
            is_terminal=bool(row["is_terminal"]),
            hooks=json.loads(row["hooks_json"]) if row["hooks_json"] else {},
            hooks_schema=(
                json.loads(row["hooks_schema_json"]) if row["hooks_schema_json"] else None
            ),
            keys=keys,
            is_active=bool(row["is_active"]),
        )
