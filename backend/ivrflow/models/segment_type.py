"""Pydantic models for the segment type dictionary (capability table)."""

from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import Field as PydanticField


class KeyType(str, Enum):
    """Value types a config key can hold."""

    STRING = "string"
    INT = "int"
    BOOL = "bool"
    DECIMAL = "decimal"
    JSON = "json"


class ConfigKeyDefinition(BaseModel):
    """A config key a segment type accepts."""

    key_name: str = PydanticField(alias="keyName", min_length=1)
    key_type: KeyType = PydanticField(default=KeyType.STRING, alias="keyType")
    display_name: str | None = PydanticField(default=None, alias="displayName")
    is_required: bool = PydanticField(default=False, alias="isRequired")
    default_value: str | None = PydanticField(default=None, alias="defaultValue")
    is_displayed: bool = PydanticField(default=True, alias="isDisplayed")
    is_editable: bool = PydanticField(default=True, alias="isEditable")

    model_config = {"populate_by_name": True}


class SegmentTypeCapability(BaseModel):
    """What a segment type can do.

    Segment types are data, not subclasses: the validator and the store
    only ever look at this record.
    """

    segment_type_name: str = PydanticField(alias="segmentTypeName", min_length=1)
    display_name: str | None = PydanticField(default=None, alias="displayName")
    category: str | None = None
    is_terminal: bool = PydanticField(default=False, alias="isTerminal")
    hooks: dict[str, str] = PydanticField(default_factory=dict)
    hooks_schema: dict[str, Any] | None = PydanticField(default=None, alias="hooksSchema")
    keys: list[ConfigKeyDefinition] = []
    is_active: bool = PydanticField(default=True, alias="isActive")

    model_config = {"populate_by_name": True}

    @property
    def config_key_schema(self) -> dict[str, ConfigKeyDefinition]:
        return {k.key_name: k for k in self.keys}

    def merge_hooks(self, instance_hooks: dict[str, str] | None) -> dict[str, str] | None:
        """Type defaults overlaid with instance hooks; instance wins."""
        merged = {**self.hooks, **(instance_hooks or {})}
        return merged or None
