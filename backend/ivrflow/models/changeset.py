"""Pydantic models for change sets (draft scopes) and segment scopes."""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel
from pydantic import Field as PydanticField


class ChangeSetStatus(str, Enum):
    """Lifecycle status of a change set."""

    DRAFT = "draft"
    VALIDATING = "validating"
    VALIDATED = "validated"
    PUBLISHING = "publishing"
    PUBLISHED = "published"  # Absorbing
    DISCARDED = "discarded"  # Absorbing


ALLOWED_TRANSITIONS: dict[ChangeSetStatus, tuple[ChangeSetStatus, ...]] = {
    ChangeSetStatus.DRAFT: (ChangeSetStatus.VALIDATED, ChangeSetStatus.DISCARDED),
    ChangeSetStatus.VALIDATING: (ChangeSetStatus.VALIDATED, ChangeSetStatus.DISCARDED),
    ChangeSetStatus.VALIDATED: (ChangeSetStatus.PUBLISHING, ChangeSetStatus.DISCARDED),
    ChangeSetStatus.PUBLISHING: (ChangeSetStatus.PUBLISHED, ChangeSetStatus.DISCARDED),
    ChangeSetStatus.PUBLISHED: (),
    ChangeSetStatus.DISCARDED: (),
}

# Statuses that count as "the open draft" for the one-draft-per-routing policy
OPEN_STATUSES: tuple[ChangeSetStatus, ...] = (
    ChangeSetStatus.DRAFT,
    ChangeSetStatus.VALIDATING,
    ChangeSetStatus.VALIDATED,
    ChangeSetStatus.PUBLISHING,
)

# Statuses in which the draft content may still be edited
EDITABLE_STATUSES: tuple[ChangeSetStatus, ...] = (
    ChangeSetStatus.DRAFT,
    ChangeSetStatus.VALIDATED,
)


def can_transition(current: ChangeSetStatus, target: ChangeSetStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class ChangeSetCreate(BaseModel):
    """Request model for opening a draft."""

    routing_id: str = PydanticField(alias="routingId")
    version_name: str | None = PydanticField(default=None, alias="versionName")
    description: str | None = None
    created_by: str | None = PydanticField(default=None, alias="createdBy")
    seed_from_published: bool = PydanticField(default=True, alias="seedFromPublished")

    model_config = {"populate_by_name": True}


class ChangeSet(BaseModel):
    """A draft scope for a batch of segment edits."""

    change_set_id: str = PydanticField(alias="changeSetId")
    routing_id: str = PydanticField(alias="routingId")
    status: ChangeSetStatus
    version_name: str = PydanticField(alias="versionName")
    description: str | None = None
    is_active: bool = PydanticField(default=True, alias="isActive")
    revision: int = 0
    created_at: str = PydanticField(alias="createdAt")
    created_by: str | None = PydanticField(default=None, alias="createdBy")
    updated_at: str = PydanticField(alias="updatedAt")
    published_at: str | None = PydanticField(default=None, alias="publishedAt")
    published_by: str | None = PydanticField(default=None, alias="publishedBy")

    model_config = {"populate_by_name": True}


# =============================================================================
# Scope - which copy of a segment a query addresses
# =============================================================================


@dataclass(frozen=True)
class PublishedScope:
    """The live configuration."""

    @property
    def change_set_id(self) -> str | None:
        return None

    def describe(self) -> str:
        return "published"


@dataclass(frozen=True)
class DraftScope:
    """The rows belonging to one change set."""

    change_set_id: str

    def describe(self) -> str:
        return f"draft {self.change_set_id}"


Scope = PublishedScope | DraftScope

PUBLISHED = PublishedScope()


def scope_for(change_set_id: str | None) -> Scope:
    """Map an optional change set id (API boundary) to a scope."""
    return DraftScope(change_set_id) if change_set_id else PUBLISHED
