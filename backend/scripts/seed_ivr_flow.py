#!/usr/bin/env python3
"""
Seed script for a sample customer-service IVR.

Registers a small segment type dictionary, routes a phone number to the
ACME-IVR-MAIN routing, then saves and publishes this flow:

    init -> language -> main_menu --1--> transfer_sales
                                  --2--> transfer_support (FR callers -> transfer_support_fr)
                                  --timeout/default--> goodbye

Run with: uv run python scripts/seed_ivr_flow.py
"""

import asyncio
import os
import sys

# Add the backend directory to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ivrflow.db import transaction, type_registry
from ivrflow.db.database import close_database, init_database
from ivrflow.errors import NotFoundError
from ivrflow.models import (
    ConfigItem,
    ConfigKeyDefinition,
    FlowSnapshot,
    KeyType,
    RoutingEntryCreate,
    SegmentSnapshot,
    SegmentTypeCapability,
    Transition,
    TransitionOutcome,
    TransitionTarget,
)
from ivrflow.services import changeset_manager, version_history

ROUTING_ID = "ACME-IVR-MAIN"
SOURCE_ID = "+15550100"
SEEDED_BY = "seed-script"

SEGMENT_TYPES = [
    SegmentTypeCapability(
        segment_type_name="init",
        display_name="Call Start",
        category="system",
        hooks={"onEnter": "log_call_start"},
        hooks_schema={
            "type": "object",
            "additionalProperties": {"type": "string"},
        },
    ),
    SegmentTypeCapability(
        segment_type_name="language",
        display_name="Language Selection",
        category="routing",
        keys=[
            ConfigKeyDefinition(key_name="supported", key_type=KeyType.JSON, is_required=True),
            ConfigKeyDefinition(key_name="fallback", key_type=KeyType.STRING),
        ],
    ),
    SegmentTypeCapability(
        segment_type_name="menu",
        display_name="DTMF Menu",
        category="interaction",
        keys=[
            ConfigKeyDefinition(key_name="prompt", key_type=KeyType.STRING, is_required=True),
            ConfigKeyDefinition(key_name="max_retries", key_type=KeyType.INT, default_value="3"),
            ConfigKeyDefinition(key_name="interruptible", key_type=KeyType.BOOL),
        ],
    ),
    SegmentTypeCapability(
        segment_type_name="transfer",
        display_name="Transfer to Queue",
        category="terminal",
        is_terminal=True,
        keys=[ConfigKeyDefinition(key_name="queue", key_type=KeyType.STRING, is_required=True)],
    ),
    SegmentTypeCapability(
        segment_type_name="disconnect",
        display_name="Disconnect",
        category="terminal",
        is_terminal=True,
        keys=[ConfigKeyDefinition(key_name="message", key_type=KeyType.STRING)],
    ),
]


def _go(target: str | None) -> TransitionOutcome:
    return TransitionOutcome(next_segment=target)


FLOW = FlowSnapshot(
    init_segment="init",
    segments=[
        SegmentSnapshot(
            segment_name="init",
            segment_type="init",
            display_name="Call Start",
            transitions=[Transition(result_name="ok", outcome=_go("language"))],
        ),
        SegmentSnapshot(
            segment_name="language",
            segment_type="language",
            display_name="Pick Language",
            config=[
                ConfigItem(key="supported", value=["EN", "FR"]),
                ConfigItem(key="fallback", value="EN"),
            ],
            transitions=[Transition(result_name="ok", outcome=_go("main_menu"))],
        ),
        SegmentSnapshot(
            segment_name="main_menu",
            segment_type="menu",
            display_name="Main Menu",
            config=[
                ConfigItem(key="prompt", value="main_menu_prompt"),
                ConfigItem(key="max_retries", value=3),
                ConfigItem(key="interruptible", value=True),
            ],
            transitions=[
                Transition(result_name="1", outcome=_go("transfer_sales")),
                Transition(
                    result_name="2",
                    outcome=TransitionOutcome(
                        context_key={
                            "FR": TransitionTarget(next_segment="transfer_support_fr"),
                        },
                        default=TransitionTarget(next_segment="transfer_support"),
                    ),
                ),
                Transition(result_name="timeout", outcome=_go("goodbye")),
                Transition(result_name="default", outcome=_go("goodbye")),
            ],
        ),
        SegmentSnapshot(
            segment_name="transfer_sales",
            segment_type="transfer",
            config=[ConfigItem(key="queue", value="SALES")],
        ),
        SegmentSnapshot(
            segment_name="transfer_support",
            segment_type="transfer",
            config=[ConfigItem(key="queue", value="SUPPORT_EN")],
        ),
        SegmentSnapshot(
            segment_name="transfer_support_fr",
            segment_type="transfer",
            config=[ConfigItem(key="queue", value="SUPPORT_FR")],
        ),
        SegmentSnapshot(
            segment_name="goodbye",
            segment_type="disconnect",
            config=[ConfigItem(key="message", value="goodbye_prompt")],
        ),
    ],
)


async def main():
    """Seed the database with the sample IVR."""
    db_path = os.getenv("DATABASE_PATH", "./data/ivrflow.db")
    print(f"Using database: {db_path}")

    await init_database(db_path)

    async with transaction():
        for capability in SEGMENT_TYPES:
            await type_registry.register_type(capability)
    print(f"Registered {len(SEGMENT_TYPES)} segment types")

    try:
        entry = await version_history.lookup_by_source_id(SOURCE_ID)
        print(f"Source {SOURCE_ID} already routed to {entry.routing_id}")
    except NotFoundError:
        entry = await version_history.create_entry(
            RoutingEntryCreate(
                source_id=SOURCE_ID,
                routing_id=ROUTING_ID,
                init_segment="init",
                language_code="en-US",
                feature_flags={"callback": True},
                created_by=SEEDED_BY,
            )
        )
        print(f"Routed {SOURCE_ID} to {ROUTING_ID}")

    draft = await changeset_manager.get_or_create_draft(ROUTING_ID, created_by=SEEDED_BY)
    saved = await changeset_manager.save(ROUTING_ID, draft.change_set_id, FLOW, saved_by=SEEDED_BY)
    print(f"Saved draft {draft.change_set_id}: {saved.created} created, {saved.updated} updated")
    for warning in saved.validation.warnings:
        print(f"  warning: {warning.type.value}: {warning.message}")

    published = await changeset_manager.publish(
        ROUTING_ID, draft.change_set_id, published_by=SEEDED_BY
    )
    print(f"Published {published.segment_count} segments")

    version = await version_history.snapshot(
        ROUTING_ID, comment="Initial seed", created_by=SEEDED_BY
    )
    print(f"Captured routing version {version.version_number}")

    await close_database()


if __name__ == "__main__":
    asyncio.run(main())
