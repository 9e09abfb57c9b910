"""Pytest configuration and fixtures."""

import os
import tempfile
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from ivrflow.db import transaction, type_registry
from ivrflow.db.database import close_database, init_database
from ivrflow.main import app
from ivrflow.models import (
    ConfigItem,
    ConfigKeyDefinition,
    FlowSnapshot,
    KeyType,
    RoutingEntry,
    RoutingEntryCreate,
    SegmentSnapshot,
    SegmentTypeCapability,
    Transition,
    TransitionOutcome,
    TransitionTarget,
)
from ivrflow.services import version_history

ROUTING_ID = "ACME-IVR-MAIN"
SOURCE_ID = "+15550100"


@pytest.fixture(autouse=True)
async def setup_test_db():
    """Set up a test database for each test."""
    # Create a temporary database file
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    # Initialize the database
    await init_database(db_path)

    yield

    # Clean up
    await close_database()
    os.unlink(db_path)


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


@pytest.fixture
async def segment_types() -> dict[str, SegmentTypeCapability]:
    """Register the segment types used by the sample flow."""
    types = [
        SegmentTypeCapability(
            segment_type_name="init",
            category="system",
            hooks={"onEnter": "log_call_start"},
            hooks_schema={
                "type": "object",
                "properties": {"onEnter": {"type": "string", "pattern": "^[a-z_]+$"}},
                "additionalProperties": {"type": "string"},
            },
        ),
        SegmentTypeCapability(
            segment_type_name="menu",
            category="interaction",
            keys=[
                ConfigKeyDefinition(key_name="prompt", key_type=KeyType.STRING),
                ConfigKeyDefinition(key_name="max_retries", key_type=KeyType.INT),
                ConfigKeyDefinition(key_name="interruptible", key_type=KeyType.BOOL),
                ConfigKeyDefinition(key_name="options", key_type=KeyType.JSON),
            ],
        ),
        SegmentTypeCapability(
            segment_type_name="transfer",
            category="terminal",
            is_terminal=True,
            keys=[ConfigKeyDefinition(key_name="queue", key_type=KeyType.STRING)],
        ),
    ]
    async with transaction():
        for capability in types:
            await type_registry.register_type(capability)
    return {t.segment_type_name: t for t in types}


@pytest.fixture
async def routing(segment_types) -> RoutingEntry:
    """A routing entry with the default 'init' entry segment."""
    return await version_history.create_entry(
        RoutingEntryCreate(
            source_id=SOURCE_ID,
            routing_id=ROUTING_ID,
            init_segment="init",
            language_code="en-US",
            created_by="tester",
        )
    )


@pytest.fixture
def sample_flow() -> FlowSnapshot:
    """init -> menu -> sales | support (FR callers -> support_fr)."""
    return FlowSnapshot(
        init_segment="init",
        segments=[
            SegmentSnapshot(
                segment_name="init",
                segment_type="init",
                transitions=[
                    Transition(result_name="ok", outcome=TransitionOutcome(next_segment="menu"))
                ],
            ),
            SegmentSnapshot(
                segment_name="menu",
                segment_type="menu",
                display_name="Main Menu",
                config=[
                    ConfigItem(key="prompt", value="welcome"),
                    ConfigItem(key="max_retries", value=3),
                    ConfigItem(key="interruptible", value=False),
                ],
                transitions=[
                    Transition(result_name="1", outcome=TransitionOutcome(next_segment="sales")),
                    Transition(
                        result_name="2",
                        outcome=TransitionOutcome(
                            context_key={"FR": TransitionTarget(next_segment="support_fr")},
                            default=TransitionTarget(next_segment="support"),
                        ),
                    ),
                ],
            ),
            SegmentSnapshot(
                segment_name="sales",
                segment_type="transfer",
                config=[ConfigItem(key="queue", value="SALES")],
            ),
            SegmentSnapshot(
                segment_name="support",
                segment_type="transfer",
                config=[ConfigItem(key="queue", value="SUPPORT")],
            ),
            SegmentSnapshot(
                segment_name="support_fr",
                segment_type="transfer",
                config=[ConfigItem(key="queue", value="SUPPORT_FR")],
            ),
        ],
    )
