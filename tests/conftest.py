"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import Engine

from rally.config import EventTemplate, LaneTemplate
from rally.database.engine import EngineGateway, create_sqlite_engine
from rally.database.models import Base
from rally.services import party_service

# A Raid-6 style template: one tank, one healer, four dps.
RAID_6 = EventTemplate(
    id="raid-6",
    name="Raid (6)",
    image_url="https://example.com/raid.png",
    lanes=(
        LaneTemplate(key="tank", name="Tank", emoji="🛡️", capacity=1),
        LaneTemplate(key="healer", name="Healer", emoji="✚", capacity=1),
        LaneTemplate(key="dps", name="DPS", emoji="⚔️", capacity=4),
    ),
)


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all Rally tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    engine = create_sqlite_engine("sqlite://")
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def gateway(db_engine: Engine) -> EngineGateway:
    return EngineGateway(db_engine)


@pytest.fixture
def make_party(gateway: EngineGateway) -> Callable[..., str]:
    """Factory inserting a party (event + lanes); returns the event id."""

    def _make(
        template: EventTemplate = RAID_6,
        *,
        guild_id: str = "900",
        channel_id: str = "901",
        creator_id: str = "1",
        min_gear_score: int | None = None,
        description: str | None = None,
    ) -> str:
        draft = party_service.PartyDraft(
            guild_id=guild_id,
            channel_id=channel_id,
            creator_id=creator_id,
            template=template,
            start=datetime.now(UTC) + timedelta(hours=2),
            description=description,
            min_gear_score=min_gear_score,
        )
        return party_service.insert_party(gateway, draft)

    return _make


@pytest.fixture
def add_character(gateway: EngineGateway) -> Callable[..., int]:
    """Factory inserting a class + character directly; returns the character id."""

    def _add(
        user_id: str,
        role: str,
        gear_score: int,
        *,
        guild_id: str = "900",
        is_main: bool = False,
        class_name: str | None = None,
    ) -> int:
        name = class_name or f"{role.title()}-class"
        gateway.execute(
            "INSERT INTO classes (name, sub_class, role) VALUES (?, '', ?) "
            "ON CONFLICT(name, sub_class) DO NOTHING;",
            [name, role],
        )
        class_id = gateway.execute("SELECT id FROM classes WHERE name = ?;", [name])[0]["id"]
        gateway.execute(
            "INSERT INTO characters (user_id, guild_id, class_id, gear_score, is_main) "
            "VALUES (?, ?, ?, ?, ?);",
            [user_id, guild_id, class_id, gear_score, 1 if is_main else 0],
        )
        return gateway.execute(
            "SELECT id FROM characters WHERE user_id = ? AND guild_id = ? AND class_id = ?;",
            [user_id, guild_id, class_id],
        )[0]["id"]

    return _add
