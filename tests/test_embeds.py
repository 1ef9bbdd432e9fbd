"""
tests/test_embeds.py — Listing embed, views & name resolution
==============================================================

Views need a running event loop, so they are built inside ``run_async``.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord

from rally.constants import EMPTY_SELECT_VALUE, STATUS_CLOSED, STATUS_COLOR
from rally.engine.cache import EventDisplay
from rally.engine.components import parse_component_id
from rally.engine.outcomes import LaneRef
from rally.engine.signups import LaneRoster, Occupant
from rally.services.embeds import (
    build_manage_view,
    build_party_embed,
    build_party_view,
    lane_field_name,
)
from rally.services.names import NameResolver


def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


async def _build(builder, *args):
    return builder(*args)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _make_display(**overrides) -> EventDisplay:
    values = dict(
        event_id="evt_ab12",
        title="Raid (6)",
        description="Bring food",
        image_url="https://example.com/raid.png",
        unix=1893528000,
        creator_id="1",
        channel_id="901",
        message_id="555",
        min_gear_score=None,
    )
    values.update(overrides)
    return EventDisplay(**values)


def _make_roster(
    lane_id: int, key: str, capacity: int, *user_ids: str, gear_score: int | None = None,
) -> LaneRoster:
    return LaneRoster(
        lane=LaneRef(id=lane_id, key=key, name=key.title(), emoji=""),
        capacity=capacity,
        sort_order=lane_id,
        occupants=tuple(Occupant(uid, gear_score) for uid in user_ids),
    )


def _raid(*, tank=(), healer=(), dps=()) -> list[LaneRoster]:
    return [
        _make_roster(1, "tank", 1, *tank),
        _make_roster(2, "healer", 1, *healer),
        _make_roster(3, "dps", 4, *dps, gear_score=1650),
    ]


# ===========================================================================
# Listing embed
# ===========================================================================
class TestPartyEmbed:
    def test_open_listing(self):
        embed = build_party_embed(_make_display(), _raid(tank=["10"], dps=["20", "21"]))
        assert embed.title == "\U0001f7e2 Raid (6)"
        assert embed.description == "Bring food"
        assert embed.image.url == "https://example.com/raid.png"

        fields = {f.name: f.value for f in embed.fields}
        assert fields["Time"] == "<t:1893528000:F>  ( <t:1893528000:R> )"
        assert fields["Host"] == "<@1>"
        assert "Min GS" not in fields
        assert fields["Tank (1/1)"] == "<@10>"
        assert fields["Healer (0/1)"] == "_No players_"
        assert fields["Dps (2/4)"] == "<@20> · GS 1650\n<@21> · GS 1650"

    def test_lane_fields_padded_to_rows_of_three(self):
        rosters = _raid() + [_make_roster(4, "support", 0)]
        embed = build_party_embed(_make_display(), rosters)
        inline = [f for f in embed.fields if f.inline]
        assert len(inline) == 6
        assert [f.name for f in inline[4:]] == ["\u200b", "\u200b"]

    def test_min_gear_score_and_closed_style(self):
        embed = build_party_embed(_make_display(min_gear_score=1600), _raid(), STATUS_CLOSED)
        assert embed.title.startswith("\U0001f512 CLOSED - ")
        assert embed.color.value == STATUS_COLOR[STATUS_CLOSED]
        assert {f.name: f.value for f in embed.fields}["Min GS"] == "1600"

    def test_blank_description_and_image_omitted(self):
        embed = build_party_embed(_make_display(description="   ", image_url=None), _raid())
        assert embed.description is None
        assert embed.image.url is None

    def test_unlimited_lane_label(self):
        roster = _make_roster(9, "any", 0, "1", "2")
        assert lane_field_name(roster) == "Any (2/0)"
        assert not roster.is_full


# ===========================================================================
# Listing buttons
# ===========================================================================
class TestPartyView:
    def test_buttons_and_custom_ids(self):
        view = run_async(_build(build_party_view, "evt_ab12", _raid(tank=["10"])))
        buttons = view.children
        assert [b.label for b in buttons] == ["Tank", "Healer", "Dps", "Leave", "⚙️ Manage"]
        assert [b.custom_id for b in buttons[:3]] == [
            "join:evt_ab12:tank:v1", "join:evt_ab12:healer:v1", "join:evt_ab12:dps:v1",
        ]
        assert buttons[3].custom_id == "leave:evt_ab12:v1"
        assert buttons[4].custom_id == "mgr:evt_ab12:v1"
        for button in buttons:
            parse_component_id(button.custom_id)

    def test_full_lane_disabled(self):
        view = run_async(_build(build_party_view, "evt_ab12", _raid(tank=["10"])))
        by_label = {b.label: b for b in view.children}
        assert by_label["Tank"].disabled
        assert not by_label["Healer"].disabled
        assert by_label["Tank"].style is discord.ButtonStyle.primary
        assert by_label["Leave"].style is discord.ButtonStyle.secondary

    def test_controls_on_their_own_row(self):
        rosters = [_make_roster(i, f"lane{i}", 0) for i in range(1, 8)]
        view = run_async(_build(build_party_view, "evt_ab12", rosters))
        rows = [item.row for item in view.children]
        assert rows[:7] == [0, 0, 0, 0, 0, 1, 1]
        assert rows[7:] == [2, 2]

    def test_view_never_times_out(self):
        view = run_async(_build(build_party_view, "evt_ab12", _raid()))
        assert view.timeout is None


# ===========================================================================
# Manage panel
# ===========================================================================
class TestManageView:
    def test_one_select_per_lane(self):
        rosters = _raid(tank=["10"], dps=["20", "21"])
        names = {"10": "Tanky", "20": "Zed"}
        view = run_async(_build(build_manage_view, "evt_ab12", rosters, names))
        tank, healer, dps = view.children

        assert tank.custom_id == "msel:evt_ab12:1"
        assert tank.placeholder == "Tank — remove players"
        assert [(o.label, o.value) for o in tank.options] == [("1) Tanky", "10")]

        assert healer.disabled
        assert healer.placeholder == "Healer — no players"
        assert [o.value for o in healer.options] == [EMPTY_SELECT_VALUE]

        assert dps.max_values == 2
        assert [o.label for o in dps.options] == ["1) Zed", "2) 21"]

    def test_lane_overflow_capped(self):
        rosters = [_make_roster(i, f"lane{i}", 0, str(i)) for i in range(1, 8)]
        view = run_async(_build(build_manage_view, "evt_ab12", rosters, {}))
        assert len(view.children) == 5


# ===========================================================================
# Name resolution
# ===========================================================================
def _make_guild(members: dict[int, str], *, fetchable: dict[int, str] | None = None) -> MagicMock:
    guild = MagicMock()
    guild.id = 900

    def _get_member(user_id):
        name = members.get(user_id)
        return SimpleNamespace(display_name=name, name=name) if name else None

    async def _fetch_member(user_id):
        name = (fetchable or {}).get(user_id)
        if name is None:
            raise discord.NotFound(MagicMock(status=404, reason="Not Found"), "Unknown Member")
        return SimpleNamespace(display_name=name, name=name)

    guild.get_member = _get_member
    guild.fetch_member = AsyncMock(side_effect=_fetch_member)
    return guild


class TestNameResolver:
    def test_cached_member(self):
        resolver = NameResolver()
        guild = _make_guild({10: "Tanky"})
        assert run_async(resolver.resolve(guild, "10")) == "Tanky"
        assert len(resolver) == 1
        guild.fetch_member.assert_not_awaited()

    def test_fetch_fallback_is_remembered(self):
        resolver = NameResolver()
        guild = _make_guild({}, fetchable={20: "Zed"})
        assert run_async(resolver.resolve(guild, 20)) == "Zed"
        assert run_async(resolver.resolve(guild, 20)) == "Zed"
        guild.fetch_member.assert_awaited_once_with(20)

    def test_unknown_member_shown_by_id(self):
        resolver = NameResolver()
        guild = _make_guild({})
        assert run_async(resolver.resolve(guild, "30")) == "30"
        assert len(resolver) == 0

    def test_remember_needs_a_guild(self):
        resolver = NameResolver()
        resolver.remember(None, 10, "Nobody")
        assert len(resolver) == 0

    def test_no_guild(self):
        assert run_async(NameResolver().resolve(None, "30")) == "30"

    def test_resolve_many_and_remember(self):
        resolver = NameResolver()
        resolver.remember(900, 40, "Seeded")
        guild = _make_guild({10: "Tanky"})
        names = run_async(resolver.resolve_many(guild, ["10", "40", "50"]))
        assert names == {"10": "Tanky", "40": "Seeded", "50": "50"}
