"""
tests/test_router.py — Listing button & select routing
=======================================================

Drives :class:`rally.bot.cogs.lanes.Lanes` with mocked interactions
against the in-memory gateway.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord

from rally.bot.cogs.lanes import (
    GENERIC_FAILURE,
    NO_MANAGE_PERMISSION,
    PARTY_GONE,
    REMOVAL_FAILURE,
    Lanes,
)
from rally.config import RallyConfig
from rally.engine import signups
from rally.engine.cache import DisplayCache
from rally.engine.components import JoinAction, LeaveAction, ManageAction, RemovalSubmit
from rally.services import party_service
from rally.services.embeds import MANAGE_PANEL_CONTENT
from rally.services.names import NameResolver


def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _make_bot(gateway, **cfg) -> SimpleNamespace:
    return SimpleNamespace(
        gateway=gateway,
        display_cache=DisplayCache(),
        cfg=RallyConfig(community_name="Test", bot_prefix="!", **cfg),
        names=NameResolver(),
    )


def _make_interaction(user_id: int = 10, *, data: dict | None = None, listing=None) -> MagicMock:
    interaction = MagicMock()
    interaction.type = discord.InteractionType.component
    interaction.data = data or {}
    interaction.guild = None
    interaction.guild_id = 900
    interaction.user = SimpleNamespace(
        id=user_id,
        name=f"user{user_id}",
        display_name=f"User {user_id}",
        guild_permissions=SimpleNamespace(administrator=False),
    )
    interaction.response.defer = AsyncMock()
    interaction.followup.send = AsyncMock()
    interaction.edit_original_response = AsyncMock()

    channel = MagicMock()
    channel.fetch_message = AsyncMock(return_value=listing or MagicMock(edit=AsyncMock()))
    interaction.client.get_channel = MagicMock(return_value=channel)
    return interaction


def _replies(interaction) -> list[str]:
    return [c.args[0] for c in interaction.followup.send.await_args_list]


def _lane_id(gateway, event_id: str, key: str) -> int:
    return gateway.execute(
        "SELECT id FROM lanes WHERE event_id = ? AND lane_key = ?;", [event_id, key]
    )[0]["id"]


def _logged_actions(gateway) -> list[tuple[str, str]]:
    rows = gateway.execute("SELECT action, member_nickname FROM party_logs ORDER BY id;")
    return [(r["action"], r["member_nickname"]) for r in rows]


def _route(cog, interaction, action):
    async def _go():
        await cog.route(interaction, action)
    run_async(_go())


# ===========================================================================
# Dispatch
# ===========================================================================
class TestOnInteraction:
    def test_foreign_custom_id_not_acknowledged(self, gateway):
        cog = Lanes(_make_bot(gateway))
        interaction = _make_interaction(data={"custom_id": "poll:abc:v1"})
        run_async(cog.on_interaction(interaction))
        interaction.response.defer.assert_not_awaited()

    def test_non_component_ignored(self, gateway):
        cog = Lanes(_make_bot(gateway))
        interaction = _make_interaction(data={"custom_id": "leave:evt_ab12:v1"})
        interaction.type = discord.InteractionType.application_command
        run_async(cog.on_interaction(interaction))
        interaction.response.defer.assert_not_awaited()

    def test_known_custom_id_routed(self, gateway, make_party):
        event_id = make_party()
        cog = Lanes(_make_bot(gateway))
        interaction = _make_interaction(data={"custom_id": f"join:{event_id}:dps:v1"})
        run_async(cog.on_interaction(interaction))
        interaction.response.defer.assert_awaited_once()
        assert party_service.signed_up_user_ids(gateway, event_id) == ["10"]

    def test_party_gone(self, gateway):
        cog = Lanes(_make_bot(gateway))
        interaction = _make_interaction()
        _route(cog, interaction, JoinAction("evt_none", "dps"))
        assert _replies(interaction) == [PARTY_GONE]


# ===========================================================================
# Join / leave
# ===========================================================================
class TestJoinLeave:
    def test_join_redraws_and_logs(self, gateway, make_party, add_character):
        add_character("10", "dps", 1650)
        event_id = make_party()
        cog = Lanes(_make_bot(gateway))
        interaction = _make_interaction()

        _route(cog, interaction, JoinAction(event_id, "dps"))

        assert _replies(interaction) == ["✅ You joined **DPS**."]
        kwargs = interaction.edit_original_response.await_args.kwargs
        dps_field = next(f for f in kwargs["embed"].fields if f.name.startswith("⚔️ DPS"))
        assert dps_field.value == "<@10> · GS 1650"
        assert _logged_actions(gateway) == [("join", "User 10")]

    def test_failed_redraw_keeps_join_outcome(self, gateway, make_party):
        event_id = make_party()
        cog = Lanes(_make_bot(gateway))
        interaction = _make_interaction()
        interaction.edit_original_response.side_effect = discord.HTTPException(
            MagicMock(status=500, reason="Internal Server Error"), "edit failed",
        )

        _route(cog, interaction, JoinAction(event_id, "dps"))

        assert _replies(interaction) == ["✅ You joined **DPS**."]
        assert party_service.signed_up_user_ids(gateway, event_id) == ["10"]
        assert _logged_actions(gateway) == [("join", "User 10")]

    def test_failed_redraw_keeps_leave_outcome(self, gateway, make_party):
        event_id = make_party()
        signups.join(gateway, event_id, "10", "dps")
        cog = Lanes(_make_bot(gateway))
        interaction = _make_interaction()
        interaction.edit_original_response.side_effect = discord.HTTPException(
            MagicMock(status=500, reason="Internal Server Error"), "edit failed",
        )

        _route(cog, interaction, LeaveAction(event_id))

        assert _replies(interaction) == ["🚪 You left the party."]
        assert _logged_actions(gateway) == [("leave", "User 10")]

    def test_clicker_name_remembered(self, gateway, make_party):
        event_id = make_party()
        bot = _make_bot(gateway)
        _route(Lanes(bot), _make_interaction(), JoinAction(event_id, "dps"))
        guild = MagicMock(id=900)
        assert run_async(bot.names.resolve(guild, "10")) == "User 10"
        guild.fetch_member.assert_not_called()

    def test_switch_logged_as_switch(self, gateway, make_party):
        event_id = make_party()
        cog = Lanes(_make_bot(gateway))
        _route(cog, _make_interaction(), JoinAction(event_id, "dps"))
        interaction = _make_interaction()
        _route(cog, interaction, JoinAction(event_id, "tank"))

        assert _replies(interaction) == ["🔁 You moved from **DPS** to **Tank**."]
        assert [a for a, _ in _logged_actions(gateway)] == ["join", "switch"]

    def test_ineligible_join_changes_nothing(self, gateway, make_party, add_character):
        add_character("10", "dps", 1500)
        event_id = make_party(min_gear_score=1600)
        cog = Lanes(_make_bot(gateway))
        interaction = _make_interaction()

        _route(cog, interaction, JoinAction(event_id, "dps"))

        assert "**1600**" in _replies(interaction)[0]
        interaction.edit_original_response.assert_not_awaited()
        assert party_service.signed_up_user_ids(gateway, event_id) == []
        assert _logged_actions(gateway) == []

    def test_full_lane(self, gateway, make_party):
        event_id = make_party()
        cog = Lanes(_make_bot(gateway))
        _route(cog, _make_interaction(11), JoinAction(event_id, "tank"))
        interaction = _make_interaction(12)
        _route(cog, interaction, JoinAction(event_id, "tank"))
        assert _replies(interaction) == ["❌ **Tank** is full."]

    def test_leave(self, gateway, make_party):
        event_id = make_party()
        cog = Lanes(_make_bot(gateway))
        _route(cog, _make_interaction(), JoinAction(event_id, "dps"))
        interaction = _make_interaction()

        _route(cog, interaction, LeaveAction(event_id))

        assert _replies(interaction) == ["🚪 You left the party."]
        interaction.edit_original_response.assert_awaited_once()
        assert party_service.signed_up_user_ids(gateway, event_id) == []
        assert [a for a, _ in _logged_actions(gateway)] == ["join", "leave"]

    def test_leave_when_not_signed_up(self, gateway, make_party):
        event_id = make_party()
        cog = Lanes(_make_bot(gateway))
        interaction = _make_interaction()
        _route(cog, interaction, LeaveAction(event_id))
        assert _replies(interaction) == ["❌ You're not signed up for this party."]
        interaction.edit_original_response.assert_not_awaited()

    def test_closed_party_refuses_join(self, gateway, make_party):
        event_id = make_party()
        party_service.mark_closed(gateway, event_id)
        cog = Lanes(_make_bot(gateway))
        interaction = _make_interaction()
        _route(cog, interaction, JoinAction(event_id, "dps"))
        assert _replies(interaction) == ["🔒 This party is closed."]


# ===========================================================================
# Manage panel & removal
# ===========================================================================
class TestManage:
    def test_stranger_denied(self, gateway, make_party):
        event_id = make_party(creator_id="1")
        cog = Lanes(_make_bot(gateway))
        interaction = _make_interaction(user_id=10)
        _route(cog, interaction, ManageAction(event_id))
        assert _replies(interaction) == [NO_MANAGE_PERMISSION]

    def test_creator_gets_panel(self, gateway, make_party):
        event_id = make_party(creator_id="1")
        signups.join(gateway, event_id, "20", "dps")
        cog = Lanes(_make_bot(gateway))
        interaction = _make_interaction(user_id=1)

        _route(cog, interaction, ManageAction(event_id))

        call = interaction.followup.send.await_args
        assert call.args[0] == MANAGE_PANEL_CONTENT
        assert call.kwargs["ephemeral"] is True
        selects = call.kwargs["view"].children
        assert len(selects) == 3
        assert [o.value for o in selects[2].options] == ["20"]

    def test_configured_admin_gets_panel(self, gateway, make_party):
        event_id = make_party(creator_id="1")
        cog = Lanes(_make_bot(gateway, admin_ids=frozenset({10})))
        interaction = _make_interaction(user_id=10)
        _route(cog, interaction, ManageAction(event_id))
        assert interaction.followup.send.await_args.args[0] == MANAGE_PANEL_CONTENT

    def test_remove_updates_listing_and_panel(self, gateway, make_party):
        event_id = make_party(creator_id="1")
        party_service.set_pointers(gateway, event_id, message_id="555")
        for uid in ("20", "21"):
            signups.join(gateway, event_id, uid, "dps")
        dps = _lane_id(gateway, event_id, "dps")
        listing = MagicMock()
        listing.edit = AsyncMock()
        cog = Lanes(_make_bot(gateway))
        interaction = _make_interaction(user_id=1, data={"values": ["20"]}, listing=listing)

        _route(cog, interaction, RemovalSubmit(event_id, dps))

        assert party_service.signed_up_user_ids(gateway, event_id) == ["21"]
        listing.edit.assert_awaited_once()
        kwargs = interaction.edit_original_response.await_args.kwargs
        assert kwargs["content"] == MANAGE_PANEL_CONTENT
        assert [o.value for o in kwargs["view"].children[2].options] == ["21"]
        assert _logged_actions(gateway) == [("remove", "20")]

    def test_remove_placeholder_is_noop(self, gateway, make_party):
        event_id = make_party(creator_id="1")
        party_service.set_pointers(gateway, event_id, message_id="555")
        healer = _lane_id(gateway, event_id, "healer")
        listing = MagicMock()
        listing.edit = AsyncMock()
        cog = Lanes(_make_bot(gateway))
        interaction = _make_interaction(user_id=1, data={"values": ["none"]}, listing=listing)

        _route(cog, interaction, RemovalSubmit(event_id, healer))

        listing.edit.assert_not_awaited()
        assert _logged_actions(gateway) == []

    def test_remove_from_closed_party(self, gateway, make_party):
        event_id = make_party(creator_id="1")
        signups.join(gateway, event_id, "20", "dps")
        dps = _lane_id(gateway, event_id, "dps")
        party_service.mark_closed(gateway, event_id)
        cog = Lanes(_make_bot(gateway))
        interaction = _make_interaction(user_id=1, data={"values": ["20"]})

        _route(cog, interaction, RemovalSubmit(event_id, dps))

        interaction.edit_original_response.assert_awaited_once_with(
            content="🔒 This party is closed.", view=None,
        )
        assert party_service.signed_up_user_ids(gateway, event_id) == ["20"]

    def test_stranger_cannot_remove(self, gateway, make_party):
        event_id = make_party(creator_id="1")
        signups.join(gateway, event_id, "20", "dps")
        dps = _lane_id(gateway, event_id, "dps")
        cog = Lanes(_make_bot(gateway))
        interaction = _make_interaction(user_id=10, data={"values": ["20"]})
        _route(cog, interaction, RemovalSubmit(event_id, dps))
        assert _replies(interaction) == [NO_MANAGE_PERMISSION]
        assert party_service.signed_up_user_ids(gateway, event_id) == ["20"]


# ===========================================================================
# Failures
# ===========================================================================
class TestFailures:
    def _broken_bot(self):
        broken = MagicMock()
        broken.execute.side_effect = RuntimeError("store down")
        return _make_bot(broken)

    def test_generic_failure_reply(self):
        cog = Lanes(self._broken_bot())
        interaction = _make_interaction()
        _route(cog, interaction, JoinAction("evt_ab12", "dps"))
        assert _replies(interaction) == [GENERIC_FAILURE]

    def test_removal_failure_reply(self):
        cog = Lanes(self._broken_bot())
        interaction = _make_interaction(user_id=1, data={"values": ["20"]})
        _route(cog, interaction, RemovalSubmit("evt_ab12", 3))
        assert _replies(interaction) == [REMOVAL_FAILURE]
