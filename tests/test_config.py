"""
tests/test_config.py — config.yaml & templates.json loading
============================================================
"""

from __future__ import annotations

import json

import pytest

from rally.config import TemplateCatalog, load_config, load_templates
from rally.engine.outcomes import PartyRejection, RejectionKind

GOOD = {
    "id": "raid-6",
    "name": "Raid (6)",
    "lanes": [
        {"key": "tank", "name": "Tank", "emoji": "🛡️", "capacity": 1},
        {"key": "dps", "name": "DPS", "capacity": 4},
    ],
}
BROKEN = {"id": "broken", "name": "Broken", "lanes": [{"key": "tank", "capacity": "lots"}]}


class TestLoadConfig:
    def test_full_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "community_name: Test Guild\n"
            "party_channel_id: 42\n"
            "voice_category_id: 43\n"
            "admin_ids: [7, 8]\n"
            "callout_cooldown_seconds: 5\n",
            encoding="utf-8",
        )
        cfg = load_config(path)
        assert cfg.community_name == "Test Guild"
        assert cfg.bot_prefix == "!"
        assert cfg.party_channel_id == 42
        assert cfg.voice_category_id == 43
        assert cfg.admin_ids == frozenset({7, 8})
        assert cfg.callout_cooldown_seconds == 5
        assert cfg.templates_path == "templates.json"

    def test_optional_ids_default_to_none(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("community_name: X\n", encoding="utf-8")
        cfg = load_config(path)
        assert cfg.party_channel_id is None
        assert cfg.voice_category_id is None
        assert cfg.admin_ids == frozenset()
        assert cfg.callout_cooldown_seconds == 60

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_missing_required_key(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("bot_prefix: '?'\n", encoding="utf-8")
        with pytest.raises(KeyError):
            load_config(path)


class TestTemplateCatalog:
    def test_resolve_valid(self):
        catalog = TemplateCatalog([GOOD])
        template = catalog.resolve("raid-6")
        assert [lane.key for lane in template.lanes] == ["tank", "dps"]
        assert template.lanes[1].emoji is None

    def test_unknown_template(self):
        with pytest.raises(PartyRejection) as exc_info:
            TemplateCatalog([GOOD]).resolve("nope")
        assert exc_info.value.kind is RejectionKind.VALIDATION

    def test_malformed_template_rejected_on_resolve(self):
        catalog = TemplateCatalog([GOOD, BROKEN])
        assert "broken" in catalog
        with pytest.raises(PartyRejection) as exc_info:
            catalog.resolve("broken")
        assert exc_info.value.kind is RejectionKind.VALIDATION
        assert "misconfigured" in exc_info.value.message
        assert catalog.validate_all() == ["broken"]

    def test_template_without_lanes_is_malformed(self):
        catalog = TemplateCatalog([{"id": "empty", "name": "Empty", "lanes": []}])
        with pytest.raises(PartyRejection):
            catalog.resolve("empty")

    def test_duplicate_lane_keys_rejected(self):
        twin_dps = {
            "id": "twin",
            "name": "Twin DPS",
            "lanes": [
                {"key": "dps", "name": "DPS", "capacity": 2},
                {"key": "dps", "name": "More DPS", "capacity": 2},
            ],
        }
        catalog = TemplateCatalog([twin_dps])
        with pytest.raises(PartyRejection) as exc_info:
            catalog.resolve("twin")
        assert exc_info.value.kind is RejectionKind.VALIDATION
        assert catalog.validate_all() == ["twin"]

    def test_lane_key_with_colon_rejected(self):
        colon = {"id": "c", "name": "C", "lanes": [{"key": "dps:ranged", "name": "DPS", "capacity": 2}]}
        with pytest.raises(PartyRejection):
            TemplateCatalog([colon]).resolve("c")

    def test_entries_without_id_skipped(self):
        catalog = TemplateCatalog([GOOD, {"name": "no id"}])
        assert len(catalog) == 1

    def test_choices(self):
        catalog = TemplateCatalog([GOOD])
        assert catalog.choices() == [("Raid (6)", "raid-6")]

    def test_catalog_is_read_only(self):
        catalog = TemplateCatalog([GOOD])
        with pytest.raises(TypeError):
            catalog._raw["x"] = {}  # type: ignore[index]


class TestLoadTemplates:
    def test_loads_events_and_classes(self, tmp_path):
        path = tmp_path / "templates.json"
        path.write_text(json.dumps({
            "events": [GOOD, BROKEN],
            "classes": [{"name": "Cleric", "role": "Healer"}],
        }), encoding="utf-8")
        catalog = load_templates(path)
        assert len(catalog) == 2
        assert catalog.classes[0].name == "Cleric"
        assert catalog.classes[0].sub_class == ""

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_templates(tmp_path / "templates.json")
