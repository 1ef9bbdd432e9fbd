"""
rally.config — YAML Configuration & Template Catalog
=====================================================

**Why this file exists:**
Two kinds of configuration feed the bot, both read once at startup:

* ``config.yaml`` — infrastructure settings (party channel, voice
  category, extra admins).  Secrets stay in ``.env``.
* ``templates.json`` — the party templates (lanes, capacities, art) and
  the class catalog used by ``/character``.

Both become immutable objects that are handed to the bot by reference.

Usage::

    from rally.config import load_config, load_templates

    cfg = load_config()                      # ./config.yaml
    catalog = load_templates(cfg.templates_path)
    template = catalog.resolve("raid-6")     # raises PartyRejection if bad
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from rally.engine.outcomes import PartyRejection, RejectionKind

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure/identity only.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RallyConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str
    bot_prefix: str

    # Where the template file lives (relative to the working directory)
    templates_path: str = "templates.json"

    # Optional channel restriction for /party and /character
    party_channel_id: int | None = None
    # Category that party voice channels are created under
    voice_category_id: int | None = None

    # Extra managers on top of the creator and guild administrators
    admin_ids: frozenset[int] = field(default_factory=frozenset)

    callout_cooldown_seconds: int = 60


def _optional_int(value: Any) -> int | None:
    return int(value) if value else None


def load_config(path: str | Path = "config.yaml") -> RallyConfig:
    """Read *path* and return a :class:`RallyConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return RallyConfig(
        community_name=raw["community_name"],
        bot_prefix=raw.get("bot_prefix", "!"),
        templates_path=raw.get("templates_path", "templates.json"),
        party_channel_id=_optional_int(raw.get("party_channel_id")),
        voice_category_id=_optional_int(raw.get("voice_category_id")),
        admin_ids=frozenset(int(a) for a in raw.get("admin_ids") or []),
        callout_cooldown_seconds=int(raw.get("callout_cooldown_seconds", 60)),
    )


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------
class LaneTemplate(BaseModel):
    """One lane blueprint.  ``capacity`` 0 means unlimited."""

    model_config = ConfigDict(frozen=True)

    # Carried inside component custom_ids, which are colon-delimited
    key: str = Field(min_length=1, max_length=32, pattern=r"^[^:]+$")
    name: str = Field(min_length=1, max_length=80)
    emoji: str | None = None
    capacity: int = Field(ge=0)


class EventTemplate(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=200)
    image_url: str | None = None
    lanes: tuple[LaneTemplate, ...] = Field(min_length=1, max_length=20)

    @model_validator(mode="after")
    def _unique_lane_keys(self) -> EventTemplate:
        keys = [lane.key for lane in self.lanes]
        duplicates = sorted({k for k in keys if keys.count(k) > 1})
        if duplicates:
            raise ValueError(f"duplicate lane keys: {', '.join(duplicates)}")
        return self


class ClassTemplate(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    sub_class: str = ""
    role: str


class TemplateCatalog:
    """Read-only view over the raw template file.

    Templates are kept raw and validated on :meth:`resolve` so a single
    malformed entry surfaces as a user-facing rejection at creation time
    instead of taking the whole bot down.
    """

    def __init__(
        self,
        events: list[Mapping[str, Any]],
        classes: list[Mapping[str, Any]] | None = None,
    ) -> None:
        raw: dict[str, Mapping[str, Any]] = {}
        for entry in events:
            template_id = str(entry.get("id", "")).strip()
            if not template_id:
                logger.warning("Skipping template without an id: %r", entry)
                continue
            raw[template_id] = MappingProxyType(dict(entry))
        self._raw = MappingProxyType(raw)
        self.classes: tuple[ClassTemplate, ...] = tuple(
            ClassTemplate.model_validate(c) for c in classes or []
        )

    def __len__(self) -> int:
        return len(self._raw)

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._raw

    def choices(self) -> list[tuple[str, str]]:
        """``(name, id)`` pairs for slash-command choices (Discord caps at 25)."""
        return [
            (str(t.get("name") or tid), tid) for tid, t in self._raw.items()
        ][:25]

    def resolve(self, template_id: str) -> EventTemplate:
        """Return the validated template or raise a VALIDATION rejection."""
        raw = self._raw.get(template_id)
        if raw is None:
            raise PartyRejection(RejectionKind.VALIDATION, "❌ Unknown event template.")
        try:
            return EventTemplate.model_validate(dict(raw))
        except ValidationError as exc:
            logger.warning("Template %s is malformed: %s", template_id, exc)
            raise PartyRejection(
                RejectionKind.VALIDATION,
                f"❌ Template **{template_id}** is misconfigured "
                "(every lane needs a unique key without `:`, a name and a numeric capacity).",
            ) from exc

    def validate_all(self) -> list[str]:
        """Return ids of templates that fail validation (logged at startup)."""
        bad: list[str] = []
        for template_id in self._raw:
            try:
                self.resolve(template_id)
            except PartyRejection:
                bad.append(template_id)
        return bad


def load_templates(path: str | Path = "templates.json") -> TemplateCatalog:
    """Load the template catalog from a JSON file.

    Expected shape::

        {"events": [{"id": ..., "name": ..., "lanes": [...]}],
         "classes": [{"name": ..., "sub_class": ..., "role": ...}]}
    """
    template_path = Path(path)
    if not template_path.exists():
        raise FileNotFoundError(
            f"Template file not found: {template_path.resolve()}\n"
            "Hint: copy templates.json.example → templates.json and edit it."
        )
    with open(template_path, encoding="utf-8") as fh:
        raw = json.load(fh)

    catalog = TemplateCatalog(raw.get("events", []), raw.get("classes", []))
    bad = catalog.validate_all()
    if bad:
        logger.warning("Malformed templates (will reject on create): %s", ", ".join(bad))
    logger.info("Loaded %d party templates, %d classes", len(catalog), len(catalog.classes))
    return catalog
