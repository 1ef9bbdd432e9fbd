"""
rally.engine.components — Component custom_id wire format
==========================================================

Every button and select on a party listing carries a colon-delimited
``custom_id``::

    join:<eventId>:<laneKey>:v1
    leave:<eventId>:v1
    mgr:<eventId>:v1
    msel:<eventId>:<laneId>

The router parses the string exactly once into one of the typed actions
below; nothing past the router ever sees the raw id.  The ``v1`` suffix
is carried for future format changes and not branched on.
"""

from __future__ import annotations

from dataclasses import dataclass

FORMAT_VERSION = "v1"


class MalformedComponentId(ValueError):
    """The custom_id is not one of ours (or is damaged)."""


@dataclass(frozen=True, slots=True)
class JoinAction:
    event_id: str
    lane_key: str

    def custom_id(self) -> str:
        return f"join:{self.event_id}:{self.lane_key}:{FORMAT_VERSION}"


@dataclass(frozen=True, slots=True)
class LeaveAction:
    event_id: str

    def custom_id(self) -> str:
        return f"leave:{self.event_id}:{FORMAT_VERSION}"


@dataclass(frozen=True, slots=True)
class ManageAction:
    event_id: str

    def custom_id(self) -> str:
        return f"mgr:{self.event_id}:{FORMAT_VERSION}"


@dataclass(frozen=True, slots=True)
class RemovalSubmit:
    event_id: str
    lane_id: int

    def custom_id(self) -> str:
        return f"msel:{self.event_id}:{self.lane_id}"


ComponentAction = JoinAction | LeaveAction | ManageAction | RemovalSubmit


def parse_component_id(custom_id: str | None) -> ComponentAction:
    """Parse *custom_id* into a typed action.

    Raises
    ------
    MalformedComponentId
        Unknown kind, missing fields, or a non-numeric lane id.
    """
    parts = (custom_id or "").split(":")
    kind, fields = parts[0], parts[1:]
    if not fields or not fields[0]:
        raise MalformedComponentId(custom_id)
    event_id = fields[0]

    match kind:
        case "join" if len(fields) >= 2 and fields[1]:
            return JoinAction(event_id, fields[1])
        case "leave":
            return LeaveAction(event_id)
        case "mgr":
            return ManageAction(event_id)
        case "msel" if len(fields) >= 2 and fields[1].isdigit():
            return RemovalSubmit(event_id, int(fields[1]))
    raise MalformedComponentId(custom_id)
