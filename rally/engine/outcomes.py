"""
rally.engine.outcomes — Rejections & Signup Results
====================================================

Expected denials (bad input, full lane, closed party, no permission) are
ordinary control flow: the signup engine returns a :class:`SignupResult`
and the lifecycle layer raises :class:`PartyRejection`, whose message is
shown to the user verbatim.

Only :class:`SignupInconsistencyError` signals that the store did not end
up in the state a verified write promised; the router logs it loudly and
answers with a generic failure.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class RejectionKind(enum.StrEnum):
    VALIDATION = "validation"
    ELIGIBILITY = "eligibility"
    CAPACITY = "capacity"
    STATE = "state"
    NOT_FOUND = "not_found"
    AUTHORIZATION = "authorization"


class PartyRejection(Exception):
    """A user-fixable denial carrying a ready-to-send message."""

    def __init__(self, kind: RejectionKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


class SignupInconsistencyError(RuntimeError):
    """A post-write verification read contradicted the write."""


class SignupOutcome(enum.StrEnum):
    JOINED = "joined"
    SWITCHED = "switched"
    ALREADY_IN = "already_in"
    LEFT = "left"
    FULL = "full"
    INELIGIBLE = "ineligible"
    NOT_OPEN = "not_open"
    NOT_FOUND = "not_found"
    NO_PARTY = "no_party"
    NOT_SIGNED_UP = "not_signed_up"


# Outcome → taxonomy bucket (None for successes / informational results)
OUTCOME_KIND: dict[SignupOutcome, RejectionKind | None] = {
    SignupOutcome.JOINED: None,
    SignupOutcome.SWITCHED: None,
    SignupOutcome.ALREADY_IN: None,
    SignupOutcome.LEFT: None,
    SignupOutcome.FULL: RejectionKind.CAPACITY,
    SignupOutcome.INELIGIBLE: RejectionKind.ELIGIBILITY,
    SignupOutcome.NOT_OPEN: RejectionKind.STATE,
    SignupOutcome.NOT_FOUND: RejectionKind.NOT_FOUND,
    SignupOutcome.NO_PARTY: RejectionKind.NOT_FOUND,
    SignupOutcome.NOT_SIGNED_UP: RejectionKind.NOT_FOUND,
}


@dataclass(frozen=True, slots=True)
class LaneRef:
    """The identifying bits of a lane needed to report on it."""

    id: int
    key: str
    name: str
    emoji: str = ""

    @property
    def label(self) -> str:
        return f"{self.emoji} {self.name}".strip()


@dataclass(frozen=True, slots=True)
class SignupResult:
    outcome: SignupOutcome
    lane: LaneRef | None = None
    previous_lane: LaneRef | None = None
    gear_score: int | None = None
    threshold: int | None = None

    @property
    def ok(self) -> bool:
        return self.outcome in (
            SignupOutcome.JOINED, SignupOutcome.SWITCHED, SignupOutcome.LEFT,
        )

    @property
    def kind(self) -> RejectionKind | None:
        return OUTCOME_KIND[self.outcome]

    def message(self) -> str:
        """Human-readable ephemeral reply for this result."""
        lane = f"**{self.lane.name}**" if self.lane else "that lane"
        match self.outcome:
            case SignupOutcome.JOINED:
                return f"✅ You joined {lane}."
            case SignupOutcome.SWITCHED:
                prev = self.previous_lane.name if self.previous_lane else "your lane"
                return f"🔁 You moved from **{prev}** to {lane}."
            case SignupOutcome.ALREADY_IN:
                return f"ℹ️ You're already in {lane}."
            case SignupOutcome.LEFT:
                return "🚪 You left the party."
            case SignupOutcome.FULL:
                return f"❌ {lane} is full."
            case SignupOutcome.INELIGIBLE:
                return (
                    f"⛔ {lane} requires a Gear Score of at least "
                    f"**{self.threshold}**; your best for this role is "
                    f"**{self.gear_score or 0}**."
                )
            case SignupOutcome.NOT_OPEN:
                return "🔒 This party is closed."
            case SignupOutcome.NOT_SIGNED_UP:
                return "❌ You're not signed up for this party."
            case SignupOutcome.NOT_FOUND:
                return "❌ That lane doesn't exist."
            case SignupOutcome.NO_PARTY:
                return "❌ This party no longer exists."
        return "❌ Something went wrong."
