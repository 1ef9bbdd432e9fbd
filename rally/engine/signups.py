"""
rally.engine.signups — Capacity-Guarded Lane Signups
=====================================================

**Why this file exists:**
Two invariants must survive any interleaving of button clicks:

* a member holds **at most one** signup per party, and
* a lane never holds more signups than its capacity.

The store offers neither transactions nor affected-row counts, so every
capacity-sensitive mutation is **write-then-verify**:

1. one conditional statement whose ``WHERE`` re-checks the invariant
   (party still open, destination lane has room) at write time, and
2. an independent read confirming the caller's row is where it should be.

A missing post-state means another joiner took the last slot; it is
reported as ``FULL``, never silently ignored.  The ``(event_id, user_id)``
unique constraint backs the one-lane rule.

All functions are synchronous and take a gateway; call them through
:func:`rally.database.engine.run_db`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from rally.constants import EMPTY_SELECT_VALUE, STATUS_OPEN, utc_now_iso
from rally.database.engine import Gateway
from rally.engine.outcomes import (
    LaneRef,
    PartyRejection,
    RejectionKind,
    SignupInconsistencyError,
    SignupOutcome,
    SignupResult,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Occupant:
    """One member's place in a lane (the canonical signup shape)."""

    user_id: str
    gear_score: int | None = None


@dataclass(frozen=True, slots=True)
class LaneRoster:
    lane: LaneRef
    capacity: int
    sort_order: int
    occupants: tuple[Occupant, ...] = ()

    @property
    def count(self) -> int:
        return len(self.occupants)

    @property
    def is_full(self) -> bool:
        return self.capacity > 0 and self.count >= self.capacity


# ---------------------------------------------------------------------------
# Conditional writes
# ---------------------------------------------------------------------------
# New signup: lands only if the party is open and the lane has room.
# A concurrent insert for the same user hits the unique key and is dropped.
_INSERT_IF_ROOM = """
INSERT INTO signups (event_id, lane_id, user_id, gear_score, joined_at_utc)
SELECT l.event_id, l.id, ?, ?, ?
  FROM lanes AS l
 WHERE l.id = ? AND l.event_id = ?
   AND EXISTS (SELECT 1 FROM events AS e
                WHERE e.id = l.event_id AND e.status = 'open')
   AND (COALESCE(l.capacity, 0) = 0
        OR (SELECT COUNT(*) FROM signups AS s WHERE s.lane_id = l.id) < l.capacity)
ON CONFLICT(event_id, user_id) DO NOTHING;
"""

# Lane switch: relocates the existing row in place, or matches nothing.
_MOVE_IF_ROOM = """
UPDATE signups
   SET lane_id = ?, gear_score = ?, joined_at_utc = ?
 WHERE id = ? AND event_id = ?
   AND EXISTS (SELECT 1 FROM events AS e
                WHERE e.id = signups.event_id AND e.status = 'open')
   AND EXISTS (SELECT 1 FROM lanes AS l
                WHERE l.id = ? AND l.event_id = signups.event_id
                  AND (COALESCE(l.capacity, 0) = 0
                       OR (SELECT COUNT(*) FROM signups AS s
                            WHERE s.lane_id = l.id) < l.capacity));
"""


# ---------------------------------------------------------------------------
# Small reads
# ---------------------------------------------------------------------------
def _event_state(gateway: Gateway, event_id: str) -> dict[str, Any] | None:
    rows = gateway.execute(
        "SELECT status, min_gear_score FROM events WHERE id = ?;", [event_id]
    )
    return rows[0] if rows else None


def _lane_by_key(gateway: Gateway, event_id: str, lane_key: str) -> dict[str, Any] | None:
    rows = gateway.execute(
        "SELECT id, lane_key, name, emoji, capacity FROM lanes "
        "WHERE event_id = ? AND lane_key = ?;",
        [event_id, lane_key],
    )
    return rows[0] if rows else None


def _lane_by_id(gateway: Gateway, lane_id: int) -> dict[str, Any] | None:
    rows = gateway.execute(
        "SELECT id, lane_key, name, emoji, capacity FROM lanes WHERE id = ?;", [lane_id]
    )
    return rows[0] if rows else None


def _signup_of(gateway: Gateway, event_id: str, user_id: str) -> dict[str, Any] | None:
    rows = gateway.execute(
        "SELECT id, lane_id, gear_score FROM signups WHERE event_id = ? AND user_id = ?;",
        [event_id, user_id],
    )
    return rows[0] if rows else None


def _lane_ref(row: dict[str, Any]) -> LaneRef:
    return LaneRef(
        id=int(row["id"]),
        key=row["lane_key"],
        name=row["name"],
        emoji=(row.get("emoji") or "").strip(),
    )


# ---------------------------------------------------------------------------
# Join / switch
# ---------------------------------------------------------------------------
def join(
    gateway: Gateway,
    event_id: str,
    user_id: int | str,
    lane_key: str,
    gear_score: int = 0,
) -> SignupResult:
    """Put *user_id* into the lane *lane_key*, moving them if needed.

    *gear_score* is the member's best score for the lane's role (0 when
    unknown); it gates parties with a minimum and is recorded on the row.
    """
    user_id = str(user_id)
    event = _event_state(gateway, event_id)
    if event is None:
        return SignupResult(SignupOutcome.NO_PARTY)
    if event["status"] != STATUS_OPEN:
        return SignupResult(SignupOutcome.NOT_OPEN)

    lane_row = _lane_by_key(gateway, event_id, lane_key)
    if lane_row is None:
        return SignupResult(SignupOutcome.NOT_FOUND)
    lane = _lane_ref(lane_row)

    score = max(int(gear_score or 0), 0)
    threshold = event.get("min_gear_score")
    if threshold is not None and score < int(threshold):
        return SignupResult(
            SignupOutcome.INELIGIBLE, lane=lane, gear_score=score, threshold=int(threshold),
        )

    current = _signup_of(gateway, event_id, user_id)
    if current is not None and int(current["lane_id"]) == lane.id:
        return SignupResult(SignupOutcome.ALREADY_IN, lane=lane, gear_score=current["gear_score"])

    recorded = score or None
    previous: LaneRef | None = None
    if current is None:
        gateway.execute(
            _INSERT_IF_ROOM, [user_id, recorded, utc_now_iso(), lane.id, event_id],
        )
    else:
        prev_row = _lane_by_id(gateway, int(current["lane_id"]))
        previous = _lane_ref(prev_row) if prev_row else None
        gateway.execute(
            _MOVE_IF_ROOM,
            [lane.id, recorded, utc_now_iso(), current["id"], event_id, lane.id],
        )

    after = _signup_of(gateway, event_id, user_id)
    if after is None or int(after["lane_id"]) != lane.id:
        logger.info(
            "Admission to %s/%s lost for user %s (lane full or party closed)",
            event_id, lane.key, user_id,
        )
        return SignupResult(SignupOutcome.FULL, lane=lane)

    outcome = SignupOutcome.JOINED if current is None else SignupOutcome.SWITCHED
    return SignupResult(
        outcome, lane=lane, previous_lane=previous, gear_score=after["gear_score"],
    )


# ---------------------------------------------------------------------------
# Leave
# ---------------------------------------------------------------------------
def leave(gateway: Gateway, event_id: str, user_id: int | str) -> SignupResult:
    """Delete the member's signup.

    Raises
    ------
    SignupInconsistencyError
        The row is still present after the delete.
    """
    user_id = str(user_id)
    event = _event_state(gateway, event_id)
    if event is None:
        return SignupResult(SignupOutcome.NO_PARTY)
    if event["status"] != STATUS_OPEN:
        return SignupResult(SignupOutcome.NOT_OPEN)

    current = _signup_of(gateway, event_id, user_id)
    if current is None:
        return SignupResult(SignupOutcome.NOT_SIGNED_UP)

    lane_row = _lane_by_id(gateway, int(current["lane_id"]))
    signup_id = current["id"]

    gateway.execute("DELETE FROM signups WHERE id = ?;", [signup_id])
    if gateway.execute("SELECT 1 AS present FROM signups WHERE id = ?;", [signup_id]):
        logger.error(
            "Signup %s (event %s, user %s) survived its delete", signup_id, event_id, user_id,
        )
        raise SignupInconsistencyError(
            f"signup {signup_id} for {user_id} in {event_id} still present after delete"
        )

    return SignupResult(
        SignupOutcome.LEFT,
        lane=_lane_ref(lane_row) if lane_row else None,
        gear_score=current["gear_score"],
    )


# ---------------------------------------------------------------------------
# Manager removal
# ---------------------------------------------------------------------------
def remove_many(
    gateway: Gateway,
    event_id: str,
    lane_id: int,
    user_ids: Iterable[int | str],
) -> list[str]:
    """Remove the given members from one lane; return who was actually removed.

    Idempotent: members not in the lane are skipped.  The placeholder
    value of an empty removal menu is ignored.

    Raises
    ------
    PartyRejection
        NOT_FOUND if the party is gone, STATE if it is no longer open.
    """
    wanted = [
        uid for uid in dict.fromkeys(str(u) for u in user_ids)
        if uid and uid != EMPTY_SELECT_VALUE
    ]
    event = _event_state(gateway, event_id)
    if event is None:
        raise PartyRejection(RejectionKind.NOT_FOUND, "❌ Party no longer exists.")
    if event["status"] != STATUS_OPEN:
        raise PartyRejection(RejectionKind.STATE, "🔒 This party is closed.")
    if not wanted:
        return []

    marks = ", ".join("?" for _ in wanted)
    select_present = (
        "SELECT user_id FROM signups "
        f"WHERE event_id = ? AND lane_id = ? AND user_id IN ({marks});"
    )
    before = {
        str(r["user_id"])
        for r in gateway.execute(select_present, [event_id, lane_id, *wanted])
    }
    if not before:
        return []

    gateway.execute(
        "DELETE FROM signups "
        f"WHERE event_id = ? AND lane_id = ? AND user_id IN ({marks}) "
        "AND EXISTS (SELECT 1 FROM events AS e "
        "WHERE e.id = signups.event_id AND e.status = 'open');",
        [event_id, lane_id, *wanted],
    )
    after = {
        str(r["user_id"])
        for r in gateway.execute(select_present, [event_id, lane_id, *wanted])
    }
    removed = [uid for uid in wanted if uid in before and uid not in after]
    if after:
        logger.warning(
            "Removal from %s lane %s left %d member(s) in place (party closed mid-way?)",
            event_id, lane_id, len(after),
        )
    return removed


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------
def snapshot(gateway: Gateway, event_id: str) -> list[LaneRoster]:
    """Every lane (by sort order) with its occupants (by join time)."""
    lanes = gateway.execute(
        "SELECT id, lane_key, name, emoji, capacity, sort_order FROM lanes "
        "WHERE event_id = ? ORDER BY sort_order ASC, id ASC;",
        [event_id],
    )
    rows = gateway.execute(
        "SELECT lane_id, user_id, gear_score FROM signups "
        "WHERE event_id = ? ORDER BY joined_at_utc ASC, id ASC;",
        [event_id],
    )

    by_lane: dict[int, list[Occupant]] = {int(lane["id"]): [] for lane in lanes}
    for row in rows:
        bucket = by_lane.get(int(row["lane_id"]))
        if bucket is None:
            logger.warning("Signup in %s points at foreign lane %s", event_id, row["lane_id"])
            continue
        bucket.append(Occupant(user_id=str(row["user_id"]), gear_score=row["gear_score"]))

    return [
        LaneRoster(
            lane=_lane_ref(lane),
            capacity=int(lane.get("capacity") or 0),
            sort_order=int(lane.get("sort_order") or 0),
            occupants=tuple(by_lane[int(lane["id"])]),
        )
        for lane in lanes
    ]
