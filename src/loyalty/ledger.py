"""Pure scan transitions for the loyalty ledger.

Each campaign concept defines how a scan changes a pass's live state. The
functions here compute the next state without touching the database; the scan
service persists the result under optimistic concurrency.
"""

import typing as t
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from loyalty.exceptions import NotEnoughStampsError, StampCardNotConfiguredError

# Lowest points total per tier, highest first
TIER_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (1000, "gold"),
    (500, "silver"),
    (0, "bronze"),
)


class ScanAction(StrEnum):
    """Actions a point-of-sale scanner can request."""

    ADD_STAMP = "ADD_STAMP"
    REDEEM = "REDEEM"
    ADD_POINTS = "ADD_POINTS"
    CHECK_IN = "CHECK_IN"


class AppliedAction(StrEnum):
    """What a scan actually did to the state."""

    ADD_STAMP = "ADD_STAMP"
    STAMP_COMPLETE = "STAMP_COMPLETE"
    AUTO_REDEEM = "AUTO_REDEEM"
    REDEEM_REWARD = "REDEEM_REWARD"
    ADD_POINTS = "ADD_POINTS"
    CHECK_IN = "CHECK_IN"


@dataclass(frozen=True)
class Transition:
    state: dict[str, t.Any]
    action: AppliedAction
    delta: int

    @property
    def celebration(self) -> bool:
        return self.action in (AppliedAction.STAMP_COMPLETE, AppliedAction.AUTO_REDEEM)

    @property
    def redeemed(self) -> bool:
        return self.action in (AppliedAction.AUTO_REDEEM, AppliedAction.REDEEM_REWARD)


def tier_for_points(points: int) -> str:
    for threshold, tier in TIER_THRESHOLDS:
        if points >= threshold:
            return tier
    return TIER_THRESHOLDS[-1][1]


def apply_stamp_action(
    state: dict[str, t.Any], action: ScanAction, now: datetime, default_max_stamps: int
) -> Transition:
    """Apply a stamp-card scan.

    A scan on a full card redeems the reward and starts the next card with the
    stamp for this visit. An explicit redeem needs a full card and empties it.

    Raises:
        NotEnoughStampsError: If REDEEM is requested before the card is full.
        StampCardNotConfiguredError: If the card has no positive stamp target.
    """
    new_state = dict(state)
    maximum = int(state.get("max_stamps") or default_max_stamps)
    if maximum <= 0:
        raise StampCardNotConfiguredError(f"Stamp card target must be positive, got {maximum}")
    current = int(state.get("stamps") or 0)
    new_state["max_stamps"] = maximum

    if action == ScanAction.REDEEM:
        if current < maximum:
            raise NotEnoughStampsError(current=current, required=maximum)
        new_state["stamps"] = 0
        new_state["redemptions"] = int(state.get("redemptions") or 0) + 1
        new_state["last_redemption"] = now.isoformat()
        return Transition(new_state, AppliedAction.REDEEM_REWARD, -maximum)

    if current >= maximum:
        new_state["stamps"] = 1
        new_state["redemptions"] = int(state.get("redemptions") or 0) + 1
        new_state["last_redemption"] = now.isoformat()
        return Transition(new_state, AppliedAction.AUTO_REDEEM, -(maximum - 1))

    new_state["stamps"] = min(current + 1, maximum)
    applied = AppliedAction.STAMP_COMPLETE if new_state["stamps"] >= maximum else AppliedAction.ADD_STAMP
    return Transition(new_state, applied, 1)


def apply_points_action(state: dict[str, t.Any], points: int | None) -> Transition:
    new_state = dict(state)
    to_add = points if points else 1
    new_state["points"] = int(state.get("points") or 0) + to_add
    new_state["tier"] = tier_for_points(new_state["points"])
    return Transition(new_state, AppliedAction.ADD_POINTS, to_add)


def apply_check_in(state: dict[str, t.Any], now: datetime) -> Transition:
    new_state = dict(state)
    new_state["check_ins"] = int(state.get("check_ins") or 0) + 1
    new_state["last_check_in"] = now.isoformat()
    return Transition(new_state, AppliedAction.CHECK_IN, 1)


def success_message(transition: Transition) -> str:
    """Return the German confirmation shown on the scanner."""
    state = transition.state
    max_stamps = state.get("max_stamps")
    match transition.action:
        case AppliedAction.ADD_STAMP:
            return f"✅ Stempel hinzugefügt! ({state['stamps']}/{max_stamps})"
        case AppliedAction.STAMP_COMPLETE:
            return f"🎉 KARTE VOLL! ({state['stamps']}/{max_stamps}) - Prämie bereit!"
        case AppliedAction.AUTO_REDEEM:
            return f"🎊 PRÄMIE EINGELÖST! Neuer Start: 1/{max_stamps}"
        case AppliedAction.REDEEM_REWARD:
            return "🎉 Prämie eingelöst! Stempel zurückgesetzt."
        case AppliedAction.ADD_POINTS:
            return f"✅ {state['points']} Punkte (Level: {state['tier']})"
    return "✅ Check-In erfolgreich!"
