"""
Kingdom events for narration hooks and logging.
Events describe what happened during action processing: numbers and minimal
labels only, presentation is left to the caller.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class KingdomEvent:
    """Base event class. All events have a type and payload."""
    type: str
    payload: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KingdomEvent":
        return cls(type=data["type"], payload=data["payload"])


# ===== Event Type Constants =====

# Turn events
RESOURCES_COLLECTED = "resources_collected"
CONSUMPTION_PAID = "consumption_paid"
EVENT_CHECKED = "event_checked"
TURN_ENDED = "turn_ended"

# Shortage events
FOOD_SHORTAGE = "food_shortage"
SHORTAGE_PAID = "shortage_paid"

# Unrest events
UNREST_CHANGED = "unrest_changed"
UNREST_IGNORED = "unrest_ignored"
RUIN_ROLLED = "ruin_rolled"
HEX_LOSS_CHECKED = "hex_loss_checked"
ANARCHY_WARNING = "anarchy_warning"

# Resource events
RESOURCE_CHANGED = "resource_changed"
RESOURCE_MISSING = "resource_missing"

# Structure events
STRUCTURE_INVALID = "structure_invalid"
STRUCTURE_PAID = "structure_paid"
STRUCTURE_CHECK_ROLLED = "structure_check_rolled"

# Progression events
FAME_GAINED = "fame_gained"
XP_GAINED = "xp_gained"
LEVEL_UP = "level_up"


# ===== Event Factory Functions =====

def resources_collected(
    dice: int,
    die: str,
    roll_total: int,
    resource_points: int,
    commodities: dict[str, int],
) -> KingdomEvent:
    return KingdomEvent(RESOURCES_COLLECTED, {
        "dice": dice,
        "die": die,
        "roll_total": roll_total,
        "resource_points": resource_points,
        "commodities": commodities,
    })


def consumption_paid(total_consumption: int, food_paid: int, food_remaining: int) -> KingdomEvent:
    return KingdomEvent(CONSUMPTION_PAID, {
        "total_consumption": total_consumption,
        "food_paid": food_paid,
        "food_remaining": food_remaining,
    })


def food_shortage(missing: int, rp_price: int, unrest_formula: str) -> KingdomEvent:
    """Shortfall during consumption. The caller decides between paying RP and gaining unrest."""
    return KingdomEvent(FOOD_SHORTAGE, {
        "missing": missing,
        "rp_price": rp_price,
        "unrest_formula": unrest_formula,
    })


def shortage_paid(missing: int, rp_paid: int) -> KingdomEvent:
    return KingdomEvent(SHORTAGE_PAID, {
        "missing": missing,
        "rp_paid": rp_paid,
    })


def unrest_changed(old_unrest: int, new_unrest: int, reason: str) -> KingdomEvent:
    return KingdomEvent(UNREST_CHANGED, {
        "old_unrest": old_unrest,
        "new_unrest": new_unrest,
        "reason": reason,
    })


def unrest_ignored(suppressed: int) -> KingdomEvent:
    """Level 20 kingdoms ignore unrest gains (Envy of the World)."""
    return KingdomEvent(UNREST_IGNORED, {"suppressed": suppressed})


def ruin_rolled(total: int) -> KingdomEvent:
    """Ruin points to distribute across crime, corruption, decay and strife."""
    return KingdomEvent(RUIN_ROLLED, {"total": total})


def hex_loss_checked(roll: int, dc: int, hex_lost: bool) -> KingdomEvent:
    return KingdomEvent(HEX_LOSS_CHECKED, {
        "roll": roll,
        "dc": dc,
        "hex_lost": hex_lost,
    })


def anarchy_warning(unrest: int, threshold: int) -> KingdomEvent:
    return KingdomEvent(ANARCHY_WARNING, {
        "unrest": unrest,
        "threshold": threshold,
    })


def event_checked(roll: int, dc: int, event_occurs: bool, turns_without_event: int) -> KingdomEvent:
    return KingdomEvent(EVENT_CHECKED, {
        "roll": roll,
        "dc": dc,
        "event_occurs": event_occurs,
        "turns_without_event": turns_without_event,
    })


def turn_ended(commodities: dict[str, int], resource_points: int, resource_dice: int) -> KingdomEvent:
    return KingdomEvent(TURN_ENDED, {
        "commodities": commodities,
        "resource_points": resource_points,
        "resource_dice": resource_dice,
    })


def resource_changed(resource: str, label: str, mode: str, turn: str, amount: int, value: int) -> KingdomEvent:
    return KingdomEvent(RESOURCE_CHANGED, {
        "resource": resource,
        "label": label,
        "mode": mode,
        "turn": turn,
        "amount": amount,
        "value": value,
    })


def resource_missing(resource: str, label: str, missing: int) -> KingdomEvent:
    return KingdomEvent(RESOURCE_MISSING, {
        "resource": resource,
        "label": label,
        "missing": missing,
    })


def structure_invalid(name: str | None, message: str) -> KingdomEvent:
    return KingdomEvent(STRUCTURE_INVALID, {
        "name": name,
        "message": message,
    })


def structure_paid(name: str, costs: dict[str, int]) -> KingdomEvent:
    return KingdomEvent(STRUCTURE_PAID, {
        "name": name,
        "costs": costs,
    })


def structure_check_rolled(
    name: str,
    skill: str,
    roll: int,
    modifier: int,
    total: int,
    dc: int,
    degree: str,
) -> KingdomEvent:
    return KingdomEvent(STRUCTURE_CHECK_ROLLED, {
        "name": name,
        "skill": skill,
        "roll": roll,
        "modifier": modifier,
        "total": total,
        "dc": dc,
        "degree": degree,
    })


def fame_gained(amount: int, fame: int) -> KingdomEvent:
    return KingdomEvent(FAME_GAINED, {"amount": amount, "fame": fame})


def xp_gained(amount: int, xp: int) -> KingdomEvent:
    return KingdomEvent(XP_GAINED, {"amount": amount, "xp": xp})


def level_up(old_level: int, new_level: int) -> KingdomEvent:
    return KingdomEvent(LEVEL_UP, {"old_level": old_level, "new_level": new_level})
