"""
Action definitions for the kingdom turn.
Actions are immutable, deterministic instructions; dice are rolled by the reducer
through the dice port it is given.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Action:
    """Base action class. All actions have a type and payload."""
    type: str  # e.g., "collect_resources", "pay_consumption", "end_turn"
    payload: dict = field(default_factory=dict)  # Action-specific data

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Action":
        return cls(type=data["type"], payload=dict(data.get("payload") or {}))


# ===== Turn steps =====

def collect_resources() -> Action:
    """Roll resource dice into resource points and collect commodities from work sites."""
    return Action(type="collect_resources")


def pay_consumption() -> Action:
    """Pay food for armies, kingdom and settlement consumption. Shortfalls are only reported."""
    return Action(type="pay_consumption")


def adjust_unrest() -> Action:
    """Gain unrest from war, overcrowded settlements and secondary territories."""
    return Action(type="adjust_unrest")


def check_for_event() -> Action:
    """Flat check for a random kingdom event."""
    return Action(type="check_for_event")


def end_turn() -> Action:
    """Move next-turn columns into the current turn."""
    return Action(type="end_turn")


# ===== Follow-up actions =====

def update_resource(resource: str, value: str, mode: str = "gain", turn: str = "now") -> Action:
    """
    Generic gain/lose of one resource.
    value is a plain integer ("3"), a dice formula ("1d4"), or for roll-resource-dice
    the number of resource dice to roll ("2").

    Example: update_resource("lumber", "2", mode="gain", turn="next")
    """
    return Action(
        type="update_resource",
        payload={"resource": resource, "value": value, "mode": mode, "turn": turn},
    )


def reduce_unrest() -> Action:
    return Action(type="reduce_unrest")


def pay_shortage_with_rp(missing: int) -> Action:
    """Cover a food shortage with resource points (5 RP per missing food)."""
    return Action(type="pay_shortage_with_rp", payload={"missing": missing})


def gain_shortage_unrest() -> Action:
    """Accept unrest for a food shortage instead of paying resource points."""
    return Action(type="gain_shortage_unrest")


def pay_structure(name: str, ignore_cost: bool | None = None) -> Action:
    """
    Pay the construction cost of a structure from the current-turn columns.
    ignore_cost=None falls back to the configured house rule.
    """
    payload: dict[str, Any] = {"name": name}
    if ignore_cost is not None:
        payload["ignore_cost"] = ignore_cost
    return Action(type="pay_structure", payload=payload)


def build_structure(
    name: str,
    skill: str,
    settlement_id: str | None = None,
    ignore_skill_requirements: bool | None = None,
) -> Action:
    """
    Roll the construction check of a structure with one of its construction skills.
    settlement_id selects which settlement's skill bonuses apply.

    Example: build_structure("Granary", "agriculture", settlement_id="s1")
    """
    payload: dict[str, Any] = {"name": name, "skill": skill}
    if settlement_id is not None:
        payload["settlement_id"] = settlement_id
    if ignore_skill_requirements is not None:
        payload["ignore_skill_requirements"] = ignore_skill_requirements
    return Action(type="build_structure", payload=payload)


def gain_fame(amount: int = 1) -> Action:
    return Action(type="gain_fame", payload={"amount": amount})


def gain_xp(amount: int) -> Action:
    return Action(type="gain_xp", payload={"amount": amount})


def level_up() -> Action:
    """Spend xp_threshold XP to gain a kingdom level."""
    return Action(type="level_up")
