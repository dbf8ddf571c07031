"""
Resource-type resolver for the generic gain/lose handler.
Maps each resource tag to where it lives in the kingdom record. Reads and
writes go through one dispatch table so both always cover the same tags.
"""

from enum import Enum
from typing import Any, Callable, Optional

from kingmaker.engine.definitions import get_size_data
from kingmaker.engine.dice import DicePort
from kingmaker.engine.errors import DiceFormulaError, UnhandledResourceType
from kingmaker.engine.settlements import calculate_storage_capacity
from kingmaker.engine.state import Kingdom
from kingmaker.engine.utils import unslugify


class ResourceType(str, Enum):
    FOOD = "food"
    LUXURIES = "luxuries"
    ORE = "ore"
    LUMBER = "lumber"
    STONE = "stone"
    UNREST = "unrest"
    RESOURCE_DICE = "resource-dice"
    RESOURCE_POINTS = "resource-points"
    ROLL_RESOURCE_DICE = "roll-resource-dice"  # rolled, then stored as resource points
    CRIME = "crime"
    DECAY = "decay"
    STRIFE = "strife"
    CORRUPTION = "corruption"


class ResourceTurn(str, Enum):
    NOW = "now"
    NEXT = "next"


class ResourceMode(str, Enum):
    GAIN = "gain"
    LOSE = "lose"


COMMODITY_RESOURCES = frozenset({
    ResourceType.FOOD,
    ResourceType.LUXURIES,
    ResourceType.ORE,
    ResourceType.LUMBER,
    ResourceType.STONE,
})
RUIN_RESOURCES = frozenset({
    ResourceType.CRIME,
    ResourceType.DECAY,
    ResourceType.STRIFE,
    ResourceType.CORRUPTION,
})


def parse_resource_type(tag: Any) -> ResourceType:
    try:
        return ResourceType(tag)
    except ValueError:
        raise UnhandledResourceType(tag) from None


def _turn(turn: Any) -> str:
    return ResourceTurn(turn).value


# ===== Accessors =====
# Each entry: (read(kingdom, type, turn) -> int, write(kingdom, type, turn, value) -> partial kingdom).
# Writers reconstruct the whole nested value they touch.

def _read_commodity(kingdom: Kingdom, type_: ResourceType, turn: str) -> int:
    return getattr(kingdom.commodities, turn).get(type_.value)


def _write_commodity(kingdom: Kingdom, type_: ResourceType, turn: str, value: int) -> dict[str, Any]:
    commodities = kingdom.commodities.to_dict()
    commodities[turn][type_.value] = value
    return {"commodities": commodities}


def _read_unrest(kingdom: Kingdom, type_: ResourceType, turn: str) -> int:
    return kingdom.unrest


def _write_unrest(kingdom: Kingdom, type_: ResourceType, turn: str, value: int) -> dict[str, Any]:
    return {"unrest": value}


def _read_resource_dice(kingdom: Kingdom, type_: ResourceType, turn: str) -> int:
    return getattr(kingdom.resource_dice, turn)


def _write_resource_dice(kingdom: Kingdom, type_: ResourceType, turn: str, value: int) -> dict[str, Any]:
    return {"resource_dice": {**kingdom.resource_dice.to_dict(), turn: value}}


def _read_resource_points(kingdom: Kingdom, type_: ResourceType, turn: str) -> int:
    return getattr(kingdom.resource_points, turn)


def _write_resource_points(kingdom: Kingdom, type_: ResourceType, turn: str, value: int) -> dict[str, Any]:
    return {"resource_points": {**kingdom.resource_points.to_dict(), turn: value}}


def _read_ruin(kingdom: Kingdom, type_: ResourceType, turn: str) -> int:
    return kingdom.ruin.get(type_.value).value


def _write_ruin(kingdom: Kingdom, type_: ResourceType, turn: str, value: int) -> dict[str, Any]:
    ruin = kingdom.ruin.to_dict()
    ruin[type_.value]["value"] = value
    return {"ruin": ruin}


Reader = Callable[[Kingdom, ResourceType, str], int]
Writer = Callable[[Kingdom, ResourceType, str, int], dict[str, Any]]

_COMMODITY = (_read_commodity, _write_commodity)
_RUIN = (_read_ruin, _write_ruin)

RESOURCE_ACCESSORS: dict[ResourceType, tuple[Reader, Writer]] = {
    ResourceType.FOOD: _COMMODITY,
    ResourceType.LUXURIES: _COMMODITY,
    ResourceType.ORE: _COMMODITY,
    ResourceType.LUMBER: _COMMODITY,
    ResourceType.STONE: _COMMODITY,
    ResourceType.UNREST: (_read_unrest, _write_unrest),
    ResourceType.RESOURCE_DICE: (_read_resource_dice, _write_resource_dice),
    ResourceType.RESOURCE_POINTS: (_read_resource_points, _write_resource_points),
    ResourceType.ROLL_RESOURCE_DICE: (_read_resource_points, _write_resource_points),
    ResourceType.CRIME: _RUIN,
    ResourceType.DECAY: _RUIN,
    ResourceType.STRIFE: _RUIN,
    ResourceType.CORRUPTION: _RUIN,
}


def _check_exhaustive() -> None:
    """Fail at import time if a resource tag has no accessor (or an accessor has no tag)."""
    for type_ in set(ResourceType) ^ set(RESOURCE_ACCESSORS):
        raise UnhandledResourceType(type_)


_check_exhaustive()


def read_resource(kingdom: Kingdom, type_: Any, turn: Any = ResourceTurn.NOW) -> int:
    """Current value of a resource. Unrest and ruin ignore `turn`."""
    resource = parse_resource_type(type_)
    reader, _ = RESOURCE_ACCESSORS[resource]
    return reader(kingdom, resource, _turn(turn))


def write_resource(kingdom: Kingdom, type_: Any, turn: Any, value: int) -> dict[str, Any]:
    """Partial kingdom that stores `value` for the resource."""
    resource = parse_resource_type(type_)
    _, writer = RESOURCE_ACCESSORS[resource]
    return writer(kingdom, resource, _turn(turn), value)


def get_limit(
    kingdom: Kingdom,
    type_: Any,
    turn: Any,
    storage: Optional[dict[str, int]] = None,
) -> Optional[int]:
    """Storage capacity for commodities on the next-turn column, otherwise no limit."""
    resource = parse_resource_type(type_)
    if _turn(turn) == ResourceTurn.NEXT.value and resource in COMMODITY_RESOURCES:
        base = get_size_data(kingdom.size).commodity_capacity
        return calculate_storage_capacity(base, storage or {})[resource.value]
    return None


def evaluate_value(kingdom: Kingdom, type_: Any, value: str, dice: DicePort) -> int:
    """
    Turn a button value into a number:
    resource dice are rolled with the kingdom's die size appended, anything with a
    die marker is rolled as is, everything else must be a plain integer.
    """
    resource = parse_resource_type(type_)
    text = str(value).strip()
    if resource == ResourceType.ROLL_RESOURCE_DICE:
        die = get_size_data(kingdom.size).resource_die_size
        return dice.roll(f"{text}{die}").total
    if "d" in text.lower():
        return dice.roll(text).total
    try:
        return int(text)
    except ValueError:
        raise DiceFormulaError(text) from None


def resource_label(type_: Any) -> str:
    """Minimal label identifying a resource, e.g. "Resource Points"."""
    return unslugify(parse_resource_type(type_).value)
