"""
Utility functions for the kingdom engine.
"""

from typing import Any

from kingmaker.engine.definitions import COMMODITY_TYPES, get_size_data
from kingmaker.engine.events import KingdomEvent
from kingmaker.engine.state import Kingdom


def unslugify(value: str) -> str:
    """"resource-points" -> "Resource Points"."""
    return " ".join(part.capitalize() for part in value.replace("_", "-").split("-") if part)


def has_feat(kingdom: Kingdom, feat_id: str) -> bool:
    """True when the feat was taken at a level or granted as a bonus feat."""
    return any(f.id == feat_id for f in kingdom.feats) or any(f.id == feat_id for f in kingdom.bonus_feats)


def initialize_kingdom(
    name: str | None = None,
    starting_setup: dict[str, Any] | None = None,
) -> Kingdom:
    """
    Create a new kingdom with default values.

    Args:
        name: Kingdom name (default from config.DEFAULT_KINGDOM_NAME)
        starting_setup: Optional partial kingdom merged over the defaults, e.g.
            {"level": 3, "size": 12, "work_sites": {"mines": {"quantity": 2, "resources": 0}, ...}}
    """
    from kingmaker.config import DEFAULT_KINGDOM_NAME
    kingdom = Kingdom(name=name or DEFAULT_KINGDOM_NAME)
    if starting_setup:
        kingdom = kingdom.merged(starting_setup)
        if name:
            kingdom.name = name
    return kingdom


def print_kingdom(kingdom: Kingdom, capacity: dict[str, int] | None = None):
    """
    Pretty-print the kingdom ledgers.

    Args:
        kingdom: Kingdom to print
        capacity: Optional commodity capacity (defaults to the size base capacity)
    """
    size_data = get_size_data(kingdom.size)
    if capacity is None:
        capacity = {c: size_data.commodity_capacity for c in COMMODITY_TYPES}

    print(f"\n{'='*60}")
    print(f"{kingdom.name} | Level {kingdom.level} | {size_data.type.capitalize()} ({kingdom.size} hexes)")
    print(f"{'='*60}")

    print(f"\nResource Points: {kingdom.resource_points.now} (next: {kingdom.resource_points.next})")
    print(f"Resource Dice:   {kingdom.resource_dice.now} (next: {kingdom.resource_dice.next})")
    print(f"Consumption:     {kingdom.consumption.now} (next: {kingdom.consumption.next}, armies: {kingdom.consumption.armies})")

    print("\nCommodities:")
    for commodity in COMMODITY_TYPES:
        now = kingdom.commodities.now.get(commodity)
        next_ = kingdom.commodities.next.get(commodity)
        print(f"  - {commodity.capitalize():<9} {now:>3} / {capacity[commodity]:<3} (next: {next_})")

    print(f"\nUnrest: {kingdom.unrest}")
    ruin = ", ".join(f"{r}={v['value']}" for r, v in kingdom.ruin.to_dict().items())
    print(f"Ruin:   {ruin}")
    print(f"Turns without event: {kingdom.turns_without_event}")


def print_events(events: list[KingdomEvent]):
    """Print events one per line."""
    for event in events:
        payload = ", ".join(f"{k}={v}" for k, v in event.payload.items())
        print(f"  [{event.type}] {payload}")
