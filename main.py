"""
Main entry point for the Kingdom Turn & Economy Engine.
Demonstrates a kingdom turn with a simple simulated scenario.
"""

from kingmaker.engine.actions import (
    adjust_unrest,
    build_structure,
    check_for_event,
    collect_resources,
    end_turn,
    gain_shortage_unrest,
    pay_consumption,
    pay_structure,
    update_resource,
)
from kingmaker.engine.definitions import load_structure_catalog
from kingmaker.engine.dice import RandomDicePort
from kingmaker.engine.events import FOOD_SHORTAGE
from kingmaker.engine.queries import get_capacity
from kingmaker.engine.reducer import apply_action, replay_from_actions
from kingmaker.engine.settlements import Settlement, get_kingdom_aggregate
from kingmaker.engine.utils import initialize_kingdom, print_events, print_kingdom


def main():
    print("Kingdom Turn & Economy Engine")
    print("=" * 60)

    structure_defs = load_structure_catalog()
    dice = RandomDicePort(seed=7)

    kingdom = initialize_kingdom("Stolen Lands", {
        "level": 2,
        "size": 12,
        "consumption": {"now": 1, "next": 1, "armies": 0},
        "commodities": {"now": {"food": 4, "lumber": 6, "stone": 2}, "next": {}},
        "work_sites": {
            "mines": {"quantity": 1, "resources": 0},
            "lumber_camps": {"quantity": 2, "resources": 1},
            "luxury_sources": {"quantity": 0, "resources": 0},
        },
        "skill_ranks": {"agriculture": 1, "industry": 1, "folklore": 1},
    })
    settlements = [
        Settlement(
            id="tatzlford",
            name="Tatzlford",
            settlement_type="Capital",
            level=2,
            structures=[{"ref": "Houses"}, {"ref": "Shrine"}, {"ref": "Granary"}],
        ),
        Settlement(
            id="oleg",
            name="Oleg's",
            settlement_type="Settlement",
            level=1,
            overcrowded=True,
            structures=[{"ref": "Houses"}],
        ),
    ]

    aggregate, _ = get_kingdom_aggregate(settlements, structure_defs)
    capacity = get_capacity(kingdom, aggregate.storage)

    print("\n[INITIAL KINGDOM]")
    print_kingdom(kingdom, capacity)

    # ===== SCENARIO 1: One full kingdom turn =====
    print("\n[SCENARIO 1: Kingdom Turn]")
    kingdom, events = replay_from_actions(
        kingdom,
        [collect_resources(), pay_consumption(), adjust_unrest(), check_for_event()],
        settlements,
        structure_defs,
        dice,
    )
    print_events(events)

    if any(e.type == FOOD_SHORTAGE for e in events):
        print("Food shortage: gaining unrest instead of paying resource points")
        kingdom, events = apply_action(kingdom, gain_shortage_unrest(), settlements, structure_defs, dice)
        print_events(events)

    # ===== SCENARIO 2: Build a structure =====
    print("\n[SCENARIO 2: Build a Granary in Tatzlford]")
    try:
        kingdom, events = apply_action(kingdom, pay_structure("Granary"), settlements, structure_defs, dice)
        print_events(events)
        kingdom, events = apply_action(
            kingdom,
            build_structure("Granary", "agriculture", settlement_id="tatzlford"),
            settlements,
            structure_defs,
            dice,
        )
        print_events(events)
    except ValueError as e:
        print(f"✗ Construction failed: {e}")

    # ===== SCENARIO 3: Next turn income and end of turn =====
    print("\n[SCENARIO 3: Trade Agreement Lumber, then End Turn]")
    kingdom, events = apply_action(
        kingdom, update_resource("lumber", "1d4", mode="gain", turn="next"), settlements, structure_defs, dice,
    )
    print_events(events)
    kingdom, events = apply_action(kingdom, end_turn(), settlements, structure_defs, dice)
    print_events(events)

    print("\n[FINAL KINGDOM]")
    print_kingdom(kingdom, capacity)


if __name__ == "__main__":
    main()
