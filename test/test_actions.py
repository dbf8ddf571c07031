"""
Follow-up actions: generic resource updates, shortage remedies, structures,
fame, XP and levelling. Also covers validation and the structure browser.
"""

import pytest

from kingmaker import config
from kingmaker.engine.actions import (
    Action,
    build_structure,
    gain_fame,
    gain_shortage_unrest,
    gain_xp,
    level_up,
    pay_shortage_with_rp,
    pay_structure,
    reduce_unrest,
    update_resource,
)
from kingmaker.engine.errors import (
    InsufficientResources,
    KingdomError,
    MissingSkill,
    StructureValidationError,
    UnhandledResourceType,
)
from kingmaker.engine.queries import (
    StructureFilters,
    get_control_dc,
    get_kingdom_stats,
    get_skill_modifier,
    get_structure_browser,
    validate_action,
)
from kingmaker.engine.reducer import apply_action, degree_of_success
from kingmaker.engine.settlements import Settlement


def _apply(kingdom, action, catalog, dice, settlements=()):
    return apply_action(kingdom, action, list(settlements), catalog, dice)


# ===== Generic resource updates =====

def test_gain_resource_points_now(kingdom, catalog, scripted_dice):
    new_kingdom, events = _apply(kingdom, update_resource("resource-points", "4"), catalog, scripted_dice())

    assert new_kingdom.resource_points.now == 4
    assert events[0].payload == {
        "resource": "resource-points",
        "label": "Resource Points",
        "mode": "gain",
        "turn": "now",
        "amount": 4,
        "value": 4,
    }


def test_losing_more_than_stock_reports_missing(kingdom, catalog, scripted_dice):
    kingdom.commodities.now.food = 1

    new_kingdom, events = _apply(kingdom, update_resource("food", "3", mode="lose"), catalog, scripted_dice())

    assert [e.type for e in events] == ["resource_changed", "resource_missing"]
    assert events[1].payload["missing"] == 2
    assert new_kingdom.commodities.now.food == -2


def test_next_turn_commodity_limit_is_lower_bound(kingdom, catalog, scripted_dice):
    settlements = [Settlement(id="s", settlement_type="Settlement", structures=[{"ref": "Lumberyard"}])]

    new_kingdom, events = _apply(
        kingdom, update_resource("lumber", "2", turn="next"), catalog, scripted_dice(), settlements,
    )

    # max(capacity 4 + 1 storage, 0 + 2)
    assert new_kingdom.commodities.next.lumber == 5
    assert new_kingdom.commodities.now.lumber == 0
    assert [e.type for e in events] == ["resource_changed"]


def test_dice_value_is_rolled(kingdom, catalog, scripted_dice):
    dice = scripted_dice(3)
    new_kingdom, _ = _apply(kingdom, update_resource("crime", "1d4"), catalog, dice)
    assert new_kingdom.ruin.crime.value == 3
    assert dice.formulas == ["1d4"]


def test_roll_resource_dice_adds_resource_points(kingdom, catalog, scripted_dice):
    kingdom.resource_points.now = 2
    dice = scripted_dice(6)
    new_kingdom, _ = _apply(kingdom, update_resource("roll-resource-dice", "2"), catalog, dice)
    assert new_kingdom.resource_points.now == 8
    assert dice.formulas == ["2d4"]


def test_unknown_resource_is_rejected(kingdom, catalog, scripted_dice):
    with pytest.raises(UnhandledResourceType):
        _apply(kingdom, update_resource("gold", "1"), catalog, scripted_dice())


# ===== Unrest and shortages =====

@pytest.mark.parametrize("roll,unrest", [(11, 2), (10, 3)])
def test_reduce_unrest(kingdom, catalog, scripted_dice, roll, unrest):
    kingdom.unrest = 3
    new_kingdom, events = _apply(kingdom, reduce_unrest(), catalog, scripted_dice(roll))
    assert new_kingdom.unrest == unrest
    assert events[0].payload["reason"] == "reduce_unrest"


def test_reduce_unrest_never_below_zero(kingdom, catalog, scripted_dice):
    new_kingdom, _ = _apply(kingdom, reduce_unrest(), catalog, scripted_dice(20))
    assert new_kingdom.unrest == 0


def test_pay_shortage_with_rp(kingdom, catalog, scripted_dice):
    kingdom.resource_points.now = 12
    new_kingdom, events = _apply(kingdom, pay_shortage_with_rp(2), catalog, scripted_dice())
    assert new_kingdom.resource_points.now == 2
    assert events[0].payload == {"missing": 2, "rp_paid": 10}


def test_pay_shortage_without_enough_rp(kingdom, catalog, scripted_dice):
    kingdom.resource_points.now = 6
    with pytest.raises(InsufficientResources) as exc_info:
        _apply(kingdom, pay_shortage_with_rp(2), catalog, scripted_dice())
    assert exc_info.value.missing == {"rp": 4}
    assert kingdom.resource_points.now == 6


@pytest.mark.parametrize("action", [pay_shortage_with_rp(-4), gain_fame(-1), gain_xp(-50)])
def test_negative_amounts_are_rejected(kingdom, catalog, scripted_dice, action):
    kingdom.fame = 1
    kingdom.xp = 100
    with pytest.raises(KingdomError):
        _apply(kingdom, action, catalog, scripted_dice())
    assert kingdom.resource_points.now == 0
    assert (kingdom.fame, kingdom.xp) == (1, 100)


def test_gain_shortage_unrest(kingdom, catalog, scripted_dice):
    kingdom.unrest = 1
    dice = scripted_dice(3)
    new_kingdom, _ = _apply(kingdom, gain_shortage_unrest(), catalog, dice)
    assert new_kingdom.unrest == 4
    assert dice.formulas == ["1d4"]


# ===== Structures =====

def test_pay_structure(kingdom, catalog, scripted_dice):
    kingdom.resource_points.now = 5
    kingdom.commodities.now.lumber = 2

    new_kingdom, events = _apply(kingdom, pay_structure("Houses"), catalog, scripted_dice())

    assert new_kingdom.resource_points.now == 2
    assert new_kingdom.commodities.now.lumber == 1
    assert events[0].type == "structure_paid"
    assert events[0].payload["costs"]["rp"] == 3


def test_pay_structure_unaffordable(kingdom, catalog, scripted_dice, monkeypatch):
    monkeypatch.setattr(config, "IGNORE_STRUCTURE_COST", False)
    kingdom.resource_points.now = 1
    with pytest.raises(InsufficientResources) as exc_info:
        _apply(kingdom, pay_structure("Houses"), catalog, scripted_dice())
    assert exc_info.value.missing == {"rp": 2, "lumber": 1}


def test_pay_structure_ignoring_cost_floors_at_zero(kingdom, catalog, scripted_dice):
    kingdom.resource_points.now = 1
    new_kingdom, _ = _apply(kingdom, pay_structure("Houses", ignore_cost=True), catalog, scripted_dice())
    assert new_kingdom.resource_points.now == 0
    assert new_kingdom.commodities.now.lumber == 0


def test_pay_unknown_structure(kingdom, catalog, scripted_dice):
    with pytest.raises(StructureValidationError):
        _apply(kingdom, pay_structure("Wizard Tower"), catalog, scripted_dice())


def test_build_structure_rolls_against_dc(kingdom, catalog, scripted_dice):
    kingdom.level = 3
    kingdom.skill_ranks["folklore"] = 1
    settlements = [Settlement(id="town", settlement_type="Settlement", structures=[{"ref": "Shrine"}])]
    dice = scripted_dice(9)

    _, events = _apply(kingdom, build_structure("Shrine", "folklore", settlement_id="town"), catalog, dice, settlements)

    # level 3 + trained 2 + shrine bonus 1
    assert events[-1].payload == {
        "name": "Shrine",
        "skill": "folklore",
        "roll": 9,
        "modifier": 6,
        "total": 15,
        "dc": 15,
        "degree": "success",
    }
    assert dice.formulas == ["1d20"]


def test_build_structure_requires_rank(kingdom, catalog, scripted_dice, monkeypatch):
    monkeypatch.setattr(config, "IGNORE_SKILL_REQUIREMENTS", False)
    with pytest.raises(MissingSkill):
        _apply(kingdom, build_structure("Shrine", "folklore"), catalog, scripted_dice())
    with pytest.raises(MissingSkill):
        _apply(kingdom, build_structure("Shrine", "warfare", ignore_skill_requirements=True), catalog, scripted_dice())


def test_build_structure_ignoring_requirements(kingdom, catalog, scripted_dice):
    _, events = _apply(
        kingdom,
        build_structure("Shrine", "folklore", ignore_skill_requirements=True),
        catalog,
        scripted_dice(2),
    )
    assert events[-1].payload["modifier"] == 0
    assert events[-1].payload["degree"] == "critical_failure"


def test_build_in_unknown_settlement(kingdom, catalog, scripted_dice):
    with pytest.raises(KingdomError):
        _apply(kingdom, build_structure("Houses", "industry", settlement_id="nowhere"), catalog, scripted_dice())


@pytest.mark.parametrize("total,degree", [
    (25, "critical_success"),
    (15, "success"),
    (14, "failure"),
    (5, "critical_failure"),
])
def test_degree_of_success(total, degree):
    assert degree_of_success(total, 15) == degree


def test_skill_modifier_and_control_dc(kingdom):
    kingdom.level = 4
    kingdom.size = 30
    kingdom.skill_ranks["trade"] = 2
    assert get_skill_modifier(kingdom, "trade") == 8
    assert get_skill_modifier(kingdom, "trade", 1) == 9
    assert get_skill_modifier(kingdom, "arts") == 0
    assert get_control_dc(kingdom) == 19 + 2


# ===== Fame, XP, level =====

def test_fame_is_capped(kingdom, catalog, scripted_dice):
    kingdom.fame = 2
    new_kingdom, events = _apply(kingdom, gain_fame(2), catalog, scripted_dice())
    assert new_kingdom.fame == 3
    assert events[0].payload == {"amount": 2, "fame": 3}


def test_xp_and_level_up(kingdom, catalog, scripted_dice):
    kingdom, _ = _apply(kingdom, gain_xp(1200), catalog, scripted_dice())
    kingdom, events = _apply(kingdom, level_up(), catalog, scripted_dice())
    assert kingdom.level == 2
    assert kingdom.xp == 200
    assert events[0].payload == {"old_level": 1, "new_level": 2}

    with pytest.raises(KingdomError):
        _apply(kingdom, level_up(), catalog, scripted_dice())


def test_no_level_up_past_twenty(kingdom, catalog, scripted_dice):
    kingdom.level = 20
    kingdom.xp = 5000
    with pytest.raises(KingdomError):
        _apply(kingdom, level_up(), catalog, scripted_dice())


def test_unknown_action(kingdom, catalog, scripted_dice):
    with pytest.raises(ValueError):
        _apply(kingdom, Action(type="raise_army"), catalog, scripted_dice())


# ===== Validation and queries =====

def test_validate_action(kingdom, catalog):
    assert validate_action(kingdom, update_resource("food", "2"), catalog).valid
    assert not validate_action(kingdom, update_resource("gold", "2"), catalog).valid
    assert not validate_action(kingdom, update_resource("food", "2", mode="steal"), catalog).valid
    assert not validate_action(kingdom, update_resource("food", " "), catalog).valid
    assert not validate_action(kingdom, pay_shortage_with_rp(1), catalog).valid
    assert not validate_action(kingdom, pay_structure("Wizard Tower"), catalog).valid
    assert not validate_action(kingdom, build_structure("Houses", "magic"), catalog).valid
    assert not validate_action(kingdom, gain_xp(-5), catalog).valid
    assert not validate_action(kingdom, level_up(), catalog).valid
    assert not validate_action(kingdom, Action(type="raise_army"), catalog).valid


def test_structure_browser_filters(kingdom, catalog):
    names = [s["name"] for s in get_structure_browser(kingdom, catalog)]
    assert names == []  # nothing affordable with empty ledgers

    everything = StructureFilters(ignore_proficiency_requirements=True, ignore_structure_cost=True, level=20)
    names = [s["name"] for s in get_structure_browser(kingdom, catalog, everything)]
    assert "Castle" in names and "Marketplace" in names

    small = StructureFilters(ignore_proficiency_requirements=True, ignore_structure_cost=True, level=20, lots=1)
    names = [s["name"] for s in get_structure_browser(kingdom, catalog, small)]
    assert "Castle" not in names and "Marketplace" not in names

    storage = StructureFilters(ignore_proficiency_requirements=True, ignore_structure_cost=True, storage=True)
    names = [s["name"] for s in get_structure_browser(kingdom, catalog, storage)]
    assert names == ["Granary"]


def test_structure_browser_flags_costs(kingdom, catalog):
    kingdom.resource_points.now = 3
    filters = StructureFilters(ignore_proficiency_requirements=True, ignore_structure_cost=True, search="houses")
    [entry] = get_structure_browser(kingdom, catalog, filters)
    assert entry["insufficient"] == {"rp": False, "lumber": True, "ore": False, "stone": False, "luxuries": False}
    assert entry["lacks_proficiency"] is False


def test_structure_browser_activities(kingdom, catalog):
    filters = StructureFilters(
        ignore_proficiency_requirements=True,
        ignore_structure_cost=True,
        level=20,
        activities=["celebrate-holiday"],
    )
    names = [s["name"] for s in get_structure_browser(kingdom, catalog, filters)]
    assert names == ["Shrine", "Tavern, Popular"]


def test_kingdom_stats(kingdom, catalog):
    kingdom.consumption.now = 1
    settlements = [
        Settlement(id="cap", settlement_type="Capital", structures=[{"ref": "Granary"}, {"ref": "Town Hall"}]),
    ]
    stats = get_kingdom_stats(kingdom, settlements, catalog)
    assert stats["capacity"]["food"] == 5
    assert stats["total_consumption"] == 2
    assert stats["food_shortage"] == 2
    assert stats["shortage_rp_price"] == 10
    assert stats["leadership_activities"] == 3
    assert stats["resource_dice_count"] == 5
    assert stats["event_dc"] == 16
    assert stats["skills"]["agriculture"]["rank"] == "Untrained"
