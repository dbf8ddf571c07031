"""
Main kingdom reducer.
Applies turn actions to a kingdom, enforcing rules and producing a new kingdom.
Returns (new_kingdom, events) where events describe what happened.
Handlers work on a copy: an exception (including a failed dice roll) leaves the
given kingdom untouched.
"""

import logging

from kingmaker import config
from kingmaker.engine import (
    CONSUMPTION_RP_PRICE,
    HEX_LOSS_DC,
    MAX_FAME,
    MAX_KINGDOM_LEVEL,
    REDUCE_UNREST_DC,
    SHORTAGE_UNREST_FORMULA,
    UNREST_RUIN_THRESHOLD,
)
from kingmaker.engine.actions import Action
from kingmaker.engine.definitions import COMMODITY_TYPES, RANK_LABELS, Structure, get_size_data
from kingmaker.engine.dice import DicePort
from kingmaker.engine.errors import (
    InsufficientResources,
    KingdomError,
    MissingSkill,
    StructureValidationError,
)
from kingmaker.engine.events import (
    KingdomEvent,
    anarchy_warning,
    consumption_paid,
    event_checked,
    fame_gained,
    food_shortage,
    hex_loss_checked,
    level_up,
    resource_changed,
    resource_missing,
    resources_collected,
    ruin_rolled,
    shortage_paid,
    structure_check_rolled,
    structure_invalid,
    structure_paid,
    turn_ended,
    unrest_changed,
    unrest_ignored,
    xp_gained,
)
from kingmaker.engine.ledger import apply_delta
from kingmaker.engine.queries import (
    calculate_anarchy,
    calculate_commodity_yields,
    calculate_event_dc,
    get_capacity,
    get_control_dc,
    get_resource_dice_count,
    get_skill_modifier,
    get_total_consumption,
)
from kingmaker.engine.resources import (
    COMMODITY_RESOURCES,
    ResourceMode,
    ResourceTurn,
    evaluate_value,
    get_limit,
    parse_resource_type,
    read_resource,
    resource_label,
    write_resource,
)
from kingmaker.engine.settlements import (
    Settlement,
    SettlementAggregate,
    get_kingdom_aggregate,
    get_merged_data,
    get_settlements,
    missing_costs,
)
from kingmaker.engine.state import Commodities, Consumption, Kingdom, TurnValues

logger = logging.getLogger(__name__)


def apply_action(
    kingdom: Kingdom,
    action: Action,
    settlements: list[Settlement],
    structure_defs: dict[str, Structure],
    dice: DicePort,
) -> tuple[Kingdom, list[KingdomEvent]]:
    """
    Apply a single action to the kingdom, returning new kingdom and events.

    Args:
        kingdom: Current kingdom
        action: Action to apply
        settlements: Locations with their raw structure records
        structure_defs: Predefined structures by name (ref lookups, pay/build)
        dice: Dice port used for every roll

    Returns:
        Tuple of (new_kingdom, events) where events describe what happened
    """
    new_kingdom = kingdom.copy()
    events: list[KingdomEvent] = []

    if action.type == "collect_resources":
        new_kingdom, evts = _handle_collect_resources(new_kingdom, settlements, structure_defs, dice)
        events.extend(evts)

    elif action.type == "pay_consumption":
        new_kingdom, evts = _handle_pay_consumption(new_kingdom, settlements, structure_defs)
        events.extend(evts)

    elif action.type == "adjust_unrest":
        new_kingdom, evts = _handle_adjust_unrest(new_kingdom, settlements, dice)
        events.extend(evts)

    elif action.type == "check_for_event":
        new_kingdom, evts = _handle_check_for_event(new_kingdom, dice)
        events.extend(evts)

    elif action.type == "end_turn":
        new_kingdom, evts = _handle_end_turn(new_kingdom, settlements, structure_defs)
        events.extend(evts)

    elif action.type == "update_resource":
        new_kingdom, evts = _handle_update_resource(new_kingdom, action, settlements, structure_defs, dice)
        events.extend(evts)

    elif action.type == "reduce_unrest":
        new_kingdom, evts = _handle_reduce_unrest(new_kingdom, dice)
        events.extend(evts)

    elif action.type == "pay_shortage_with_rp":
        new_kingdom, evts = _handle_pay_shortage_with_rp(new_kingdom, action)
        events.extend(evts)

    elif action.type == "gain_shortage_unrest":
        new_kingdom, evts = _handle_gain_shortage_unrest(new_kingdom, dice)
        events.extend(evts)

    elif action.type == "pay_structure":
        new_kingdom, evts = _handle_pay_structure(new_kingdom, action, structure_defs)
        events.extend(evts)

    elif action.type == "build_structure":
        new_kingdom, evts = _handle_build_structure(new_kingdom, action, settlements, structure_defs, dice)
        events.extend(evts)

    elif action.type == "gain_fame":
        new_kingdom, evts = _handle_gain_fame(new_kingdom, action)
        events.extend(evts)

    elif action.type == "gain_xp":
        new_kingdom, evts = _handle_gain_xp(new_kingdom, action)
        events.extend(evts)

    elif action.type == "level_up":
        new_kingdom, evts = _handle_level_up(new_kingdom)
        events.extend(evts)

    else:
        raise ValueError(f"Unknown action type: {action.type}")

    return new_kingdom, events


def _kingdom_aggregate(
    settlements: list[Settlement],
    structure_defs: dict[str, Structure],
    events: list[KingdomEvent],
) -> SettlementAggregate:
    """Kingdom-wide aggregate; skipped structure records are reported as events."""
    aggregate, errors = get_kingdom_aggregate(settlements, structure_defs)
    for error in errors:
        events.append(structure_invalid(error.name, str(error)))
    return aggregate


def _get_structure(name: str, structure_defs: dict[str, Structure]) -> Structure:
    structure = structure_defs.get(name)
    if structure is None:
        raise StructureValidationError(f"No predefined structure data found for {name}", name=name)
    if structure.construction is None:
        raise StructureValidationError(f"Structure {name} has no construction data", name=name)
    return structure


# ===== Turn steps =====

def _handle_collect_resources(
    kingdom: Kingdom,
    settlements: list[Settlement],
    structure_defs: dict[str, Structure],
    dice: DicePort,
) -> tuple[Kingdom, list[KingdomEvent]]:
    """
    Roll resource dice into resource points and collect work site commodities.
    Each yield is clamped to capacity before it is added to the current turn.
    """
    events: list[KingdomEvent] = []
    aggregate = _kingdom_aggregate(settlements, structure_defs, events)
    die = get_size_data(kingdom.size).resource_die_size
    dice_count = get_resource_dice_count(kingdom)
    roll = dice.roll(f"{dice_count}{die}")

    capacity = get_capacity(kingdom, aggregate.storage)
    collected = {
        commodity: min(capacity[commodity], amount)
        for commodity, amount in calculate_commodity_yields(kingdom).items()
    }

    kingdom.resource_points.now += roll.total
    kingdom.resource_dice.now = 0
    for commodity, amount in collected.items():
        setattr(kingdom.commodities.now, commodity, kingdom.commodities.now.get(commodity) + amount)

    logger.info("Collected %d resource points (%d%s) and %s", roll.total, dice_count, die, collected)
    events.append(resources_collected(dice_count, die, roll.total, kingdom.resource_points.now, collected))
    return kingdom, events


def _handle_pay_consumption(
    kingdom: Kingdom,
    settlements: list[Settlement],
    structure_defs: dict[str, Structure],
) -> tuple[Kingdom, list[KingdomEvent]]:
    """
    Pay food for armies, kingdom and settlement consumption.
    A shortfall is only reported; paying RP or gaining unrest are separate actions.
    """
    events: list[KingdomEvent] = []
    aggregate = _kingdom_aggregate(settlements, structure_defs, events)
    total = get_total_consumption(kingdom, aggregate.consumption)
    food = kingdom.commodities.now.food
    paid = max(0, min(food, total))
    missing = max(0, total - food)

    kingdom.commodities.now.food = max(0, food - total)

    events.append(consumption_paid(total, paid, kingdom.commodities.now.food))
    if missing > 0:
        logger.info("Food shortage of %d (consumption %d, food %d)", missing, total, food)
        events.append(food_shortage(missing, missing * CONSUMPTION_RP_PRICE, SHORTAGE_UNREST_FORMULA))
    return kingdom, events


def _handle_adjust_unrest(
    kingdom: Kingdom,
    settlements: list[Settlement],
    dice: DicePort,
) -> tuple[Kingdom, list[KingdomEvent]]:
    """
    Gain unrest for war, overcrowded settlements and secondary territories.
    Level 20 kingdoms ignore unrest. At 10 or more unrest, roll ruin and check for hex loss.
    """
    events: list[KingdomEvent] = []
    located = get_settlements(settlements)
    at_war = 1 if kingdom.at_war else 0
    overcrowded = sum(1 for s in located if s.overcrowded)
    secondary_territories = 1 if any(s.secondary_territory for s in located) else 0
    increase = at_war + overcrowded + secondary_territories

    old_unrest = kingdom.unrest
    unrest = old_unrest + increase
    if kingdom.level >= MAX_KINGDOM_LEVEL and unrest > 0:
        events.append(unrest_ignored(unrest))
        unrest = 0

    # Roll everything before committing
    if unrest >= UNREST_RUIN_THRESHOLD:
        ruin_roll = dice.roll("1d10")
        hex_roll = dice.roll("1d20")
        events.append(ruin_rolled(ruin_roll.total))
        events.append(hex_loss_checked(hex_roll.total, HEX_LOSS_DC, hex_roll.total >= HEX_LOSS_DC))

    threshold = calculate_anarchy(kingdom)
    if unrest >= threshold:
        events.append(anarchy_warning(unrest, threshold))

    kingdom.unrest = unrest
    events.insert(0, unrest_changed(old_unrest, unrest, "adjust_unrest"))
    logger.info("Unrest %d -> %d (war %d, overcrowded %d, secondary %d)",
                old_unrest, unrest, at_war, overcrowded, secondary_territories)
    return kingdom, events


def _handle_check_for_event(kingdom: Kingdom, dice: DicePort) -> tuple[Kingdom, list[KingdomEvent]]:
    dc = calculate_event_dc(kingdom.turns_without_event)
    roll = dice.roll("1d20")
    occurs = roll.total >= dc
    if occurs:
        kingdom.turns_without_event = 0
    else:
        kingdom.turns_without_event += 1
    return kingdom, [event_checked(roll.total, dc, occurs, kingdom.turns_without_event)]


def _handle_end_turn(
    kingdom: Kingdom,
    settlements: list[Settlement],
    structure_defs: dict[str, Structure],
) -> tuple[Kingdom, list[KingdomEvent]]:
    """Next-turn columns become the current turn; commodities are added and clamped to capacity."""
    events: list[KingdomEvent] = []
    aggregate = _kingdom_aggregate(settlements, structure_defs, events)
    capacity = get_capacity(kingdom, aggregate.storage)

    kingdom.resource_dice = TurnValues(now=kingdom.resource_dice.next, next=0)
    kingdom.resource_points = TurnValues(now=kingdom.resource_points.next, next=0)
    kingdom.consumption = Consumption(now=kingdom.consumption.next, next=0, armies=kingdom.consumption.armies)
    now = kingdom.commodities.now
    next_ = kingdom.commodities.next
    kingdom.commodities.now = Commodities(**{
        c: min(capacity[c], now.get(c) + next_.get(c)) for c in COMMODITY_TYPES
    })
    kingdom.commodities.next = Commodities()

    events.append(turn_ended(
        kingdom.commodities.now.to_dict(),
        kingdom.resource_points.now,
        kingdom.resource_dice.now,
    ))
    return kingdom, events


# ===== Follow-up actions =====

def _handle_update_resource(
    kingdom: Kingdom,
    action: Action,
    settlements: list[Settlement],
    structure_defs: dict[str, Structure],
    dice: DicePort,
) -> tuple[Kingdom, list[KingdomEvent]]:
    """Generic gain/lose of one resource: evaluate, read, limit, ledger, write."""
    events: list[KingdomEvent] = []
    payload = action.payload
    resource = parse_resource_type(payload.get("resource"))
    mode = ResourceMode(payload.get("mode", "gain"))
    turn = ResourceTurn(payload.get("turn", "now"))

    amount = evaluate_value(kingdom, resource, str(payload.get("value", "")), dice)
    current = read_resource(kingdom, resource, turn)
    storage = None
    if resource in COMMODITY_RESOURCES and turn == ResourceTurn.NEXT:
        storage = _kingdom_aggregate(settlements, structure_defs, events).storage
    limit = get_limit(kingdom, resource, turn, storage)
    result = apply_delta(current, amount, mode.value, limit, turn.value)

    kingdom = kingdom.merged(write_resource(kingdom, resource, turn, result.value))

    label = resource_label(resource)
    events.append(resource_changed(resource.value, label, mode.value, turn.value, amount, result.value))
    if result.missing > 0:
        events.append(resource_missing(resource.value, label, result.missing))
    return kingdom, events


def _handle_reduce_unrest(kingdom: Kingdom, dice: DicePort) -> tuple[Kingdom, list[KingdomEvent]]:
    """Reduce unrest by 1 on an 11 or higher."""
    roll = dice.roll("1d20")
    old_unrest = kingdom.unrest
    if roll.total >= REDUCE_UNREST_DC:
        kingdom.unrest = max(0, kingdom.unrest - 1)
    return kingdom, [unrest_changed(old_unrest, kingdom.unrest, "reduce_unrest")]


def _handle_pay_shortage_with_rp(kingdom: Kingdom, action: Action) -> tuple[Kingdom, list[KingdomEvent]]:
    missing = int(action.payload.get("missing", 0))
    if missing < 0:
        raise KingdomError(f"Shortage must not be negative: {missing}")
    price = missing * CONSUMPTION_RP_PRICE
    if kingdom.resource_points.now < price:
        raise InsufficientResources({"rp": price - kingdom.resource_points.now})
    kingdom.resource_points.now -= price
    return kingdom, [shortage_paid(missing, price)]


def _handle_gain_shortage_unrest(kingdom: Kingdom, dice: DicePort) -> tuple[Kingdom, list[KingdomEvent]]:
    roll = dice.roll(SHORTAGE_UNREST_FORMULA)
    old_unrest = kingdom.unrest
    kingdom.unrest += roll.total
    return kingdom, [unrest_changed(old_unrest, kingdom.unrest, "food_shortage")]


def _handle_pay_structure(
    kingdom: Kingdom,
    action: Action,
    structure_defs: dict[str, Structure],
) -> tuple[Kingdom, list[KingdomEvent]]:
    """
    Deduct construction costs from the current turn, floored at 0.
    Unaffordable structures raise InsufficientResources unless costs are ignored.
    """
    structure = _get_structure(action.payload.get("name", ""), structure_defs)
    ignore_cost = action.payload.get("ignore_cost", config.IGNORE_STRUCTURE_COST)
    missing = missing_costs(structure, kingdom)
    if missing and not ignore_cost:
        raise InsufficientResources(missing, f"Can not afford {structure.name}")

    costs = structure.construction.costs()
    kingdom.resource_points.now = max(0, kingdom.resource_points.now - costs["rp"])
    for commodity in ("lumber", "ore", "stone", "luxuries"):
        setattr(kingdom.commodities.now, commodity, max(0, kingdom.commodities.now.get(commodity) - costs[commodity]))

    logger.info("Paid %s for %s", costs, structure.name)
    return kingdom, [structure_paid(structure.name, costs)]


def degree_of_success(total: int, dc: int) -> str:
    if total >= dc + 10:
        return "critical_success"
    if total >= dc:
        return "success"
    if total <= dc - 10:
        return "critical_failure"
    return "failure"


def _handle_build_structure(
    kingdom: Kingdom,
    action: Action,
    settlements: list[Settlement],
    structure_defs: dict[str, Structure],
    dice: DicePort,
) -> tuple[Kingdom, list[KingdomEvent]]:
    """
    Roll a construction check with one of the structure's construction skills.
    The kingdom must meet the skill's rank unless skill requirements are ignored.
    """
    events: list[KingdomEvent] = []
    payload = action.payload
    structure = _get_structure(payload.get("name", ""), structure_defs)
    skill = payload.get("skill", "")
    required = {req.skill: req.proficiency_rank for req in structure.construction.skills}
    if skill not in required:
        raise MissingSkill(skill, f"{structure.name} can not be built with {skill}")
    ignore = payload.get("ignore_skill_requirements", config.IGNORE_SKILL_REQUIREMENTS)
    if not ignore and kingdom.skill_ranks.get(skill, 0) < required[skill]:
        raise MissingSkill(skill, f"{structure.name} requires {RANK_LABELS[required[skill]]} {skill}")

    bonus = 0
    settlement_id = payload.get("settlement_id")
    if settlement_id is not None:
        view = get_merged_data(settlements, settlement_id, structure_defs)
        if view is None:
            raise KingdomError(f"Unknown settlement: {settlement_id}")
        for error in view.errors:
            events.append(structure_invalid(error.name, str(error)))
        bonus = view.aggregate.skill_bonuses.get(skill, 0)

    modifier = get_skill_modifier(kingdom, skill, bonus)
    dc = structure.construction.dc if structure.construction.dc is not None else get_control_dc(kingdom)
    roll = dice.roll("1d20")
    total = roll.total + modifier
    degree = degree_of_success(total, dc)
    events.append(structure_check_rolled(structure.name, skill, roll.total, modifier, total, dc, degree))
    return kingdom, events


def _handle_gain_fame(kingdom: Kingdom, action: Action) -> tuple[Kingdom, list[KingdomEvent]]:
    amount = int(action.payload.get("amount", 1))
    if amount < 0:
        raise KingdomError(f"Fame gain must not be negative: {amount}")
    kingdom.fame = min(MAX_FAME, kingdom.fame + amount)
    return kingdom, [fame_gained(amount, kingdom.fame)]


def _handle_gain_xp(kingdom: Kingdom, action: Action) -> tuple[Kingdom, list[KingdomEvent]]:
    amount = int(action.payload.get("amount", 0))
    if amount < 0:
        raise KingdomError(f"XP gain must not be negative: {amount}")
    kingdom.xp += amount
    return kingdom, [xp_gained(amount, kingdom.xp)]


def _handle_level_up(kingdom: Kingdom) -> tuple[Kingdom, list[KingdomEvent]]:
    if kingdom.level >= MAX_KINGDOM_LEVEL:
        raise KingdomError(f"Kingdom is already level {MAX_KINGDOM_LEVEL}")
    if kingdom.xp < kingdom.xp_threshold:
        raise KingdomError(f"Not enough XP: have {kingdom.xp}, need {kingdom.xp_threshold}")
    old_level = kingdom.level
    kingdom.level += 1
    kingdom.xp -= kingdom.xp_threshold
    return kingdom, [level_up(old_level, kingdom.level)]


def replay_from_actions(
    initial_kingdom: Kingdom,
    actions: list[Action],
    settlements: list[Settlement],
    structure_defs: dict[str, Structure],
    dice: DicePort,
) -> tuple[Kingdom, list[KingdomEvent]]:
    """
    Replay a series of actions from an initial kingdom.
    With a scripted dice port the result is fully deterministic.

    Returns:
        Tuple of (final_kingdom, all_events) after all actions applied
    """
    current = initial_kingdom.copy()
    all_events: list[KingdomEvent] = []

    for action in actions:
        current, events = apply_action(current, action, settlements, structure_defs, dice)
        all_events.extend(events)

    return current, all_events
