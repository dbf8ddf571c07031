"""
Query functions for UI integration.
These functions help the UI show derived kingdom values and which actions are
available without mutating kingdom state.
"""

from dataclasses import dataclass, field
from typing import Any

from kingmaker.engine import (
    ANARCHY_THRESHOLD,
    CONSUMPTION_RP_PRICE,
    ENDURE_ANARCHY,
    ENDURE_ANARCHY_THRESHOLD,
    EVENT_BASE_DC,
    EVENT_DC_STEP,
    EVENT_MIN_DC,
    INSIDER_TRADING,
    MAX_KINGDOM_LEVEL,
)
from kingmaker.engine.actions import Action
from kingmaker.engine.definitions import (
    KINGDOM_SKILLS,
    RANK_LABELS,
    Structure,
    get_level_data,
    get_size_data,
)
from kingmaker.engine.resources import ResourceMode, ResourceTurn, ResourceType
from kingmaker.engine.settlements import (
    Settlement,
    calculate_storage_capacity,
    check_building_cost,
    check_proficiency,
    get_kingdom_aggregate,
    get_structure_activities,
    missing_costs,
)
from kingmaker.engine.state import Kingdom
from kingmaker.engine.utils import has_feat, unslugify

# Every action type the reducer understands
ACTION_TYPES = (
    "collect_resources",
    "pay_consumption",
    "adjust_unrest",
    "check_for_event",
    "end_turn",
    "update_resource",
    "reduce_unrest",
    "pay_shortage_with_rp",
    "gain_shortage_unrest",
    "pay_structure",
    "build_structure",
    "gain_fame",
    "gain_xp",
    "level_up",
)


@dataclass
class ValidationResult:
    """Result of action validation."""
    valid: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "error": self.error}


# ===== Derived values =====

def calculate_event_dc(turns_without_event: int) -> int:
    """DC of the random event check: 16, 11, 6, then 1 for any longer streak."""
    return max(EVENT_MIN_DC, EVENT_BASE_DC - EVENT_DC_STEP * turns_without_event)


def calculate_anarchy(kingdom: Kingdom) -> int:
    return ENDURE_ANARCHY_THRESHOLD if has_feat(kingdom, ENDURE_ANARCHY) else ANARCHY_THRESHOLD


def get_resource_dice_count(kingdom: Kingdom) -> int:
    """Resource dice rolled when collecting: size-keyed base + stored dice + Insider Trading."""
    feat_dice = 1 if has_feat(kingdom, INSIDER_TRADING) else 0
    return get_level_data(kingdom.size).resource_dice + kingdom.resource_dice.now + feat_dice


def get_capacity(kingdom: Kingdom, storage: dict[str, int] | None = None) -> dict[str, int]:
    """Per-commodity storage capacity: size base plus settlement storage."""
    return calculate_storage_capacity(get_size_data(kingdom.size).commodity_capacity, storage or {})


def calculate_commodity_yields(kingdom: Kingdom) -> dict[str, int]:
    """
    Raw commodities produced by work sites this turn (before capacity).
    Mines yield both ore and lumber, lumber camps yield stone.
    """
    sites = kingdom.work_sites
    return {
        "ore": sites.mines.quantity + sites.mines.resources,
        "lumber": sites.mines.quantity + sites.mines.resources,
        "luxuries": sites.luxury_sources.quantity + sites.luxury_sources.resources,
        "stone": sites.lumber_camps.quantity + sites.lumber_camps.resources,
    }


def get_total_consumption(kingdom: Kingdom, settlement_consumption: int) -> int:
    return kingdom.consumption.armies + kingdom.consumption.now + settlement_consumption


def get_control_dc(kingdom: Kingdom) -> int:
    """Level-based control DC adjusted by kingdom size."""
    return get_level_data(kingdom.level).control_dc + get_size_data(kingdom.size).control_dc_modifier


def get_skill_modifier(kingdom: Kingdom, skill: str, bonus: int = 0) -> int:
    """Proficiency modifier for a kingdom skill: untrained 0, otherwise level + 2 per rank."""
    rank = kingdom.skill_ranks.get(skill, 0)
    proficiency = 0 if rank <= 0 else kingdom.level + 2 * rank
    return proficiency + bonus


def get_kingdom_stats(
    kingdom: Kingdom,
    settlements: list[Settlement],
    structure_defs: dict[str, Structure],
) -> dict[str, Any]:
    """Summary of derived kingdom values for display."""
    aggregate, errors = get_kingdom_aggregate(settlements, structure_defs)
    size_data = get_size_data(kingdom.size)
    total_consumption = get_total_consumption(kingdom, aggregate.consumption)
    food = kingdom.commodities.now.food
    return {
        "name": kingdom.name,
        "level": kingdom.level,
        "size": kingdom.size,
        "size_type": size_data.type,
        "resource_die": size_data.resource_die_size,
        "resource_dice_count": get_resource_dice_count(kingdom),
        "capacity": get_capacity(kingdom, aggregate.storage),
        "settlement_consumption": aggregate.consumption,
        "total_consumption": total_consumption,
        "food_shortage": max(0, total_consumption - food),
        "shortage_rp_price": max(0, total_consumption - food) * CONSUMPTION_RP_PRICE,
        "control_dc": get_control_dc(kingdom),
        "event_dc": calculate_event_dc(kingdom.turns_without_event),
        "anarchy_threshold": calculate_anarchy(kingdom),
        "leadership_activities": aggregate.leadership_activity_number,
        "unlocked_activities": sorted(aggregate.unlocked_activities),
        "skill_bonuses": dict(sorted(aggregate.skill_bonuses.items())),
        "skills": {
            skill: {
                "label": unslugify(skill),
                "rank": RANK_LABELS[kingdom.skill_ranks.get(skill, 0)],
                "modifier": get_skill_modifier(kingdom, skill, aggregate.skill_bonuses.get(skill, 0)),
            }
            for skill in KINGDOM_SKILLS
        },
        "structure_errors": [str(e) for e in errors],
    }


# ===== Structure browser =====

@dataclass
class StructureFilters:
    """Structure browser filters. level defaults to the kingdom level."""
    search: str = ""
    housing: bool = False
    infrastructure: bool = False
    storage: bool = False
    consumption: bool = False
    items: bool = False
    affects_events: bool = False
    affects_downtime: bool = False
    reduces_unrest: bool = False
    reduces_ruin: bool = False
    ignore_proficiency_requirements: bool = False
    ignore_structure_cost: bool = False
    level: int | None = None
    lots: int = 4
    activities: list[str] = field(default_factory=list)  # all listed activities must be unlocked


def _matches(structure: Structure, kingdom: Kingdom, filters: StructureFilters) -> bool:
    checks = []
    if filters.storage:
        checks.append(structure.storage is not None)
    if filters.affects_events:
        checks.append(structure.affects_events)
    if filters.affects_downtime:
        checks.append(structure.affects_downtime)
    if filters.housing:
        checks.append("residential" in structure.traits)
    if filters.infrastructure:
        checks.append("infrastructure" in structure.traits)
    if filters.reduces_unrest:
        checks.append(structure.reduces_unrest)
    if filters.reduces_ruin:
        checks.append(structure.reduces_ruin)
    if filters.consumption:
        checks.append(structure.consumption_reduction > 0)
    if filters.items:
        checks.append(len(structure.available_items_rules) > 0)
    if not filters.ignore_proficiency_requirements:
        checks.append(check_proficiency(structure, kingdom))
    if not filters.ignore_structure_cost:
        checks.append(check_building_cost(structure, kingdom))
    search = filters.search.strip().lower()
    if search:
        checks.append(search in structure.name.lower())
    if filters.activities:
        checks.append(set(filters.activities) <= get_structure_activities(structure))
    level = filters.level if filters.level is not None else kingdom.level
    checks.append(structure.level <= level)
    checks.append(structure.lots <= filters.lots)
    return all(checks)


def get_structure_browser(
    kingdom: Kingdom,
    structure_defs: dict[str, Structure],
    filters: StructureFilters | None = None,
) -> list[dict[str, Any]]:
    """
    Structures matching the filters, sorted by name. Each entry flags missing
    proficiency and every insufficient cost.
    """
    filters = filters or StructureFilters()
    result = []
    for structure in sorted(structure_defs.values(), key=lambda s: s.name):
        if not _matches(structure, kingdom, filters):
            continue
        construction = structure.construction
        missing = missing_costs(structure, kingdom)
        result.append({
            "name": structure.name,
            "level": structure.level,
            "lots": structure.lots,
            "dc": construction.dc if construction else None,
            "skills": [
                {"skill": req.skill, "label": unslugify(req.skill), "rank": RANK_LABELS[req.proficiency_rank]}
                for req in (construction.skills if construction else ())
            ],
            "costs": construction.costs() if construction else {},
            "lacks_proficiency": not check_proficiency(structure, kingdom),
            "insufficient": {resource: resource in missing for resource in ("rp", "lumber", "ore", "stone", "luxuries")},
            "activities": sorted(get_structure_activities(structure)),
        })
    return result


# ===== Action Validation =====

def validate_action(
    kingdom: Kingdom,
    action: Action,
    structure_defs: dict[str, Structure],
) -> ValidationResult:
    """
    Validate an action without applying it.
    Checks what can be known without rolling dice; returns ValidationResult with
    valid=True or valid=False with error message.
    """
    if action.type not in ACTION_TYPES:
        return ValidationResult(False, f"Unknown action type: {action.type}")

    payload = action.payload
    if action.type == "update_resource":
        if payload.get("resource") not in {r.value for r in ResourceType}:
            return ValidationResult(False, f"Unhandled resource type {payload.get('resource')!r}")
        if payload.get("mode", "gain") not in {m.value for m in ResourceMode}:
            return ValidationResult(False, f"Unknown mode {payload.get('mode')!r}")
        if payload.get("turn", "now") not in {t.value for t in ResourceTurn}:
            return ValidationResult(False, f"Unknown turn {payload.get('turn')!r}")
        if not str(payload.get("value", "")).strip():
            return ValidationResult(False, "Missing value")

    elif action.type == "pay_shortage_with_rp":
        missing = payload.get("missing")
        if not isinstance(missing, int) or missing < 0:
            return ValidationResult(False, "missing must be a non-negative integer")
        price = missing * CONSUMPTION_RP_PRICE
        if kingdom.resource_points.now < price:
            return ValidationResult(False, f"Insufficient resource points: have {kingdom.resource_points.now}, need {price}")

    elif action.type in ("pay_structure", "build_structure"):
        structure = structure_defs.get(payload.get("name", ""))
        if structure is None:
            return ValidationResult(False, f"Unknown structure: {payload.get('name')}")
        if structure.construction is None:
            return ValidationResult(False, f"Structure {structure.name} can not be built")
        if action.type == "build_structure":
            skill = payload.get("skill")
            if skill not in {req.skill for req in structure.construction.skills}:
                return ValidationResult(False, f"{structure.name} can not be built with {skill}")

    elif action.type in ("gain_fame", "gain_xp"):
        if not isinstance(payload.get("amount"), int) or payload["amount"] < 0:
            return ValidationResult(False, "amount must be a non-negative integer")

    elif action.type == "level_up":
        if kingdom.level >= MAX_KINGDOM_LEVEL:
            return ValidationResult(False, f"Kingdom is already level {MAX_KINGDOM_LEVEL}")
        if kingdom.xp < kingdom.xp_threshold:
            return ValidationResult(False, f"Not enough XP: have {kingdom.xp}, need {kingdom.xp_threshold}")

    return ValidationResult(True)
