"""
Structure aggregation: folds the structures placed in a settlement into the
settlement's effective bonuses, applies capital inheritance and merges
settlements into kingdom-wide totals.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from kingmaker.engine import BASE_LEADERSHIP_ACTIVITIES, BONUS_LEADERSHIP_ACTIVITIES
from kingmaker.engine.definitions import (
    COMMODITY_TYPES,
    Structure,
    get_settlement_type_data,
    parse_structure_data,
)
from kingmaker.engine.errors import StructureValidationError
from kingmaker.engine.state import Kingdom

logger = logging.getLogger(__name__)

SETTLEMENT_TYPES = ("Capital", "Settlement", "-")


def _zero_storage() -> dict[str, int]:
    return {c: 0 for c in COMMODITY_TYPES}


@dataclass
class Settlement:
    """A location record supplied by the settlement data source."""
    id: str
    name: str = ""
    settlement_type: str = "-"  # "Capital", "Settlement" or "-"
    level: int = 1
    overcrowded: bool = False
    secondary_territory: bool = False
    structures: list[Any] = field(default_factory=list)  # raw structure records

    @property
    def is_settlement(self) -> bool:
        return self.settlement_type in ("Settlement", "Capital")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "settlement_type": self.settlement_type,
            "level": self.level,
            "overcrowded": self.overcrowded,
            "secondary_territory": self.secondary_territory,
            "structures": list(self.structures),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settlement":
        settlement_type = data.get("settlement_type")
        try:
            level = int(data.get("level", 1))
        except (TypeError, ValueError):
            level = 1
        structures = data.get("structures")
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name") or ""),
            settlement_type=settlement_type if settlement_type in SETTLEMENT_TYPES else "-",
            level=max(1, level),
            overcrowded=bool(data.get("overcrowded", False)),
            secondary_territory=bool(data.get("secondary_territory", False)),
            structures=list(structures) if isinstance(structures, list) else [],
        )


@dataclass(frozen=True)
class SettlementAggregate:
    """Derived bonuses of one or more settlements. Recomputed on demand, never persisted."""
    leadership_activity_number: int = BASE_LEADERSHIP_ACTIVITIES
    consumption: int = 0
    storage: dict[str, int] = field(default_factory=_zero_storage)
    unlocked_activities: frozenset[str] = frozenset()
    skill_bonuses: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "leadership_activity_number": self.leadership_activity_number,
            "consumption": self.consumption,
            "storage": dict(self.storage),
            "unlocked_activities": sorted(self.unlocked_activities),
            "skill_bonuses": dict(sorted(self.skill_bonuses.items())),
        }


@dataclass
class SettlementView:
    """A settlement together with its (capital-merged) aggregate and any skipped structure records."""
    settlement: Settlement
    aggregate: SettlementAggregate
    errors: list[StructureValidationError] = field(default_factory=list)


# ===== Folding structures =====

def get_structure_activities(structure: Structure) -> frozenset[str]:
    """Activities referenced by any bonus rule of the structure."""
    activities = {rule.activity for rule in structure.activity_bonus_rules}
    activities.update(rule.activity for rule in structure.skill_bonus_rules if rule.activity)
    return frozenset(activities)


def evaluate_structures(structures: Iterable[Structure], location_level: int) -> SettlementAggregate:
    """Fold all structures of one location. Order does not matter, duplicates count separately."""
    type_data = get_settlement_type_data(location_level)
    leadership = BASE_LEADERSHIP_ACTIVITIES
    storage = _zero_storage()
    unlocked: set[str] = set()
    skill_bonuses: dict[str, int] = {}
    reduction = 0
    for structure in structures:
        if structure.increase_leadership_activities:
            leadership = BONUS_LEADERSHIP_ACTIVITIES
        if structure.storage is not None:
            for commodity in COMMODITY_TYPES:
                storage[commodity] += getattr(structure.storage, commodity)
        reduction += structure.consumption_reduction
        unlocked |= get_structure_activities(structure)
        for rule in structure.skill_bonus_rules:
            value = min(rule.value, type_data.max_item_bonus)
            skill_bonuses[rule.skill] = max(skill_bonuses.get(rule.skill, 0), value)
    return SettlementAggregate(
        leadership_activity_number=leadership,
        consumption=max(0, type_data.consumption - reduction),
        storage=storage,
        unlocked_activities=frozenset(unlocked),
        skill_bonuses=skill_bonuses,
    )


def merge_capital(capital: SettlementAggregate, local: SettlementAggregate) -> SettlementAggregate:
    """Local values win; capital activities propagate outward."""
    return SettlementAggregate(
        leadership_activity_number=local.leadership_activity_number,
        consumption=local.consumption,
        storage=dict(local.storage),
        unlocked_activities=capital.unlocked_activities | local.unlocked_activities,
        skill_bonuses=dict(local.skill_bonuses),
    )


def merge_across_locations(aggregates: Iterable[SettlementAggregate]) -> SettlementAggregate:
    """Kingdom-wide totals: sums, max leadership, union of activities, best skill bonus."""
    leadership = BASE_LEADERSHIP_ACTIVITIES
    consumption = 0
    storage = _zero_storage()
    unlocked: set[str] = set()
    skill_bonuses: dict[str, int] = {}
    for aggregate in aggregates:
        leadership = max(leadership, aggregate.leadership_activity_number)
        consumption += aggregate.consumption
        for commodity in COMMODITY_TYPES:
            storage[commodity] += aggregate.storage.get(commodity, 0)
        unlocked |= aggregate.unlocked_activities
        for skill, value in aggregate.skill_bonuses.items():
            skill_bonuses[skill] = max(skill_bonuses.get(skill, 0), value)
    return SettlementAggregate(
        leadership_activity_number=leadership,
        consumption=consumption,
        storage=storage,
        unlocked_activities=frozenset(unlocked),
        skill_bonuses=skill_bonuses,
    )


def calculate_storage_capacity(base_capacity: int, storage: dict[str, int]) -> dict[str, int]:
    """Per-commodity capacity: kingdom size base plus structure storage."""
    return {c: base_capacity + storage.get(c, 0) for c in COMMODITY_TYPES}


# ===== Gates =====

def check_proficiency(structure: Structure, kingdom: Kingdom) -> bool:
    """Every construction skill requirement must be met by the kingdom's rank."""
    if structure.construction is None:
        return True
    return all(
        kingdom.skill_ranks.get(req.skill, 0) >= req.proficiency_rank
        for req in structure.construction.skills
    )


def missing_costs(structure: Structure, kingdom: Kingdom) -> dict[str, int]:
    """Shortfall per construction cost against the current-turn columns. Empty when affordable."""
    if structure.construction is None:
        return {}
    available = {"rp": kingdom.resource_points.now, **kingdom.commodities.now.to_dict()}
    missing = {}
    for resource, cost in structure.construction.costs().items():
        short = cost - available.get(resource, 0)
        if short > 0:
            missing[resource] = short
    return missing


def check_building_cost(structure: Structure, kingdom: Kingdom) -> bool:
    return not missing_costs(structure, kingdom)


# ===== Settlement data source =====

def parse_settlement_structures(
    settlement: Settlement,
    catalog: dict[str, Structure],
) -> tuple[list[Structure], list[StructureValidationError]]:
    """Parse raw structure records; an invalid record is skipped and reported, the rest are kept."""
    structures: list[Structure] = []
    errors: list[StructureValidationError] = []
    for record in settlement.structures:
        name = record.get("name") if isinstance(record, dict) else None
        try:
            structure = parse_structure_data(name, record, catalog)
        except StructureValidationError as e:
            logger.warning("Skipping structure in settlement %s: %s", settlement.id, e)
            errors.append(e)
            continue
        if structure is not None:
            structures.append(structure)
    return structures, errors


def evaluate_settlement(
    settlement: Settlement,
    catalog: dict[str, Structure],
) -> tuple[SettlementAggregate, list[StructureValidationError]]:
    structures, errors = parse_settlement_structures(settlement, catalog)
    return evaluate_structures(structures, settlement.level), errors


def get_settlements(locations: Iterable[Settlement]) -> list[Settlement]:
    return [loc for loc in locations if loc.is_settlement]


def get_capital(locations: Iterable[Settlement]) -> Optional[Settlement]:
    for loc in locations:
        if loc.settlement_type == "Capital":
            return loc
    return None


def get_merged_data(
    locations: list[Settlement],
    viewed_id: str,
    catalog: dict[str, Structure],
) -> Optional[SettlementView]:
    """
    Aggregate for the viewed location. When a capital exists and is not the viewed
    location, the capital's activities are merged in. Returns None for unknown ids.
    """
    viewed = next((loc for loc in locations if loc.id == viewed_id), None)
    if viewed is None:
        return None
    local, errors = evaluate_settlement(viewed, catalog)
    capital = get_capital(locations)
    if capital is not None and capital.id != viewed.id:
        capital_aggregate, capital_errors = evaluate_settlement(capital, catalog)
        return SettlementView(viewed, merge_capital(capital_aggregate, local), capital_errors + errors)
    return SettlementView(viewed, local, errors)


def get_kingdom_aggregate(
    locations: Iterable[Settlement],
    catalog: dict[str, Structure],
) -> tuple[SettlementAggregate, list[StructureValidationError]]:
    """Merge every Settlement/Capital location into kingdom-wide totals."""
    aggregates = []
    errors: list[StructureValidationError] = []
    for settlement in get_settlements(locations):
        aggregate, settlement_errors = evaluate_settlement(settlement, catalog)
        aggregates.append(aggregate)
        errors.extend(settlement_errors)
    return merge_across_locations(aggregates), errors
