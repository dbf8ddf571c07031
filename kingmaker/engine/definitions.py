"""
Static definitions for kingdom sizes, kingdom levels, settlement types and structures.
Structure records are supplied by the outside world (settlement data source) as raw
mappings and validated here; the predefined catalog lives in data/structures.json.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from pydantic import TypeAdapter, ValidationError

from kingmaker.engine.errors import StructureValidationError

DATA_DIR = Path(__file__).parent.parent / "data"

COMMODITY_TYPES = ("food", "luxuries", "ore", "lumber", "stone")

KINGDOM_SKILLS = (
    "agriculture",
    "arts",
    "boating",
    "defense",
    "engineering",
    "exploration",
    "folklore",
    "industry",
    "intrigue",
    "magic",
    "politics",
    "scholarship",
    "statecraft",
    "trade",
    "warfare",
    "wilderness",
)

# Proficiency ranks: 0 untrained, 1 trained, 2 expert, 3 master, 4 legendary
RANK_LABELS = ("Untrained", "Trained", "Expert", "Master", "Legendary")


def _default_structures_file() -> Path:
    """Single place for default: kingmaker.config.DEFAULT_STRUCTURES_FILE."""
    from kingmaker.config import DEFAULT_STRUCTURES_FILE
    return DATA_DIR / DEFAULT_STRUCTURES_FILE


# ===== Kingdom size =====

@dataclass(frozen=True)
class KingdomSizeData:
    """Derived from the number of claimed hexes."""
    type: str  # "territory", "province", "state", "country", "dominion"
    resource_die_size: str  # e.g. "d6", appended to a dice count
    commodity_capacity: int  # base storage per commodity before structures
    control_dc_modifier: int


# (minimum hexes, data), ascending
KINGDOM_SIZES: list[tuple[int, KingdomSizeData]] = [
    (1, KingdomSizeData("territory", "d4", 4, 0)),
    (10, KingdomSizeData("province", "d6", 8, 1)),
    (25, KingdomSizeData("state", "d8", 12, 2)),
    (50, KingdomSizeData("country", "d10", 16, 3)),
    (100, KingdomSizeData("dominion", "d12", 20, 4)),
]


def get_size_data(size: int) -> KingdomSizeData:
    """Size category for a number of claimed hexes. Anything below 1 counts as the smallest category."""
    result = KINGDOM_SIZES[0][1]
    for min_hexes, data in KINGDOM_SIZES:
        if size >= min_hexes:
            result = data
    return result


# ===== Kingdom level =====

# Level-based DCs for levels 1-20
LEVEL_BASED_DC = (15, 16, 18, 19, 20, 22, 23, 24, 26, 27, 28, 30, 31, 32, 34, 35, 36, 38, 39, 40)


@dataclass(frozen=True)
class LevelData:
    level: int
    resource_dice: int
    control_dc: int


def get_level_data(level: int) -> LevelData:
    clamped = max(1, min(len(LEVEL_BASED_DC), level))
    return LevelData(
        level=clamped,
        resource_dice=clamped + 4,
        control_dc=LEVEL_BASED_DC[clamped - 1],
    )


# ===== Settlement types =====

@dataclass(frozen=True)
class SettlementTypeData:
    type: str  # "village", "town", "city", "metropolis"
    min_level: int
    consumption: int
    max_item_bonus: int


SETTLEMENT_TYPES: list[SettlementTypeData] = [
    SettlementTypeData("village", 1, 1, 1),
    SettlementTypeData("town", 3, 2, 1),
    SettlementTypeData("city", 9, 4, 2),
    SettlementTypeData("metropolis", 15, 6, 3),
]


def get_settlement_type_data(settlement_level: int) -> SettlementTypeData:
    result = SETTLEMENT_TYPES[0]
    for data in SETTLEMENT_TYPES:
        if settlement_level >= data.min_level:
            result = data
    return result


# ===== Structures =====

@dataclass(frozen=True)
class SkillRequirement:
    skill: str
    proficiency_rank: int = 0


@dataclass(frozen=True)
class Construction:
    """Build check and cost. Absent costs are zero."""
    dc: Optional[int] = None
    skills: tuple[SkillRequirement, ...] = ()
    rp: int = 0
    lumber: int = 0
    ore: int = 0
    stone: int = 0
    luxuries: int = 0

    def costs(self) -> dict[str, int]:
        return {
            "rp": self.rp,
            "lumber": self.lumber,
            "ore": self.ore,
            "stone": self.stone,
            "luxuries": self.luxuries,
        }


@dataclass(frozen=True)
class CommodityStorage:
    food: int = 0
    luxuries: int = 0
    ore: int = 0
    lumber: int = 0
    stone: int = 0


@dataclass(frozen=True)
class ActivityBonusRule:
    activity: str
    value: int = 1


@dataclass(frozen=True)
class SkillBonusRule:
    skill: str
    value: int = 1
    activity: Optional[str] = None


@dataclass(frozen=True)
class AvailableItemsRule:
    value: int = 1
    group: Optional[str] = None


@dataclass(frozen=True)
class Structure:
    """Immutable per-placement structure record."""
    name: str
    level: int = 0
    lots: int = 1
    traits: tuple[str, ...] = ()
    construction: Optional[Construction] = None
    storage: Optional[CommodityStorage] = None
    consumption_reduction: int = 0
    reduces_unrest: bool = False
    reduces_ruin: bool = False
    affects_events: bool = False
    affects_downtime: bool = False
    increase_leadership_activities: bool = False
    activity_bonus_rules: tuple[ActivityBonusRule, ...] = ()
    skill_bonus_rules: tuple[SkillBonusRule, ...] = ()
    available_items_rules: tuple[AvailableItemsRule, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return _STRUCTURE_ADAPTER.dump_python(self, mode="json")


_STRUCTURE_ADAPTER = TypeAdapter(Structure)


def validate_structure(rule: dict[str, Any]) -> Structure:
    """Validate a raw structure mapping against the structure schema."""
    name = rule.get("name") if isinstance(rule, dict) else None
    try:
        return _STRUCTURE_ADAPTER.validate_python(rule)
    except ValidationError as e:
        raise StructureValidationError(
            f"Structure with name {name} failed to validate: {e.error_count()} error(s), "
            f"first: {e.errors()[0].get('loc')} {e.errors()[0].get('msg')}",
            name=name,
        ) from e


def parse_structure_data(
    name: str | None,
    data: Any,
    catalog: dict[str, Structure],
) -> Structure | None:
    """
    Turn one raw structure record into a Structure.

    - None: not a structure, returns None
    - {"ref": "<name>"}: predefined structure from the catalog
    - any other mapping: inline rule, validated (name taken from `name` when given)
    """
    if data is None:
        return None
    if isinstance(data, dict) and "ref" in data:
        ref = str(data.get("ref"))
        looked_up = catalog.get(ref)
        if looked_up is None:
            raise StructureValidationError(
                f"No predefined structure data found for {name or ref}, aborting",
                name=name or ref,
            )
        return looked_up
    if not isinstance(data, dict):
        raise StructureValidationError(f"Structure record for {name} is not a mapping", name=name)
    rule = {"name": name, **data} if name is not None else dict(data)
    return validate_structure(rule)


def load_structure_catalog(path: Path | str | None = None) -> dict[str, Structure]:
    """Load predefined structures (name -> Structure) from a JSON list."""
    catalog_path = Path(path) if path is not None else _default_structures_file()
    with open(catalog_path, "r") as f:
        raw = json.load(f)
    if not isinstance(raw, list):
        raise StructureValidationError(f"Structure catalog {catalog_path} must be a JSON list")
    catalog: dict[str, Structure] = {}
    for entry in raw:
        structure = validate_structure(entry)
        catalog[structure.name] = structure
    return catalog
