"""
Kingdom state representation.
Turn steps never mutate the state they are given; they work on copies.
Includes JSON serialization and the partial-update contract used by persistence:
a partial kingdom is a dict of top-level to_dict() keys whose nested values are
complete reconstructions, shallow-merged over the stored record.
"""

import json
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any

from kingmaker.engine.definitions import COMMODITY_TYPES, KINGDOM_SKILLS


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


@dataclass
class Commodities:
    """One column (now or next) of the five commodities."""
    food: int = 0
    luxuries: int = 0
    ore: int = 0
    lumber: int = 0
    stone: int = 0

    def get(self, commodity: str) -> int:
        if commodity not in COMMODITY_TYPES:
            raise KeyError(commodity)
        return getattr(self, commodity)

    def to_dict(self) -> dict[str, int]:
        return {c: getattr(self, c) for c in COMMODITY_TYPES}

    @classmethod
    def from_dict(cls, data: Any) -> "Commodities":
        data = _dict(data)
        return cls(**{c: _int(data.get(c)) for c in COMMODITY_TYPES})


@dataclass
class CommodityColumns:
    now: Commodities = field(default_factory=Commodities)
    next: Commodities = field(default_factory=Commodities)

    def to_dict(self) -> dict[str, Any]:
        return {"now": self.now.to_dict(), "next": self.next.to_dict()}

    @classmethod
    def from_dict(cls, data: Any) -> "CommodityColumns":
        data = _dict(data)
        return cls(now=Commodities.from_dict(data.get("now")), next=Commodities.from_dict(data.get("next")))


@dataclass
class TurnValues:
    """A counter with a current-turn and a next-turn column."""
    now: int = 0
    next: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"now": self.now, "next": self.next}

    @classmethod
    def from_dict(cls, data: Any) -> "TurnValues":
        data = _dict(data)
        return cls(now=_int(data.get("now")), next=_int(data.get("next")))


@dataclass
class Consumption:
    now: int = 0
    next: int = 0
    armies: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"now": self.now, "next": self.next, "armies": self.armies}

    @classmethod
    def from_dict(cls, data: Any) -> "Consumption":
        data = _dict(data)
        return cls(now=_int(data.get("now")), next=_int(data.get("next")), armies=_int(data.get("armies")))


@dataclass
class RuinValues:
    value: int = 0
    penalty: int = 0
    threshold: int = 5

    def to_dict(self) -> dict[str, int]:
        return {"value": self.value, "penalty": self.penalty, "threshold": self.threshold}

    @classmethod
    def from_dict(cls, data: Any) -> "RuinValues":
        data = _dict(data)
        return cls(
            value=_int(data.get("value")),
            penalty=_int(data.get("penalty")),
            threshold=_int(data.get("threshold"), 5),
        )


RUIN_TYPES = ("corruption", "crime", "decay", "strife")


@dataclass
class Ruin:
    corruption: RuinValues = field(default_factory=RuinValues)
    crime: RuinValues = field(default_factory=RuinValues)
    decay: RuinValues = field(default_factory=RuinValues)
    strife: RuinValues = field(default_factory=RuinValues)

    def get(self, ruin: str) -> RuinValues:
        if ruin not in RUIN_TYPES:
            raise KeyError(ruin)
        return getattr(self, ruin)

    def to_dict(self) -> dict[str, Any]:
        return {r: getattr(self, r).to_dict() for r in RUIN_TYPES}

    @classmethod
    def from_dict(cls, data: Any) -> "Ruin":
        data = _dict(data)
        return cls(**{r: RuinValues.from_dict(data.get(r)) for r in RUIN_TYPES})


@dataclass
class WorkSite:
    quantity: int = 0
    resources: int = 0  # work sites on hexes with a matching special resource

    def to_dict(self) -> dict[str, int]:
        return {"quantity": self.quantity, "resources": self.resources}

    @classmethod
    def from_dict(cls, data: Any) -> "WorkSite":
        data = _dict(data)
        return cls(quantity=_int(data.get("quantity")), resources=_int(data.get("resources")))


@dataclass
class WorkSites:
    mines: WorkSite = field(default_factory=WorkSite)
    lumber_camps: WorkSite = field(default_factory=WorkSite)
    luxury_sources: WorkSite = field(default_factory=WorkSite)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mines": self.mines.to_dict(),
            "lumber_camps": self.lumber_camps.to_dict(),
            "luxury_sources": self.luxury_sources.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "WorkSites":
        data = _dict(data)
        return cls(
            mines=WorkSite.from_dict(data.get("mines")),
            lumber_camps=WorkSite.from_dict(data.get("lumber_camps")),
            luxury_sources=WorkSite.from_dict(data.get("luxury_sources")),
        )


@dataclass
class Feat:
    """A feat taken at an even kingdom level."""
    id: str
    level: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "level": self.level}

    @classmethod
    def from_dict(cls, data: Any) -> "Feat":
        data = _dict(data)
        return cls(id=str(data.get("id") or ""), level=_int(data.get("level")))


@dataclass
class BonusFeat:
    id: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id}

    @classmethod
    def from_dict(cls, data: Any) -> "BonusFeat":
        return cls(id=str(_dict(data).get("id") or ""))


def _default_skill_ranks() -> dict[str, int]:
    return {skill: 0 for skill in KINGDOM_SKILLS}


@dataclass
class Kingdom:
    """Complete kingdom record for one campaign."""
    name: str = "Kingdom"
    level: int = 1
    size: int = 1  # claimed hexes
    xp: int = 0
    xp_threshold: int = 1000
    fame: int = 0
    fame_type: str = "famous"  # "famous" or "infamous"
    at_war: bool = False
    unrest: int = 0
    ruin: Ruin = field(default_factory=Ruin)
    commodities: CommodityColumns = field(default_factory=CommodityColumns)
    resource_points: TurnValues = field(default_factory=TurnValues)
    resource_dice: TurnValues = field(default_factory=TurnValues)
    consumption: Consumption = field(default_factory=Consumption)
    work_sites: WorkSites = field(default_factory=WorkSites)
    turns_without_event: int = 0
    feats: list[Feat] = field(default_factory=list)
    bonus_feats: list[BonusFeat] = field(default_factory=list)
    skill_ranks: dict[str, int] = field(default_factory=_default_skill_ranks)

    def copy(self) -> "Kingdom":
        """Return a deep copy of this kingdom."""
        return deepcopy(self)

    # ===== Serialization Methods =====

    def to_dict(self) -> dict[str, Any]:
        """Convert Kingdom to a dictionary for JSON serialization."""
        return {
            "name": self.name,
            "level": self.level,
            "size": self.size,
            "xp": self.xp,
            "xp_threshold": self.xp_threshold,
            "fame": self.fame,
            "fame_type": self.fame_type,
            "at_war": self.at_war,
            "unrest": self.unrest,
            "ruin": self.ruin.to_dict(),
            "commodities": self.commodities.to_dict(),
            "resource_points": self.resource_points.to_dict(),
            "resource_dice": self.resource_dice.to_dict(),
            "consumption": self.consumption.to_dict(),
            "work_sites": self.work_sites.to_dict(),
            "turns_without_event": self.turns_without_event,
            "feats": [f.to_dict() for f in self.feats],
            "bonus_feats": [f.to_dict() for f in self.bonus_feats],
            "skill_ranks": dict(self.skill_ranks),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Kingdom":
        """Create Kingdom from a dictionary (missing or malformed fields fall back to defaults)."""
        data = _dict(data)
        feats = data.get("feats")
        bonus_feats = data.get("bonus_feats")
        skill_ranks = _default_skill_ranks()
        for skill, rank in _dict(data.get("skill_ranks")).items():
            skill_ranks[str(skill)] = max(0, min(4, _int(rank)))
        fame_type = data.get("fame_type")
        return cls(
            name=str(data.get("name") or "Kingdom"),
            level=max(1, _int(data.get("level"), 1)),
            size=max(1, _int(data.get("size"), 1)),
            xp=_int(data.get("xp")),
            xp_threshold=_int(data.get("xp_threshold"), 1000),
            fame=_int(data.get("fame")),
            fame_type=fame_type if fame_type in ("famous", "infamous") else "famous",
            at_war=bool(data.get("at_war", False)),
            unrest=_int(data.get("unrest")),
            ruin=Ruin.from_dict(data.get("ruin")),
            commodities=CommodityColumns.from_dict(data.get("commodities")),
            resource_points=TurnValues.from_dict(data.get("resource_points")),
            resource_dice=TurnValues.from_dict(data.get("resource_dice")),
            consumption=Consumption.from_dict(data.get("consumption")),
            work_sites=WorkSites.from_dict(data.get("work_sites")),
            turns_without_event=_int(data.get("turns_without_event")),
            feats=[Feat.from_dict(f) for f in feats if isinstance(f, dict)] if isinstance(feats, list) else [],
            bonus_feats=[BonusFeat.from_dict(f) for f in bonus_feats if isinstance(f, dict)]
            if isinstance(bonus_feats, list) else [],
            skill_ranks=skill_ranks,
        )

    def merged(self, update: dict[str, Any]) -> "Kingdom":
        """Shallow-merge a partial kingdom over this one, returning a new Kingdom."""
        return Kingdom.from_dict({**self.to_dict(), **update})

    def to_json(self, indent: int = 2) -> str:
        """Serialize Kingdom to a JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> "Kingdom":
        """Deserialize Kingdom from a JSON string."""
        return cls.from_dict(json.loads(json_str))


def kingdom_update(old: Kingdom, new: Kingdom) -> dict[str, Any]:
    """Partial kingdom holding exactly the top-level fields that differ between old and new."""
    old_dict = old.to_dict()
    return {
        key: value
        for key, value in new.to_dict().items()
        if old_dict.get(key) != value
    }
