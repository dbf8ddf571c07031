"""
Dice port.
The engine never touches randomness directly: every roll goes through a
DicePort so turn steps stay deterministic under test and replay.
"""

import logging
import random
import re
from dataclasses import dataclass, field
from typing import Any, Protocol

from kingmaker.engine.errors import DiceFormulaError

logger = logging.getLogger(__name__)

# <count>d<size>[+|-modifier], count may be omitted ("d20") or zero ("0d6")
DICE_FORMULA = re.compile(r"^\s*(\d*)\s*d\s*(\d+)\s*(?:([+-])\s*(\d+))?\s*$", re.IGNORECASE)


@dataclass
class RollResult:
    """Outcome of evaluating one formula."""
    formula: str
    total: int
    rolls: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"formula": self.formula, "total": self.total, "rolls": self.rolls}


class DicePort(Protocol):
    def roll(self, formula: str) -> RollResult:
        ...


def parse_formula(formula: str) -> tuple[int, int, int]:
    """
    Split a dice formula into (count, sides, modifier).
    Raises DiceFormulaError on anything that is not <count>d<size>[+modifier].
    """
    match = DICE_FORMULA.match(formula or "")
    if not match:
        raise DiceFormulaError(formula)
    count_str, sides_str, sign, modifier_str = match.groups()
    count = int(count_str) if count_str else 1
    sides = int(sides_str)
    if sides < 1:
        raise DiceFormulaError(formula)
    modifier = int(modifier_str) if modifier_str else 0
    if sign == "-":
        modifier = -modifier
    return count, sides, modifier


class RandomDicePort:
    """Default dice port backed by random.Random. Pass a seed for reproducible rolls."""

    def __init__(self, seed: int | None = None):
        self._rng = random.Random(seed)

    def roll(self, formula: str) -> RollResult:
        count, sides, modifier = parse_formula(formula)
        rolls = [self._rng.randint(1, sides) for _ in range(count)]
        total = sum(rolls) + modifier
        logger.debug("Rolled %s: %s = %d", formula, rolls, total)
        return RollResult(formula=formula, total=total, rolls=rolls)
