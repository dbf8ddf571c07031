"""
Shared fixtures: scripted dice, the structure catalog and kingdom/settlement builders.
The API tests run against a throwaway SQLite file; env is set before kingmaker.api is imported.
"""

import os
import tempfile

os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(tempfile.mkdtemp(), 'test_kingdom.db')}")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest

from kingmaker.engine.definitions import load_structure_catalog
from kingmaker.engine.dice import RollResult, parse_formula
from kingmaker.engine.utils import initialize_kingdom


class ScriptedDice:
    """Dice port that returns queued totals in order and records every formula rolled."""

    def __init__(self, *totals: int):
        self.totals = list(totals)
        self.formulas: list[str] = []

    def roll(self, formula: str) -> RollResult:
        parse_formula(formula)
        self.formulas.append(formula)
        if not self.totals:
            raise AssertionError(f"Unexpected roll {formula}")
        total = self.totals.pop(0)
        return RollResult(formula=formula, total=total, rolls=[total])


class BrokenDice:
    """Dice port whose every roll fails."""

    def roll(self, formula: str) -> RollResult:
        raise RuntimeError(f"dice unavailable for {formula}")


@pytest.fixture(scope="session")
def catalog():
    return load_structure_catalog()


@pytest.fixture
def scripted_dice():
    """Factory: scripted_dice(3, 12) rolls 3, then 12."""
    return ScriptedDice


@pytest.fixture
def broken_dice():
    return BrokenDice()


@pytest.fixture
def kingdom():
    """Level 1 territory with empty ledgers."""
    return initialize_kingdom("Test Kingdom")

