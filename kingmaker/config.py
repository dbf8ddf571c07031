"""
Single place for default kingdom/app configuration.
Values read from the environment can be overridden per deployment.
"""

import os


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Name given to a kingdom when a campaign is created without one.
DEFAULT_KINGDOM_NAME = "Kingdom"

# Predefined structure catalog under kingmaker/data/ (used for {"ref": "<name>"} records).
DEFAULT_STRUCTURES_FILE = "structures.json"

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# House rules: allow construction checks without the required skill rank, and paying for
# structures the kingdom can not afford (costs are floored at zero).
IGNORE_SKILL_REQUIREMENTS = _env_flag("KINGDOM_IGNORE_SKILL_REQUIREMENTS")
IGNORE_STRUCTURE_COST = _env_flag("KINGDOM_IGNORE_STRUCTURE_COST")
