"""
Engine error taxonomy.
All errors derive from ValueError so callers that only know the reducer's
"invalid action" contract keep working.
"""

from typing import Any


class KingdomError(ValueError):
    """Base class for errors raised by the kingdom engine."""


class UnhandledResourceType(KingdomError):
    """A resource tag outside the closed set reached the resolver. Programming defect, never retried."""

    def __init__(self, resource: Any):
        super().__init__(f"Unhandled resource type {resource!r}")
        self.resource = resource


class StructureValidationError(KingdomError):
    """A structure record failed schema validation or referenced an unknown catalog entry."""

    def __init__(self, message: str, name: str | None = None):
        super().__init__(message)
        self.name = name


class MissingSkill(KingdomError):
    """A check was attempted with a skill the kingdom cannot use for it."""

    def __init__(self, skill: str, message: str | None = None):
        super().__init__(message or f"Kingdom can not use skill {skill!r} for this check")
        self.skill = skill


class InsufficientResources(KingdomError):
    """A payment can not be covered. `missing` maps resource -> amount short."""

    def __init__(self, missing: dict[str, int], message: str | None = None):
        if message is None:
            parts = ", ".join(f"{amount} {resource}" for resource, amount in sorted(missing.items()))
            message = f"Insufficient resources, missing {parts}"
        super().__init__(message)
        self.missing = dict(missing)


class DiceFormulaError(KingdomError):
    """A dice formula or flat value could not be evaluated."""

    def __init__(self, formula: str):
        super().__init__(f"Can not evaluate formula {formula!r}")
        self.formula = formula
