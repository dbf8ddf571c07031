"""
Commodity ledger: next value of a trackable resource after a gain or a loss.
Pure computation, callers turn the result into partial kingdom updates and events.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class LedgerResult:
    value: int
    missing: int = 0  # shortfall below zero, only reported for the current turn


def apply_delta(
    current: int,
    delta: int,
    mode: str,
    limit: Optional[int] = None,
    turn: str = "now",
) -> LedgerResult:
    """
    Apply a gain or loss of `delta` to `current`.

    `limit` is a lower bound on the result: value = max(limit, current +/- delta).
    Upper capacity enforcement is done by the caller with min(capacity, value) when
    writing into storage. A negative raw result is reported as `missing` only when
    operating on the "now" column.
    """
    if mode == "gain":
        raw = current + delta
    elif mode == "lose":
        raw = current - delta
    else:
        raise ValueError(f"Unknown ledger mode {mode!r}")
    value = raw if limit is None else max(limit, raw)
    missing = max(0, -raw) if turn == "now" else 0
    return LedgerResult(value=value, missing=missing)
