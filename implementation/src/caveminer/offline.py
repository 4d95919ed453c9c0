from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from caveminer.actions import ApplyPassiveIncome
from caveminer.reducer import reduce
from caveminer.state import GameState

MIN_OFFLINE_SECONDS = 60
MAX_OFFLINE_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class OfflineEarnings:
    seconds: int
    amount: float


def calculate(
    state: GameState,
    now: float,
    min_seconds: int = MIN_OFFLINE_SECONDS,
    max_seconds: int = MAX_OFFLINE_SECONDS,
) -> Optional[OfflineEarnings]:
    """Income owed for the time since last_saved, or None if nothing is owed.

    A lump sum of cps * whole seconds. Ability timers and combos are not
    simulated across the gap.
    """
    if not state.offline_progress_enabled or state.cps <= 0.0 or state.last_saved <= 0.0:
        return None
    elapsed = int(now - state.last_saved)
    if elapsed < min_seconds:
        return None
    elapsed = min(elapsed, max_seconds)
    return OfflineEarnings(seconds=elapsed, amount=state.cps * elapsed)


def apply_offline_progress(
    state: GameState,
    now: float,
    min_seconds: int = MIN_OFFLINE_SECONDS,
    max_seconds: int = MAX_OFFLINE_SECONDS,
) -> Tuple[GameState, Optional[OfflineEarnings]]:
    earnings = calculate(state, now, min_seconds, max_seconds)
    if earnings is None:
        return state, None
    return reduce(state, ApplyPassiveIncome(earnings.amount)), earnings
