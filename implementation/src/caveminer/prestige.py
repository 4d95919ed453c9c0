"""Rebirth: trade a run's progress for gold coins and a permanent multiplier.

Gold reward: max(0, floor(log10(total_coins_earned) - 8)), so 1e9 lifetime
earnings pay 1 gold, 1e10 pay 2, and so on. Lifetime earnings carry over.
"""
from __future__ import annotations

import math
from dataclasses import replace
from typing import TYPE_CHECKING, List, Tuple

from caveminer.abilities import reset_for_rebirth
from caveminer.achievements import REBIRTH_RULES, evaluate
from caveminer.derived import rebirth_discount, recompute
from caveminer.events import Event, EventKind

if TYPE_CHECKING:
    from caveminer.state import GameState

BASE_REQUIREMENT = 1_000_000_000.0
BONUS_STEP = 0.1


def rebirth_requirement(state: GameState) -> float:
    return BASE_REQUIREMENT * (1.0 - rebirth_discount(state))


def gold_reward(total_coins_earned: float) -> int:
    if total_coins_earned <= 0.0:
        return 0
    return max(0, int(math.floor(math.log10(total_coins_earned) - 8.0)))


def can_rebirth(state: GameState) -> bool:
    return state.coins >= rebirth_requirement(state)


def rebirth(state: GameState) -> Tuple[GameState, List[Event]]:
    """Reset to a fresh run keeping the prestige subset.

    Kept: gold, rebirth count, bonus multiplier, lifetime earnings,
    achievements, special upgrades, abilities (forced ready), preferences
    and save bookkeeping. Everything else starts over. Rebirth milestones
    unlock here but pay no coins, so the new run starts at zero.
    """
    from caveminer.state import default_state

    if not can_rebirth(state):
        return state, []

    reward = gold_reward(state.total_coins_earned)
    fresh = default_state(state.last_saved)
    fresh = replace(
        fresh,
        gold_coins=state.gold_coins + reward,
        rebirths=state.rebirths + 1,
        bonus_multiplier=round(state.bonus_multiplier + BONUS_STEP, 10),
        total_coins_earned=state.total_coins_earned,
        achievements=state.achievements,
        special_upgrades=state.special_upgrades,
        abilities=reset_for_rebirth(state.abilities),
        sound_enabled=state.sound_enabled,
        haptics_enabled=state.haptics_enabled,
        notifications_enabled=state.notifications_enabled,
        offline_progress_enabled=state.offline_progress_enabled,
        last_saved=state.last_saved,
        version=state.version,
        data_loaded=state.data_loaded,
        next_animation_id=state.next_animation_id,
        needs_save=True,
        needs_cloud_save=True,
    )
    fresh = recompute(fresh)
    fresh, unlocked = evaluate(fresh, REBIRTH_RULES, grant_rewards=False)
    events = [Event(EventKind.REBIRTH, None, float(reward))]
    events.extend(Event(EventKind.ACHIEVEMENT_UNLOCKED, a) for a in unlocked)
    return fresh, events
