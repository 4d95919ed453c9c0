"""Derived rates: coins per click and coins per second.

Both are pure functions of ownership, tiers, the selected rock, the
permanent bonus multiplier and the active abilities. Every transition that
touches one of those goes through recompute() before it returns.

Special-upgrade bonus per stat category:
  additive_sum = sum(additive * level)
  multiplicative_product = prod(multiplicative ** level)
  bonus = multiplicative_product * (additive_sum + 1.0)
With nothing owned the bonus is 1.0 (identity).
"""
from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Callable, Dict, Tuple

from caveminer.types import AbilityEffect, StatCategory

if TYPE_CHECKING:
    from caveminer.state import GameState

TIER_STEP = 0.5
LUCKY_FACTOR = 2.0


def stat_bonus(state: GameState, stat: StatCategory) -> float:
    additive_sum = 0.0
    multiplicative_product = 1.0
    for su in state.special_upgrades:
        if su.level <= 0 or su.stat != stat:
            continue
        additive_sum += su.additive * su.level
        multiplicative_product *= su.multiplicative ** su.level
    return multiplicative_product * (additive_sum + 1.0)


def tier_scale(tier: int) -> float:
    return 1.0 + tier * TIER_STEP


def lucky_chance(state: GameState) -> float:
    return max(0.0, stat_bonus(state, StatCategory.LUCKY_CHANCE) - 1.0)


def combo_enabled(state: GameState) -> bool:
    return stat_bonus(state, StatCategory.CLICK_COMBO) > 1.0


def offline_progress_owned(state: GameState) -> bool:
    return stat_bonus(state, StatCategory.OFFLINE_PROGRESS) > 1.0


def cooldown_speed(state: GameState) -> float:
    """Seconds of cooldown removed per real second (1.0 without time warp)."""
    return stat_bonus(state, StatCategory.COOLDOWN_SPEED)


def rebirth_discount(state: GameState) -> float:
    return min(1.0, max(0.0, stat_bonus(state, StatCategory.REBIRTH_DISCOUNT) - 1.0))


# ── Click modifiers ──────────────────────────────────────────────────
# Each entry maps a stat category to a factor function of (bonus, luck_roll).
# An unowned category has bonus 1.0 and must yield 1.0.

def _flat_multiplier(bonus: float, luck_roll: float) -> float:
    return bonus


def _lucky_multiplier(bonus: float, luck_roll: float) -> float:
    chance = bonus - 1.0
    return LUCKY_FACTOR if chance > 0.0 and luck_roll < chance else 1.0


CLICK_MODIFIERS: Dict[StatCategory, Callable[[float, float], float]] = {
    StatCategory.CLICK_MULTIPLIER: _flat_multiplier,
    StatCategory.LUCKY_CHANCE: _lucky_multiplier,
}


def click_multiplier(state: GameState, luck_roll: float) -> Tuple[float, bool]:
    """Product of all owned click modifiers, and whether the lucky roll hit."""
    multiplier = 1.0
    lucky = False
    for stat, modifier in CLICK_MODIFIERS.items():
        factor = modifier(stat_bonus(state, stat), luck_roll)
        if stat == StatCategory.LUCKY_CHANCE and factor > 1.0:
            lucky = True
        multiplier *= factor
    return multiplier, lucky


# ── Active abilities ─────────────────────────────────────────────────

def active_multiplier(state: GameState, effect: AbilityEffect) -> float:
    result = 1.0
    for ability in state.abilities:
        if ability.active and ability.effect == effect:
            result *= ability.multiplier
    return result


def active_sum(state: GameState, effect: AbilityEffect) -> float:
    return sum(a.multiplier for a in state.abilities if a.active and a.effect == effect)


def gold_chance(state: GameState) -> float:
    return active_sum(state, AbilityEffect.GOLD_CHANCE)


def auto_tap_rate(state: GameState) -> float:
    """Clicks per second dispatched by active auto-tap abilities."""
    return active_sum(state, AbilityEffect.AUTO_TAP)


# ── Rates ────────────────────────────────────────────────────────────

def compute_cpc(state: GameState) -> float:
    rock = state.rock(state.selected_rock)
    base = rock.base_cpc if rock is not None else 1.0
    pickaxes = sum(
        u.cpc_increase * tier_scale(u.tier) for u in state.upgrades if u.owned
    )
    pickaxes *= stat_bonus(state, StatCategory.PICKAXE_POWER)
    return (
        (base + pickaxes)
        * state.bonus_multiplier
        * stat_bonus(state, StatCategory.CLICK_POWER)
        * active_multiplier(state, AbilityEffect.CPC_MULTIPLIER)
    )


def compute_cps(state: GameState) -> float:
    miners = sum(
        m.cps * m.quantity * tier_scale(m.tier) for m in state.auto_miners if m.quantity > 0
    )
    return (
        miners
        * stat_bonus(state, StatCategory.MINER_POWER)
        * state.bonus_multiplier
        * active_multiplier(state, AbilityEffect.CPS_MULTIPLIER)
    )


def recompute(state: GameState) -> GameState:
    """Refresh cpc/cps. Returns the same object when nothing changed."""
    cpc = compute_cpc(state)
    cps = compute_cps(state)
    if cpc == state.cpc and cps == state.cps:
        return state
    return replace(state, cpc=cpc, cps=cps)
