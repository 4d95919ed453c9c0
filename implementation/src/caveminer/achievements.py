"""Achievement evaluation.

Rules are a table of (achievement id, predicate). evaluate() unlocks every
achievement whose predicate holds and credits its reward to coins and to
total_coins_earned. Rewards can push earnings over another threshold, so
evaluation repeats until nothing new unlocks.
"""
from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Callable, List, Sequence, Tuple

from caveminer.catalog import replace_entry

if TYPE_CHECKING:
    from caveminer.state import GameState

CLICK_MILESTONES: Tuple[int, ...] = (1, 100, 1_000, 10_000, 100_000)
EARNED_MILESTONES: Tuple[float, ...] = (1e3, 1e4, 1e5, 1e6, 1e9, 1e12)

ADVANCED_MINERS = ("nano-miner", "gravity-miner", "time-miner", "black-hole-miner")

Rule = Tuple[str, Callable[["GameState"], bool]]


def crosses(before: float, after: float, milestones: Sequence[float]) -> bool:
    """True if some milestone m satisfies before < m <= after."""
    return any(before < m <= after for m in milestones)


def _pickaxes_bought(state: GameState) -> int:
    return sum(1 for u in state.upgrades if u.owned and u.cost > 0)


def _all_pickaxes(state: GameState) -> bool:
    buyable = [u for u in state.upgrades if u.cost > 0]
    return bool(buyable) and all(u.owned for u in buyable)


def _miner_count(state: GameState) -> int:
    return sum(m.quantity for m in state.auto_miners)


def _owns_miner(state: GameState, miner_id: str) -> bool:
    miner = state.auto_miner(miner_id)
    return miner is not None and miner.quantity > 0


def _owns_pickaxe(state: GameState, upgrade_id: str) -> bool:
    upgrade = state.upgrade(upgrade_id)
    return upgrade is not None and upgrade.owned


RULES: List[Rule] = [
    ("first-strike", lambda s: s.total_clicks >= 1),
    ("clicker-novice", lambda s: s.total_clicks >= 100),
    ("click-machine", lambda s: s.total_clicks >= 1_000),
    ("click-addict", lambda s: s.total_clicks >= 10_000),
    ("click-legend", lambda s: s.total_clicks >= 100_000),
    ("rock-enthusiast", lambda s: s.total_coins_earned >= 1e3),
    ("small-savings", lambda s: s.total_coins_earned >= 1e4),
    ("treasure-hoard", lambda s: s.total_coins_earned >= 1e5),
    ("millionaire", lambda s: s.total_coins_earned >= 1e6),
    ("billionaire", lambda s: s.total_coins_earned >= 1e9),
    ("master-miner", lambda s: s.total_coins_earned >= 1e9),
    ("trillionaire", lambda s: s.total_coins_earned >= 1e12),
    ("pickaxe-collector", lambda s: _pickaxes_bought(s) >= 3),
    ("upgrade-enthusiast", lambda s: _pickaxes_bought(s) >= 5),
    ("pickaxe-master", _all_pickaxes),
    ("auto-mining", lambda s: any(m.quantity > 0 for m in s.auto_miners)),
    ("automation-beginner", lambda s: _miner_count(s) >= 5),
    ("mining-company", lambda s: _miner_count(s) >= 10),
    ("mining-corporation", lambda s: _miner_count(s) >= 50),
    ("speed-demon", lambda s: s.cpc >= 100),
    ("clicking-god", lambda s: s.cpc >= 1_000),
    ("special-collector", lambda s: any(su.owned for su in s.special_upgrades)),
    ("rock-collection", lambda s: bool(s.rocks) and all(r.unlocked for r in s.rocks)),
    ("rebirth-master", lambda s: s.rebirths >= 1),
    ("rebirth-addict", lambda s: s.rebirths >= 5),
    ("golden-touch", lambda s: s.gold_coins >= 1),
    ("ability-owner", lambda s: any(a.owned for a in s.abilities)),
    ("ability-master", lambda s: bool(s.abilities) and all(a.owned for a in s.abilities)),
    ("ability-upgrader", lambda s: any(a.owned and a.level >= 3 for a in s.abilities)),
    ("advanced-miner", lambda s: any(_owns_miner(s, m) for m in ADVANCED_MINERS)),
    ("black-hole-power", lambda s: _owns_miner(s, "black-hole-miner")),
    ("laser-cutter", lambda s: _owns_pickaxe(s, "laser-pickaxe")),
    ("quantum-power", lambda s: _owns_pickaxe(s, "quantum-disruptor")),
]

# Unlocked without rewards right after a rebirth.
REBIRTH_RULES: List[Rule] = [rule for rule in RULES if rule[0] in ("rebirth-master", "rebirth-addict")]


def unlock(state: GameState, achievement_id: str, grant_reward: bool = True) -> GameState:
    """Unlock one achievement and grant its reward. Idempotent."""
    achievement = state.achievement(achievement_id)
    if achievement is None or achievement.unlocked:
        return state
    reward = achievement.reward if grant_reward else 0.0
    return replace(
        state,
        achievements=replace_entry(state.achievements, replace(achievement, unlocked=True)),
        coins=state.coins + reward,
        total_coins_earned=state.total_coins_earned + reward,
        needs_save=True,
    )


def mark_shown(state: GameState, achievement_id: str) -> GameState:
    achievement = state.achievement(achievement_id)
    if achievement is None or achievement.shown:
        return state
    return replace(
        state,
        achievements=replace_entry(state.achievements, replace(achievement, shown=True)),
        needs_save=True,
    )


def evaluate(
    state: GameState,
    rules: Sequence[Rule] = RULES,
    grant_rewards: bool = True,
) -> Tuple[GameState, List[str]]:
    """Unlock everything currently satisfied. Returns the new state and the
    ids unlocked, in rule order."""
    unlocked: List[str] = []
    while True:
        progressed = False
        for achievement_id, predicate in rules:
            current = state.achievement(achievement_id)
            if current is None or current.unlocked or not predicate(state):
                continue
            state = unlock(state, achievement_id, grant_rewards)
            unlocked.append(achievement_id)
            progressed = True
        if not progressed:
            return state, unlocked
