"""The single place a GameState changes.

step(state, action) returns the next state plus the events that happened.
It never raises for game rules: an unknown id, an unaffordable price or an
exhausted tier returns the input object unchanged, so callers can detect a
rejected action with `is`.
"""
from __future__ import annotations

import math
from dataclasses import replace
from typing import Callable, Dict, List, Tuple, Type

from caveminer import abilities, achievements, prestige
from caveminer.actions import (
    PREFERENCES,
    AbilityTick,
    Action,
    ActivateAbility,
    ApplyPassiveIncome,
    BuyAbility,
    BuyAutoMiner,
    BuySpecialUpgrade,
    BuyUpgrade,
    CheckAchievements,
    ClearError,
    Click,
    DeactivateAbility,
    EvolveAutoMiner,
    EvolveUpgrade,
    LoadGame,
    MarkAchievementShown,
    MarkSaved,
    Rebirth,
    ReportError,
    ResetGame,
    SelectPickaxe,
    SelectRock,
    SetPreference,
    UnlockAchievement,
    UpgradeAbility,
)
from caveminer.catalog import replace_entry
from caveminer.derived import (
    click_multiplier,
    combo_enabled,
    gold_chance,
    offline_progress_owned,
    recompute,
)
from caveminer.events import Event, EventKind
from caveminer.state import COMBO_WINDOW, GameState, default_state, push_coin_animation

AUTO_MINER_COST_GROWTH = 1.15
COMBO_BONUS = 10.0
EVOLVE_COST_BASE = 2

Transition = Tuple[GameState, List[Event]]


def _with_achievements(state: GameState, events: List[Event]) -> Transition:
    state, unlocked = achievements.evaluate(state)
    events.extend(Event(EventKind.ACHIEVEMENT_UNLOCKED, a) for a in unlocked)
    return state, events


# ── Clicking ─────────────────────────────────────────────────────────

def _click(state: GameState, action: Click) -> Transition:
    multiplier, lucky = click_multiplier(state, action.luck_roll)
    earned = state.cpc * multiplier
    events = [Event(EventKind.CLICK, None, earned)]
    if lucky:
        events.append(Event(EventKind.LUCKY_CLICK, None, earned))

    progress = state.click_progress
    if combo_enabled(state):
        progress = (progress + 1) % COMBO_WINDOW
        if progress == 0:
            bonus = COMBO_BONUS * state.cpc
            earned += bonus
            events.append(Event(EventKind.COMBO, None, bonus))

    chance = gold_chance(state)
    gold = 1.0 if chance > 0.0 and action.gold_roll < chance else 0.0

    new = replace(
        state,
        coins=state.coins + earned,
        total_coins_earned=state.total_coins_earned + earned,
        gold_coins=state.gold_coins + gold,
        total_clicks=state.total_clicks + 1,
        click_progress=progress,
    )
    new = push_coin_animation(new, earned, lucky)

    if (
        gold > 0.0
        or achievements.crosses(state.total_clicks, new.total_clicks, achievements.CLICK_MILESTONES)
        or achievements.crosses(
            state.total_coins_earned, new.total_coins_earned, achievements.EARNED_MILESTONES
        )
    ):
        return _with_achievements(new, events)
    return new, events


# ── Purchases ────────────────────────────────────────────────────────

def _buy_upgrade(state: GameState, action: BuyUpgrade) -> Transition:
    upgrade = state.upgrade(action.id)
    if upgrade is None or upgrade.owned or state.coins < upgrade.cost:
        return state, []
    selected = state.upgrade(state.selected_pickaxe)
    selected_pickaxe = state.selected_pickaxe
    if selected is None or upgrade.priority > selected.priority:
        selected_pickaxe = upgrade.id
    new = replace(
        state,
        coins=state.coins - upgrade.cost,
        upgrades=replace_entry(state.upgrades, replace(upgrade, owned=True)),
        selected_pickaxe=selected_pickaxe,
        needs_save=True,
    )
    return _with_achievements(recompute(new), [Event(EventKind.PURCHASE, upgrade.id, upgrade.cost)])


def _buy_auto_miner(state: GameState, action: BuyAutoMiner) -> Transition:
    miner = state.auto_miner(action.id)
    if miner is None or state.coins < miner.cost:
        return state, []
    bought = replace(
        miner,
        quantity=miner.quantity + 1,
        cost=float(math.floor(miner.cost * AUTO_MINER_COST_GROWTH)),
    )
    new = replace(
        state,
        coins=state.coins - miner.cost,
        auto_miners=replace_entry(state.auto_miners, bought),
        needs_save=True,
    )
    return _with_achievements(recompute(new), [Event(EventKind.PURCHASE, miner.id, miner.cost)])


def _buy_special_upgrade(state: GameState, action: BuySpecialUpgrade) -> Transition:
    su = state.special_upgrade(action.id)
    if su is None or su.level >= su.max_level or state.gold_coins < su.cost:
        return state, []
    bought = replace(su, level=su.level + 1, cost=float(math.floor(su.cost * su.cost_growth)))
    new = replace(
        state,
        gold_coins=state.gold_coins - su.cost,
        special_upgrades=replace_entry(state.special_upgrades, bought),
        needs_save=True,
        needs_cloud_save=True,
    )
    return _with_achievements(recompute(new), [Event(EventKind.PURCHASE, su.id, su.cost)])


def _buy_ability(state: GameState, action: BuyAbility) -> Transition:
    new, events = abilities.buy(state, action.id)
    if new is state:
        return state, []
    return _with_achievements(new, events)


# ── Evolution ────────────────────────────────────────────────────────

def evolve_cost(evolve_base: float, tier: int) -> float:
    return evolve_base * EVOLVE_COST_BASE ** tier


def _evolve_upgrade(state: GameState, action: EvolveUpgrade) -> Transition:
    upgrade = state.upgrade(action.id)
    if upgrade is None or not upgrade.owned or upgrade.tier >= upgrade.max_tier:
        return state, []
    cost = evolve_cost(upgrade.evolve_cost, upgrade.tier)
    if state.gold_coins < cost:
        return state, []
    new = replace(
        state,
        gold_coins=state.gold_coins - cost,
        upgrades=replace_entry(state.upgrades, replace(upgrade, tier=upgrade.tier + 1)),
        needs_save=True,
        needs_cloud_save=True,
    )
    return _with_achievements(recompute(new), [Event(EventKind.UPGRADE, upgrade.id, cost)])


def _evolve_auto_miner(state: GameState, action: EvolveAutoMiner) -> Transition:
    miner = state.auto_miner(action.id)
    if miner is None or miner.quantity <= 0 or miner.tier >= miner.max_tier:
        return state, []
    cost = evolve_cost(miner.evolve_cost, miner.tier)
    if state.gold_coins < cost:
        return state, []
    new = replace(
        state,
        gold_coins=state.gold_coins - cost,
        auto_miners=replace_entry(state.auto_miners, replace(miner, tier=miner.tier + 1)),
        needs_save=True,
        needs_cloud_save=True,
    )
    return _with_achievements(recompute(new), [Event(EventKind.UPGRADE, miner.id, cost)])


# ── Selection ────────────────────────────────────────────────────────

def _select_rock(state: GameState, action: SelectRock) -> Transition:
    rock = state.rock(action.id)
    if rock is None or rock.id == state.selected_rock:
        return state, []
    if rock.unlocked:
        return recompute(replace(state, selected_rock=rock.id)), []
    if state.coins < rock.cost:
        return state, []
    new = replace(
        state,
        coins=state.coins - rock.cost,
        rocks=replace_entry(state.rocks, replace(rock, unlocked=True)),
        selected_rock=rock.id,
        needs_save=True,
    )
    return _with_achievements(recompute(new), [Event(EventKind.PURCHASE, rock.id, rock.cost)])


def _select_pickaxe(state: GameState, action: SelectPickaxe) -> Transition:
    upgrade = state.upgrade(action.id)
    if upgrade is None or not upgrade.owned or upgrade.id == state.selected_pickaxe:
        return state, []
    return recompute(replace(state, selected_pickaxe=upgrade.id)), []


# ── Prestige and abilities ───────────────────────────────────────────

def _rebirth(state: GameState, action: Rebirth) -> Transition:
    return prestige.rebirth(state)


def _activate_ability(state: GameState, action: ActivateAbility) -> Transition:
    return abilities.activate(state, action.id)


def _deactivate_ability(state: GameState, action: DeactivateAbility) -> Transition:
    return abilities.deactivate(state, action.id)


def _upgrade_ability(state: GameState, action: UpgradeAbility) -> Transition:
    new, events = abilities.upgrade(state, action.id)
    if new is state:
        return state, []
    return _with_achievements(new, events)


def _ability_tick(state: GameState, action: AbilityTick) -> Transition:
    return abilities.tick(state, action.seconds)


# ── Achievements ─────────────────────────────────────────────────────

def _unlock_achievement(state: GameState, action: UnlockAchievement) -> Transition:
    new = achievements.unlock(state, action.id)
    if new is state:
        return state, []
    return new, [Event(EventKind.ACHIEVEMENT_UNLOCKED, action.id)]


def _mark_achievement_shown(state: GameState, action: MarkAchievementShown) -> Transition:
    return achievements.mark_shown(state, action.id), []


def _check_achievements(state: GameState, action: CheckAchievements) -> Transition:
    return _with_achievements(state, [])


# ── Income ───────────────────────────────────────────────────────────

def _apply_passive_income(state: GameState, action: ApplyPassiveIncome) -> Transition:
    if action.amount <= 0.0:
        return state, []
    new = replace(
        state,
        coins=state.coins + action.amount,
        total_coins_earned=state.total_coins_earned + action.amount,
    )
    if achievements.crosses(
        state.total_coins_earned, new.total_coins_earned, achievements.EARNED_MILESTONES
    ):
        return _with_achievements(new, [])
    return new, []


# ── Bookkeeping ──────────────────────────────────────────────────────

def _load_game(state: GameState, action: LoadGame) -> Transition:
    loaded = replace(
        action.state,
        data_loaded=True,
        needs_save=False,
        needs_cloud_save=False,
        error_message=None,
    )
    return recompute(loaded), []


def _mark_saved(state: GameState, action: MarkSaved) -> Transition:
    return replace(
        state,
        last_saved=action.last_saved,
        version=action.version,
        needs_save=False,
        needs_cloud_save=action.cloud_pending,
    ), []


def _set_preference(state: GameState, action: SetPreference) -> Transition:
    if action.name not in PREFERENCES:
        return state, []
    value = bool(action.value)
    if getattr(state, action.name) == value:
        return state, []
    if action.name == "offline_progress_enabled" and value and not offline_progress_owned(state):
        return state, []
    return replace(state, **{action.name: value}), []


def _report_error(state: GameState, action: ReportError) -> Transition:
    if state.error_message == action.message:
        return state, []
    return replace(state, error_message=action.message), []


def _clear_error(state: GameState, action: ClearError) -> Transition:
    if state.error_message is None:
        return state, []
    return replace(state, error_message=None), []


def _reset_game(state: GameState, action: ResetGame) -> Transition:
    fresh = replace(
        default_state(action.last_saved),
        version=state.version,
        data_loaded=state.data_loaded,
        needs_save=True,
    )
    return fresh, []


_HANDLERS: Dict[Type, Callable[[GameState, Action], Transition]] = {
    Click: _click,
    BuyUpgrade: _buy_upgrade,
    BuyAutoMiner: _buy_auto_miner,
    BuySpecialUpgrade: _buy_special_upgrade,
    BuyAbility: _buy_ability,
    EvolveUpgrade: _evolve_upgrade,
    EvolveAutoMiner: _evolve_auto_miner,
    SelectRock: _select_rock,
    SelectPickaxe: _select_pickaxe,
    Rebirth: _rebirth,
    ActivateAbility: _activate_ability,
    DeactivateAbility: _deactivate_ability,
    UpgradeAbility: _upgrade_ability,
    AbilityTick: _ability_tick,
    UnlockAchievement: _unlock_achievement,
    MarkAchievementShown: _mark_achievement_shown,
    CheckAchievements: _check_achievements,
    ApplyPassiveIncome: _apply_passive_income,
    LoadGame: _load_game,
    MarkSaved: _mark_saved,
    SetPreference: _set_preference,
    ReportError: _report_error,
    ClearError: _clear_error,
    ResetGame: _reset_game,
}


def step(state: GameState, action: Action) -> Transition:
    handler = _HANDLERS.get(type(action))
    if handler is None:
        return state, []
    return handler(state, action)


def reduce(state: GameState, action: Action) -> GameState:
    return step(state, action)[0]
