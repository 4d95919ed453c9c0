"""Ability state machine.

  PURCHASABLE --buy--> READY --activate--> ACTIVE --expire/deactivate--> COOLDOWN
  COOLDOWN --cooldown elapsed--> READY

time_remaining is set only while ACTIVE, cooldown_remaining only while
COOLDOWN. Every transition that changes which abilities are active also
recomputes cpc/cps in the same step so a boost never outlives its timer.
"""
from __future__ import annotations

import math
from dataclasses import replace
from typing import TYPE_CHECKING, Callable, Dict, List, Tuple

from caveminer.catalog import replace_entry
from caveminer.derived import cooldown_speed, recompute
from caveminer.events import Event, EventKind
from caveminer.types import Ability, AbilityEffect, AbilityStatus

if TYPE_CHECKING:
    from caveminer.state import GameState

UPGRADE_COST_GROWTH = 1.8
_EPSILON = 1e-9

# Multiplier at a given level, per effect kind.
LEVEL_SCALING: Dict[AbilityEffect, Callable[[int], float]] = {
    AbilityEffect.CPC_MULTIPLIER: lambda level: 10.0 + 5.0 * (level - 1),
    AbilityEffect.AUTO_TAP: lambda level: 5.0 + 2.0 * (level - 1),
    AbilityEffect.GOLD_CHANCE: lambda level: 0.05 * level,
    AbilityEffect.CPS_MULTIPLIER: lambda level: 2.0 + 0.5 * (level - 1),
}

Transition = Tuple["GameState", List[Event]]


def status(ability: Ability) -> AbilityStatus:
    if not ability.owned:
        return AbilityStatus.PURCHASABLE
    if ability.active:
        return AbilityStatus.ACTIVE
    if ability.cooldown_remaining is not None:
        return AbilityStatus.COOLDOWN
    return AbilityStatus.READY


def multiplier_for_level(effect: AbilityEffect, level: int) -> float:
    return LEVEL_SCALING[effect](level)


def _ready(ability: Ability) -> Ability:
    return replace(ability, active=False, time_remaining=None, cooldown_remaining=None)


def _cooling(ability: Ability) -> Ability:
    return replace(ability, active=False, time_remaining=None, cooldown_remaining=ability.cooldown)


def buy(state: GameState, ability_id: str) -> Transition:
    ability = state.ability(ability_id)
    if ability is None or ability.owned or state.coins < ability.cost:
        return state, []
    state = replace(
        state,
        coins=state.coins - ability.cost,
        abilities=replace_entry(state.abilities, _ready(replace(ability, owned=True))),
        needs_save=True,
        needs_cloud_save=True,
    )
    return state, [Event(EventKind.PURCHASE, ability_id, ability.cost)]


def activate(state: GameState, ability_id: str) -> Transition:
    ability = state.ability(ability_id)
    if ability is None or status(ability) != AbilityStatus.READY:
        return state, []
    started = replace(ability, active=True, time_remaining=ability.duration, cooldown_remaining=None)
    state = replace(
        state,
        abilities=replace_entry(state.abilities, started),
        needs_save=True,
    )
    return recompute(state), [Event(EventKind.ABILITY_ACTIVATED, ability_id)]


def deactivate(state: GameState, ability_id: str) -> Transition:
    ability = state.ability(ability_id)
    if ability is None or status(ability) != AbilityStatus.ACTIVE:
        return state, []
    state = replace(
        state,
        abilities=replace_entry(state.abilities, _cooling(ability)),
        needs_save=True,
    )
    return recompute(state), [Event(EventKind.ABILITY_DEACTIVATED, ability_id)]


def upgrade(state: GameState, ability_id: str) -> Transition:
    ability = state.ability(ability_id)
    if (
        ability is None
        or not ability.owned
        or ability.level >= ability.max_level
        or state.coins < ability.upgrade_cost
    ):
        return state, []
    level = ability.level + 1
    improved = replace(
        ability,
        level=level,
        multiplier=multiplier_for_level(ability.effect, level),
        upgrade_cost=float(math.floor(ability.upgrade_cost * UPGRADE_COST_GROWTH)),
    )
    state = replace(
        state,
        coins=state.coins - ability.upgrade_cost,
        abilities=replace_entry(state.abilities, improved),
        needs_save=True,
    )
    return recompute(state), [Event(EventKind.UPGRADE, ability_id, ability.upgrade_cost)]


def tick(state: GameState, seconds: float) -> Transition:
    """Advance every running timer by seconds of real time.

    An expiring ability goes straight to COOLDOWN with the full cooldown;
    leftover seconds from the same tick are not carried into the cooldown.
    """
    if seconds <= 0.0:
        return state, []
    if not any(a.active or a.cooldown_remaining is not None for a in state.abilities):
        return state, []

    speed = cooldown_speed(state)
    events: List[Event] = []
    changed_activity = False
    updated = []
    for ability in state.abilities:
        if ability.active:
            remaining = (ability.time_remaining or 0.0) - seconds
            if remaining <= _EPSILON:
                ability = _cooling(ability)
                changed_activity = True
                events.append(Event(EventKind.ABILITY_DEACTIVATED, ability.id))
            else:
                ability = replace(ability, time_remaining=remaining)
        elif ability.cooldown_remaining is not None:
            remaining = ability.cooldown_remaining - seconds * speed
            if remaining <= _EPSILON:
                ability = _ready(ability)
            else:
                ability = replace(ability, cooldown_remaining=remaining)
        updated.append(ability)

    state = replace(state, abilities=tuple(updated))
    if changed_activity:
        state = recompute(replace(state, needs_save=True))
    return state, events


def reset_for_rebirth(abilities: Tuple[Ability, ...]) -> Tuple[Ability, ...]:
    """Keep ownership, level, multiplier and upgrade cost; force READY."""
    return tuple(_ready(a) for a in abilities)
