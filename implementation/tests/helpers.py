"""Builders for test snapshots."""
from __future__ import annotations

from dataclasses import replace

from caveminer.catalog import replace_entry
from caveminer.derived import recompute
from caveminer.events import NotificationSink
from caveminer.state import GameState, default_state


def fresh(**changes) -> GameState:
    return replace(default_state(), **changes)


def with_special(state: GameState, upgrade_id: str, level: int = 1) -> GameState:
    su = state.special_upgrade(upgrade_id)
    state = replace(state, special_upgrades=replace_entry(state.special_upgrades, replace(su, level=level)))
    return recompute(state)


def with_pickaxes(state: GameState, *upgrade_ids: str) -> GameState:
    upgrades = state.upgrades
    for upgrade_id in upgrade_ids:
        upgrades = replace_entry(upgrades, replace(state.upgrade(upgrade_id), owned=True))
    return recompute(replace(state, upgrades=upgrades))


def with_miners(state: GameState, miner_id: str, quantity: int) -> GameState:
    miner = state.auto_miner(miner_id)
    state = replace(state, auto_miners=replace_entry(state.auto_miners, replace(miner, quantity=quantity)))
    return recompute(state)


def with_ability(state: GameState, ability_id: str, **changes) -> GameState:
    ability = state.ability(ability_id)
    changes.setdefault("owned", True)
    state = replace(state, abilities=replace_entry(state.abilities, replace(ability, **changes)))
    return recompute(state)


def with_achievements_unlocked(state: GameState, *achievement_ids: str) -> GameState:
    achievements = state.achievements
    for achievement_id in achievement_ids:
        achievements = replace_entry(
            achievements, replace(state.achievement(achievement_id), unlocked=True)
        )
    return replace(state, achievements=achievements)


class RecordingSink(NotificationSink):
    def __init__(self) -> None:
        self.events = []

    def notify(self, event) -> None:
        self.events.append(event)

    def kinds(self):
        return [e.kind for e in self.events]
