from __future__ import annotations

import random

import pytest

from caveminer import abilities
from caveminer.abilities import multiplier_for_level, status
from caveminer.actions import (
    AbilityTick,
    ActivateAbility,
    BuyAbility,
    Click,
    DeactivateAbility,
    UpgradeAbility,
)
from caveminer.events import EventKind
from caveminer.reducer import reduce, step
from caveminer.types import AbilityEffect, AbilityStatus

from helpers import fresh, with_ability, with_miners, with_special


def test_duration_then_cooldown_then_ready():
    state = with_ability(fresh(), "coin-scatter")
    ability = state.ability("coin-scatter")
    assert (ability.duration, ability.cooldown) == (30, 300)

    state = reduce(state, ActivateAbility("coin-scatter"))
    assert status(state.ability("coin-scatter")) == AbilityStatus.ACTIVE
    for _ in range(3):
        state = reduce(state, AbilityTick(10))
    ability = state.ability("coin-scatter")
    assert not ability.active
    assert ability.cooldown_remaining == 300
    assert ability.time_remaining is None

    state = reduce(state, AbilityTick(300))
    assert status(state.ability("coin-scatter")) == AbilityStatus.READY


def test_status_of_unowned_ability():
    assert status(fresh().ability("auto-tap")) == AbilityStatus.PURCHASABLE


def test_buy_ability():
    state, events = step(fresh(coins=10_000), BuyAbility("coin-scatter"))
    assert state.ability("coin-scatter").owned
    assert state.coins == 0 + 1_000  # ability-owner reward
    assert state.needs_cloud_save
    assert events[0].kind == EventKind.PURCHASE


def test_activate_only_from_ready():
    state = fresh()
    assert reduce(state, ActivateAbility("coin-scatter")) is state
    state = with_ability(state, "coin-scatter", cooldown_remaining=10.0)
    assert reduce(state, ActivateAbility("coin-scatter")) is state


def test_activation_boosts_cpc_until_expiry():
    state = with_ability(fresh(), "coin-scatter")
    active, events = step(state, ActivateAbility("coin-scatter"))
    assert active.cpc == 10
    assert events[0].kind == EventKind.ABILITY_ACTIVATED
    expired, events = step(active, AbilityTick(30))
    assert expired.cpc == 1
    assert [e.kind for e in events] == [EventKind.ABILITY_DEACTIVATED]


def test_manual_deactivate_starts_cooldown():
    state = reduce(with_ability(fresh(), "miners-frenzy"), ActivateAbility("miners-frenzy"))
    state = reduce(state, DeactivateAbility("miners-frenzy"))
    ability = state.ability("miners-frenzy")
    assert status(ability) == AbilityStatus.COOLDOWN
    assert ability.cooldown_remaining == ability.cooldown
    assert reduce(state, DeactivateAbility("miners-frenzy")) is state


def test_cps_boost_disappears_on_expiry():
    state = with_miners(fresh(), "caveman-apprentice", 4)
    state = reduce(with_ability(state, "miners-frenzy"), ActivateAbility("miners-frenzy"))
    assert state.cps == 8
    state = reduce(state, AbilityTick(120))
    assert state.cps == 4


def test_tick_is_identity_when_idle():
    state = with_ability(fresh(), "coin-scatter")
    assert reduce(state, AbilityTick(5)) is state
    assert reduce(state, AbilityTick(0)) is state


def test_time_warp_speeds_cooldown():
    state = with_special(fresh(), "time-warp")
    state = with_ability(state, "coin-scatter", cooldown_remaining=300.0)
    state = reduce(state, AbilityTick(100))
    assert state.ability("coin-scatter").cooldown_remaining == pytest.approx(150.0)
    state = reduce(state, AbilityTick(100))
    assert status(state.ability("coin-scatter")) == AbilityStatus.READY


def test_upgrade_uses_per_effect_scaling():
    state = with_ability(fresh(coins=1_000_000), "auto-tap")
    state = reduce(state, UpgradeAbility("auto-tap"))
    ability = state.ability("auto-tap")
    assert ability.level == 2
    assert ability.multiplier == multiplier_for_level(AbilityEffect.AUTO_TAP, 2) == 7.0
    assert ability.upgrade_cost == 180_000

    state = with_ability(fresh(coins=1_000_000), "coin-scatter")
    state = reduce(state, UpgradeAbility("coin-scatter"))
    assert state.ability("coin-scatter").multiplier == 15.0


def test_upgrade_bounded_by_max_level():
    state = with_ability(fresh(coins=1e12), "gold-rush", level=3)
    assert reduce(state, UpgradeAbility("gold-rush")) is state
    unowned = fresh(coins=1e12)
    assert reduce(unowned, UpgradeAbility("gold-rush")) is unowned


def test_upgrade_while_active_recomputes():
    state = with_ability(fresh(coins=1e6), "coin-scatter")
    state = reduce(state, ActivateAbility("coin-scatter"))
    state = reduce(state, UpgradeAbility("coin-scatter"))
    assert state.cpc == 15


def test_reset_for_rebirth_keeps_levels():
    state = with_ability(fresh(), "coin-scatter", level=3, active=True, time_remaining=5.0)
    reset = abilities.reset_for_rebirth(state.abilities)
    ability = next(a for a in reset if a.id == "coin-scatter")
    assert ability.owned and ability.level == 3
    assert status(ability) == AbilityStatus.READY


@pytest.mark.parametrize("seed", range(4))
def test_never_active_and_cooling(seed):
    rng = random.Random(seed)
    state = fresh(coins=1e9, total_clicks=5)
    ids = [a.id for a in state.abilities]
    for _ in range(300):
        choice = rng.randrange(6)
        ability_id = rng.choice(ids)
        if choice == 0:
            action = BuyAbility(ability_id)
        elif choice == 1:
            action = ActivateAbility(ability_id)
        elif choice == 2:
            action = DeactivateAbility(ability_id)
        elif choice == 3:
            action = UpgradeAbility(ability_id)
        elif choice == 4:
            action = Click(luck_roll=rng.random(), gold_roll=rng.random())
        else:
            action = AbilityTick(rng.uniform(0, 200))
        state = reduce(state, action)
        for a in state.abilities:
            assert not (a.active and (a.cooldown_remaining or 0) > 0)
            assert (a.time_remaining is not None) == a.active
