from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

from caveminer.catalog import Catalog, find, get_catalog
from caveminer.types import (
    Ability,
    Achievement,
    AutoMiner,
    CoinAnimation,
    Rock,
    SpecialUpgrade,
    Upgrade,
)

MAX_COIN_ANIMATIONS = 10
COMBO_WINDOW = 10
DEFAULT_ROCK = "stone"
DEFAULT_PICKAXE = "bare-hands"


@dataclass(frozen=True)
class GameState:
    """The whole of a player's progress.

    Never mutated in place: every transition builds a new instance with
    dataclasses.replace, so an unchanged reference means a rejected action.
    cpc and cps are always recomputed by derived.recompute and never trusted
    from a save.
    """
    coins: float = 0.0
    total_coins_earned: float = 0.0
    gold_coins: float = 0.0

    cpc: float = 1.0
    cps: float = 0.0

    total_clicks: int = 0
    click_progress: int = 0
    rebirths: int = 0
    bonus_multiplier: float = 1.0

    rocks: Tuple[Rock, ...] = ()
    upgrades: Tuple[Upgrade, ...] = ()
    auto_miners: Tuple[AutoMiner, ...] = ()
    special_upgrades: Tuple[SpecialUpgrade, ...] = ()
    achievements: Tuple[Achievement, ...] = ()
    abilities: Tuple[Ability, ...] = ()

    selected_rock: str = DEFAULT_ROCK
    selected_pickaxe: str = DEFAULT_PICKAXE

    sound_enabled: bool = True
    haptics_enabled: bool = True
    notifications_enabled: bool = True
    offline_progress_enabled: bool = False

    # Transient, never persisted
    coin_animations: Tuple[CoinAnimation, ...] = field(default=(), compare=False)
    next_animation_id: int = field(default=0, compare=False)
    error_message: Optional[str] = field(default=None, compare=False)

    last_saved: float = 0.0
    version: int = 0
    data_loaded: bool = field(default=False, compare=False)
    needs_save: bool = field(default=False, compare=False)
    needs_cloud_save: bool = field(default=False, compare=False)

    # ── lookups ──

    def rock(self, rock_id: str) -> Optional[Rock]:
        return find(self.rocks, rock_id)

    def upgrade(self, upgrade_id: str) -> Optional[Upgrade]:
        return find(self.upgrades, upgrade_id)

    def auto_miner(self, miner_id: str) -> Optional[AutoMiner]:
        return find(self.auto_miners, miner_id)

    def special_upgrade(self, upgrade_id: str) -> Optional[SpecialUpgrade]:
        return find(self.special_upgrades, upgrade_id)

    def achievement(self, achievement_id: str) -> Optional[Achievement]:
        return find(self.achievements, achievement_id)

    def ability(self, ability_id: str) -> Optional[Ability]:
        return find(self.abilities, ability_id)

    def owns_special(self, upgrade_id: str) -> bool:
        su = self.special_upgrade(upgrade_id)
        return su is not None and su.owned


def default_state(last_saved: float = 0.0, catalog: Optional[Catalog] = None) -> GameState:
    """Fresh game: catalog defaults, stone rock, bare hands."""
    from caveminer.derived import recompute

    if catalog is None:
        catalog = get_catalog()
    state = GameState(
        rocks=catalog.rocks,
        upgrades=catalog.upgrades,
        auto_miners=catalog.auto_miners,
        special_upgrades=catalog.special_upgrades,
        achievements=catalog.achievements,
        abilities=catalog.abilities,
        last_saved=last_saved,
    )
    return recompute(state)


def push_coin_animation(state: GameState, amount: float, lucky: bool = False) -> GameState:
    """Queue a floating-coin animation, evicting the oldest past the cap."""
    anim = CoinAnimation(id=state.next_animation_id, amount=amount, lucky=lucky)
    queue = (state.coin_animations + (anim,))[-MAX_COIN_ANIMATIONS:]
    return replace(state, coin_animations=queue, next_animation_id=state.next_animation_id + 1)
