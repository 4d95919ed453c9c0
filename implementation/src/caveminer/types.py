from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional


class StatCategory(IntEnum):
    """What a special upgrade modifies.

    Bonus accumulation per category (see derived.stat_bonus):
      additive_sum += additive * level
      multiplicative_product *= multiplicative ** level
      bonus = multiplicative_product * (additive_sum + 1.0)
    """
    NONE = 0
    CLICK_MULTIPLIER = 1     # applied per click, not part of cpc
    LUCKY_CHANCE = 2         # bonus - 1 = chance of a doubled click
    CLICK_COMBO = 3          # > 1 enables the 10-click combo
    OFFLINE_PROGRESS = 4     # > 1 allows enabling offline earnings
    CLICK_POWER = 5
    PICKAXE_POWER = 6
    MINER_POWER = 7
    COOLDOWN_SPEED = 8
    REBIRTH_DISCOUNT = 9     # bonus - 1 = fraction taken off the requirement


class AbilityEffect(IntEnum):
    CPC_MULTIPLIER = 1
    AUTO_TAP = 2
    GOLD_CHANCE = 3
    CPS_MULTIPLIER = 4


class AbilityStatus(IntEnum):
    PURCHASABLE = 0
    READY = 1
    ACTIVE = 2
    COOLDOWN = 3


@dataclass(frozen=True)
class Rock:
    id: str
    name: str
    base_cpc: float
    cost: float
    unlocked: bool = False


@dataclass(frozen=True)
class Upgrade:
    """A pickaxe. Owned pickaxes add cpc_increase, scaled by evolution tier."""
    id: str
    name: str
    cost: float
    cpc_increase: float
    owned: bool = False
    priority: int = 0        # higher wins the cosmetic "best pickaxe" slot
    tier: int = 0
    max_tier: int = 3
    evolve_cost: float = 1.0  # gold coins for tier 0 -> 1, doubles per tier


@dataclass(frozen=True)
class AutoMiner:
    id: str
    name: str
    cost: float
    cps: float
    quantity: int = 0
    tier: int = 0
    max_tier: int = 3
    evolve_cost: float = 1.0

    @property
    def owned(self) -> bool:
        return self.quantity > 0


@dataclass(frozen=True)
class SpecialUpgrade:
    id: str
    name: str
    cost: float
    stat: StatCategory
    additive: float = 0.0
    multiplicative: float = 1.0
    level: int = 0
    max_level: int = 1
    cost_growth: float = 2.0

    @property
    def owned(self) -> bool:
        return self.level > 0


@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str = ""
    reward: float = 0.0
    unlocked: bool = False
    shown: bool = False


@dataclass(frozen=True)
class Ability:
    id: str
    name: str
    cost: float
    cooldown: float
    duration: float
    effect: AbilityEffect
    multiplier: float
    upgrade_cost: float
    level: int = 1
    max_level: int = 5
    owned: bool = False
    active: bool = False
    time_remaining: Optional[float] = None      # set iff active
    cooldown_remaining: Optional[float] = None  # set iff cooling down


@dataclass(frozen=True)
class CoinAnimation:
    id: int
    amount: float
    lucky: bool = False
