"""Actions accepted by the reducer.

Every change to a GameState is one of these frozen records passed through
Engine.dispatch. Randomness is decided by the caller and carried in the
action, so the reducer stays deterministic.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from caveminer.state import GameState


@dataclass(frozen=True)
class Click:
    luck_roll: float = 1.0   # uniform [0, 1), lucky when below the lucky chance
    gold_roll: float = 1.0   # uniform [0, 1), gold when below the gold chance


@dataclass(frozen=True)
class BuyUpgrade:
    id: str


@dataclass(frozen=True)
class BuyAutoMiner:
    id: str


@dataclass(frozen=True)
class BuySpecialUpgrade:
    id: str


@dataclass(frozen=True)
class BuyAbility:
    id: str


@dataclass(frozen=True)
class EvolveUpgrade:
    id: str


@dataclass(frozen=True)
class EvolveAutoMiner:
    id: str


@dataclass(frozen=True)
class SelectRock:
    id: str


@dataclass(frozen=True)
class SelectPickaxe:
    id: str


@dataclass(frozen=True)
class Rebirth:
    pass


@dataclass(frozen=True)
class ActivateAbility:
    id: str


@dataclass(frozen=True)
class DeactivateAbility:
    id: str


@dataclass(frozen=True)
class UpgradeAbility:
    id: str


@dataclass(frozen=True)
class AbilityTick:
    seconds: float


@dataclass(frozen=True)
class UnlockAchievement:
    id: str


@dataclass(frozen=True)
class MarkAchievementShown:
    id: str


@dataclass(frozen=True)
class CheckAchievements:
    pass


@dataclass(frozen=True)
class ApplyPassiveIncome:
    amount: float


@dataclass(frozen=True)
class LoadGame:
    state: "GameState"


@dataclass(frozen=True)
class MarkSaved:
    last_saved: float
    version: int
    cloud_pending: bool = False   # remote write failed, keep the cloud copy dirty


@dataclass(frozen=True)
class SetPreference:
    name: str   # one of PREFERENCES
    value: bool


@dataclass(frozen=True)
class ReportError:
    message: str


@dataclass(frozen=True)
class ClearError:
    pass


@dataclass(frozen=True)
class ResetGame:
    last_saved: float = 0.0


PREFERENCES = (
    "sound_enabled",
    "haptics_enabled",
    "notifications_enabled",
    "offline_progress_enabled",
)

Action = Union[
    Click,
    BuyUpgrade,
    BuyAutoMiner,
    BuySpecialUpgrade,
    BuyAbility,
    EvolveUpgrade,
    EvolveAutoMiner,
    SelectRock,
    SelectPickaxe,
    Rebirth,
    ActivateAbility,
    DeactivateAbility,
    UpgradeAbility,
    AbilityTick,
    UnlockAchievement,
    MarkAchievementShown,
    CheckAchievements,
    ApplyPassiveIncome,
    LoadGame,
    MarkSaved,
    SetPreference,
    ReportError,
    ClearError,
    ResetGame,
]
