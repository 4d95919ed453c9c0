"""Events the reducer reports alongside each new state.

The reducer never plays sounds or buzzes the device. It returns a list of
Events; the engine passes them to a NotificationSink, and FeedbackAdapter
turns them into sound and haptic cues when the player has those enabled.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Callable, Dict, Iterable, Optional, Tuple

if TYPE_CHECKING:
    from caveminer.state import GameState


class EventKind(IntEnum):
    ACHIEVEMENT_UNLOCKED = 1
    ABILITY_ACTIVATED = 2
    ABILITY_DEACTIVATED = 3
    PURCHASE = 4
    UPGRADE = 5
    REBIRTH = 6
    CLICK = 7
    LUCKY_CLICK = 8
    COMBO = 9


@dataclass(frozen=True)
class Event:
    kind: EventKind
    id: Optional[str] = None
    amount: float = 0.0


class NotificationSink:
    """Receives every event the engine commits. Default does nothing."""

    def notify(self, event: Event) -> None:
        pass


# Event kind -> (sound name, haptic style). None means no cue.
FEEDBACK_CUES: Dict[EventKind, Tuple[Optional[str], Optional[str]]] = {
    EventKind.CLICK: ("click", "light"),
    EventKind.LUCKY_CLICK: ("click", "medium"),
    EventKind.COMBO: ("upgrade", "medium"),
    EventKind.PURCHASE: ("purchase", "light"),
    EventKind.UPGRADE: ("upgrade", "medium"),
    EventKind.ACHIEVEMENT_UNLOCKED: ("achievement", "success"),
    EventKind.ABILITY_ACTIVATED: ("ability", "heavy"),
    EventKind.ABILITY_DEACTIVATED: (None, None),
    EventKind.REBIRTH: ("rebirth", "success"),
}


class FeedbackAdapter(NotificationSink):
    """Maps events to sound/haptic playback callbacks.

    The callbacks belong to the presentation layer; the adapter only decides
    which cue to ask for, gated on the current preferences.
    """

    def __init__(
        self,
        play_sound: Callable[[str], None],
        play_haptic: Callable[[str], None],
        preferences: Callable[[], "GameState"],
    ) -> None:
        self.play_sound = play_sound
        self.play_haptic = play_haptic
        self.preferences = preferences

    def notify(self, event: Event) -> None:
        sound, haptic = FEEDBACK_CUES.get(event.kind, (None, None))
        state = self.preferences()
        if sound is not None and state.sound_enabled:
            self.play_sound(sound)
        if haptic is not None and state.haptics_enabled:
            self.play_haptic(haptic)

    def notify_all(self, events: Iterable[Event]) -> None:
        for event in events:
            self.notify(event)
