from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List

from caveminer.actions import Action
from caveminer.events import Event
from caveminer.reducer import step
from caveminer.state import GameState

Listener = Callable[[GameState], None]


@dataclass
class GameStore:
    """Holds the current snapshot. Only dispatch() replaces it."""
    state: GameState
    listeners: List[Listener] = field(default_factory=list)

    def dispatch(self, action: Action) -> List[Event]:
        new_state, events = step(self.state, action)
        if new_state is self.state:
            return events
        self.state = new_state
        for listener in list(self.listeners):
            listener(new_state)
        return events

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self.listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self.listeners:
                self.listeners.remove(listener)

        return unsubscribe
