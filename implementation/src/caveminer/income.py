"""Passive income while the engine is running.

Every tick bills rate * (now - last_update) into an accumulator, then every
flush_ticks ticks the accumulator is committed with one ApplyPassiveIncome.
A separate display timer publishes coins plus the unflushed amount so a
counter can tick up smoothly without touching the snapshot.
"""
from __future__ import annotations

from typing import Callable, List, Optional

from caveminer.actions import Action, ApplyPassiveIncome
from caveminer.timers import IntervalTimer

DisplayListener = Callable[[float], None]


class PassiveIncomeScheduler:
    def __init__(
        self,
        dispatch: Callable[[Action], object],
        committed_coins: Callable[[], float],
        tick_interval: float = 0.05,
        flush_ticks: int = 10,
        display_interval: float = 0.1,
    ) -> None:
        self.dispatch = dispatch
        self.committed_coins = committed_coins
        self.flush_ticks = max(1, flush_ticks)
        self.tick_timer = IntervalTimer(tick_interval)
        self.display_timer = IntervalTimer(display_interval)
        self.display_listeners: List[DisplayListener] = []

        self.rate = 0.0
        self.accumulator = 0.0
        self.last_update: Optional[float] = None
        self.ticks_since_flush = 0

    @property
    def running(self) -> bool:
        return self.last_update is not None

    @property
    def unflushed(self) -> float:
        return self.accumulator

    def display_value(self) -> float:
        return self.committed_coins() + self.accumulator

    def start(self, now: float, rate: float) -> None:
        if rate <= 0.0:
            return
        if self.running:
            self.set_rate(now, rate)
            return
        self.rate = rate
        self.last_update = now
        self.ticks_since_flush = 0
        self.tick_timer.start(now)
        self.display_timer.start(now)

    def set_rate(self, now: float, rate: float) -> None:
        """Switch to a new cps. Time already elapsed is billed at the old rate."""
        if not self.running:
            self.start(now, rate)
            return
        self._accrue(now)
        if rate <= 0.0:
            self.stop(now)
            return
        self.rate = rate

    def _accrue(self, now: float) -> None:
        if self.last_update is None:
            return
        elapsed = now - self.last_update
        if elapsed > 0.0:
            self.accumulator += self.rate * elapsed
        self.last_update = max(self.last_update, now)

    def update(self, now: float) -> None:
        if not self.running:
            return
        if self.tick_timer.poll(now) is not None:
            self._accrue(now)
            self.ticks_since_flush += 1
            if self.ticks_since_flush >= self.flush_ticks:
                self.flush(now)
        if self.display_timer.poll(now) is not None:
            value = self.display_value()
            for listener in list(self.display_listeners):
                listener(value)

    def flush(self, now: Optional[float] = None) -> float:
        """Commit everything accrued so far. Returns the amount committed."""
        if now is not None:
            self._accrue(now)
        amount = self.accumulator
        self.accumulator = 0.0
        self.ticks_since_flush = 0
        if amount > 0.0:
            self.dispatch(ApplyPassiveIncome(amount))
        return amount

    def stop(self, now: float) -> float:
        """Fold the accumulator into the snapshot and tear the timers down."""
        committed = self.flush(now) if self.running else 0.0
        self.tick_timer.stop()
        self.display_timer.stop()
        self.last_update = None
        self.rate = 0.0
        return committed

    def add_display_listener(self, listener: DisplayListener) -> Callable[[], None]:
        self.display_listeners.append(listener)

        def remove() -> None:
            if listener in self.display_listeners:
                self.display_listeners.remove(listener)

        return remove
