"""Clocks, polled interval timers and the debounced save scheduler.

Nothing here sleeps or spawns threads. The host loop calls Engine.update(now)
every frame, the way a render loop calls sim.step(dt), and each timer decides
whether it is due from the wall-clock time it is handed. Tests drive the same
code with a ManualClock.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

SIGNIFICANT = "significant"
LIGHT = "light"


class Clock:
    def now(self) -> float:
        raise NotImplementedError


class SystemClock(Clock):
    """Epoch seconds, so save timestamps compare across devices."""

    def now(self) -> float:
        return time.time()


class ManualClock(Clock):
    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        self._now += seconds
        return self._now

    def set(self, value: float) -> None:
        self._now = float(value)


@dataclass
class IntervalTimer:
    """Fires at most once per poll when interval seconds have passed.

    poll() reports the real time elapsed since the previous firing, so a
    late frame is billed for all of the time it covered.
    """
    interval: float
    last_fire: Optional[float] = None

    @property
    def running(self) -> bool:
        return self.last_fire is not None

    def start(self, now: float) -> None:
        if self.last_fire is None:
            self.last_fire = now

    def stop(self) -> None:
        self.last_fire = None

    def poll(self, now: float) -> Optional[float]:
        if self.last_fire is None:
            return None
        elapsed = now - self.last_fire
        if elapsed < self.interval:
            return None
        self.last_fire = now
        return elapsed


@dataclass
class PendingSave:
    reason: str
    cloud: bool


class SaveScheduler:
    """Coalesces save requests into one write.

    Each request pushes the deadline out by the batch debounce delay (the
    longer one once any request in the batch was significant), but never
    past max_wait after the first request of the batch, so steady clicking
    cannot postpone a save forever.
    """

    def __init__(
        self,
        clock: Clock,
        significant_delay: float = 3.0,
        light_delay: float = 1.0,
        max_wait: float = 30.0,
    ) -> None:
        self.clock = clock
        self.significant_delay = significant_delay
        self.light_delay = light_delay
        self.max_wait = max_wait
        self._first_request: Optional[float] = None
        self._deadline: Optional[float] = None
        self._reason = LIGHT
        self._cloud = False

    @property
    def pending(self) -> bool:
        return self._deadline is not None

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def schedule_save(self, reason: str = LIGHT, cloud: bool = False) -> None:
        now = self.clock.now()
        if self._first_request is None:
            self._first_request = now
            self._reason = reason
            self._cloud = cloud
        else:
            if reason == SIGNIFICANT:
                self._reason = SIGNIFICANT
            self._cloud = self._cloud or cloud
        delay = self.significant_delay if self._reason == SIGNIFICANT else self.light_delay
        self._deadline = min(now + delay, self._first_request + self.max_wait)

    def schedule_retry(self, delay: float) -> None:
        """Queue a cloud write after a failed one, unless a save is already due sooner."""
        now = self.clock.now()
        if self._first_request is None:
            self._first_request = now
        self._reason = SIGNIFICANT
        self._cloud = True
        retry_at = now + delay
        if self._deadline is None or retry_at < self._deadline:
            self._deadline = retry_at

    def cancel_pending(self) -> None:
        self._first_request = None
        self._deadline = None
        self._reason = LIGHT
        self._cloud = False

    def due(self, now: float) -> Optional[PendingSave]:
        """Pop the pending save if its deadline has passed."""
        if self._deadline is None or now < self._deadline:
            return None
        pending = PendingSave(self._reason, self._cloud)
        self.cancel_pending()
        return pending
