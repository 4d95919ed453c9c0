"""Engine root: owns the store, the timers and persistence.

The host calls `await engine.update()` once per frame. Everything that
changes game state goes through Engine.dispatch, which runs the reducer,
forwards events to the notification sink and then reacts to the change:
starting or stopping timers and scheduling a debounced save.
"""
from __future__ import annotations

import asyncio
import random
from dataclasses import replace
from typing import Callable, List, Optional

from caveminer import offline
from caveminer.actions import (
    AbilityTick,
    Action,
    ApplyPassiveIncome,
    CheckAchievements,
    ClearError,
    Click,
    LoadGame,
    MarkSaved,
    Rebirth,
    ReportError,
    ResetGame,
)
from caveminer.config import EngineConfig
from caveminer.derived import auto_tap_rate
from caveminer.events import Event, NotificationSink
from caveminer.offline import OfflineEarnings
from caveminer.persistence import (
    ANONYMOUS,
    Identity,
    IdentityProvider,
    PersistenceCoordinator,
    SaveResult,
    SyncResult,
    resolve_identity,
)
from caveminer.income import PassiveIncomeScheduler
from caveminer.state import GameState, default_state
from caveminer.store import GameStore, Listener
from caveminer.timers import LIGHT, SIGNIFICANT, Clock, IntervalTimer, SaveScheduler, SystemClock

# Actions that only record bookkeeping and never need a save of their own.
_NO_SAVE_ACTIONS = (LoadGame, MarkSaved, ReportError, ClearError)

AUTO_TAP_POLL = 0.05
MAX_AUTO_TAPS_PER_UPDATE = 50

LOCAL_SAVE_FAILED = "Could not save progress on this device."


class Engine:
    def __init__(
        self,
        persistence: PersistenceCoordinator,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
        identity_provider: Optional[IdentityProvider] = None,
        sink: Optional[NotificationSink] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.clock = clock or SystemClock()
        self.persistence = persistence
        self.identity_provider = identity_provider
        self.sink = sink or NotificationSink()
        self.rng = rng or random.Random()

        self.store = GameStore(default_state(self.clock.now()))
        self.identity: Identity = ANONYMOUS
        self.ready = False
        self.last_offline: Optional[OfflineEarnings] = None

        cfg = self.config
        self.saves = SaveScheduler(
            self.clock,
            significant_delay=cfg.significant_save_delay,
            light_delay=cfg.light_save_delay,
            max_wait=cfg.max_save_wait,
        )
        self.income = PassiveIncomeScheduler(
            self.dispatch,
            lambda: self.state.coins,
            tick_interval=cfg.income_tick_interval,
            flush_ticks=cfg.income_flush_ticks,
            display_interval=cfg.display_interval,
        )
        self.ability_timer = IntervalTimer(cfg.ability_tick_interval)
        self.achievement_timer = IntervalTimer(cfg.achievement_check_interval)
        self.auto_tap_timer = IntervalTimer(AUTO_TAP_POLL)
        self._tap_credit = 0.0
        self._suspended_at: Optional[float] = None

    # ── state access ──

    @property
    def state(self) -> GameState:
        return self.store.state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.store.subscribe(listener)

    def on_display(self, listener: Callable[[float], None]) -> Callable[[], None]:
        return self.income.add_display_listener(listener)

    # ── dispatch ──

    def dispatch(self, action: Action) -> List[Event]:
        now = self.clock.now()
        if self.ready and isinstance(action, Rebirth):
            self.income.flush(now)
        before = self.state
        events = self.store.dispatch(action)
        for event in events:
            self.sink.notify(event)
        after = self.state
        if after is not before and self.ready:
            self._after_change(before, after, action, now)
        return events

    def click(self) -> List[Event]:
        return self.dispatch(Click(luck_roll=self.rng.random(), gold_roll=self.rng.random()))

    def _after_change(self, before: GameState, after: GameState, action: Action, now: float) -> None:
        if after.cps != before.cps:
            self._sync_income(now)
        self._sync_ability_timers(now)
        if isinstance(action, _NO_SAVE_ACTIONS):
            return
        if after.needs_save:
            self.saves.schedule_save(SIGNIFICANT, cloud=after.needs_cloud_save)
        else:
            self.saves.schedule_save(LIGHT)

    def _sync_income(self, now: float) -> None:
        cps = self.state.cps
        if cps > 0.0:
            self.income.set_rate(now, cps)
        elif self.income.running:
            self.income.stop(now)

    def _sync_ability_timers(self, now: float) -> None:
        state = self.state
        if any(a.active or a.cooldown_remaining is not None for a in state.abilities):
            self.ability_timer.start(now)
        else:
            self.ability_timer.stop()
        if auto_tap_rate(state) > 0.0:
            self.auto_tap_timer.start(now)
        else:
            self.auto_tap_timer.stop()
            self._tap_credit = 0.0

    def _start_timers(self, now: float) -> None:
        self.achievement_timer.start(now)
        self._sync_income(now)
        self._sync_ability_timers(now)

    def _stop_timers(self, now: float) -> None:
        self.income.stop(now)
        self.ability_timer.stop()
        self.achievement_timer.stop()
        self.auto_tap_timer.stop()
        self._tap_credit = 0.0

    # ── frame loop ──

    async def update(self) -> None:
        if not self.ready:
            return
        now = self.clock.now()
        self.income.update(now)

        elapsed = self.auto_tap_timer.poll(now)
        if elapsed is not None:
            self._tap_credit += elapsed * auto_tap_rate(self.state)
            taps = min(int(self._tap_credit), MAX_AUTO_TAPS_PER_UPDATE)
            self._tap_credit -= int(self._tap_credit)
            for _ in range(taps):
                self.click()

        elapsed = self.ability_timer.poll(now)
        if elapsed is not None:
            self.dispatch(AbilityTick(elapsed))

        if self.achievement_timer.poll(now) is not None:
            self.dispatch(CheckAchievements())

        pending = self.saves.due(now)
        if pending is not None:
            await self.save_now(force_remote=pending.cloud)

    # ── lifecycle ──

    async def start(self) -> None:
        """Cold start: resolve identity, load, catch up offline income."""
        self.identity = await resolve_identity(self.identity_provider, self.config.identity_timeout)
        now = self.clock.now()
        try:
            result = await asyncio.wait_for(
                self.persistence.load(self.identity, force_reload=self.identity.just_logged_in, now=now),
                self.config.load_timeout,
            )
        except asyncio.TimeoutError:
            print(f"[engine] Load timed out after {self.config.load_timeout:.0f}s, using local save only")
            result = await self.persistence.load(ANONYMOUS, now=now)
        print(f"[engine] Loaded {result.source} save (version {result.state.version})")
        self.dispatch(LoadGame(result.state))
        if result.message:
            self.dispatch(ReportError(result.message))
        self.identity = replace(self.identity, just_logged_in=False)
        self._become_ready(apply_offline=True)

    def _become_ready(self, apply_offline: bool, away_since: Optional[float] = None) -> None:
        now = self.clock.now()
        self.ready = True
        self.last_offline = None
        if apply_offline:
            state = self.state
            if away_since is not None:
                state = replace(state, last_saved=away_since)
            earnings = offline.calculate(
                state,
                now,
                self.config.offline_min_seconds,
                self.config.offline_max_seconds,
            )
            if earnings is not None:
                print(f"[engine] Offline for {earnings.seconds}s, earned {earnings.amount:.0f} coins")
                self.last_offline = earnings
                self.dispatch(ApplyPassiveIncome(earnings.amount))
        self._start_timers(now)

    async def suspend(self) -> Optional[SaveResult]:
        """App backgrounded: fold pending income in and save once, right now."""
        if not self.ready:
            return None
        now = self.clock.now()
        self._stop_timers(now)
        self.saves.cancel_pending()
        self.ready = False
        self._suspended_at = now
        return await self.save_now(force_remote=False)

    async def resume(self) -> None:
        if self.ready:
            return
        if self.identity.is_authenticated and await self.persistence.has_newer_remote(
            self.identity, self.state.last_saved
        ):
            print("[engine] Newer cloud save found on resume, reloading")
            result = await self.persistence.load(self.identity, force_reload=True, now=self.clock.now())
            self.dispatch(LoadGame(result.state))
            self._become_ready(apply_offline=False)
            return
        # Foreground income was flushed on suspend, even if that save failed.
        self._become_ready(apply_offline=True, away_since=self._suspended_at)

    async def shutdown(self) -> Optional[SaveResult]:
        if not self.ready:
            return None
        now = self.clock.now()
        self._stop_timers(now)
        self.saves.cancel_pending()
        self.ready = False
        result = await self.save_now(force_remote=False)
        self.income.display_listeners.clear()
        return result

    # ── persistence ──

    async def save_now(self, force_remote: bool = False) -> SaveResult:
        now = self.clock.now()
        if self.income.running:
            self.income.flush(now)
        self.saves.cancel_pending()
        result = await self.persistence.save(self.state, self.identity, force_remote, now)
        self._record_save(result)
        return result

    def _record_save(self, result: SaveResult) -> None:
        cloud_failed = result.remote_attempted and not result.remote_ok
        if result.local_ok or result.remote_ok:
            self.dispatch(MarkSaved(result.state.last_saved, result.state.version, cloud_pending=cloud_failed))
        if not result.local_ok:
            self.dispatch(ReportError(LOCAL_SAVE_FAILED))
        elif cloud_failed and result.message:
            self.dispatch(ReportError(result.message))
        if cloud_failed and self.ready:
            self.saves.schedule_retry(self.config.cloud_retry_delay)

    async def force_sync(self) -> SyncResult:
        now = self.clock.now()
        if self.income.running:
            self.income.flush(now)
        self.saves.cancel_pending()
        result = await self.persistence.force_sync(self.state, self.identity, now)
        self._record_save(result.saved)
        if result.state is not None:
            self._adopt(result.state)
        print(f"[engine] Sync: {result.message}")
        return result

    def _adopt(self, state: GameState) -> None:
        """Replace the running snapshot with one loaded from storage."""
        now = self.clock.now()
        was_ready = self.ready
        if was_ready:
            self._stop_timers(now)
        self.dispatch(LoadGame(state))
        if was_ready:
            self._start_timers(now)

    async def login(self, identity: Identity) -> None:
        """A fresh sign-in: check the cloud for this account's progress.

        Local progress is written out under its last save time, not a new
        one, so reconciliation compares the two copies as they were last
        saved. The winner is saved only after it has been adopted.
        """
        self.identity = replace(identity, just_logged_in=True)
        now = self.clock.now()
        if self.income.running:
            self.income.flush(now)
        self.saves.cancel_pending()
        self.persistence.checkpoint(self.state)
        result = await self.persistence.load(self.identity, force_reload=True, now=now)
        self._adopt(result.state)
        if result.message:
            self.dispatch(ReportError(result.message))
        self.identity = replace(identity, just_logged_in=False)
        await self.save_now(force_remote=False)

    async def logout(self) -> None:
        await self.save_now(force_remote=self.identity.is_authenticated)
        self.identity = ANONYMOUS

    async def restart_game(self) -> None:
        """Wipe progress locally and in the cloud."""
        now = self.clock.now()
        was_ready = self.ready
        if was_ready:
            self._stop_timers(now)
        self.saves.cancel_pending()
        if self.identity.is_authenticated:
            await self.persistence.delete_remote(self.identity)
        self.dispatch(ResetGame(now))
        if was_ready:
            self._start_timers(now)
        await self.save_now(force_remote=False)
