from __future__ import annotations

from caveminer.timers import LIGHT, SIGNIFICANT, IntervalTimer, ManualClock, SaveScheduler


def test_interval_timer_reports_elapsed():
    timer = IntervalTimer(1.0)
    assert timer.poll(5.0) is None
    timer.start(0.0)
    assert timer.poll(0.5) is None
    assert timer.poll(2.5) == 2.5
    assert timer.poll(3.0) is None
    timer.stop()
    assert not timer.running


def test_start_does_not_reset_a_running_timer():
    timer = IntervalTimer(1.0)
    timer.start(0.0)
    timer.start(0.9)
    assert timer.poll(1.0) == 1.0


def test_light_save_fires_after_short_delay():
    clock = ManualClock(100.0)
    saves = SaveScheduler(clock, significant_delay=3.0, light_delay=1.0, max_wait=30.0)
    saves.schedule_save(LIGHT)
    assert saves.due(100.5) is None
    pending = saves.due(101.0)
    assert pending.reason == LIGHT
    assert not pending.cloud
    assert not saves.pending


def test_requests_coalesce_and_escalate():
    clock = ManualClock(0.0)
    saves = SaveScheduler(clock)
    saves.schedule_save(SIGNIFICANT, cloud=True)
    clock.advance(2.0)
    saves.schedule_save(LIGHT)
    assert saves.deadline == 5.0
    assert saves.due(4.0) is None
    pending = saves.due(5.0)
    assert pending.reason == SIGNIFICANT
    assert pending.cloud


def test_steady_requests_cannot_postpone_forever():
    clock = ManualClock(0.0)
    saves = SaveScheduler(clock, significant_delay=3.0, max_wait=30.0)
    for _ in range(20):
        saves.schedule_save(SIGNIFICANT)
        clock.advance(2.0)
    assert saves.deadline == 30.0
    assert saves.due(clock.now()) is not None


def test_cancel_pending():
    clock = ManualClock(0.0)
    saves = SaveScheduler(clock)
    saves.schedule_save(SIGNIFICANT, cloud=True)
    saves.cancel_pending()
    assert saves.due(1_000.0) is None
    saves.schedule_save(LIGHT)
    assert not saves.due(1_000.0).cloud


def test_retry_marks_batch_for_cloud():
    clock = ManualClock(0.0)
    saves = SaveScheduler(clock)
    saves.schedule_retry(30.0)
    assert saves.deadline == 30.0
    clock.advance(10.0)
    saves.schedule_save(LIGHT)
    assert saves.deadline == 13.0
    pending = saves.due(13.0)
    assert pending.reason == SIGNIFICANT
    assert pending.cloud


def test_retry_does_not_delay_an_earlier_save():
    clock = ManualClock(0.0)
    saves = SaveScheduler(clock)
    saves.schedule_save(LIGHT)
    saves.schedule_retry(30.0)
    assert saves.deadline == 1.0
    assert saves.due(1.0).cloud
