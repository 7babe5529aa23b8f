import time

from streamscope.helpers.Scheduler_helper import ManualScheduler, QtFrameScheduler


class Counter:
    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1


def test_manual_schedule_coalesces():
    scheduler = ManualScheduler()
    flush = Counter()
    assert scheduler.schedule(flush)
    assert not scheduler.schedule(flush)
    assert not scheduler.schedule(Counter())
    assert scheduler.is_pending
    assert scheduler.tick()
    assert flush.calls == 1
    assert not scheduler.tick()
    assert scheduler.num_scheduled == 1
    assert scheduler.num_flushed == 1

def test_manual_rearm_after_flush():
    scheduler = ManualScheduler()
    flush = Counter()
    for _ in range(3):
        scheduler.schedule(flush)
        scheduler.schedule(flush)
        scheduler.tick()
    assert flush.calls == 3

def test_cancel_and_flush_runs_synchronously():
    scheduler = ManualScheduler()
    flush = Counter()
    assert not scheduler.cancel_and_flush()
    scheduler.schedule(flush)
    assert scheduler.cancel_and_flush()
    assert flush.calls == 1
    assert not scheduler.tick()

def test_cancel_drops_flush():
    scheduler = ManualScheduler()
    flush = Counter()
    scheduler.schedule(flush)
    scheduler.cancel()
    assert not scheduler.tick()
    assert flush.calls == 0

def test_flush_may_schedule_again():
    scheduler = ManualScheduler()
    flush = Counter()

    def flush_and_rearm():
        flush()
        if flush.calls < 2:
            scheduler.schedule(flush_and_rearm)

    scheduler.schedule(flush_and_rearm)
    scheduler.tick()
    assert scheduler.is_pending
    scheduler.tick()
    assert flush.calls == 2
    assert not scheduler.is_pending


def test_qt_scheduler_fires_once_per_frame(qapp, wait_until):
    scheduler = QtFrameScheduler(5)
    flush = Counter()
    assert scheduler.interval_ms == 5
    for _ in range(10):
        scheduler.schedule(flush)
    assert wait_until(lambda: flush.calls == 1)
    assert not scheduler.is_pending
    assert scheduler.num_scheduled == 1

def test_qt_scheduler_cancel_and_flush(qapp, wait_until):
    scheduler = QtFrameScheduler(50)
    flush = Counter()
    scheduler.schedule(flush)
    assert scheduler.cancel_and_flush()
    assert flush.calls == 1
    assert not scheduler.timer.isActive()
    time.sleep(0.06)
    qapp.processEvents()
    assert flush.calls == 1

def test_qt_scheduler_cancel(qapp):
    scheduler = QtFrameScheduler(5)
    flush = Counter()
    scheduler.schedule(flush)
    scheduler.cancel()
    time.sleep(0.02)
    qapp.processEvents()
    assert flush.calls == 0

def test_set_interval(qapp):
    scheduler = QtFrameScheduler(5)
    scheduler.set_interval(25)
    assert scheduler.interval_ms == 25
    manual = ManualScheduler()
    manual.set_interval(25)
    flush = Counter()
    manual.schedule(flush)
    assert manual.tick()
    assert flush.calls == 1
