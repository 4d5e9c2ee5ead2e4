"""Tests for periodic task scheduling against a virtual clock."""

import threading
import time

import pytest

from xdr_backend.scheduler import ManualClock, Scheduler, SystemClock


class Counter:
    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1


@pytest.fixture
def scheduler(clock):
    return Scheduler(clock)


class TestManualClock:
    def test_advance(self, clock):
        start = clock.now()
        clock.advance(90)
        assert clock.time() == 90
        assert (clock.now() - start).total_seconds() == 90

    def test_cannot_go_backwards(self, clock):
        with pytest.raises(ValueError):
            clock.advance(-1)


class TestScheduling:
    """Test suite for tick delivery."""

    def test_nothing_fires_before_start(self, scheduler, clock):
        counter = Counter()
        scheduler.add_task("countdown", 5, counter)
        clock.advance(60)
        assert scheduler.run_pending() == 0
        assert counter.calls == 0

    def test_each_elapsed_period_fires_once(self, scheduler, clock):
        counter = Counter()
        scheduler.add_task("countdown", 5, counter)
        scheduler.start(background=False)
        clock.advance(12)
        scheduler.run_pending()
        assert counter.calls == 2
        scheduler.run_pending()
        assert counter.calls == 2

    def test_periods_are_independent(self, scheduler, clock):
        fast, slow = Counter(), Counter()
        scheduler.add_task("refresh", 5, fast)
        scheduler.add_task("sweep", 30, slow)
        scheduler.start(background=False)
        clock.advance(60)
        scheduler.run_pending()
        assert fast.calls == 12
        assert slow.calls == 2

    def test_failing_task_does_not_stop_schedule(self, scheduler, clock):
        healthy = Counter()

        def broken():
            raise RuntimeError("consumer error")

        broken_task = scheduler.add_task("broken", 5, broken)
        scheduler.add_task("healthy", 5, healthy)
        scheduler.start(background=False)
        clock.advance(15)
        scheduler.run_pending()
        assert broken_task.failures == 3
        assert broken_task.runs == 0
        assert healthy.calls == 3
        assert scheduler.running

    def test_reentrant_tick_is_skipped(self, scheduler, clock):
        calls = []

        def reenter():
            calls.append(1)
            task.fire()

        task = scheduler.add_task("countdown", 5, reenter)
        scheduler.start(background=False)
        clock.advance(5)
        scheduler.run_pending()
        assert len(calls) == 1
        assert task.skipped == 1
        assert task.runs == 1

    def test_ticks_elapsed_while_busy_are_dropped(self, scheduler, clock):
        state = {"first": True, "calls": 0}

        def slow():
            state["calls"] += 1
            if state["first"]:
                state["first"] = False
                clock.advance(12)

        task = scheduler.add_task("countdown", 5, slow)
        scheduler.start(background=False)
        clock.advance(5)
        scheduler.run_pending()
        assert state["calls"] == 1
        assert task.skipped == 2

    def test_duplicate_and_invalid_tasks(self, scheduler):
        scheduler.add_task("countdown", 5, Counter())
        with pytest.raises(ValueError):
            scheduler.add_task("countdown", 5, Counter())
        with pytest.raises(ValueError):
            scheduler.add_task("sweep", 0, Counter())


class TestStop:
    def test_stop_halts_all_tasks(self, scheduler, clock):
        a, b = Counter(), Counter()
        scheduler.add_task("a", 5, a)
        scheduler.add_task("b", 30, b)
        scheduler.start(background=False)
        scheduler.stop()
        clock.advance(60)
        assert scheduler.run_pending() == 0
        assert (a.calls, b.calls) == (0, 0)
        assert not scheduler.running

    def test_stop_from_task_prevents_remaining_ticks(self, scheduler, clock):
        other = Counter()
        scheduler.add_task("stopper", 5, scheduler.stop)
        scheduler.add_task("other", 5, other)
        scheduler.start(background=False)
        clock.advance(5)
        scheduler.run_pending()
        assert other.calls == 0

    def test_background_thread(self, clock):
        scheduler = Scheduler(clock, poll_interval=0.01)
        counter = Counter()
        scheduler.add_task("countdown", 1, counter)
        scheduler.start()
        try:
            clock.advance(3)
            deadline = time.monotonic() + 2
            while counter.calls < 3 and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            scheduler.stop()
        assert counter.calls == 3
        clock.advance(5)
        time.sleep(0.05)
        assert counter.calls == 3


class TestWorkerIsolation:
    """Background workers run each task on its own thread."""

    def test_slow_task_does_not_delay_other_tasks(self):
        scheduler = Scheduler(SystemClock(), poll_interval=0.01)
        release = threading.Event()
        fast = Counter()
        scheduler.add_task("slow", 0.05, lambda: release.wait(2))
        scheduler.add_task("fast", 0.05, fast)
        scheduler.start()
        try:
            deadline = time.monotonic() + 1
            while fast.calls < 5 and time.monotonic() < deadline:
                time.sleep(0.01)
            assert fast.calls >= 5
        finally:
            release.set()
            scheduler.stop()

    def test_restart_after_timed_out_stop(self):
        scheduler = Scheduler(SystemClock(), poll_interval=0.01)
        entered, release = threading.Event(), threading.Event()

        def slow():
            entered.set()
            release.wait(2)

        scheduler.add_task("slow", 0.01, slow)
        scheduler.start()
        try:
            assert entered.wait(1)
            scheduler.stop(timeout=0.05)
            assert not scheduler.running
            scheduler.start()
            assert scheduler.running
        finally:
            release.set()
            scheduler.stop()

        stale = [t for t in threading.enumerate() if t.name == "scheduler-slow" and t.is_alive()]
        assert stale == []
