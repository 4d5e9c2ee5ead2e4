"""
Periodic task scheduling for the surveillance engine.

Each task has its own period and an at-most-one-in-flight guard. Ticks that
arrive while a task is still running are skipped and counted, never queued.
A failing task is logged and the schedule carries on.
"""
import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class SystemClock:
    """Wall clock for production use."""

    def time(self) -> float:
        return time.monotonic()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Virtual clock advanced explicitly by tests and simulations."""

    def __init__(self, start: Optional[datetime] = None):
        self._start = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._elapsed = 0.0
        self._lock = threading.Lock()

    def time(self) -> float:
        with self._lock:
            return self._elapsed

    def now(self) -> datetime:
        with self._lock:
            return self._start + timedelta(seconds=self._elapsed)

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("Cannot move a clock backwards")
        with self._lock:
            self._elapsed += seconds


class PeriodicTask:
    def __init__(self, name: str, interval: float, callback: Callable[[], object], first_due: float):
        if interval <= 0:
            raise ValueError(f"Task '{name}' needs a positive interval, got {interval}")
        self.name = name
        self.interval = interval
        self.callback = callback
        self.next_due = first_due
        self.runs = 0
        self.failures = 0
        self.skipped = 0
        self._in_flight = threading.Lock()

    def fire(self) -> bool:
        """Run the callback unless a previous run is still in progress."""
        if not self._in_flight.acquire(blocking=False):
            self.skipped += 1
            logger.warning(f"Task '{self.name}' still running, skipping tick")
            return False
        try:
            self.callback()
            self.runs += 1
        except Exception:
            self.failures += 1
            logger.exception(f"Task '{self.name}' failed, skipping this cycle")
        finally:
            self._in_flight.release()
        return True

    def stats(self) -> Dict[str, object]:
        return {
            "interval": self.interval,
            "runs": self.runs,
            "failures": self.failures,
            "skipped": self.skipped,
        }


class Scheduler:
    """Runs named periodic tasks against an injectable clock.

    ``run_pending`` fires every period that has elapsed since the last call,
    in due order, so advancing a ``ManualClock`` replays ticks
    deterministically. ``start`` spawns one worker thread per task, so a slow
    task only delays its own ticks. Callbacks never run under the scheduler
    lock. ``stop`` halts every task and waits for the workers to exit.
    """

    def __init__(self, clock=None, poll_interval: float = 0.25):
        self.clock = clock or SystemClock()
        self.poll_interval = poll_interval
        self._tasks: Dict[str, PeriodicTask] = {}
        self._run_lock = threading.RLock()
        self._running = False
        # Each start() gets its own event so workers left over from an earlier run stay stopped
        self._stop_event = threading.Event()
        self._workers: List[threading.Thread] = []
        self._background = False

    @property
    def running(self) -> bool:
        return self._running

    def add_task(self, name: str, interval: float, callback: Callable[[], object]) -> PeriodicTask:
        with self._run_lock:
            if name in self._tasks:
                raise ValueError(f"Task '{name}' already registered")
            task = PeriodicTask(name, interval, callback, self.clock.time() + interval)
            self._tasks[name] = task
            if self._running and self._background:
                self._spawn_worker(task)
            return task

    def start(self, background: bool = True) -> None:
        """Begin firing tasks. With ``background=False`` the caller drives ``run_pending``."""
        with self._run_lock:
            if self._running:
                return
            now = self.clock.time()
            for task in self._tasks.values():
                task.next_due = now + task.interval
            self._running = True
            self._background = background
            self._stop_event = threading.Event()
            self._workers = [worker for worker in self._workers if worker.is_alive()]
            if self._workers:
                logger.warning(f"{len(self._workers)} worker(s) from the previous run still finishing")
            if background:
                for task in self._tasks.values():
                    self._spawn_worker(task)
        logger.info(f"Scheduler started with tasks: {', '.join(self._tasks) or 'none'}")

    def stop(self, timeout: float = 5.0) -> None:
        with self._run_lock:
            if not self._running:
                return
            self._running = False
            self._stop_event.set()
            workers = list(self._workers)
        current = threading.current_thread()
        for worker in workers:
            if worker is not current:
                worker.join(timeout=timeout)
        with self._run_lock:
            alive = [worker for worker in self._workers if worker.is_alive()]
            self._workers = alive
        if alive:
            logger.warning(f"Scheduler stopped with {len(alive)} task(s) still finishing")
        else:
            logger.info("Scheduler stopped")

    def run_pending(self) -> int:
        """Fire all due ticks. Returns the number of task runs attempted."""
        fired = 0
        now = self.clock.time()
        while True:
            with self._run_lock:
                if not self._running:
                    break
                due = [task for task in self._tasks.values() if task.next_due <= now]
                if not due:
                    break
                task = min(due, key=lambda t: t.next_due)
                task.next_due += task.interval
            self._fire(task)
            fired += 1
        return fired

    def _fire(self, task: PeriodicTask) -> None:
        started = self.clock.time()
        task.fire()
        finished = self.clock.time()
        if finished > started:
            # Ticks that came due while the task was busy are dropped
            with self._run_lock:
                while task.next_due <= finished:
                    task.next_due += task.interval
                    task.skipped += 1

    def _spawn_worker(self, task: PeriodicTask) -> None:
        worker = threading.Thread(
            target=self._work,
            args=(task, self._stop_event),
            name=f"scheduler-{task.name}",
            daemon=True,
        )
        self._workers.append(worker)
        worker.start()

    def _work(self, task: PeriodicTask, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            with self._run_lock:
                due = task.next_due <= self.clock.time()
                if due:
                    task.next_due += task.interval
            if due:
                self._fire(task)
            else:
                stop_event.wait(self.poll_interval)

    def stats(self) -> Dict[str, Dict[str, object]]:
        return {name: task.stats() for name, task in self._tasks.items()}

    def task_names(self) -> List[str]:
        return list(self._tasks)
