from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

logger = logging.getLogger(__name__)


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        pass


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock(Clock):
    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, when: datetime) -> None:
        with self._lock:
            self._now = when

    def advance(self, seconds: float) -> datetime:
        with self._lock:
            self._now = self._now + timedelta(seconds=seconds)
            return self._now


@dataclass
class Job:
    name: str
    interval: float
    fn: Callable[[], None]
    next_run: datetime | None = None
    cancelled: threading.Event = field(default_factory=threading.Event)

    def run(self) -> None:
        try:
            self.fn()
        except Exception:
            logger.exception("scheduled_job_error name=%s", self.name)


class Scheduler(ABC):
    @abstractmethod
    def every(self, interval_seconds: float, fn: Callable[[], None], *, name: str = "job") -> Job:
        pass

    def cancel(self, job: Job) -> None:
        job.cancelled.set()

    @abstractmethod
    def stop(self) -> None:
        pass


class ThreadScheduler(Scheduler):
    def __init__(self) -> None:
        self._jobs: list[Job] = []
        self._threads: list[threading.Thread] = []

    def every(self, interval_seconds: float, fn: Callable[[], None], *, name: str = "job") -> Job:
        job = Job(name, float(interval_seconds), fn)

        def loop() -> None:
            while not job.cancelled.wait(job.interval):
                job.run()

        t = threading.Thread(target=loop, name=f"tick-trader-{name}", daemon=True)
        self._jobs.append(job)
        self._threads.append(t)
        t.start()
        return job

    def stop(self, timeout: float = 5.0) -> None:
        for job in self._jobs:
            job.cancelled.set()
        for t in self._threads:
            t.join(timeout=timeout)
        self._jobs.clear()
        self._threads.clear()


class VirtualScheduler(Scheduler):
    """Runs jobs as a ManualClock is advanced; nothing happens between calls to advance()."""

    def __init__(self, clock: ManualClock) -> None:
        self.clock = clock
        self._jobs: list[Job] = []

    def every(self, interval_seconds: float, fn: Callable[[], None], *, name: str = "job") -> Job:
        job = Job(name, float(interval_seconds), fn, next_run=self.clock.now() + timedelta(seconds=interval_seconds))
        self._jobs.append(job)
        return job

    def advance(self, seconds: float) -> None:
        end = self.clock.now() + timedelta(seconds=seconds)
        while True:
            live = [j for j in self._jobs if not j.cancelled.is_set()]
            due = [j for j in live if j.next_run is not None and j.next_run <= end]
            if not due:
                break
            job = min(due, key=lambda j: j.next_run)
            self.clock.set(job.next_run)
            job.next_run = job.next_run + timedelta(seconds=job.interval)
            job.run()
        self.clock.set(end)

    def stop(self) -> None:
        for job in self._jobs:
            job.cancelled.set()
        self._jobs.clear()
