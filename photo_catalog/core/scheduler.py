from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Union

logger = logging.getLogger(__name__)

Delay = Union[float, Callable[[], float]]


@dataclass
class Job:
    name: str
    func: Callable[[], object]
    delay: Delay
    initial_delay: float = 0.0
    runs: int = 0
    thread: threading.Thread | None = field(default=None, repr=False)

    def next_delay(self) -> float:
        value = self.delay() if callable(self.delay) else self.delay
        return max(float(value), 0.0)


class Scheduler:
    """
    Fixed-delay background jobs, one daemon thread per job.

    The delay is measured from the end of one run to the start of the next, so
    a slow run never overlaps itself. A callable delay is re-evaluated after
    every run, which lets a changed poll interval take effect without restart.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._stop = threading.Event()
        self._lock = threading.Lock()

    @property
    def jobs(self) -> dict[str, Job]:
        return dict(self._jobs)

    def add_job(
        self,
        name: str,
        func: Callable[[], object],
        *,
        delay: Delay,
        initial_delay: float = 0.0,
    ) -> Job:
        with self._lock:
            if name in self._jobs:
                raise ValueError(f"Job already registered: {name}")
            job = Job(name=name, func=func, delay=delay, initial_delay=initial_delay)
            self._jobs[name] = job
        return job

    def start(self) -> None:
        self._stop.clear()
        with self._lock:
            for job in self._jobs.values():
                if job.thread is not None and job.thread.is_alive():
                    continue
                job.thread = threading.Thread(
                    target=self._run_job, args=(job,), name=f"scheduler-{job.name}", daemon=True
                )
                job.thread.start()
        logger.info("Scheduler: started %d job(s)", len(self._jobs))

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        for job in self._jobs.values():
            if job.thread is not None:
                job.thread.join(timeout=timeout)
        logger.info("Scheduler: stopped")

    def is_running(self) -> bool:
        return any(
            job.thread is not None and job.thread.is_alive() for job in self._jobs.values()
        )

    def _run_job(self, job: Job) -> None:
        if self._stop.wait(job.initial_delay):
            return
        while not self._stop.is_set():
            run_once(job)
            if self._stop.wait(job.next_delay()):
                return


def run_once(job: Job) -> None:
    """Run a job body, logging failures so the schedule survives them."""
    try:
        job.func()
    except Exception:
        logger.exception("Scheduler: job %s failed", job.name)
    finally:
        job.runs += 1
