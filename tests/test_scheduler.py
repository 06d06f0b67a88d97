from __future__ import annotations

import threading

import pytest

from photo_catalog.core.scheduler import Job, Scheduler, run_once


def test_run_once_survives_job_errors(caplog) -> None:
    def boom() -> None:
        raise RuntimeError("kaput")

    job = Job(name="boom", func=boom, delay=1.0)
    run_once(job)
    run_once(job)
    assert job.runs == 2
    assert "job boom failed" in caplog.text


def test_callable_delay_is_reevaluated() -> None:
    values = iter([3.0, -1.0])
    job = Job(name="x", func=lambda: None, delay=lambda: next(values))
    assert job.next_delay() == 3.0
    assert job.next_delay() == 0.0


def test_duplicate_job_names_rejected() -> None:
    scheduler = Scheduler()
    scheduler.add_job("poll", lambda: None, delay=1.0)
    with pytest.raises(ValueError):
        scheduler.add_job("poll", lambda: None, delay=1.0)


def test_jobs_repeat_until_stopped() -> None:
    scheduler = Scheduler()
    calls: list[int] = []
    ran_twice = threading.Event()

    def tick() -> None:
        calls.append(1)
        if len(calls) >= 2:
            ran_twice.set()

    scheduler.add_job("tick", tick, delay=0.01)
    scheduler.start()
    try:
        assert ran_twice.wait(timeout=5)
        assert scheduler.is_running()
    finally:
        scheduler.stop()
    assert not scheduler.is_running()


def test_stop_during_initial_delay_skips_job() -> None:
    scheduler = Scheduler()
    calls: list[int] = []
    scheduler.add_job("late", lambda: calls.append(1), delay=1.0, initial_delay=30.0)
    scheduler.start()
    scheduler.stop()
    assert calls == []
    assert scheduler.jobs["late"].runs == 0
