from __future__ import annotations

import logging
import os
import signal
import subprocess
import tempfile
import threading
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from photo_catalog.core.config import ConfigProvider
from photo_catalog.core.models import DailyTrigger, IntervalTrigger, ScriptDefinition
from photo_catalog.index.ledger import record_execution

from .registry import ScriptRegistry, load_script_definitions

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60
DAILY_WINDOW_SECONDS = 60
MAX_ERROR_OUTPUT = 2000
SECONDS_PER_DAY = 24 * 60 * 60


def seconds_between_times(a: time, b: time) -> int:
    """Distance between two times of day, wrapping around midnight."""
    a_seconds = a.hour * 3600 + a.minute * 60 + a.second
    b_seconds = b.hour * 3600 + b.minute * 60 + b.second
    diff = abs(a_seconds - b_seconds)
    return min(diff, SECONDS_PER_DAY - diff)


def _kill_process_tree(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        proc.kill()
    proc.wait()


@dataclass
class ScriptRun:
    """Outcome of one script run, not yet written to the ledger."""

    script: ScriptDefinition
    ok: bool
    error_message: Optional[str] = None


class ScriptExecutor:
    """
    Runs custom scripts against ingested files and on the daily and periodic sweeps.

    Last-run times of periodic scripts, and the day each daily script last
    fired, are kept in memory only: a restart treats every periodic script as
    never run.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        registry: Optional[ScriptRegistry] = None,
        *,
        config: Optional[ConfigProvider] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._session_factory = session_factory
        self.registry = registry or ScriptRegistry(session_factory)
        self._config = config or ConfigProvider()
        self._timeout = timeout
        self._state_lock = threading.Lock()
        self._last_periodic_run: dict[str, datetime] = {}
        self._daily_fired_on: dict[str, date] = {}

    @property
    def timeout(self) -> float:
        if self._timeout is not None:
            return self._timeout
        return float(self._config.get_int("scripts.timeout.seconds", DEFAULT_TIMEOUT_SECONDS))

    @property
    def shell(self) -> str:
        return self._config.get_property("scripts.shell", "/bin/bash")

    def reload_scripts(self) -> int:
        return self.registry.reload()

    def get_script_for_extension(self, extension: str | None) -> Optional[ScriptDefinition]:
        return self.registry.get(extension)

    def run_for_file(self, file_path: Path) -> Optional[ScriptRun]:
        """Run the script registered for the file's extension without recording it; None when there is none."""
        script = self.get_script_for_extension(file_path.suffix)
        if script is None:
            logger.debug("Scripts: no custom script for extension %r", file_path.suffix)
            return None
        return self.run(script, file_path)

    def execute(
        self,
        script: ScriptDefinition,
        target_file: Optional[Path] = None,
        asset_id: Optional[int] = None,
        *,
        session: Optional[Session] = None,
    ) -> bool:
        """Run one script and record the outcome in the execution ledger."""
        outcome = self.run(script, target_file)
        self.record_run(outcome, asset_id, session=session)
        return outcome.ok

    def run(self, script: ScriptDefinition, target_file: Optional[Path] = None) -> ScriptRun:
        """
        Run one script without touching the database.

        Targeted runs receive the file path as their only argument and run in
        the file's directory; scheduled runs receive no argument. Output is
        captured to a temporary file and read only after the process exits or
        is killed on timeout.
        """
        label = target_file.name if target_file is not None else "(scheduled)"
        if target_file is not None and not target_file.exists():
            return self._fail(script, f"File does not exist: {target_file}")

        temp_script: Optional[Path] = None
        try:
            if script.has_inline_contents():
                temp_script = self._materialize(script.script_contents or "")
                script_file = temp_script
            elif script.script_path:
                script_file = Path(script.script_path)
                if not script_file.is_file():
                    return self._fail(script, f"Script file not found: {script.script_path}")
            else:
                return self._fail(script, "Script has no contents or file name")

            cmd = [self.shell, str(script_file.resolve())]
            cwd = None
            if target_file is not None:
                cmd.append(str(target_file.resolve()))
                cwd = str(target_file.resolve().parent)

            logger.info("Scripts: running %s for %s", script.name, label)
            timeout = self.timeout
            with tempfile.TemporaryFile() as output_file:
                proc = subprocess.Popen(
                    cmd,
                    cwd=cwd,
                    stdin=subprocess.DEVNULL,
                    stdout=output_file,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
                try:
                    exit_code = proc.wait(timeout=timeout)
                except subprocess.TimeoutExpired:
                    _kill_process_tree(proc)
                    logger.warning("Scripts: %s timed out for %s", script.name, label)
                    return self._fail(script, f"Script timed out after {timeout:g} seconds")
                output_file.seek(0)
                output = output_file.read().decode("utf-8", errors="replace").strip()

            if exit_code != 0:
                logger.warning(
                    "Scripts: %s failed for %s (exit code %d)", script.name, label, exit_code
                )
                message = f"Script exited with code {exit_code}: {output}"
                return self._fail(script, message[:MAX_ERROR_OUTPUT])

            logger.info("Scripts: %s succeeded for %s", script.name, label)
            return ScriptRun(script=script, ok=True)
        except Exception as exc:
            logger.exception("Scripts: error running %s for %s", script.name, label)
            return self._fail(script, f"Exception executing script: {exc}")
        finally:
            if temp_script is not None:
                try:
                    temp_script.unlink(missing_ok=True)
                except OSError as exc:
                    logger.warning("Scripts: could not delete temp script %s: %s", temp_script, exc)

    def record_run(
        self, outcome: ScriptRun, asset_id: Optional[int], *, session: Optional[Session] = None
    ) -> None:
        """
        Write one ledger row for a finished run.

        With a caller's session the row joins that transaction and errors
        propagate; otherwise the row is committed on its own session and a
        failure to write it is logged.
        """
        if session is not None:
            self._write(session, outcome, asset_id)
            return
        try:
            with self._session_factory() as own_session:
                self._write(own_session, outcome, asset_id)
                own_session.commit()
        except Exception:
            logger.exception("Scripts: could not record execution of %s", outcome.script.name)

    def run_daily_scripts(self, now: Optional[datetime] = None) -> int:
        """Fire each daily script whose run time is within a minute of now, at most once per day."""
        now = now or datetime.now()
        fired = 0
        for script in self._scheduled_scripts():
            trigger = script.trigger
            if not isinstance(trigger, DailyTrigger):
                continue
            if seconds_between_times(now.time(), trigger.run_time) >= DAILY_WINDOW_SECONDS:
                continue
            # Midnight wrap: a 23:59:30 run checked at 00:00:10 belongs to yesterday.
            fire_day = now.date()
            if trigger.run_time.hour == 23 and now.hour == 0:
                fire_day -= timedelta(days=1)
            elif trigger.run_time.hour == 0 and now.hour == 23:
                fire_day += timedelta(days=1)
            with self._state_lock:
                if self._daily_fired_on.get(script.name) == fire_day:
                    continue
                self._daily_fired_on[script.name] = fire_day
            logger.info("Scripts: running daily script %s", script.name)
            self.execute(script)
            fired += 1
        return fired

    def run_periodic_scripts(self, now: Optional[datetime] = None) -> int:
        """Fire each interval script that never ran in this process or whose interval has elapsed."""
        now = now or datetime.now()
        fired = 0
        for script in self._scheduled_scripts():
            trigger = script.trigger
            if not isinstance(trigger, IntervalTrigger):
                continue
            with self._state_lock:
                last_run = self._last_periodic_run.get(script.name)
                if last_run is not None and now - last_run < timedelta(minutes=trigger.minutes):
                    continue
                self._last_periodic_run[script.name] = now
            logger.info(
                "Scripts: running periodic script %s (every %d minutes)",
                script.name,
                trigger.minutes,
            )
            self.execute(script)
            fired += 1
        return fired

    def last_periodic_run(self, name: str) -> Optional[datetime]:
        with self._state_lock:
            return self._last_periodic_run.get(name)

    def _scheduled_scripts(self) -> list[ScriptDefinition]:
        with self._session_factory() as session:
            return load_script_definitions(session)

    def _materialize(self, contents: str) -> Path:
        fd, name = tempfile.mkstemp(prefix="photo_catalog_script_", suffix=".sh")
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(contents)
        os.chmod(name, 0o700)
        return Path(name)

    def _fail(self, script: ScriptDefinition, message: str) -> ScriptRun:
        logger.warning("Scripts: %s: %s", script.name, message)
        return ScriptRun(script=script, ok=False, error_message=message)

    @staticmethod
    def _write(session: Session, outcome: ScriptRun, asset_id: Optional[int]) -> None:
        record_execution(
            session,
            script_id=outcome.script.id,
            script_name=outcome.script.name,
            asset_id=asset_id,
            success=outcome.ok,
            error_message=outcome.error_message,
        )
