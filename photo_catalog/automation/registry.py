from __future__ import annotations

import logging
import threading
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from photo_catalog.core.models import (
    DailyTrigger,
    ExtensionTrigger,
    IntervalTrigger,
    ScriptDefinition,
    normalize_extension,
)
from photo_catalog.index.schema import ScriptRow

logger = logging.getLogger(__name__)


def script_from_row(row: ScriptRow) -> ScriptDefinition:
    """Convert a stored script to its tagged trigger form; exactly one trigger column must be set."""
    triggers = []
    if row.file_extension and row.file_extension.strip():
        triggers.append(ExtensionTrigger(extension=row.file_extension))
    if row.run_time is not None:
        triggers.append(DailyTrigger(run_time=row.run_time))
    if row.interval_minutes is not None:
        triggers.append(IntervalTrigger(minutes=row.interval_minutes))
    if len(triggers) != 1:
        raise ValueError(
            f"Script {row.name!r} must have exactly one trigger, found {len(triggers)}"
        )
    return ScriptDefinition(
        id=row.id,
        name=row.name,
        script_path=row.script_path,
        script_contents=row.script_contents,
        trigger=triggers[0],
    )


def script_to_row(script: ScriptDefinition, row: Optional[ScriptRow] = None) -> ScriptRow:
    row = row or ScriptRow(name=script.name)
    row.name = script.name
    row.script_path = script.script_path
    row.script_contents = script.script_contents
    row.file_extension = None
    row.run_time = None
    row.interval_minutes = None
    trigger = script.trigger
    if isinstance(trigger, ExtensionTrigger):
        row.file_extension = trigger.extension
    elif isinstance(trigger, DailyTrigger):
        row.run_time = trigger.run_time
    elif isinstance(trigger, IntervalTrigger):
        row.interval_minutes = trigger.minutes
    else:
        raise TypeError(f"Unknown script trigger: {trigger!r}")
    return row


def load_script_definitions(session: Session) -> list[ScriptDefinition]:
    scripts: list[ScriptDefinition] = []
    for row in session.scalars(select(ScriptRow).order_by(ScriptRow.id)).all():
        try:
            scripts.append(script_from_row(row))
        except ValueError as exc:
            logger.warning("Scripts: skipping %s: %s", row.name, exc)
    return scripts


class ScriptRegistry:
    """
    Extension -> script cache rebuilt from the store.

    A reload builds a fresh dict and swaps the reference under the lock, so a
    lookup sees either the old or the new snapshot and never a half-built one.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory
        self._lock = threading.Lock()
        self._by_extension: dict[str, ScriptDefinition] = {}

    def reload(self) -> int:
        with self._session_factory() as session:
            scripts = load_script_definitions(session)
        snapshot = build_extension_index(scripts)
        with self._lock:
            self._by_extension = snapshot
        daily = sum(isinstance(s.trigger, DailyTrigger) for s in scripts)
        periodic = sum(isinstance(s.trigger, IntervalTrigger) for s in scripts)
        logger.info(
            "Scripts: loaded %d extension, %d daily, %d periodic script(s)",
            len(snapshot),
            daily,
            periodic,
        )
        return len(snapshot)

    def get(self, extension: str | None) -> Optional[ScriptDefinition]:
        if not extension or not extension.strip():
            return None
        with self._lock:
            snapshot = self._by_extension
        return snapshot.get(normalize_extension(extension))

    def extensions(self) -> list[str]:
        with self._lock:
            return sorted(self._by_extension)


def build_extension_index(scripts: Iterable[ScriptDefinition]) -> dict[str, ScriptDefinition]:
    index: dict[str, ScriptDefinition] = {}
    for script in scripts:
        if isinstance(script.trigger, ExtensionTrigger):
            if script.trigger.extension in index:
                logger.warning(
                    "Scripts: %s replaces %s for extension %s",
                    script.name,
                    index[script.trigger.extension].name,
                    script.trigger.extension,
                )
            index[script.trigger.extension] = script
    return index
