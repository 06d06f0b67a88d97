from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from photo_catalog.automation.executor import ScriptExecutor
from photo_catalog.core.config import ConfigProvider
from photo_catalog.core.scheduler import Scheduler
from photo_catalog.index.schema import RepositoryPollStateRow
from photo_catalog.ingest.pipeline import process_asset
from photo_catalog.ingest.scanner import is_supported_image
from photo_catalog.ingest.tagger import AiTagger

from .git_client import GitCommandError, GitRepository

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MINUTES = 5
DEFAULT_INITIAL_DELAY_SECONDS = 60
SCRIPT_SWEEP_SECONDS = 60


class ChangeDetector:
    """
    Detects image files added or modified in the configured git working copy.

    The last processed revision is persisted per repository path, so a
    restart resumes from where the previous process stopped. Configuration
    is re-read on every poll.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: Optional[ConfigProvider] = None,
        *,
        git_factory: Callable[[Path], GitRepository] = GitRepository,
        scripts: Optional[ScriptExecutor] = None,
        tagger: Optional[AiTagger] = None,
    ) -> None:
        self._session_factory = session_factory
        self._config = config or ConfigProvider()
        self._git_factory = git_factory
        self.scripts = scripts
        self.tagger = tagger

    def _repository_root(self) -> Optional[Path]:
        repo_path = self._config.repo_path()
        if repo_path is None:
            logger.warning("Poller: git repository path not configured, skipping poll")
            return None
        root = Path(repo_path).expanduser()
        if not root.is_dir():
            logger.error("Poller: git repository directory does not exist: %s", repo_path)
            return None
        return root.resolve()

    def poll(self) -> list[str]:
        """Pull, compare HEAD against the stored revision, and return changed image paths."""
        root = self._repository_root()
        if root is None:
            return []
        git = self._git_factory(root)
        repo_key = str(root)

        with self._session_factory() as session:
            try:
                state = session.scalar(
                    select(RepositoryPollStateRow).where(
                        RepositoryPollStateRow.repository_path == repo_key
                    )
                )
                try:
                    git.pull(
                        self._config.get_property("git.repo.url", "") or "",
                        self._config.get_property("git.username", "") or "",
                        self._config.get_property("git.token", "") or "",
                    )
                except GitCommandError as exc:
                    logger.warning("Poller: git pull failed for %s: %s", repo_key, exc)
                    return []

                head = git.head_revision()
                if head is None:
                    logger.warning("Poller: no HEAD commit found in %s", repo_key)
                    return []

                last_revision = state.last_revision if state is not None else None
                if last_revision == head:
                    logger.info("Poller: no new commits since last poll (%s)", head[:12])
                    return []

                if last_revision is None:
                    logger.info("Poller: first poll of %s, walking the full tree", repo_key)
                    candidates = git.list_files(head)
                else:
                    logger.info(
                        "Poller: detecting changes %s -> %s", last_revision[:12], head[:12]
                    )
                    candidates = git.diff_paths(last_revision, head)
                changed = [str(root / rel) for rel in candidates if is_supported_image(rel)]

                if state is None:
                    state = RepositoryPollStateRow(repository_path=repo_key)
                    session.add(state)
                state.last_revision = head
                state.last_polled_at = datetime.now(timezone.utc)
                session.commit()
            except Exception:
                session.rollback()
                logger.exception("Poller: unexpected error while polling %s", repo_key)
                return []

        logger.info("Poller: detected %d changed image file(s)", len(changed))
        return changed

    def poll_and_process(self) -> int:
        """Run one poll and push every changed file through the pipeline."""
        changed = self.poll()
        if not changed:
            return 0
        root = self._repository_root()
        git = self._git_factory(root) if root is not None else None

        processed = 0
        for path_str in changed:
            path = Path(path_str)
            if not path.is_file():
                logger.warning("Poller: changed file missing from working copy: %s", path)
                continue
            owner_hint = self._author_for(git, root, path)
            with self._session_factory() as session:
                try:
                    process_asset(
                        session,
                        path,
                        owner_hint,
                        config=self._config,
                        tagger=self.tagger,
                        scripts=self.scripts,
                    )
                    processed += 1
                except Exception:
                    logger.exception("Poller: failed to process %s", path.name)
        logger.info("Poller: processed %d of %d changed file(s)", processed, len(changed))
        return processed

    def _author_for(
        self, git: Optional[GitRepository], root: Optional[Path], path: Path
    ) -> Optional[str]:
        if git is None or root is None:
            return None
        try:
            return git.last_author_email(path.relative_to(root).as_posix())
        except (GitCommandError, ValueError) as exc:
            logger.debug("Poller: no author for %s: %s", path.name, exc)
            return None


def register_jobs(
    scheduler: Scheduler,
    detector: ChangeDetector,
    executor: ScriptExecutor,
    config: ConfigProvider,
) -> None:
    """Attach the repository poll and the two script sweeps to a scheduler."""

    def poll_delay() -> float:
        return config.get_int("git.poll.interval.minutes", DEFAULT_POLL_INTERVAL_MINUTES) * 60.0

    scheduler.add_job(
        "git-poll",
        detector.poll_and_process,
        delay=poll_delay,
        initial_delay=float(
            config.get_int("git.poll.initial.delay.seconds", DEFAULT_INITIAL_DELAY_SECONDS)
        ),
    )
    scheduler.add_job("daily-scripts", executor.run_daily_scripts, delay=SCRIPT_SWEEP_SECONDS)
    scheduler.add_job("periodic-scripts", executor.run_periodic_scripts, delay=SCRIPT_SWEEP_SECONDS)
