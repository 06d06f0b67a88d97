#!/usr/bin/env python
"""
Drive the photo catalog from the command line.

Usage:
  python scripts/ingest.py poll
  python scripts/ingest.py process /absolute/path/to/photo.jpg --owner someone@example.com
  python scripts/ingest.py process ~/Pictures
  GIT_REPO_PATH=~/photos python scripts/ingest.py serve
"""
from __future__ import annotations

import argparse
import signal
import threading
from pathlib import Path

from photo_catalog.automation import ScriptExecutor
from photo_catalog.core.config import ConfigProvider
from photo_catalog.core.env import configure_logging, database_url, load_dotenv_if_present
from photo_catalog.core.scheduler import Scheduler
from photo_catalog.index import init_db, session_factory
from photo_catalog.ingest import process_asset_report, scan_photos
from photo_catalog.repo import ChangeDetector, register_jobs


def main() -> None:
    parser = argparse.ArgumentParser(description="Photo catalog ingestion and enrichment.")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("poll", help="Run one repository poll and process changed files")
    process = sub.add_parser("process", help="Process an image file or every image under a directory")
    process.add_argument("path", type=Path, help="Image file or directory (recursed)")
    process.add_argument("--owner", default=None, help="Owner email hint")
    sub.add_parser("serve", help="Run the poller and script sweeps until interrupted")
    args = parser.parse_args()

    load_dotenv_if_present()
    configure_logging()
    engine = init_db(database_url())
    SessionLocal = session_factory(engine)
    config = ConfigProvider()
    executor = ScriptExecutor(SessionLocal, config=config)
    executor.reload_scripts()
    detector = ChangeDetector(SessionLocal, config, scripts=executor)

    if args.command == "poll":
        count = detector.poll_and_process()
        print(f"Poll complete: {count} file(s) processed")
    elif args.command == "process":
        target = args.path.expanduser()
        if not target.exists():
            raise FileNotFoundError(f"Path not found: {target}")
        files = scan_photos(target) if target.is_dir() else [target]
        if not files:
            print(f"No supported photos found under {target}")
        for photo in files:
            with SessionLocal() as session:
                result = process_asset_report(
                    session, photo, args.owner, config=config, scripts=executor
                )
            failed = result.failed_stages()
            print(f"Processed {photo.name} as asset {result.asset.id}")
            if failed:
                print(f"  failed stages: {', '.join(failed)}")
    else:
        scheduler = Scheduler()
        register_jobs(scheduler, detector, executor, config)
        stop = threading.Event()
        signal.signal(signal.SIGTERM, lambda *_: stop.set())
        scheduler.start()
        try:
            stop.wait()
        except KeyboardInterrupt:
            pass
        finally:
            scheduler.stop()


if __name__ == "__main__":
    main()
