"""
Weather Station - Archive Runner
Periodically commits stored readings to the GitHub archive repository
"""

import argparse
import asyncio
import logging
import signal
import sys

from wxstation.core.config import Settings, get_settings
from wxstation.core.database import build_engine, build_session_maker, create_tables
from wxstation.services.archive_store import GitHubContentStore
from wxstation.services.archiver import ArchiveReconciler
from wxstation.services.sample_log import SampleLog, now_ms
from wxstation.services.scheduler import ArchiveScheduler

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Archive weather station readings")
    parser.add_argument("--once", action="store_true", help="archive the last closed window and exit")
    parser.add_argument("--hours", type=float, default=None, help="archive every window in the last N hours and exit")
    return parser.parse_args(argv)


async def run(settings: Settings, once: bool = False, hours: float | None = None) -> int:
    """Run the archiver; returns a process exit code."""
    if not settings.archive_enabled:
        logger.error("GITHUB_REPO and GITHUB_TOKEN must be set to archive readings")
        return 2

    engine = build_engine(settings.database_url)
    store = GitHubContentStore.from_settings(settings)
    try:
        await create_tables(engine)
        reconciler = ArchiveReconciler.from_settings(settings, SampleLog(build_session_maker(engine)), store)

        if hours is not None:
            results = await reconciler.backfill(now_ms(), hours, settings.archive_window_minutes)
            for result in results:
                logger.info("%s: %s", result.path or "-", result.message)
            return 0 if all(r.ok for r in results) else 1

        if once:
            result = await reconciler.archive_last_window(
                now_ms(), settings.archive_window_minutes, settings.archive_delay_seconds
            )
            logger.info("%s: %s", result.path or "-", result.message)
            return 0 if result.ok else 1

        scheduler = ArchiveScheduler(
            reconciler,
            window_minutes=settings.archive_window_minutes,
            delay_seconds=settings.archive_delay_seconds,
        )

        # Handle shutdown signals
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, scheduler.stop)

        await scheduler.start()
        return 0
    finally:
        await store.close()
        await engine.dispose()


def main(argv: list[str] | None = None) -> None:
    """Entry point."""
    args = parse_args(argv)
    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    sys.exit(asyncio.run(run(settings, once=args.once, hours=args.hours)))


if __name__ == "__main__":
    main()
