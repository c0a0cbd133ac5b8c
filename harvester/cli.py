import argparse
import asyncio
import logging
import sys
from typing import Optional

from apscheduler.schedulers.blocking import BlockingScheduler

from harvester.config import settings
from harvester.providers.catalog import CatalogError
from harvester.providers.session import AuthenticationError
from harvester.services.crawler import EmptyCatalogError
from harvester.services.storage import ResultStoreError
from harvester.services.harvest import run_harvest

logger = logging.getLogger("harvester")


def harvest_once(steam_login_secure: str, session_id: str) -> int:
    try:
        report = asyncio.run(run_harvest(steam_login_secure, session_id, settings))
    except (AuthenticationError, CatalogError, EmptyCatalogError, ResultStoreError) as exc:
        logger.error("harvest aborted: %s", exc)
        return 1
    logger.info(
        "harvest finished (%s): %s items processed, %s summaries, cursor at %s",
        report.stop_reason.value if report.stop_reason else "unknown",
        report.items_processed,
        report.summaries_written,
        report.cursor,
    )
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Steam market price history harvester")
    parser.add_argument("steam_login_secure", help="steamLoginSecure cookie of a logged-in session")
    parser.add_argument("session_id", help="sessionid cookie of the same session")
    parser.add_argument(
        "--schedule",
        action="store_true",
        help=f"Keep running and harvest every {settings.schedule_interval_hours} hours",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    exit_code = harvest_once(args.steam_login_secure, args.session_id)
    if not args.schedule or exit_code != 0:
        return exit_code

    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(
        harvest_once,
        "interval",
        hours=settings.schedule_interval_hours,
        args=[args.steam_login_secure, args.session_id],
        id="price-harvest",
        replace_existing=True,
        max_instances=1,
    )
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("scheduler stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
