from dataclasses import dataclass
import logging
import time
from typing import Optional

from harvester.config import Settings, settings
from harvester.providers.session import SteamCommunitySession
from harvester.services.crawler import CrawlScheduler, StopReason
from harvester.services.provider_factory import build_provider
from harvester.services.storage import CheckpointStore, ResultStore

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    stop_reason: Optional[StopReason]
    items_processed: int
    summaries_written: int
    cursor: int


def ensure_directories(config: Settings) -> None:
    for path in (config.static_dir, config.prices_dir, config.history_dir):
        path.mkdir(parents=True, exist_ok=True)


def build_scheduler(provider, config: Settings) -> CrawlScheduler:
    return CrawlScheduler(
        provider=provider,
        checkpoints=CheckpointStore(config.state_file),
        results=ResultStore(config.prices_dir, config.history_dir),
        batch_size=config.batch_size,
        requests_per_minute=config.requests_per_minute,
        max_duration_seconds=config.max_duration_seconds,
    )


async def run_harvest(steam_login_secure: str, session_id: str, config: Optional[Settings] = None) -> RunReport:
    config = config or settings
    started_at = time.monotonic()
    ensure_directories(config)

    session = SteamCommunitySession(steam_login_secure, session_id, config)
    async with session.build_client() as client:
        if config.provider_name != "mock":
            await session.login(client)

        provider = build_provider(client, config)
        logger.info("Loading items...")
        items = await provider.fetch_catalog()
        logger.info("Processing %s items.", len(items))

        state = await build_scheduler(provider, config).run(items, started_at=started_at)

    return RunReport(
        stop_reason=state.stop_reason,
        items_processed=state.processed,
        summaries_written=len(state.results),
        cursor=state.cursor,
    )
